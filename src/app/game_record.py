"""
Game records and the transitions they may undergo.

A record is a plain dataclass; every transition is a function that checks its
guards first and only then mutates the record, so a rejected event leaves the
record untouched.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Final, Literal

from commit_reveal import verify_commitment
from contract_errors import (
    AlreadyRevealed,
    CommitmentMismatch,
    CommitmentReused,
    NotParticipant,
    SelfJoin,
    TooEarly,
    WrongState,
)
from protocol import Choice, Outcome, choice_to_rank, determine_outcome

GameState = Literal["awaiting_opponent", "awaiting_reveal", "resolved", "abandoned"]

TERMINAL_STATES: Final[frozenset[str]] = frozenset({"resolved", "abandoned"})


@dataclass
class GameRecord:
    initiator_id: str
    primary_commitment: str
    created_at: float
    deadline: float
    state: GameState = "awaiting_opponent"
    opponent_id: str | None = None
    secondary_commitment: str | None = None
    revealed_choice_1: Choice | None = None
    revealed_choice_2: Choice | None = None
    # Verified reveals are held here until both are in; never served to callers.
    sealed_choice_1: Choice | None = None
    sealed_choice_2: Choice | None = None
    outcome: Outcome | None = None
    winner: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def both_revealed(self) -> bool:
        return self.sealed_choice_1 is not None and self.sealed_choice_2 is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> dict[str, Any]:
        """The record as shown to any caller: sealed reveals become flags."""
        data = self.to_dict()
        data["initiator_revealed"] = data.pop("sealed_choice_1") is not None or self.revealed_choice_1 is not None
        data["opponent_revealed"] = data.pop("sealed_choice_2") is not None or self.revealed_choice_2 is not None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameRecord":
        return cls(
            initiator_id=str(data["initiator_id"]),
            primary_commitment=str(data["primary_commitment"]),
            created_at=float(data["created_at"]),
            deadline=float(data["deadline"]),
            state=data.get("state", "awaiting_opponent"),
            opponent_id=data.get("opponent_id"),
            secondary_commitment=data.get("secondary_commitment"),
            revealed_choice_1=data.get("revealed_choice_1"),
            revealed_choice_2=data.get("revealed_choice_2"),
            sealed_choice_1=data.get("sealed_choice_1"),
            sealed_choice_2=data.get("sealed_choice_2"),
            outcome=data.get("outcome"),
            winner=data.get("winner"),
        )


def new_game(*, initiator_id: str, commitment: str, now: float, timeout_seconds: float) -> GameRecord:
    return GameRecord(
        initiator_id=initiator_id,
        primary_commitment=commitment,
        created_at=now,
        deadline=now + timeout_seconds,
    )


def _require_state(record: GameRecord, expected: GameState, action: str) -> None:
    if record.state != expected:
        raise WrongState(f"cannot {action} game of {record.initiator_id}: state is {record.state}")


def apply_join(
    record: GameRecord,
    *,
    caller_id: str,
    commitment: str,
    now: float,
    timeout_seconds: float,
) -> None:
    _require_state(record, "awaiting_opponent", "join")
    if caller_id == record.initiator_id:
        raise SelfJoin("the initiator cannot join their own game")
    if record.secondary_commitment is not None:
        raise WrongState(f"game of {record.initiator_id} already has an opponent")
    if commitment == record.primary_commitment:
        raise CommitmentReused("opponent commitment must differ from the initiator's")

    record.opponent_id = caller_id
    record.secondary_commitment = commitment
    record.state = "awaiting_reveal"
    record.deadline = now + timeout_seconds


def apply_reveal(record: GameRecord, *, caller_id: str, choice: str, secret: str) -> bool:
    """Record a verified reveal; resolve the game once both sides are in.

    Returns True when this reveal completed the game.
    """
    _require_state(record, "awaiting_reveal", "reveal in")
    choice_to_rank(choice)

    if caller_id == record.initiator_id:
        commitment, already = record.primary_commitment, record.sealed_choice_1
    elif caller_id == record.opponent_id:
        commitment, already = record.secondary_commitment, record.sealed_choice_2
    else:
        raise NotParticipant(f"{caller_id} is not a player in the game of {record.initiator_id}")

    if already is not None:
        raise AlreadyRevealed(f"{caller_id} has already revealed")
    if commitment is None or not verify_commitment(expected_commitment=commitment, choice=choice, secret=secret):
        raise CommitmentMismatch("reveal did not match commitment")

    if caller_id == record.initiator_id:
        record.sealed_choice_1 = choice  # type: ignore[assignment]
    else:
        record.sealed_choice_2 = choice  # type: ignore[assignment]

    if not record.both_revealed:
        return False
    _resolve(record)
    return True


def _resolve(record: GameRecord) -> None:
    record.revealed_choice_1, record.sealed_choice_1 = record.sealed_choice_1, None
    record.revealed_choice_2, record.sealed_choice_2 = record.sealed_choice_2, None
    outcome = determine_outcome(record.revealed_choice_1, record.revealed_choice_2)  # type: ignore[arg-type]
    record.outcome = outcome
    if outcome == "p1_win":
        record.winner = record.initiator_id
    elif outcome == "p2_win":
        record.winner = record.opponent_id
    record.state = "resolved"


def apply_abandon(record: GameRecord, *, caller_id: str, now: float) -> None:
    if record.is_terminal:
        raise WrongState(f"game of {record.initiator_id} is already {record.state}")

    # Before anyone has joined the initiator may withdraw at any time.
    cancelling = record.state == "awaiting_opponent" and caller_id == record.initiator_id
    if not cancelling and now < record.deadline:
        raise TooEarly(f"game of {record.initiator_id} cannot be abandoned before {record.deadline}")

    record.state = "abandoned"
