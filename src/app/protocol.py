from __future__ import annotations

from typing import Final, Literal

from contract_errors import InvalidChoice

Choice = Literal["rock", "paper", "scissors"]
Outcome = Literal["p1_win", "p2_win", "draw"]

# Ranks are ordered so that "beats" is arithmetic: adjacent ranks are won by
# the higher one, the two-apart pair (rock vs paper) by the lower one.
CHOICE_RANKS: Final[dict[str, int]] = {"rock": 3, "scissors": 2, "paper": 1}


def is_valid_choice(value: object) -> bool:
    return isinstance(value, str) and value in CHOICE_RANKS


def choice_to_rank(choice: str) -> int:
    try:
        return CHOICE_RANKS[choice]
    except (KeyError, TypeError):
        raise InvalidChoice(f"choice must be rock|paper|scissors, got {choice!r}") from None


def resolve_ranks(rank_1: int, rank_2: int) -> Outcome:
    if rank_1 == rank_2:
        return "draw"
    if abs(rank_1 - rank_2) == 1:
        return "p1_win" if rank_1 > rank_2 else "p2_win"
    return "p1_win" if rank_1 < rank_2 else "p2_win"


def determine_outcome(choice_1: str, choice_2: str) -> Outcome:
    """Outcome of player 1's choice against player 2's.

    Both choices are mapped to ranks first, so an unknown choice raises
    ``InvalidChoice`` before any comparison happens.
    """
    return resolve_ranks(choice_to_rank(choice_1), choice_to_rank(choice_2))
