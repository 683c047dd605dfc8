"""
Externally callable contract operations.

Every operation takes the record store explicitly, plus the caller identity
and the host clock reading supplied by the host for this call. The host
applies calls one at a time, so no locking happens here.
"""

from __future__ import annotations

import logging

from commit_reveal import is_well_formed_commitment
from contract_config import DEFAULT_TIMEOUT_SECONDS, ContractConfig
from contract_errors import InvalidCommitment, NotFound, NotReady, WrongState
from game_record import GameRecord, apply_abandon, apply_join, apply_reveal, new_game
from game_store import GameRecordStore
from protocol import Outcome

logger = logging.getLogger(__name__)


def start_game(
    store: GameRecordStore,
    *,
    caller_id: str,
    commitment: str,
    now: float,
    config: ContractConfig | None = None,
) -> GameRecord:
    _require_commitment(commitment)
    timeout = config.join_timeout_seconds if config is not None else DEFAULT_TIMEOUT_SECONDS
    record = store.create(caller_id, new_game(initiator_id=caller_id, commitment=commitment, now=now, timeout_seconds=timeout))
    logger.info("game started by %s, waiting for opponent until %s", caller_id, record.deadline)
    return record


def join_game(
    store: GameRecordStore,
    *,
    caller_id: str,
    initiator_id: str,
    commitment: str,
    now: float,
    config: ContractConfig | None = None,
) -> None:
    _require_commitment(commitment)
    timeout = config.reveal_timeout_seconds if config is not None else DEFAULT_TIMEOUT_SECONDS
    _require_open(store, initiator_id)
    store.update(
        initiator_id,
        lambda record: apply_join(record, caller_id=caller_id, commitment=commitment, now=now, timeout_seconds=timeout),
    )
    logger.info("%s joined the game of %s", caller_id, initiator_id)


def reveal(
    store: GameRecordStore,
    *,
    caller_id: str,
    initiator_id: str,
    choice: str,
    secret: str,
    now: float,
) -> None:
    _require_open(store, initiator_id)
    record, completed = store.update(
        initiator_id,
        lambda record: apply_reveal(record, caller_id=caller_id, choice=choice, secret=secret),
    )
    if not completed:
        logger.info("%s revealed in the game of %s", caller_id, initiator_id)
        return
    store.archive(initiator_id)
    logger.info("game of %s resolved at %s: %s", initiator_id, now, record.outcome)


def abandon_game(
    store: GameRecordStore,
    *,
    caller_id: str,
    initiator_id: str,
    now: float,
) -> GameRecord:
    _require_open(store, initiator_id)
    store.update(initiator_id, lambda record: apply_abandon(record, caller_id=caller_id, now=now))
    record = store.archive(initiator_id)
    logger.info("game of %s abandoned by %s", initiator_id, caller_id)
    return record


def get_game(store: GameRecordStore, initiator_id: str) -> GameRecord | None:
    """The open game of ``initiator_id``, else their most recently completed one."""
    record = store.get(initiator_id)
    if record is not None:
        return record
    return store.get_completed(initiator_id)


def resolve_status(store: GameRecordStore, initiator_id: str) -> Outcome:
    record = get_game(store, initiator_id)
    if record is None:
        raise NotFound(f"no game for {initiator_id}")
    if record.state == "abandoned":
        raise WrongState(f"game of {initiator_id} was abandoned")
    if record.state != "resolved" or record.outcome is None:
        raise NotReady(f"game of {initiator_id} is {record.state}")
    return record.outcome


def _require_commitment(commitment: object) -> None:
    if not is_well_formed_commitment(commitment):
        raise InvalidCommitment("commitment must be a 64-character lowercase hex sha256 digest")


def _require_open(store: GameRecordStore, initiator_id: str) -> None:
    if store.get(initiator_id) is not None:
        return
    if store.get_completed(initiator_id) is not None:
        raise WrongState(f"game of {initiator_id} is already finished")
    raise NotFound(f"no game for {initiator_id}")
