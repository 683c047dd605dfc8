from __future__ import annotations

from http import HTTPStatus


class ContractError(Exception):
    """Base class for every rejected contract call.

    ``code`` is the stable machine-readable identifier returned to callers;
    ``status`` is the HTTP status the reference host answers with.
    """

    code = "contract_error"
    status = HTTPStatus.BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AlreadyActive(ContractError):
    code = "already_active"
    status = HTTPStatus.CONFLICT


class NotFound(ContractError):
    code = "not_found"
    status = HTTPStatus.NOT_FOUND


class WrongState(ContractError):
    code = "wrong_state"
    status = HTTPStatus.CONFLICT


class SelfJoin(ContractError):
    code = "self_join"
    status = HTTPStatus.FORBIDDEN


class NotParticipant(ContractError):
    code = "not_participant"
    status = HTTPStatus.FORBIDDEN


class CommitmentMismatch(ContractError):
    code = "commitment_mismatch"
    status = HTTPStatus.FORBIDDEN


class CommitmentReused(ContractError):
    code = "commitment_reused"
    status = HTTPStatus.CONFLICT


class InvalidCommitment(ContractError):
    code = "invalid_commitment"


class AlreadyRevealed(ContractError):
    code = "already_revealed"
    status = HTTPStatus.CONFLICT


class InvalidChoice(ContractError):
    code = "invalid_choice"


class NotReady(ContractError):
    code = "not_ready"
    status = HTTPStatus.CONFLICT


class TooEarly(ContractError):
    code = "too_early"
    status = HTTPStatus.CONFLICT
