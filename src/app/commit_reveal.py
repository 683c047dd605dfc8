from __future__ import annotations

import base64
import hashlib
import re
import secrets
from typing import Final

SCHEME_ID: Final[str] = "rps-commit-v1"

_COMMITMENT_RE: Final = re.compile(r"[0-9a-f]{64}")


def generate_salt(num_bytes: int = 16) -> str:
    # base64url without padding keeps the secret shell- and JSON-friendly.
    raw = secrets.token_bytes(num_bytes)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def canonical_string(*, choice: str, secret: str) -> str:
    return f"{SCHEME_ID}|choice={choice}|secret={secret}"


def compute_commitment(*, choice: str, secret: str) -> str:
    payload = canonical_string(choice=choice, secret=secret).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_commitment(*, expected_commitment: str, choice: str, secret: str) -> bool:
    computed = compute_commitment(choice=choice, secret=secret)
    return secrets.compare_digest(expected_commitment, computed)


def is_well_formed_commitment(value: object) -> bool:
    return isinstance(value, str) and _COMMITMENT_RE.fullmatch(value) is not None
