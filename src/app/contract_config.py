from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_TIMEOUT_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class ContractConfig:
    state_path: str
    join_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    reveal_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    bind: str = "0.0.0.0:9002"
    # Accept the caller identity from a plain header when mTLS is off.
    debug_identity: bool = False


def default_state_path() -> str:
    home = os.path.expanduser("~")
    return os.path.join(home, ".rps", "contract_state.json")


def default_pending_path() -> str:
    home = os.path.expanduser("~")
    return os.path.join(home, ".rps", "pending_reveals.json")


@lru_cache
def get_config() -> ContractConfig:
    return ContractConfig(
        state_path=os.environ.get("RPS_STATE_PATH") or default_state_path(),
        join_timeout_seconds=float(os.environ.get("RPS_JOIN_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        reveal_timeout_seconds=float(os.environ.get("RPS_REVEAL_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        bind=os.environ.get("RPS_BIND", "0.0.0.0:9002"),
        debug_identity=os.environ.get("RPS_DEBUG_IDENTITY", "0").lower() in ("1", "true", "yes"),
    )
