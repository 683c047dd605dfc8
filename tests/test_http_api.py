from __future__ import annotations

import json
import sys
import threading
import urllib.error
import urllib.request
from pathlib import Path
from typing import Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "src" / "app"
sys.path.insert(0, str(APP_DIR))

from cli import main  # type: ignore[import-not-found]  # noqa: E402
from contract_config import ContractConfig  # type: ignore[import-not-found]  # noqa: E402
from game_store import GameRecordStore, JsonFileStorage  # type: ignore[import-not-found]  # noqa: E402
from http_api import ServerState, make_server  # type: ignore[import-not-found]  # noqa: E402
from pending_reveals import PendingReveals  # type: ignore[import-not-found]  # noqa: E402
from rps_client import (  # type: ignore[import-not-found]  # noqa: E402
    RemoteContractError,
    fetch_game,
    fetch_status,
    send_abandon,
    send_join,
    send_reveal,
    send_start,
)

ALICE = "spiffe://a.domain/alice"
BOB = "spiffe://b.domain/bob"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def base_url(tmp_path: Path, clock: FakeClock) -> Iterator[str]:
    config = ContractConfig(state_path=str(tmp_path / "state.json"), join_timeout_seconds=30.0, debug_identity=True)
    state = ServerState(
        config=config,
        store=GameRecordStore(JsonFileStorage.load(config.state_path)),
        clock=clock,
    )
    httpd = make_server(host="127.0.0.1", port=0, state=state)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


def test_health(base_url: str) -> None:
    with urllib.request.urlopen(base_url + "/health", timeout=5) as resp:
        assert json.loads(resp.read()) == {"status": "ok"}


def test_full_game_over_http(base_url: str) -> None:
    started = send_start(base_url=base_url, caller_id=ALICE, choice="rock")
    assert started["response"]["game"]["state"] == "awaiting_opponent"
    assert started["response"]["game"]["primary_commitment"] == started["commitment"]

    joined = send_join(base_url=base_url, caller_id=BOB, initiator_id=ALICE, choice="scissors")
    assert joined["response"]["status"] == "joined"

    with pytest.raises(RemoteContractError) as excinfo:
        fetch_status(base_url=base_url, initiator_id=ALICE)
    assert excinfo.value.code == "not_ready"
    assert excinfo.value.status == 409

    first = send_reveal(base_url=base_url, caller_id=ALICE, initiator_id=ALICE, choice="rock", salt=started["salt"])
    assert first["game"]["state"] == "awaiting_reveal"
    assert first["game"]["revealed_choice_1"] is None
    assert first["game"]["initiator_revealed"] is True
    assert "sealed_choice_1" not in first["game"]
    assert fetch_game(base_url=base_url, initiator_id=ALICE)["game"]["revealed_choice_1"] is None

    second = send_reveal(base_url=base_url, caller_id=BOB, initiator_id=ALICE, choice="scissors", salt=joined["salt"])
    assert second["game"]["state"] == "resolved"

    status = fetch_status(base_url=base_url, initiator_id=ALICE)
    assert status["outcome"] == "p1_win"
    assert status["winner"] == ALICE

    game = fetch_game(base_url=base_url, initiator_id=ALICE)["game"]
    assert game["revealed_choice_2"] == "scissors"


def test_errors_are_typed(base_url: str) -> None:
    started = send_start(base_url=base_url, caller_id=ALICE, choice="paper")

    with pytest.raises(RemoteContractError) as excinfo:
        send_start(base_url=base_url, caller_id=ALICE, choice="rock")
    assert excinfo.value.code == "already_active"

    with pytest.raises(RemoteContractError) as excinfo:
        send_join(base_url=base_url, caller_id=ALICE, initiator_id=ALICE, choice="rock")
    assert excinfo.value.code == "self_join"

    send_join(base_url=base_url, caller_id=BOB, initiator_id=ALICE, choice="rock")

    with pytest.raises(RemoteContractError) as excinfo:
        send_reveal(base_url=base_url, caller_id=ALICE, initiator_id=ALICE, choice="rock", salt=started["salt"])
    assert excinfo.value.code == "commitment_mismatch"
    assert excinfo.value.status == 403

    game = fetch_game(base_url=base_url, initiator_id=ALICE)["game"]
    assert game["revealed_choice_1"] is None

    with pytest.raises(RemoteContractError) as excinfo:
        fetch_game(base_url=base_url, initiator_id=BOB)
    assert excinfo.value.code == "not_found"


def test_abandon_after_timeout(base_url: str, clock: FakeClock) -> None:
    send_start(base_url=base_url, caller_id=ALICE, choice="rock")

    with pytest.raises(RemoteContractError) as excinfo:
        send_abandon(base_url=base_url, caller_id=BOB, initiator_id=ALICE)
    assert excinfo.value.code == "too_early"

    clock.now += 30.0
    result = send_abandon(base_url=base_url, caller_id=BOB, initiator_id=ALICE)
    assert result["game"]["state"] == "abandoned"


def test_missing_identity_rejected(base_url: str) -> None:
    req = urllib.request.Request(
        base_url + "/v1/games/start",
        data=json.dumps({"commitment": "0" * 64}).encode("utf-8"),
        method="POST",
    )
    req.add_header("Content-Type", "application/json")
    with pytest.raises(urllib.error.HTTPError) as excinfo:
        urllib.request.urlopen(req, timeout=5)
    assert excinfo.value.code == 401


def test_undecodable_body_is_invalid_json(base_url: str) -> None:
    req = urllib.request.Request(base_url + "/v1/games/start", data=b"\xff\xfe", method="POST")
    req.add_header("Content-Type", "application/json")
    req.add_header("X-Debug-Caller-Id", ALICE)
    with pytest.raises(urllib.error.HTTPError) as excinfo:
        urllib.request.urlopen(req, timeout=5)
    assert excinfo.value.code == 400
    assert json.loads(excinfo.value.read())["error"] == "invalid_json"


def test_cli_commit_then_reveal(base_url: str, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    pending_path = str(tmp_path / "pending.json")
    common = ["--url", base_url, "--pending", pending_path]

    assert main(["start", *common, "--caller-id", ALICE, "--move", "rock"]) == 0
    assert main(["join", *common, "--caller-id", BOB, "--initiator", ALICE, "--move", "scissors"]) == 0

    pending = PendingReveals.load(pending_path)
    assert pending.get(ALICE, ALICE).choice == "rock"  # type: ignore[union-attr]
    assert pending.get(BOB, ALICE).choice == "scissors"  # type: ignore[union-attr]

    assert main(["reveal", *common, "--caller-id", ALICE]) == 0
    assert fetch_game(base_url=base_url, initiator_id=ALICE)["game"]["state"] == "awaiting_reveal"
    assert main(["reveal", *common, "--caller-id", BOB, "--initiator", ALICE]) == 0

    game = fetch_game(base_url=base_url, initiator_id=ALICE)["game"]
    assert game["state"] == "resolved"
    assert game["outcome"] == "p1_win"

    pending = PendingReveals.load(pending_path)
    assert pending.get(ALICE, ALICE) is None
    assert pending.get(BOB, ALICE) is None

    capsys.readouterr()
    assert main(["status", "--url", base_url, "--initiator", ALICE]) == 0
    assert "p1_win" in capsys.readouterr().out
