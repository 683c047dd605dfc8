from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.request
from typing import Any
from urllib.parse import quote

from caller_identity import DEBUG_CALLER_HEADER, TlsFiles
from commit_reveal import compute_commitment, generate_salt
from protocol import Choice


class RemoteContractError(Exception):
    def __init__(self, code: str, message: str, status: int) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.status = status


def send_start(
    *,
    base_url: str,
    caller_id: str,
    choice: Choice,
    tls_files: TlsFiles | None = None,
) -> dict[str, Any]:
    salt = generate_salt()
    commitment = compute_commitment(choice=choice, secret=salt)
    response = _post_json(base_url + "/v1/games/start", {"commitment": commitment}, caller_id, tls_files=tls_files)
    # Caller must remember choice+salt locally in order to reveal.
    return {"response": response, "salt": salt, "commitment": commitment}


def send_join(
    *,
    base_url: str,
    caller_id: str,
    initiator_id: str,
    choice: Choice,
    tls_files: TlsFiles | None = None,
) -> dict[str, Any]:
    salt = generate_salt()
    commitment = compute_commitment(choice=choice, secret=salt)
    payload = {"initiator_id": initiator_id, "commitment": commitment}
    response = _post_json(base_url + "/v1/games/join", payload, caller_id, tls_files=tls_files)
    return {"response": response, "salt": salt, "commitment": commitment}


def send_reveal(
    *,
    base_url: str,
    caller_id: str,
    initiator_id: str,
    choice: Choice,
    salt: str,
    tls_files: TlsFiles | None = None,
) -> dict[str, Any]:
    payload = {"initiator_id": initiator_id, "choice": choice, "secret": salt}
    return _post_json(base_url + "/v1/games/reveal", payload, caller_id, tls_files=tls_files)


def send_abandon(
    *,
    base_url: str,
    caller_id: str,
    initiator_id: str,
    tls_files: TlsFiles | None = None,
) -> dict[str, Any]:
    return _post_json(base_url + "/v1/games/abandon", {"initiator_id": initiator_id}, caller_id, tls_files=tls_files)


def fetch_game(*, base_url: str, initiator_id: str, tls_files: TlsFiles | None = None) -> dict[str, Any]:
    return _get_json(f"{base_url}/v1/games/{quote(initiator_id, safe='')}", tls_files=tls_files)


def fetch_status(*, base_url: str, initiator_id: str, tls_files: TlsFiles | None = None) -> dict[str, Any]:
    return _get_json(f"{base_url}/v1/games/{quote(initiator_id, safe='')}/status", tls_files=tls_files)


def _post_json(url: str, payload: dict[str, Any], caller_id: str, *, tls_files: TlsFiles | None = None) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(url=url, data=data, method="POST")
    req.add_header("Content-Type", "application/json")
    if tls_files is None:
        # Dev mode: without mTLS the identity is passed explicitly.
        req.add_header(DEBUG_CALLER_HEADER, caller_id)
    return _send(req, tls_files)


def _get_json(url: str, *, tls_files: TlsFiles | None = None) -> dict[str, Any]:
    return _send(urllib.request.Request(url=url, method="GET"), tls_files)


def _send(req: urllib.request.Request, tls_files: TlsFiles | None) -> dict[str, Any]:
    ssl_context: ssl.SSLContext | None = None
    if tls_files is not None:
        ssl_context = tls_files.client_context()
    try:
        with urllib.request.urlopen(req, timeout=10, context=ssl_context) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="replace")
        try:
            body = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            body = {}
        raise RemoteContractError(
            str(body.get("error", "http_error")),
            str(body.get("message", raw or exc.reason)),
            exc.code,
        ) from None
