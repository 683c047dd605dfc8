from __future__ import annotations

import json
import logging
import ssl
import threading
import time
from dataclasses import dataclass, field
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import unquote

import contract
from caller_identity import DEBUG_CALLER_HEADER, caller_id_from_peer_cert
from contract_config import ContractConfig
from contract_errors import ContractError
from game_store import GameRecordStore, MemoryStorage

logger = logging.getLogger(__name__)


@dataclass
class ServerState:
    config: ContractConfig
    store: GameRecordStore = field(default_factory=lambda: GameRecordStore(MemoryStorage()))
    clock: Callable[[], float] = time.time
    mtls: bool = False
    # Contract calls are applied one at a time, in arrival order.
    lock: threading.Lock = field(default_factory=threading.Lock)


def make_server(
    *,
    host: str,
    port: int,
    state: ServerState,
    ssl_context: ssl.SSLContext | None = None,
) -> ThreadingHTTPServer:
    httpd = ThreadingHTTPServer((host, port), _make_handler(state))
    if ssl_context is not None:
        httpd.socket = ssl_context.wrap_socket(httpd.socket, server_side=True)
    state.mtls = ssl_context is not None
    return httpd


def run_server(
    *,
    host: str,
    port: int,
    state: ServerState,
    ssl_context: ssl.SSLContext | None = None,
) -> None:
    httpd = make_server(host=host, port=port, state=state, ssl_context=ssl_context)
    scheme = "https" if ssl_context is not None else "http"
    logger.info("Listening on %s://%s:%s", scheme, host, httpd.server_address[1])
    try:
        httpd.serve_forever()
    finally:
        httpd.server_close()


def _make_handler(state: ServerState):
    class Handler(BaseHTTPRequestHandler):
        server_version = "rps-contract/0.1"

        def do_GET(self) -> None:  # noqa: N802
            try:
                if self.path == "/health":
                    self._json_ok({"status": "ok"})
                    return
                parts = [unquote(p) for p in self.path.split("?", 1)[0].strip("/").split("/")]
                if len(parts) == 3 and parts[:2] == ["v1", "games"]:
                    self._handle_get_game(parts[2])
                    return
                if len(parts) == 4 and parts[:2] == ["v1", "games"] and parts[3] == "status":
                    self._handle_status(parts[2])
                    return
                self._json_error(HTTPStatus.NOT_FOUND, "not_found", "unknown path")
            except ContractError as exc:
                self._json_error(exc.status, exc.code, exc.message)
            except Exception as exc:  # keep server alive
                logger.exception("GET %s failed", self.path)
                self._json_error(HTTPStatus.INTERNAL_SERVER_ERROR, "server_error", f"{type(exc).__name__}: {exc}")

        def do_POST(self) -> None:  # noqa: N802
            try:
                length = int(self.headers.get("Content-Length", "0"))
                raw = self.rfile.read(length) if length > 0 else b"{}"
                body = json.loads(raw.decode("utf-8")) if raw else {}
                if not isinstance(body, dict):
                    self._json_error(HTTPStatus.BAD_REQUEST, "invalid_request", "body must be a JSON object")
                    return

                handlers = {
                    "/v1/games/start": self._handle_start,
                    "/v1/games/join": self._handle_join,
                    "/v1/games/reveal": self._handle_reveal,
                    "/v1/games/abandon": self._handle_abandon,
                }
                handler = handlers.get(self.path)
                if handler is None:
                    self._json_error(HTTPStatus.NOT_FOUND, "not_found", "unknown path")
                    return

                caller_id = self._caller_id()
                if caller_id is None:
                    self._json_error(HTTPStatus.UNAUTHORIZED, "unauthenticated", "caller identity required")
                    return
                handler(caller_id, body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_json", "invalid JSON")
            except ContractError as exc:
                logger.info("%s rejected: %s (%s)", self.path, exc.code, exc.message)
                self._json_error(exc.status, exc.code, exc.message)
            except Exception as exc:  # keep server alive
                logger.exception("POST %s failed", self.path)
                self._json_error(HTTPStatus.INTERNAL_SERVER_ERROR, "server_error", f"{type(exc).__name__}: {exc}")

        # --- Identity ---
        def _caller_id(self) -> str | None:
            if state.mtls:
                if not isinstance(self.connection, ssl.SSLSocket):
                    return None
                return caller_id_from_peer_cert(self.connection)
            if state.config.debug_identity:
                return self.headers.get(DEBUG_CALLER_HEADER) or None
            return None

        # --- Handlers ---
        def _handle_start(self, caller_id: str, body: dict[str, Any]) -> None:
            commitment = body.get("commitment")
            if not isinstance(commitment, str):
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_request", "missing/invalid fields")
                return
            with state.lock:
                record = contract.start_game(
                    state.store, caller_id=caller_id, commitment=commitment, now=state.clock(), config=state.config
                )
            self._json_ok({"game": record.public_dict()})

        def _handle_join(self, caller_id: str, body: dict[str, Any]) -> None:
            initiator_id = body.get("initiator_id")
            commitment = body.get("commitment")
            if not isinstance(initiator_id, str) or not isinstance(commitment, str):
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_request", "missing/invalid fields")
                return
            with state.lock:
                contract.join_game(
                    state.store,
                    caller_id=caller_id,
                    initiator_id=initiator_id,
                    commitment=commitment,
                    now=state.clock(),
                    config=state.config,
                )
            self._json_ok({"initiator_id": initiator_id, "status": "joined"})

        def _handle_reveal(self, caller_id: str, body: dict[str, Any]) -> None:
            initiator_id = body.get("initiator_id")
            choice = body.get("choice")
            secret = body.get("secret")
            if not isinstance(initiator_id, str) or not isinstance(choice, str) or not isinstance(secret, str):
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_request", "missing/invalid fields")
                return
            with state.lock:
                contract.reveal(
                    state.store,
                    caller_id=caller_id,
                    initiator_id=initiator_id,
                    choice=choice,
                    secret=secret,
                    now=state.clock(),
                )
                record = contract.get_game(state.store, initiator_id)
            self._json_ok({"initiator_id": initiator_id, "status": "revealed", "game": record.public_dict()})

        def _handle_abandon(self, caller_id: str, body: dict[str, Any]) -> None:
            initiator_id = body.get("initiator_id")
            if not isinstance(initiator_id, str):
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_request", "missing/invalid fields")
                return
            with state.lock:
                record = contract.abandon_game(
                    state.store, caller_id=caller_id, initiator_id=initiator_id, now=state.clock()
                )
            self._json_ok({"game": record.public_dict()})

        def _handle_get_game(self, initiator_id: str) -> None:
            with state.lock:
                record = contract.get_game(state.store, initiator_id)
            if record is None:
                self._json_error(HTTPStatus.NOT_FOUND, "not_found", f"no game for {initiator_id}")
                return
            self._json_ok({"game": record.public_dict()})

        def _handle_status(self, initiator_id: str) -> None:
            with state.lock:
                outcome = contract.resolve_status(state.store, initiator_id)
                record = contract.get_game(state.store, initiator_id)
            self._json_ok({"initiator_id": initiator_id, "outcome": outcome, "winner": record.winner if record else None})

        # --- Response helpers ---
        def _json_ok(self, payload: dict[str, Any]) -> None:
            self._send_json(HTTPStatus.OK, payload)

        def _json_error(self, status: HTTPStatus, code: str, message: str) -> None:
            self._send_json(status, {"error": code, "message": message})

        def _send_json(self, status: HTTPStatus, payload: dict[str, Any]) -> None:
            data = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.info("%s %s %s - %s", self.address_string(), self.command, self.path, format % args)

    return Handler
