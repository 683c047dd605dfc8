from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace

from caller_identity import TlsFiles
from commit_reveal import compute_commitment, generate_salt
from contract_config import default_pending_path, get_config
from game_store import GameRecordStore, JsonFileStorage
from http_api import ServerState, run_server
from pending_reveals import PendingReveals
from protocol import Choice, is_valid_choice
from rps_client import (
    RemoteContractError,
    fetch_game,
    fetch_status,
    send_abandon,
    send_join,
    send_reveal,
    send_start,
)

logger = logging.getLogger("rps")


def main(argv: list[str] | None = None) -> int:
    config = get_config()
    parser = argparse.ArgumentParser(prog="rps-contract")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Host the contract over HTTP")
    serve.add_argument("--bind", default=config.bind)
    serve.add_argument("--state", default=config.state_path, help="JSON file holding contract state")
    serve.add_argument("--join-timeout", type=float, default=config.join_timeout_seconds)
    serve.add_argument("--reveal-timeout", type=float, default=config.reveal_timeout_seconds)
    serve.add_argument(
        "--debug-identity",
        action="store_true",
        default=config.debug_identity,
        help="Without mTLS, trust the X-Debug-Caller-Id header",
    )
    _add_tls_args(serve)

    commit = sub.add_parser("commit", help="Print a commitment for a move (offline)")
    commit.add_argument("--move", required=True)
    commit.add_argument("--secret", default=None, help="defaults to a fresh random secret")

    start = sub.add_parser("start", help="Start a game with a committed move")
    _add_client_args(start)
    start.add_argument("--move", default=None, help="rock|paper|scissors (if not provided, will prompt)")

    join = sub.add_parser("join", help="Join another player's game with a committed move")
    _add_client_args(join)
    join.add_argument("--initiator", required=True, help="Identity of the player who started the game")
    join.add_argument("--move", default=None, help="rock|paper|scissors (if not provided, will prompt)")

    reveal = sub.add_parser("reveal", help="Reveal the move remembered for a game")
    _add_client_args(reveal)
    reveal.add_argument("--initiator", default=None, help="defaults to --caller-id")

    abandon = sub.add_parser("abandon", help="Cancel an unjoined game or claim a timed-out one")
    _add_client_args(abandon)
    abandon.add_argument("--initiator", default=None, help="defaults to --caller-id")

    show = sub.add_parser("show", help="Print a game record")
    _add_client_args(show, needs_caller=False)
    show.add_argument("--initiator", required=True)

    status = sub.add_parser("status", help="Print the outcome of a game")
    _add_client_args(status, needs_caller=False)
    status.add_argument("--initiator", required=True)

    pending = sub.add_parser("pending", help="List games waiting for your reveal")
    pending.add_argument("--pending", default=default_pending_path())

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.cmd == "serve":
        return _serve(args, config)
    if args.cmd == "commit":
        move = _normalize_move(args.move)
        secret = args.secret or generate_salt()
        print(json.dumps({"move": move, "secret": secret, "commitment": compute_commitment(choice=move, secret=secret)}))
        return 0
    if args.cmd == "pending":
        print(PendingReveals.load(args.pending).format_table())
        return 0

    try:
        return _run_client(args)
    except RemoteContractError as exc:
        print(f"❌ {exc.code}: {exc.message}")
        return 1


def _serve(args: argparse.Namespace, config) -> int:
    host, port = _parse_bind(args.bind)
    tls_files = _tls_files(args)
    server_config = replace(
        config,
        state_path=args.state,
        bind=args.bind,
        join_timeout_seconds=args.join_timeout,
        reveal_timeout_seconds=args.reveal_timeout,
        debug_identity=args.debug_identity,
    )
    if tls_files is None and not server_config.debug_identity:
        raise SystemExit("serve needs --mtls --cert-dir or --debug-identity to identify callers")

    state = ServerState(config=server_config, store=GameRecordStore(JsonFileStorage.load(args.state)))
    logger.info("contract state in %s", args.state)
    run_server(
        host=host,
        port=port,
        state=state,
        ssl_context=tls_files.server_context() if tls_files is not None else None,
    )
    return 0


def _run_client(args: argparse.Namespace) -> int:
    tls_files = _tls_files(args)
    base_url = args.url.rstrip("/")

    if args.cmd == "show":
        print(json.dumps(fetch_game(base_url=base_url, initiator_id=args.initiator, tls_files=tls_files), indent=2))
        return 0
    if args.cmd == "status":
        result = fetch_status(base_url=base_url, initiator_id=args.initiator, tls_files=tls_files)
        _show_outcome(result)
        return 0

    pending = PendingReveals.load(args.pending)

    if args.cmd == "start":
        move = _normalize_move(args.move) if args.move else _prompt_for_move()
        result = send_start(base_url=base_url, caller_id=args.caller_id, choice=move, tls_files=tls_files)
        pending.remember(args.caller_id, args.caller_id, choice=move, salt=result["salt"], commitment=result["commitment"])
        print(f"🎮 Game started. Tell your opponent to join with --initiator {args.caller_id}")
        return 0

    if args.cmd == "join":
        move = _normalize_move(args.move) if args.move else _prompt_for_move()
        result = send_join(
            base_url=base_url,
            caller_id=args.caller_id,
            initiator_id=args.initiator,
            choice=move,
            tls_files=tls_files,
        )
        pending.remember(args.caller_id, args.initiator, choice=move, salt=result["salt"], commitment=result["commitment"])
        print(f"🎮 Joined the game of {args.initiator}. Reveal once both moves are committed.")
        return 0

    initiator = args.initiator or args.caller_id

    if args.cmd == "reveal":
        entry = pending.get(args.caller_id, initiator)
        if entry is None:
            raise SystemExit(f"no remembered move for {args.caller_id} in the game of {initiator}")
        response = send_reveal(
            base_url=base_url,
            caller_id=args.caller_id,
            initiator_id=initiator,
            choice=entry.choice,  # type: ignore[arg-type]
            salt=entry.salt,
            tls_files=tls_files,
        )
        pending.forget(args.caller_id, initiator)
        game = response.get("game") or {}
        if game.get("state") == "resolved":
            _show_outcome({"initiator_id": initiator, "outcome": game.get("outcome"), "winner": game.get("winner")})
        else:
            print("Revealed. Waiting for the other player to reveal.")
        return 0

    if args.cmd == "abandon":
        response = send_abandon(base_url=base_url, caller_id=args.caller_id, initiator_id=initiator, tls_files=tls_files)
        pending.forget(args.caller_id, initiator)
        print(f"Game of {initiator} is {response['game']['state']}")
        return 0

    raise SystemExit("unhandled command")


def _add_tls_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--mtls", action="store_true", help="Enable mTLS using files from --cert-dir")
    p.add_argument("--cert-dir", default=None, help="Directory containing cert.pem, key.pem, bundle.pem")


def _add_client_args(p: argparse.ArgumentParser, *, needs_caller: bool = True) -> None:
    p.add_argument("--url", required=True, help="Contract base URL, e.g. https://1.2.3.4:9002")
    if needs_caller:
        p.add_argument("--caller-id", required=True, help="Your identity (must match your certificate with --mtls)")
        p.add_argument("--pending", default=default_pending_path())
    _add_tls_args(p)


def _tls_files(args: argparse.Namespace) -> TlsFiles | None:
    if not getattr(args, "mtls", False):
        return None
    if not getattr(args, "cert_dir", None):
        raise SystemExit("--mtls requires --cert-dir")
    return TlsFiles.from_cert_dir(args.cert_dir)


def _parse_bind(bind: str) -> tuple[str, int]:
    if ":" not in bind:
        raise ValueError("--bind must be HOST:PORT")
    host, port_s = bind.rsplit(":", 1)
    return host, int(port_s)


def _normalize_move(value: str) -> Choice:
    move = value.strip().lower()
    if not is_valid_choice(move):
        raise SystemExit("--move must be rock|paper|scissors")
    return move  # type: ignore[return-value]


def _prompt_for_move() -> Choice:
    """Interactive prompt for a move."""
    while True:
        choice = input("Choose your move - (r)ock, (p)aper, (s)cissors: ").strip().lower()
        if choice in ("r", "rock"):
            return "rock"
        if choice in ("p", "paper"):
            return "paper"
        if choice in ("s", "scissors"):
            return "scissors"
        print("❌ Invalid choice. Please enter r, p, or s.")


def _show_outcome(result: dict) -> None:
    outcome = result.get("outcome")
    print(f"\n{'='*60}")
    print(f"🏁 Game of {result.get('initiator_id')}")
    if outcome == "draw":
        print("   Result: 🤝 DRAW")
    else:
        print(f"   Result: {outcome} (winner: {result.get('winner')})")
    print(f"{'='*60}\n")


if __name__ == "__main__":
    raise SystemExit(main())
