from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Final, Protocol, TypeVar

from contract_errors import AlreadyActive, NotFound, WrongState
from game_record import GameRecord

logger = logging.getLogger(__name__)

ACTIVE_GAMES: Final[str] = "active_games"
COMPLETED_GAMES: Final[str] = "completed_games"

T = TypeVar("T")


class KeyValueStorage(Protocol):
    """The host's durable key-value primitive: string values in named collections."""

    def get(self, collection: str, key: str) -> str | None: ...

    def put(self, collection: str, key: str, value: str) -> None: ...

    def remove(self, collection: str, key: str) -> None: ...


@dataclass
class MemoryStorage:
    _data: dict[str, dict[str, str]] = field(default_factory=dict)

    def get(self, collection: str, key: str) -> str | None:
        return self._data.get(collection, {}).get(key)

    def put(self, collection: str, key: str, value: str) -> None:
        self._data.setdefault(collection, {})[key] = value

    def remove(self, collection: str, key: str) -> None:
        self._data.get(collection, {}).pop(key, None)


@dataclass
class JsonFileStorage:
    """Whole-state JSON file, rewritten on every mutation."""

    _data: dict[str, dict[str, str]] = field(default_factory=dict)
    _path: Path | None = None

    @classmethod
    def load(cls, path: str | Path) -> "JsonFileStorage":
        p = Path(path)
        if not p.exists():
            return cls(_path=p)
        data = json.loads(p.read_text(encoding="utf-8"))
        collections: dict[str, dict[str, str]] = {}
        for name, entries in data.get("collections", {}).items():
            if isinstance(entries, dict):
                collections[name] = {str(k): str(v) for k, v in entries.items()}
        return cls(_data=collections, _path=p)

    def save(self) -> None:
        if self._path is None:
            return
        payload = {"collections": self._data}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, collection: str, key: str) -> str | None:
        return self._data.get(collection, {}).get(key)

    def put(self, collection: str, key: str, value: str) -> None:
        self._data.setdefault(collection, {})[key] = value
        self.save()

    def remove(self, collection: str, key: str) -> None:
        if self._data.get(collection, {}).pop(key, None) is not None:
            self.save()


class GameRecordStore:
    """Owns every game record: active ones, and the latest completed one per initiator.

    Records are deserialized on each read, so callers always work on a private
    copy and nothing reaches storage except through ``create``/``update``/``archive``.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    def create(self, initiator_id: str, record: GameRecord) -> GameRecord:
        if self._storage.get(ACTIVE_GAMES, initiator_id) is not None:
            raise AlreadyActive(f"{initiator_id} already has an open game")
        self._write(ACTIVE_GAMES, initiator_id, record)
        return record

    def get(self, initiator_id: str) -> GameRecord | None:
        return self._read(ACTIVE_GAMES, initiator_id)

    def get_completed(self, initiator_id: str) -> GameRecord | None:
        return self._read(COMPLETED_GAMES, initiator_id)

    def update(self, initiator_id: str, fn: Callable[[GameRecord], T]) -> tuple[GameRecord, T]:
        """Apply ``fn`` to the active record and persist it.

        If ``fn`` raises, the exception propagates and storage is not touched.
        """
        record = self._read(ACTIVE_GAMES, initiator_id)
        if record is None:
            raise NotFound(f"no open game for {initiator_id}")
        result = fn(record)
        self._write(ACTIVE_GAMES, initiator_id, record)
        return record, result

    def archive(self, initiator_id: str) -> GameRecord:
        record = self._read(ACTIVE_GAMES, initiator_id)
        if record is None:
            raise NotFound(f"no open game for {initiator_id}")
        if not record.is_terminal:
            raise WrongState(f"cannot archive game of {initiator_id} in state {record.state}")
        self._write(COMPLETED_GAMES, initiator_id, record)
        self._storage.remove(ACTIVE_GAMES, initiator_id)
        logger.debug("archived game of %s (%s)", initiator_id, record.state)
        return record

    def _read(self, collection: str, key: str) -> GameRecord | None:
        raw = self._storage.get(collection, key)
        if raw is None:
            return None
        return GameRecord.from_dict(json.loads(raw))

    def _write(self, collection: str, key: str, record: GameRecord) -> None:
        self._storage.put(collection, key, json.dumps(record.to_dict(), sort_keys=True))
