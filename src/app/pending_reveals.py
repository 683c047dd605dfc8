from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path


@dataclass
class PendingReveal:
    choice: str
    salt: str
    commitment: str


@dataclass
class PendingReveals:
    """Choice and salt of every game this player has committed to but not revealed.

    Keyed by ``"<caller_id>|<initiator_id>"`` so one file can serve several
    local identities.
    """

    _entries: dict[str, PendingReveal] = field(default_factory=dict)
    _path: Path | None = None

    @classmethod
    def load(cls, path: str | Path) -> "PendingReveals":
        p = Path(path)
        if not p.exists():
            return cls(_path=p)
        data = json.loads(p.read_text(encoding="utf-8"))
        entries: dict[str, PendingReveal] = {}
        for key, entry in data.get("pending", {}).items():
            if isinstance(entry, dict):
                entries[key] = PendingReveal(
                    choice=str(entry.get("choice", "")),
                    salt=str(entry.get("salt", "")),
                    commitment=str(entry.get("commitment", "")),
                )
        return cls(_entries=entries, _path=p)

    def save(self) -> None:
        if self._path is None:
            return
        payload = {"pending": {key: asdict(entry) for key, entry in self._entries.items()}}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def remember(self, caller_id: str, initiator_id: str, *, choice: str, salt: str, commitment: str) -> None:
        self._entries[_key(caller_id, initiator_id)] = PendingReveal(choice=choice, salt=salt, commitment=commitment)
        self.save()

    def get(self, caller_id: str, initiator_id: str) -> PendingReveal | None:
        return self._entries.get(_key(caller_id, initiator_id))

    def forget(self, caller_id: str, initiator_id: str) -> None:
        if self._entries.pop(_key(caller_id, initiator_id), None) is not None:
            self.save()

    def format_table(self) -> str:
        if not self._entries:
            return "(nothing to reveal)"

        lines: list[str] = []
        header = f"{'caller|initiator':60}  {'commitment':>16}"
        lines.append(header)
        lines.append("-" * len(header))
        for key in sorted(self._entries.keys()):
            lines.append(f"{key:60}  {self._entries[key].commitment[:16]:>16}")
        return "\n".join(lines)


def _key(caller_id: str, initiator_id: str) -> str:
    return f"{caller_id}|{initiator_id}"
