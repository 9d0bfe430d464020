"""
Replication targets: where drained sync-log entries are applied.
"""

import json
import re
from pathlib import Path
from typing import Protocol

from apptbook.models import Appointment
from apptbook.models import ReplicationError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9@._-]")


class ReplicationTarget(Protocol):
    """What a drain needs from the remote side."""

    def put(self, uid: str, appt: Appointment):
        """Create or overwrite the remote copy of ``appt``."""
        ...

    def remove(self, uid: str):
        """Delete the remote copy; a missing copy is not an error."""
        ...

    def clear(self):
        """Delete every remote copy (before a wholesale overwrite)."""
        ...


class DirectoryTarget:
    """Mirrors appointments as one JSON file per uid in a local directory."""

    def __init__(self, directory: Path):
        self.directory = directory

    def _path(self, uid: str) -> Path:
        return self.directory / (_UNSAFE_CHARS.sub("_", uid) + ".json")

    def put(self, uid: str, appt: Appointment):
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._path(uid).write_text(json.dumps(_to_json(uid, appt), indent=2, sort_keys=True))
        except OSError as e:
            raise ReplicationError(f"Cannot write {uid}: {e}") from e

    def remove(self, uid: str):
        try:
            self._path(uid).unlink(missing_ok=True)
        except OSError as e:
            raise ReplicationError(f"Cannot remove {uid}: {e}") from e

    def clear(self):
        if not self.directory.exists():
            return
        try:
            for path in self.directory.glob("*.json"):
                path.unlink()
        except OSError as e:
            raise ReplicationError(f"Cannot clear {self.directory}: {e}") from e

    def uids(self) -> list[str]:
        """Uids currently mirrored, read back from the files."""
        if not self.directory.exists():
            return []
        return sorted(
            json.loads(path.read_text())["uid"] for path in self.directory.glob("*.json")
        )


def _to_json(uid: str, appt: Appointment) -> dict:
    return {
        "uid": uid,
        "id": appt.id,
        "date": appt.date.isoformat(),
        "text": appt.text,
        "duration": appt.duration,
        "frequency": appt.frequency,
        "times": appt.times,
        "skip_list": sorted(appt.skip_list),
        "category": appt.category,
        "todo": appt.todo,
        "next_todo": appt.next_todo.isoformat() if appt.next_todo else None,
    }
