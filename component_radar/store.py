"""Scan history persistence.

``ResultStore`` keeps finished scan sessions in a key-value storage blob and
holds at most ``capacity`` of them. Sessions are aged by when they were
captured (``started_at``), not by when they were saved, so re-saving an old
session never makes it "new". A separate pointer tracks the most recently
saved session and is repaired whenever that session disappears.

Storage backends implement ``get(key)`` / ``set(key, blob)``:

- ``JsonFileStorage``: one JSON document on disk
  (``.component-radar/store.json`` by default), written atomically with a
  ``.bak`` copy of the previous version.
- ``MemoryStorage``: a dict, for tests and embedding.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .errors import StoreError
from .models import ScanSession

logger = logging.getLogger(__name__)

STORE_KEY = "component-usage-explorer-db"
CURRENT_VERSION = 1
DEFAULT_CAPACITY = 50


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        # hand out copies so callers cannot mutate stored blobs in place
        return json.loads(json.dumps(value)) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.loads(json.dumps(value))


def get_store_path(project_dir: Path | None = None) -> Path:
    """Get the store file path for a working directory."""
    base = project_dir or Path.cwd()
    return base / ".component-radar" / "store.json"


class JsonFileStorage:
    """Key-value storage backed by a single JSON file."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else get_store_path()

    def _read(self) -> dict:
        p = self.path
        if not p.exists():
            return {}
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            backup = p.with_suffix(".json.bak")
            if backup.exists():
                try:
                    logger.warning("Store file %s unreadable (%s); using backup", p, e)
                    return json.loads(backup.read_text(encoding="utf-8"))
                except (json.JSONDecodeError, UnicodeDecodeError):
                    pass
            logger.warning("Store file %s corrupted (%s); starting fresh", p, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        p = self.path
        p.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2) + "\n"

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=str(p.parent), suffix=".tmp")
            try:
                os.write(fd, content.encode("utf-8"))
                os.fsync(fd)
            finally:
                os.close(fd)

            if p.exists():
                try:
                    shutil.copy2(str(p), str(p.with_suffix(".json.bak")))
                except OSError:
                    logger.debug("Could not back up %s", p)

            os.replace(tmp_path, str(p))
        except OSError:
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            p.write_text(content, encoding="utf-8")

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)


def _empty_db() -> dict:
    return {
        "version": CURRENT_VERSION,
        "sessions": {},
        "last_session_id": None,
    }


class ResultStore:
    """Bounded, keyed store of finished scan sessions."""

    def __init__(self, storage: KeyValueStorage, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise StoreError(f"capacity must be at least 1, got {capacity}")
        self.storage = storage
        self.capacity = capacity

    def _load(self) -> dict:
        data = self.storage.get(STORE_KEY)
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), dict):
            return _empty_db()
        return data

    def _save(self, db: dict) -> None:
        self.storage.set(STORE_KEY, db)

    @staticmethod
    def _newest_id(sessions: dict) -> str | None:
        if not sessions:
            return None
        return max(sessions, key=lambda sid: sessions[sid].get("started_at", 0))

    def put(self, session: ScanSession) -> list[str]:
        """Store a session. Returns the ids evicted to stay within capacity."""
        if not session.status.is_storable:
            raise StoreError(f"Refusing to store a {session.status.value} session ({session.session_id})")
        db = self._load()
        sessions = db["sessions"]
        sessions[session.session_id] = session.to_dict()
        db["last_session_id"] = session.session_id

        evicted = []
        if len(sessions) > self.capacity:
            by_age = sorted(sessions, key=lambda sid: sessions[sid].get("started_at", 0))
            for sid in by_age[: len(sessions) - self.capacity]:
                del sessions[sid]
                evicted.append(sid)
            if db["last_session_id"] not in sessions:
                db["last_session_id"] = self._newest_id(sessions)
            logger.debug("Evicted %d session(s): %s", len(evicted), ", ".join(evicted))

        self._save(db)
        return evicted

    @staticmethod
    def _decode(data: dict) -> ScanSession:
        try:
            return ScanSession.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreError(f"Stored scan is unreadable: {e!r}") from e

    def get(self, session_id: str) -> ScanSession | None:
        data = self._load()["sessions"].get(session_id)
        return self._decode(data) if data else None

    def list_all(self) -> list[ScanSession]:
        """All stored sessions, newest capture first."""
        sessions = self._load()["sessions"].values()
        ordered = sorted(sessions, key=lambda s: s.get("started_at", 0), reverse=True)
        return [self._decode(s) for s in ordered]

    def last(self) -> ScanSession | None:
        db = self._load()
        sid = db.get("last_session_id")
        if not sid:
            return None
        data = db["sessions"].get(sid)
        return self._decode(data) if data else None

    @property
    def last_session_id(self) -> str | None:
        return self._load().get("last_session_id")

    def delete(self, session_id: str) -> bool:
        db = self._load()
        sessions = db["sessions"]
        if session_id not in sessions:
            return False
        del sessions[session_id]
        if db.get("last_session_id") == session_id:
            db["last_session_id"] = self._newest_id(sessions)
        self._save(db)
        return True

    def clear(self) -> None:
        self._save(_empty_db())

    def stats(self) -> dict:
        sessions = list(self._load()["sessions"].values())
        stamps = [s.get("started_at", 0) for s in sessions]
        return {
            "total_scans": len(sessions),
            "total_instances": sum(s.get("total_instances", 0) for s in sessions),
            "oldest_scan": min(stamps) if stamps else None,
            "newest_scan": max(stamps) if stamps else None,
        }

    def __len__(self) -> int:
        return len(self._load()["sessions"])
