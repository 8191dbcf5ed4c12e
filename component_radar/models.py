"""Scan records, sessions and progress snapshots."""

from __future__ import annotations

import secrets
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from .errors import SkipReason
from .identity import MatchStrategy, TargetComponent


class OccurrenceKind(str, Enum):
    DIRECT = "direct"
    NESTED = "nested"
    REMOTE = "remote"


class ScanScope(str, Enum):
    LOCAL = "local"
    FILES = "files"
    PROJECT = "project"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_storable(self) -> bool:
        return self in (SessionStatus.COMPLETE, SessionStatus.ABORTED)


def new_session_id(started_at: int) -> str:
    return f"scan-{started_at}-{secrets.token_hex(3)}"


@dataclass(frozen=True)
class OccurrenceRecord:
    """One detected usage of the target component."""
    file_name: str
    file_key: str
    page_name: str
    page_id: str
    node_name: str
    node_id: str
    kind: OccurrenceKind
    breadcrumb_path: tuple[str, ...]
    variant_signature: str | None
    discovered_at: int
    matched_by: MatchStrategy

    @property
    def record_id(self) -> str:
        return f"{self.file_key}:{self.node_id}"

    def to_dict(self) -> dict:
        return {
            "id": self.record_id,
            "file_name": self.file_name,
            "file_key": self.file_key,
            "page_name": self.page_name,
            "page_id": self.page_id,
            "node_name": self.node_name,
            "node_id": self.node_id,
            "kind": self.kind.value,
            "path": list(self.breadcrumb_path),
            "variant": self.variant_signature,
            "discovered_at": self.discovered_at,
            "matched_by": self.matched_by.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OccurrenceRecord":
        return cls(
            file_name=str(data.get("file_name", "")),
            file_key=str(data.get("file_key", "")),
            page_name=str(data.get("page_name", "")),
            page_id=str(data.get("page_id", "")),
            node_name=str(data.get("node_name", "")),
            node_id=str(data.get("node_id", "")),
            kind=OccurrenceKind(data.get("kind", "direct")),
            breadcrumb_path=tuple(data.get("path", [])),
            variant_signature=data.get("variant"),
            discovered_at=int(data.get("discovered_at", 0)),
            matched_by=MatchStrategy(data.get("matched_by", MatchStrategy.CONTENT_KEY.value)),
        )


@dataclass(frozen=True)
class SkippedFile:
    file_key: str
    reason: SkipReason
    message: str = ""

    def to_dict(self) -> dict:
        return {"file_key": self.file_key, "reason": self.reason.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> "SkippedFile":
        return cls(
            file_key=str(data.get("file_key", "")),
            reason=SkipReason(data.get("reason", SkipReason.HTTP_ERROR.value)),
            message=str(data.get("message", "")),
        )


@dataclass(eq=False)
class ScanSession:
    """One in-flight or finished scan.

    ``records`` only grows while the session runs. Once ``cancelled`` is set
    or the session reaches a terminal status, ``append`` refuses new records.
    """
    session_id: str
    target: TargetComponent
    scope: ScanScope
    started_at: int
    records: list[OccurrenceRecord] = field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False
    status: SessionStatus = SessionStatus.RUNNING
    file_keys: list[str] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def total_instances(self) -> int:
        return len(self.records)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def accepting_records(self) -> bool:
        return not self.cancelled and self.status is SessionStatus.RUNNING

    def append(self, record: OccurrenceRecord) -> bool:
        """Append a record; returns False when the session no longer accepts any."""
        if not self.accepting_records:
            return False
        self.records.append(record)
        return True

    def extend(self, records: list[OccurrenceRecord]) -> int:
        added = 0
        for record in records:
            if not self.append(record):
                break
            added += 1
        return added

    def skip(self, file_key: str, reason: SkipReason, message: str = "") -> None:
        self.skipped.append(SkippedFile(file_key, reason, message))
        self.errors.append(f"{file_key}: {reason.value}" + (f" ({message})" if message else ""))

    def finish(self, status: SessionStatus, finished_at: int, error: str | None = None) -> None:
        self.status = status
        self.duration_ms = max(0, finished_at - self.started_at)
        if error is not None:
            self.error = error

    def counts_by_kind(self) -> dict[str, int]:
        counts = Counter(r.kind.value for r in self.records)
        return {k.value: counts.get(k.value, 0) for k in OccurrenceKind}

    def counts_by_file(self) -> dict[str, int]:
        return dict(Counter(r.file_name for r in self.records))

    def page_count(self) -> int:
        return len({(r.file_key, r.page_id) for r in self.records})

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "target": self.target.to_dict(),
            "scope": self.scope.value,
            "status": self.status.value,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "cancelled": self.cancelled,
            "total_instances": self.total_instances,
            "file_keys": list(self.file_keys),
            "skipped": [s.to_dict() for s in self.skipped],
            "errors": list(self.errors),
            "error": self.error,
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScanSession":
        return cls(
            session_id=str(data["session_id"]),
            target=TargetComponent.from_dict(data.get("target", {})),
            scope=ScanScope(data.get("scope", ScanScope.LOCAL.value)),
            started_at=int(data.get("started_at", 0)),
            records=[OccurrenceRecord.from_dict(r) for r in data.get("records", [])],
            duration_ms=int(data.get("duration_ms", 0)),
            cancelled=bool(data.get("cancelled", False)),
            status=SessionStatus(data.get("status", SessionStatus.COMPLETE.value)),
            file_keys=list(data.get("file_keys", [])),
            skipped=[SkippedFile.from_dict(s) for s in data.get("skipped", [])],
            errors=list(data.get("errors", [])),
            error=data.get("error"),
        )


@dataclass
class ScanProgress:
    """A progress snapshot sent to the presentation layer."""
    stage: str
    message: str
    instances_found: int = 0
    current_page: str | None = None
    current_page_index: int | None = None
    total_pages: int | None = None
    current_file: str | None = None
    current_file_index: int | None = None
    total_files: int | None = None
    elapsed_seconds: float = 0.0
    eta_seconds: float | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v is not None}
