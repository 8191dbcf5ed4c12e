"""Events sent to the presentation layer and commands received from it.

The channel is a best-effort notification path, never a synchronization
point: ``send`` does not block, and a listener that has gone away (raises
``ChannelClosed``) is dropped along with the message. Messages sent after
``close()`` are discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .models import ScanProgress, ScanScope, ScanSession

logger = logging.getLogger(__name__)


class ChannelClosed(Exception):
    """Raised by a listener whose receiver is gone."""


@dataclass
class Event:
    type: str = field(init=False, default="event")

    def to_dict(self) -> dict:
        return {"type": self.type}


@dataclass
class ComponentSelected(Event):
    component: dict
    type: str = field(init=False, default="component-selected")

    def to_dict(self) -> dict:
        return {"type": self.type, "component": self.component}


@dataclass
class ScanProgressEvent(Event):
    progress: ScanProgress
    type: str = field(init=False, default="scan-progress")

    def to_dict(self) -> dict:
        return {"type": self.type, "progress": self.progress.to_dict()}


@dataclass
class ScanComplete(Event):
    session: ScanSession
    type: str = field(init=False, default="scan-complete")

    def to_dict(self) -> dict:
        return {"type": self.type, "session": self.session.to_dict()}


@dataclass
class ScanError(Event):
    message: str
    type: str = field(init=False, default="scan-error")

    def to_dict(self) -> dict:
        return {"type": self.type, "message": self.message}


@dataclass
class ExportReady(Event):
    format: str
    data: str
    type: str = field(init=False, default="export-ready")

    def to_dict(self) -> dict:
        return {"type": self.type, "format": self.format, "data": self.data}


@dataclass
class ScanResults(Event):
    session: ScanSession
    type: str = field(init=False, default="scan-results")

    def to_dict(self) -> dict:
        return {"type": self.type, "session": self.session.to_dict()}


@dataclass
class AllScans(Event):
    sessions: list[ScanSession]
    type: str = field(init=False, default="all-scans")

    def to_dict(self) -> dict:
        return {"type": self.type, "sessions": [s.to_dict() for s in self.sessions]}


@dataclass
class NodeLocated(Event):
    file_key: str
    node_id: str
    found: bool
    url: str | None = None
    page_name: str | None = None
    breadcrumb: list[str] | None = None
    type: str = field(init=False, default="node-located")

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "file_key": self.file_key,
            "node_id": self.node_id,
            "found": self.found,
            "url": self.url,
            "page_name": self.page_name,
            "breadcrumb": self.breadcrumb,
        }


@dataclass
class SettingsData(Event):
    settings: dict
    type: str = field(init=False, default="settings-data")

    def to_dict(self) -> dict:
        return {"type": self.type, "settings": self.settings}


class EventChannel:
    """Fan-out of events to listeners, dropping rather than blocking."""

    def __init__(self, *listeners: Callable[[Event], Any]):
        self._listeners: list[Callable[[Event], Any]] = list(listeners)
        self._closed = False
        self.dropped = 0

    def subscribe(self, listener: Callable[[Event], Any]) -> None:
        self._listeners.append(listener)

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: Event) -> None:
        if self._closed or not self._listeners:
            self.dropped += 1
            return
        for listener in list(self._listeners):
            try:
                listener(event)
            except ChannelClosed:
                logger.debug("Listener %r went away; dropping %s", listener, event.type)
                self._listeners.remove(listener)
                self.dropped += 1


# -- commands ---------------------------------------------------------------

@dataclass
class Command:
    type: str = field(init=False, default="command")


@dataclass
class SelectComponent(Command):
    node_id: str | None = None
    type: str = field(init=False, default="select-component")


@dataclass
class StartScan(Command):
    scope: ScanScope
    file_keys: list[str] | None = None
    project_id: str | None = None
    type: str = field(init=False, default="start-scan")


@dataclass
class CancelScan(Command):
    type: str = field(init=False, default="cancel-scan")


@dataclass
class ExportResults(Command):
    format: str
    session_id: str
    type: str = field(init=False, default="export")


@dataclass
class JumpToNode(Command):
    file_key: str
    node_id: str
    type: str = field(init=False, default="jump-to-node")


@dataclass
class GetScanResults(Command):
    session_id: str
    type: str = field(init=False, default="get-scan-results")


@dataclass
class GetAllScans(Command):
    type: str = field(init=False, default="get-all-scans")


@dataclass
class DeleteScan(Command):
    session_id: str
    type: str = field(init=False, default="delete-scan")


@dataclass
class ClearHistory(Command):
    type: str = field(init=False, default="clear-history")


@dataclass
class GetSettings(Command):
    type: str = field(init=False, default="get-settings")


@dataclass
class SaveSettings(Command):
    api_token: str | None = None
    default_project_id: str | None = None
    type: str = field(init=False, default="save-settings")
