"""Command handling for a presentation layer.

``RadarController.handle`` takes one command, does the work through the
orchestrator, store and formatters, and answers with events on the channel.
Anything that goes wrong inside a handler is reported as a ``scan-error``
event rather than raised, since the presentation layer only listens.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from . import formatters
from .errors import ConfigError, RadarError
from .events import (
    AllScans,
    CancelScan,
    ClearHistory,
    Command,
    DeleteScan,
    EventChannel,
    ExportReady,
    ExportResults,
    GetAllScans,
    GetScanResults,
    GetSettings,
    JumpToNode,
    NodeLocated,
    SaveSettings,
    ScanError,
    ScanResults,
    SelectComponent,
    SettingsData,
    StartScan,
)
from .identity import TargetComponent
from .models import ScanScope, ScanSession
from .orchestrator import ScanOrchestrator, ScanRequest
from .settings import UserSettings, load_user_settings, save_user_settings
from .store import KeyValueStorage, ResultStore

logger = logging.getLogger(__name__)

FILE_URL = "https://www.figma.com/file/{file_key}?node-id={node_id}"


def node_url(file_key: str, node_id: str) -> str:
    return FILE_URL.format(file_key=file_key, node_id=quote(node_id, safe=""))


class RadarController:
    def __init__(self, orchestrator: ScanOrchestrator, store: ResultStore,
                 storage: KeyValueStorage, channel: EventChannel | None = None):
        self.orchestrator = orchestrator
        self.store = store
        self.storage = storage
        self.channel = channel or orchestrator.channel
        self.target: TargetComponent | None = None

    async def handle(self, command: Command) -> ScanSession | None:
        handler = getattr(self, "_on_" + command.type.replace("-", "_"), None)
        if handler is None:
            logger.warning("Unknown command: %r", command)
            self.channel.send(ScanError(f"Unknown command: {command.type}"))
            return None
        try:
            return await handler(command)
        except RadarError as e:
            self.channel.send(ScanError(str(e)))
        except ValueError as e:
            self.channel.send(ScanError(f"{command.type} failed: {e}"))
        except OSError as e:
            logger.exception("Command %s failed", command.type)
            self.channel.send(ScanError(f"Unexpected error: {e}"))
        return None

    async def _on_select_component(self, command: SelectComponent) -> None:
        node = None
        if command.node_id:
            host = self.orchestrator.host
            node = host.get_node_by_id(command.node_id) if host is not None else None
            if node is None:
                raise RadarError("Node not found")
        self.target = self.orchestrator.select_component(node)

    async def _on_start_scan(self, command: StartScan) -> ScanSession:
        if self.target is None:
            raise ConfigError("Select a main component before scanning.")
        settings = load_user_settings(self.storage)
        project_id = command.project_id
        if command.scope is ScanScope.PROJECT:
            project_id = project_id or settings.default_project_id
        request = ScanRequest(
            scope=command.scope,
            target=self.target,
            file_keys=command.file_keys,
            project_id=project_id,
            token=settings.api_token,
        )
        return await self.orchestrator.start(request)

    async def _on_cancel_scan(self, command: CancelScan) -> None:
        self.orchestrator.cancel()

    async def _on_export(self, command: ExportResults) -> None:
        session = self._require(command.session_id)
        data = formatters.export(session, command.format)
        self.channel.send(ExportReady(command.format, data))

    async def _on_jump_to_node(self, command: JumpToNode) -> None:
        host = self.orchestrator.host
        if host is None or command.file_key != host.file_key:
            self.channel.send(NodeLocated(
                command.file_key, command.node_id, found=True,
                url=node_url(command.file_key, command.node_id),
            ))
            return
        node = host.get_node_by_id(command.node_id)
        if node is None:
            raise RadarError("Node not found. It may have been deleted.")
        page = node.page()
        self.channel.send(NodeLocated(
            command.file_key, command.node_id, found=True,
            url=node_url(command.file_key, command.node_id),
            page_name=page.name if page else None,
            breadcrumb=node.breadcrumb(),
        ))

    async def _on_get_scan_results(self, command: GetScanResults) -> None:
        self.channel.send(ScanResults(self._require(command.session_id)))

    async def _on_get_all_scans(self, command: GetAllScans) -> None:
        self.channel.send(AllScans(self.store.list_all()))

    async def _on_delete_scan(self, command: DeleteScan) -> None:
        if not self.store.delete(command.session_id):
            raise RadarError("Scan results not found")
        self.channel.send(AllScans(self.store.list_all()))

    async def _on_clear_history(self, command: ClearHistory) -> None:
        self.store.clear()
        self.channel.send(AllScans([]))

    async def _on_get_settings(self, command: GetSettings) -> None:
        self.channel.send(SettingsData(load_user_settings(self.storage).redacted()))

    async def _on_save_settings(self, command: SaveSettings) -> None:
        current = load_user_settings(self.storage, environ={})
        updated = UserSettings(
            api_token=command.api_token if command.api_token is not None else current.api_token,
            default_project_id=(command.default_project_id if command.default_project_id is not None
                                else current.default_project_id),
        )
        save_user_settings(self.storage, updated)
        self.channel.send(SettingsData(updated.redacted()))

    def _require(self, session_id: str) -> ScanSession:
        session = self.store.get(session_id)
        if session is None:
            raise RadarError("Scan results not found")
        return session
