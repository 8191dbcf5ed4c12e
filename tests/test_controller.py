"""Tests for command handling and the event channel."""

import pytest

from component_radar.controller import RadarController, node_url
from component_radar.events import (
    CancelScan,
    ChannelClosed,
    ClearHistory,
    Command,
    DeleteScan,
    EventChannel,
    ExportResults,
    GetAllScans,
    GetScanResults,
    GetSettings,
    JumpToNode,
    SaveSettings,
    ScanError,
    SelectComponent,
    StartScan,
)
from component_radar.models import ScanScope, SessionStatus
from component_radar.orchestrator import ScanOrchestrator
from component_radar.remote import RemoteFile
from component_radar.scene import parse_scene_json
from component_radar.settings import ScanSettings
from component_radar.store import STORE_KEY, MemoryStorage, ResultStore


def _scene() -> dict:
    return {
        "name": "Design System",
        "fileKey": "local123",
        "components": {"1:1": {"key": "K", "name": "Button"}},
        "document": {"type": "DOCUMENT", "children": [
            {"id": "0:1", "type": "CANVAS", "name": "Components", "children": [
                {"id": "1:1", "type": "COMPONENT", "name": "Button"},
                {"id": "1:3", "type": "FRAME", "name": "Card", "children": [
                    {"id": "1:4", "type": "INSTANCE", "name": "Button", "componentId": "1:1"},
                ]},
            ]},
        ]},
    }


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def last(self, event_type: str):
        matching = [e for e in self.events if e.type == event_type]
        return matching[-1] if matching else None


class OneFileSource:
    def __init__(self):
        self.document = {"children": [{"id": "0:1", "name": "P", "children": [
            {"id": "9:1", "type": "INSTANCE", "name": "Button", "componentId": "K"},
        ]}]}

    async def fetch_file(self, file_key):
        return RemoteFile(file_key, "Remote", self.document)

    async def list_project_files(self, project_id):
        return ["r1", "r2"]


def _controller(storage=None):
    storage = storage or MemoryStorage()
    recorder = Recorder()
    channel = EventChannel(recorder)
    store = ResultStore(storage)
    orch = ScanOrchestrator(
        host=parse_scene_json(_scene()),
        store=store,
        channel=channel,
        remote_factory=lambda token: OneFileSource(),
        settings=ScanSettings(batch_delay=0),
    )
    return RadarController(orch, store, storage), recorder


async def _scanned():
    controller, recorder = _controller()
    await controller.handle(SelectComponent("1:1"))
    session = await controller.handle(StartScan(ScanScope.LOCAL))
    return controller, recorder, session


@pytest.mark.asyncio
async def test_select_and_scan():
    controller, recorder, session = await _scanned()
    assert controller.target.stable_id == "1:1"
    assert recorder.last("component-selected") is not None
    assert session.status is SessionStatus.COMPLETE
    assert recorder.last("scan-complete").session is session
    assert session.total_instances == 1


@pytest.mark.asyncio
async def test_select_unknown_node():
    controller, recorder = _controller()
    await controller.handle(SelectComponent("404:1"))
    assert recorder.last("scan-error").message == "Node not found"
    assert controller.target is None


@pytest.mark.asyncio
async def test_select_instance_reports_error():
    controller, recorder = _controller()
    await controller.handle(SelectComponent("1:4"))
    assert recorder.last("scan-error").message.startswith("Cannot scan an instance")


@pytest.mark.asyncio
async def test_scan_without_selection():
    controller, recorder = _controller()
    assert await controller.handle(StartScan(ScanScope.LOCAL)) is None
    assert "Select a main component" in recorder.last("scan-error").message


@pytest.mark.asyncio
async def test_project_scan_uses_saved_settings():
    controller, recorder = _controller()
    await controller.handle(SaveSettings(api_token="tok", default_project_id="77"))
    await controller.handle(SelectComponent("1:1"))
    session = await controller.handle(StartScan(ScanScope.PROJECT))
    assert session.status is SessionStatus.COMPLETE
    assert session.file_keys == ["r1", "r2"]
    assert session.total_instances == 2


@pytest.mark.asyncio
async def test_files_scan_without_token(monkeypatch):
    monkeypatch.delenv("COMPONENT_RADAR_TOKEN", raising=False)
    monkeypatch.delenv("FIGMA_TOKEN", raising=False)
    controller, recorder = _controller()
    await controller.handle(SelectComponent("1:1"))
    session = await controller.handle(StartScan(ScanScope.FILES, file_keys=["r1"]))
    assert session.status is SessionStatus.FAILED
    assert "API token" in recorder.last("scan-error").message


@pytest.mark.asyncio
async def test_export_and_results():
    controller, recorder, session = await _scanned()
    await controller.handle(ExportResults("csv", session.session_id))
    ready = recorder.last("export-ready")
    assert ready.format == "csv"
    assert ready.data.splitlines()[0].startswith('"File Name"')

    await controller.handle(GetScanResults(session.session_id))
    assert recorder.last("scan-results").session.session_id == session.session_id


@pytest.mark.asyncio
async def test_export_unknown_format_and_session():
    controller, recorder, session = await _scanned()
    await controller.handle(ExportResults("pdf", session.session_id))
    assert "Unsupported export format" in recorder.last("scan-error").message
    await controller.handle(ExportResults("csv", "missing"))
    assert recorder.last("scan-error").message == "Scan results not found"


@pytest.mark.asyncio
async def test_history_commands():
    controller, recorder, session = await _scanned()
    await controller.handle(GetAllScans())
    assert [s.session_id for s in recorder.last("all-scans").sessions] == [session.session_id]

    await controller.handle(DeleteScan(session.session_id))
    assert recorder.last("all-scans").sessions == []
    await controller.handle(DeleteScan(session.session_id))
    assert recorder.last("scan-error").message == "Scan results not found"

    await controller.handle(ClearHistory())
    assert len(controller.store) == 0


@pytest.mark.asyncio
async def test_unreadable_history_becomes_scan_error():
    storage = MemoryStorage({STORE_KEY: {"version": 1, "sessions": {"s1": {"started_at": 1}}}})
    controller, recorder = _controller(storage)
    await controller.handle(GetAllScans())
    assert "unreadable" in recorder.last("scan-error").message
    assert recorder.last("all-scans") is None


@pytest.mark.asyncio
async def test_jump_to_local_node():
    controller, recorder = _controller()
    await controller.handle(JumpToNode("local123", "1:4"))
    located = recorder.last("node-located")
    assert located.found
    assert located.page_name == "Components"
    assert located.breadcrumb == ["Components", "Card", "Button"]


@pytest.mark.asyncio
async def test_jump_to_other_file():
    controller, recorder = _controller()
    await controller.handle(JumpToNode("other", "9:1"))
    located = recorder.last("node-located")
    assert located.url == "https://www.figma.com/file/other?node-id=9%3A1"
    assert located.breadcrumb is None


@pytest.mark.asyncio
async def test_jump_to_deleted_node():
    controller, recorder = _controller()
    await controller.handle(JumpToNode("local123", "404:4"))
    assert "Node not found" in recorder.last("scan-error").message


@pytest.mark.asyncio
async def test_settings_commands():
    controller, recorder = _controller()
    await controller.handle(SaveSettings(api_token="figd_secret_token"))
    await controller.handle(SaveSettings(default_project_id="77"))
    await controller.handle(GetSettings())
    settings = recorder.last("settings-data").settings
    assert settings == {"api_token": "figd…en", "default_project_id": "77"}


@pytest.mark.asyncio
async def test_cancel_when_idle_is_quiet():
    controller, recorder = _controller()
    await controller.handle(CancelScan())
    assert recorder.last("scan-error") is None


@pytest.mark.asyncio
async def test_unknown_command():
    controller, recorder = _controller()
    await controller.handle(Command())
    assert recorder.last("scan-error").message == "Unknown command: command"


def test_node_url():
    assert node_url("abc", "1:2") == "https://www.figma.com/file/abc?node-id=1%3A2"


def test_channel_drops_closed_listeners():
    received = []

    def gone(event):
        raise ChannelClosed()

    channel = EventChannel(gone, received.append)
    channel.send(ScanError("one"))
    channel.send(ScanError("two"))
    assert [e.message for e in received] == ["one", "two"]
    assert channel.dropped == 1


def test_channel_discards_after_close():
    received = []
    channel = EventChannel(received.append)
    channel.close()
    channel.send(ScanError("late"))
    assert received == []
    assert channel.closed
    assert channel.dropped == 1


def test_event_payloads():
    assert ScanError("boom").to_dict() == {"type": "scan-error", "message": "boom"}
