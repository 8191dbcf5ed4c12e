"""Exception hierarchy for component-radar.

Lower layers (scene, identity, traversal, remote) raise; the scan
orchestrator decides what is recoverable.
"""

from __future__ import annotations

from enum import Enum


class RadarError(Exception):
    """Base class for every error raised by component-radar."""


class SelectionError(RadarError):
    """The selected node cannot be used as a scan target."""


class NothingSelectedError(SelectionError):
    def __init__(self, message: str = "Nothing selected. Please select a main component."):
        super().__init__(message)


class InstanceSelectedError(SelectionError):
    def __init__(self, node_name: str = ""):
        super().__init__(
            "Cannot scan an instance!\n\n"
            "You selected an instance of a component"
            + (f" (\"{node_name}\")" if node_name else "")
            + ". Please select the main component instead.\n\n"
            "Tip: look for the component in the Assets panel or find the "
            "diamond icon in the layers panel."
        )
        self.node_name = node_name


class NotAComponentError(SelectionError):
    def __init__(self, node_name: str = "", kind: str = ""):
        detail = f" (\"{node_name}\" is a {kind})" if node_name and kind else ""
        super().__init__(f"Selected node is not a component{detail}. Please select a main component.")
        self.node_name = node_name
        self.kind = kind


class ConfigError(RadarError):
    """Missing or invalid configuration (token, project id, tunables)."""


class ScanInProgressError(RadarError):
    def __init__(self, session_id: str):
        super().__init__(f"A scan is already running (session {session_id})")
        self.session_id = session_id


class HostError(RadarError):
    """The host document could not satisfy a request."""


class StoreError(RadarError):
    """The result store refused or failed an operation."""


class SkipReason(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed_response"
    OVERSIZED = "oversized_response"
    HTTP_ERROR = "http_error"
    TRANSPORT = "transport_error"
    TIMEOUT = "timeout"


class RemoteFileError(RadarError):
    """A remote file could not be fetched or parsed.

    Each subclass carries the skip reason the orchestrator records when it
    moves past the file.
    """

    reason: SkipReason = SkipReason.HTTP_ERROR

    def __init__(self, file_key: str, message: str, status_code: int | None = None):
        super().__init__(f"{file_key}: {message}")
        self.file_key = file_key
        self.status_code = status_code


class RemoteNotFound(RemoteFileError):
    reason = SkipReason.NOT_FOUND


class RemoteForbidden(RemoteFileError):
    reason = SkipReason.FORBIDDEN


class RemoteRateLimited(RemoteFileError):
    reason = SkipReason.RATE_LIMITED

    def __init__(self, file_key: str, message: str, status_code: int | None = 429,
                 retry_after: float | None = None):
        super().__init__(file_key, message, status_code)
        self.retry_after = retry_after


class MalformedResponse(RemoteFileError):
    reason = SkipReason.MALFORMED


class OversizedResponse(RemoteFileError):
    reason = SkipReason.OVERSIZED


class RemoteHTTPError(RemoteFileError):
    reason = SkipReason.HTTP_ERROR


class RemoteTransportError(RemoteFileError):
    reason = SkipReason.TRANSPORT
