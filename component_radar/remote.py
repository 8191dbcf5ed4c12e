"""Figma REST file-tree client.

Fetches whole file documents and project file listings. Every failure is
raised as a ``RemoteFileError`` subclass so callers can tell a missing file
from a permissions problem, a rate limit or a broken body, even though the
scan orchestrator handles all of them the same way (skip and continue).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .errors import (
    MalformedResponse,
    OversizedResponse,
    RemoteForbidden,
    RemoteHTTPError,
    RemoteNotFound,
    RemoteRateLimited,
    RemoteTransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.figma.com/v1"
DEFAULT_MAX_BODY_BYTES = 256 * 1024 * 1024


@dataclass
class RemoteFile:
    """A fetched file: its document tree and component manifest."""
    key: str
    name: str
    document: dict
    manifest: dict = field(default_factory=dict)

    @property
    def pages(self) -> list[dict]:
        children = self.document.get("children")
        if not isinstance(children, list):
            return []
        return [p for p in children if isinstance(p, dict)]


class RemoteFileSource(Protocol):
    async def fetch_file(self, file_key: str) -> RemoteFile: ...

    async def list_project_files(self, project_id: str) -> list[str]: ...


def _retry_after(resp: httpx.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(resp: httpx.Response, subject: str) -> None:
    """Map an error status to the matching RemoteFileError subclass."""
    status = resp.status_code
    if status < 400:
        return
    detail = resp.text[:200].strip() if resp.content else ""
    message = f"HTTP {status}" + (f" - {detail}" if detail else "")
    if status == 404:
        raise RemoteNotFound(subject, message, status)
    if status in (401, 403):
        raise RemoteForbidden(subject, message, status)
    if status == 429:
        raise RemoteRateLimited(subject, message, status, retry_after=_retry_after(resp))
    raise RemoteHTTPError(subject, message, status)


async def read_limited(resp: httpx.Response, subject: str, max_bytes: int) -> bytes:
    """Read a streamed body, stopping as soon as it passes ``max_bytes``."""
    declared = resp.headers.get("Content-Length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise OversizedResponse(subject, f"declared body of {declared} bytes exceeds {max_bytes}")
    chunks: list[bytes] = []
    total = 0
    async for chunk in resp.aiter_bytes():
        total += len(chunk)
        if total > max_bytes:
            raise OversizedResponse(subject, f"body exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def decode_body(body: bytes, subject: str) -> dict:
    """Decode a JSON object body, rejecting empty or broken ones."""
    if not body.strip():
        raise MalformedResponse(subject, "empty response body")
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponse(subject, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponse(subject, f"expected a JSON object, got {type(data).__name__}")
    return data


class FigmaClient:
    """Async client for the Figma REST API.

    The token is passed through untouched as ``X-Figma-Token``. Use as an
    async context manager, or call ``aclose()``; a client passed in by the
    caller is left open.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 60.0,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.max_body_bytes = max_body_bytes
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {"X-Figma-Token": token}

    async def __aenter__(self) -> "FigmaClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, path: str, subject: str) -> dict:
        url = f"{self.api_base}{path}"
        try:
            async with self._client.stream("GET", url, headers=self._headers) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise_for_status(resp, subject)
                body = await read_limited(resp, subject, self.max_body_bytes)
        except httpx.TimeoutException as e:
            raise RemoteTransportError(subject, f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteTransportError(subject, f"{type(e).__name__}: {e}") from e
        logger.debug("GET %s -> %s (%d bytes)", url, resp.status_code, len(body))
        return decode_body(body, subject)

    async def fetch_file(self, file_key: str) -> RemoteFile:
        data = await self._get_json(f"/files/{file_key}", file_key)
        document = data.get("document")
        if not isinstance(document, dict):
            raise MalformedResponse(file_key, "response has no document tree")
        manifest = data.get("components") if isinstance(data.get("components"), dict) else {}
        name = str(data.get("name") or document.get("name") or "Untitled")
        return RemoteFile(key=file_key, name=name, document=document, manifest=manifest)

    async def list_project_files(self, project_id: str) -> list[str]:
        data = await self._get_json(f"/projects/{project_id}/files", f"project {project_id}")
        files = data.get("files", [])
        if not isinstance(files, list):
            raise MalformedResponse(f"project {project_id}", "'files' is not a list")
        keys = [str(f["key"]) for f in files if isinstance(f, dict) and f.get("key")]
        logger.info("Project %s lists %d files", project_id, len(keys))
        return keys

