"""Scan orchestration.

One ``ScanOrchestrator`` runs at most one scan at a time and walks it
through ``idle -> initializing -> scanning -> complete | aborted | failed``.

Local scans traverse every page of the host document. Remote scans (an
explicit file list, or every file of a project) fetch files in concurrent
batches but traverse them one at a time, in list order, each with a fresh
identity index. A file that cannot be fetched, parsed or traversed within
the per-file timeout is logged, counted and skipped; it never ends the scan.

Failures that are not about a single file (missing token or project id, an
empty project, anything unexpected) end the scan as ``failed`` with one
message and nothing is stored. A cancelled scan, stopped through
``cancel()`` or by cancelling the task running it, ends as ``aborted`` with
the records found so far, and is stored like a complete one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .errors import (
    ConfigError,
    InstanceSelectedError,
    NothingSelectedError,
    NotAComponentError,
    RemoteFileError,
    ScanInProgressError,
    SelectionError,
    SkipReason,
    StoreError,
)
from .events import ComponentSelected, EventChannel, ScanComplete, ScanError, ScanProgressEvent
from .identity import ComponentIdentityIndex, TargetComponent
from .models import OccurrenceRecord, ScanProgress, ScanScope, ScanSession, SessionStatus, new_session_id
from .remote import FigmaClient, RemoteFile, RemoteFileSource
from .scene import HostDocument, NodeKind, SceneNode, capture_target
from .settings import ScanSettings
from .store import ResultStore
from .traversal import CancelToken, TraversalContext, walk_page, walk_remote_page

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class ScanRequest:
    scope: ScanScope
    target: TargetComponent
    file_keys: list[str] | None = None
    project_id: str | None = None
    token: str | None = None


def check_component(node: SceneNode) -> None:
    """Reject anything that is not a main component, instances with their own message."""
    if node.kind is NodeKind.INSTANCE:
        raise InstanceSelectedError(node.name)
    if node.kind is not NodeKind.COMPONENT:
        raise NotAComponentError(node.name, node.kind.value)


class ScanOrchestrator:
    def __init__(
        self,
        host: HostDocument | None = None,
        store: ResultStore | None = None,
        channel: EventChannel | None = None,
        remote_factory: Callable[[str], RemoteFileSource] | None = None,
        settings: ScanSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.host = host
        self.store = store
        self.channel = channel or EventChannel()
        self.settings = settings or ScanSettings()
        self.remote_factory = remote_factory or self._default_remote_factory
        self.clock = clock
        self.state = OrchestratorState.IDLE
        self.session: ScanSession | None = None
        self._token: CancelToken | None = None
        self._started_clock = 0.0

    def _default_remote_factory(self, token: str) -> FigmaClient:
        return FigmaClient(
            token,
            api_base=self.settings.api_base,
            timeout=self.settings.file_timeout,
            max_body_bytes=self.settings.max_body_bytes,
        )

    @property
    def running(self) -> bool:
        return self.state in (OrchestratorState.INITIALIZING, OrchestratorState.SCANNING)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    # -- selection ----------------------------------------------------------

    def select_component(self, node: SceneNode | None = None) -> TargetComponent:
        """Validate a selection and capture it as the scan target."""
        if self.host is None:
            raise ConfigError("Selecting a component needs a host document")
        if node is None:
            selection = self.host.get_selection()
            if not selection:
                raise NothingSelectedError()
            if len(selection) > 1:
                raise SelectionError(f"Select exactly one main component ({len(selection)} nodes selected).")
            node = selection[0]
        check_component(node)
        target = capture_target(self.host, node)
        self.channel.send(ComponentSelected(target.to_dict()))
        return target

    def _validate_target(self, target: TargetComponent) -> None:
        if self.host is None:
            return
        selection = self.host.get_selection()
        if len(selection) == 1 and selection[0].kind is NodeKind.INSTANCE:
            raise InstanceSelectedError(selection[0].name)
        node = self.host.get_node_by_id(target.stable_id)
        if node is not None:
            check_component(node)

    # -- lifecycle ----------------------------------------------------------

    def cancel(self) -> bool:
        """Ask the running scan to stop. No-op when nothing is running."""
        if not self.running or self._token is None:
            return False
        self._token.cancel()
        logger.info("Cancellation requested for %s", self.session.session_id if self.session else "?")
        return True

    async def start(self, request: ScanRequest) -> ScanSession:
        """Run a scan to a terminal state and return its session.

        Selection problems raise before any session exists; every other
        failure is reported through the returned session.
        """
        if self.running:
            raise ScanInProgressError(self.session.session_id if self.session else "?")
        self._validate_target(request.target)

        started_at = self._now_ms()
        session = ScanSession(
            session_id=new_session_id(started_at),
            target=request.target,
            scope=request.scope,
            started_at=started_at,
        )
        self.session = session
        self._token = CancelToken()
        self._started_clock = self.clock()
        self.state = OrchestratorState.INITIALIZING
        logger.info("Starting %s scan %s for %r", request.scope.value, session.session_id,
                    request.target.display_name)

        try:
            if request.scope is ScanScope.LOCAL:
                await self._scan_local(session)
            elif request.scope is ScanScope.FILES:
                await self._scan_files(session, request.file_keys or [], request.token)
            else:
                await self._scan_project(session, request.project_id, request.token)
        except asyncio.CancelledError:
            logger.warning("Scan %s task cancelled", session.session_id)
            self._token.cancel()
            self._finish(session)
            raise
        except ConfigError as e:
            return self._fail(session, str(e))
        except Exception as e:
            logger.exception("Scan %s failed", session.session_id)
            return self._fail(session, f"Scan failed: {e}")
        return self._finish(session)

    def _finish(self, session: ScanSession) -> ScanSession:
        token = self._token
        if token is not None and token.cancelled:
            session.cancelled = True
            session.finish(SessionStatus.ABORTED, self._now_ms())
            self.state = OrchestratorState.ABORTED
            self._progress("aborted", f"Scan cancelled. Kept {session.total_instances} instances.")
        else:
            session.finish(SessionStatus.COMPLETE, self._now_ms())
            self.state = OrchestratorState.COMPLETE
            message = f"Scan complete! Found {session.total_instances} instances."
            if session.skipped_count:
                message += f" {session.skipped_count} files skipped."
            self._progress("complete", message)

        if session.skipped_count:
            logger.warning("%d files skipped", session.skipped_count)
        if self.store is not None:
            try:
                self.store.put(session)
            except (StoreError, OSError) as e:
                logger.error("Could not save scan %s: %s", session.session_id, e)
                session.errors.append(f"not saved: {e}")
        self.channel.send(ScanComplete(session))
        return session

    def _fail(self, session: ScanSession, message: str) -> ScanSession:
        session.finish(SessionStatus.FAILED, self._now_ms(), error=message)
        self.state = OrchestratorState.FAILED
        logger.error("Scan %s failed: %s", session.session_id, message)
        self.channel.send(ScanError(message))
        return session

    # -- progress -----------------------------------------------------------

    def _progress(self, stage: str, message: str, *, done: int | None = None, total: int | None = None,
                  found: int | None = None, **fields) -> None:
        elapsed = max(0.0, self.clock() - self._started_clock)
        eta = None
        if done and total and done < total:
            eta = round(elapsed / done * (total - done), 1)
        if found is None:
            found = self.session.total_instances if self.session else 0
        self.channel.send(ScanProgressEvent(ScanProgress(
            stage=stage,
            message=message,
            instances_found=found,
            elapsed_seconds=round(elapsed, 1),
            eta_seconds=eta,
            **fields,
        )))

    def _report_found(self, found: int) -> None:
        every = self.settings.progress_every
        if every and found and found % every == 0:
            self._progress("scanning", f"Found {found} instances...", found=found)

    # -- local --------------------------------------------------------------

    async def _scan_local(self, session: ScanSession) -> None:
        host = self.host
        if host is None:
            raise ConfigError("Scanning the current file needs a host document")
        token = self._token
        self._progress("initializing", "Initializing scan of current file...")

        await host.load_all_pages()
        pages = host.get_pages()
        session.file_keys = [host.file_key]

        self.state = OrchestratorState.SCANNING
        self._progress("scanning", f"Scanning {len(pages)} pages in \"{host.name}\"", total_pages=len(pages))

        for i, page in enumerate(pages):
            if token.cancelled:
                break
            self._progress(
                "scanning", f"Scanning page \"{page.name}\" ({i + 1}/{len(pages)})",
                done=i, total=len(pages),
                current_page=page.name, current_page_index=i, total_pages=len(pages),
            )
            ctx = TraversalContext(host.name, host.file_key, page.name, page.id, self.clock)
            async for record in walk_page(page, session.target, ctx, token, self.settings.yield_every):
                if session.append(record):
                    self._report_found(session.total_instances)
            self._progress(
                "processing", f"Finished page \"{page.name}\" ({i + 1}/{len(pages)})",
                done=i + 1, total=len(pages),
                current_page=page.name, current_page_index=i, total_pages=len(pages),
            )

    # -- remote -------------------------------------------------------------

    async def _open_remote(self, stack: AsyncExitStack, token: str) -> RemoteFileSource:
        source = self.remote_factory(token)
        if hasattr(source, "__aenter__"):
            source = await stack.enter_async_context(source)
        return source

    async def _scan_files(self, session: ScanSession, file_keys: list[str], token: str | None) -> None:
        if not file_keys:
            raise ConfigError("No files selected for scanning.")
        if not token:
            raise ConfigError("Selected-files scanning requires an API token. Configure one with `component-radar config --token`.")
        async with AsyncExitStack() as stack:
            source = await self._open_remote(stack, token)
            await self._scan_remote(session, source, file_keys)

    async def _scan_project(self, session: ScanSession, project_id: str | None, token: str | None) -> None:
        if not token or not project_id:
            raise ConfigError("Entire project scanning requires an API token and a project ID.")
        async with AsyncExitStack() as stack:
            source = await self._open_remote(stack, token)
            self._progress("initializing", f"Listing files in project {project_id}...")
            file_keys = await source.list_project_files(project_id)
            if not file_keys:
                raise ConfigError("No files found in the specified project.")
            await self._scan_remote(session, source, file_keys)

    async def _scan_remote(self, session: ScanSession, source: RemoteFileSource, file_keys: list[str]) -> None:
        token = self._token
        total = len(file_keys)
        batch_size = self.settings.batch_size
        session.file_keys = list(file_keys)
        loop = asyncio.get_running_loop()

        self._progress("initializing", f"Preparing to scan {total} files...", total_files=total)
        self.state = OrchestratorState.SCANNING

        for batch_start in range(0, total, batch_size):
            if token.cancelled:
                break
            batch = file_keys[batch_start:batch_start + batch_size]
            started = loop.time()
            fetched_at: dict[str, float] = {}
            fetches = []
            for key in batch:
                fut = asyncio.ensure_future(source.fetch_file(key))
                fut.add_done_callback(lambda _f, k=key: fetched_at.setdefault(k, loop.time()))
                fetches.append(fut)
            logger.debug("Fetching batch %d-%d of %d", batch_start + 1, batch_start + len(batch), total)

            try:
                for offset, (key, fetch) in enumerate(zip(batch, fetches)):
                    if token.cancelled:
                        break
                    index = batch_start + offset
                    self._progress(
                        "scanning", f"Fetching file {index + 1}/{total}...",
                        done=index, total=total,
                        current_file=key, current_file_index=index, total_files=total,
                    )
                    await self._scan_remote_file(session, key, fetch, started, fetched_at, index, total)
            except asyncio.CancelledError:
                for fetch in fetches:
                    fetch.cancel()
                raise
            finally:
                # let the rest of the batch finish; results are discarded
                await asyncio.gather(*fetches, return_exceptions=True)

            if batch_start + batch_size < total and not token.cancelled:
                await asyncio.sleep(self.settings.batch_delay)

    async def _scan_remote_file(self, session: ScanSession, key: str, fetch: asyncio.Future,
                                started: float, fetched_at: dict, index: int, total: int) -> None:
        loop = asyncio.get_running_loop()
        timeout = self.settings.file_timeout
        buffer: list[OccurrenceRecord] = []
        try:
            remote_file = await asyncio.wait_for(fetch, max(0.0, timeout - (loop.time() - started)))
            fetch_took = fetched_at.get(key, loop.time()) - started
            await asyncio.wait_for(
                self._traverse_remote_file(session, remote_file, buffer, index, total),
                max(0.0, timeout - fetch_took),
            )
        except asyncio.TimeoutError:
            logger.warning("Skipping file %s (%s): no result within %.0fs", key, SkipReason.TIMEOUT.value, timeout)
            session.skip(key, SkipReason.TIMEOUT, f"no result within {timeout:g}s")
            return
        except RemoteFileError as e:
            logger.warning("Skipping file %s (%s): %s", key, e.reason.value, e)
            session.skip(key, e.reason, str(e))
            return

        session.extend(buffer)
        logger.info("File %s: %d instances", key, len(buffer))

    async def _traverse_remote_file(self, session: ScanSession, remote_file: RemoteFile,
                                    buffer: list[OccurrenceRecord], index: int, total: int) -> None:
        token = self._token
        target = session.target
        identity = ComponentIdentityIndex.from_manifest(remote_file.manifest)
        if target.content_key in identity:
            logger.debug("%s defines %r locally as %s", remote_file.key, target.display_name,
                         identity.local_id_for(target.content_key))
        else:
            logger.debug("%s does not list %r in its components (%r)", remote_file.key,
                         target.display_name, identity)

        pages = remote_file.pages
        for p, page in enumerate(pages):
            if token.cancelled:
                break
            page_name = str(page.get("name", ""))
            self._progress(
                "scanning", f"Scanning page \"{page_name}\" ({p + 1}/{len(pages)}) in \"{remote_file.name}\"",
                done=index, total=total, found=session.total_instances + len(buffer),
                current_file=remote_file.key, current_file_index=index, total_files=total,
                current_page=page_name, current_page_index=p, total_pages=len(pages),
            )
            ctx = TraversalContext(remote_file.name, remote_file.key, page_name, str(page.get("id", "")), self.clock)
            async for record in walk_remote_page(
                page, target, identity, ctx, token,
                yield_every=self.settings.yield_every,
                name_fallback=self.settings.name_fallback,
            ):
                buffer.append(record)
                self._report_found(session.total_instances + len(buffer))
