"""Breadth-first traversal of scene trees.

``bfs`` is the shared walker. It works over any tree given a children
accessor and a name accessor, yields ``(node, path)`` lazily in level order,
hands control back to the event loop every ``yield_every`` dequeues and stops
as soon as the cancel token is set. Each call starts a fresh walk.

Two walkers sit on top of it, one per tree representation:

- ``walk_page``: a live host page (``SceneNode``), instances dereferenced by
  the host.
- ``walk_remote_page``: a page of a file fetched from the REST API (plain
  dicts), instances matched by their raw ``componentId``.

Both are async generators of ``OccurrenceRecord``. Paths are relative to
the page: a node directly under the page has a one-element path.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Iterable

from .identity import (
    ComponentIdentityIndex,
    MatchStrategy,
    TargetComponent,
    resolve_live,
    resolve_remote,
)
from .models import OccurrenceKind, OccurrenceRecord
from .scene import PARENT_KINDS, NodeKind, SceneNode, kind_for_type, variant_signature, variants_from_json

DEFAULT_YIELD_EVERY = 100


class CancelToken:
    """Shared abort flag, polled cooperatively."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled})"


@dataclass
class TraversalContext:
    """Where the walked page lives."""
    file_name: str
    file_key: str
    page_name: str
    page_id: str
    clock: Callable[[], float] = field(default=time.time, repr=False)


async def bfs(
    roots: Iterable,
    children_of: Callable,
    name_of: Callable,
    token: CancelToken,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> AsyncIterator[tuple]:
    """Yield ``(node, path)`` for every node reachable from ``roots``, level by level."""
    queue = deque((root, (name_of(root),)) for root in roots)
    dequeued = 0
    while queue and not token.cancelled:
        node, path = queue.popleft()
        dequeued += 1
        yield node, path

        if token.cancelled:
            break
        for child in children_of(node):
            queue.append((child, path + (name_of(child),)))

        if yield_every and dequeued % yield_every == 0:
            await asyncio.sleep(0)


def classify(path: tuple, origin_is_foreign: bool) -> OccurrenceKind:
    """Nesting wins over origin: a nested library instance is still nested."""
    if len(path) > 1:
        return OccurrenceKind.NESTED
    if origin_is_foreign:
        return OccurrenceKind.REMOTE
    return OccurrenceKind.DIRECT


def _make_record(ctx: TraversalContext, node_id: str, node_name: str, path: tuple,
                 kind: OccurrenceKind, variant: str | None, strategy: MatchStrategy) -> OccurrenceRecord:
    return OccurrenceRecord(
        file_name=ctx.file_name,
        file_key=ctx.file_key,
        page_name=ctx.page_name,
        page_id=ctx.page_id,
        node_name=node_name,
        node_id=node_id,
        kind=kind,
        breadcrumb_path=(ctx.page_name,) + tuple(path),
        variant_signature=variant,
        discovered_at=int(ctx.clock() * 1000),
        matched_by=strategy,
    )


# -- live host tree ---------------------------------------------------------

def _scene_children(node: SceneNode) -> list[SceneNode]:
    return node.children if node.has_children else []


def _scene_name(node: SceneNode) -> str:
    return node.name


async def walk_page(
    page: SceneNode,
    target: TargetComponent,
    ctx: TraversalContext,
    token: CancelToken,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> AsyncIterator[OccurrenceRecord]:
    """Yield records for every instance of ``target`` on a host page."""
    async for node, path in bfs(_scene_children(page), _scene_children, _scene_name, token, yield_every):
        if node.kind is not NodeKind.INSTANCE:
            continue
        handle = await node.resolve_main_component()
        strategy = resolve_live(target, handle)
        # resolving may suspend; the scan can be cancelled meanwhile
        if strategy is None or token.cancelled:
            continue
        foreign = handle.is_remote or (handle.file_key is not None and handle.file_key != ctx.file_key)
        yield _make_record(
            ctx, node.id, node.name, path,
            classify(path, foreign),
            variant_signature(node.variant_properties),
            strategy,
        )


# -- remote JSON tree -------------------------------------------------------

def _json_children(node: dict) -> list[dict]:
    if kind_for_type(node.get("type", ""), isinstance(node.get("children"), list)) not in PARENT_KINDS:
        return []
    children = node.get("children")
    if not isinstance(children, list):
        return []
    return [c for c in children if isinstance(c, dict)]


def _json_name(node: dict) -> str:
    return str(node.get("name", ""))


def _remote_origin_is_foreign(ref: str, strategy: MatchStrategy, target: TargetComponent,
                              index: ComponentIdentityIndex, file_key: str) -> bool:
    mapped_key = index.content_key_for(ref) if ref else None
    if mapped_key:
        return not index.defines_locally(mapped_key)
    if strategy is MatchStrategy.STABLE_ID:
        return bool(target.origin_file_key) and target.origin_file_key != file_key
    return not index.defines_locally(target.content_key)


async def walk_remote_page(
    page: dict,
    target: TargetComponent,
    index: ComponentIdentityIndex,
    ctx: TraversalContext,
    token: CancelToken,
    yield_every: int = DEFAULT_YIELD_EVERY,
    name_fallback: bool = True,
) -> AsyncIterator[OccurrenceRecord]:
    """Yield records for every instance of ``target`` on a fetched page."""
    roots = page.get("children") if isinstance(page.get("children"), list) else []
    roots = [r for r in roots if isinstance(r, dict)]
    async for node, path in bfs(roots, _json_children, _json_name, token, yield_every):
        if kind_for_type(node.get("type", "")) is not NodeKind.INSTANCE:
            continue
        raw_ref = node.get("componentId")
        ref = str(raw_ref).strip() if raw_ref else ""
        name = _json_name(node)
        strategy = resolve_remote(target, ref, name, index, name_fallback=name_fallback)
        if strategy is None:
            continue
        foreign = _remote_origin_is_foreign(ref, strategy, target, index, ctx.file_key)
        yield _make_record(
            ctx, str(node.get("id", "")), name, path,
            classify(path, foreign),
            variant_signature(variants_from_json(node)),
            strategy,
        )
