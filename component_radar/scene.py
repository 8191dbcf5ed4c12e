"""Scene model: the host document tree a local scan walks.

The host application owns the real tree; this module models the slice of it
the scanner needs and builds it from a Figma file JSON export (the shape
returned by ``GET /v1/files/:key``)::

    {
      "name": "Marketing site",
      "fileKey": "abc123",             # optional
      "selection": ["12:7"],           # optional, node ids
      "document": {"type": "DOCUMENT", "children": [<CANVAS>, ...]},
      "components": {"12:7": {"key": "...", "name": "Button", "remote": false}}
    }

Node types are folded into a closed set of kinds:

- PAGE: canvases directly under the document
- CONTAINER: frames, groups, sections, slides, component sets, boolean ops,
  and any unlisted type that carries children
- INSTANCE: component instances
- COMPONENT: main component definitions
- OTHER: leaves (text, vectors, shapes, ...), never have children

Children and instance/component fields are only read after checking the
kind, so a stray ``children`` list on a leaf is ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from .errors import HostError
from .identity import ComponentHandle, TargetComponent


class NodeKind(str, Enum):
    PAGE = "page"
    CONTAINER = "container"
    INSTANCE = "instance"
    COMPONENT = "component"
    OTHER = "other"


_KIND_BY_TYPE = {
    "CANVAS": NodeKind.PAGE,
    "PAGE": NodeKind.PAGE,
    "INSTANCE": NodeKind.INSTANCE,
    "COMPONENT": NodeKind.COMPONENT,
    "FRAME": NodeKind.CONTAINER,
    "GROUP": NodeKind.CONTAINER,
    "SECTION": NodeKind.CONTAINER,
    "COMPONENT_SET": NodeKind.CONTAINER,
    "BOOLEAN_OPERATION": NodeKind.CONTAINER,
    "TRANSFORM_GROUP": NodeKind.CONTAINER,
    "SLIDE": NodeKind.CONTAINER,
    "SLIDE_ROW": NodeKind.CONTAINER,
    "SLIDE_GRID": NodeKind.CONTAINER,
    "TABLE": NodeKind.CONTAINER,
}

LEAF_TYPES = frozenset({
    "TEXT", "VECTOR", "RECTANGLE", "ELLIPSE", "LINE", "STAR", "POLYGON", "REGULAR_POLYGON",
    "SLICE", "STICKY", "CONNECTOR", "SHAPE_WITH_TEXT", "CODE_BLOCK", "STAMP", "EMBED",
    "LINK_UNFURL", "MEDIA", "TABLE_CELL", "WASHI_TAPE", "HIGHLIGHT",
})

PARENT_KINDS = frozenset({NodeKind.PAGE, NodeKind.CONTAINER, NodeKind.INSTANCE, NodeKind.COMPONENT})


def kind_for_type(node_type: str, has_children: bool = False) -> NodeKind:
    """Fold a node type into a kind.

    Types not in the table are containers when they carry a children list,
    so newer node types are still descended into. Known leaf types never are.
    """
    node_type = str(node_type).upper()
    kind = _KIND_BY_TYPE.get(node_type)
    if kind is not None:
        return kind
    if has_children and node_type not in LEAF_TYPES:
        return NodeKind.CONTAINER
    return NodeKind.OTHER


def variant_signature(variant_properties: dict | None) -> str | None:
    """Summarize variant axes as ``"Size=Large, State=Hover"``."""
    if not variant_properties:
        return None
    return ", ".join(f"{k}={v}" for k, v in variant_properties.items())


def variants_from_json(data: dict) -> dict | None:
    """Pull variant axes out of a raw node.

    Hosts expose them either directly (``variantProperties``) or as typed
    ``componentProperties`` entries, of which only VARIANT ones count.
    """
    direct = data.get("variantProperties")
    if isinstance(direct, dict) and direct:
        return {str(k): str(v) for k, v in direct.items()}
    props = data.get("componentProperties")
    if not isinstance(props, dict):
        return None
    variants = {}
    for axis, prop in props.items():
        if isinstance(prop, dict) and prop.get("type") == "VARIANT":
            variants[str(axis)] = str(prop.get("value", ""))
    return variants or None


@dataclass(eq=False)
class SceneNode:
    """A node in the host scene tree."""
    id: str
    kind: NodeKind
    name: str = ""
    type: str = ""
    children: list["SceneNode"] = field(default_factory=list)
    parent: "SceneNode | None" = field(default=None, repr=False)
    # COMPONENT fields
    content_key: str = ""
    is_remote: bool = False
    # INSTANCE and COMPONENT fields
    variant_properties: dict | None = None
    # INSTANCE fields
    component_ref: str | None = None
    document: "SceneDocument | None" = field(default=None, repr=False)

    @property
    def has_children(self) -> bool:
        return self.kind in PARENT_KINDS and bool(self.children)

    @property
    def is_instance(self) -> bool:
        return self.kind is NodeKind.INSTANCE

    @property
    def is_component(self) -> bool:
        return self.kind is NodeKind.COMPONENT

    async def resolve_main_component(self) -> ComponentHandle | None:
        """Dereference an instance to its main component, like the host API does."""
        if self.kind is not NodeKind.INSTANCE:
            raise HostError(f"Node {self.id} is a {self.kind.value}, not an instance")
        if self.document is None or not self.component_ref:
            return None
        return self.document.resolve_component(self.component_ref)

    def walk(self):
        """Yield all nodes in the subtree (DFS)."""
        yield self
        if self.kind in PARENT_KINDS:
            for child in self.children:
                yield from child.walk()

    def page(self) -> "SceneNode | None":
        node: SceneNode | None = self
        while node is not None and node.kind is not NodeKind.PAGE:
            node = node.parent
        return node

    def breadcrumb(self) -> list[str]:
        """Names from the page down to this node, inclusive."""
        names = []
        node: SceneNode | None = self
        while node is not None:
            names.append(node.name)
            if node.kind is NodeKind.PAGE:
                break
            node = node.parent
        return list(reversed(names))


class HostDocument(Protocol):
    """What the scanner needs from the host application."""

    name: str
    file_key: str

    def get_selection(self) -> list[SceneNode]: ...

    def get_pages(self) -> list[SceneNode]: ...

    async def load_all_pages(self) -> None: ...

    def get_node_by_id(self, node_id: str) -> SceneNode | None: ...


@dataclass(eq=False)
class SceneDocument:
    """A host document backed by a file JSON export."""
    name: str
    file_key: str
    pages: list[SceneNode] = field(default_factory=list)
    manifest: dict = field(default_factory=dict)
    selection_ids: list[str] = field(default_factory=list)
    source_file: str = ""
    _nodes: dict[str, SceneNode] = field(default_factory=dict, repr=False)
    _loaded: bool = False

    @property
    def components(self) -> list[SceneNode]:
        return [n for page in self.pages for n in page.walk() if n.is_component]

    async def load_all_pages(self) -> None:
        self._loaded = True

    def get_pages(self) -> list[SceneNode]:
        if not self._loaded:
            raise HostError("Pages are not loaded yet; call load_all_pages() first")
        return list(self.pages)

    def get_selection(self) -> list[SceneNode]:
        return [self._nodes[i] for i in self.selection_ids if i in self._nodes]

    def select(self, *node_ids: str) -> None:
        self.selection_ids = list(node_ids)

    def get_node_by_id(self, node_id: str) -> SceneNode | None:
        return self._nodes.get(node_id)

    def find_by_name(self, name: str, kind: NodeKind | None = None) -> list[SceneNode]:
        return [
            n for n in self._nodes.values()
            if n.name == name and (kind is None or n.kind is kind)
        ]

    def resolve_component(self, ref: str) -> ComponentHandle | None:
        """Map an instance's component reference to a handle.

        Components defined in this document resolve to themselves; anything
        else is looked up in the manifest, where the host lists library
        components used by the file.
        """
        node = self._nodes.get(ref)
        if node is not None and node.is_component:
            return ComponentHandle(
                stable_id=node.id,
                content_key=node.content_key,
                name=node.name,
                is_remote=node.is_remote,
                file_key=None if node.is_remote else self.file_key,
            )
        meta = self.manifest.get(ref)
        if isinstance(meta, dict):
            remote = bool(meta.get("remote", False))
            return ComponentHandle(
                stable_id=ref,
                content_key=str(meta.get("key", "")),
                name=str(meta.get("name", "")),
                is_remote=remote,
                file_key=None if remote else self.file_key,
            )
        return None


def capture_target(host: HostDocument, node: SceneNode) -> TargetComponent:
    """Capture the identity of a component node for scanning."""
    library_name = host.name if node.parent is not None and node.parent.kind is NodeKind.PAGE else None
    return TargetComponent(
        stable_id=node.id,
        content_key=node.content_key,
        display_name=node.name,
        is_remote=node.is_remote,
        variant_properties=dict(node.variant_properties) if node.variant_properties else None,
        library_name=library_name,
        origin_file_key=None if node.is_remote else host.file_key,
    )


def _parse_node(data: dict, doc: SceneDocument, parent: SceneNode | None,
                kind: NodeKind | None = None) -> SceneNode:
    """Recursively parse a raw JSON node dict into a SceneNode."""
    node_type = str(data.get("type", ""))
    kind = kind or kind_for_type(node_type, isinstance(data.get("children"), list))
    node = SceneNode(
        id=str(data.get("id", "")),
        kind=kind,
        name=str(data.get("name", "")),
        type=node_type,
        parent=parent,
        document=doc,
    )

    if kind is NodeKind.COMPONENT:
        meta = doc.manifest.get(node.id, {})
        node.content_key = str(data.get("key") or (meta.get("key", "") if isinstance(meta, dict) else ""))
        node.is_remote = bool(data.get("remote", meta.get("remote", False) if isinstance(meta, dict) else False))
        node.variant_properties = variants_from_json(data)
    elif kind is NodeKind.INSTANCE:
        ref = data.get("componentId")
        node.component_ref = str(ref).strip() if ref else None
        node.variant_properties = variants_from_json(data)

    if kind in PARENT_KINDS:
        raw_children = data.get("children", [])
        if isinstance(raw_children, list):
            for child_data in raw_children:
                if isinstance(child_data, dict):
                    node.children.append(_parse_node(child_data, doc, node))

    if node.id:
        doc._nodes[node.id] = node
    return node


def parse_scene_json(data: dict, file_key: str = "") -> SceneDocument:
    """Parse a file JSON export into a SceneDocument."""
    if not isinstance(data, dict):
        raise HostError("File export must be a JSON object")
    document = data.get("document") if isinstance(data.get("document"), dict) else {}
    manifest = data.get("components") if isinstance(data.get("components"), dict) else {}
    selection = data.get("selection") if isinstance(data.get("selection"), list) else []

    doc = SceneDocument(
        name=str(data.get("name") or document.get("name") or "Untitled"),
        file_key=str(file_key or data.get("fileKey") or "current-file"),
        manifest=manifest,
        selection_ids=[str(s) for s in selection],
    )
    for page_data in document.get("children", []) or []:
        if not isinstance(page_data, dict):
            continue
        # anything directly under the document is a page, whatever its type says
        page = _parse_node(page_data, doc, None, kind=NodeKind.PAGE)
        doc.pages.append(page)
    return doc


def load_scene_file(path: str | Path, file_key: str = "") -> SceneDocument:
    """Load and parse a file JSON export."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with open(p, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HostError(f"{p.name} is not a valid JSON export: {e}") from e

    doc = parse_scene_json(data, file_key=file_key)
    doc.source_file = str(p)
    return doc
