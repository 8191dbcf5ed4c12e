"""Component identity resolution.

Decides whether an instance refers to the target component. Two inputs are
possible:

- live tree: the host has already dereferenced the instance to its main
  component, so stable id / content key comparison is enough.
- remote JSON: only the raw ``componentId`` string of the instance is
  known. It may be the target's content key, its stable id, a local node id
  that the file's component manifest maps back to the content key, or
  nothing useful at all.

The remote strategies run in a fixed order and the first match wins:

1. reference == target content key
2. reference == target stable id
3. reference == local node id the manifest assigns to the target key
4. manifest maps the reference back to the target key
5. instance name == target display name

Strategy 5 produces false positives whenever two unrelated components share
a name. It stays on by default and can be switched off with
``name_fallback=False``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MatchStrategy(str, Enum):
    CONTENT_KEY = "content_key"
    STABLE_ID = "stable_id"
    LOCAL_ID = "local_id"
    REVERSE_LOOKUP = "reverse_lookup"
    DISPLAY_NAME = "display_name"


@dataclass(frozen=True)
class TargetComponent:
    """The component being tracked, captured once at selection time."""
    stable_id: str
    content_key: str
    display_name: str
    is_remote: bool = False
    variant_properties: dict | None = None
    library_name: str | None = None
    origin_file_key: str | None = None

    def to_dict(self) -> dict:
        return {
            "stable_id": self.stable_id,
            "content_key": self.content_key,
            "display_name": self.display_name,
            "is_remote": self.is_remote,
            "variant_properties": dict(self.variant_properties) if self.variant_properties else None,
            "library_name": self.library_name,
            "origin_file_key": self.origin_file_key,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TargetComponent":
        return cls(
            stable_id=str(data.get("stable_id", "")),
            content_key=str(data.get("content_key", "")),
            display_name=str(data.get("display_name", "")),
            is_remote=bool(data.get("is_remote", False)),
            variant_properties=data.get("variant_properties") or None,
            library_name=data.get("library_name"),
            origin_file_key=data.get("origin_file_key"),
        )


@dataclass(frozen=True)
class ComponentHandle:
    """A main component as dereferenced by the host."""
    stable_id: str
    content_key: str
    name: str = ""
    is_remote: bool = False
    file_key: str | None = None


class ComponentIdentityIndex:
    """Bidirectional content key <-> local node id map for one file.

    Built from the file's component manifest before its tree is traversed
    and thrown away afterwards. Two manifest shapes are accepted::

        {"1:23": {"key": "abc", "name": "Button", "remote": false}}   # REST
        {"abc": {"node_id": "1:23"}}                                   # keyed by content key
    """

    def __init__(self):
        self._key_to_local: dict[str, str] = {}
        self._local_to_key: dict[str, str] = {}
        self._remote_keys: set[str] = set()

    @classmethod
    def from_manifest(cls, manifest: dict | None) -> "ComponentIdentityIndex":
        index = cls()
        if not isinstance(manifest, dict):
            return index
        for entry_key, meta in manifest.items():
            if not isinstance(meta, dict):
                continue
            if meta.get("key"):
                content_key, local_id = str(meta["key"]), str(entry_key)
            else:
                local_id = meta.get("node_id") or meta.get("nodeId")
                if not local_id:
                    continue
                content_key, local_id = str(entry_key), str(local_id)
            index.add(content_key.strip(), local_id.strip(), remote=bool(meta.get("remote", False)))
        return index

    def add(self, content_key: str, local_id: str, remote: bool = False) -> None:
        self._key_to_local[content_key] = local_id
        self._local_to_key[local_id] = content_key
        if remote:
            self._remote_keys.add(content_key)
        else:
            self._remote_keys.discard(content_key)

    def local_id_for(self, content_key: str) -> str | None:
        return self._key_to_local.get(content_key)

    def content_key_for(self, local_id: str) -> str | None:
        return self._local_to_key.get(local_id)

    def defines_locally(self, content_key: str) -> bool:
        """True when the manifest lists the key as a component of this file."""
        return content_key in self._key_to_local and content_key not in self._remote_keys

    def __len__(self) -> int:
        return len(self._key_to_local)

    def __contains__(self, content_key: str) -> bool:
        return content_key in self._key_to_local

    def __repr__(self) -> str:
        return f"ComponentIdentityIndex(entries={len(self)}, remote={len(self._remote_keys)})"


def resolve_live(target: TargetComponent, handle: ComponentHandle | None) -> MatchStrategy | None:
    """Match an instance whose main component the host already resolved."""
    if handle is None:
        return None
    if target.stable_id and handle.stable_id == target.stable_id:
        return MatchStrategy.STABLE_ID
    if target.content_key and handle.content_key == target.content_key:
        return MatchStrategy.CONTENT_KEY
    return None


def resolve_remote(
    target: TargetComponent,
    component_ref: str | None,
    node_name: str,
    index: ComponentIdentityIndex,
    *,
    name_fallback: bool = True,
) -> MatchStrategy | None:
    """Match a serialized instance by its raw component reference.

    Returns the strategy that matched, or None.
    """
    ref = str(component_ref).strip() if component_ref else ""
    key = str(target.content_key).strip()
    stable_id = str(target.stable_id).strip()

    if ref:
        if key and ref == key:
            return MatchStrategy.CONTENT_KEY
        if stable_id and ref == stable_id:
            return MatchStrategy.STABLE_ID
        local_id = index.local_id_for(key) if key else None
        if local_id and ref == local_id:
            return MatchStrategy.LOCAL_ID
        mapped_key = index.content_key_for(ref)
        if key and mapped_key == key:
            return MatchStrategy.REVERSE_LOOKUP

    if name_fallback and target.display_name and node_name == target.display_name:
        return MatchStrategy.DISPLAY_NAME
    return None
