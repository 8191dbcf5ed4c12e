"""Tests for component identity resolution."""

from component_radar.identity import (
    ComponentHandle,
    ComponentIdentityIndex,
    MatchStrategy,
    TargetComponent,
    resolve_live,
    resolve_remote,
)


def _target(**kw) -> TargetComponent:
    defaults = {"stable_id": "1:1", "content_key": "K", "display_name": "Button"}
    defaults.update(kw)
    return TargetComponent(**defaults)


def _index(**pairs) -> ComponentIdentityIndex:
    index = ComponentIdentityIndex()
    for content_key, local_id in pairs.items():
        index.add(content_key, local_id)
    return index


def test_content_key_match():
    assert resolve_remote(_target(), "K", "Anything", _index()) is MatchStrategy.CONTENT_KEY


def test_content_key_wins_over_local_id():
    # the decoy index maps "K" as a local id too; the key comparison runs first
    index = _index(K="K")
    assert resolve_remote(_target(), "K", "Button", index) is MatchStrategy.CONTENT_KEY


def test_stable_id_match():
    assert resolve_remote(_target(), "1:1", "Other", _index()) is MatchStrategy.STABLE_ID


def test_local_id_match():
    assert resolve_remote(_target(), "55:3", "Other", _index(K="55:3")) is MatchStrategy.LOCAL_ID


def test_reverse_lookup_match():
    # two local ids for one key: the later one wins the forward map
    index = ComponentIdentityIndex.from_manifest({
        "55:3": {"key": "K"},
        "77:1": {"key": "K"},
    })
    assert index.local_id_for("K") == "77:1"
    assert resolve_remote(_target(), "55:3", "Other", index) is MatchStrategy.REVERSE_LOOKUP


def test_ref_is_trimmed():
    assert resolve_remote(_target(), "  K \n", "Other", _index()) is MatchStrategy.CONTENT_KEY


def test_name_fallback():
    assert resolve_remote(_target(), "unknown", "Button", _index()) is MatchStrategy.DISPLAY_NAME


def test_name_fallback_without_ref():
    assert resolve_remote(_target(), None, "Button", _index()) is MatchStrategy.DISPLAY_NAME
    assert resolve_remote(_target(), "", "Button", _index()) is MatchStrategy.DISPLAY_NAME


def test_name_fallback_disabled():
    assert resolve_remote(_target(), "unknown", "Button", _index(), name_fallback=False) is None


def test_no_match():
    assert resolve_remote(_target(), "unknown", "Card", _index(other="unknown")) is None


def test_empty_target_key_never_matches_empty_ref():
    target = _target(content_key="", stable_id="")
    assert resolve_remote(target, "", "Card", _index()) is None


def test_index_from_rest_manifest():
    index = ComponentIdentityIndex.from_manifest({
        "1:23": {"key": "abc", "name": "Button"},
        "9:9": {"key": "lib", "name": "Icon", "remote": True},
        "bad": "not a dict",
    })
    assert len(index) == 2
    assert index.local_id_for("abc") == "1:23"
    assert index.content_key_for("9:9") == "lib"
    assert index.defines_locally("abc")
    assert not index.defines_locally("lib")
    assert "lib" in index


def test_index_from_key_manifest():
    index = ComponentIdentityIndex.from_manifest({
        "abc": {"node_id": "1:23"},
        "def": {"nodeId": "4:5"},
        "nothing": {},
    })
    assert index.local_id_for("abc") == "1:23"
    assert index.local_id_for("def") == "4:5"
    assert "nothing" not in index


def test_index_from_missing_manifest():
    assert len(ComponentIdentityIndex.from_manifest(None)) == 0


def test_resolve_live():
    target = _target()
    assert resolve_live(target, ComponentHandle("1:1", "other")) is MatchStrategy.STABLE_ID
    assert resolve_live(target, ComponentHandle("2:2", "K")) is MatchStrategy.CONTENT_KEY
    assert resolve_live(target, ComponentHandle("2:2", "other")) is None
    assert resolve_live(target, None) is None


def test_target_round_trip():
    target = _target(variant_properties={"Size": "Large"}, library_name="DS", origin_file_key="f1")
    assert TargetComponent.from_dict(target.to_dict()) == target
