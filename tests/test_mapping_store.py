"""
Test MappingStore persistence: index layout, lazy content, corrupt storage
"""

import json

import pytest

from mimic.core.exceptions import StorageCorrupt
from mimic.mappings.matcher import compile_glob, compile_regex
from mimic.mappings.models import Mapping
from mimic.mappings.storage import MappingStore


def _mapping(mapping_id, pattern=None, regex=None, content=None):
    matcher = compile_glob(pattern) if pattern else compile_regex(regex)
    return Mapping(mapping_id, matcher=matcher, content=content)


def test_empty_directory_initializes_empty(tmp_path):
    """A missing index is an empty store, not an error"""
    store = MappingStore(tmp_path / "fresh")

    assert store.initialize() == 0
    assert (tmp_path / "fresh").is_dir(), "Storage directory should be created"
    assert not store.index_path.exists(), "Initialize must not write an index"


def test_index_layout(store):
    store.set("a1", _mapping("a1", pattern="https://api.example.com/users", content=b"[]"))
    store.set("b2", _mapping("b2", regex=r"cdn\.example\.com"))

    data = json.loads(store.index_path.read_text(encoding="utf-8"))

    assert data == {"mappings": [
        {"id": "a1", "pattern": "https://api.example.com/users", "regexPattern": None, "contentLength": 2},
        {"id": "b2", "pattern": None, "regexPattern": r"cdn\.example\.com", "contentLength": 0},
    ]}
    assert (store.storage_dir / "a1.txt").read_bytes() == b"[]"
    assert not (store.storage_dir / "b2.txt").exists(), "No content file without content"


async def test_restart_restores_metadata_without_reading_content(storage_dir):
    """Content stays on disk until a mapping is hydrated"""
    first = MappingStore(storage_dir)
    first.initialize()
    first.set("a1", _mapping("a1", pattern="https://example.com/app.js", content=b"const a = 1;"))

    second = MappingStore(storage_dir)
    assert second.initialize() == 1

    mapping = second.get("a1")
    assert mapping.pattern == "https://example.com/app.js"
    assert mapping.content_loaded is False, "Content must not be read at startup"
    assert mapping.content_length == 12
    assert mapping.has_content is True
    assert second.stats["content_loads"] == 0

    await second.hydrate(mapping)

    assert mapping.content == b"const a = 1;"
    assert second.stats["content_loads"] == 1

    # Second hydrate is served from memory
    await second.hydrate(mapping)
    assert second.stats["content_loads"] == 1


async def test_hydrate_missing_content_file(storage_dir):
    first = MappingStore(storage_dir)
    first.initialize()
    first.set("a1", _mapping("a1", pattern="https://example.com/", content=b"hello"))
    (storage_dir / "a1.txt").unlink()

    second = MappingStore(storage_dir)
    second.initialize()
    mapping = await second.hydrate(second.get("a1"))

    assert mapping.content is None, "Missing content file leaves the mapping without content"


@pytest.mark.parametrize("raw", [
    "{not json",
    "[1, 2, 3]",
    '{"mappings": "nope"}',
    '{"mappings": [{"pattern": "https://example.com/"}]}',
    '{"mappings": [{"id": "x", "regexPattern": "("}]}',
])
def test_corrupt_index_is_fatal(storage_dir, raw):
    storage_dir.mkdir(parents=True)
    (storage_dir / "index.json").write_text(raw, encoding="utf-8")

    with pytest.raises(StorageCorrupt):
        MappingStore(storage_dir).initialize()


def test_delete_unknown_id_writes_nothing(store):
    store.set("a1", _mapping("a1", pattern="https://example.com/"))
    before = store.index_path.read_bytes()
    writes = store.stats["index_writes"]

    assert store.delete("missing") is False
    assert store.index_path.read_bytes() == before
    assert store.stats["index_writes"] == writes, "No index rewrite for an unknown id"


def test_delete_removes_content_file(store):
    store.set("a1", _mapping("a1", pattern="https://example.com/", content=b"x"))
    content_path = store.storage_dir / "a1.txt"
    assert content_path.exists()

    assert store.delete("a1") is True
    assert "a1" not in store
    assert not content_path.exists()
    assert json.loads(store.index_path.read_text(encoding="utf-8")) == {"mappings": []}


def test_persistence_failure_keeps_memory_state(store):
    """A failed index write is logged, memory stays authoritative"""
    # A directory in the index's place makes the atomic rename fail
    store.index_path.mkdir()

    store.set("a1", _mapping("a1", pattern="https://example.com/", content=b"x"))

    assert store.get("a1") is not None
    assert store.stats["persistence_failures"] == 1
    assert store.stats["index_writes"] == 0


def test_set_rejects_mismatched_id(store):
    with pytest.raises(ValueError):
        store.set("other", _mapping("a1", pattern="https://example.com/"))


def test_find_match_prefers_patterns_over_regex(store):
    store.set("r1", _mapping("r1", regex=r"example\.com"))
    store.set("p1", _mapping("p1", pattern="https://example.com/*"))

    assert store.find_match("https://example.com/page").id == "p1"
    assert store.find_match("http://sub.example.com/").id == "r1"
    assert store.find_match("https://other.org/") is None
