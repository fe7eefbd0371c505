"""
Mapping Store

In-memory keyed collection of mappings backed by a storage directory:

- index.json: metadata of record, {"mappings": [{id, pattern, regexPattern, contentLength}]}
- <id>.txt: the content of one mapping, loaded lazily

The whole index is rewritten on every mutation. Mutations are serialized
by one lock; reads work on snapshots and never take it.
"""

import json
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles
import structlog

from mimic.core.exceptions import InvalidPattern, PersistenceFailure, StorageCorrupt
from .models import Mapping

logger = structlog.get_logger()

INDEX_FILENAME = "index.json"
CONTENT_SUFFIX = ".txt"


class MappingStore:
    """
    Durable store for mappings

    Persistence failures after an in-memory mutation are logged and
    swallowed: for the rest of the process lifetime memory is the source
    of truth. An unreadable index at startup is fatal.
    """

    def __init__(self, storage_dir: Union[str, Path]):
        """
        Args:
            storage_dir: Directory holding index.json and content files
        """
        self.storage_dir = Path(storage_dir).resolve()
        self.index_path = self.storage_dir / INDEX_FILENAME
        self.logger = logger.bind(component="mapping_store")

        self._mappings: Dict[str, Mapping] = {}
        self._lock = threading.Lock()
        self._initialized = False

        self.stats = {
            "index_writes": 0,
            "content_writes": 0,
            "content_loads": 0,
            "persistence_failures": 0
        }

    def initialize(self) -> int:
        """
        Create the storage directory and load the index

        Content files are not read here.

        Returns:
            Number of mappings loaded

        Raises:
            StorageCorrupt: the index exists but cannot be read or parsed
        """
        if self._initialized:
            return len(self._mappings)

        self.storage_dir.mkdir(parents=True, exist_ok=True)

        mappings: Dict[str, Mapping] = {}
        for entry in self._read_index():
            try:
                mapping = Mapping.from_index_entry(entry)
            except (KeyError, TypeError, ValueError, InvalidPattern) as e:
                raise StorageCorrupt(f"Invalid index entry {entry!r}: {e}") from e
            mappings[mapping.id] = mapping

        with self._lock:
            self._mappings = mappings
            self._initialized = True

        self.logger.info(
            "Mapping store initialized",
            storage_dir=str(self.storage_dir),
            mappings=len(mappings)
        )
        return len(mappings)

    def _read_index(self) -> List[dict]:
        """Read raw index entries; a missing file is an empty index"""
        try:
            raw = self.index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self.logger.debug("No index file, starting empty", index=str(self.index_path))
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise StorageCorrupt(f"Cannot read {self.index_path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageCorrupt(f"Cannot parse {self.index_path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageCorrupt(f"{self.index_path} must hold a JSON object")

        entries = data.get("mappings") or []
        if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
            raise StorageCorrupt(f"{self.index_path}: 'mappings' must be a list of objects")

        return entries

    # Reads

    def get(self, mapping_id: str) -> Optional[Mapping]:
        """Metadata lookup, no I/O"""
        return self._mappings.get(mapping_id)

    def all(self) -> List[Mapping]:
        """Snapshot of all mappings in insertion order"""
        return list(self._mappings.values())

    def find_by_pattern(self, source: str) -> Optional[Mapping]:
        for mapping in self.all():
            if mapping.pattern == source:
                return mapping
        return None

    def find_by_regex(self, source: str) -> Optional[Mapping]:
        for mapping in self.all():
            if mapping.regex_pattern == source:
                return mapping
        return None

    def find_by_source(self, source: str) -> Optional[Mapping]:
        """Find a mapping whose pattern or regex source equals ``source``"""
        return self.find_by_pattern(source) or self.find_by_regex(source)

    def find_match(self, url: str) -> Optional[Mapping]:
        """
        Find the mapping that applies to ``url``

        Glob/exact mappings are checked first, regex mappings second, so a
        literal mapping is never shadowed by a broader regex registered
        earlier. Within each pass insertion order decides.
        """
        snapshot = self.all()

        for mapping in snapshot:
            if mapping.kind == "pattern" and mapping.matches(url):
                return mapping

        for mapping in snapshot:
            if mapping.kind == "regex" and mapping.matches(url):
                return mapping

        return None

    async def hydrate(self, mapping: Mapping) -> Mapping:
        """
        Load and cache a mapping's content if it is not in memory yet

        Runs without the mutation lock. Read failures are logged and the
        mapping is returned without content.
        """
        if mapping.content_loaded or not mapping.has_content:
            return mapping

        content_path = self._content_path(mapping.id)
        try:
            async with aiofiles.open(content_path, "rb") as f:
                content = await f.read()
        except FileNotFoundError:
            self.logger.warning(
                "Content file missing",
                mapping_id=mapping.id,
                path=str(content_path)
            )
            return mapping
        except OSError as e:
            self.logger.error("Failed to load content", mapping_id=mapping.id, error=str(e))
            return mapping

        # Content set while we were reading wins over what was on disk
        if not mapping.content_loaded:
            mapping.content = content
            self.stats["content_loads"] += 1
            self.logger.debug("Content loaded", mapping_id=mapping.id, size=len(content))

        return mapping

    # Writes

    def set(self, mapping_id: str, mapping: Mapping, write_content: bool = True):
        """
        Upsert a mapping and persist it

        Rewrites the whole index, then the content file if content is
        present and ``write_content`` is set.
        """
        if mapping.id != mapping_id:
            raise ValueError(f"Mapping id {mapping.id!r} does not match key {mapping_id!r}")

        with self._lock:
            self._mappings[mapping_id] = mapping
            try:
                self._persist_index()
                if write_content and mapping.content is not None:
                    self._write_content(mapping_id, mapping.content)
            except PersistenceFailure as e:
                self.stats["persistence_failures"] += 1
                self.logger.error(
                    "Persistence failed, keeping in-memory state",
                    mapping_id=mapping_id,
                    error=str(e)
                )

    def delete(self, mapping_id: str) -> bool:
        """
        Remove a mapping and its content file

        Returns:
            False if the id was unknown (nothing is written), True otherwise
        """
        with self._lock:
            if mapping_id not in self._mappings:
                return False

            del self._mappings[mapping_id]
            try:
                self._persist_index()
                self._delete_content(mapping_id)
            except PersistenceFailure as e:
                self.stats["persistence_failures"] += 1
                self.logger.error(
                    "Persistence failed on delete, keeping in-memory state",
                    mapping_id=mapping_id,
                    error=str(e)
                )

        return True

    def discard_content(self, mapping_id: str):
        """Delete a mapping's content file, leaving its metadata alone"""
        with self._lock:
            try:
                self._delete_content(mapping_id)
            except PersistenceFailure as e:
                self.stats["persistence_failures"] += 1
                self.logger.error("Failed to discard content", mapping_id=mapping_id, error=str(e))

    def _persist_index(self):
        """Rewrite index.json through a temp file so readers never see a partial index"""
        index = {"mappings": [m.to_index_entry() for m in self._mappings.values()]}
        tmp_path = self.index_path.with_name(INDEX_FILENAME + ".tmp")
        try:
            tmp_path.write_text(json.dumps(index, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.index_path)
        except OSError as e:
            raise PersistenceFailure(f"Failed to write {self.index_path}: {e}") from e
        self.stats["index_writes"] += 1

    def _content_path(self, mapping_id: str) -> Path:
        if not mapping_id or Path(mapping_id).name != mapping_id:
            raise ValueError(f"Unsafe mapping id: {mapping_id!r}")
        return self.storage_dir / f"{mapping_id}{CONTENT_SUFFIX}"

    def _write_content(self, mapping_id: str, content: bytes):
        try:
            self._content_path(mapping_id).write_bytes(content)
        except OSError as e:
            raise PersistenceFailure(f"Failed to write content for {mapping_id}: {e}") from e
        self.stats["content_writes"] += 1

    def _delete_content(self, mapping_id: str):
        try:
            self._content_path(mapping_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceFailure(f"Failed to delete content for {mapping_id}: {e}") from e

    def __len__(self):
        return len(self._mappings)

    def __contains__(self, mapping_id):
        return mapping_id in self._mappings
