"""
Mapping Service

Business logic on top of the MappingStore. This is the only entry point
transports, the API and the CLI use to read or change mappings.
"""

import threading
import uuid
from typing import Any, Dict, List, Optional, Union

import structlog

from mimic.core.exceptions import InvalidArgument, NotFound
from .matcher import Matcher, compile_glob, compile_regex
from .models import Mapping
from .storage import MappingStore

logger = structlog.get_logger()


class MappingService:
    """
    Create, look up, update and delete mimic mappings

    One instance is built at startup and handed to every collaborator.
    """

    def __init__(self, store: MappingStore):
        self.store = store
        self.logger = logger.bind(component="mapping_service")

        # Lookup-then-write sequences must not interleave across threads
        self._write_lock = threading.Lock()

        self.stats = {
            "created": 0,
            "overwritten": 0,
            "content_updates": 0,
            "deleted": 0
        }

    def initialize(self) -> int:
        """Load persisted mappings; StorageCorrupt propagates"""
        return self.store.initialize()

    def create_or_overwrite(
        self,
        pattern: Optional[str] = None,
        regex_pattern: Optional[str] = None
    ) -> Mapping:
        """
        Register a pattern or regex, reusing the mapping with the same source

        An existing mapping keeps its id, switches to the new kind and has
        its content reset. Otherwise a new mapping with a fresh id is created.

        Args:
            pattern: Exact URL or glob
            regex_pattern: Regular expression source

        Returns:
            The created or overwritten mapping

        Raises:
            InvalidArgument: both or neither argument given
            InvalidPattern: the source does not compile (store unchanged)
        """
        if (pattern is None) == (regex_pattern is None):
            raise InvalidArgument("Exactly one of pattern or regexPattern must be provided")

        # Compile before touching the store
        if pattern is not None:
            matcher = compile_glob(pattern)
        else:
            matcher = compile_regex(regex_pattern)

        with self._write_lock:
            existing = self.store.find_by_source(matcher.source)
            if existing:
                return self._overwrite(existing, matcher)

            mapping = Mapping(str(uuid.uuid4()), matcher=matcher)
            self.store.set(mapping.id, mapping)

        self.stats["created"] += 1
        self.logger.info(
            "Mapping created",
            mapping_id=mapping.id,
            kind=matcher.kind,
            source=matcher.source
        )
        return mapping

    def _overwrite(self, existing: Mapping, matcher: Matcher) -> Mapping:
        """Reuse an existing mapping for a re-registered source; caller holds the write lock"""
        had_content = existing.content_loaded or existing.has_content
        existing.matcher = matcher
        existing.content = None
        self.store.set(existing.id, existing)
        if had_content:
            self.store.discard_content(existing.id)

        self.stats["overwritten"] += 1
        self.logger.info(
            "Mapping overwritten",
            mapping_id=existing.id,
            kind=matcher.kind,
            source=matcher.source
        )
        return existing

    async def get_mapping(self, mapping_id: str, hydrate: bool = True) -> Optional[Mapping]:
        """
        Fetch a mapping by id

        Args:
            mapping_id: Mapping id
            hydrate: Load content from storage if it is not cached
        """
        mapping = self.store.get(mapping_id)
        if mapping is None:
            return None
        if hydrate:
            await self.store.hydrate(mapping)
        return mapping

    async def find_match(self, url: str, hydrate: bool = True) -> Optional[Mapping]:
        """
        Find the mapping for a request target URL

        Glob/exact mappings take precedence over regex mappings.
        """
        if not url:
            return None

        mapping = self.store.find_match(url)
        if mapping is not None and hydrate:
            await self.store.hydrate(mapping)
        return mapping

    def set_content(self, mapping_id: str, content: Union[bytes, str]) -> Mapping:
        """
        Replace a mapping's content and persist index and content file

        Raises:
            NotFound: unknown id
        """
        if isinstance(content, str):
            content = content.encode("utf-8")

        with self._write_lock:
            mapping = self.store.get(mapping_id)
            if mapping is None:
                raise NotFound(mapping_id)

            mapping.content = content
            self.store.set(mapping_id, mapping)

        self.stats["content_updates"] += 1
        self.logger.info("Mapping content updated", mapping_id=mapping_id, size=len(content))
        return mapping

    def delete_mapping(self, mapping_id: str) -> bool:
        """Delete a mapping; False if the id was unknown"""
        with self._write_lock:
            deleted = self.store.delete(mapping_id)
        if deleted:
            self.stats["deleted"] += 1
            self.logger.info("Mapping deleted", mapping_id=mapping_id)
        return deleted

    def list_with_metadata(self) -> List[Dict[str, Any]]:
        """Metadata projection of every mapping, content not loaded"""
        return [mapping.to_metadata() for mapping in self.store.all()]

    def __len__(self):
        return len(self.store)
