"""
Mapping model

A mapping pairs exactly one match predicate (glob/exact pattern or regex)
with optional substituted content. The predicate is held as a tagged
variant so the "one kind at a time" rule is structural.
"""

from typing import Any, Dict, Optional

from .matcher import GlobMatcher, Matcher, RegexMatcher, compile_glob, compile_regex


class Mapping:
    """
    A persisted rule mapping a URL predicate to mimicked content

    ``content`` is None until it is set or hydrated from storage. For a
    mapping restored from the index, ``content_length`` reports the
    length recorded there until the content itself is loaded.
    """

    def __init__(
        self,
        mapping_id: str,
        matcher: Optional[Matcher] = None,
        content: Optional[bytes] = None,
        stored_length: int = 0
    ):
        self._id = mapping_id
        self.matcher = matcher
        self._content = content
        self._stored_length = stored_length

    @property
    def id(self) -> str:
        return self._id

    @property
    def kind(self) -> Optional[str]:
        return self.matcher.kind if self.matcher else None

    @property
    def pattern(self) -> Optional[str]:
        return self.matcher.source if isinstance(self.matcher, GlobMatcher) else None

    @property
    def regex_pattern(self) -> Optional[str]:
        return self.matcher.source if isinstance(self.matcher, RegexMatcher) else None

    @property
    def content(self) -> Optional[bytes]:
        return self._content

    @content.setter
    def content(self, value: Optional[bytes]):
        if value is not None and not isinstance(value, (bytes, bytearray)):
            raise TypeError("content must be bytes")
        self._content = bytes(value) if value is not None else None
        self._stored_length = len(self._content) if self._content is not None else 0

    @property
    def content_loaded(self) -> bool:
        return self._content is not None

    @property
    def content_length(self) -> int:
        if self._content is not None:
            return len(self._content)
        return self._stored_length

    @property
    def has_content(self) -> bool:
        return self.content_length > 0

    def set_pattern(self, source: str):
        """Switch to a glob/exact matcher, replacing any regex"""
        self.matcher = compile_glob(source)

    def set_regex_pattern(self, source: str):
        """Switch to a regex matcher, replacing any glob"""
        self.matcher = compile_regex(source)

    def matches(self, url: str) -> bool:
        return self.matcher is not None and self.matcher.matches(url)

    def to_index_entry(self) -> Dict[str, Any]:
        """Metadata record stored in index.json (content lives out of line)"""
        return {
            "id": self.id,
            "pattern": self.pattern,
            "regexPattern": self.regex_pattern,
            "contentLength": self.content_length,
        }

    @classmethod
    def from_index_entry(cls, entry: Dict[str, Any]) -> "Mapping":
        """
        Rebuild a mapping from its index record, without content

        Raises:
            KeyError: the record has no id
            InvalidPattern: the stored pattern no longer compiles
        """
        matcher: Optional[Matcher] = None
        if entry.get("pattern"):
            matcher = compile_glob(entry["pattern"])
        elif entry.get("regexPattern"):
            matcher = compile_regex(entry["regexPattern"])

        return cls(
            entry["id"],
            matcher=matcher,
            stored_length=int(entry.get("contentLength") or 0)
        )

    def to_metadata(self) -> Dict[str, Any]:
        """Read-only projection used by listings"""
        result: Dict[str, Any] = {"id": self.id}
        if self.pattern is not None:
            result["pattern"] = self.pattern
        if self.regex_pattern is not None:
            result["regexPattern"] = self.regex_pattern
        result["hasContent"] = self.has_content
        result["contentLength"] = self.content_length
        return result

    def __repr__(self):
        return f"Mapping(id={self.id!r}, kind={self.kind!r}, content_length={self.content_length})"
