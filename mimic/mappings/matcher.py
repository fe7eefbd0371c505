"""
Pattern Matcher

Compiles mapping patterns once, when they are set, and tests request
target URLs against them. Two kinds exist:

- pattern: an exact URL or a glob (``*``, ``**``, ``?``, ``[...]``)
- regex: a regular expression searched anywhere in the URL

URLs are matched as plain strings, never decomposed.
"""

import fnmatch
import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Pattern, Union
from urllib.parse import urlparse

from mimic.core.exceptions import InvalidPattern


@dataclass(frozen=True)
class GlobMatcher:
    """Exact or glob-style match against the whole URL"""

    source: str
    compiled: Pattern = field(repr=False, compare=False)

    kind: ClassVar[str] = "pattern"

    def matches(self, url: str) -> bool:
        # Literal URLs may contain '?' or '[' that glob would treat specially
        if url == self.source:
            return True
        return self.compiled.match(url) is not None


@dataclass(frozen=True)
class RegexMatcher:
    """Regular expression searched within the URL"""

    source: str
    compiled: Pattern = field(repr=False, compare=False)

    kind: ClassVar[str] = "regex"

    def matches(self, url: str) -> bool:
        return self.compiled.search(url) is not None


Matcher = Union[GlobMatcher, RegexMatcher]


def _check_glob_syntax(source: str):
    """Reject unterminated character classes, which fnmatch would silently treat as literals"""
    i, n = 0, len(source)
    while i < n:
        if source[i] == "[":
            j = i + 1
            if j < n and source[j] == "!":
                j += 1
            # A leading ']' is a literal member of the class
            if j < n and source[j] == "]":
                j += 1
            while j < n and source[j] != "]":
                j += 1
            if j >= n:
                raise InvalidPattern(source, f"unterminated character class at position {i}")
            i = j
        i += 1


def compile_glob(source: str) -> GlobMatcher:
    """
    Compile an exact-URL or glob pattern

    Args:
        source: Pattern string

    Returns:
        GlobMatcher

    Raises:
        InvalidPattern: empty pattern or malformed character class
    """
    if not isinstance(source, str) or not source:
        raise InvalidPattern(str(source), "pattern must be a non-empty string")

    _check_glob_syntax(source)

    try:
        compiled = re.compile(fnmatch.translate(source))
    except re.error as e:
        raise InvalidPattern(source, str(e)) from e

    return GlobMatcher(source=source, compiled=compiled)


def compile_regex(source: str) -> RegexMatcher:
    """
    Compile a regular expression pattern

    Raises:
        InvalidPattern: empty pattern or re.error on compile
    """
    if not isinstance(source, str) or not source:
        raise InvalidPattern(str(source), "regular expression must be a non-empty string")

    try:
        compiled = re.compile(source)
    except re.error as e:
        raise InvalidPattern(source, str(e)) from e

    return RegexMatcher(source=source, compiled=compiled)


def matches(matcher: Optional[Matcher], url: str) -> bool:
    """Pure predicate: does ``url`` satisfy ``matcher``? A missing matcher matches nothing."""
    if matcher is None or not url:
        return False
    return matcher.matches(url)


def is_concrete_url(source: Optional[str]) -> bool:
    """
    Check whether a pattern is itself a usable forwarding target

    True for absolute http(s) URLs with a host and no glob wildcards
    or character classes.
    """
    if not source or "*" in source or "[" in source:
        return False

    parsed = urlparse(source)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
