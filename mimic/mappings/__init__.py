"""
Mapping engine

Components:
- Matcher: glob/exact and regex predicates compiled at set-time
- Mapping: pattern/regex variant plus optional content
- MappingStore: index.json + per-mapping content files
- MappingService: create-or-overwrite, lookup, content updates, deletion
"""

from .matcher import GlobMatcher, RegexMatcher, compile_glob, compile_regex, is_concrete_url
from .models import Mapping
from .storage import MappingStore
from .service import MappingService

__all__ = [
    "GlobMatcher",
    "RegexMatcher",
    "compile_glob",
    "compile_regex",
    "is_concrete_url",
    "Mapping",
    "MappingStore",
    "MappingService"
]
