"""
Error taxonomy for the mapping engine and its transports

Errors raised to the immediate caller:
- InvalidPattern: glob or regex rejected when it is set
- InvalidArgument: ambiguous or missing create parameters
- NotFound: operation on an unknown mapping id

Errors with a fixed handling policy:
- StorageCorrupt: index unreadable at startup, fatal
- PersistenceFailure: disk write failed after the in-memory mutation, logged and swallowed
- ForwardTimeout / ForwardFailure: upstream forwarding failed, surfaced as 504 / 502
"""


class MimicError(Exception):
    """Base class for all mimic errors"""


class InvalidPattern(MimicError, ValueError):
    """A glob or regular expression could not be compiled"""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid pattern {source!r}: {reason}")


class InvalidArgument(MimicError, ValueError):
    """Create parameters were missing or ambiguous"""


class NotFound(MimicError, KeyError):
    """No mapping exists for the given id"""

    def __init__(self, mapping_id: str):
        self.mapping_id = mapping_id
        super().__init__(mapping_id)

    def __str__(self):
        return f"Mapping not found: {self.mapping_id}"


class StorageCorrupt(MimicError):
    """The mapping index exists but cannot be read or parsed"""


class PersistenceFailure(MimicError):
    """Writing mapping state to disk failed"""


class ForwardTimeout(MimicError):
    """Upstream did not answer within the forward timeout"""


class ForwardFailure(MimicError):
    """Upstream could not be reached"""
