"""
Substituted response synthesis

Builds the response served in place of the real upstream one and writes
it through whatever response-writing capability a transport offers.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping as MappingType, Optional, Protocol, Tuple, Union

import structlog

from mimic.mappings.models import Mapping
from .content_type import detect_content_type

logger = structlog.get_logger()

# Framing and type headers from upstream never survive substitution
STRIPPED_HEADERS = frozenset({
    "content-length",
    "content-encoding",
    "transfer-encoding",
    "content-type",
})

HeaderValue = Union[str, Iterable[str]]
HeaderSource = Union[MappingType[str, HeaderValue], Iterable[Tuple[str, str]]]


@dataclass
class SubstitutedResponse:
    """Status, headers and body of a mimicked response"""

    body: bytes
    content_type: str
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


class ResponseWriter(Protocol):
    """Minimal response-writing capability supplied by a transport"""

    @property
    def headers_sent(self) -> bool: ...

    async def write_head(self, status_code: int, headers: Dict[str, str]) -> None: ...

    async def write(self, chunk: bytes) -> None: ...

    async def end(self) -> None: ...


def _iter_headers(upstream_headers: HeaderSource) -> Iterable[Tuple[str, str]]:
    items = upstream_headers.items() if hasattr(upstream_headers, "items") else upstream_headers
    for key, value in items:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        yield str(key), str(value)


def build_substituted_response(
    mapping: Mapping,
    upstream_headers: Optional[HeaderSource] = None
) -> SubstitutedResponse:
    """
    Build the mimicked response for a mapping with content

    Args:
        mapping: Mapping whose content is loaded
        upstream_headers: Headers of the real response, if one was received

    Returns:
        SubstitutedResponse with status 200, sniffed Content-Type and a
        Content-Length recomputed from the body

    Raises:
        ValueError: the mapping has no loaded content
    """
    if mapping.content is None:
        raise ValueError(f"Mapping {mapping.id} has no content")

    body = mapping.content
    content_type = detect_content_type(body)

    headers: Dict[str, str] = {}
    if upstream_headers:
        for key, value in _iter_headers(upstream_headers):
            if key.lower() in STRIPPED_HEADERS:
                continue
            # Repeated headers are folded into one value
            headers[key] = f"{headers[key]}, {value}" if key in headers else value

    headers["Content-Type"] = content_type
    headers["Content-Length"] = str(len(body))

    return SubstitutedResponse(
        body=body,
        content_type=content_type,
        status_code=200,
        headers=headers
    )


async def send_substituted(
    writer: ResponseWriter,
    response: SubstitutedResponse,
    target_url: Optional[str] = None
) -> bool:
    """
    Write a substituted response: head (if not already sent), body, end

    Returns:
        True if the body was fully written, False if the client went away
    """
    if writer.headers_sent:
        logger.debug("Headers already sent, skipping header rewrite", url=target_url)
    else:
        await writer.write_head(response.status_code, response.headers)

    try:
        await writer.write(response.body)
        await writer.end()
    except ConnectionResetError:
        logger.info("Client disconnected during mimicked response", url=target_url)
        return False

    return True
