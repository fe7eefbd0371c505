"""
Upstream forwarder

Sends a proxied request to its target with a bounded timeout. Timeouts
surface as ForwardTimeout (Gateway Timeout) and connection problems as
ForwardFailure (Bad Gateway), never as a hang.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import aiohttp
import structlog

from mimic.core.exceptions import ForwardFailure, ForwardTimeout

logger = structlog.get_logger()

# RFC 7230 hop-by-hop headers plus proxy-only ones
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})


def filter_hop_by_hop(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    return [(k, v) for k, v in headers if k.lower() not in HOP_BY_HOP_HEADERS]


@dataclass
class ForwardedResponse:
    """Upstream response, body fully read"""

    status: int
    reason: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


class UpstreamForwarder:
    """
    aiohttp-based client that replays proxied requests upstream

    Bodies are passed through as received (no decompression), so
    Content-Encoding from upstream stays valid.
    """

    def __init__(self, timeout_seconds: float = 30.0, verify_ssl: bool = True):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.verify_ssl = verify_ssl
        self.logger = logger.bind(component="forwarder")
        self._session: Optional[aiohttp.ClientSession] = None

        self.stats = {
            "forwarded": 0,
            "timeouts": 0,
            "failures": 0
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                auto_decompress=False,
                connector=aiohttp.TCPConnector(ssl=self.verify_ssl)
            )
        return self._session

    async def forward(
        self,
        method: str,
        url: str,
        headers: Iterable[Tuple[str, str]] = (),
        body: Optional[bytes] = None
    ) -> ForwardedResponse:
        """
        Forward a request and return the upstream response

        Raises:
            ForwardTimeout: upstream did not answer within the timeout
            ForwardFailure: upstream could not be reached
        """
        session = await self._get_session()
        # aiohttp derives Host from the target URL
        request_headers = [
            (k, v) for k, v in filter_hop_by_hop(headers) if k.lower() != "host"
        ]

        try:
            async with session.request(
                method,
                url,
                headers=request_headers,
                data=body or None,
                allow_redirects=False
            ) as response:
                payload = await response.read()
                forwarded = ForwardedResponse(
                    status=response.status,
                    reason=response.reason or "",
                    headers=filter_hop_by_hop(response.headers.items()),
                    body=payload
                )
        except asyncio.TimeoutError as e:
            self.stats["timeouts"] += 1
            self.logger.warning("Upstream timeout", method=method, url=url)
            raise ForwardTimeout(f"Upstream did not answer in {self.timeout.total}s: {url}") from e
        except aiohttp.ClientError as e:
            self.stats["failures"] += 1
            self.logger.warning("Upstream unreachable", method=method, url=url, error=str(e))
            raise ForwardFailure(f"Upstream request failed: {e}") from e

        self.stats["forwarded"] += 1
        self.logger.debug("Request forwarded", method=method, url=url, status=forwarded.status)
        return forwarded

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
