"""
Target URL extraction for proxied requests
"""

from typing import Mapping as MappingType, Optional
from urllib.parse import urlsplit

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def _is_local(host: str) -> bool:
    """Host header names this proxy itself (port ignored)"""
    try:
        hostname = urlsplit(f"//{host}").hostname
    except ValueError:
        return False
    return hostname in LOCAL_HOSTS


def extract_target_url(
    method: str,
    raw_target: str,
    headers: Optional[MappingType[str, str]] = None,
    secure: bool = False
) -> Optional[str]:
    """
    Work out the absolute URL a proxied request is aimed at

    Handles, in order:
    - CONNECT requests (``host:port`` becomes ``https://host:port``)
    - absolute-form request targets (``http://host/path``)
    - targets prefixed with a slash (``/http://host/path``)
    - origin-form targets resolved with a non-local Host header

    Args:
        method: Request method
        raw_target: Request target exactly as received
        headers: Request headers
        secure: Whether the client connection is TLS

    Returns:
        Absolute URL, or None if no target can be determined
    """
    raw_target = raw_target or ""

    if method.upper() == "CONNECT":
        return f"https://{raw_target}" if raw_target else None

    if raw_target.startswith(("http://", "https://")):
        return raw_target

    if raw_target.startswith(("/http://", "/https://")):
        return raw_target[1:]

    host = None
    if headers:
        host = headers.get("host") or headers.get("Host")

    if host and not _is_local(host):
        scheme = "https" if secure else "http"
        path = raw_target if raw_target.startswith("/") else f"/{raw_target}"
        return f"{scheme}://{host}{path}"

    return None
