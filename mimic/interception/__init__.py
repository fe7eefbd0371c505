"""
Request interception and content substitution

Components:
- Decision Engine: SERVE / FORWARD / PASS_THROUGH per request
- Responder: substituted response synthesis and writing
- Content Type: body sniffing for mimicked content
- Forwarder: bounded-timeout upstream client (aiohttp)
- Interceptor: mitmproxy addon
- Proxy Server: mitmproxy lifecycle management
- HTTP Proxy: plain HTTP forward proxy (aiohttp)
"""

from .decision import Action, Decision, InterceptDecisionEngine
from .content_type import detect_content_type
from .responder import SubstitutedResponse, build_substituted_response, send_substituted
from .forwarder import UpstreamForwarder
from .url_extractor import extract_target_url

__all__ = [
    "Action",
    "Decision",
    "InterceptDecisionEngine",
    "detect_content_type",
    "SubstitutedResponse",
    "build_substituted_response",
    "send_substituted",
    "UpstreamForwarder",
    "extract_target_url"
]
