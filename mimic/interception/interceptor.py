"""
mitmproxy Addon for Content Substitution

Hooks into mitmproxy's event system, asks the decision engine what to do
with every request, and serves mimicked content, redirects, or lets the
flow continue untouched.
"""

from typing import Optional

import structlog
from mitmproxy import http

from .decision import Action, Decision, InterceptDecisionEngine
from .responder import build_substituted_response

logger = structlog.get_logger()

METADATA_KEY = "mimic_decision"


class MimicInterceptor:
    """
    mitmproxy addon applying mimic decisions

    This addon hooks into mitmproxy's event lifecycle:
    - request: decide; SERVE answers without contacting upstream,
      FORWARD to a mapped target rewrites the request URL
    - response: with substitute_on_response, swap the upstream body for
      the mapping's content while keeping upstream headers
    - error: log connection/request errors
    """

    def __init__(self, engine: InterceptDecisionEngine, substitute_on_response: bool = False):
        """
        Initialize the interceptor

        Args:
            engine: Shared decision engine
            substitute_on_response: Defer SERVE to the response hook
        """
        self.engine = engine
        self.substitute_on_response = substitute_on_response
        self.logger = logger.bind(component="interceptor")

        # Statistics
        self.stats = {
            "requests_seen": 0,
            "served": 0,
            "redirected": 0,
            "passed_through": 0,
            "errors": 0
        }

    def load(self, loader):
        """Called when the addon is loaded"""
        self.logger.info(
            "MimicInterceptor addon loaded",
            substitute_on_response=self.substitute_on_response
        )

    async def request(self, flow: http.HTTPFlow):
        """
        Called when a request is received

        Args:
            flow: mitmproxy HTTP flow object
        """
        try:
            self.stats["requests_seen"] += 1
            url = flow.request.pretty_url if flow.request else None

            decision = await self.engine.decide(url)
            flow.metadata[METADATA_KEY] = decision.action.value

            if decision.action is Action.SERVE:
                if self.substitute_on_response:
                    # Picked up again in the response hook
                    flow.metadata["mimic_mapping_id"] = decision.mapping.id
                    return
                self._serve(flow, decision)

            elif decision.action is Action.FORWARD and decision.is_redirect:
                self._redirect(flow, decision)

            else:
                self.stats["passed_through"] += 1

        except Exception as e:
            self.logger.error(
                "Error in request hook",
                error=str(e),
                url=flow.request.pretty_url if flow.request else None
            )
            self.stats["errors"] += 1

    async def response(self, flow: http.HTTPFlow):
        """
        Called when a response is received

        Only acts on flows whose SERVE was deferred by the request hook.

        Args:
            flow: mitmproxy HTTP flow object
        """
        mapping_id = flow.metadata.get("mimic_mapping_id")
        if not mapping_id or flow.metadata.get("mimic_served"):
            return

        try:
            mapping = await self.engine.service.get_mapping(mapping_id, hydrate=True)
            if mapping is None or mapping.content is None:
                self.logger.warning(
                    "Mapping vanished before response substitution",
                    mapping_id=mapping_id,
                    url=flow.request.pretty_url
                )
                return

            upstream_headers = flow.response.headers.items(multi=True) if flow.response else None
            substituted = build_substituted_response(mapping, upstream_headers)
            flow.response = http.Response.make(
                substituted.status_code,
                substituted.body,
                substituted.headers
            )
            flow.metadata["mimic_served"] = True
            self.stats["served"] += 1

            self.logger.info(
                "Replaced upstream response with mimicked content",
                url=flow.request.pretty_url,
                mapping_id=mapping.id,
                content_type=substituted.content_type,
                size=len(substituted.body)
            )

        except Exception as e:
            self.logger.error("Error in response hook", error=str(e), url=flow.request.pretty_url)
            self.stats["errors"] += 1

    def error(self, flow: http.HTTPFlow):
        """
        Called when an error occurs

        Args:
            flow: mitmproxy HTTP flow object
        """
        error_msg = str(flow.error) if flow.error else "Unknown error"
        self.logger.warning(
            "Flow error",
            url=flow.request.pretty_url if flow.request else "unknown",
            error=error_msg
        )
        self.stats["errors"] += 1

    def _serve(self, flow: http.HTTPFlow, decision: Decision):
        """Answer the flow from the mapping without contacting upstream"""
        substituted = build_substituted_response(decision.mapping)
        flow.response = http.Response.make(
            substituted.status_code,
            substituted.body,
            substituted.headers
        )
        flow.metadata["mimic_served"] = True
        self.stats["served"] += 1

        self.logger.info(
            "Returning mimicked content",
            url=decision.url,
            mapping_id=decision.mapping.id,
            content_type=substituted.content_type,
            size=len(substituted.body)
        )

    def _redirect(self, flow: http.HTTPFlow, decision: Decision):
        """Point the flow at the mapping's target URL"""
        original: Optional[str] = flow.request.pretty_url
        flow.request.url = decision.target
        self.stats["redirected"] += 1

        self.logger.debug(
            "Redirecting proxy request",
            original_url=original,
            mapped_url=decision.target,
            mapping_id=decision.mapping.id if decision.mapping else None
        )

    def get_stats(self) -> dict:
        """Get interceptor statistics"""
        return self.stats.copy()
