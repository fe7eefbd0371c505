"""
Intercept Decision Engine

Maps a request target URL to exactly one terminal action:

- SERVE: answer with the mapping's content
- FORWARD: send the request to a target URL (the original one when no
  mapping applies, or the mapping's concrete URL when it has no content)
- PASS_THROUGH: leave the request untouched

None of these outcomes are errors.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from mimic.mappings.matcher import is_concrete_url
from mimic.mappings.models import Mapping
from mimic.mappings.service import MappingService

logger = structlog.get_logger()


class Action(str, Enum):
    SERVE = "serve"
    FORWARD = "forward"
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class Decision:
    """Outcome of deciding one request"""

    action: Action
    url: Optional[str]
    target: Optional[str] = None
    mapping: Optional[Mapping] = None
    reason: str = ""

    @property
    def is_redirect(self) -> bool:
        """FORWARD to somewhere other than the original target"""
        return self.action is Action.FORWARD and self.target != self.url


class InterceptDecisionEngine:
    """
    Decides SERVE / FORWARD / PASS_THROUGH for each request

    Shared by every transport; holds no per-request state.
    """

    def __init__(self, service: MappingService):
        self.service = service
        self.logger = logger.bind(component="decision_engine")

        self.stats = {
            Action.SERVE.value: 0,
            Action.FORWARD.value: 0,
            Action.PASS_THROUGH.value: 0
        }

    async def decide(self, url: Optional[str]) -> Decision:
        """
        Decide what to do with a request

        Args:
            url: Absolute target URL, or None if the transport could not extract one

        Returns:
            Decision
        """
        decision = await self._decide(url)
        self.stats[decision.action.value] += 1

        self.logger.debug(
            "Request decided",
            url=url,
            action=decision.action.value,
            target=decision.target,
            mapping_id=decision.mapping.id if decision.mapping else None,
            reason=decision.reason
        )
        return decision

    async def _decide(self, url: Optional[str]) -> Decision:
        if not url:
            return Decision(Action.PASS_THROUGH, url, reason="no target")

        mapping = await self.service.find_match(url, hydrate=True)
        if mapping is None:
            return Decision(Action.FORWARD, url, target=url, reason="no mapping")

        if mapping.content is not None and mapping.has_content:
            return Decision(Action.SERVE, url, target=url, mapping=mapping, reason="mapped content")

        if mapping.kind == "pattern" and is_concrete_url(mapping.pattern):
            return Decision(
                Action.FORWARD,
                url,
                target=mapping.pattern,
                mapping=mapping,
                reason="mapped target"
            )

        # A regex, or a glob that is not a URL, says nothing about where to go
        return Decision(Action.PASS_THROUGH, url, mapping=mapping, reason="no forwarding target")

    def get_stats(self) -> dict:
        return self.stats.copy()
