"""
Catch routing for failures that are not, or no longer, retried
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..models.execution import Failure
from ..models.workflow import CatchRule
from .retry import match_rule


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatchDecision:
    landing: Optional[str] = None
    rule: Optional[CatchRule] = None

    @property
    def caught(self) -> bool:
        return self.landing is not None


class CatchRouter:
    """Selects the landing node for a propagated failure"""

    def route(self, failure: Failure, rules: Sequence[CatchRule]) -> CatchDecision:
        rule = match_rule(rules, failure.kind)
        if rule is None:
            logger.debug(f"No catch rule matches {failure.kind}")
            return CatchDecision()
        return CatchDecision(landing=rule.next, rule=rule)
