"""
Retry policy evaluation
"""
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, TypeVar

from ..models.execution import Failure
from ..models.workflow import CatchRule, RetryRule, WILDCARD


logger = logging.getLogger(__name__)


Rule = TypeVar("Rule", RetryRule, CatchRule)


def match_rule(rules: Sequence[Rule], kind: str) -> Optional[Rule]:
    """Return the first rule naming ``kind``, falling back to a wildcard rule.

    Specific rules always win over a wildcard, whatever their declared order.
    Matching is case-sensitive.
    """
    fallback = None
    for rule in rules:
        if kind in rule.errors:
            return rule
        if fallback is None and WILDCARD in rule.errors:
            fallback = rule
    return fallback


class RetryVerdict(Enum):
    """Retry verdicts"""
    RETRY = "retry"
    NO_MATCH = "no_match"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryDecision:
    verdict: RetryVerdict
    delay: float = 0.0
    rule: Optional[RetryRule] = None

    @property
    def should_retry(self) -> bool:
        return self.verdict == RetryVerdict.RETRY


class RetryPolicyEvaluator:
    """Decides whether a failed attempt is retried, and after how long"""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def evaluate(
        self,
        failure: Failure,
        rules: Sequence[RetryRule],
        attempt_count: int
    ) -> RetryDecision:
        """
        Evaluate a failure against a node's retry rules

        Args:
            failure: failure of the latest attempt
            rules: the node's retry rules, in declared order
            attempt_count: attempts already made on the node, the failed one included

        Returns:
            RetryDecision: RETRY with the backoff delay, NO_MATCH or EXHAUSTED
        """
        rule = match_rule(rules, failure.kind)
        if rule is None:
            return RetryDecision(RetryVerdict.NO_MATCH)

        if attempt_count >= rule.max_attempts:
            logger.debug(
                f"Retries exhausted for {failure.kind} after {attempt_count} attempts"
            )
            return RetryDecision(RetryVerdict.EXHAUSTED, rule=rule)

        return RetryDecision(
            RetryVerdict.RETRY,
            delay=self.calculate_delay(rule, attempt_count),
            rule=rule
        )

    def calculate_delay(self, rule: RetryRule, attempt_count: int) -> float:
        """Exponential backoff: interval * backoff_rate ** (attempt_count - 1)"""
        delay = rule.interval * (rule.backoff_rate ** (max(attempt_count, 1) - 1))

        if rule.max_backoff is not None:
            delay = min(delay, rule.max_backoff)

        if rule.jitter and delay > 0:
            delay = self._rng.uniform(0, delay)

        return delay
