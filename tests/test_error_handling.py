"""
Retry policy and catch routing tests
"""
import random

import pytest

from stepflow.core import CatchRouter, RetryPolicyEvaluator, RetryVerdict, match_rule
from stepflow.models import CatchRule, Failure, RetryRule


class TestMatchRule:
    """Rule selection"""

    def test_specific_rule_wins_over_wildcard(self):
        rules = [
            RetryRule(errors=("ErrorA",), interval=1),
            RetryRule(errors=("*",), interval=5),
        ]
        assert match_rule(rules, "ErrorA") is rules[0]
        assert match_rule(rules, "ErrorB") is rules[1]

    def test_first_specific_match_in_declared_order(self):
        rules = [
            CatchRule(errors=("ErrorA", "ErrorB"), next="First"),
            CatchRule(errors=("ErrorB",), next="Second"),
        ]
        assert match_rule(rules, "ErrorB").next == "First"

    def test_matching_is_case_sensitive(self):
        rules = [CatchRule(errors=("ErrorA",), next="Landing")]
        assert match_rule(rules, "errora") is None

    def test_no_rules(self):
        assert match_rule([], "ErrorA") is None


class TestRetryPolicyEvaluator:
    """Retry decisions"""

    @pytest.fixture
    def evaluator(self):
        return RetryPolicyEvaluator()

    @pytest.fixture
    def rule(self):
        return RetryRule(errors=("ErrorA",), interval=2, max_attempts=3, backoff_rate=2.0)

    def test_exponential_backoff(self, evaluator, rule):
        """Delays follow interval * rate ** (attempts - 1)"""
        failure = Failure("ErrorA")

        first = evaluator.evaluate(failure, [rule], attempt_count=1)
        second = evaluator.evaluate(failure, [rule], attempt_count=2)

        assert first.verdict == RetryVerdict.RETRY
        assert first.delay == 2.0
        assert second.verdict == RetryVerdict.RETRY
        assert second.delay == 4.0

    def test_max_attempts_counts_the_first_attempt(self, evaluator, rule):
        decision = evaluator.evaluate(Failure("ErrorA"), [rule], attempt_count=3)

        assert decision.verdict == RetryVerdict.EXHAUSTED
        assert not decision.should_retry
        assert decision.rule is rule

    def test_single_attempt_rule_never_retries(self, evaluator):
        rule = RetryRule(errors=("ErrorA",), max_attempts=1)
        decision = evaluator.evaluate(Failure("ErrorA"), [rule], attempt_count=1)
        assert decision.verdict == RetryVerdict.EXHAUSTED

    def test_no_matching_rule(self, evaluator, rule):
        decision = evaluator.evaluate(Failure("ErrorB"), [rule], attempt_count=1)
        assert decision.verdict == RetryVerdict.NO_MATCH
        assert decision.rule is None

    def test_wildcard_matches_reserved_kinds(self, evaluator):
        rule = RetryRule(errors=("*",), interval=1, max_attempts=2)
        decision = evaluator.evaluate(Failure("StepTimeout"), [rule], attempt_count=1)
        assert decision.should_retry

    def test_max_backoff_caps_delay(self, evaluator):
        rule = RetryRule(
            errors=("*",), interval=1, max_attempts=10, backoff_rate=3.0, max_backoff=5.0
        )
        assert evaluator.calculate_delay(rule, 2) == 3.0
        assert evaluator.calculate_delay(rule, 4) == 5.0

    def test_jitter_stays_within_delay(self):
        evaluator = RetryPolicyEvaluator(rng=random.Random(42))
        rule = RetryRule(errors=("*",), interval=4, max_attempts=5, jitter=True)

        delays = [evaluator.calculate_delay(rule, 2) for _ in range(50)]

        assert all(0 <= delay <= 8.0 for delay in delays)
        assert len(set(delays)) > 1

    def test_zero_interval(self, evaluator):
        rule = RetryRule(errors=("*",), interval=0, max_attempts=3)
        assert evaluator.evaluate(Failure("X"), [rule], 1).delay == 0


class TestCatchRouter:
    """Catch routing"""

    @pytest.fixture
    def router(self):
        return CatchRouter()

    def test_routes_to_landing_node(self, router):
        rules = [CatchRule(errors=("ErrorA",), next="Inventory Failed")]
        decision = router.route(Failure("ErrorA"), rules)

        assert decision.caught
        assert decision.landing == "Inventory Failed"

    def test_specific_before_wildcard(self, router):
        rules = [
            CatchRule(errors=("ErrorB",), next="Payment Failed"),
            CatchRule(errors=("*",), next="Generic"),
        ]
        assert router.route(Failure("ErrorB"), rules).landing == "Payment Failed"
        assert router.route(Failure("Other"), rules).landing == "Generic"

    def test_uncaught(self, router):
        decision = router.route(Failure("ErrorB"), [CatchRule(errors=("ErrorA",), next="X")])
        assert not decision.caught
        assert decision.landing is None
