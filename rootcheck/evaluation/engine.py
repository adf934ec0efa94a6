"""
Assertion evaluation for rootcheck.

The AssertionEngine observes the value an Assertion talks about,
compares it with the expected value and applies the assertion's
policy to produce an Outcome.
"""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Tuple

from .matchers import compare, format_value, normalize_line_endings
from .probes import FactProbe
from ..execution.wrappers import ChrootWrapper
from ..exceptions import AssertionMismatch, LaunchError, ProbeError, RootcheckError
from ..models.assertion import Assertion, Matcher, Reference
from ..models.context import EnvironmentContext
from ..models.policy import Policy
from ..models.result import Outcome, OutcomeStatus

logger = logging.getLogger(__name__)


class AssertionEngine:
    """Evaluates assertions against one target root.

    Only assertion-level problems (ProbeError, AssertionMismatch) are
    turned into outcomes here. LaunchError and TimeoutError propagate
    so the ScenarioRunner can abort the scenario; judge_error() then
    turns them into an outcome.

    Usage:
        engine = AssertionEngine(FactProbe(root, runner))
        outcome = engine.evaluate(assertion, context)
        if outcome.status == OutcomeStatus.FAIL:
            print(outcome.detail)
    """

    def __init__(self, probe: FactProbe, command_timeout: Optional[float] = None):
        """Initialize engine.

        Args:
            probe: FactProbe bound to the target root
            command_timeout: Default timeout for wrapped commands
        """
        self.probe = probe
        self.command_timeout = command_timeout

    @property
    def root(self) -> Path:
        return self.probe.root

    def evaluate(
        self,
        assertion: Assertion,
        context: EnvironmentContext,
        wrapper: Optional[ChrootWrapper] = None,
        scenario: str = "",
        inherited_policy: Optional[Policy] = None,
    ) -> Outcome:
        """Evaluate one assertion.

        Args:
            assertion: What to check
            context: Environment used for policy and skip decisions
            wrapper: Wrapper for command assertions
            scenario: Scenario id recorded in the outcome
            inherited_policy: Policy of the enclosing scenario, used when the
                assertion's own policy is required

        Returns:
            Outcome for the assertion

        Raises:
            LaunchError: If a wrapped command or stat cannot be started
            TimeoutError: If a wrapped command or stat times out
        """
        start_time = time.monotonic()

        if assertion.skip_when is not None and assertion.skip_when.holds(context):
            terms = ", ".join(assertion.skip_when.matching_terms(context))
            return Outcome(
                assertion=assertion.name,
                status=OutcomeStatus.SKIP,
                detail=f"skipped: {terms}",
                scenario=scenario,
            )

        policy = self.effective_policy(assertion, inherited_policy)
        expected: Any = assertion.expected
        actual: Any = None

        try:
            actual = self._observe(assertion, wrapper)
            expected = self._resolve_expected(assertion)
            link_path = assertion.probe.path if assertion.probe is not None else "/"
            matched, detail = compare(assertion.matcher, expected, actual, link_path)
        except ProbeError as e:
            matched, detail = False, f"probe failed: {e}"
        except AssertionMismatch as e:
            matched, detail = False, str(e)
            actual = e.actual

        outcome = self._judge(
            assertion, policy, context, matched, detail,
            scenario=scenario,
            expected=expected,
            actual=actual,
            duration=time.monotonic() - start_time,
        )
        logger.debug(str(outcome))
        return outcome

    def judge_error(
        self,
        assertion: Assertion,
        context: EnvironmentContext,
        error: RootcheckError,
        scenario: str = "",
        inherited_policy: Optional[Policy] = None,
    ) -> Outcome:
        """Outcome for an assertion whose evaluation raised a launch/timeout error.

        A LaunchError is always a failure, whatever the policy. A timeout is
        judged with the assertion's policy.
        """
        if isinstance(error, LaunchError):
            policy = Policy.required()
        else:
            policy = self.effective_policy(assertion, inherited_policy)
        return self._judge(
            assertion, policy, context, False,
            f"{type(error).__name__}: {error}",
            scenario=scenario,
            expected=assertion.expected,
            actual=None,
        )

    @staticmethod
    def effective_policy(assertion: Assertion, inherited_policy: Optional[Policy]) -> Policy:
        if assertion.policy.is_required and inherited_policy is not None:
            return inherited_policy
        return assertion.policy

    def _observe(self, assertion: Assertion, wrapper: Optional[ChrootWrapper]) -> Any:
        if assertion.probe is not None:
            return self.probe.probe(assertion.probe.kind, assertion.probe.path).value

        if wrapper is None:
            raise ProbeError(str(assertion.command), "no chroot wrapper for command")

        command = assertion.command
        timeout = command.timeout_seconds or self.command_timeout
        result = wrapper.launch(command.argv, self.root, stdin=command.stdin, timeout=timeout)
        if result.exit_code != 0:
            raise AssertionMismatch(
                assertion.expected,
                result.stdout,
                f"{wrapper.name} command exited with {result.exit_code}: "
                f"{result.stderr_text.strip()[:200]}",
            )
        return result.stdout

    def _resolve_expected(self, assertion: Assertion) -> Any:
        expected = assertion.expected
        if not isinstance(expected, Reference):
            return expected
        if assertion.matcher == Matcher.OUTPUT:
            return normalize_line_endings(self.probe.read_bytes(expected.path))
        return self.probe.read_bytes(expected.path).decode("utf-8", errors="replace").strip()

    def _judge(
        self,
        assertion: Assertion,
        policy: Policy,
        context: EnvironmentContext,
        matched: bool,
        detail: str,
        scenario: str,
        expected: Any,
        actual: Any,
        duration: float = 0.0,
    ) -> Outcome:
        """Apply the policy to a comparison result."""
        if policy.expects_failure(context):
            terms = ", ".join(policy.condition.matching_terms(context))
            why = policy.reason or terms
            if matched:
                status = OutcomeStatus.FAIL
                detail = f"expected failure did not occur ({why}): {detail}"
            else:
                status = OutcomeStatus.EXPECTED_FAIL
                detail = f"expected failure ({why}): {detail}"
        else:
            status = OutcomeStatus.PASS if matched else OutcomeStatus.FAIL

        return Outcome(
            assertion=assertion.name,
            status=status,
            detail=detail,
            scenario=scenario,
            expected=expected,
            actual=actual,
            duration_seconds=duration,
        )


def describe_expectation(assertion: Assertion) -> Tuple[str, str]:
    """(subject, expected) strings for listings and dry runs."""
    expected = assertion.expected
    if isinstance(expected, Reference):
        return assertion.subject, str(expected)
    return assertion.subject, format_value(expected)
