"""
Scenario runner for rootcheck.

The ScenarioRunner walks a scenario's steps in order:
1. Assertions are evaluated by the AssertionEngine
2. Sub-scenarios are run recursively with their own wrapper and policy
3. Every outcome is recorded in the ReportSink as it is produced
4. Fatal failures, launch errors and timeouts abort what cannot go on
"""

from dataclasses import dataclass
import logging
import time
from typing import Dict, List, Optional, Tuple

from ..evaluation.engine import AssertionEngine
from ..exceptions import LaunchError, ScenarioError, TimeoutError
from ..execution.wrappers import ChrootWrapper
from ..models.assertion import Assertion
from ..models.context import EnvironmentContext
from ..models.policy import Policy
from ..models.result import OutcomeStatus, ScenarioResult, ScenarioStatus
from ..models.scenario import Scenario
from ..reporting.sink import ReportSink

logger = logging.getLogger(__name__)

DEFAULT_WRAPPER = "chroot"


@dataclass
class _Frame:
    """What a scenario inherits from the scenarios around it."""

    wrapper: str
    policy: Optional[Policy]
    path: str


class ScenarioRunner:
    """Runs scenarios against one target root.

    Steps run sequentially. An ordinary failure is recorded and the
    next step runs. A failing fatal assertion or a LaunchError aborts
    the scenario and every scenario enclosing it. A TimeoutError aborts
    only the scenario it happened in.

    Usage:
        runner = ScenarioRunner(engine, context, wrappers, sink)
        results = runner.run_scenarios(scenarios)
        summary = sink.finalize()

    Attributes:
        engine: Assertion evaluator bound to the target root
        context: Environment captured at startup
        wrappers: Wrapper registry, by name
        sink: Where outcomes go
    """

    def __init__(
        self,
        engine: AssertionEngine,
        context: EnvironmentContext,
        wrappers: Dict[str, ChrootWrapper],
        sink: Optional[ReportSink] = None,
        default_wrapper: str = DEFAULT_WRAPPER,
    ):
        self.engine = engine
        self.context = context
        self.wrappers = wrappers
        self.sink = sink or ReportSink()
        self.default_wrapper = default_wrapper

    def run_scenario(self, scenario: Scenario) -> ScenarioResult:
        """Run one top-level scenario.

        Raises:
            ScenarioError: If the scenario names an unknown wrapper
        """
        self._check_wrappers(scenario)
        frame = _Frame(wrapper=self.default_wrapper, policy=None, path="")
        result, _ = self._run(scenario, frame)
        logger.info(result.summary())
        return result

    def run_scenarios(self, scenarios: List[Scenario]) -> List[ScenarioResult]:
        """Run several scenarios sequentially.

        A fatal abort in one top-level scenario does not stop the next;
        each top-level scenario stands on its own.
        """
        for scenario in scenarios:
            self._check_wrappers(scenario)

        results = []
        total = len(scenarios)
        for i, scenario in enumerate(scenarios, 1):
            logger.info(f"Running scenario {i}/{total}: {scenario.name}")
            results.append(self.run_scenario(scenario))
        return results

    def _check_wrappers(self, scenario: Scenario) -> None:
        names = {self.default_wrapper} | {s.wrapper for s in scenario.walk() if s.wrapper}
        unknown = sorted(n for n in names if n not in self.wrappers)
        if unknown:
            raise ScenarioError(
                f"Scenario '{scenario.id}' uses unknown wrapper(s): {', '.join(unknown)}"
            )

    def _run(self, scenario: Scenario, parent: _Frame) -> Tuple[ScenarioResult, Optional[str]]:
        """Run a scenario; returns its result and a fatal reason if it must
        abort its parents too."""
        frame = _Frame(
            wrapper=scenario.wrapper or parent.wrapper,
            policy=parent.policy if scenario.policy.is_required else scenario.policy,
            path=f"{parent.path}/{scenario.id}" if parent.path else scenario.id,
        )
        result = ScenarioResult(scenario_id=frame.path, scenario_name=scenario.name)
        result.status = ScenarioStatus.RUNNING
        start_time = time.monotonic()
        self.sink.note(f"{frame.path}: {scenario.name}")

        fatal_reason: Optional[str] = None

        for step in scenario.steps:
            if isinstance(step, Scenario):
                child, child_fatal = self._run(step, frame)
                result.children.append(child)
                if child_fatal:
                    fatal_reason = child_fatal
                    self._abort(result, f"aborted by {child.scenario_id}: {child_fatal}")
                    break
                continue

            abort, fatal_reason = self._run_assertion(step, frame, result)
            if abort:
                break

        if result.status == ScenarioStatus.RUNNING:
            result.status = ScenarioStatus.COMPLETED
        result.duration_seconds = time.monotonic() - start_time
        return result, fatal_reason

    def _run_assertion(
        self, assertion: Assertion, frame: _Frame, result: ScenarioResult
    ) -> Tuple[bool, Optional[str]]:
        """Evaluate and record one assertion.

        Returns:
            (abort this scenario, fatal reason for the parents)
        """
        wrapper = self.wrappers[frame.wrapper]
        try:
            outcome = self.engine.evaluate(
                assertion,
                self.context,
                wrapper=wrapper,
                scenario=frame.path,
                inherited_policy=frame.policy,
            )
        except (LaunchError, TimeoutError) as e:
            outcome = self.engine.judge_error(
                assertion, self.context, e,
                scenario=frame.path,
                inherited_policy=frame.policy,
            )
            result.outcomes.append(outcome)
            self.sink.record(outcome)
            if isinstance(e, LaunchError) or outcome.status == OutcomeStatus.FAIL:
                self.sink.record_error(frame.path, e)
            self._abort(result, f"{type(e).__name__}: {e}")
            if isinstance(e, LaunchError):
                return True, str(e)
            return True, None

        result.outcomes.append(outcome)
        self.sink.record(outcome)

        if assertion.fatal and outcome.status in (OutcomeStatus.FAIL, OutcomeStatus.EXPECTED_FAIL):
            reason = f"fatal assertion failed: {assertion.name}"
            self._abort(result, reason)
            return True, reason
        return False, None

    def _abort(self, result: ScenarioResult, reason: str) -> None:
        result.status = ScenarioStatus.ABORTED
        result.abort_reason = reason
        logger.warning(f"[{result.scenario_id}] Aborted: {reason}")
        self.sink.note(f"{result.scenario_id} aborted: {reason}")


class DryRunner:
    """Dry run mode - validates scenarios without executing.

    Useful for validating scenario files before pointing them at a root.
    """

    def __init__(self, wrapper_names: Optional[List[str]] = None, default_wrapper: str = DEFAULT_WRAPPER):
        self.wrapper_names = set(wrapper_names or [])
        self.default_wrapper = default_wrapper

    def validate_scenario(self, scenario: Scenario) -> dict:
        """Validate a scenario without running it.

        Args:
            scenario: Scenario to validate

        Returns:
            Dict with validation results
        """
        issues = []

        for sub in scenario.walk():
            if not sub.steps:
                issues.append(f"{sub.id}: no steps")
            if self.wrapper_names and sub.wrapper and sub.wrapper not in self.wrapper_names:
                issues.append(f"{sub.id}: unknown wrapper '{sub.wrapper}'")

        fatal = sum(1 for sub in scenario.walk() for a in sub.assertions if a.fatal)
        commands = sum(
            1 for sub in scenario.walk() for a in sub.assertions if a.command is not None
        )

        return {
            "scenario_id": scenario.id,
            "scenario_name": scenario.name,
            "valid": len(issues) == 0,
            "issues": issues,
            "assertions": scenario.total_assertions,
            "sub_scenarios": sum(1 for _ in scenario.walk()) - 1,
            "fatal_assertions": fatal,
            "command_assertions": commands,
        }

    def validate_scenarios(self, scenarios: List[Scenario]) -> dict:
        """Validate multiple scenarios.

        Args:
            scenarios: List of scenarios to validate

        Returns:
            Dict with overall validation results
        """
        results = [self.validate_scenario(s) for s in scenarios]
        valid_count = sum(1 for r in results if r["valid"])

        return {
            "total": len(scenarios),
            "valid": valid_count,
            "invalid": len(scenarios) - valid_count,
            "results": results,
        }
