"""
Outcome aggregation for rootcheck.

The ReportSink collects outcomes as they are produced, optionally
streams them as TAP lines, and computes the run summary and exit code.
"""

from dataclasses import dataclass
import logging
from typing import List, Optional, TextIO, Tuple, Dict, Any

from ..models.result import Outcome, OutcomeStatus

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_HARNESS_ERROR = 2


@dataclass(frozen=True)
class Summary:
    """Counts for one harness run."""

    total: int
    passed: int
    failed: int
    skipped: int
    expected_failed: int
    errors: int
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "expected_failed": self.expected_failed,
            "errors": self.errors,
            "exit_code": self.exit_code,
        }


class ReportSink:
    """Collects outcomes in order.

    Exit code: 2 when a harness error (any launch failure, or a timeout that
    was not an expected failure) was recorded, otherwise 1 when any outcome
    failed, otherwise 0. Expected failures and skips never fail a run.

    Usage:
        sink = ReportSink(stream=sys.stdout)  # TAP lines as outcomes arrive
        sink.record(outcome)
        summary = sink.finalize()
        sys.exit(summary.exit_code)
    """

    def __init__(self, stream: Optional[TextIO] = None):
        """Initialize sink.

        Args:
            stream: Where TAP progress lines go (None = no streaming)
        """
        self.stream = stream
        self._outcomes: List[Outcome] = []
        self._errors: List[Tuple[str, str]] = []
        self._plan_written = False

    @property
    def outcomes(self) -> Tuple[Outcome, ...]:
        return tuple(self._outcomes)

    @property
    def errors(self) -> Tuple[Tuple[str, str], ...]:
        """(scenario, message) for every harness error."""
        return tuple(self._errors)

    def record(self, outcome: Outcome) -> None:
        """Append an outcome and stream its progress line."""
        self._outcomes.append(outcome)
        if outcome.status == OutcomeStatus.FAIL:
            logger.warning(str(outcome))
        self._write(self.tap_line(len(self._outcomes), outcome))

    def record_error(self, scenario: str, error: Exception) -> None:
        """Register a harness error (turns the exit code into 2)."""
        message = f"{type(error).__name__}: {error}"
        self._errors.append((scenario, message))
        logger.error(f"[{scenario}] {message}")
        self._write(f"# error in {scenario}: {message}")

    def note(self, text: str) -> None:
        """Stream a TAP comment line."""
        self._write(f"# {text}")

    def finalize(self) -> Summary:
        """Compute the summary. Safe to call more than once."""
        counts = {status: 0 for status in OutcomeStatus}
        for outcome in self._outcomes:
            counts[outcome.status] += 1

        failed = counts[OutcomeStatus.FAIL]
        if self._errors:
            exit_code = EXIT_HARNESS_ERROR
        elif failed:
            exit_code = EXIT_FAILED
        else:
            exit_code = EXIT_OK

        summary = Summary(
            total=len(self._outcomes),
            passed=counts[OutcomeStatus.PASS],
            failed=failed,
            skipped=counts[OutcomeStatus.SKIP],
            expected_failed=counts[OutcomeStatus.EXPECTED_FAIL],
            errors=len(self._errors),
            exit_code=exit_code,
        )

        if not self._plan_written:
            self._plan_written = True
            self._write(f"1..{summary.total}")
        return summary

    @staticmethod
    def tap_line(number: int, outcome: Outcome) -> str:
        """TAP rendering of one outcome."""
        name = f"{outcome.scenario}: {outcome.assertion}" if outcome.scenario else outcome.assertion
        name = name.replace("#", "\\#")
        if outcome.status == OutcomeStatus.PASS:
            return f"ok {number} - {name}"
        if outcome.status == OutcomeStatus.SKIP:
            return f"ok {number} - {name} # SKIP {outcome.detail}"
        if outcome.status == OutcomeStatus.EXPECTED_FAIL:
            return f"not ok {number} - {name} # TODO {outcome.detail}"
        return f"not ok {number} - {name}\n#   {outcome.detail}"

    def _write(self, line: str) -> None:
        if self.stream is None:
            return
        self.stream.write(line + "\n")
        self.stream.flush()
