"""
Result data models for rootcheck.

These capture the outcomes of a harness run:
- One Outcome per evaluated assertion
- One ScenarioResult per scenario (with its lifecycle state)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any


class OutcomeStatus(Enum):
    """Status of a single assertion."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    EXPECTED_FAIL = "expected_fail"  # known failure, not a regression


class ScenarioStatus(Enum):
    """Lifecycle of a scenario run.

    NOT_STARTED -> RUNNING -> COMPLETED | ABORTED
    """

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


def _short(value: Any, limit: int = 80) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


@dataclass(frozen=True)
class Outcome:
    """Result of evaluating one assertion. Never mutated once created."""

    assertion: str
    status: OutcomeStatus
    detail: str = ""
    scenario: str = ""
    expected: Any = None
    actual: Any = None
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status == OutcomeStatus.PASS

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAIL

    def __str__(self) -> str:
        status = self.status.value.upper()
        where = f"{self.scenario}: " if self.scenario else ""
        text = f"[{status}] {where}{self.assertion}"
        if self.detail:
            text += f" ({self.detail})"
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "assertion": self.assertion,
            "scenario": self.scenario,
            "status": self.status.value,
            "detail": self.detail,
            "expected": _short(self.expected) if self.expected is not None else None,
            "actual": _short(self.actual) if self.actual is not None else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class ScenarioResult:
    """State and outcomes of one scenario.

    outcomes holds the outcomes of this scenario's own assertions;
    children holds the results of nested scenarios in step order.
    """

    scenario_id: str
    scenario_name: str
    status: ScenarioStatus = ScenarioStatus.NOT_STARTED
    outcomes: List[Outcome] = field(default_factory=list)
    children: List["ScenarioResult"] = field(default_factory=list)
    abort_reason: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def aborted(self) -> bool:
        return self.status == ScenarioStatus.ABORTED

    def all_outcomes(self) -> List[Outcome]:
        """Outcomes of this scenario, then those of each nested one."""
        result = list(self.outcomes)
        for child in self.children:
            result.extend(child.all_outcomes())
        return result

    def summary(self) -> str:
        outcomes = self.all_outcomes()
        passed = sum(1 for o in outcomes if o.passed)
        text = f"[{self.scenario_id}] {self.scenario_name}: {self.status.value} ({passed}/{len(outcomes)} passed)"
        if self.abort_reason:
            text += f" - {self.abort_reason}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scenario_id": self.scenario_id,
            "scenario_name": self.scenario_name,
            "status": self.status.value,
            "abort_reason": self.abort_reason,
            "duration_seconds": round(self.duration_seconds, 3),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "children": [c.to_dict() for c in self.children],
        }
