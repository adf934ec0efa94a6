"""
Report generation for rootcheck.

Generates human-readable and machine-readable reports
from scenario results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import json

from ..models.context import EnvironmentContext
from ..models.result import Outcome, OutcomeStatus, ScenarioResult, ScenarioStatus
from .sink import ReportSink, Summary


STATUS_MARKERS = {
    OutcomeStatus.PASS: "✅",
    OutcomeStatus.FAIL: "❌",
    OutcomeStatus.SKIP: "⏭️",
    OutcomeStatus.EXPECTED_FAIL: "⚠️",
}


@dataclass
class Report:
    """Summary report of one harness run.

    Contains the run summary, the environment it ran in and the
    per-scenario results.
    """

    timestamp: datetime
    summary: Summary
    target_root: str
    context: Optional[EnvironmentContext]
    results: List[ScenarioResult]
    errors: List[tuple] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    @property
    def outcomes(self) -> List[Outcome]:
        outcomes = []
        for r in self.results:
            outcomes.extend(r.all_outcomes())
        return outcomes

    def failures(self) -> List[Outcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAIL]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "target_root": self.target_root,
            "context": self.context.to_dict() if self.context else None,
            "summary": self.summary.to_dict(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "errors": [{"scenario": s, "message": m} for s, m in self.errors],
            "results": [r.to_dict() for r in self.results],
        }


class Reporter:
    """Generates reports from scenario results.

    Supports multiple output formats:
    - JSON (for programmatic consumption)
    - Markdown (for human reading)
    - Summary (brief console output)

    TAP is not produced here; the ReportSink streams it while the run
    is in progress.

    Usage:
        reporter = Reporter()
        report = reporter.generate(results, sink, context, target_root)
        print(reporter.to_markdown(report))
    """

    def generate(
        self,
        results: List[ScenarioResult],
        sink: ReportSink,
        context: Optional[EnvironmentContext] = None,
        target_root: str = "",
    ) -> Report:
        """Generate a report from results.

        Args:
            results: Top-level scenario results
            sink: Sink the outcomes were recorded in
            context: Environment the run happened in
            target_root: Path of the root under test

        Returns:
            Report with the run summary
        """
        return Report(
            timestamp=datetime.now(),
            summary=sink.finalize(),
            target_root=target_root,
            context=context,
            results=list(results),
            errors=list(sink.errors),
            total_duration_seconds=sum(r.duration_seconds for r in results),
        )

    def to_json(self, report: Report, indent: int = 2) -> str:
        """Export report as JSON.

        Args:
            report: Report to export
            indent: JSON indentation

        Returns:
            JSON string
        """
        return json.dumps(report.to_dict(), indent=indent, default=str)

    def to_markdown(self, report: Report) -> str:
        """Export report as Markdown.

        Args:
            report: Report to export

        Returns:
            Markdown string
        """
        s = report.summary
        environment = report.context.describe() if report.context else "unknown"
        md = f"""# rootcheck Report

**Generated:** {report.timestamp.strftime("%Y-%m-%d %H:%M:%S")}
**Target root:** `{report.target_root}`
**Environment:** {environment}

## Summary

| Metric | Value |
|--------|-------|
| Assertions | {s.total} |
| Passed | {s.passed} |
| Failed | {s.failed} |
| Skipped | {s.skipped} |
| Expected failures | {s.expected_failed} |
| Harness errors | {s.errors} |
| **Exit code** | **{s.exit_code}** |
| Duration | {report.total_duration_seconds:.1f}s |

## Results by Scenario

| Scenario | Status | Assertions |
|----------|--------|------------|
"""
        for r in report.results:
            md += self._scenario_rows(r)

        failures = report.failures()
        if failures:
            md += """
## Failure Details

"""
            for o in failures:
                md += f"### {o.scenario}: {o.assertion}\n\n"
                md += f"- **Detail:** {o.detail}\n"
                if o.expected is not None:
                    md += f"- **Expected:** `{o.expected!r}`\n"
                if o.actual is not None:
                    md += f"- **Actual:** `{o.actual!r}`\n"
                md += "\n"

        expected = [o for o in report.outcomes if o.status == OutcomeStatus.EXPECTED_FAIL]
        if expected:
            md += """
## Expected Failures

"""
            for o in expected:
                md += f"- {o.scenario}: {o.assertion} ({o.detail})\n"

        if report.errors:
            md += """
## Harness Errors

"""
            for scenario, message in report.errors:
                md += f"- **{scenario}:** {message}\n"

        md += """
---
*Generated by rootcheck*
"""
        return md

    def _scenario_rows(self, result: ScenarioResult) -> str:
        outcomes = result.all_outcomes()
        counts = ", ".join(
            f"{STATUS_MARKERS[status]} {n}"
            for status in OutcomeStatus
            for n in [sum(1 for o in outcomes if o.status == status)]
            if n
        )
        status = result.status.value
        if result.status == ScenarioStatus.ABORTED:
            status += f" ({result.abort_reason})"
        rows = f"| {result.scenario_id} | {status} | {counts or '-'} |\n"
        for child in result.children:
            rows += self._scenario_rows(child)
        return rows

    def to_summary(self, report: Report) -> str:
        """Generate brief summary for console output.

        Args:
            report: Report to summarize

        Returns:
            Brief summary string
        """
        s = report.summary
        status_emoji = "✅" if s.ok else "❌"

        lines = [
            f"\n{status_emoji} rootcheck Results ({report.target_root})",
            f"   Passed: {s.passed}/{s.total}",
        ]

        if s.failed > 0:
            lines.append(f"   Failed: {s.failed}")
        if s.expected_failed > 0:
            lines.append(f"   Expected failures: {s.expected_failed}")
        if s.skipped > 0:
            lines.append(f"   Skipped: {s.skipped}")
        if s.errors > 0:
            lines.append(f"   Harness errors: {s.errors}")

        lines.append(f"   Duration: {report.total_duration_seconds:.1f}s")

        for o in report.failures()[:5]:
            lines.append(f"   - {o.scenario}: {o.assertion}: {o.detail[:80]}")

        return "\n".join(lines)
