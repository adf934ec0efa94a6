"""
Reporting layer for rootcheck.

Handles:
- Outcome aggregation and exit codes (sink)
- TAP progress streaming
- Report generation (JSON, Markdown, summary)
"""

from .sink import ReportSink, Summary, EXIT_OK, EXIT_FAILED, EXIT_HARNESS_ERROR
from .reporter import Report, Reporter

__all__ = [
    "ReportSink",
    "Summary",
    "EXIT_OK",
    "EXIT_FAILED",
    "EXIT_HARNESS_ERROR",
    "Report",
    "Reporter",
]
