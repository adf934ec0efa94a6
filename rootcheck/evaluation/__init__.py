"""
Evaluation layer for rootcheck.

Handles:
- Fact probes against the target root
- Value matchers (equality, symlink targets, regex, output)
- Assertion evaluation and policy resolution
"""

from .probes import FactProbe, FactResult, parse_stat_triple
from .matchers import (
    compare,
    assert_match,
    format_value,
    normalize_line_endings,
    resolve_link_target,
)
from .engine import AssertionEngine, describe_expectation

__all__ = [
    # Probes
    "FactProbe",
    "FactResult",
    "parse_stat_triple",
    # Matchers
    "compare",
    "assert_match",
    "format_value",
    "normalize_line_endings",
    "resolve_link_target",
    # Engine
    "AssertionEngine",
    "describe_expectation",
]
