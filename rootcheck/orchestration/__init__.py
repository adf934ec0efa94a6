"""
Orchestration layer for rootcheck.

Handles:
- Running scenarios and nested sub-scenarios (main runner)
- Fatal and timeout abort propagation
- Dry-run validation
"""

from .runner import ScenarioRunner, DryRunner, DEFAULT_WRAPPER

__all__ = [
    "ScenarioRunner",
    "DryRunner",
    "DEFAULT_WRAPPER",
]
