"""
Data models for rootcheck.

Public exports:
- Scenario and assertion specs (ProbeSpec, CommandSpec, Reference, Assertion)
- Policies and conditions
- Environment context
- Result types (Outcome, ScenarioResult) and their enums
"""

from .context import EnvironmentContext, parse_kernel_version, CAN_MKNOD, PTMX_SYMLINK

from .policy import Condition, Policy, PolicyKind

from .assertion import (
    ProbeKind,
    Matcher,
    ProbeSpec,
    CommandSpec,
    Reference,
    Assertion,
    parse_device_triple,
)

from .scenario import Scenario, load_scenarios, BUILTIN_SCENARIOS

from .result import OutcomeStatus, ScenarioStatus, Outcome, ScenarioResult

__all__ = [
    # Context
    "EnvironmentContext",
    "parse_kernel_version",
    "CAN_MKNOD",
    "PTMX_SYMLINK",
    # Policy
    "Condition",
    "Policy",
    "PolicyKind",
    # Assertion models
    "ProbeKind",
    "Matcher",
    "ProbeSpec",
    "CommandSpec",
    "Reference",
    "Assertion",
    "parse_device_triple",
    # Scenario
    "Scenario",
    "load_scenarios",
    "BUILTIN_SCENARIOS",
    # Result models
    "OutcomeStatus",
    "ScenarioStatus",
    "Outcome",
    "ScenarioResult",
]
