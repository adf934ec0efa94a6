"""
rootcheck - Verification harness for bootstrapped chroot trees.

This module provides:
- Scenario-based checks (define them in YAML)
- Filesystem and device probes against a target root
- Commands run inside the root through chroot wrappers
- Environment-conditional expected failures
- TAP progress output and reports (JSON, Markdown)

Quick start:
    from rootcheck import (
        AssertionEngine, FactProbe, ProcessRunner, ReportSink,
        ScenarioRunner, build_wrappers, detect_environment, load_scenarios,
    )

    runner = ProcessRunner(default_timeout=300)
    root = Path("/srv/chroot/unstable")
    context = detect_environment(runner, target_root=root)
    engine = AssertionEngine(FactProbe(root, runner))
    sink = ReportSink(stream=sys.stdout)

    scenario_runner = ScenarioRunner(engine, context, build_wrappers(runner), sink)
    scenario_runner.run_scenarios(load_scenarios())
    sys.exit(sink.finalize().exit_code)

CLI usage:
    python -m rootcheck --target-root /srv/chroot/unstable --format markdown
"""

__version__ = "0.1.0"

# Core exports
from .config import Config, HarnessConfig, BootstrapConfig
from .exceptions import (
    RootcheckError,
    LaunchError,
    TimeoutError,
    ProbeError,
    AssertionMismatch,
    ScenarioError,
    ConfigurationError,
    TargetRootError,
)

# Model exports
from .models import (
    EnvironmentContext,
    Condition,
    Policy,
    ProbeKind,
    Matcher,
    ProbeSpec,
    CommandSpec,
    Reference,
    Assertion,
    Scenario,
    load_scenarios,
    OutcomeStatus,
    ScenarioStatus,
    Outcome,
    ScenarioResult,
)

# Execution exports
from .execution import (
    ProcessRunner,
    ProcessResult,
    ChrootWrapper,
    build_wrappers,
    detect_environment,
    TargetRoot,
)

# Evaluation exports
from .evaluation import FactProbe, AssertionEngine

# Orchestration exports
from .orchestration import ScenarioRunner, DryRunner

# Reporting exports
from .reporting import ReportSink, Summary, Report, Reporter

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "HarnessConfig",
    "BootstrapConfig",
    # Exceptions
    "RootcheckError",
    "LaunchError",
    "TimeoutError",
    "ProbeError",
    "AssertionMismatch",
    "ScenarioError",
    "ConfigurationError",
    "TargetRootError",
    # Models
    "EnvironmentContext",
    "Condition",
    "Policy",
    "ProbeKind",
    "Matcher",
    "ProbeSpec",
    "CommandSpec",
    "Reference",
    "Assertion",
    "Scenario",
    "load_scenarios",
    "OutcomeStatus",
    "ScenarioStatus",
    "Outcome",
    "ScenarioResult",
    # Execution
    "ProcessRunner",
    "ProcessResult",
    "ChrootWrapper",
    "build_wrappers",
    "detect_environment",
    "TargetRoot",
    # Evaluation
    "FactProbe",
    "AssertionEngine",
    # Orchestration
    "ScenarioRunner",
    "DryRunner",
    # Reporting
    "ReportSink",
    "Summary",
    "Report",
    "Reporter",
]
