"""
Command line interface for rootcheck.

Usage:
    rootcheck                                   # bootstrap a root, run the built-in suite
    rootcheck --target-root /srv/chroot/sid     # check an existing root
    rootcheck --scenarios my_checks/ --format markdown --output report.md
    rootcheck --list
    rootcheck --dry-run --scenarios my_checks.yaml
"""

import argparse
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from ..config import Config
from ..evaluation.engine import AssertionEngine, describe_expectation
from ..evaluation.probes import FactProbe
from ..exceptions import ConfigurationError, RootcheckError
from ..execution.detection import detect_environment
from ..execution.process_runner import ProcessRunner
from ..execution.target_root import TargetRoot
from ..execution.wrappers import build_wrappers
from ..models.scenario import Scenario, load_scenarios
from ..orchestration.runner import DryRunner, ScenarioRunner
from ..reporting.reporter import Reporter
from ..reporting.sink import EXIT_HARNESS_ERROR, ReportSink

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130
DEFAULT_ROOT_NAME = "chroot"


def setup_logging(verbose: bool, quiet: bool):
    """Configure logging based on verbosity.

    Args:
        verbose: Enable debug logging
        quiet: Suppress all but errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def load_config(args) -> Config:
    """Config file, then environment, then command line."""
    if args.config:
        config = Config.from_yaml(args.config)
    else:
        config = Config.default()
    config = Config.from_env(config)

    if args.timeout is not None:
        if args.timeout <= 0:
            raise ConfigurationError(f"--timeout must be positive, not {args.timeout}")
        config.harness.timeout_seconds = args.timeout
    if args.keep_root:
        config.harness.keep_target_root = True
    if args.mirror:
        config.bootstrap.mirror = args.mirror
    if args.suite:
        config.bootstrap.suite = args.suite
    if args.variant:
        config.bootstrap.variant = args.variant
    return config


def list_command(scenarios: List[Scenario], verbose: bool) -> int:
    """Print the scenarios and their assertions."""

    def show(scenario: Scenario, depth: int):
        indent = "  " * (depth + 1)
        wrapper = f" via {scenario.wrapper}" if scenario.wrapper else ""
        policy = "" if scenario.policy.is_required else f" [expected failure under {scenario.policy.condition}]"
        print(f"{indent}[{scenario.id}] {scenario.name}{wrapper}{policy}")
        for step in scenario.steps:
            if isinstance(step, Scenario):
                show(step, depth + 1)
            elif verbose:
                subject, expected = describe_expectation(step)
                fatal = " (fatal)" if step.fatal else ""
                print(f"{indent}  - {step.name}: {subject} -> {expected}{fatal}")

    print("\nScenarios:\n")
    for s in scenarios:
        show(s, 0)
    total = sum(s.total_assertions for s in scenarios)
    print(f"\nTotal: {len(scenarios)} scenarios, {total} assertions")
    return 0


def dry_run_command(scenarios: List[Scenario], wrapper_names: List[str]) -> int:
    """Validate scenarios without touching a root."""
    dry = DryRunner(wrapper_names)
    validation = dry.validate_scenarios(scenarios)
    print("\nScenarios to run (dry run):")
    for result in validation["results"]:
        status = "✅" if result["valid"] else "❌"
        print(
            f"  {status} [{result['scenario_id']}] {result['scenario_name']} "
            f"({result['assertions']} assertions, {result['sub_scenarios']} sub-scenarios)"
        )
        for issue in result["issues"]:
            print(f"       ⚠️  {issue}")
    print(f"\nValid: {validation['valid']}/{validation['total']}")
    return 0 if validation["invalid"] == 0 else 1


def _progress_stream(args, stack: contextlib.ExitStack):
    """Where TAP progress lines go for this run."""
    if args.format == "tap":
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            return stack.enter_context(open(args.output, "w"))
        return sys.stdout
    if args.quiet:
        return None
    return sys.stderr


def run_command(args) -> int:
    """Run the scenarios against a target root and report.

    Returns:
        Process exit code
    """
    config = load_config(args)
    scenarios = load_scenarios(args.scenarios)
    if not scenarios:
        raise RootcheckError(f"No scenarios found in {args.scenarios}")

    if args.list:
        return list_command(scenarios, args.verbose)

    runner = ProcessRunner(default_timeout=config.harness.timeout_seconds)
    wrappers = build_wrappers(runner, config.wrappers)

    if args.dry_run:
        return dry_run_command(scenarios, list(wrappers))

    scratch = config.harness.scratch_dir()
    target = args.target_root or scratch / DEFAULT_ROOT_NAME

    with contextlib.ExitStack() as stack:
        sink = ReportSink(stream=_progress_stream(args, stack))
        with TargetRoot(target, config, runner) as root:
            context = detect_environment(runner, scratch_dir=scratch, target_root=root.path)
            probe = FactProbe(root.path, runner, stat_command=config.harness.stat_command)
            engine = AssertionEngine(probe, command_timeout=config.harness.timeout_seconds)
            scenario_runner = ScenarioRunner(engine, context, wrappers, sink)
            results = scenario_runner.run_scenarios(scenarios)

        reporter = Reporter()
        report = reporter.generate(results, sink, context, str(target))

    if args.format == "json":
        output = reporter.to_json(report)
    elif args.format == "markdown":
        output = reporter.to_markdown(report)
    elif args.format == "summary":
        output = reporter.to_summary(report)
    else:  # tap, already streamed
        output = None

    if output is not None:
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output)
            print(f"\nReport saved to: {args.output}")
        else:
            print(output)

    return report.summary.exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rootcheck",
        description="rootcheck - verify a bootstrapped chroot tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Bootstrap a fresh root in $AUTOPKGTEST_TMP and run the built-in suite
  rootcheck

  # Check an existing root
  rootcheck --target-root /srv/chroot/unstable

  # Validate scenario files without running them
  rootcheck --dry-run --scenarios checks/

  # Markdown report
  rootcheck --format markdown --output report.md

Exit codes:
  0  every assertion passed, was skipped or failed as expected
  1  at least one assertion failed
  2  harness error (missing tool, timeout, bad configuration)
  130 interrupted
""",
    )

    parser.add_argument(
        "--target-root",
        type=Path,
        help="Root to check (default: bootstrap into $AUTOPKGTEST_TMP/chroot)",
    )
    parser.add_argument("--mirror", help="Mirror handed to debootstrap")
    parser.add_argument("--suite", help="Suite handed to debootstrap")
    parser.add_argument("--variant", help="debootstrap variant")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-command timeout in seconds",
    )
    parser.add_argument(
        "--scenarios",
        type=Path,
        help="Scenario YAML file or directory (default: built-in suite)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config YAML",
    )
    parser.add_argument(
        "--format", "-f",
        choices=["tap", "summary", "json", "markdown"],
        default="tap",
        help="Output format (default: tap)",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output file path",
    )
    parser.add_argument(
        "--keep-root",
        action="store_true",
        help="Keep a bootstrapped root after the run (for debugging)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate scenarios without running them",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List scenarios and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet output (errors only)",
    )
    return parser


def _interrupt_on_sigterm(signum, frame):
    raise KeyboardInterrupt


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.quiet)

    previous = signal.signal(signal.SIGTERM, _interrupt_on_sigterm)
    try:
        code = run_command(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        code = EXIT_INTERRUPTED
    except RootcheckError as e:
        logger.error(f"Error: {e}")
        code = EXIT_HARNESS_ERROR
    except Exception as e:
        logger.error(f"Error: {e}")
        if args.verbose:
            logger.exception("Full traceback:")
        code = EXIT_HARNESS_ERROR
    finally:
        signal.signal(signal.SIGTERM, previous)

    sys.exit(code)


if __name__ == "__main__":
    main()
