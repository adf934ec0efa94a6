"""
Tests for the foundation of rootcheck.

Tests:
- Exception hierarchy
- Configuration loading and validation
- Environment context, conditions and policies
- Assertion and scenario parsing
- Result dataclasses
"""

import pytest
from pathlib import Path
import tempfile

from rootcheck import (
    # Exceptions
    RootcheckError,
    LaunchError,
    TimeoutError,
    ProbeError,
    AssertionMismatch,
    ScenarioError,
    ConfigurationError,
    TargetRootError,
    # Config
    Config,
    HarnessConfig,
    BootstrapConfig,
    # Models
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
from rootcheck.models import parse_device_triple, parse_kernel_version, PolicyKind


# ============================================================================
# Exception Tests
# ============================================================================


class TestExceptions:
    """Test exception hierarchy."""

    def test_all_exceptions_inherit_from_base(self):
        """All custom exceptions should inherit from RootcheckError."""
        exceptions = [
            LaunchError,
            TimeoutError,
            ScenarioError,
            ConfigurationError,
            TargetRootError,
        ]
        for exc_class in exceptions:
            assert issubclass(exc_class, RootcheckError)
            try:
                raise exc_class("test")
            except RootcheckError as e:
                assert str(e) == "test"

    def test_probe_error_carries_path_and_reason(self):
        """ProbeError keeps its fields and formats them."""
        err = ProbeError("/dev/full", "does not exist")
        assert err.path == "/dev/full"
        assert err.reason == "does not exist"
        assert str(err) == "/dev/full: does not exist"
        assert isinstance(err, RootcheckError)

    def test_assertion_mismatch_carries_values(self):
        """AssertionMismatch keeps expected and actual."""
        err = AssertionMismatch((1, 7, 0o666), (1, 3, 0o666))
        assert err.expected == (1, 7, 0o666)
        assert err.actual == (1, 3, 0o666)
        assert "expected" in str(err)

    def test_timeout_error_shadows_builtin(self):
        """The harness TimeoutError is its own class."""
        import builtins

        assert TimeoutError is not builtins.TimeoutError
        with pytest.raises(TimeoutError):
            raise TimeoutError("timed out")


# ============================================================================
# Configuration Tests
# ============================================================================


class TestConfig:
    """Test configuration system."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config.default()

        assert config.harness.timeout_seconds == 300
        assert config.harness.scratch_env_var == "AUTOPKGTEST_TMP"
        assert config.harness.keep_target_root is False
        assert config.harness.stat_command == "stat"

        assert config.bootstrap.suite == "unstable"
        assert config.bootstrap.variant == "minbase"
        assert config.bootstrap.mirror == "http://deb.debian.org/debian"
        assert config.wrappers == {}

    def test_config_from_yaml(self):
        """Test loading config from YAML file."""
        yaml_content = """
harness:
  timeout_seconds: 60
  keep_target_root: true

bootstrap:
  suite: trixie
  extra_args: ["--include=util-linux"]

wrappers:
  nspawn:
    type: command
    template: ["systemd-nspawn", "-q", "-D", "{root}", "--"]
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(yaml_content)
            f.flush()
            config = Config.from_yaml(Path(f.name))

        assert config.harness.timeout_seconds == 60
        assert config.harness.keep_target_root is True
        assert config.bootstrap.suite == "trixie"
        assert config.bootstrap.extra_args == ["--include=util-linux"]
        assert config.wrappers["nspawn"]["type"] == "command"

    def test_config_from_yaml_missing_file(self):
        """Test error on missing config file."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config.from_yaml(Path("/nonexistent/config.yaml"))
        assert "not found" in str(exc_info.value)

    def test_config_unknown_key(self, tmp_path):
        """Unknown keys are configuration errors, not TypeErrors."""
        path = tmp_path / "config.yaml"
        path.write_text("harness:\n  bogus: 1\n")
        with pytest.raises(ConfigurationError):
            Config.from_yaml(path)

    def test_harness_config_validation(self):
        """Test harness config validation."""
        with pytest.raises(ConfigurationError) as exc_info:
            HarnessConfig(timeout_seconds=0)
        assert "timeout_seconds must be positive" in str(exc_info.value)

    def test_bootstrap_argv(self):
        """debootstrap command line carries variant, suite, target and mirror."""
        config = BootstrapConfig(suite="trixie", extra_args=["--include=util-linux"])
        argv = config.argv(Path("/tmp/root"))
        assert argv == [
            "debootstrap",
            "--variant=minbase",
            "--include=util-linux",
            "trixie",
            "/tmp/root",
            "http://deb.debian.org/debian",
        ]

    def test_env_overrides(self, monkeypatch):
        """ROOTCHECK_* variables override defaults."""
        monkeypatch.setenv("ROOTCHECK_TIMEOUT", "42")
        monkeypatch.setenv("ROOTCHECK_MIRROR", "http://mirror.example/debian")
        monkeypatch.setenv("ROOTCHECK_SUITE", "bookworm")

        config = Config.from_env()

        assert config.harness.timeout_seconds == 42
        assert config.bootstrap.mirror == "http://mirror.example/debian"
        assert config.bootstrap.suite == "bookworm"

    def test_env_timeout_must_be_a_number(self, monkeypatch):
        """A garbage timeout is reported, not ignored."""
        monkeypatch.setenv("ROOTCHECK_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError):
            Config.from_env()

    def test_scratch_dir_required(self, monkeypatch):
        """Missing AUTOPKGTEST_TMP is a configuration error."""
        monkeypatch.delenv("AUTOPKGTEST_TMP", raising=False)
        with pytest.raises(ConfigurationError) as exc_info:
            HarnessConfig().scratch_dir()
        assert "AUTOPKGTEST_TMP" in str(exc_info.value)

    def test_scratch_dir_must_exist(self, monkeypatch, tmp_path):
        """AUTOPKGTEST_TMP must name a directory."""
        monkeypatch.setenv("AUTOPKGTEST_TMP", str(tmp_path / "missing"))
        with pytest.raises(ConfigurationError):
            HarnessConfig().scratch_dir()

    def test_scratch_dir(self, scratch_dir):
        """An existing scratch directory is returned."""
        assert HarnessConfig().scratch_dir() == scratch_dir

    def test_config_to_dict_and_yaml(self):
        """Test config serialization."""
        config = Config.default()
        d = config.to_dict()

        assert "harness" in d
        assert "bootstrap" in d
        assert d["harness"]["timeout_seconds"] == 300

        yaml_str = config.to_yaml()
        assert "harness:" in yaml_str
        assert "timeout_seconds: 300" in yaml_str


# ============================================================================
# Context, Condition and Policy Tests
# ============================================================================


class TestContext:
    """Test EnvironmentContext."""

    def test_kernel_version_parsing(self):
        """Numeric prefix of the release is extracted."""
        assert parse_kernel_version("6.1.0-18-amd64") == (6, 1, 0)
        assert parse_kernel_version("4.9") == (4, 9)
        assert parse_kernel_version("") == ()

    def test_context_derives_version(self):
        """kernel_version is derived from the release."""
        ctx = EnvironmentContext(kernel_release="4.6.7-foo")
        assert ctx.kernel_version == (4, 6, 7)

    def test_context_is_immutable(self, context):
        """Contexts cannot be modified after creation."""
        with pytest.raises(Exception):
            context.container = "lxc"

    def test_with_capability(self, context):
        """with_capability returns a modified copy."""
        ctx = context.with_capability("ptmx-symlink")
        assert ctx.has("ptmx-symlink")
        assert not context.has("ptmx-symlink")
        assert not ctx.with_capability("ptmx-symlink", False).has("ptmx-symlink")


class TestCondition:
    """Test condition terms and any-of composition."""

    def test_kernel_comparison(self):
        """kernel<4.7 holds only on older kernels."""
        cond = Condition.parse("kernel<4.7")
        assert cond.holds(EnvironmentContext(kernel_release="4.6.0"))
        assert not cond.holds(EnvironmentContext(kernel_release="4.7"))
        assert not cond.holds(EnvironmentContext(kernel_release="6.1.0"))

    def test_unknown_kernel_never_matches(self):
        """A context without a kernel version fails every comparison."""
        assert not Condition.parse("kernel<4.7").holds(EnvironmentContext())
        assert not Condition.parse("kernel>=4.7").holds(EnvironmentContext())

    def test_container_terms(self, context):
        """container and container:<kind> terms."""
        lxc = EnvironmentContext(kernel_release="6.1", container="lxc")
        assert Condition.parse("container").holds(lxc)
        assert Condition.parse("container:lxc").holds(lxc)
        assert not Condition.parse("container:docker").holds(lxc)
        assert not Condition.parse("container").holds(context)

    def test_any_of(self, context):
        """Conditions compose as any-of."""
        cond = Condition.parse("kernel<4.7 | container:lxc | ptmx-symlink")
        assert len(cond.terms) == 3
        assert not cond.holds(context)
        assert cond.holds(context.with_capability("ptmx-symlink"))
        assert cond.matching_terms(context.with_capability("ptmx-symlink")) == ["ptmx-symlink"]

    def test_negation(self, context):
        """A leading ! negates a term."""
        cond = Condition.parse("!ptmx-symlink")
        assert cond.holds(context)
        assert not cond.holds(context.with_capability("ptmx-symlink"))

    def test_no_mknod(self, context):
        """no-mknod holds when the mknod capability is missing."""
        assert Condition.parse("no-mknod").holds(context)
        assert not Condition.parse("no-mknod").holds(context.with_capability("mknod"))

    def test_unknown_term(self):
        """Unknown terms are rejected at parse time."""
        with pytest.raises(ScenarioError):
            Condition.parse("phase-of-moon")


class TestPolicy:
    """Test failure policies."""

    def test_default_is_required(self, context):
        """Policies default to required."""
        policy = Policy.from_value(None)
        assert policy.is_required
        assert not policy.expects_failure(context)

    def test_expected_failure_from_yaml_value(self):
        """Mapping form with a list of terms and a reason."""
        policy = Policy.from_value({
            "expected_failure_under": ["kernel<4.7", "container:lxc"],
            "reason": "old devpts",
        })
        assert policy.kind == PolicyKind.EXPECTED_FAILURE
        assert policy.reason == "old devpts"
        assert policy.expects_failure(EnvironmentContext(kernel_release="4.4.0"))
        assert not policy.expects_failure(EnvironmentContext(kernel_release="5.10"))

    def test_expected_failure_needs_condition(self):
        """An expected-failure policy without a condition is invalid."""
        with pytest.raises(ScenarioError):
            Policy(kind=PolicyKind.EXPECTED_FAILURE)

    def test_invalid_policy(self):
        """Unknown policy values are rejected."""
        with pytest.raises(ScenarioError):
            Policy.from_value("sometimes")

    def test_round_trip_value(self):
        """to_value produces what from_value accepts."""
        policy = Policy.expected_failure_under("kernel<4.7|ptmx-symlink", "pty")
        assert Policy.from_value(policy.to_value()) == policy


# ============================================================================
# Assertion Tests
# ============================================================================


class TestAssertion:
    """Test assertion parsing and validation."""

    def test_paths_cannot_climb_out_of_the_root(self):
        """'..' components are rejected in probe and reference paths."""
        with pytest.raises(ScenarioError):
            ProbeSpec(ProbeKind.READ_FILE, "/dev/../../etc/passwd")
        with pytest.raises(ScenarioError):
            Reference("/../etc/debian_version")
        assert ProbeSpec(ProbeKind.EXISTS, "/dev/..pts").path == "/dev/..pts"

    def test_probe_kind_parsing(self):
        """Probe kinds accept snake_case, CamelCase and upper case."""
        assert ProbeKind.parse("is_char_device") == ProbeKind.IS_CHAR_DEVICE
        assert ProbeKind.parse("IsCharDevice") == ProbeKind.IS_CHAR_DEVICE
        assert ProbeKind.parse("DEVICE_ID_AND_MODE") == ProbeKind.DEVICE_ID_AND_MODE
        assert ProbeKind.parse("symlink-target") == ProbeKind.SYMLINK_TARGET
        with pytest.raises(ScenarioError):
            ProbeKind.parse("IsBlockDevice")

    def test_device_triple_forms(self):
        """Device triples accept several spellings; the mode is octal."""
        assert parse_device_triple("1,7,0666") == (1, 7, 0o666)
        assert parse_device_triple("1:7:666") == (1, 7, 0o666)
        assert parse_device_triple([5, 1, "0600"]) == (5, 1, 0o600)
        assert parse_device_triple([1, 3, 438]) == (1, 3, 0o666)
        with pytest.raises(ScenarioError):
            parse_device_triple("1,7")

    def test_device_assertion_from_dict(self):
        """A device_id_and_mode assertion gets a parsed triple."""
        assertion = Assertion.from_dict({
            "name": "full",
            "probe": {"kind": "device_id_and_mode", "path": "/dev/full"},
            "expect": "1,7,0666",
        })
        assert assertion.expected == (1, 7, 0o666)
        assert assertion.matcher == Matcher.EQUALS
        assert assertion.policy.is_required
        assert assertion.fatal is False

    def test_boolean_probe_defaults_to_true(self):
        """Boolean probes expect True unless told otherwise."""
        assertion = Assertion.from_dict({
            "name": "null is a char device",
            "probe": {"kind": "IsCharDevice", "path": "/dev/null"},
        })
        assert assertion.expected is True

    def test_symlink_probe_uses_symlink_matcher(self):
        """symlink_target probes compare with the symlink matcher."""
        assertion = Assertion.from_dict({
            "name": "ptmx",
            "probe": {"kind": "symlink_target", "path": "/dev/ptmx"},
            "expect": "pts/ptmx",
        })
        assert assertion.matcher == Matcher.SYMLINK_TARGET

    def test_command_assertion_with_reference(self):
        """Commands default to the output matcher; references stay references."""
        assertion = Assertion.from_dict({
            "name": "script",
            "command": "script -q -c 'cat /etc/debian_version' /dev/null",
            "expect": {"reference": "/etc/debian_version"},
            "policy": {"expected_failure_under": "kernel<4.7"},
        })
        assert assertion.command.argv == (
            "script", "-q", "-c", "cat /etc/debian_version", "/dev/null",
        )
        assert assertion.expected == Reference("/etc/debian_version")
        assert assertion.matcher == Matcher.OUTPUT
        assert not assertion.policy.is_required

    def test_read_file_expected_is_stripped(self):
        """read_file values are compared without surrounding whitespace."""
        assertion = Assertion.from_dict({
            "name": "version",
            "probe": {"kind": "read_file", "path": "/etc/debian_version"},
            "expect": "trixie/sid\n",
        })
        assert assertion.expected == "trixie/sid"

    def test_needs_exactly_one_of_probe_or_command(self):
        """Probe and command are mutually exclusive and one is required."""
        with pytest.raises(ScenarioError):
            Assertion(name="neither", expected=True)
        with pytest.raises(ScenarioError):
            Assertion(
                name="both",
                expected="x",
                probe=ProbeSpec(ProbeKind.EXISTS, "/etc"),
                command=CommandSpec(argv=["true"]),
            )

    def test_missing_expected_value(self):
        """Non-boolean probes need an expected value."""
        with pytest.raises(ScenarioError):
            Assertion(name="x", probe=ProbeSpec(ProbeKind.SYMLINK_TARGET, "/dev/fd"))

    def test_relative_probe_path_rejected(self):
        """Paths are absolute inside the root."""
        with pytest.raises(ScenarioError):
            ProbeSpec(ProbeKind.EXISTS, "etc/debian_version")

    def test_invalid_matcher(self):
        """Unknown matchers are rejected."""
        with pytest.raises(ScenarioError):
            Assertion.from_dict({
                "name": "x",
                "probe": {"kind": "read_file", "path": "/etc/hostname"},
                "expect": "x",
                "matcher": "fuzzy",
            })

    def test_empty_command_rejected(self):
        """An empty argv is invalid."""
        with pytest.raises(ScenarioError):
            CommandSpec(argv=[])


# ============================================================================
# Scenario Tests
# ============================================================================


class TestScenario:
    """Test scenario parsing and validation."""

    @pytest.fixture
    def nested_yaml(self, tmp_path):
        """A scenario file with a nested sub-scenario."""
        path = tmp_path / "nested.yaml"
        path.write_text("""
scenario:
  id: outer
  name: Outer
  wrapper: none
  steps:
    - name: debian_version exists
      probe: {kind: exists, path: /etc/debian_version}
      fatal: true
    - scenario:
        id: inner
        name: Inner
        wrapper: schroot
        policy:
          expected_failure_under: ["kernel<4.7", "container:lxc"]
        steps:
          - name: cat
            command: [cat, /etc/debian_version]
            expect: {reference: /etc/debian_version}
""")
        return path

    def test_load_nested_scenario(self, nested_yaml):
        """Sub-scenarios are parsed recursively."""
        scenario = Scenario.from_yaml(nested_yaml)

        assert scenario.id == "outer"
        assert scenario.wrapper == "none"
        assert len(scenario.steps) == 2
        assert len(scenario.assertions) == 1
        assert scenario.assertions[0].fatal is True

        inner = scenario.sub_scenarios[0]
        assert inner.id == "inner"
        assert inner.wrapper == "schroot"
        assert not inner.policy.is_required
        assert scenario.total_assertions == 2
        assert [s.id for s in scenario.walk()] == ["outer", "inner"]

    def test_scenario_missing_required_field(self):
        """Test error on missing required field."""
        with pytest.raises(ScenarioError) as exc_info:
            Scenario.from_dict({"scenario": {"name": "No ID"}})
        assert "id" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML is a ScenarioError."""
        path = tmp_path / "broken.yaml"
        path.write_text("scenario: [unclosed\n")
        with pytest.raises(ScenarioError):
            Scenario.from_yaml(path)

    def test_bad_step_is_reported(self):
        """Step errors surface as ScenarioError."""
        with pytest.raises(ScenarioError):
            Scenario.from_dict({
                "id": "x",
                "name": "x",
                "steps": [{"name": "no probe or command", "expect": 1}],
            })

    def test_to_dict_round_trip(self, nested_yaml):
        """Serialized scenarios load back to the same structure."""
        scenario = Scenario.from_yaml(nested_yaml)
        again = Scenario.from_dict(scenario.to_dict())
        assert again.id == scenario.id
        assert again.total_assertions == scenario.total_assertions
        assert again.sub_scenarios[0].policy == scenario.sub_scenarios[0].policy

    def test_load_scenarios_directory(self, nested_yaml):
        """Directories are searched for YAML files."""
        scenarios = load_scenarios(nested_yaml.parent)
        assert [s.id for s in scenarios] == ["outer"]

    def test_load_scenarios_missing_path(self, tmp_path):
        """A missing path is an error."""
        with pytest.raises(ScenarioError):
            load_scenarios(tmp_path / "missing")

    def test_builtin_suite(self):
        """The built-in debootstrap suite loads and has the expected shape."""
        scenarios = load_scenarios()
        assert [s.id for s in scenarios] == ["debootstrap"]

        suite = scenarios[0]
        ids = [s.id for s in suite.walk()]
        assert ids == ["debootstrap", "bootstrap", "devices", "schroot", "pbuilder"]

        bootstrap = suite.sub_scenarios[0]
        assert all(a.fatal for a in bootstrap.assertions)

        devices = {a.name: a for a in suite.sub_scenarios[1].assertions}
        assert devices["/dev/full is 1:7 mode 0666"].expected == (1, 7, 0o666)
        assert devices["/dev/console is 5:1 mode 0600"].expected == (5, 1, 0o600)

        for sub in suite.sub_scenarios[2:]:
            assert sub.policy.condition.terms == ("kernel<4.7", "container:lxc", "ptmx-symlink")
            assert sub.assertions[0].expected == Reference("/etc/debian_version")


# ============================================================================
# Result Tests
# ============================================================================


class TestResults:
    """Test result dataclasses."""

    def test_outcome_is_frozen(self):
        """Outcomes are immutable."""
        outcome = Outcome(assertion="a", status=OutcomeStatus.PASS)
        with pytest.raises(Exception):
            outcome.status = OutcomeStatus.FAIL

    def test_outcome_str_and_dict(self):
        """Outcome renders status, scenario and detail."""
        outcome = Outcome(
            assertion="full",
            status=OutcomeStatus.FAIL,
            detail="expected 1:7:0666, got 1:3:0666",
            scenario="devices",
            expected=(1, 7, 0o666),
            actual=(1, 3, 0o666),
        )
        assert str(outcome) == "[FAIL] devices: full (expected 1:7:0666, got 1:3:0666)"
        d = outcome.to_dict()
        assert d["status"] == "fail"
        assert d["scenario"] == "devices"
        assert outcome.failed and not outcome.passed

    def test_scenario_result_collects_children(self):
        """all_outcomes includes nested results."""
        child = ScenarioResult(
            scenario_id="outer/inner",
            scenario_name="Inner",
            status=ScenarioStatus.COMPLETED,
            outcomes=[Outcome(assertion="b", status=OutcomeStatus.SKIP)],
        )
        parent = ScenarioResult(
            scenario_id="outer",
            scenario_name="Outer",
            status=ScenarioStatus.COMPLETED,
            outcomes=[Outcome(assertion="a", status=OutcomeStatus.PASS)],
            children=[child],
        )
        assert [o.assertion for o in parent.all_outcomes()] == ["a", "b"]
        assert "1/2 passed" in parent.summary()
        assert parent.to_dict()["children"][0]["scenario_id"] == "outer/inner"
        assert not parent.aborted
