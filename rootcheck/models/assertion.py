"""
Assertion data models for rootcheck.

An Assertion names one fact about the target root, the value it
must have, and how a failure is judged:
- What to observe (a filesystem probe or a wrapped command)
- What to expect (a literal value or a reference file in the root)
- How to compare (matcher)
- Policy (required or expected failure under a condition)
"""

from dataclasses import dataclass, field
from enum import Enum
import shlex
from typing import Any, Dict, List, Optional, Tuple, Union

from ..exceptions import ScenarioError
from .policy import Condition, Policy


class ProbeKind(Enum):
    """Facts a FactProbe can report about a path."""

    EXISTS = "exists"
    IS_CHAR_DEVICE = "is_char_device"
    IS_DIRECTORY = "is_directory"
    IS_SYMLINK = "is_symlink"
    SYMLINK_TARGET = "symlink_target"
    DEVICE_ID_AND_MODE = "device_id_and_mode"
    READ_FILE = "read_file"

    @classmethod
    def parse(cls, value: Union[str, "ProbeKind"]) -> "ProbeKind":
        """Accept enum values, snake_case or CamelCase names."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        if "_" in text or "-" in text or text.islower() or text.isupper():
            normalized = text.lower().replace("-", "_")
        else:
            normalized = "".join(
                "_" + ch.lower() if ch.isupper() and i else ch.lower()
                for i, ch in enumerate(text)
            )
        try:
            return cls(normalized)
        except ValueError:
            valid = [k.value for k in cls]
            raise ScenarioError(f"Unknown probe kind '{value}'. Must be one of: {valid}")

    @property
    def is_boolean(self) -> bool:
        return self in (
            ProbeKind.EXISTS,
            ProbeKind.IS_CHAR_DEVICE,
            ProbeKind.IS_DIRECTORY,
            ProbeKind.IS_SYMLINK,
        )


class Matcher(Enum):
    """How actual and expected values are compared."""

    EQUALS = "equals"  # type-appropriate equality
    SYMLINK_TARGET = "symlink_target"  # relative and absolute targets are equal
    REGEX = "regex"  # re.search(expected, actual)
    OUTPUT = "output"  # bytes, line endings normalized


@dataclass(frozen=True)
class ProbeSpec:
    """A fact to query: probe kind plus a path inside the root."""

    kind: ProbeKind
    path: str

    def __post_init__(self):
        if not isinstance(self.kind, ProbeKind):
            object.__setattr__(self, "kind", ProbeKind.parse(self.kind))
        if not self.path:
            raise ScenarioError("ProbeSpec path cannot be empty")
        if not self.path.startswith("/"):
            raise ScenarioError(f"ProbeSpec path must be absolute inside the root: {self.path}")
        if ".." in self.path.split("/"):
            raise ScenarioError(f"ProbeSpec path may not contain '..': {self.path}")

    def __str__(self) -> str:
        return f"{self.kind.value}({self.path})"


@dataclass(frozen=True)
class CommandSpec:
    """A command to run inside the root through a chroot wrapper."""

    argv: Tuple[str, ...]
    stdin: Optional[str] = None
    timeout_seconds: Optional[float] = None

    def __post_init__(self):
        if isinstance(self.argv, str):
            object.__setattr__(self, "argv", tuple(shlex.split(self.argv)))
        else:
            object.__setattr__(self, "argv", tuple(self.argv))
        if not self.argv:
            raise ScenarioError("CommandSpec argv cannot be empty")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ScenarioError("CommandSpec timeout_seconds must be positive")

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class Reference:
    """Expected value taken from a file inside the root, read directly."""

    path: str

    def __post_init__(self):
        if not self.path.startswith("/"):
            raise ScenarioError(f"Reference path must be absolute inside the root: {self.path}")
        if ".." in self.path.split("/"):
            raise ScenarioError(f"Reference path may not contain '..': {self.path}")

    def __str__(self) -> str:
        return f"<contents of {self.path}>"


def parse_device_triple(value) -> Tuple[int, int, int]:
    """Normalize an expected device triple.

    Accepts "1,7,0666", "1:7:666", [1, 7, 438] or [1, 7, "0666"].
    The mode is read as octal when given as a string.
    """
    if isinstance(value, str):
        parts: List[Any] = [p.strip() for p in value.replace(":", ",").split(",")]
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        raise ScenarioError(f"Invalid device triple: {value!r}")

    if len(parts) != 3:
        raise ScenarioError(f"Device triple needs major, minor and mode: {value!r}")

    try:
        major = int(parts[0])
        minor = int(parts[1])
        mode = parts[2]
        if isinstance(mode, str):
            mode = int(mode.lower().replace("0o", ""), 8)
        mode = int(mode)
    except (TypeError, ValueError):
        raise ScenarioError(f"Invalid device triple: {value!r}")

    return (major, minor, mode)


@dataclass
class Assertion:
    """A named check against the target root.

    Exactly one of probe/command is set. Exactly one expected value
    and one policy.

    Example YAML:
        - name: "/dev/full is the full device"
          probe: {kind: device_id_and_mode, path: /dev/full}
          expect: "1,7,0666"
        - name: "script(1) reproduces debian_version"
          command: ["script", "-qc", "cat /etc/debian_version", "/dev/null"]
          expect: {reference: /etc/debian_version}
          policy:
            expected_failure_under: ["kernel<4.7"]
    """

    name: str
    expected: Any = None
    probe: Optional[ProbeSpec] = None
    command: Optional[CommandSpec] = None
    matcher: Optional[Matcher] = None
    policy: Policy = field(default_factory=Policy.required)
    fatal: bool = False
    skip_when: Optional[Condition] = None
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ScenarioError("Assertion name cannot be empty")
        if (self.probe is None) == (self.command is None):
            raise ScenarioError(
                f"Assertion '{self.name}' needs exactly one of probe or command"
            )

        if isinstance(self.matcher, str):
            try:
                self.matcher = Matcher(self.matcher)
            except ValueError:
                valid = [m.value for m in Matcher]
                raise ScenarioError(
                    f"Invalid matcher '{self.matcher}'. Must be one of: {valid}"
                )
        if self.matcher is None:
            self.matcher = self._default_matcher()

        self.expected = self._normalize_expected(self.expected)

    def _default_matcher(self) -> Matcher:
        if self.command is not None:
            return Matcher.OUTPUT
        if self.probe.kind == ProbeKind.SYMLINK_TARGET:
            return Matcher.SYMLINK_TARGET
        return Matcher.EQUALS

    def _normalize_expected(self, expected: Any) -> Any:
        if isinstance(expected, Reference):
            return expected
        if self.command is not None:
            if expected is None:
                raise ScenarioError(f"Assertion '{self.name}' has no expected value")
            return expected if isinstance(expected, bytes) else str(expected)

        kind = self.probe.kind
        if kind.is_boolean:
            return True if expected is None else bool(expected)
        if expected is None:
            raise ScenarioError(f"Assertion '{self.name}' has no expected value")
        if kind == ProbeKind.DEVICE_ID_AND_MODE and self.matcher == Matcher.EQUALS:
            return parse_device_triple(expected)
        if kind == ProbeKind.READ_FILE and self.matcher == Matcher.EQUALS:
            return str(expected).strip()
        if kind in (ProbeKind.SYMLINK_TARGET, ProbeKind.READ_FILE):
            return str(expected)
        return expected

    @property
    def subject(self) -> str:
        """What is observed, for logs and reports."""
        return str(self.probe) if self.probe is not None else f"run({self.command})"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "") -> "Assertion":
        """Create an Assertion from its YAML mapping."""
        if "name" not in data:
            raise ScenarioError(f"Assertion missing required field 'name'{source}")

        probe = None
        if "probe" in data:
            probe_data = data["probe"]
            if not isinstance(probe_data, dict):
                raise ScenarioError(f"Assertion '{data['name']}': probe must be a mapping{source}")
            probe = ProbeSpec(
                kind=ProbeKind.parse(probe_data.get("kind", "")),
                path=probe_data.get("path", ""),
            )

        command = None
        if "command" in data:
            cmd_data = data["command"]
            if isinstance(cmd_data, dict):
                command = CommandSpec(
                    argv=cmd_data.get("argv", ()),
                    stdin=cmd_data.get("stdin"),
                    timeout_seconds=cmd_data.get("timeout_seconds"),
                )
            else:
                command = CommandSpec(argv=cmd_data)

        expected = data.get("expect")
        if isinstance(expected, dict) and "reference" in expected:
            expected = Reference(expected["reference"])

        skip_when = data.get("skip_when")

        return cls(
            name=data["name"],
            expected=expected,
            probe=probe,
            command=command,
            matcher=data.get("matcher"),
            policy=Policy.from_value(data.get("policy")),
            fatal=bool(data.get("fatal", False)),
            skip_when=Condition.parse(skip_when) if skip_when else None,
            description=data.get("description", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert assertion to dictionary (for serialization)."""
        data: Dict[str, Any] = {"name": self.name}
        if self.probe is not None:
            data["probe"] = {"kind": self.probe.kind.value, "path": self.probe.path}
        if self.command is not None:
            data["command"] = {
                "argv": list(self.command.argv),
                "stdin": self.command.stdin,
                "timeout_seconds": self.command.timeout_seconds,
            }
        if isinstance(self.expected, Reference):
            data["expect"] = {"reference": self.expected.path}
        elif isinstance(self.expected, tuple):
            data["expect"] = list(self.expected)
        else:
            data["expect"] = self.expected
        data["matcher"] = self.matcher.value
        data["policy"] = self.policy.to_value()
        data["fatal"] = self.fatal
        if self.skip_when is not None:
            data["skip_when"] = list(self.skip_when.terms)
        if self.description:
            data["description"] = self.description
        return data
