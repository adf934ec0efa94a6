"""
Scenario data models for rootcheck.

A Scenario defines:
- An ordered list of steps (assertions and nested sub-scenarios)
- Which chroot wrapper runs its commands
- A policy applied to every required assertion beneath it
- Optional metadata (description, tags)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Dict, Any, Iterator, Union

import yaml

from ..exceptions import ScenarioError
from .assertion import Assertion
from .policy import Policy

BUILTIN_SCENARIOS = Path(__file__).resolve().parent.parent / "scenarios"


@dataclass
class Scenario:
    """A named, ordered group of checks against one target root.

    Example YAML:
        scenario:
          id: "schroot"
          name: "script(1) under a schroot-like wrapper"
          wrapper: "schroot"
          policy:
            expected_failure_under: ["kernel<4.7", "container:lxc"]
          steps:
            - name: "script(1) reproduces debian_version"
              command: ["script", "-qc", "cat /etc/debian_version", "/dev/null"]
              expect: {reference: /etc/debian_version}
            - scenario:
                id: "nested"
                name: "Nested checks"
                steps: [...]
    """

    # Required fields
    id: str
    name: str

    # Optional fields
    description: str = ""
    steps: List[Union[Assertion, "Scenario"]] = field(default_factory=list)
    wrapper: Optional[str] = None  # None = inherit from parent scenario
    policy: Policy = field(default_factory=Policy.required)
    tags: List[str] = field(default_factory=list)
    source_path: Optional[Path] = None

    def __post_init__(self):
        if not self.id:
            raise ScenarioError("Scenario id cannot be empty")
        if not self.name:
            raise ScenarioError("Scenario name cannot be empty")
        for step in self.steps:
            if not isinstance(step, (Assertion, Scenario)):
                raise ScenarioError(
                    f"Scenario '{self.id}' step is not an assertion or scenario: {step!r}"
                )

    @property
    def assertions(self) -> List[Assertion]:
        """Direct assertion steps (not descending into sub-scenarios)."""
        return [s for s in self.steps if isinstance(s, Assertion)]

    @property
    def sub_scenarios(self) -> List["Scenario"]:
        return [s for s in self.steps if isinstance(s, Scenario)]

    def walk(self) -> Iterator["Scenario"]:
        """This scenario and every nested one, depth first."""
        yield self
        for sub in self.sub_scenarios:
            yield from sub.walk()

    @property
    def total_assertions(self) -> int:
        return sum(len(s.assertions) for s in self.walk())

    @classmethod
    def from_yaml(cls, path: Path) -> "Scenario":
        """Load scenario from YAML file.

        Args:
            path: Path to YAML file

        Returns:
            Scenario instance

        Raises:
            ScenarioError: If file not found, invalid YAML, or validation fails
        """
        if not path.exists():
            raise ScenarioError(f"Scenario file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ScenarioError(f"Invalid YAML in {path}: {e}")

        if not data:
            raise ScenarioError(f"Empty scenario file: {path}")

        return cls.from_dict(data, source_path=path)

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], source_path: Optional[Path] = None
    ) -> "Scenario":
        """Create Scenario from dictionary.

        Args:
            data: Dictionary containing scenario data
            source_path: Optional source path for error messages

        Returns:
            Scenario instance

        Raises:
            ScenarioError: If required fields missing or validation fails
        """
        # Handle both {"scenario": {...}} and direct {...} formats
        scenario_data = data.get("scenario", data)
        source = f" in {source_path}" if source_path else ""

        if not isinstance(scenario_data, dict):
            raise ScenarioError(f"Scenario must be a mapping{source}")

        for required in ["id", "name"]:
            if required not in scenario_data:
                raise ScenarioError(f"Missing required field '{required}'{source}")

        try:
            steps: List[Union[Assertion, Scenario]] = []
            for raw in scenario_data.get("steps", []) or []:
                if not isinstance(raw, dict):
                    raise ScenarioError(f"Step must be a mapping{source}: {raw!r}")
                if "scenario" in raw:
                    steps.append(cls.from_dict(raw, source_path=source_path))
                else:
                    steps.append(Assertion.from_dict(raw, source=source))

            return cls(
                id=str(scenario_data["id"]),
                name=scenario_data["name"],
                description=scenario_data.get("description", ""),
                steps=steps,
                wrapper=scenario_data.get("wrapper"),
                policy=Policy.from_value(scenario_data.get("policy")),
                tags=scenario_data.get("tags", []),
                source_path=source_path,
            )

        except ScenarioError:
            raise
        except Exception as e:
            raise ScenarioError(f"Failed to parse scenario{source}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert scenario to dictionary (for serialization)."""
        steps = []
        for step in self.steps:
            steps.append(step.to_dict())
        return {
            "scenario": {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "wrapper": self.wrapper,
                "policy": self.policy.to_value(),
                "tags": self.tags,
                "steps": steps,
            }
        }

    def to_yaml(self) -> str:
        """Serialize scenario to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)


def load_scenarios(path: Optional[Path] = None) -> List[Scenario]:
    """Load scenarios from a file or directory.

    Directories are searched recursively for *.yaml / *.yml files, in
    sorted order so runs are reproducible. Without a path the built-in
    suite is loaded.

    Raises:
        ScenarioError: If the path does not exist or a file fails to parse
    """
    path = path or BUILTIN_SCENARIOS

    if path.is_file():
        return [Scenario.from_yaml(path)]
    if path.is_dir():
        yaml_files = sorted(list(path.rglob("*.yaml")) + list(path.rglob("*.yml")))
        return [Scenario.from_yaml(f) for f in yaml_files]
    raise ScenarioError(f"Path not found: {path}")
