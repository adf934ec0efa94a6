"""
Configuration management for rootcheck.

Supports:
- Programmatic configuration via dataclasses
- YAML file loading
- Environment variable overrides
- Sensible defaults for all settings
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Any, Dict, List
import os

import yaml

from .exceptions import ConfigurationError


@dataclass
class HarnessConfig:
    """Configuration for the harness itself."""

    timeout_seconds: float = 300
    scratch_env_var: str = "AUTOPKGTEST_TMP"
    keep_target_root: bool = False
    stat_command: str = "stat"

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        if not self.scratch_env_var:
            raise ConfigurationError("scratch_env_var cannot be empty")

    def scratch_dir(self) -> Path:
        """Resolve the scratch directory from the environment.

        Raises:
            ConfigurationError: If the variable is unset or not a directory
        """
        value = os.environ.get(self.scratch_env_var)
        if not value:
            raise ConfigurationError(
                f"${self.scratch_env_var} is not set; it must name a scratch directory"
            )
        path = Path(value)
        if not path.is_dir():
            raise ConfigurationError(
                f"${self.scratch_env_var} points to {path}, which is not a directory"
            )
        return path


@dataclass
class BootstrapConfig:
    """Configuration for creating the target root with debootstrap."""

    debootstrap: str = "debootstrap"
    suite: str = "unstable"
    mirror: str = "http://deb.debian.org/debian"
    variant: str = "minbase"
    extra_args: List[str] = field(default_factory=list)
    timeout_seconds: float = 1800

    def __post_init__(self):
        if not self.suite:
            raise ConfigurationError("suite cannot be empty")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("bootstrap timeout_seconds must be positive")

    def argv(self, target: Path) -> List[str]:
        """Build the debootstrap command line for a target directory."""
        cmd = [self.debootstrap]
        if self.variant:
            cmd.append(f"--variant={self.variant}")
        cmd.extend(self.extra_args)
        cmd.extend([self.suite, str(target), self.mirror])
        return cmd


@dataclass
class Config:
    """Master configuration for rootcheck.

    Example usage:
        # Defaults
        config = Config.default()

        # From file
        config = Config.from_yaml(Path("rootcheck.yaml"))

        # Programmatic
        config = Config(
            harness=HarnessConfig(timeout_seconds=60),
            bootstrap=BootstrapConfig(suite="trixie"),
        )
    """

    harness: HarnessConfig = field(default_factory=HarnessConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    # wrapper name -> keyword overrides for that wrapper
    wrappers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be a mapping: {path}")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        try:
            return cls(
                harness=HarnessConfig(**data.get("harness", {})),
                bootstrap=BootstrapConfig(**data.get("bootstrap", {})),
                wrappers=dict(data.get("wrappers", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}")

    @classmethod
    def default(cls) -> "Config":
        """Create configuration with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, base: Optional["Config"] = None) -> "Config":
        """Apply environment variable overrides.

        Supported environment variables:
        - ROOTCHECK_TIMEOUT: Per-command timeout in seconds
        - ROOTCHECK_MIRROR: Mirror URL handed to debootstrap
        - ROOTCHECK_SUITE: Suite handed to debootstrap
        """
        config = base or cls.default()

        if timeout := os.environ.get("ROOTCHECK_TIMEOUT"):
            try:
                value = float(timeout)
            except ValueError:
                raise ConfigurationError(f"ROOTCHECK_TIMEOUT is not a number: {timeout}")
            if value <= 0:
                raise ConfigurationError("ROOTCHECK_TIMEOUT must be positive")
            config.harness.timeout_seconds = value
        if mirror := os.environ.get("ROOTCHECK_MIRROR"):
            config.bootstrap.mirror = mirror
        if suite := os.environ.get("ROOTCHECK_SUITE"):
            config.bootstrap.suite = suite

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (for serialization)."""
        return {
            "harness": {
                "timeout_seconds": self.harness.timeout_seconds,
                "scratch_env_var": self.harness.scratch_env_var,
                "keep_target_root": self.harness.keep_target_root,
                "stat_command": self.harness.stat_command,
            },
            "bootstrap": {
                "debootstrap": self.bootstrap.debootstrap,
                "suite": self.bootstrap.suite,
                "mirror": self.bootstrap.mirror,
                "variant": self.bootstrap.variant,
                "extra_args": list(self.bootstrap.extra_args),
                "timeout_seconds": self.bootstrap.timeout_seconds,
            },
            "wrappers": self.wrappers,
        }

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)
