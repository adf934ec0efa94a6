"""
Exception hierarchy for rootcheck.

All exceptions inherit from RootcheckError for easy catching.
"""


class RootcheckError(Exception):
    """Base exception for the verification harness.

    All other exceptions in this module inherit from this,
    allowing callers to catch any harness error with a single except.
    """
    pass


class LaunchError(RootcheckError):
    """An external tool could not be started.

    Raised when:
    - The executable is not found in PATH
    - The executable is not executable (permission denied)
    - fork/exec fails for any other OS reason

    This is fatal for the step that needed the tool.
    """
    pass


class TimeoutError(RootcheckError):
    """A child process exceeded its time bound.

    The child's process group has already been killed when this is raised.
    """
    pass


class ProbeError(RootcheckError):
    """A metadata query about the target root failed.

    Raised when:
    - The probed path does not exist and the probe needs it
    - The external stat query fails or prints something unparsable
    - The file cannot be read
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class AssertionMismatch(RootcheckError):
    """An observed value differs from the expected one.

    Note: The engine turns this into an Outcome. It only escapes
    when a caller uses the matchers directly.
    """

    def __init__(self, expected, actual, message: str = ""):
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"expected {expected!r}, got {actual!r}")


class ScenarioError(RootcheckError):
    """Error loading or validating a scenario.

    Raised when:
    - YAML parsing fails
    - Required fields are missing
    - A probe kind, matcher or condition is unknown
    - File not found
    """
    pass


class ConfigurationError(RootcheckError):
    """Error in configuration.

    Raised when:
    - Config file not found
    - Config validation fails
    - The scratch directory variable is unset
    """
    pass


class TargetRootError(RootcheckError):
    """Error creating or tearing down the target root.

    Raised when:
    - debootstrap exits non-zero
    - The target root path is not usable
    """
    pass
