"""
External process execution for rootcheck.

ProcessRunner is the only place that spawns children. Every child
runs in its own session so that a timeout or an interrupt can kill
the whole process group, not just the direct child.
"""

from dataclasses import dataclass
import logging
import os
import shlex
import signal
import subprocess
import time
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union

from ..exceptions import LaunchError, TimeoutError

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL when tearing down a process group
KILL_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class ProcessResult:
    """What a finished child process left behind.

    A non-zero exit_code is not an error here; callers decide.
    """

    argv: Tuple[str, ...]
    exit_code: int
    stdout: bytes
    stderr: bytes
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    def __str__(self) -> str:
        return (
            f"ProcessResult(exit={self.exit_code}, {self.duration_seconds:.1f}s, "
            f"{len(self.stdout)} bytes out)"
        )


class ProcessRunner:
    """Runs external commands and captures their output.

    Usage:
        runner = ProcessRunner(default_timeout=60)
        result = runner.run(["stat", "-c", "%a", "/etc/passwd"])
        if result.exit_code != 0:
            print(result.stderr_text)

    Raises LaunchError when the command cannot be spawned and
    TimeoutError when it outlives its timeout. Never raises on a
    non-zero exit status.
    """

    def __init__(self, default_timeout: Optional[float] = None):
        """Initialize runner.

        Args:
            default_timeout: Timeout applied when run() gets none (None = unbounded)
        """
        self.default_timeout = default_timeout

    def run(
        self,
        argv: Sequence[Union[str, Path]],
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, Optional[str]]] = None,
        stdin: Optional[Union[str, bytes]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            argv: Program and arguments
            cwd: Working directory for the child
            env: Overrides on top of the current environment (None value unsets)
            stdin: Data fed to the child's stdin (stdin is /dev/null otherwise)
            timeout: Seconds before the child's process group is killed

        Returns:
            ProcessResult with exit code and captured output

        Raises:
            LaunchError: If the executable is missing or cannot be spawned
            TimeoutError: If the child exceeds the timeout
        """
        args = tuple(str(a) for a in argv)
        if not args:
            raise LaunchError("Cannot run an empty command")

        if timeout is None:
            timeout = self.default_timeout

        child_env = None
        if env:
            child_env = dict(os.environ)
            for key, value in env.items():
                if value is None:
                    child_env.pop(key, None)
                else:
                    child_env[key] = value

        if isinstance(stdin, str):
            stdin = stdin.encode("utf-8")

        cmd_str = shlex.join(args)
        logger.debug(f"Running: {cmd_str}" + (f" (cwd={cwd})" if cwd else ""))
        start_time = time.monotonic()

        try:
            proc = subprocess.Popen(
                args,
                cwd=cwd,
                env=child_env,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise LaunchError(f"Command not found: {args[0]}: {e}") from e
        except PermissionError as e:
            raise LaunchError(f"Command not executable: {args[0]}: {e}") from e
        except OSError as e:
            raise LaunchError(f"Failed to start {cmd_str}: {e}") from e

        try:
            stdout, stderr = proc.communicate(input=stdin, timeout=timeout)
        except subprocess.TimeoutExpired:
            self._terminate_group(proc)
            logger.error(f"Timed out after {timeout}s: {cmd_str}")
            raise TimeoutError(f"Command timed out after {timeout}s: {cmd_str}")
        except KeyboardInterrupt:
            logger.warning(f"Interrupted, killing: {cmd_str}")
            self._terminate_group(proc)
            raise

        duration = time.monotonic() - start_time
        logger.debug(f"Exited with {proc.returncode} after {duration:.2f}s: {cmd_str}")

        return ProcessResult(
            argv=args,
            exit_code=proc.returncode,
            stdout=stdout or b"",
            stderr=stderr or b"",
            duration_seconds=duration,
        )

    @staticmethod
    def _signal_group(proc: subprocess.Popen, sig: int) -> None:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass

    def _terminate_group(self, proc: subprocess.Popen) -> None:
        """SIGTERM the child's process group, then SIGKILL what is left."""
        self._signal_group(proc, signal.SIGTERM)
        try:
            proc.communicate(timeout=KILL_GRACE_SECONDS)
            return
        except subprocess.TimeoutExpired:
            pass

        self._signal_group(proc, signal.SIGKILL)
        try:
            proc.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            # a grandchild in another session still holds the pipes
            for pipe in (proc.stdin, proc.stdout, proc.stderr):
                if pipe is not None:
                    pipe.close()
            proc.wait()
