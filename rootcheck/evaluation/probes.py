"""
Filesystem fact probes for rootcheck.

A FactProbe answers one question about one path inside the target
root. Paths are always given as seen from inside the root
("/dev/null"), and symlinks are never followed for the final
component.
"""

from dataclasses import dataclass
import logging
import os
import stat
from pathlib import Path
from typing import Any, Tuple

from ..execution.process_runner import ProcessRunner
from ..exceptions import ProbeError
from ..models.assertion import ProbeKind

logger = logging.getLogger(__name__)

STAT_TIMEOUT_SECONDS = 30
STAT_FORMAT = "%t:%T:%a"  # major (hex), minor (hex), access bits (octal)


@dataclass(frozen=True)
class FactResult:
    """One observed fact."""

    kind: ProbeKind
    path: str
    value: Any

    def __str__(self) -> str:
        return f"{self.kind.value}({self.path}) = {self.value!r}"


def parse_stat_triple(text: str) -> Tuple[int, int, int]:
    """Parse `stat -c %t:%T:%a` output into (major, minor, mode)."""
    parts = text.strip().split(":")
    if len(parts) != 3:
        raise ValueError(f"expected major:minor:mode, got {text.strip()!r}")
    return (int(parts[0], 16), int(parts[1], 16), int(parts[2], 8))


class FactProbe:
    """Queries facts about paths inside a target root.

    Device numbers come from an external stat(1) call, the rest from
    lstat/readlink.

    Usage:
        probe = FactProbe(Path("/srv/chroot"), ProcessRunner())
        probe.probe(ProbeKind.DEVICE_ID_AND_MODE, "/dev/full").value
        # (1, 7, 0o666)
    """

    def __init__(
        self,
        root: Path,
        runner: ProcessRunner,
        stat_command: str = "stat",
        timeout: float = STAT_TIMEOUT_SECONDS,
    ):
        self.root = Path(root)
        self.runner = runner
        self.stat_command = stat_command
        self.timeout = timeout

    def resolve(self, path: str) -> Path:
        """Host path of a path inside the root.

        Raises:
            ProbeError: If a ".." component would leave the root
        """
        parts = [p for p in path.split("/") if p not in ("", ".")]
        if ".." in parts:
            raise ProbeError(path, "'..' would leave the target root")
        return self.root.joinpath(*parts)

    def probe(self, kind: ProbeKind, path: str) -> FactResult:
        """Query one fact.

        Raises:
            ProbeError: If the path is missing (for every kind but EXISTS)
                or the query itself fails
        """
        kind = ProbeKind.parse(kind)
        host_path = self.resolve(path)

        if kind == ProbeKind.EXISTS:
            return FactResult(kind, path, os.path.lexists(host_path))

        try:
            st = os.lstat(host_path)
        except FileNotFoundError:
            raise ProbeError(path, "does not exist")
        except OSError as e:
            raise ProbeError(path, f"cannot stat: {e.strerror or e}")

        if kind == ProbeKind.IS_CHAR_DEVICE:
            value: Any = stat.S_ISCHR(st.st_mode)
        elif kind == ProbeKind.IS_DIRECTORY:
            value = stat.S_ISDIR(st.st_mode)
        elif kind == ProbeKind.IS_SYMLINK:
            value = stat.S_ISLNK(st.st_mode)
        elif kind == ProbeKind.SYMLINK_TARGET:
            if not stat.S_ISLNK(st.st_mode):
                raise ProbeError(path, "is not a symlink")
            value = os.readlink(host_path)
        elif kind == ProbeKind.DEVICE_ID_AND_MODE:
            value = self._device_triple(path, host_path)
        elif kind == ProbeKind.READ_FILE:
            value = self.read_bytes(path).decode("utf-8", errors="replace").strip()
        else:
            raise ProbeError(path, f"unsupported probe kind {kind}")

        result = FactResult(kind, path, value)
        logger.debug(f"Probed {result}")
        return result

    def read_bytes(self, path: str) -> bytes:
        """Raw content of a file inside the root."""
        try:
            return self.resolve(path).read_bytes()
        except FileNotFoundError:
            raise ProbeError(path, "does not exist")
        except OSError as e:
            raise ProbeError(path, f"cannot read: {e.strerror or e}")

    def _device_triple(self, path: str, host_path: Path) -> Tuple[int, int, int]:
        result = self.runner.run(
            [self.stat_command, "-c", STAT_FORMAT, str(host_path)],
            timeout=self.timeout,
        )
        if result.exit_code != 0:
            raise ProbeError(path, f"stat failed: {result.stderr_text.strip()}")
        try:
            return parse_stat_triple(result.stdout_text)
        except ValueError as e:
            raise ProbeError(path, f"unparsable stat output: {e}")
