"""
Host environment detection.

Builds the EnvironmentContext once, before any scenario runs.
Every probe here is best effort: a missing tool means "unknown",
never an error.
"""

import logging
import os
import platform
import stat
from pathlib import Path
from typing import Optional

from .process_runner import ProcessRunner
from ..exceptions import LaunchError, TimeoutError
from ..models.context import EnvironmentContext, CAN_MKNOD, PTMX_SYMLINK

logger = logging.getLogger(__name__)

DETECT_TIMEOUT_SECONDS = 10

# Marker files left by container managers, checked in order
_CONTAINER_MARKERS = (
    (Path("/.dockerenv"), "docker"),
    (Path("/run/.containerenv"), "podman"),
)


def _detect_virt(runner: ProcessRunner, flag: str) -> Optional[str]:
    """Ask systemd-detect-virt; None when it says "none" or is unavailable."""
    try:
        result = runner.run(["systemd-detect-virt", flag], timeout=DETECT_TIMEOUT_SECONDS)
    except (LaunchError, TimeoutError) as e:
        logger.debug(f"systemd-detect-virt {flag} unavailable: {e}")
        return None
    value = result.stdout_text.strip()
    if result.exit_code != 0 or not value or value == "none":
        return None
    return value


def _container_from_files(root: Path = Path("/")) -> Optional[str]:
    """Fallback container detection without systemd."""
    marker = root / "run/systemd/container"
    try:
        value = marker.read_text().strip()
        if value:
            return value
    except OSError:
        pass

    if os.environ.get("container"):
        return os.environ["container"]

    for path, kind in _CONTAINER_MARKERS:
        if (root / path.relative_to("/")).exists():
            return kind
    return None


def can_create_device_node(scratch_dir: Path) -> bool:
    """Try to mknod /dev/null's twin in scratch space."""
    node = scratch_dir / f".rootcheck-mknod-{os.getpid()}"
    try:
        os.mknod(node, 0o600 | stat.S_IFCHR, os.makedev(1, 3))
    except OSError as e:
        logger.debug(f"mknod not permitted in {scratch_dir}: {e}")
        return False
    try:
        node.unlink()
    except OSError as e:
        logger.warning(f"Could not remove test device node {node}: {e}")
    return True


def detect_environment(
    runner: ProcessRunner,
    scratch_dir: Optional[Path] = None,
    target_root: Optional[Path] = None,
) -> EnvironmentContext:
    """Capture the EnvironmentContext.

    Args:
        runner: ProcessRunner for systemd-detect-virt
        scratch_dir: Where the mknod capability is probed (skipped if None)
        target_root: Root whose /dev/ptmx shape is recorded (skipped if None)

    Returns:
        Immutable EnvironmentContext
    """
    release = platform.release()
    virtualization = _detect_virt(runner, "--vm")
    container = _detect_virt(runner, "--container") or _container_from_files()

    capabilities = set()
    if scratch_dir is not None and can_create_device_node(scratch_dir):
        capabilities.add(CAN_MKNOD)
    if target_root is not None and (target_root / "dev/ptmx").is_symlink():
        capabilities.add(PTMX_SYMLINK)

    context = EnvironmentContext(
        kernel_release=release,
        virtualization=virtualization,
        container=container,
        capabilities=frozenset(capabilities),
    )
    logger.info(f"Environment: {context.describe()}")
    return context
