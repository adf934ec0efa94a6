"""
Target root lifecycle for rootcheck.

The TargetRoot class owns the chroot tree under test: it can create
it with debootstrap and it tears it down on every exit path.
"""

import logging
import shutil
from pathlib import Path
from typing import List

from .process_runner import ProcessRunner
from ..config import Config
from ..exceptions import TargetRootError, LaunchError, TimeoutError

logger = logging.getLogger(__name__)

MOUNTINFO = Path("/proc/self/mountinfo")
UMOUNT_TIMEOUT_SECONDS = 60


def _unescape_mount_path(field: str) -> str:
    """Undo the octal escapes used in mountinfo (\\040 for space etc)."""
    out = []
    i = 0
    while i < len(field):
        if field[i] == "\\" and i + 3 < len(field) and field[i + 1:i + 4].isdigit():
            out.append(chr(int(field[i + 1:i + 4], 8)))
            i += 4
        else:
            out.append(field[i])
            i += 1
    return "".join(out)


def mounts_under(root: Path, mountinfo: Path = MOUNTINFO) -> List[Path]:
    """Mount points strictly below root, deepest first. The root itself is
    never listed, even when it is a mount point.

    Returns an empty list when mountinfo is unreadable.
    """
    root = Path(root).resolve()
    try:
        lines = mountinfo.read_text().splitlines()
    except OSError as e:
        logger.warning(f"Cannot read {mountinfo}: {e}")
        return []

    found = []
    for line in lines:
        fields = line.split()
        if len(fields) < 5:
            continue
        mount_point = Path(_unescape_mount_path(fields[4]))
        if root in mount_point.parents:
            found.append(mount_point)

    # deepest first, and later mounts before earlier ones on the same path
    found.reverse()
    found.sort(key=lambda p: len(p.parts), reverse=True)
    return found


class TargetRoot:
    """The chroot tree under test.

    Usage:
        # As context manager (recommended)
        with TargetRoot(path, config, runner) as root:
            check(root.path)

        # Manual management
        root = TargetRoot(path, config, runner)
        root.setup()
        try:
            ...
        finally:
            root.cleanup()

    If the path does not exist, or is an empty directory, setup()
    populates it with debootstrap. Only a directory created by setup()
    is removed by cleanup(); a root supplied by the caller is only
    unmounted.

    Attributes:
        path: Path of the root
        created: Whether setup() created the directory
    """

    def __init__(
        self,
        path: Path,
        config: Config,
        runner: ProcessRunner,
        mountinfo: Path = MOUNTINFO,
    ):
        """Initialize target root.

        Args:
            path: Where the root lives (or will be bootstrapped)
            config: Configuration (bootstrap and harness sections)
            runner: ProcessRunner for debootstrap and umount
            mountinfo: mountinfo file listing active mounts
        """
        self.path = Path(path).absolute()
        self.config = config
        self.runner = runner
        self.mountinfo = mountinfo
        self.created = False
        self.bootstrapped = False
        self._setup_complete = False

    def setup(self) -> Path:
        """Make sure the root exists, bootstrapping it if needed.

        Returns:
            Path to the root

        Raises:
            TargetRootError: If the path is unusable or debootstrap fails
            LaunchError: If debootstrap cannot be started
            TimeoutError: If debootstrap exceeds its timeout
        """
        try:
            if self.path.exists() and not self.path.is_dir():
                raise TargetRootError(f"Target root is not a directory: {self.path}")

            if not self.path.exists():
                self.path.mkdir(parents=True)
                self.created = True

            if not any(self.path.iterdir()):
                self._bootstrap()
            else:
                logger.info(f"Using existing target root: {self.path}")

            self._setup_complete = True
            return self.path

        except (TargetRootError, LaunchError, TimeoutError, KeyboardInterrupt):
            self.cleanup()
            raise
        except OSError as e:
            logger.error(f"Target root setup failed: {e}")
            self.cleanup()
            raise TargetRootError(f"Failed to set up target root {self.path}: {e}") from e

    def _bootstrap(self) -> None:
        """Populate the root with debootstrap."""
        bootstrap = self.config.bootstrap
        cmd = bootstrap.argv(self.path)
        logger.info(f"Bootstrapping {bootstrap.suite} from {bootstrap.mirror} into {self.path}")

        result = self.runner.run(cmd, timeout=bootstrap.timeout_seconds)
        if result.exit_code != 0:
            tail = "\n".join(result.stderr_text.splitlines()[-20:])
            raise TargetRootError(
                f"debootstrap exited with {result.exit_code}\nstderr: {tail}"
            )
        self.bootstrapped = True
        logger.info(f"Bootstrap complete: {self.path}")

    def unmount_all(self) -> List[Path]:
        """Lazily unmount everything mounted below the root.

        Returns:
            Mount points that are still mounted afterwards
        """
        for mount_point in mounts_under(self.path, self.mountinfo):
            try:
                result = self.runner.run(
                    ["umount", "--lazy", str(mount_point)],
                    timeout=UMOUNT_TIMEOUT_SECONDS,
                )
                if result.exit_code != 0:
                    logger.warning(
                        f"umount {mount_point} exited with {result.exit_code}: "
                        f"{result.stderr_text.strip()}"
                    )
                else:
                    logger.debug(f"Unmounted {mount_point}")
            except (LaunchError, TimeoutError) as e:
                logger.warning(f"Failed to unmount {mount_point}: {e}")
        return mounts_under(self.path, self.mountinfo)

    def cleanup(self) -> None:
        """Tear the root down.

        Always unmounts; removes the tree only if setup() created it and
        keep_target_root is off. A tree that still has mounts below it is
        never removed, so host files behind a bind mount stay intact.
        """
        if not self.path.exists():
            return

        remaining = self.unmount_all()

        if not self.created:
            return
        if self.config.harness.keep_target_root:
            logger.info(f"Keeping target root for debugging: {self.path}")
            return
        if remaining:
            logger.error(
                f"Not removing {self.path}: still mounted: "
                + ", ".join(str(p) for p in remaining)
            )
            return

        try:
            shutil.rmtree(self.path)
            logger.debug(f"Removed target root: {self.path}")
        except OSError as e:
            logger.error(f"Failed to remove target root: {e}")

    def __enter__(self) -> "TargetRoot":
        """Context manager entry - sets up the root."""
        self.setup()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - cleans up on every exit path."""
        self.cleanup()
