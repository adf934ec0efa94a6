"""
Chroot wrappers for rootcheck.

A wrapper turns "run this argv inside the target root" into a host
command line. Variants:
- none: run on the host with the root as working directory
- chroot: plain chroot(8)
- schroot: what schroot sets up (proc plus a bind of the host /dev/pts)
- pbuilder: what pbuilder sets up (a private devpts instance)
- command: a configurable template, e.g. for systemd-nspawn

The schroot- and pbuilder-like wrappers do their mounts inside a
private mount namespace (unshare -m), so nothing leaks into the host
and nothing needs unmounting afterwards.
"""

from abc import ABC, abstractmethod
from enum import Enum
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .process_runner import ProcessRunner, ProcessResult
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class WrapperType(Enum):
    """Supported wrapper variants."""

    NONE = "none"
    CHROOT = "chroot"
    SCHROOT = "schroot"
    PBUILDER = "pbuilder"
    COMMAND = "command"


class ChrootWrapper(ABC):
    """Abstract base class for chroot wrappers.

    Implement build_argv() to support another way of entering a root.

    Example implementation:
        class NspawnWrapper(ChrootWrapper):
            def build_argv(self, argv, target):
                return ["systemd-nspawn", "-q", "-D", str(target), "--", *argv]
    """

    name: str = "custom"

    def __init__(self, runner: ProcessRunner, env: Optional[Dict[str, Optional[str]]] = None):
        """Initialize wrapper.

        Args:
            runner: ProcessRunner used to launch the wrapped command
            env: Environment overrides for the wrapped command
        """
        self.runner = runner
        self.env = dict(env or {})

    @abstractmethod
    def build_argv(self, argv: Sequence[str], target: Path) -> List[str]:
        """Host command line that runs argv inside target."""
        pass

    def launch(
        self,
        argv: Sequence[str],
        target: Path,
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """Run argv inside target.

        Raises:
            LaunchError: If the wrapper program cannot be spawned
            TimeoutError: If the wrapped command exceeds the timeout
        """
        cmd = self.build_argv(list(argv), Path(target))
        logger.debug(f"[{self.name}] {' '.join(argv)} in {target}")
        return self.runner.run(
            cmd,
            cwd=self._cwd(Path(target)),
            env=self.env or None,
            stdin=stdin,
            timeout=timeout,
        )

    def _cwd(self, target: Path) -> Optional[Path]:
        return None

    def validate_environment(self) -> bool:
        """Check that the program this wrapper starts is installed."""
        program = self.build_argv(["true"], Path("/"))[0]
        return shutil.which(program) is not None


class NoWrapper(ChrootWrapper):
    """Runs the command directly on the host, inside the root directory."""

    name = WrapperType.NONE.value

    def build_argv(self, argv: Sequence[str], target: Path) -> List[str]:
        return list(argv)

    def _cwd(self, target: Path) -> Optional[Path]:
        return target


class ChrootCommandWrapper(ChrootWrapper):
    """Plain chroot(8)."""

    name = WrapperType.CHROOT.value

    def __init__(self, runner: ProcessRunner, chroot: str = "chroot", **kwargs):
        super().__init__(runner, **kwargs)
        self.chroot = chroot

    def build_argv(self, argv: Sequence[str], target: Path) -> List[str]:
        return [self.chroot, str(target), *argv]


class _NamespaceWrapper(ChrootWrapper):
    """Shared plumbing: a shell script run in a private mount namespace.

    The script receives the root as $1 and the command as the
    remaining arguments, and must end by exec'ing chroot.
    """

    script: str = ""

    def __init__(self, runner: ProcessRunner, unshare: str = "unshare", **kwargs):
        super().__init__(runner, **kwargs)
        self.unshare = unshare

    def build_argv(self, argv: Sequence[str], target: Path) -> List[str]:
        return [
            self.unshare,
            "--mount",
            "--propagation",
            "private",
            "--",
            "sh",
            "-c",
            self.script,
            f"rootcheck-{self.name}",
            str(target),
            *argv,
        ]


class SchrootLikeWrapper(_NamespaceWrapper):
    """Reproduces the mounts schroot's default profile makes.

    devpts="bind" binds the host /dev/pts into the root, as older
    schroot releases do. devpts="newinstance" mounts a fresh devpts
    instance instead, as newer releases do.
    """

    name = WrapperType.SCHROOT.value

    _SETUP = {
        "bind": 'mount --bind /dev/pts "$root/dev/pts"',
        "newinstance": (
            'mount -t devpts -o rw,newinstance,ptmxmode=666,mode=620,gid=5 '
            'devpts "$root/dev/pts"'
        ),
    }

    def __init__(self, runner: ProcessRunner, devpts: str = "bind", **kwargs):
        super().__init__(runner, **kwargs)
        if devpts not in self._SETUP:
            raise ConfigurationError(
                f"schroot devpts must be one of {sorted(self._SETUP)}, not {devpts!r}"
            )
        self.devpts = devpts
        self.script = "\n".join([
            "set -e",
            'root="$1"; shift',
            'mount -t proc proc "$root/proc"',
            self._SETUP[devpts],
            'exec chroot "$root" "$@"',
        ])


class PbuilderLikeWrapper(_NamespaceWrapper):
    """Reproduces the mounts pbuilder makes.

    A private devpts instance is mounted on /dev/pts. When the root's
    /dev/ptmx is a real device node, /dev/pts/ptmx is bound over it so
    that ptys come from the private instance.
    """

    name = WrapperType.PBUILDER.value

    script = "\n".join([
        "set -e",
        'root="$1"; shift',
        'mount -t proc proc "$root/proc"',
        'mount -t devpts -o rw,newinstance,noexec,nosuid,gid=5,mode=620,ptmxmode=666 '
        'none "$root/dev/pts"',
        'if [ ! -L "$root/dev/ptmx" ]; then',
        '    mount --bind "$root/dev/pts/ptmx" "$root/dev/ptmx"',
        "fi",
        'exec chroot "$root" "$@"',
    ])


class CommandWrapper(ChrootWrapper):
    """Template-driven wrapper.

    "{root}" in any template item is replaced by the target root; the
    command is appended after the template.

        CommandWrapper(runner, ["systemd-nspawn", "-q", "-D", "{root}", "--"])
    """

    name = WrapperType.COMMAND.value

    def __init__(self, runner: ProcessRunner, template: Sequence[str], name: Optional[str] = None, **kwargs):
        super().__init__(runner, **kwargs)
        if not template:
            raise ConfigurationError("command wrapper needs a non-empty template")
        self.template = [str(item) for item in template]
        if name:
            self.name = name

    def build_argv(self, argv: Sequence[str], target: Path) -> List[str]:
        head = [item.replace("{root}", str(target)) for item in self.template]
        return [*head, *argv]


_WRAPPER_CLASSES = {
    WrapperType.NONE: NoWrapper,
    WrapperType.CHROOT: ChrootCommandWrapper,
    WrapperType.SCHROOT: SchrootLikeWrapper,
    WrapperType.PBUILDER: PbuilderLikeWrapper,
    WrapperType.COMMAND: CommandWrapper,
}


def create_wrapper(runner: ProcessRunner, name: str, options: Optional[Dict[str, Any]] = None) -> ChrootWrapper:
    """Create one wrapper from its configuration mapping.

    The mapping may name a "type"; without one, the wrapper name
    itself selects the type.
    """
    options = dict(options or {})
    type_name = options.pop("type", name)
    try:
        wrapper_type = WrapperType(type_name)
    except ValueError:
        valid = [t.value for t in WrapperType]
        raise ConfigurationError(
            f"Unknown wrapper type '{type_name}' for '{name}'. Must be one of: {valid}"
        )

    if wrapper_type == WrapperType.COMMAND:
        options.setdefault("name", name)

    try:
        return _WRAPPER_CLASSES[wrapper_type](runner, **options)
    except TypeError as e:
        raise ConfigurationError(f"Invalid options for wrapper '{name}': {e}")


def build_wrappers(
    runner: ProcessRunner,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, ChrootWrapper]:
    """Create the wrapper registry.

    The four built-in variants are always present; overrides may
    reconfigure them or add new named wrappers.
    """
    overrides = overrides or {}
    registry: Dict[str, ChrootWrapper] = {}
    for wrapper_type in (WrapperType.NONE, WrapperType.CHROOT, WrapperType.SCHROOT, WrapperType.PBUILDER):
        name = wrapper_type.value
        registry[name] = create_wrapper(runner, name, overrides.get(name))
    for name, options in overrides.items():
        if name not in registry:
            registry[name] = create_wrapper(runner, name, options)
    return registry
