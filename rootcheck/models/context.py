"""
Environment context for rootcheck.

The context is a read-only snapshot of the host the harness runs on:
kernel, virtualization, container and a few capability flags. It is
captured once and handed to every policy decision.
"""

from dataclasses import dataclass, field
import re
from typing import FrozenSet, Optional, Tuple, Dict, Any

# Capability flag names
CAN_MKNOD = "mknod"
PTMX_SYMLINK = "ptmx-symlink"


def parse_kernel_version(release: str) -> Tuple[int, ...]:
    """Extract the numeric prefix of a kernel release string.

    "6.1.0-18-amd64" -> (6, 1, 0), "4.9" -> (4, 9), "" -> ()
    """
    match = re.match(r"(\d+(?:\.\d+)*)", release or "")
    if not match:
        return ()
    return tuple(int(part) for part in match.group(1).split("."))


@dataclass(frozen=True)
class EnvironmentContext:
    """Immutable description of the host environment.

    Attributes:
        kernel_release: Raw kernel release (uname -r)
        kernel_version: Numeric prefix of the release
        virtualization: VM technology, None on bare metal
        container: Container technology, None outside containers
        capabilities: Capability flags such as "mknod" and "ptmx-symlink"
    """

    kernel_release: str = ""
    kernel_version: Tuple[int, ...] = ()
    virtualization: Optional[str] = None
    container: Optional[str] = None
    capabilities: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if not self.kernel_version and self.kernel_release:
            object.__setattr__(
                self, "kernel_version", parse_kernel_version(self.kernel_release)
            )
        if not isinstance(self.capabilities, frozenset):
            object.__setattr__(self, "capabilities", frozenset(self.capabilities))

    def has(self, capability: str) -> bool:
        return capability in self.capabilities

    def with_capability(self, capability: str, present: bool = True) -> "EnvironmentContext":
        """Return a copy with a capability flag set or cleared."""
        caps = set(self.capabilities)
        if present:
            caps.add(capability)
        else:
            caps.discard(capability)
        return EnvironmentContext(
            kernel_release=self.kernel_release,
            kernel_version=self.kernel_version,
            virtualization=self.virtualization,
            container=self.container,
            capabilities=frozenset(caps),
        )

    def describe(self) -> str:
        parts = [f"kernel {self.kernel_release or 'unknown'}"]
        if self.virtualization:
            parts.append(f"vm {self.virtualization}")
        if self.container:
            parts.append(f"container {self.container}")
        if self.capabilities:
            parts.append("caps " + ",".join(sorted(self.capabilities)))
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kernel_release": self.kernel_release,
            "kernel_version": list(self.kernel_version),
            "virtualization": self.virtualization,
            "container": self.container,
            "capabilities": sorted(self.capabilities),
        }
