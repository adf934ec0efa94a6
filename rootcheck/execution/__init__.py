"""
Execution layer for rootcheck.

Handles:
- Running external processes (timeouts, process-group teardown)
- Entering the target root through chroot wrappers
- Host environment detection
- Target root lifecycle (debootstrap, unmount, removal)
"""

from .process_runner import ProcessRunner, ProcessResult
from .wrappers import (
    WrapperType,
    ChrootWrapper,
    NoWrapper,
    ChrootCommandWrapper,
    SchrootLikeWrapper,
    PbuilderLikeWrapper,
    CommandWrapper,
    create_wrapper,
    build_wrappers,
)
from .detection import detect_environment, can_create_device_node
from .target_root import TargetRoot, mounts_under

__all__ = [
    # Processes
    "ProcessRunner",
    "ProcessResult",
    # Wrappers
    "WrapperType",
    "ChrootWrapper",
    "NoWrapper",
    "ChrootCommandWrapper",
    "SchrootLikeWrapper",
    "PbuilderLikeWrapper",
    "CommandWrapper",
    "create_wrapper",
    "build_wrappers",
    # Detection
    "detect_environment",
    "can_create_device_node",
    # Target root
    "TargetRoot",
    "mounts_under",
]
