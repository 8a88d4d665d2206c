"""
ArchForge exceptions.

Fatal installer failures raise one of these; advisory problems are
reported as warnings instead and never raise.
"""

from __future__ import annotations


class ArchForgeError(Exception):
    """Base exception for ArchForge errors."""


class DeviceSelectionError(ArchForgeError):
    """The target device is missing, not a block device, or protected."""


class PartitioningError(ArchForgeError):
    """Wiping or partitioning the target device failed."""


class FormatError(ArchForgeError):
    """Creating a filesystem failed."""


class MountError(ArchForgeError):
    """Mounting the target filesystems failed."""


class SwapError(ArchForgeError):
    """Creating or activating the swap file failed."""


class InstallStepError(ArchForgeError):
    """A system installation step (packages, fstab, chroot, bootloader) failed."""


class InstallAborted(ArchForgeError):
    """A fatal step failed and the workflow stopped."""

    def __init__(self, step: str, reason: str) -> None:
        super().__init__(f"{step} failed: {reason}")
        self.step = step
        self.reason = reason
