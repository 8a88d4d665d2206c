"""
Target device selection.

Validates the operator-supplied device path before anything destructive
runs against it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from archforge.core.errors import DeviceSelectionError
from archforge.core.logging import get_logger
from archforge.core.models import BootMode, TargetDevice

if TYPE_CHECKING:
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)


def select_target_device(
    backend: PlatformBackend,
    path: str,
    protect_system_disk: bool = True,
) -> TargetDevice:
    """
    Resolve a device path to a whole-disk TargetDevice.

    Raises DeviceSelectionError when the path is not a block device, names
    a partition rather than a disk, or backs the running system.
    """
    path = path.strip()
    valid, message = backend.validate_device_path(path)
    if not valid:
        raise DeviceSelectionError(message)

    block = backend.get_block_device(path)
    if block is None:
        raise DeviceSelectionError(f"Cannot read device information for {path}")
    if not block.is_disk:
        raise DeviceSelectionError(
            f"{path} is a {block.device_type or 'non-disk device'}; select a whole disk"
        )

    if protect_system_disk and path in backend.get_system_devices():
        raise DeviceSelectionError(f"Refusing to use {path}: it holds the running system")

    device = TargetDevice(
        path=path,
        size_bytes=block.size_bytes,
        model=block.model or "Unknown",
    )
    logger.info(
        "Target device selected",
        device=device.path,
        size_bytes=device.size_bytes,
        model=device.model,
    )
    return device


def detect_boot_mode(backend: PlatformBackend, requested: str = "auto") -> BootMode:
    """Resolve the configured boot mode, probing firmware for ``auto``."""
    if requested == "uefi":
        return BootMode.UEFI
    if requested == "bios":
        return BootMode.BIOS
    if requested != "auto":
        raise ValueError(f"Unknown boot mode: {requested}")

    mode = BootMode.UEFI if backend.is_uefi() else BootMode.BIOS
    logger.info("Boot mode detected", boot_mode=mode.value)
    return mode
