"""
Mounting the target filesystems.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from archforge.core.errors import MountError
from archforge.core.logging import get_logger
from archforge.core.models import BootMode, MountEntry, PartitionRole

if TYPE_CHECKING:
    from archforge.core.models import PartitionPlan
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)


class Mounter:
    """Mounts root, then /boot, beneath the target root."""

    def __init__(self, backend: PlatformBackend, target_root: Path | str = "/mnt") -> None:
        self.backend = backend
        self.target_root = Path(target_root)

    def mount(self, plan: PartitionPlan) -> list[MountEntry]:
        root = plan.by_role(PartitionRole.ROOT)
        if root is None:
            raise MountError("Plan has no root partition")

        boot_role = PartitionRole.ESP if plan.boot_mode == BootMode.UEFI else PartitionRole.BOOT
        boot = plan.by_role(boot_role)

        # Parents before children
        pairs = [(root, self.target_root)]
        if boot is not None:
            pairs.append((boot, self.target_root / "boot"))

        mounted: list[MountEntry] = []
        for spec, target in pairs:
            source = plan.device.partition_path(spec.number)
            result = self.backend.mount(source, str(target))
            if not result.success:
                raise MountError(f"Mounting {source} on {target} failed: {result.error_message()}")
            entry = MountEntry(source=source, target=str(target), fstype=spec.filesystem.value)
            mounted.append(entry)
            logger.info("Mounted", source=source, target=str(target))

        return mounted

    def unmount_all(self, swap_path: str | None = None) -> bool:
        """
        Recursively unmount the target root. Returns success.

        An active swap file under the target keeps its filesystem busy, so
        ``swap_path`` (the host-side path) is deactivated first.
        """
        self.backend.sync()
        if swap_path:
            swap = self.backend.swapoff(swap_path)
            if not swap.success:
                logger.warning("Disabling swap file failed", path=swap_path, error=swap.error_message())

        result = self.backend.unmount(str(self.target_root), recursive=True)
        if not result.success:
            logger.warning(
                "Unmounting target failed",
                target=str(self.target_root),
                error=result.error_message(),
            )
            return False
        logger.info("Target unmounted", target=str(self.target_root))
        return True
