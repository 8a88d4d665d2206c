"""
Partition planning and application.

Plans are pure values computed from the device, boot mode and layout
configuration; the Partitioner turns a plan into parted commands.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from archforge.core.config import LayoutConfig
from archforge.core.errors import PartitioningError
from archforge.core.logging import OperationLogger, get_logger
from archforge.core.models import (
    BootMode,
    FileSystem,
    PartitionFlag,
    PartitionPlan,
    PartitionRole,
    PartitionSpec,
    PartitionTableType,
    TargetDevice,
)

if TYPE_CHECKING:
    from archforge.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)

GPT_PARTITION_NAMES = {
    PartitionRole.ESP: "EFI",
    PartitionRole.BIOS_BOOT: "BIOS",
    PartitionRole.BOOT: "boot",
    PartitionRole.ROOT: "root",
}


def build_partition_plan(
    device: TargetDevice,
    boot_mode: BootMode,
    layout: LayoutConfig | None = None,
) -> PartitionPlan:
    """
    Compute the partition layout for a device.

    UEFI:
        GPT, p1 ESP (vfat, esp flag), p2 root (ext4, rest of disk).
    BIOS:
        GPT or MBR, p1 BIOS boot (unformatted, bios_grub flag on GPT),
        p2 boot (ext4, boot flag on MBR), p3 root (ext4, rest of disk).
    """
    layout = layout or LayoutConfig()
    root_fs = FileSystem.from_string(layout.root_filesystem)
    start = layout.alignment_mib
    partitions: list[PartitionSpec] = []

    if boot_mode == BootMode.UEFI:
        table = PartitionTableType.GPT
        esp_end = start + layout.efi_size_mib
        partitions.append(
            PartitionSpec(1, PartitionRole.ESP, FileSystem.FAT32, start, esp_end, [PartitionFlag.ESP])
        )
        partitions.append(PartitionSpec(2, PartitionRole.ROOT, root_fs, esp_end, None))
    else:
        table = PartitionTableType(layout.bios_label)
        bios_end = start + layout.bios_boot_size_mib
        boot_end = bios_end + layout.boot_size_mib
        bios_flags = [PartitionFlag.BIOS_GRUB] if table == PartitionTableType.GPT else []
        boot_flags = [PartitionFlag.BOOT] if table == PartitionTableType.MSDOS else []
        partitions.append(
            PartitionSpec(1, PartitionRole.BIOS_BOOT, FileSystem.NONE, start, bios_end, bios_flags)
        )
        partitions.append(
            PartitionSpec(2, PartitionRole.BOOT, FileSystem.EXT4, bios_end, boot_end, boot_flags)
        )
        partitions.append(PartitionSpec(3, PartitionRole.ROOT, root_fs, boot_end, None))

    return PartitionPlan(device=device, boot_mode=boot_mode, table_type=table, partitions=partitions)


def mkpart_arguments(spec: PartitionSpec, table: PartitionTableType) -> list[str]:
    """Arguments for ``parted mkpart`` for one partition."""
    # GPT takes a partition name where MBR takes a partition type
    name = GPT_PARTITION_NAMES[spec.role] if table == PartitionTableType.GPT else "primary"
    args = ["mkpart", name]
    if spec.filesystem.parted_type:
        args.append(spec.filesystem.parted_type)
    args.extend([spec.start_arg, spec.end_arg])
    return args


class Partitioner:
    """Wipes a disk and writes a partition plan to it."""

    def __init__(self, backend: PlatformBackend) -> None:
        self.backend = backend

    def wipe(self, device: TargetDevice) -> None:
        """Erase every filesystem and partition-table signature."""
        result = self.backend.wipe_signatures(device.path)
        self._check(result, f"wipefs {device.path}")

        zap = self.backend.zap_partition_table(device.path)
        if zap is None:
            logger.info("sgdisk not available, relying on wipefs", device=device.path)
        else:
            self._check(zap, f"sgdisk --zap-all {device.path}")

        self.backend.settle(device.path)
        logger.info("Device wiped", device=device.path)

    def apply(self, plan: PartitionPlan) -> list[str]:
        """Write the plan to disk. Returns the partition device paths."""
        errors = plan.validate()
        if errors:
            raise PartitioningError("Invalid partition plan: " + "; ".join(errors))

        disk = plan.device.path
        with OperationLogger("partitioning", logger, device=disk, table=plan.table_type.value):
            self._parted(disk, "mklabel", plan.table_type.value)

            for spec in plan.partitions:
                self._parted(disk, *mkpart_arguments(spec, plan.table_type))
                for flag in spec.flags:
                    self._parted(disk, "set", str(spec.number), flag.value, "on")
                logger.info(
                    "Partition created",
                    device=plan.device.partition_path(spec.number),
                    role=spec.role.name,
                    start=spec.start_arg,
                    end=spec.end_arg,
                )

            self.backend.settle(disk)
        return [plan.device.partition_path(spec.number) for spec in plan.partitions]

    def _parted(self, disk: str, *args: str) -> None:
        result = self.backend.parted(disk, *args)
        self._check(result, f"parted {disk} {' '.join(args)}")

    @staticmethod
    def _check(result: CommandResult, action: str) -> None:
        if not result.success:
            raise PartitioningError(f"{action} failed: {result.error_message()}")
