"""
ArchForge data models.

Defines the core data structures for target devices, partition plans,
cleanup results, and swap/hibernation parameters.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class BootMode(Enum):
    """Firmware boot mode of the machine being installed."""

    UEFI = "uefi"
    BIOS = "bios"


class PartitionTableType(Enum):
    """Partition table label as understood by parted."""

    GPT = "gpt"
    MSDOS = "msdos"


class FileSystem(Enum):
    """File system types."""

    FAT32 = "vfat"
    EXT4 = "ext4"
    NONE = "none"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str) -> FileSystem:
        """Create FileSystem from string value."""
        value_lower = value.lower().strip()
        for fs in cls:
            if fs.value == value_lower or fs.name.lower() == value_lower:
                return fs
        aliases = {
            "fat": cls.FAT32,
            "fat32": cls.FAT32,
            "": cls.NONE,
        }
        return aliases.get(value_lower, cls.UNKNOWN)

    @property
    def parted_type(self) -> str | None:
        """File system hint passed to ``parted mkpart``."""
        return {
            FileSystem.FAT32: "fat32",
            FileSystem.EXT4: "ext4",
        }.get(self)


class PartitionRole(Enum):
    """What a partition is used for."""

    ESP = auto()  # EFI System Partition
    BIOS_BOOT = auto()  # GRUB core image on GPT/BIOS
    BOOT = auto()
    ROOT = auto()


class PartitionFlag(Enum):
    """Partition flags as named by parted."""

    ESP = "esp"
    BIOS_GRUB = "bios_grub"
    BOOT = "boot"


class HardwareVendor(Enum):
    """Vendor classification for CPUs and GPUs."""

    INTEL = "intel"
    AMD = "amd"
    NVIDIA = "nvidia"
    UNKNOWN = "unknown"


def uses_partition_separator(device_name: str) -> bool:
    """Kernel names ending in a digit (nvme0n1, mmcblk0) separate partitions with 'p'."""
    return bool(device_name) and device_name[-1].isdigit()


@dataclass
class TargetDevice:
    """A whole block device selected for installation."""

    path: str
    size_bytes: int = 0
    model: str = "Unknown"

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def is_nvme(self) -> bool:
        return self.name.startswith("nvme")

    def partition_path(self, number: int) -> str:
        if number < 1:
            raise ValueError(f"Partition numbers start at 1, got {number}")
        separator = "p" if uses_partition_separator(self.name) else ""
        return f"{self.path}{separator}{number}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size_bytes": self.size_bytes,
            "model": self.model,
            "is_nvme": self.is_nvme,
        }


@dataclass
class BlockDevice:
    """A block device as reported by lsblk."""

    path: str
    device_type: str
    size_bytes: int = 0
    model: str | None = None
    transport: str | None = None
    rotational: bool | None = None
    fstype: str | None = None
    mountpoint: str | None = None
    children: list[BlockDevice] = field(default_factory=list)

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def is_disk(self) -> bool:
        return self.device_type == "disk"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "type": self.device_type,
            "size_bytes": self.size_bytes,
            "model": self.model,
            "transport": self.transport,
            "rotational": self.rotational,
            "fstype": self.fstype,
            "mountpoint": self.mountpoint,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class PartitionSpec:
    """One partition of a plan. ``end_mib`` of None means the rest of the disk."""

    number: int
    role: PartitionRole
    filesystem: FileSystem
    start_mib: int
    end_mib: int | None
    flags: list[PartitionFlag] = field(default_factory=list)

    @property
    def size_mib(self) -> int | None:
        if self.end_mib is None:
            return None
        return self.end_mib - self.start_mib

    @property
    def start_arg(self) -> str:
        return f"{self.start_mib}MiB"

    @property
    def end_arg(self) -> str:
        return "100%" if self.end_mib is None else f"{self.end_mib}MiB"

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "role": self.role.name,
            "filesystem": self.filesystem.value,
            "start": self.start_arg,
            "end": self.end_arg,
            "size_mib": self.size_mib,
            "flags": [f.value for f in self.flags],
        }


@dataclass
class PartitionPlan:
    """Ordered partition layout for a target device."""

    device: TargetDevice
    boot_mode: BootMode
    table_type: PartitionTableType
    partitions: list[PartitionSpec] = field(default_factory=list)

    def validate(self) -> list[str]:
        """Return every violated layout invariant (empty when valid)."""
        errors: list[str] = []
        if not self.partitions:
            return ["Plan has no partitions"]

        for index, spec in enumerate(self.partitions, start=1):
            if spec.number != index:
                errors.append(f"Partition {spec.number} is out of order (expected {index})")
            is_last = index == len(self.partitions)
            if spec.end_mib is None and not is_last:
                errors.append(f"Only the final partition may use the remaining space ({spec.number})")
            if spec.end_mib is not None and spec.end_mib <= spec.start_mib:
                errors.append(f"Partition {spec.number} has non-positive size")
            if index > 1:
                previous = self.partitions[index - 2]
                if previous.end_mib is not None and previous.end_mib != spec.start_mib:
                    errors.append(
                        f"Partition {spec.number} starts at {spec.start_mib}MiB but "
                        f"partition {previous.number} ends at {previous.end_mib}MiB"
                    )

        if self.partitions[-1].end_mib is not None:
            errors.append("Final partition must consume the remaining space")

        return errors

    def by_role(self, role: PartitionRole) -> PartitionSpec | None:
        for spec in self.partitions:
            if spec.role == role:
                return spec
        return None

    def device_for(self, role: PartitionRole) -> str | None:
        spec = self.by_role(role)
        return self.device.partition_path(spec.number) if spec else None

    @property
    def formatted(self) -> list[PartitionSpec]:
        return [p for p in self.partitions if p.filesystem not in (FileSystem.NONE, FileSystem.UNKNOWN)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device.to_dict(),
            "boot_mode": self.boot_mode.value,
            "table_type": self.table_type.value,
            "partitions": [
                {**p.to_dict(), "device_path": self.device.partition_path(p.number)}
                for p in self.partitions
            ],
        }


@dataclass
class MountEntry:
    """One row of the mount table."""

    source: str
    target: str
    fstype: str | None = None

    @property
    def depth(self) -> int:
        return len([part for part in self.target.split("/") if part])


@dataclass
class CleanupAttemptResult:
    """What a single reclaim attempt did and what it left behind."""

    attempt: int
    processes_killed: list[int] = field(default_factory=list)
    mounts_removed: list[str] = field(default_factory=list)
    swap_disabled: list[str] = field(default_factory=list)
    lvm_deactivated: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    remaining_mounts: list[str] = field(default_factory=list)
    remaining_holders: list[int] = field(default_factory=list)
    success: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "processes_killed": self.processes_killed,
            "mounts_removed": self.mounts_removed,
            "swap_disabled": self.swap_disabled,
            "lvm_deactivated": self.lvm_deactivated,
            "errors": self.errors,
            "remaining_mounts": self.remaining_mounts,
            "remaining_holders": self.remaining_holders,
            "success": self.success,
        }


@dataclass
class CleanupResult:
    """Aggregated outcome of reclaiming a device."""

    device_path: str
    attempts: list[CleanupAttemptResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].success

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def remaining_mounts(self) -> list[str]:
        return self.attempts[-1].remaining_mounts if self.attempts else []

    @property
    def remaining_holders(self) -> list[int]:
        return self.attempts[-1].remaining_holders if self.attempts else []

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_path": self.device_path,
            "success": self.success,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class SwapSpec:
    """Swap file parameters, including what the kernel needs to resume from it."""

    ram_bytes: int
    size_bytes: int
    path: str
    host_path: str
    offset: int | None = None
    uuid: str | None = None

    @property
    def hibernation_ready(self) -> bool:
        return bool(self.uuid) and bool(self.offset)

    def resume_parameters(self) -> list[str]:
        if not self.hibernation_ready:
            return []
        return [f"resume=UUID={self.uuid}", f"resume_offset={self.offset}"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ram_bytes": self.ram_bytes,
            "size_bytes": self.size_bytes,
            "path": self.path,
            "host_path": self.host_path,
            "offset": self.offset,
            "uuid": self.uuid,
            "hibernation_ready": self.hibernation_ready,
        }


@dataclass
class HardwareProfile:
    """Detected CPU and GPU vendors."""

    cpu: HardwareVendor = HardwareVendor.UNKNOWN
    gpus: list[HardwareVendor] = field(default_factory=list)
    cpu_description: str | None = None
    gpu_descriptions: list[str] = field(default_factory=list)

    @property
    def unknown_components(self) -> list[str]:
        unknown = []
        if self.cpu == HardwareVendor.UNKNOWN:
            unknown.append(f"CPU ({self.cpu_description or 'not detected'})")
        for vendor, description in zip(self.gpus, self.gpu_descriptions):
            if vendor == HardwareVendor.UNKNOWN:
                unknown.append(f"GPU ({description})")
        return unknown

    def to_dict(self) -> dict[str, Any]:
        return {
            "cpu": self.cpu.value,
            "cpu_description": self.cpu_description,
            "gpus": [g.value for g in self.gpus],
            "gpu_descriptions": self.gpu_descriptions,
        }
