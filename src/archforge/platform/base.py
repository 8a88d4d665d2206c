"""
ArchForge Platform Backend Base.

Defines the interface the installer steps use to talk to the host system.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from archforge.core.models import BlockDevice, FileSystem, MountEntry


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return self.command if isinstance(self.command, str) else " ".join(self.command)

    def error_message(self) -> str:
        """Best available explanation of a failure."""
        detail = (self.stderr or self.stdout or "").strip()
        return detail or f"exit status {self.returncode}"

    def __repr__(self) -> str:
        return f"CommandResult(rc={self.returncode}, cmd='{self.command_line[:50]}...')"


class PlatformBackend(ABC):
    """Abstract base class for host system operations."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Platform name (e.g., 'linux')."""

    @abstractmethod
    def is_admin(self) -> bool:
        """Check if running with admin privileges."""

    @abstractmethod
    def run_command(
        self,
        command: list[str],
        timeout: int = 300,
        check: bool = True,
        capture_output: bool = True,
        input: str | bytes | bytearray | None = None,
    ) -> CommandResult:
        """Run a system command."""

    @abstractmethod
    def missing_tools(self, tools: list[str]) -> list[str]:
        """Return the tools that are not available on PATH."""

    # ==================== Inventory ====================

    @abstractmethod
    def validate_device_path(self, path: str) -> tuple[bool, str]:
        """Check the path names an existing block device. Returns (valid, message)."""

    @abstractmethod
    def list_block_devices(self) -> list[BlockDevice]:
        """All block devices with their children."""

    @abstractmethod
    def get_block_device(self, path: str) -> BlockDevice | None:
        """A single block device with its children."""

    @abstractmethod
    def get_system_devices(self) -> set[str]:
        """Devices backing the running root filesystem."""

    @abstractmethod
    def device_nodes(self, disk_path: str) -> list[str]:
        """The disk followed by all of its partitions."""

    @abstractmethod
    def is_uefi(self) -> bool:
        """Whether the host booted in UEFI mode."""

    @abstractmethod
    def total_memory_bytes(self) -> int:
        """Physical RAM size."""

    # ==================== Reclaim ====================

    @abstractmethod
    def get_mounts(self) -> list[MountEntry]:
        """Current mount table."""

    @abstractmethod
    def get_active_swaps(self) -> list[str]:
        """Active swap devices and files."""

    @abstractmethod
    def find_holders(self, nodes: list[str]) -> set[int]:
        """PIDs with open handles on any of the nodes."""

    @abstractmethod
    def signal_processes(self, pids: set[int], force: bool = False) -> tuple[list[int], list[str]]:
        """Terminate (or kill) processes. Returns (signalled, errors)."""

    @abstractmethod
    def unmount(self, target: str, recursive: bool = False, lazy: bool = False) -> CommandResult:
        """Unmount a mount point or device."""

    @abstractmethod
    def swapoff(self, path: str) -> CommandResult:
        """Deactivate a swap area."""

    @abstractmethod
    def probe_filesystem(self, node: str) -> str | None:
        """Filesystem type signature on a node."""

    @abstractmethod
    def has_lvm_tools(self) -> bool:
        """Whether LVM userspace tools are installed."""

    @abstractmethod
    def physical_volumes_on(self, nodes: list[str]) -> dict[str, list[str]]:
        """Physical volumes among the nodes, keyed by volume group."""

    @abstractmethod
    def deactivate_volume_group(self, name: str) -> CommandResult:
        """Deactivate all logical volumes of a volume group."""

    @abstractmethod
    def remove_volume_group(self, name: str) -> CommandResult:
        """Force-remove a volume group."""

    @abstractmethod
    def remove_physical_volumes(self, physical_volumes: list[str]) -> CommandResult:
        """Force-remove physical volume labels."""

    # ==================== Disk preparation ====================

    @abstractmethod
    def wipe_signatures(self, disk_path: str) -> CommandResult:
        """Erase filesystem and partition-table signatures."""

    @abstractmethod
    def zap_partition_table(self, disk_path: str) -> CommandResult | None:
        """Destroy GPT and MBR structures. None when the tool is unavailable."""

    @abstractmethod
    def parted(self, disk_path: str, *args: str) -> CommandResult:
        """Run a scripted parted command."""

    @abstractmethod
    def settle(self, disk_path: str) -> None:
        """Make the kernel re-read the partition table and wait for udev."""

    @abstractmethod
    def make_filesystem(self, node: str, filesystem: FileSystem, label: str | None = None) -> CommandResult:
        """Create a filesystem."""

    @abstractmethod
    def mount(self, source: str, target: str, options: list[str] | None = None) -> CommandResult:
        """Mount a device, creating the mount point."""

    # ==================== Swap ====================

    @abstractmethod
    def allocate_file(self, path: str, size_bytes: int) -> CommandResult:
        """Preallocate a file of an exact size."""

    @abstractmethod
    def restrict_permissions(self, path: str, mode: int = 0o600) -> CommandResult:
        """Set a file's permission bits."""

    @abstractmethod
    def make_swap(self, path: str) -> CommandResult:
        """Write a swap signature."""

    @abstractmethod
    def swapon(self, path: str) -> CommandResult:
        """Activate a swap area."""

    @abstractmethod
    def first_extent_offset(self, path: str) -> int | None:
        """Physical offset (filesystem blocks) of a file's first extent."""

    @abstractmethod
    def filesystem_uuid(self, node: str) -> str | None:
        """Filesystem UUID of a device."""

    # ==================== Target system ====================

    @abstractmethod
    def pacstrap(self, target_root: str, packages: list[str]) -> CommandResult:
        """Bootstrap packages into the target root."""

    @abstractmethod
    def genfstab(self, target_root: str) -> CommandResult:
        """Generate fstab entries (UUID based) for the target root."""

    @abstractmethod
    def chroot(
        self,
        target_root: str,
        command: list[str],
        input: str | bytes | bytearray | None = None,
        timeout: int = 600,
    ) -> CommandResult:
        """Run a command inside the target root."""

    @abstractmethod
    def sync(self) -> None:
        """Flush filesystem buffers."""

    # ==================== Hardware ====================

    @abstractmethod
    def read_cpu_vendor(self) -> str | None:
        """Raw CPU vendor string."""

    @abstractmethod
    def list_display_controllers(self) -> list[str]:
        """Raw descriptions of display controllers."""
