"""
Linux Platform Backend Implementation.

Implements host operations using standard Linux and Arch install tools.
"""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
import time
from pathlib import Path

import psutil

from archforge.core.logging import get_logger
from archforge.core.models import BlockDevice, FileSystem, MountEntry
from archforge.platform.base import CommandResult, PlatformBackend
from archforge.platform.linux.parsers import (
    build_block_device,
    parse_blkid_output,
    parse_cpuinfo_vendor,
    parse_filefrag_offset,
    parse_findmnt_json,
    parse_lsblk_json,
    parse_lsblk_paths,
    parse_lsof_pids,
    parse_lspci_display,
    parse_proc_mounts,
    parse_proc_swaps,
    parse_pvs_output,
)

logger = get_logger(__name__)


class LinuxBackend(PlatformBackend):
    """Linux implementation of installer host operations."""

    # Tool paths (can be overridden for testing)
    LSBLK = "lsblk"
    BLKID = "blkid"
    FINDMNT = "findmnt"
    LSOF = "lsof"
    MOUNT = "mount"
    UMOUNT = "umount"
    SWAPOFF = "swapoff"
    SWAPON = "swapon"
    WIPEFS = "wipefs"
    SGDISK = "sgdisk"
    PARTED = "parted"
    PARTPROBE = "partprobe"
    UDEVADM = "udevadm"
    SYNC = "sync"

    # LVM tools
    PVS = "pvs"
    VGCHANGE = "vgchange"
    VGREMOVE = "vgremove"
    PVREMOVE = "pvremove"

    # Filesystem tools
    MKFS_EXT4 = "mkfs.ext4"
    MKFS_FAT = "mkfs.fat"
    MKSWAP = "mkswap"
    FALLOCATE = "fallocate"
    FILEFRAG = "filefrag"

    # Arch install tools
    PACSTRAP = "pacstrap"
    GENFSTAB = "genfstab"
    ARCH_CHROOT = "arch-chroot"

    LSPCI = "lspci"

    PROC_MOUNTS = Path("/proc/mounts")
    PROC_SWAPS = Path("/proc/swaps")
    PROC_CPUINFO = Path("/proc/cpuinfo")
    EFI_FIRMWARE_DIR = Path("/sys/firmware/efi")

    @property
    def name(self) -> str:
        return "linux"

    def is_admin(self) -> bool:
        return os.geteuid() == 0

    def _check_tool(self, tool: str) -> bool:
        """Check if a tool is available."""
        return shutil.which(tool) is not None

    def missing_tools(self, tools: list[str]) -> list[str]:
        return [tool for tool in tools if not self._check_tool(tool)]

    def run_command(
        self,
        command: list[str],
        timeout: int = 300,
        check: bool = True,
        capture_output: bool = True,
        input: str | bytes | bytearray | None = None,
    ) -> CommandResult:
        """Run a system command."""
        logger.debug("Running command", command=command)
        start_time = time.time()
        binary_input = isinstance(input, (bytes, bytearray))

        try:
            result = subprocess.run(
                command,
                capture_output=capture_output,
                text=not binary_input,
                input=input,
                timeout=timeout,
            )
            duration = time.time() - start_time

            stdout = result.stdout if capture_output else ""
            stderr = result.stderr if capture_output else ""
            if binary_input:
                stdout = (stdout or b"").decode("utf-8", errors="replace")
                stderr = (stderr or b"").decode("utf-8", errors="replace")

            cmd_result = CommandResult(
                returncode=result.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
                command=command,
                duration_seconds=duration,
            )

            if check and result.returncode != 0:
                logger.warning(
                    "Command failed",
                    command=command,
                    returncode=result.returncode,
                    stderr=cmd_result.stderr[:500],
                )

            return cmd_result

        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                command=command,
                duration_seconds=timeout,
            )
        except OSError as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )

    # ==================== Inventory ====================

    def validate_device_path(self, path: str) -> tuple[bool, str]:
        """Validate a device path."""
        if not path.startswith("/dev/"):
            return False, "Device path must start with /dev/"

        if not os.path.exists(path):
            return False, f"Device does not exist: {path}"

        try:
            mode = os.stat(path).st_mode
            if not stat.S_ISBLK(mode):
                return False, f"Not a block device: {path}"
        except OSError as e:
            return False, f"Cannot stat device: {e}"

        return True, "Valid device path"

    def _lsblk(self, path: str | None = None) -> list[BlockDevice]:
        command = [
            self.LSBLK,
            "-J",  # JSON output
            "-b",  # Size in bytes
            "-o",
            "NAME,PATH,SIZE,TYPE,FSTYPE,MOUNTPOINT,MODEL,TRAN,ROTA",
        ]
        if path:
            command.append(path)

        result = self.run_command(command, check=False)
        if not result.success:
            logger.warning("lsblk failed", stderr=result.stderr)
            return []
        return [build_block_device(block) for block in parse_lsblk_json(result.stdout)]

    def list_block_devices(self) -> list[BlockDevice]:
        return self._lsblk()

    def get_block_device(self, path: str) -> BlockDevice | None:
        devices = self._lsblk(path)
        return devices[0] if devices else None

    def get_system_devices(self) -> set[str]:
        """Get devices that are part of the system (root filesystem)."""
        system_devices: set[str] = set()

        result = self.run_command(
            [self.FINDMNT, "-n", "-o", "SOURCE", "/"],
            check=False,
        )
        if not result.success:
            return system_devices

        source = result.stdout.strip()
        if not source.startswith("/dev/"):
            return system_devices
        system_devices.add(source)

        # Walk up to the whole disk(s), through partitions, LVM and dm-crypt
        parents = self.run_command(
            [self.LSBLK, "-lnsp", "-o", "NAME,TYPE", source],
            check=False,
        )
        if parents.success:
            for line in parents.stdout.splitlines():
                parts = line.split()
                if len(parts) == 2:
                    system_devices.add(parts[0])

        return system_devices

    def device_nodes(self, disk_path: str) -> list[str]:
        result = self.run_command([self.LSBLK, "-lnp", "-o", "NAME", disk_path], check=False)
        nodes = parse_lsblk_paths(result.stdout) if result.success else []
        if disk_path not in nodes:
            nodes.insert(0, disk_path)
        return nodes

    def is_uefi(self) -> bool:
        return self.EFI_FIRMWARE_DIR.is_dir()

    def total_memory_bytes(self) -> int:
        return int(psutil.virtual_memory().total)

    # ==================== Reclaim ====================

    def get_mounts(self) -> list[MountEntry]:
        """Get current mounts."""
        result = self.run_command([self.FINDMNT, "-J"], check=False)
        if result.success:
            mounts = parse_findmnt_json(result.stdout)
            if mounts:
                return mounts
        try:
            return parse_proc_mounts(self.PROC_MOUNTS.read_text())
        except OSError as e:
            logger.warning("Cannot read mount table", error=str(e))
            return []

    def get_active_swaps(self) -> list[str]:
        try:
            return parse_proc_swaps(self.PROC_SWAPS.read_text())
        except OSError as e:
            logger.warning("Cannot read swap table", error=str(e))
            return []

    def find_holders(self, nodes: list[str]) -> set[int]:
        if not nodes or not self._check_tool(self.LSOF):
            return set()
        # lsof exits 1 when nothing matches
        result = self.run_command([self.LSOF, "-t", "+f", "--", *nodes], check=False)
        pids = parse_lsof_pids(result.stdout)
        pids.discard(os.getpid())
        return pids

    def signal_processes(self, pids: set[int], force: bool = False) -> tuple[list[int], list[str]]:
        signalled: list[int] = []
        errors: list[str] = []
        for pid in sorted(pids):
            if pid == os.getpid():
                continue
            try:
                process = psutil.Process(pid)
                if force:
                    process.kill()
                else:
                    process.terminate()
                signalled.append(pid)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as e:
                errors.append(f"Cannot signal PID {pid}: {e}")
        return signalled, errors

    def unmount(self, target: str, recursive: bool = False, lazy: bool = False) -> CommandResult:
        command = [self.UMOUNT]
        if recursive:
            command.append("-R")
        if lazy:
            command.append("-l")
        command.append(target)
        return self.run_command(command, check=False)

    def swapoff(self, path: str) -> CommandResult:
        return self.run_command([self.SWAPOFF, path], check=False)

    def probe_filesystem(self, node: str) -> str | None:
        result = self.run_command([self.BLKID, "-p", node], check=False)
        if not result.success:
            return None
        attrs = parse_blkid_output(result.stdout).get(node, {})
        return attrs.get("TYPE")

    def has_lvm_tools(self) -> bool:
        return self._check_tool(self.PVS) and self._check_tool(self.VGCHANGE)

    def physical_volumes_on(self, nodes: list[str]) -> dict[str, list[str]]:
        if not nodes:
            return {}
        # pvs exits non-zero when some nodes are not PVs but still lists the rest
        result = self.run_command(
            [self.PVS, "--noheadings", "-o", "pv_name,vg_name", *nodes], check=False
        )
        return parse_pvs_output(result.stdout)

    def deactivate_volume_group(self, name: str) -> CommandResult:
        return self.run_command([self.VGCHANGE, "-an", name], check=False)

    def remove_volume_group(self, name: str) -> CommandResult:
        return self.run_command([self.VGREMOVE, "-ff", "-y", name], check=False)

    def remove_physical_volumes(self, physical_volumes: list[str]) -> CommandResult:
        return self.run_command([self.PVREMOVE, "-ff", "-y", *physical_volumes], check=False)

    # ==================== Disk preparation ====================

    def wipe_signatures(self, disk_path: str) -> CommandResult:
        return self.run_command([self.WIPEFS, "-a", disk_path], check=False)

    def zap_partition_table(self, disk_path: str) -> CommandResult | None:
        if not self._check_tool(self.SGDISK):
            return None
        return self.run_command([self.SGDISK, "--zap-all", disk_path], check=False)

    def parted(self, disk_path: str, *args: str) -> CommandResult:
        return self.run_command([self.PARTED, "-s", disk_path, *args], check=False)

    def settle(self, disk_path: str) -> None:
        self.run_command([self.PARTPROBE, disk_path], check=False)
        self.run_command([self.UDEVADM, "settle"], check=False)

    def make_filesystem(self, node: str, filesystem: FileSystem, label: str | None = None) -> CommandResult:
        if filesystem == FileSystem.FAT32:
            command = [self.MKFS_FAT, "-F", "32"]
            if label:
                command.extend(["-n", label])
        elif filesystem == FileSystem.EXT4:
            command = [self.MKFS_EXT4, "-F"]
            if label:
                command.extend(["-L", label])
        else:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Unsupported filesystem: {filesystem.value}",
                command=[],
            )
        command.append(node)
        return self.run_command(command, check=False, timeout=1800)

    def mount(self, source: str, target: str, options: list[str] | None = None) -> CommandResult:
        try:
            Path(target).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return CommandResult(returncode=-1, stdout="", stderr=str(e), command=["mkdir", "-p", target])

        command = [self.MOUNT]
        if options:
            command.extend(["-o", ",".join(options)])
        command.extend([source, target])
        return self.run_command(command, check=False)

    # ==================== Swap ====================

    def allocate_file(self, path: str, size_bytes: int) -> CommandResult:
        return self.run_command([self.FALLOCATE, "-l", str(size_bytes), path], check=False)

    def restrict_permissions(self, path: str, mode: int = 0o600) -> CommandResult:
        try:
            os.chmod(path, mode)
        except OSError as e:
            return CommandResult(returncode=-1, stdout="", stderr=str(e), command=["chmod", f"{mode:o}", path])
        return CommandResult(returncode=0, stdout="", stderr="", command=["chmod", f"{mode:o}", path])

    def make_swap(self, path: str) -> CommandResult:
        return self.run_command([self.MKSWAP, path], check=False)

    def swapon(self, path: str) -> CommandResult:
        return self.run_command([self.SWAPON, path], check=False)

    def first_extent_offset(self, path: str) -> int | None:
        result = self.run_command([self.FILEFRAG, "-v", path], check=False)
        if not result.success:
            return None
        return parse_filefrag_offset(result.stdout)

    def filesystem_uuid(self, node: str) -> str | None:
        result = self.run_command([self.BLKID, "-s", "UUID", "-o", "value", node], check=False)
        uuid = result.stdout.strip() if result.success else ""
        return uuid or None

    # ==================== Target system ====================

    def pacstrap(self, target_root: str, packages: list[str]) -> CommandResult:
        return self.run_command([self.PACSTRAP, "-K", target_root, *packages], check=False, timeout=7200)

    def genfstab(self, target_root: str) -> CommandResult:
        return self.run_command([self.GENFSTAB, "-U", target_root], check=False)

    def chroot(
        self,
        target_root: str,
        command: list[str],
        input: str | bytes | bytearray | None = None,
        timeout: int = 600,
    ) -> CommandResult:
        return self.run_command(
            [self.ARCH_CHROOT, target_root, *command],
            check=False,
            input=input,
            timeout=timeout,
        )

    def sync(self) -> None:
        self.run_command([self.SYNC], check=False)

    # ==================== Hardware ====================

    def read_cpu_vendor(self) -> str | None:
        try:
            return parse_cpuinfo_vendor(self.PROC_CPUINFO.read_text())
        except OSError as e:
            logger.warning("Cannot read cpuinfo", error=str(e))
            return None

    def list_display_controllers(self) -> list[str]:
        if not self._check_tool(self.LSPCI):
            return []
        result = self.run_command([self.LSPCI], check=False)
        return parse_lspci_display(result.stdout) if result.success else []
