"""
Linux output parsers.

Parsers for lsblk, blkid, findmnt, /proc/mounts, /proc/swaps, lsof,
filefrag, pvs, cpuinfo and lspci output.
"""

from __future__ import annotations

import json
import re
from typing import Any

from archforge.core.models import BlockDevice, MountEntry


def _parse_size(value: Any) -> int:
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parse_rota(value: Any) -> bool | None:
    if value in (True, "1", 1):
        return True
    if value in (False, "0", 0):
        return False
    return None


def parse_lsblk_json(output: str) -> list[dict[str, Any]]:
    """Parse JSON output from lsblk."""
    try:
        data = json.loads(output)
        return data.get("blockdevices", [])
    except json.JSONDecodeError:
        return []


def build_block_device(block: dict[str, Any]) -> BlockDevice:
    """Build a BlockDevice tree from one lsblk JSON entry."""
    device_path = block.get("path") or block.get("name", "")
    if not device_path.startswith("/dev/"):
        device_path = f"/dev/{device_path}"

    mountpoint = block.get("mountpoint")
    if mountpoint is None:
        # lsblk >= 2.37 reports a list under "mountpoints"
        mountpoints = [m for m in block.get("mountpoints") or [] if m]
        mountpoint = mountpoints[0] if mountpoints else None

    model = block.get("model")
    return BlockDevice(
        path=device_path,
        device_type=block.get("type", ""),
        size_bytes=_parse_size(block.get("size", 0)),
        model=model.strip() if model else None,
        transport=block.get("tran"),
        rotational=_parse_rota(block.get("rota")),
        fstype=block.get("fstype"),
        mountpoint=mountpoint,
        children=[build_block_device(child) for child in block.get("children", [])],
    )


def parse_lsblk_paths(output: str) -> list[str]:
    """Parse ``lsblk -lnp -o NAME`` output into device paths."""
    return [line.strip() for line in output.splitlines() if line.strip()]


def parse_blkid_output(output: str) -> dict[str, dict[str, str]]:
    """
    Parse blkid output.

    Example input:
    /dev/sda1: UUID="xxxx" TYPE="ext4" PARTUUID="xxxx"
    """
    result: dict[str, dict[str, str]] = {}

    for line in output.strip().split("\n"):
        if not line or ":" not in line:
            continue

        device, rest = line.split(":", 1)
        attrs: dict[str, str] = {}
        for match in re.finditer(r'(\w+)="([^"]*)"', rest):
            key, value = match.groups()
            attrs[key.upper()] = value

        result[device.strip()] = attrs

    return result


def parse_findmnt_json(output: str) -> list[MountEntry]:
    """Parse ``findmnt -J`` output into a flat list of mounts."""
    result: list[MountEntry] = []
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        return result

    def process_fs(fs: dict[str, Any]) -> None:
        source = fs.get("source", "")
        target = fs.get("target", "")
        if source and target:
            # bind mounts and btrfs subvolumes look like /dev/sda2[/sub]
            source = re.sub(r"\[.*\]$", "", source)
            result.append(MountEntry(source=source, target=target, fstype=fs.get("fstype")))
        for child in fs.get("children", []):
            process_fs(child)

    for fs in data.get("filesystems", []):
        process_fs(fs)

    return result


def parse_proc_mounts(content: str) -> list[MountEntry]:
    """Parse /proc/mounts content as fallback."""
    result: list[MountEntry] = []
    for line in content.splitlines():
        parts = line.split()
        if len(parts) >= 3:
            # Spaces in mount points are octal-escaped
            target = parts[1].replace("\\040", " ")
            result.append(MountEntry(source=parts[0], target=target, fstype=parts[2]))
    return result


def parse_proc_swaps(content: str) -> list[str]:
    """Parse /proc/swaps into the list of active swap areas."""
    swaps: list[str] = []
    for line in content.splitlines()[1:]:
        parts = line.split()
        if parts:
            swaps.append(parts[0].replace("\\040", " "))
    return swaps


def parse_lsof_pids(output: str) -> set[int]:
    """Parse ``lsof -t`` output (one PID per line)."""
    pids: set[int] = set()
    for line in output.split():
        if line.isdigit():
            pids.add(int(line))
    return pids


def parse_filefrag_offset(output: str) -> int | None:
    """
    Parse the physical start of the first extent from ``filefrag -v``.

    Example input:
    Filesystem type is: ef53
    File size of /swapfile is 8589934592 (2097152 blocks of 4096 bytes)
     ext:     logical_offset:        physical_offset: length:   expected: flags:
       0:        0..   32767:      34816..     67583:  32768:
    """
    for line in output.splitlines():
        match = re.match(r"^\s*0:\s*\d+\.\.\s*\d+:\s*(\d+)\.\.", line)
        if match:
            offset = int(match.group(1))
            return offset or None
    return None


def parse_pvs_output(output: str) -> dict[str, list[str]]:
    """Parse ``pvs --noheadings -o pv_name,vg_name`` output into volume group -> physical volumes."""
    groups: dict[str, list[str]] = {}
    for line in output.splitlines():
        fields = line.split()
        # Orphan PVs have an empty vg_name column
        if len(fields) < 2:
            continue
        pv_name, vg_name = fields[0], fields[1]
        members = groups.setdefault(vg_name, [])
        if pv_name not in members:
            members.append(pv_name)
    return groups


def parse_cpuinfo_vendor(content: str) -> str | None:
    """Extract ``vendor_id`` from /proc/cpuinfo."""
    for line in content.splitlines():
        if line.lower().startswith("vendor_id"):
            _, _, value = line.partition(":")
            return value.strip() or None
    return None


def parse_lspci_display(output: str) -> list[str]:
    """Keep the lspci lines describing VGA, 3D or display controllers."""
    controllers = []
    for line in output.splitlines():
        if re.search(r"\b(VGA compatible controller|3D controller|Display controller)\b", line):
            _, _, description = line.partition(": ")
            controllers.append(description.strip() or line.strip())
    return controllers
