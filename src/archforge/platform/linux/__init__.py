"""
ArchForge Linux Platform Backend.

Implements host operations using standard Linux tools:
- lsblk, blkid, findmnt for inventory
- lsof, umount, swapoff, vgchange for reclaiming a busy disk
- wipefs, sgdisk, parted for partitioning
- mkfs.*, fallocate, filefrag for filesystems and swap
- pacstrap, genfstab, arch-chroot for the target system
"""

from archforge.platform.linux.backend import LinuxBackend
from archforge.platform.linux.parsers import (
    parse_blkid_output,
    parse_filefrag_offset,
    parse_lsblk_json,
)

__all__ = [
    "LinuxBackend",
    "parse_lsblk_json",
    "parse_blkid_output",
    "parse_filefrag_offset",
]
