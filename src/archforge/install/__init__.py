"""
ArchForge install steps.

Each module implements one stage of the installation; the workflow
module runs them in order.
"""

from archforge.install.bootloader import BootloaderConfigurator, build_kernel_cmdline
from archforge.install.device import detect_boot_mode, select_target_device
from archforge.install.filesystem import Formatter
from archforge.install.hardware import classify_vendor, detect_hardware
from archforge.install.mount import Mounter
from archforge.install.partition import Partitioner, build_partition_plan
from archforge.install.reclaim import ResourceReclaimer
from archforge.install.swap import SwapProvisioner, compute_swap_size
from archforge.install.system import ChrootConfigurator, FstabGenerator, PackageInstaller
from archforge.install.workflow import Installer, InstallState, InstallStep

__all__ = [
    "BootloaderConfigurator",
    "ChrootConfigurator",
    "FstabGenerator",
    "Formatter",
    "Installer",
    "InstallState",
    "InstallStep",
    "Mounter",
    "PackageInstaller",
    "Partitioner",
    "ResourceReclaimer",
    "SwapProvisioner",
    "build_kernel_cmdline",
    "build_partition_plan",
    "classify_vendor",
    "compute_swap_size",
    "detect_boot_mode",
    "detect_hardware",
    "select_target_device",
]
