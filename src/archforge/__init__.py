"""
ArchForge - Guided Arch Linux installer.

Prepares a target disk (reclaim, partition, format, mount, swap) and
bootstraps a configured Arch Linux system onto it.
"""

__version__ = "1.0.0"
__author__ = "ArchForge Team"

from archforge.core.config import ArchForgeConfig
from archforge.core.session import Session

__all__ = ["ArchForgeConfig", "Session", "__version__"]
