"""
ArchForge Platform Abstraction Layer.

Provides the host backend used by the installer steps.
"""

from __future__ import annotations

import platform

from archforge.platform.base import CommandResult, PlatformBackend


def get_platform_backend() -> PlatformBackend:
    """Get the appropriate platform backend for the current OS."""
    system = platform.system().lower()

    if system == "linux":
        from archforge.platform.linux import LinuxBackend

        return LinuxBackend()
    raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "CommandResult",
    "PlatformBackend",
    "get_platform_backend",
]
