"""
Swap file provisioning and hibernation resume parameters.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from archforge.core.config import SwapConfig
from archforge.core.errors import SwapError
from archforge.core.logging import get_logger
from archforge.core.models import SwapSpec

if TYPE_CHECKING:
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)


def compute_swap_size(ram_bytes: int, ratio_percent: int = 115) -> int:
    """Swap size in bytes: floor(ram * ratio / 100)."""
    if ram_bytes < 0:
        raise ValueError(f"RAM size cannot be negative: {ram_bytes}")
    if ratio_percent <= 0:
        raise ValueError(f"Swap ratio must be positive: {ratio_percent}")
    return ram_bytes * ratio_percent // 100


def host_swap_path(target_root: Path | str, swap_path: str) -> Path:
    """Location of the installed system's swap file as seen from the live host."""
    return Path(target_root) / swap_path.lstrip("/")


class SwapProvisioner:
    """Allocates, formats and activates the swap file of the target system."""

    def __init__(self, backend: PlatformBackend, config: SwapConfig | None = None) -> None:
        self.backend = backend
        self.config = config or SwapConfig()

    def plan(self, target_root: Path | str = "/mnt") -> SwapSpec:
        """Compute the swap spec without touching the disk."""
        ram = self.backend.total_memory_bytes()
        return SwapSpec(
            ram_bytes=ram,
            size_bytes=compute_swap_size(ram, self.config.ratio_percent),
            path=self.config.path,
            host_path=str(host_swap_path(target_root, self.config.path)),
        )

    def provision(self, target_root: Path | str, root_partition: str) -> SwapSpec:
        spec = self.plan(target_root)
        host_path = spec.host_path

        logger.info(
            "Creating swap file",
            path=host_path,
            ram_bytes=spec.ram_bytes,
            size_bytes=spec.size_bytes,
        )

        result = self.backend.allocate_file(host_path, spec.size_bytes)
        if not result.success:
            raise SwapError(f"Allocating {host_path} failed: {result.error_message()}")

        try:
            actual = Path(host_path).stat().st_size
        except OSError as e:
            raise SwapError(f"Cannot stat {host_path}: {e}") from e
        if actual != spec.size_bytes:
            raise SwapError(
                f"Swap file size mismatch: expected {spec.size_bytes} bytes, got {actual}"
            )

        # Owner-only, as swapon expects
        result = self.backend.restrict_permissions(host_path, 0o600)
        if not result.success:
            raise SwapError(f"Restricting permissions on {host_path} failed: {result.error_message()}")

        result = self.backend.make_swap(host_path)
        if not result.success:
            raise SwapError(f"mkswap {host_path} failed: {result.error_message()}")

        result = self.backend.swapon(host_path)
        if not result.success:
            raise SwapError(f"swapon {host_path} failed: {result.error_message()}")

        if self.config.hibernation:
            self._resolve_resume(spec, root_partition)

        return spec

    def _resolve_resume(self, spec: SwapSpec, root_partition: str) -> None:
        spec.offset = self.backend.first_extent_offset(spec.host_path)
        spec.uuid = self.backend.filesystem_uuid(root_partition)

        if not spec.offset:
            logger.warning(
                "Could not determine swap file offset; hibernation will not be configured",
                path=spec.host_path,
            )
        if not spec.uuid:
            logger.warning(
                "Could not determine root filesystem UUID; hibernation will not be configured",
                device=root_partition,
            )
        if spec.hibernation_ready:
            logger.info("Hibernation resume parameters", uuid=spec.uuid, offset=spec.offset)
