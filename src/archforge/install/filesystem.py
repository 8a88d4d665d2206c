"""
Filesystem creation for planned partitions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from archforge.core.errors import FormatError
from archforge.core.logging import get_logger
from archforge.core.models import PartitionRole

if TYPE_CHECKING:
    from archforge.core.models import PartitionPlan
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)

LABELS = {
    PartitionRole.ESP: "EFI",
    PartitionRole.BOOT: "boot",
    PartitionRole.ROOT: "root",
}


class Formatter:
    """Creates the filesystem of every formatted partition in a plan."""

    def __init__(self, backend: PlatformBackend) -> None:
        self.backend = backend

    def format(self, plan: PartitionPlan) -> list[str]:
        formatted: list[str] = []
        for spec in plan.formatted:
            node = plan.device.partition_path(spec.number)
            result = self.backend.make_filesystem(node, spec.filesystem, label=LABELS.get(spec.role))
            if not result.success:
                raise FormatError(
                    f"Creating {spec.filesystem.value} on {node} failed: {result.error_message()}"
                )
            logger.info("Filesystem created", device=node, filesystem=spec.filesystem.value)
            formatted.append(node)
        return formatted
