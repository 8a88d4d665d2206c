"""
Resource reclaimer.

Frees a target disk from everything the live system may hold on it:
processes with open handles, mounts, active LVM volume groups and swap.
Runs a bounded number of attempts and reports what it achieved; it never
raises for an unreclaimable device.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from archforge.core.config import CleanupConfig
from archforge.core.logging import get_logger
from archforge.core.models import CleanupAttemptResult, CleanupResult, MountEntry, TargetDevice

if TYPE_CHECKING:
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)


class ResourceReclaimer:
    """Kills holders, unmounts, deactivates LVM and disables swap on a disk."""

    def __init__(
        self,
        backend: PlatformBackend,
        config: CleanupConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.config = config or CleanupConfig()
        self._sleep = sleep

    def reclaim(self, device: TargetDevice) -> CleanupResult:
        result = CleanupResult(device_path=device.path)

        for attempt in range(1, self.config.max_attempts + 1):
            logger.info("Reclaim attempt", device=device.path, attempt=attempt)
            attempt_result = self._attempt(device, attempt)
            result.attempts.append(attempt_result)

            if attempt_result.success:
                logger.info("Device reclaimed", device=device.path, attempts=attempt)
                return result

            logger.warning(
                "Device still busy",
                device=device.path,
                attempt=attempt,
                remaining_mounts=attempt_result.remaining_mounts,
                remaining_holders=attempt_result.remaining_holders,
            )
            if attempt < self.config.max_attempts:
                self._sleep(self.config.retry_delay_seconds)

        logger.warning(
            "Giving up on reclaiming device",
            device=device.path,
            attempts=self.config.max_attempts,
        )
        return result

    def _attempt(self, device: TargetDevice, attempt: int) -> CleanupAttemptResult:
        record = CleanupAttemptResult(attempt=attempt)
        nodes = self.backend.device_nodes(device.path)

        self._stop_holders(nodes, record)
        mountpoints = [m.target for m in self._device_mounts(nodes)]
        self._unmount_all(nodes, record)
        self._deactivate_lvm(nodes, record)
        self._disable_swap(nodes, mountpoints, record)
        self._recheck_partitions(nodes, record)

        record.remaining_mounts = [m.target for m in self._device_mounts(nodes)]
        record.remaining_holders = sorted(self.backend.find_holders(nodes))
        record.success = not record.remaining_mounts and not record.remaining_holders
        return record

    def _device_mounts(self, nodes: list[str]) -> list[MountEntry]:
        sources = set(nodes)
        return [m for m in self.backend.get_mounts() if m.source in sources]

    def _stop_holders(self, nodes: list[str], record: CleanupAttemptResult) -> None:
        holders = self.backend.find_holders(nodes)
        if not holders:
            return

        logger.info("Terminating processes holding device", pids=sorted(holders))
        signalled, errors = self.backend.signal_processes(holders, force=False)
        record.processes_killed.extend(signalled)
        record.errors.extend(errors)

        self._sleep(self.config.kill_delay_seconds)

        stragglers = self.backend.find_holders(nodes)
        if stragglers:
            logger.warning("Killing remaining processes", pids=sorted(stragglers))
            signalled, errors = self.backend.signal_processes(stragglers, force=True)
            record.processes_killed.extend(p for p in signalled if p not in record.processes_killed)
            record.errors.extend(errors)

        for error in record.errors:
            logger.warning("Process signal failed", error=error)

    def _unmount_all(self, nodes: list[str], record: CleanupAttemptResult) -> None:
        # Deepest first so nested mounts go before their parents
        mounts = sorted(self._device_mounts(nodes), key=lambda m: m.depth, reverse=True)
        for mount in mounts:
            result = self.backend.unmount(mount.target, recursive=True)
            if result.success:
                record.mounts_removed.append(mount.target)
                logger.info("Unmounted", target=mount.target, source=mount.source)
            else:
                message = f"umount {mount.target}: {result.error_message()}"
                record.errors.append(message)
                logger.warning("Unmount failed", target=mount.target, error=result.error_message())

    def _deactivate_lvm(self, nodes: list[str], record: CleanupAttemptResult) -> None:
        if not self.backend.has_lvm_tools():
            return

        groups = self.backend.physical_volumes_on(nodes)
        for group in sorted(groups):
            result = self.backend.deactivate_volume_group(group)
            if result.success:
                record.lvm_deactivated.append(group)
                logger.info("Volume group deactivated", volume_group=group)
                continue

            logger.warning("Volume group deactivation failed", volume_group=group, error=result.error_message())
            if not self.config.force_remove_lvm:
                record.errors.append(f"vgchange -an {group}: {result.error_message()}")
                continue

            self._force_remove_lvm(group, groups[group], record)

    def _force_remove_lvm(self, group: str, physical_volumes: list[str], record: CleanupAttemptResult) -> None:
        removed = self.backend.remove_volume_group(group)
        if not removed.success:
            record.errors.append(f"vgremove {group}: {removed.error_message()}")
            return

        record.lvm_deactivated.append(group)
        logger.warning("Volume group force-removed", volume_group=group)

        wiped = self.backend.remove_physical_volumes(physical_volumes)
        if not wiped.success:
            record.errors.append(f"pvremove {' '.join(physical_volumes)}: {wiped.error_message()}")
            logger.warning("Physical volume removal failed", volume_group=group, error=wiped.error_message())

    def _disable_swap(
        self,
        nodes: list[str],
        mountpoints: list[str],
        record: CleanupAttemptResult,
    ) -> None:
        node_set = set(nodes)
        prefixes = tuple(mp.rstrip("/") + "/" for mp in mountpoints if mp != "/")

        for swap in self.backend.get_active_swaps():
            if swap in node_set or (prefixes and swap.startswith(prefixes)):
                self._swapoff(swap, record)

        for node in nodes[1:]:
            if node in record.swap_disabled:
                continue
            if self.backend.probe_filesystem(node) == "swap":
                self._swapoff(node, record)

    def _swapoff(self, path: str, record: CleanupAttemptResult) -> None:
        result = self.backend.swapoff(path)
        if result.success:
            record.swap_disabled.append(path)
            logger.info("Swap disabled", swap=path)
        else:
            # swapoff on an inactive signature fails harmlessly
            logger.debug("swapoff failed", swap=path, error=result.error_message())

    def _recheck_partitions(self, nodes: list[str], record: CleanupAttemptResult) -> None:
        mounts = self.backend.get_mounts()
        for node in nodes:
            for mount in [m for m in mounts if m.source == node]:
                result = self.backend.unmount(mount.target)
                if result.success:
                    record.mounts_removed.append(mount.target)
                else:
                    logger.warning(
                        "Partition still mounted",
                        partition=node,
                        target=mount.target,
                        error=result.error_message(),
                    )
