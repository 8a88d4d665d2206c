"""
Installer workflow.

Runs the install steps strictly in order as session jobs. Each step emits
a status line before it runs and a success or error line after. A failed
fatal step aborts the run with InstallAborted; nothing is rolled back.
Advisory steps and outcomes only add warnings.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from archforge.core.errors import ArchForgeError, InstallAborted
from archforge.core.job import FunctionJob, JobContext
from archforge.core.logging import get_logger
from archforge.core.models import (
    BootMode,
    CleanupResult,
    HardwareProfile,
    MountEntry,
    PartitionPlan,
    PartitionRole,
    SwapSpec,
    TargetDevice,
)
from archforge.core.safety import ExecutionPlan, PreflightReport, create_standard_preflight_checker
from archforge.install.bootloader import BootloaderConfigurator
from archforge.install.device import detect_boot_mode, select_target_device
from archforge.install.filesystem import Formatter
from archforge.install.hardware import detect_hardware
from archforge.install.mount import Mounter
from archforge.install.partition import Partitioner, build_partition_plan
from archforge.install.reclaim import ResourceReclaimer
from archforge.install.swap import SwapProvisioner
from archforge.install.system import ChrootConfigurator, FstabGenerator, PackageInstaller

if TYPE_CHECKING:
    from archforge.core.credentials import InstallCredentials
    from archforge.core.session import Session
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)

Scope = Literal["prepare", "install"]
EventCallback = Callable[[str, str], None]

PREPARE_TOOLS = [
    "lsblk",
    "findmnt",
    "blkid",
    "mount",
    "umount",
    "swapon",
    "swapoff",
    "wipefs",
    "parted",
    "partprobe",
    "udevadm",
    "mkfs.fat",
    "mkfs.ext4",
    "mkswap",
    "fallocate",
    "filefrag",
]
INSTALL_TOOLS = PREPARE_TOOLS + ["pacstrap", "genfstab", "arch-chroot"]


@dataclass
class InstallStep:
    """One unit of the workflow."""

    key: str
    title: str
    action: Callable[[JobContext], Any]
    fatal: bool = True


@dataclass
class InstallState:
    """Values produced by earlier steps and consumed by later ones."""

    device: TargetDevice | None = None
    boot_mode: BootMode | None = None
    plan: PartitionPlan | None = None
    cleanup: CleanupResult | None = None
    mounts: list[MountEntry] = field(default_factory=list)
    swap: SwapSpec | None = None
    hardware: HardwareProfile | None = None
    preflight: PreflightReport | None = None
    completed_steps: list[str] = field(default_factory=list)


class Installer:
    """Drives the prepare and install flows for one target device."""

    def __init__(
        self,
        session: Session,
        device_path: str,
        credentials: InstallCredentials | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self.session = session
        self.config = session.config
        self.device_path = device_path
        self.credentials = credentials
        self.on_event = on_event
        self.state = InstallState()
        self._scope: Scope = "install"

    @property
    def backend(self) -> PlatformBackend:
        return self.session.platform

    # ==================== Planning ====================

    def plan_steps(self, scope: Scope = "install") -> list[InstallStep]:
        if scope not in ("prepare", "install"):
            raise ValueError(f"Unknown scope: {scope}")

        steps = [
            InstallStep("preflight", "Running preflight checks", self._step_preflight),
            InstallStep("hardware", "Detecting hardware", self._step_hardware, fatal=False),
            InstallStep("select", f"Selecting target device {self.device_path}", self._step_select),
            InstallStep("reclaim", f"Releasing {self.device_path}", self._step_reclaim, fatal=False),
            InstallStep("wipe", f"Wiping {self.device_path}", self._step_wipe),
            InstallStep("partition", "Creating partitions", self._step_partition),
            InstallStep("format", "Formatting partitions", self._step_format),
            InstallStep("mount", f"Mounting filesystems at {self.config.target_root}", self._step_mount),
        ]
        if self.config.swap.enabled:
            steps.append(InstallStep("swap", "Creating swap file", self._step_swap))

        if scope == "install":
            steps.extend(
                [
                    InstallStep("packages", "Installing base packages", self._step_packages),
                    InstallStep("fstab", "Generating fstab", self._step_fstab),
                    InstallStep("chroot", "Configuring the installed system", self._step_chroot),
                    InstallStep("bootloader", "Installing the bootloader", self._step_bootloader),
                ]
            )
            if self.config.unmount_on_finish:
                steps.append(
                    InstallStep("finalize", "Unmounting the target", self._step_finalize, fatal=False)
                )
        return steps

    def required_tools(self, scope: Scope = "install") -> list[str]:
        return list(INSTALL_TOOLS if scope == "install" else PREPARE_TOOLS)

    def preflight(self, scope: Scope = "install") -> PreflightReport:
        context = {
            "is_admin": self.backend.is_admin(),
            "missing_tools": self.backend.missing_tools(self.required_tools(scope)),
            "min_battery_percent": self.config.safety.min_battery_percent,
            "target_path": self.device_path,
            "system_devices": (
                self.backend.get_system_devices() if self.config.safety.system_disk_protection else set()
            ),
        }
        return create_standard_preflight_checker().run_checks(context)

    def describe(self, scope: Scope = "install", run_preflight: bool = True) -> ExecutionPlan:
        """Execution plan for operator review."""
        warnings = [f"ALL DATA ON {self.device_path} WILL BE DESTROYED"]
        if not self.config.swap.enabled:
            warnings.append("Swap is disabled: hibernation will not be available")
        report = self.preflight(scope) if run_preflight else None

        return self.session.safety.create_execution_plan(
            description="Install Arch Linux" if scope == "install" else "Prepare disk for Arch Linux",
            target=self.device_path,
            steps=[step.title for step in self.plan_steps(scope)],
            warnings=warnings,
            preflight_report=report,
        )

    # ==================== Execution ====================

    def run(self, scope: Scope = "install") -> InstallState:
        """Run every step of the scope in order. Raises InstallAborted on fatal failure."""
        try:
            if not self.session.safety.is_confirmed(self.device_path):
                raise InstallAborted("confirm", f"destructive operation on {self.device_path} not confirmed")
            if scope == "install" and self.credentials is None:
                raise InstallAborted("chroot", "no account credentials supplied")

            self._scope = scope
            self.session.set_target(self.device_path)
            for step in self.plan_steps(scope):
                self._run_step(step)
            return self.state
        finally:
            if self.credentials is not None:
                self.credentials.wipe()

    def _run_step(self, step: InstallStep) -> None:
        self._emit("start", step.title)
        job = FunctionJob(
            name=step.key,
            description=step.title,
            action=step.action,
            fatal=step.fatal,
        )
        result = self.session.run_job(job)

        for warning in result.warnings:
            self._emit("warning", warning)

        if result.success:
            self.state.completed_steps.append(step.key)
            self._emit("success", step.title)
            return

        error = result.error or "unknown error"
        self._emit("error", f"{step.title}: {error}")
        if step.fatal:
            raise InstallAborted(step.key, error)
        logger.warning("Advisory step failed, continuing", step=step.key, error=error)

    def _emit(self, kind: str, message: str) -> None:
        if self.on_event is not None:
            self.on_event(kind, message)

    def _require(self, value: Any, what: str) -> Any:
        if value is None:
            raise ArchForgeError(f"{what} is not available; an earlier step did not run")
        return value

    # ==================== Steps ====================

    def _step_preflight(self, context: JobContext) -> PreflightReport | None:
        if not self.config.safety.preflight_checks_enabled:
            context.add_warning("Preflight checks are disabled")
            return None

        report = self.preflight(self._scope)
        self.state.preflight = report
        for check in report.failures:
            if check.severity not in ("error", "critical"):
                context.add_warning(f"{check.name}: {check.message}")
        if report.has_errors:
            failures = [
                f"{c.name}: {c.message}"
                for c in report.failures
                if c.severity in ("error", "critical")
            ]
            raise ArchForgeError("; ".join(failures))
        return report

    def _step_hardware(self, context: JobContext) -> HardwareProfile:
        profile = detect_hardware(self.backend)
        self.state.hardware = profile
        for component in profile.unknown_components:
            context.add_warning(f"Unrecognized vendor: {component}")
        self.session.record_artifact("hardware", profile.to_dict())
        return profile

    def _step_select(self, context: JobContext) -> TargetDevice:
        device = select_target_device(
            self.backend,
            self.device_path,
            protect_system_disk=self.config.safety.system_disk_protection,
        )
        self.state.device = device
        self.state.boot_mode = detect_boot_mode(self.backend, self.config.layout.boot_mode)
        self.state.plan = build_partition_plan(device, self.state.boot_mode, self.config.layout)
        self.session.record_artifact("partition_plan", self.state.plan.to_dict())
        return device

    def _step_reclaim(self, context: JobContext) -> CleanupResult:
        device = self._require(self.state.device, "Target device")
        result = ResourceReclaimer(self.backend, self.config.cleanup).reclaim(device)
        self.state.cleanup = result
        self.session.record_artifact("cleanup", result.to_dict())
        if not result.success:
            context.add_warning(
                f"{device.path} still in use after {result.attempt_count} attempts "
                f"(mounts: {result.remaining_mounts or 'none'}, "
                f"processes: {result.remaining_holders or 'none'}); proceeding"
            )
        return result

    def _step_wipe(self, context: JobContext) -> None:
        Partitioner(self.backend).wipe(self._require(self.state.device, "Target device"))

    def _step_partition(self, context: JobContext) -> list[str]:
        return Partitioner(self.backend).apply(self._require(self.state.plan, "Partition plan"))

    def _step_format(self, context: JobContext) -> list[str]:
        return Formatter(self.backend).format(self._require(self.state.plan, "Partition plan"))

    def _step_mount(self, context: JobContext) -> list[MountEntry]:
        mounter = Mounter(self.backend, self.config.target_root)
        self.state.mounts = mounter.mount(self._require(self.state.plan, "Partition plan"))
        return self.state.mounts

    def _step_swap(self, context: JobContext) -> SwapSpec:
        plan: PartitionPlan = self._require(self.state.plan, "Partition plan")
        root_partition = plan.device_for(PartitionRole.ROOT) or ""
        swap = SwapProvisioner(self.backend, self.config.swap).provision(
            self.config.target_root, root_partition
        )
        self.state.swap = swap
        self.session.record_artifact("swap", swap.to_dict())
        if self.config.swap.hibernation and not swap.hibernation_ready:
            context.add_warning(
                "Could not determine swap file offset or root UUID; hibernation will not be available"
            )
        return swap

    def _step_packages(self, context: JobContext) -> None:
        PackageInstaller(self.backend).install(self.config.target_root, self.config.packages.all)

    def _step_fstab(self, context: JobContext) -> str:
        return str(FstabGenerator(self.backend).generate(self.config.target_root, self.state.swap))

    def _step_chroot(self, context: JobContext) -> None:
        credentials = self._require(self.credentials, "Account credentials")
        ChrootConfigurator(self.backend, self.config.target_root).configure(
            self.config.system, credentials
        )

    def _step_bootloader(self, context: JobContext) -> None:
        configurator = BootloaderConfigurator(
            self.backend, self.config.target_root, self.config.system
        )
        warnings = configurator.configure(
            self._require(self.state.plan, "Partition plan"), self.state.swap
        )
        for warning in warnings:
            context.add_warning(warning)

    def _step_finalize(self, context: JobContext) -> None:
        swap_path = self.state.swap.host_path if self.state.swap else None
        if not Mounter(self.backend, self.config.target_root).unmount_all(swap_path):
            context.add_warning(f"Could not unmount {self.config.target_root}; unmount it manually")
