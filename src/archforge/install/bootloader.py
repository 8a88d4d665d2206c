"""
Bootloader and initramfs configuration.

The text transforms are pure functions over file contents; the
configurator applies them to the target root and runs the GRUB and
mkinitcpio tools inside the chroot.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from archforge.core.config import SystemConfig
from archforge.core.errors import InstallStepError
from archforge.core.logging import get_logger
from archforge.core.models import BootMode, SwapSpec

if TYPE_CHECKING:
    from archforge.core.models import PartitionPlan
    from archforge.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)

DEFAULT_CMDLINE = "loglevel=3 quiet"
BASE_HOOKS = ["base", "udev", "autodetect", "modconf", "block", "filesystems", "keyboard", "fsck"]

LID_HIBERNATE_CONF = """[Login]
HandleLidSwitch=hibernate
HandleLidSwitchExternalPower=hibernate
"""


def build_kernel_cmdline(swap: SwapSpec | None, base: str = DEFAULT_CMDLINE) -> str:
    """Kernel command line, with resume parameters only when hibernation is possible."""
    if swap is None or not swap.hibernation_ready:
        return base
    return " ".join([base, *swap.resume_parameters()])


def _set_assignment(text: str, key: str, value: str) -> str:
    line = f"{key}={value}"
    # An active assignment wins over a commented-out default
    for prefix in ("", "#"):
        pattern = re.compile(rf"^{prefix}{re.escape(key)}=.*$", re.MULTILINE)
        if pattern.search(text):
            return pattern.sub(lambda _: line, text, count=1)
    if text and not text.endswith("\n"):
        text += "\n"
    return text + line + "\n"


def set_grub_cmdline(text: str, cmdline: str) -> str:
    """Set GRUB_CMDLINE_LINUX_DEFAULT in /etc/default/grub contents."""
    return _set_assignment(text, "GRUB_CMDLINE_LINUX_DEFAULT", f'"{cmdline}"')


def enable_os_prober(text: str) -> str:
    """Let grub-mkconfig detect other installed systems."""
    return _set_assignment(text, "GRUB_DISABLE_OS_PROBER", "false")


def set_mkinitcpio_hooks(text: str, hibernation: bool) -> str:
    """Set HOOKS in /etc/mkinitcpio.conf contents; ``resume`` is appended for hibernation."""
    hooks = list(BASE_HOOKS)
    if hibernation:
        hooks.append("resume")
    return _set_assignment(text, "HOOKS", "(" + " ".join(hooks) + ")")


class BootloaderConfigurator:
    """Installs GRUB and wires up hibernation in the target system."""

    def __init__(
        self,
        backend: PlatformBackend,
        target_root: Path | str = "/mnt",
        system: SystemConfig | None = None,
    ) -> None:
        self.backend = backend
        self.target_root = Path(target_root)
        self.system = system or SystemConfig()

    def configure(self, plan: PartitionPlan, swap: SwapSpec | None) -> list[str]:
        """Configure initramfs and GRUB. Returns advisory warnings."""
        warnings: list[str] = []
        hibernation = swap is not None and swap.hibernation_ready

        self._rewrite("etc/mkinitcpio.conf", lambda text: set_mkinitcpio_hooks(text, hibernation))
        result = self._chroot(["mkinitcpio", "-P"], timeout=1800)
        if not result.success:
            message = f"mkinitcpio -P failed: {result.error_message()}"
            logger.warning("Initramfs regeneration failed", error=result.error_message())
            warnings.append(message)

        self._chroot_or_fail(self._grub_install_command(plan), "grub-install")

        cmdline = build_kernel_cmdline(swap, self.system.kernel_cmdline)
        self._rewrite(
            "etc/default/grub",
            lambda text: enable_os_prober(set_grub_cmdline(text, cmdline)),
        )
        logger.info("Kernel command line", cmdline=cmdline)

        self._chroot_or_fail(["grub-mkconfig", "-o", "/boot/grub/grub.cfg"], "grub-mkconfig")

        if hibernation:
            conf = self.target_root / "etc/systemd/logind.conf.d/hibernate.conf"
            conf.parent.mkdir(parents=True, exist_ok=True)
            conf.write_text(LID_HIBERNATE_CONF)
            logger.info("Lid switch set to hibernate", path=str(conf))
        elif swap is not None:
            warnings.append("Hibernation not configured: swap resume parameters unavailable")

        return warnings

    def _grub_install_command(self, plan: PartitionPlan) -> list[str]:
        if plan.boot_mode == BootMode.UEFI:
            return [
                "grub-install",
                "--target=x86_64-efi",
                "--efi-directory=/boot",
                f"--bootloader-id={self.system.grub_bootloader_id}",
            ]
        return ["grub-install", "--target=i386-pc", plan.device.path]

    def _rewrite(self, relative: str, transform: Callable[[str], str]) -> None:
        path = self.target_root / relative
        try:
            text = path.read_text() if path.exists() else ""
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(transform(text))
        except OSError as e:
            raise InstallStepError(f"Cannot update {path}: {e}") from e

    def _chroot(self, command: list[str], timeout: int = 600) -> CommandResult:
        return self.backend.chroot(str(self.target_root), command, timeout=timeout)

    def _chroot_or_fail(self, command: list[str], step: str) -> None:
        result = self._chroot(command)
        if not result.success:
            raise InstallStepError(f"{step} failed: {result.error_message()}")
        logger.info("Bootloader step completed", step=step)
