"""
Base system installation: packages, fstab and in-chroot configuration.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from archforge.core.config import SystemConfig
from archforge.core.credentials import Credential, InstallCredentials, wipe_buffer
from archforge.core.errors import InstallStepError
from archforge.core.logging import get_logger

if TYPE_CHECKING:
    from archforge.core.models import SwapSpec
    from archforge.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)

HOSTS_TEMPLATE = """127.0.0.1   localhost
::1         localhost
127.0.1.1   {hostname}.localdomain {hostname}
"""


def swap_fstab_line(swap_path: str) -> str:
    return f"{swap_path} none swap defaults 0 0"


def has_fstab_entry(fstab: str, source: str) -> bool:
    """Whether an uncommented fstab line already uses ``source``."""
    for line in fstab.splitlines():
        fields = line.split()
        if fields and not fields[0].startswith("#") and fields[0] == source:
            return True
    return False


def enable_locale(locale_gen: str, locale: str) -> str:
    """Uncomment ``locale`` in locale.gen contents, appending it when absent."""
    pattern = re.compile(rf"^#\s*({re.escape(locale)}\s.*)$", re.MULTILINE)
    if re.search(rf"^{re.escape(locale)}\s", locale_gen, re.MULTILINE):
        return locale_gen
    if pattern.search(locale_gen):
        return pattern.sub(r"\1", locale_gen, count=1)

    charset = locale.split(".", 1)[1] if "." in locale else "UTF-8"
    if locale_gen and not locale_gen.endswith("\n"):
        locale_gen += "\n"
    return locale_gen + f"{locale} {charset}\n"


def sudoers_rule(nopasswd: bool) -> str:
    return "%wheel ALL=(ALL:ALL) NOPASSWD: ALL\n" if nopasswd else "%wheel ALL=(ALL:ALL) ALL\n"


class PackageInstaller:
    """Bootstraps packages into the target root with pacstrap."""

    def __init__(self, backend: PlatformBackend) -> None:
        self.backend = backend

    def install(self, target_root: Path | str, packages: list[str]) -> None:
        if not packages:
            raise InstallStepError("No packages to install")

        logger.info("Installing packages", target=str(target_root), count=len(packages))
        result = self.backend.pacstrap(str(target_root), packages)
        if not result.success:
            raise InstallStepError(f"pacstrap failed: {result.error_message()}")


class FstabGenerator:
    """Writes the target fstab from the current mounts plus the swap file."""

    def __init__(self, backend: PlatformBackend) -> None:
        self.backend = backend

    def generate(self, target_root: Path | str, swap: SwapSpec | None = None) -> Path:
        fstab_path = Path(target_root) / "etc" / "fstab"
        result = self.backend.genfstab(str(target_root))
        if not result.success:
            raise InstallStepError(f"genfstab failed: {result.error_message()}")

        try:
            fstab_path.parent.mkdir(parents=True, exist_ok=True)
            existing = fstab_path.read_text() if fstab_path.exists() else ""
            content = existing
            if content and not content.endswith("\n"):
                content += "\n"
            content += result.stdout
            if swap is not None and not has_fstab_entry(content, swap.path):
                if not content.endswith("\n"):
                    content += "\n"
                content += swap_fstab_line(swap.path) + "\n"
            fstab_path.write_text(content)
        except OSError as e:
            raise InstallStepError(f"Cannot write {fstab_path}: {e}") from e

        logger.info("fstab generated", path=str(fstab_path))
        return fstab_path


class ChrootConfigurator:
    """Configures time, locale, network identity, accounts and services."""

    def __init__(self, backend: PlatformBackend, target_root: Path | str = "/mnt") -> None:
        self.backend = backend
        self.target_root = Path(target_root)

    def configure(self, system: SystemConfig, credentials: InstallCredentials) -> None:
        """Apply the system configuration. Credentials are wiped on return."""
        try:
            self._configure_time(system.timezone)
            self._configure_locale(system.locale)
            self._configure_network_identity(system.hostname)
            self._set_password("root", credentials.root)
            if system.username:
                self._create_user(system)
                if credentials.user is not None and not credentials.user.is_empty:
                    self._set_password(system.username, credentials.user)
                else:
                    logger.warning("No password set for user", username=system.username)
                if "wheel" in system.user_groups:
                    self._write_sudoers(system.sudo_nopasswd)
            for service in system.services:
                self._run(["systemctl", "enable", service], f"enable {service}")
        finally:
            credentials.wipe()

    def _configure_time(self, timezone: str) -> None:
        zoneinfo = self.target_root / "usr/share/zoneinfo" / timezone
        if not zoneinfo.exists():
            logger.warning("Timezone not found in target, linking anyway", timezone=timezone)
        self._run(["ln", "-sf", f"/usr/share/zoneinfo/{timezone}", "/etc/localtime"], "timezone")
        self._run(["hwclock", "--systohc"], "hwclock")

    def _configure_locale(self, locale: str) -> None:
        locale_gen = self.target_root / "etc/locale.gen"
        self._write(locale_gen, enable_locale(self._read(locale_gen), locale))
        self._run(["locale-gen"], "locale-gen")
        self._write(self.target_root / "etc/locale.conf", f"LANG={locale}\n")

    def _configure_network_identity(self, hostname: str) -> None:
        self._write(self.target_root / "etc/hostname", f"{hostname}\n")
        self._write(self.target_root / "etc/hosts", HOSTS_TEMPLATE.format(hostname=hostname))

    def _create_user(self, system: SystemConfig) -> None:
        command = ["useradd", "-m"]
        if system.user_groups:
            command.extend(["-G", ",".join(system.user_groups)])
        command.extend(["-s", system.shell, system.username or ""])
        self._run(command, f"useradd {system.username}")
        logger.info("User created", username=system.username, groups=system.user_groups)

    def _set_password(self, username: str, credential: Credential) -> None:
        if credential.is_empty:
            raise InstallStepError(f"Empty password for {username}")
        line = credential.chpasswd_line(username)
        try:
            result = self.backend.chroot(str(self.target_root), ["chpasswd"], input=line)
        finally:
            wipe_buffer(line)
        if not result.success:
            raise InstallStepError(f"Setting password for {username} failed: {result.error_message()}")
        logger.info("Password set", username=username)

    def _write_sudoers(self, nopasswd: bool) -> None:
        path = self.target_root / "etc/sudoers.d/10-wheel"
        self._write(path, sudoers_rule(nopasswd))
        os.chmod(path, 0o440)

    def _run(self, command: list[str], step: str) -> CommandResult:
        result = self.backend.chroot(str(self.target_root), command)
        if not result.success:
            raise InstallStepError(f"{step} failed: {result.error_message()}")
        return result

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text() if path.exists() else ""
        except OSError as e:
            raise InstallStepError(f"Cannot read {path}: {e}") from e

    @staticmethod
    def _write(path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except OSError as e:
            raise InstallStepError(f"Cannot write {path}: {e}") from e
