"""
ArchForge configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

HOSTNAME_PATTERN = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
LOCALE_PATTERN = re.compile(r"^[A-Za-z]{2,3}(_[A-Z]{2})?(\.[A-Za-z0-9-]+)?(@\w+)?$")

DEFAULT_PACKAGES = [
    "base",
    "linux",
    "linux-firmware",
    "sudo",
    "vim",
    "nano",
    "networkmanager",
    "openssh",
    "wget",
    "curl",
    "grub",
    "efibootmgr",
    "os-prober",
    "e2fsprogs",
]


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".archforge" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class SafetyConfig(BaseModel):
    """Configuration for safety features."""

    require_confirmation: bool = True
    preflight_checks_enabled: bool = True
    system_disk_protection: bool = True
    min_battery_percent: int = Field(default=50, ge=0, le=100)


class CleanupConfig(BaseModel):
    """Configuration for reclaiming a busy target device."""

    max_attempts: int = Field(default=3, ge=1, le=20)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    kill_delay_seconds: float = Field(default=1.0, ge=0)
    force_remove_lvm: bool = False


class LayoutConfig(BaseModel):
    """Configuration for the partition layout."""

    boot_mode: Literal["auto", "uefi", "bios"] = "auto"
    bios_label: Literal["gpt", "msdos"] = "gpt"
    alignment_mib: int = Field(default=1, ge=1)
    efi_size_mib: int = Field(default=2048, ge=100)
    bios_boot_size_mib: int = Field(default=2, ge=1)
    boot_size_mib: int = Field(default=1024, ge=256)
    root_filesystem: Literal["ext4"] = "ext4"


class SwapConfig(BaseModel):
    """Configuration for the swap file."""

    enabled: bool = True
    ratio_percent: int = Field(default=115, ge=1, le=400)
    path: str = "/swapfile"
    hibernation: bool = True

    @field_validator("path")
    @classmethod
    def absolute_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("swap path must be absolute")
        return v


class SystemConfig(BaseModel):
    """Configuration applied inside the installed system."""

    hostname: str = "archlinux"
    locale: str = "en_US.UTF-8"
    timezone: str = "UTC"
    username: str | None = None
    user_groups: list[str] = Field(default_factory=lambda: ["wheel"])
    shell: str = "/bin/bash"
    sudo_nopasswd: bool = False
    services: list[str] = Field(default_factory=lambda: ["NetworkManager", "sshd"])
    kernel_cmdline: str = "loglevel=3 quiet"
    grub_bootloader_id: str = "GRUB"

    @field_validator("hostname")
    @classmethod
    def valid_hostname(cls, v: str) -> str:
        if not HOSTNAME_PATTERN.match(v):
            raise ValueError(f"invalid hostname: {v!r}")
        return v

    @field_validator("username")
    @classmethod
    def valid_username(cls, v: str | None) -> str | None:
        if v is not None and not USERNAME_PATTERN.match(v):
            raise ValueError(f"invalid username: {v!r}")
        return v

    @field_validator("locale")
    @classmethod
    def valid_locale(cls, v: str) -> str:
        if not LOCALE_PATTERN.match(v):
            raise ValueError(f"invalid locale: {v!r}")
        return v

    @field_validator("timezone")
    @classmethod
    def valid_timezone(cls, v: str) -> str:
        if v.startswith("/") or ".." in v.split("/"):
            raise ValueError(f"invalid timezone: {v!r}")
        return v


class PackagesConfig(BaseModel):
    """Packages bootstrapped into the target root."""

    base: list[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGES))
    extra: list[str] = Field(default_factory=list)

    @property
    def all(self) -> list[str]:
        seen: dict[str, None] = {}
        for name in self.base + self.extra:
            seen.setdefault(name, None)
        return list(seen)


class ArchForgeConfig(BaseModel):
    """Main ArchForge configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    swap: SwapConfig = Field(default_factory=SwapConfig)
    system: SystemConfig = Field(default_factory=SystemConfig)
    packages: PackagesConfig = Field(default_factory=PackagesConfig)
    target_root: Path = Path("/mnt")
    unmount_on_finish: bool = True
    session_directory: Path = Field(default_factory=lambda: Path.home() / ".archforge" / "sessions")

    @field_validator("session_directory", mode="before")
    @classmethod
    def expand_session_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> ArchForgeConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".archforge" / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path.home() / ".archforge" / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.session_directory.mkdir(parents=True, exist_ok=True)

    def get_session_file(self) -> Path:
        """Get path for a new session log file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.session_directory / f"session_{timestamp}.json"


def load_config(config_path: Path | None = None) -> ArchForgeConfig:
    """Load or create configuration."""
    config = ArchForgeConfig.load(config_path)
    config.ensure_directories()
    return config
