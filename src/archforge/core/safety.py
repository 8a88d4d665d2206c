"""
ArchForge Safety Manager.

Implements typed confirmation for destructive operations, execution plans
for operator review, and preflight checks run before touching a disk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import psutil

from archforge.core.logging import get_logger

if TYPE_CHECKING:
    from archforge.core.config import SafetyConfig

logger = get_logger(__name__)


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error, critical
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def has_errors(self) -> bool:
        return any(c.severity in ("error", "critical") and not c.passed for c in self.checks)

    @property
    def failures(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.passed]

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [f"Preflight Check Report ({self.timestamp.isoformat()})"]
        lines.append("=" * 60)

        passed = sum(1 for c in self.checks if c.passed)
        lines.append(f"Results: {passed}/{len(self.checks)} checks passed")
        lines.append("")

        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")
            for key, value in check.details.items():
                lines.append(f"    {key}: {value}")

        return "\n".join(lines)


@dataclass
class ExecutionPlan:
    """Human-readable execution plan for an install run."""

    description: str
    target: str
    steps: list[str]
    warnings: list[str] = field(default_factory=list)
    preflight_report: PreflightReport | None = None
    confirmation_string: str | None = None

    def get_plan_text(self) -> str:
        """Get human-readable plan text."""
        lines = ["=" * 60]
        lines.append(f"OPERATION: {self.description}")
        lines.append(f"TARGET: {self.target}")
        lines.append("=" * 60)

        if self.warnings:
            lines.append("")
            lines.append("⚠️  WARNINGS:")
            for warning in self.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        lines.append("EXECUTION STEPS:")
        for i, step in enumerate(self.steps, 1):
            lines.append(f"   {i}. {step}")

        if self.preflight_report:
            lines.append("")
            lines.append(self.preflight_report.get_summary())

        if self.confirmation_string:
            lines.append("")
            lines.append("=" * 60)
            lines.append("To proceed, type the following confirmation string:")
            lines.append(f"  {self.confirmation_string}")
            lines.append("=" * 60)

        return "\n".join(lines)


class SafetyManager:
    """Gates destructive operations behind typed confirmation."""

    def __init__(self, config: SafetyConfig) -> None:
        self.config = config
        self._confirmed_targets: set[str] = set()

    @property
    def confirmation_required(self) -> bool:
        return self.config.require_confirmation

    def generate_confirmation_string(self, target_identifier: str) -> str:
        """Generate a confirmation string that includes the target identifier."""
        safe_target = re.sub(r"[^a-zA-Z0-9/_-]", "", target_identifier)
        return f"DESTROY-{safe_target.upper()}"

    def verify_confirmation(self, target_identifier: str, user_input: str) -> tuple[bool, str]:
        """
        Verify operator confirmation for a destructive operation.
        Returns (verified, message).
        """
        expected = self.generate_confirmation_string(target_identifier)

        if user_input.strip() != expected:
            logger.warning(
                "Confirmation verification failed",
                expected=expected,
                received=user_input,
                target=target_identifier,
            )
            return False, f"Confirmation mismatch. Expected: {expected}"

        self._confirmed_targets.add(target_identifier)
        logger.info("Destructive operation confirmed", target=target_identifier)
        return True, "Confirmation verified"

    def is_confirmed(self, target_identifier: str) -> bool:
        """Whether the target may be modified."""
        if not self.config.require_confirmation:
            return True
        return target_identifier in self._confirmed_targets

    def create_execution_plan(
        self,
        description: str,
        target: str,
        steps: list[str],
        warnings: list[str] | None = None,
        preflight_report: PreflightReport | None = None,
        destructive: bool = True,
    ) -> ExecutionPlan:
        """Create an execution plan for operator review."""
        confirmation_string = None
        if destructive and self.config.require_confirmation:
            confirmation_string = self.generate_confirmation_string(target)

        return ExecutionPlan(
            description=description,
            target=target,
            steps=steps,
            warnings=warnings or [],
            preflight_report=preflight_report,
            confirmation_string=confirmation_string,
        )


class PreflightChecker:
    """Performs preflight checks before an install run."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, Any]] = []

    def add_check(self, name: str, check_func: Any) -> None:
        """Add a preflight check function."""
        self._checks.append((name, check_func))

    def run_checks(self, context: dict[str, Any]) -> PreflightReport:
        """Run all preflight checks and return report."""
        report = PreflightReport()

        for name, check_func in self._checks:
            try:
                result = check_func(context)
                if isinstance(result, PreflightCheck):
                    report.checks.append(result)
                elif isinstance(result, bool):
                    report.checks.append(
                        PreflightCheck(
                            name=name,
                            passed=result,
                            message="Passed" if result else "Failed",
                        )
                    )
            except Exception as e:
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity="error",
                    )
                )

        return report


def check_root_privileges(context: dict[str, Any]) -> PreflightCheck:
    """Installing requires root."""
    if context.get("is_admin", False):
        return PreflightCheck(name="Privileges", passed=True, message="Running as root")
    return PreflightCheck(
        name="Privileges",
        passed=False,
        message="This installer must be run as root",
        severity="critical",
    )


def check_required_tools(context: dict[str, Any]) -> PreflightCheck:
    """Every external tool used by the selected steps must be on PATH."""
    missing = context.get("missing_tools", [])
    if missing:
        return PreflightCheck(
            name="Required Tools",
            passed=False,
            message=f"Missing tools: {', '.join(missing)}",
            severity="error",
            details={"missing": missing},
        )
    return PreflightCheck(name="Required Tools", passed=True, message="All tools available")


def check_power_status(context: dict[str, Any]) -> PreflightCheck:
    """Check if system is on AC power (not battery)."""
    min_percent = context.get("min_battery_percent", 50)
    try:
        battery = psutil.sensors_battery()
    except Exception as e:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message=f"Could not check power status: {e}",
        )

    if battery is None:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message="No battery detected (desktop/server)",
        )

    if battery.power_plugged:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message="System is on AC power",
            details={"battery_percent": battery.percent},
        )

    return PreflightCheck(
        name="Power Status",
        passed=battery.percent > min_percent,
        message=f"System on battery ({battery.percent}%)",
        severity="warning" if battery.percent > min_percent else "error",
        details={"battery_percent": battery.percent},
    )


def check_not_system_disk(context: dict[str, Any]) -> PreflightCheck:
    """The target must not back the running system."""
    target_path = context.get("target_path", "")
    system_devices = context.get("system_devices", set())

    if target_path and target_path in system_devices:
        return PreflightCheck(
            name="System Disk",
            passed=False,
            message=f"{target_path} holds the running system",
            severity="critical",
        )
    return PreflightCheck(name="System Disk", passed=True, message="Target is not the system disk")


def create_standard_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with standard checks."""
    checker = PreflightChecker()
    checker.add_check("Privileges", check_root_privileges)
    checker.add_check("Required Tools", check_required_tools)
    checker.add_check("Power Status", check_power_status)
    checker.add_check("System Disk", check_not_system_disk)
    return checker
