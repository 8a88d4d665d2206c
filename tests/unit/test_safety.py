"""
Tests for archforge.core.safety module.
"""

from types import SimpleNamespace
from unittest.mock import patch

from archforge.core.config import SafetyConfig
from archforge.core.safety import (
    ExecutionPlan,
    PreflightCheck,
    PreflightChecker,
    PreflightReport,
    SafetyManager,
    check_not_system_disk,
    check_power_status,
    check_required_tools,
    check_root_privileges,
    create_standard_preflight_checker,
)


class TestPreflightReport:
    """Tests for PreflightReport."""

    def test_clean_report(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=True, message="OK"),
            ]
        )
        assert report.failures == []
        assert report.has_errors is False

    def test_has_errors(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=False, message="Error", severity="critical"),
            ]
        )
        assert report.has_errors is True
        assert [c.name for c in report.failures] == ["Check 2"]

    def test_warning_is_not_an_error(self) -> None:
        report = PreflightReport(
            checks=[PreflightCheck(name="Battery", passed=False, message="Low", severity="warning")]
        )
        assert report.has_errors is False
        assert [c.name for c in report.failures] == ["Battery"]

    def test_summary(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Tools", passed=False, message="Missing", details={"missing": ["parted"]}),
            ]
        )
        summary = report.get_summary()
        assert "0/1 checks passed" in summary
        assert "[✗] Tools: Missing" in summary
        assert "missing: ['parted']" in summary


class TestSafetyManager:
    """Tests for SafetyManager."""

    def test_confirmation_string(self) -> None:
        manager = SafetyManager(SafetyConfig())
        assert manager.generate_confirmation_string("/dev/sdb") == "DESTROY-/DEV/SDB"

    def test_confirmation_string_strips_unsafe_characters(self) -> None:
        manager = SafetyManager(SafetyConfig())
        assert manager.generate_confirmation_string("/dev/sd b;") == "DESTROY-/DEV/SDB"

    def test_verify_confirmation(self) -> None:
        manager = SafetyManager(SafetyConfig())

        ok, message = manager.verify_confirmation("/dev/sdb", "  DESTROY-/DEV/SDB ")

        assert ok is True
        assert message == "Confirmation verified"
        assert manager.is_confirmed("/dev/sdb") is True

    def test_verify_confirmation_mismatch(self) -> None:
        manager = SafetyManager(SafetyConfig())

        ok, message = manager.verify_confirmation("/dev/sdb", "yes")

        assert ok is False
        assert "DESTROY-/DEV/SDB" in message
        assert manager.is_confirmed("/dev/sdb") is False

    def test_confirmation_is_per_target(self) -> None:
        manager = SafetyManager(SafetyConfig())
        manager.verify_confirmation("/dev/sdb", "DESTROY-/DEV/SDB")
        assert manager.is_confirmed("/dev/sdc") is False

    def test_confirmation_disabled(self) -> None:
        manager = SafetyManager(SafetyConfig(require_confirmation=False))
        assert manager.confirmation_required is False
        assert manager.is_confirmed("/dev/sdb") is True

    def test_execution_plan_includes_confirmation(self) -> None:
        manager = SafetyManager(SafetyConfig())
        plan = manager.create_execution_plan(
            description="Install Arch Linux",
            target="/dev/sdb",
            steps=["Wipe", "Partition"],
            warnings=["All data on /dev/sdb will be destroyed"],
        )

        assert isinstance(plan, ExecutionPlan)
        assert plan.confirmation_string == "DESTROY-/DEV/SDB"
        text = plan.get_plan_text()
        assert "TARGET: /dev/sdb" in text
        assert "   2. Partition" in text
        assert "All data on /dev/sdb will be destroyed" in text
        assert "DESTROY-/DEV/SDB" in text

    def test_non_destructive_plan_has_no_confirmation(self) -> None:
        manager = SafetyManager(SafetyConfig())
        plan = manager.create_execution_plan("Inspect", "/dev/sdb", ["List"], destructive=False)
        assert plan.confirmation_string is None


class TestPreflightChecks:
    """Tests for the standard preflight checks."""

    def test_root_privileges(self) -> None:
        assert check_root_privileges({"is_admin": True}).passed is True
        failed = check_root_privileges({})
        assert failed.passed is False
        assert failed.severity == "critical"

    def test_required_tools(self) -> None:
        assert check_required_tools({"missing_tools": []}).passed is True
        failed = check_required_tools({"missing_tools": ["pacstrap", "genfstab"]})
        assert failed.passed is False
        assert failed.message == "Missing tools: pacstrap, genfstab"

    def test_system_disk(self) -> None:
        context = {"target_path": "/dev/sda", "system_devices": {"/dev/sda", "/dev/sda2"}}
        failed = check_not_system_disk(context)
        assert failed.passed is False
        assert failed.severity == "critical"

        context["target_path"] = "/dev/sdb"
        assert check_not_system_disk(context).passed is True

    def test_power_no_battery(self) -> None:
        with patch("archforge.core.safety.psutil.sensors_battery", return_value=None):
            assert check_power_status({}).passed is True

    def test_power_on_ac(self) -> None:
        battery = SimpleNamespace(percent=10, power_plugged=True)
        with patch("archforge.core.safety.psutil.sensors_battery", return_value=battery):
            assert check_power_status({"min_battery_percent": 50}).passed is True

    def test_power_low_battery(self) -> None:
        battery = SimpleNamespace(percent=20, power_plugged=False)
        with patch("archforge.core.safety.psutil.sensors_battery", return_value=battery):
            check = check_power_status({"min_battery_percent": 50})
        assert check.passed is False
        assert check.severity == "error"

    def test_power_sensor_error(self) -> None:
        with patch("archforge.core.safety.psutil.sensors_battery", side_effect=RuntimeError("no sysfs")):
            assert check_power_status({}).passed is True


class TestPreflightChecker:
    """Tests for PreflightChecker."""

    def test_boolean_and_raising_checks(self) -> None:
        checker = PreflightChecker()
        checker.add_check("Always", lambda ctx: True)

        def explode(ctx: dict) -> bool:
            raise OSError("sensor unavailable")

        checker.add_check("Explodes", explode)
        report = checker.run_checks({})

        assert report.checks[0].passed is True
        assert report.checks[1].passed is False
        assert report.checks[1].severity == "error"
        assert "sensor unavailable" in report.checks[1].message

    def test_standard_checker(self) -> None:
        checker = create_standard_preflight_checker()
        with patch("archforge.core.safety.psutil.sensors_battery", return_value=None):
            report = checker.run_checks(
                {
                    "is_admin": True,
                    "missing_tools": [],
                    "target_path": "/dev/sdb",
                    "system_devices": {"/dev/sda"},
                }
            )
        assert [c.name for c in report.checks] == ["Privileges", "Required Tools", "Power Status", "System Disk"]
        assert report.failures == []
