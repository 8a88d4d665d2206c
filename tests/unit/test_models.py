"""
Tests for archforge.core.models module.
"""

import pytest

from archforge.core.models import (
    BlockDevice,
    BootMode,
    CleanupAttemptResult,
    CleanupResult,
    FileSystem,
    HardwareProfile,
    HardwareVendor,
    MountEntry,
    PartitionFlag,
    PartitionPlan,
    PartitionRole,
    PartitionSpec,
    PartitionTableType,
    SwapSpec,
    TargetDevice,
    uses_partition_separator,
)


class TestFileSystem:
    """Tests for FileSystem enum."""

    def test_from_string_exact(self) -> None:
        assert FileSystem.from_string("ext4") == FileSystem.EXT4
        assert FileSystem.from_string("vfat") == FileSystem.FAT32

    def test_from_string_aliases(self) -> None:
        assert FileSystem.from_string("FAT32") == FileSystem.FAT32
        assert FileSystem.from_string("fat") == FileSystem.FAT32
        assert FileSystem.from_string("") == FileSystem.NONE

    def test_from_string_unknown(self) -> None:
        assert FileSystem.from_string("zfs") == FileSystem.UNKNOWN

    def test_parted_type(self) -> None:
        assert FileSystem.FAT32.parted_type == "fat32"
        assert FileSystem.EXT4.parted_type == "ext4"
        assert FileSystem.NONE.parted_type is None


class TestTargetDevice:
    """Tests for partition naming."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/dev/sdb", ["/dev/sdb1", "/dev/sdb2"]),
            ("/dev/vda", ["/dev/vda1", "/dev/vda2"]),
            ("/dev/nvme0n1", ["/dev/nvme0n1p1", "/dev/nvme0n1p2"]),
            ("/dev/mmcblk0", ["/dev/mmcblk0p1", "/dev/mmcblk0p2"]),
            ("/dev/loop0", ["/dev/loop0p1", "/dev/loop0p2"]),
        ],
    )
    def test_partition_path(self, path: str, expected: list[str]) -> None:
        device = TargetDevice(path=path)
        assert [device.partition_path(1), device.partition_path(2)] == expected

    def test_partition_numbers_start_at_one(self) -> None:
        with pytest.raises(ValueError):
            TargetDevice(path="/dev/sdb").partition_path(0)

    def test_is_nvme(self) -> None:
        assert TargetDevice(path="/dev/nvme0n1").is_nvme is True
        assert TargetDevice(path="/dev/sda").is_nvme is False

    def test_separator_rule(self) -> None:
        assert uses_partition_separator("nvme0n1") is True
        assert uses_partition_separator("sda") is False
        assert uses_partition_separator("") is False


class TestBlockDevice:
    """Tests for BlockDevice."""

    def test_is_disk(self) -> None:
        disk = BlockDevice(
            path="/dev/sdb",
            device_type="disk",
            children=[BlockDevice(path="/dev/sdb1", device_type="part")],
        )
        assert disk.is_disk is True
        assert disk.children[0].is_disk is False


def _plan(partitions: list[PartitionSpec]) -> PartitionPlan:
    return PartitionPlan(
        device=TargetDevice(path="/dev/sdb"),
        boot_mode=BootMode.UEFI,
        table_type=PartitionTableType.GPT,
        partitions=partitions,
    )


class TestPartitionPlan:
    """Tests for PartitionPlan validation and lookups."""

    def test_valid_plan(self) -> None:
        plan = _plan(
            [
                PartitionSpec(1, PartitionRole.ESP, FileSystem.FAT32, 1, 2049, [PartitionFlag.ESP]),
                PartitionSpec(2, PartitionRole.ROOT, FileSystem.EXT4, 2049, None),
            ]
        )
        assert plan.validate() == []
        assert plan.device_for(PartitionRole.ROOT) == "/dev/sdb2"
        assert plan.by_role(PartitionRole.BOOT) is None
        assert plan.device_for(PartitionRole.BOOT) is None

    def test_empty_plan(self) -> None:
        assert plan_errors([]) == ["Plan has no partitions"]

    def test_gap_between_partitions(self) -> None:
        errors = plan_errors(
            [
                PartitionSpec(1, PartitionRole.ESP, FileSystem.FAT32, 1, 2049),
                PartitionSpec(2, PartitionRole.ROOT, FileSystem.EXT4, 3000, None),
            ]
        )
        assert any("starts at 3000MiB" in e for e in errors)

    def test_open_ended_partition_must_be_last(self) -> None:
        errors = plan_errors(
            [
                PartitionSpec(1, PartitionRole.ROOT, FileSystem.EXT4, 1, None),
                PartitionSpec(2, PartitionRole.ESP, FileSystem.FAT32, 1, 2049),
            ]
        )
        assert any("Only the final partition" in e for e in errors)
        assert "Final partition must consume the remaining space" in errors

    def test_out_of_order_numbers(self) -> None:
        errors = plan_errors(
            [
                PartitionSpec(2, PartitionRole.ESP, FileSystem.FAT32, 1, 2049),
                PartitionSpec(1, PartitionRole.ROOT, FileSystem.EXT4, 2049, None),
            ]
        )
        assert any("out of order" in e for e in errors)

    def test_formatted_skips_unformatted(self) -> None:
        plan = _plan(
            [
                PartitionSpec(1, PartitionRole.BIOS_BOOT, FileSystem.NONE, 1, 3),
                PartitionSpec(2, PartitionRole.ROOT, FileSystem.EXT4, 3, None),
            ]
        )
        assert [p.number for p in plan.formatted] == [2]

    def test_to_dict_includes_device_paths(self) -> None:
        plan = _plan(
            [
                PartitionSpec(1, PartitionRole.ESP, FileSystem.FAT32, 1, 2049, [PartitionFlag.ESP]),
                PartitionSpec(2, PartitionRole.ROOT, FileSystem.EXT4, 2049, None),
            ]
        )
        data = plan.to_dict()
        assert data["partitions"][0]["device_path"] == "/dev/sdb1"
        assert data["partitions"][0]["flags"] == ["esp"]
        assert data["partitions"][1]["end"] == "100%"


def plan_errors(partitions: list[PartitionSpec]) -> list[str]:
    return _plan(partitions).validate()


class TestMountEntry:
    """Tests for MountEntry."""

    def test_depth(self) -> None:
        assert MountEntry("/dev/sdb2", "/").depth == 0
        assert MountEntry("/dev/sdb2", "/mnt").depth == 1
        assert MountEntry("/dev/sdb1", "/mnt/boot/efi").depth == 3


class TestCleanupResult:
    """Tests for CleanupResult aggregation."""

    def test_success_is_last_attempt(self) -> None:
        result = CleanupResult(
            device_path="/dev/sdb",
            attempts=[
                CleanupAttemptResult(attempt=1, remaining_holders=[42]),
                CleanupAttemptResult(attempt=2, success=True),
            ],
        )
        assert result.success is True
        assert result.attempt_count == 2
        assert result.remaining_holders == []

    def test_no_attempts_is_failure(self) -> None:
        result = CleanupResult(device_path="/dev/sdb")
        assert result.success is False
        assert result.remaining_mounts == []


class TestSwapSpec:
    """Tests for SwapSpec resume parameters."""

    def test_ready(self) -> None:
        spec = SwapSpec(ram_bytes=1, size_bytes=1, path="/swapfile", host_path="/mnt/swapfile", offset=34816, uuid="abc")
        assert spec.hibernation_ready is True
        assert spec.resume_parameters() == ["resume=UUID=abc", "resume_offset=34816"]

    @pytest.mark.parametrize("offset,uuid", [(None, "abc"), (0, "abc"), (34816, None), (34816, "")])
    def test_not_ready(self, offset: int | None, uuid: str | None) -> None:
        spec = SwapSpec(ram_bytes=1, size_bytes=1, path="/swapfile", host_path="/mnt/swapfile", offset=offset, uuid=uuid)
        assert spec.hibernation_ready is False
        assert spec.resume_parameters() == []


class TestHardwareProfile:
    """Tests for HardwareProfile."""

    def test_unknown_components(self) -> None:
        profile = HardwareProfile(
            cpu=HardwareVendor.UNKNOWN,
            gpus=[HardwareVendor.NVIDIA, HardwareVendor.UNKNOWN],
            cpu_description="HygonGenuine",
            gpu_descriptions=["NVIDIA GA104", "Matrox G200eW"],
        )
        assert profile.unknown_components == ["CPU (HygonGenuine)", "GPU (Matrox G200eW)"]
        assert profile.to_dict()["gpus"] == ["nvidia", "unknown"]
