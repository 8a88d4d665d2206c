"""
Tests for archforge.install.swap module.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest
from conftest import GIB, failed, ok

from archforge.core.config import SwapConfig
from archforge.core.errors import SwapError
from archforge.install.swap import SwapProvisioner, compute_swap_size, host_swap_path


class TestComputeSwapSize:
    """Tests for the swap sizing rule."""

    def test_eight_gib(self) -> None:
        assert compute_swap_size(8 * GIB) == 9878424780

    def test_rounds_down(self) -> None:
        assert compute_swap_size(3) == 3
        assert compute_swap_size(100) == 115

    def test_zero_ram(self) -> None:
        assert compute_swap_size(0) == 0

    def test_custom_ratio(self) -> None:
        assert compute_swap_size(4 * GIB, ratio_percent=100) == 4 * GIB

    def test_negative_ram(self) -> None:
        with pytest.raises(ValueError):
            compute_swap_size(-1)

    def test_non_positive_ratio(self) -> None:
        with pytest.raises(ValueError):
            compute_swap_size(GIB, ratio_percent=0)


class TestHostSwapPath:
    """Tests for host_swap_path."""

    def test_joins_under_target(self) -> None:
        assert host_swap_path("/mnt", "/swapfile") == Path("/mnt/swapfile")
        assert host_swap_path(Path("/mnt"), "/var/swap/file") == Path("/mnt/var/swap/file")


class TestSwapProvisioner:
    """Tests for SwapProvisioner."""

    def test_plan(self, mock_platform_backend: Mock) -> None:
        spec = SwapProvisioner(mock_platform_backend).plan("/mnt")

        assert spec.ram_bytes == 2 * GIB
        assert spec.size_bytes == compute_swap_size(2 * GIB)
        assert spec.host_path == "/mnt/swapfile"
        assert spec.offset is None

    def test_provision(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        spec = SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")

        host_path = str(temp_dir / "swapfile")
        mock_platform_backend.allocate_file.assert_called_once_with(host_path, spec.size_bytes)
        mock_platform_backend.restrict_permissions.assert_called_once_with(host_path, 0o600)
        mock_platform_backend.make_swap.assert_called_once_with(host_path)
        mock_platform_backend.swapon.assert_called_once_with(host_path)
        mock_platform_backend.filesystem_uuid.assert_called_once_with("/dev/sdb2")
        assert spec.offset == 34816
        assert spec.uuid == "0a1b2c3d-1111-2222-3333-444455556666"
        assert spec.hibernation_ready is True

    def test_hibernation_disabled(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        spec = SwapProvisioner(mock_platform_backend, SwapConfig(hibernation=False)).provision(temp_dir, "/dev/sdb2")

        mock_platform_backend.first_extent_offset.assert_not_called()
        assert spec.hibernation_ready is False

    def test_missing_offset(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        mock_platform_backend.first_extent_offset.return_value = None

        spec = SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")

        assert spec.offset is None
        assert spec.hibernation_ready is False
        assert spec.resume_parameters() == []

    def test_allocation_failure(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        mock_platform_backend.allocate_file.side_effect = None
        mock_platform_backend.allocate_file.return_value = failed("No space left on device")

        with pytest.raises(SwapError, match="No space left"):
            SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")
        mock_platform_backend.make_swap.assert_not_called()

    def test_size_mismatch(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        def short_allocation(path: str, size_bytes: int) -> object:
            with open(path, "wb") as f:
                f.truncate(size_bytes // 2)
            return ok()

        mock_platform_backend.allocate_file.side_effect = short_allocation

        with pytest.raises(SwapError, match="size mismatch"):
            SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")
        mock_platform_backend.make_swap.assert_not_called()

    def test_missing_file(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        mock_platform_backend.allocate_file.side_effect = None
        mock_platform_backend.allocate_file.return_value = ok()

        with pytest.raises(SwapError, match="Cannot stat"):
            SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")

    def test_permission_failure(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        mock_platform_backend.restrict_permissions.return_value = failed("Operation not permitted")

        with pytest.raises(SwapError, match="Restricting permissions"):
            SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")
        mock_platform_backend.make_swap.assert_not_called()

    def test_swapon_failure(self, mock_platform_backend: Mock, temp_dir: Path) -> None:
        mock_platform_backend.swapon.return_value = failed("Invalid argument")

        with pytest.raises(SwapError, match="swapon"):
            SwapProvisioner(mock_platform_backend).provision(temp_dir, "/dev/sdb2")
