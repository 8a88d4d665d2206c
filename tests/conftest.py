"""
Pytest configuration and fixtures for ArchForge tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import Mock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

GIB = 1024**3


def ok(stdout: str = "") -> "CommandResult":
    """A successful CommandResult."""
    from archforge.platform.base import CommandResult

    return CommandResult(returncode=0, stdout=stdout, stderr="", command=["mock"])


def failed(stderr: str = "boom", returncode: int = 1) -> "CommandResult":
    """A failed CommandResult."""
    from archforge.platform.base import CommandResult

    return CommandResult(returncode=returncode, stdout="", stderr=stderr, command=["mock"])


def _allocate_sparse(path: str, size_bytes: int) -> "CommandResult":
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size_bytes)
    return ok()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_platform_backend() -> Mock:
    """Create a mock backend describing a healthy 256 GiB /dev/sdb on a UEFI host."""
    from archforge.core.models import BlockDevice

    backend = Mock()
    backend.name = "mock"
    backend.is_admin.return_value = True
    backend.missing_tools.return_value = []

    backend.validate_device_path.return_value = (True, "Valid device path")
    backend.get_block_device.return_value = BlockDevice(
        path="/dev/sdb",
        device_type="disk",
        size_bytes=256 * GIB,
        model="Test Disk",
    )
    backend.list_block_devices.return_value = [backend.get_block_device.return_value]
    backend.get_system_devices.return_value = {"/dev/sda", "/dev/sda2"}
    backend.device_nodes.return_value = ["/dev/sdb", "/dev/sdb1", "/dev/sdb2"]
    backend.is_uefi.return_value = True
    backend.total_memory_bytes.return_value = 2 * GIB

    backend.get_mounts.return_value = []
    backend.get_active_swaps.return_value = []
    backend.find_holders.return_value = set()
    backend.signal_processes.return_value = ([], [])
    backend.unmount.return_value = ok()
    backend.swapoff.return_value = ok()
    backend.probe_filesystem.return_value = None
    backend.has_lvm_tools.return_value = False
    backend.physical_volumes_on.return_value = {}

    backend.wipe_signatures.return_value = ok()
    backend.zap_partition_table.return_value = ok()
    backend.parted.return_value = ok()
    backend.make_filesystem.return_value = ok()
    backend.mount.return_value = ok()

    backend.allocate_file.side_effect = _allocate_sparse
    backend.restrict_permissions.return_value = ok()
    backend.make_swap.return_value = ok()
    backend.swapon.return_value = ok()
    backend.first_extent_offset.return_value = 34816
    backend.filesystem_uuid.return_value = "0a1b2c3d-1111-2222-3333-444455556666"

    backend.pacstrap.return_value = ok()
    backend.genfstab.return_value = ok("UUID=0a1b2c3d / ext4 rw,relatime 0 1\n")
    backend.chroot.return_value = ok()

    backend.read_cpu_vendor.return_value = "GenuineIntel"
    backend.list_display_controllers.return_value = ["Intel Corporation UHD Graphics 620"]

    return backend


@pytest.fixture
def sample_config(temp_dir: Path) -> "ArchForgeConfig":
    """Create a sample configuration for testing."""
    from archforge.core.config import ArchForgeConfig

    config = ArchForgeConfig(
        session_directory=temp_dir / "sessions",
        target_root=temp_dir / "mnt",
    )
    config.logging.log_directory = temp_dir / "logs"
    config.logging.file_enabled = False
    config.cleanup.retry_delay_seconds = 0
    config.cleanup.kill_delay_seconds = 0
    config.ensure_directories()
    return config


@pytest.fixture
def session(sample_config: "ArchForgeConfig", mock_platform_backend: Mock) -> Generator["Session", None, None]:
    """A real session wired to the mock backend."""
    from archforge.core.session import Session

    session = Session(config=sample_config, session_id="test-session-id", backend=mock_platform_backend)
    yield session
    session.close()


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
