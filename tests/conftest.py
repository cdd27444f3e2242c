"""Global pytest fixtures and configuration."""

import sys
import zipfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from device_flasher.config import FlasherConfig  # noqa: E402
from device_flasher.services.tools import AdbDriver, FastbootDriver  # noqa: E402


def write_zip(path: Path, entries: dict) -> Path:
    """Write a ZIP archive from {name: content} (content may be str or bytes)."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return path


@pytest.fixture
def factory_zip(tmp_path):
    """Minimal factory image for device codename 'sargo'."""
    return write_zip(
        tmp_path / "sargo-factory-2024.zip",
        {
            "sargo-2024/flash-all.sh": "#!/bin/sh\nexit 0\n",
            "sargo-2024/image-sargo-2024.zip": b"image",
        },
    )


@pytest.fixture
def flasher_config(tmp_path):
    """Fast-settling Linux config; lock checks read once after a zero settle."""
    return FlasherConfig(
        image_path=tmp_path / "sargo-factory-2024.zip",
        host_os="linux",
        settle_interval=0,
        poll_interval=0.01,
        verification_timeout=0,
        bootloader_timeout=0,
    )


@pytest.fixture
def mock_adb():
    """adb driver with no devices attached."""
    adb = MagicMock(spec=AdbDriver)
    adb.list_device_ids = AsyncMock(return_value=[])
    adb.query_property = AsyncMock(return_value="")
    adb.execute = AsyncMock(return_value="")
    adb.kill_server = AsyncMock()
    return adb


@pytest.fixture
def mock_fastboot():
    """fastboot driver with no devices attached."""
    fastboot = MagicMock(spec=FastbootDriver)
    fastboot.list_device_ids = AsyncMock(return_value=[])
    fastboot.query_variable = AsyncMock(return_value="")
    fastboot.execute = AsyncMock(return_value="")
    fastboot.get_lock_status = AsyncMock()
    return fastboot


@pytest.fixture
def mock_flash_process():
    """Flash script process that exits 0."""
    process = AsyncMock()
    process.wait = AsyncMock(return_value=0)
    return process
