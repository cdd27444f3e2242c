"""Unit tests for Orchestrator."""

import asyncio
import os
import sys
import pytest
from pathlib import Path
from unittest.mock import patch

from conftest import write_zip
from device_flasher.errors import ValidationError
from device_flasher.models.device import Device
from device_flasher.models.status import FlashStatus, LockStatus
from device_flasher.services.factory_image import FactoryImage
from device_flasher.services.orchestrator import Orchestrator, build_script_env
from device_flasher.services.provisioner import PlatformTools
from device_flasher.services.status_board import StatusBoard


def lock_reads(sequences):
    """get_lock_status side effect replaying a separate sequence per device."""
    remaining = {device_id: iter(reads) for device_id, reads in sequences.items()}

    async def get_lock_status(device_id):
        return next(remaining[device_id])

    return get_lock_status


HEALTHY = [LockStatus.LOCKED, LockStatus.UNLOCKED, LockStatus.LOCKED]


@pytest.mark.unit
class TestOrchestrator:
    """Test bulk flashing across several devices."""

    @pytest.fixture
    def tools(self, tmp_path, mock_adb, mock_fastboot):
        return PlatformTools(
            host_os="linux",
            version="latest",
            download_uri="https://dl.google.com/android/repository/platform-tools-latest-linux.zip",
            expected_sha256="0" * 64,
            archive_path=tmp_path / "tools" / "platform-tools.zip",
            path=tmp_path / "tools" / "platform-tools",
            adb=mock_adb,
            fastboot=mock_fastboot,
        )

    @pytest.fixture
    def board(self):
        return StatusBoard()

    @pytest.fixture
    def orchestrator(self, flasher_config, tools, factory_zip, tmp_path, board):
        return Orchestrator(
            config=flasher_config,
            tools=tools,
            image=FactoryImage(factory_zip, "CalyxOS", "flash-all.sh"),
            extract_root=tmp_path / "extract",
            status_board=board,
        )

    @pytest.fixture
    def devices(self, mock_fastboot):
        mock_fastboot.list_device_ids.return_value = ["R1", "R2", "R3"]
        return [Device(id=device_id, codename="sargo") for device_id in ("R1", "R2", "R3")]

    @pytest.mark.asyncio
    async def test_one_device_failure_is_isolated(
        self, orchestrator, devices, board, mock_fastboot, mock_adb, mock_flash_process
    ):
        mock_fastboot.get_lock_status.side_effect = lock_reads(
            {
                "R1": HEALTHY,
                "R2": [LockStatus.LOCKED, LockStatus.LOCKED],
                "R3": HEALTHY,
            }
        )

        with patch("asyncio.create_subprocess_exec", return_value=mock_flash_process):
            outcome = await orchestrator.flash(devices)

        assert [r.device_id for r in outcome.results] == ["R1", "R2", "R3"]
        assert [r.status for r in outcome.results] == [
            FlashStatus.REBOOTED,
            FlashStatus.FAILED,
            FlashStatus.REBOOTED,
        ]
        assert outcome.results[1].error == "unlock not confirmed"
        assert not outcome.succeeded
        assert [r.device_id for r in outcome.failed] == ["R2"]
        assert board.get_device("R2").status is FlashStatus.FAILED
        mock_adb.kill_server.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_devices_run_concurrently(
        self, orchestrator, devices, mock_adb, mock_fastboot, mock_flash_process
    ):
        arrived = []
        all_arrived = asyncio.Event()

        async def reboot_bootloader(device_id, *args):
            arrived.append(device_id)
            if len(arrived) == len(devices):
                all_arrived.set()
            # A sequential runner would never get past the first device here
            await asyncio.wait_for(all_arrived.wait(), timeout=2)
            return ""

        mock_adb.execute.side_effect = reboot_bootloader
        mock_fastboot.get_lock_status.side_effect = lock_reads(
            {device.id: HEALTHY for device in devices}
        )

        with patch("asyncio.create_subprocess_exec", return_value=mock_flash_process):
            outcome = await orchestrator.flash(devices)

        assert outcome.succeeded
        assert sorted(arrived) == ["R1", "R2", "R3"]

    @pytest.mark.asyncio
    async def test_flash_script_gets_tools_on_path(
        self, orchestrator, tools, devices, mock_fastboot, mock_flash_process
    ):
        mock_fastboot.get_lock_status.side_effect = lock_reads(
            {device.id: HEALTHY for device in devices}
        )

        with patch("asyncio.create_subprocess_exec", return_value=mock_flash_process) as mock_exec:
            await orchestrator.flash(devices)

        assert mock_exec.call_count == 3
        for call_args in mock_exec.call_args_list:
            script = Path(call_args[0][1])
            assert script.name == "flash-all.sh"
            assert script.parent.name == "sargo-2024"
            env_path = call_args[1]["env"]["PATH"]
            assert env_path.split(os.pathsep)[0] == str(tools.path)

    @pytest.mark.asyncio
    async def test_each_flash_script_targets_its_own_device(
        self, orchestrator, devices, mock_fastboot, mock_flash_process
    ):
        mock_fastboot.get_lock_status.side_effect = lock_reads(
            {device.id: HEALTHY for device in devices}
        )

        with patch("asyncio.create_subprocess_exec", return_value=mock_flash_process) as mock_exec:
            await orchestrator.flash(devices)

        serials = sorted(
            call_args[1]["env"]["ANDROID_SERIAL"] for call_args in mock_exec.call_args_list
        )
        assert serials == ["R1", "R2", "R3"]

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell")
    async def test_real_flash_scripts_see_their_serial(
        self, flasher_config, tools, devices, mock_fastboot, tmp_path, monkeypatch
    ):
        image_path = write_zip(
            tmp_path / "sargo-factory-2024.zip",
            {"sargo-2024/flash-all.sh": 'echo "serial=[$ANDROID_SERIAL]" > "$OUT_DIR/$ANDROID_SERIAL"\n'},
        )
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        monkeypatch.setenv("OUT_DIR", str(out_dir))
        mock_fastboot.get_lock_status.side_effect = lock_reads(
            {device.id: HEALTHY for device in devices}
        )
        orchestrator = Orchestrator(
            config=flasher_config,
            tools=tools,
            image=FactoryImage(image_path, "CalyxOS", "flash-all.sh"),
            extract_root=tmp_path / "extract",
        )

        outcome = await orchestrator.flash(devices)

        assert outcome.succeeded
        assert [(out_dir / d.id).read_text().strip() for d in devices] == [
            "serial=[R1]",
            "serial=[R2]",
            "serial=[R3]",
        ]

    @pytest.mark.asyncio
    async def test_codename_mismatch_stops_before_any_device_action(
        self, orchestrator, mock_adb, mock_fastboot, tmp_path
    ):
        devices = [Device(id="R1", codename="sargo"), Device(id="R2", codename="bonito")]

        with pytest.raises(ValidationError, match="bonito"):
            await orchestrator.flash(devices)

        mock_adb.execute.assert_not_called()
        mock_fastboot.execute.assert_not_called()
        mock_adb.kill_server.assert_awaited_once()
        assert not (tmp_path / "extract").exists()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(
        self, orchestrator, devices, board, mock_fastboot, mock_flash_process
    ):
        healthy = lock_reads({"R1": HEALTHY, "R3": HEALTHY})

        async def get_lock_status(device_id):
            if device_id == "R2":
                raise RuntimeError("usb transport vanished")
            return await healthy(device_id)

        mock_fastboot.get_lock_status.side_effect = get_lock_status

        with patch("asyncio.create_subprocess_exec", return_value=mock_flash_process):
            outcome = await orchestrator.flash(devices)

        failed = outcome.results[1]
        assert failed.status is FlashStatus.FAILED
        assert failed.error_code == "UNEXPECTED_ERROR"
        assert failed.error == "usb transport vanished"
        assert devices[1].flash_status is FlashStatus.FAILED
        assert board.get_device("R2").error == "UNEXPECTED_ERROR: usb transport vanished"
        assert outcome.results[0].succeeded
        assert outcome.results[2].succeeded


@pytest.mark.unit
class TestBuildScriptEnv:
    """Test the flash script environment."""

    def test_prepends_tools_directory(self):
        env = build_script_env(Path("/tmp/tools"), {"PATH": "/usr/bin", "HOME": "/root"})

        assert env["PATH"] == f"/tmp/tools{os.pathsep}/usr/bin"
        assert env["HOME"] == "/root"

    def test_empty_path(self):
        env = build_script_env(Path("/tmp/tools"), {})

        assert env["PATH"] == "/tmp/tools"

    def test_does_not_modify_process_environment(self):
        before = os.environ.get("PATH")

        build_script_env(Path("/tmp/tools"))

        assert os.environ.get("PATH") == before
