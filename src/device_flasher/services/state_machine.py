"""Per-device unlock → flash → lock state machine.

Transitions for one device (any failure ends in ``failed``):

    discovered ──adb reboot bootloader (best-effort)──▶ bootloaderEntered
    bootloaderEntered ──already unlocked──▶ unlocked
    bootloaderEntered ──flashing unlock, confirm read──▶ unlocking ▶ unlocked
    unlocked ──flash script exit 0──▶ flashing ▶ flashed
    flashed ──flashing lock, confirm read──▶ locking ▶ locked
    locked ──fastboot reboot──▶ rebooted

Neither the unlock nor the lock step is considered done until an
independent ``getvar unlocked`` read reports the target state.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from device_flasher.config import FlasherConfig
from device_flasher.errors import (
    FlasherError,
    FlashScriptFailedError,
    LockNotConfirmedError,
    ToolError,
    UnlockNotConfirmedError,
)
from device_flasher.models.device import Device, FlashResult
from device_flasher.models.status import FlashStatus, LockStatus
from device_flasher.services.factory_image import FactoryImage
from device_flasher.services.status_board import StatusBoard
from device_flasher.services.tools import AdbDriver, FastbootDriver


class FlashContext(BaseModel):
    """Read-only inputs shared by every device's state machine in a run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    config: FlasherConfig
    adb: AdbDriver
    fastboot: FastbootDriver
    image: FactoryImage
    script_env: Dict[str, str]
    status_board: Optional[StatusBoard] = None


class DeviceFlashStateMachine:
    """Drives a single device from discovery to a terminal status."""

    def __init__(self, device: Device, context: FlashContext):
        """Initialize state machine.

        Args:
            device: Device record, owned exclusively by this machine
            context: Shared drivers, extracted image and configuration
        """
        self.logger = logging.getLogger("device_flasher.state_machine")
        self.device = device
        self.context = context
        self.config = context.config

    async def run(self) -> FlashResult:
        """Run every step in order, stopping at the first failure.

        Returns:
            FlashResult with status ``rebooted`` or ``failed``
        """
        self._publish(f"Discovered {self.device.codename}")
        try:
            await self._enter_bootloader()
            await self._unlock()
            await self._flash()
            await self._lock()
            await self._reboot()
        except FlasherError as e:
            self.logger.error(f"[{self.device.id}] {e.describe()}")
            self.device.advance(FlashStatus.FAILED)
            self._publish(f"Failed: {e.message}", error=e.describe())
            return FlashResult(
                device_id=self.device.id,
                codename=self.device.codename,
                status=FlashStatus.FAILED,
                error_code=e.code,
                error=e.message,
            )

        self.logger.info(f"[{self.device.id}] Flashing complete")
        return FlashResult(
            device_id=self.device.id,
            codename=self.device.codename,
            status=self.device.flash_status,
        )

    def _transition(self, status: FlashStatus, message: str) -> None:
        self.device.advance(status)
        self.logger.info(f"[{self.device.id}] {status.value}: {message}")
        self._publish(message)

    def _publish(self, message: str, error: Optional[str] = None) -> None:
        if self.context.status_board is not None:
            self.context.status_board.update(self.device, message, error=error)

    async def _enter_bootloader(self) -> None:
        try:
            await self.context.adb.execute(self.device.id, "reboot", "bootloader")
        except ToolError as e:
            # Devices discovered through fastboot are already in the bootloader
            self.logger.warning(f"[{self.device.id}] adb reboot bootloader failed: {e}")

        await self._wait_for_bootloader()
        self._transition(FlashStatus.BOOTLOADER_ENTERED, "Device in bootloader")

    async def _wait_for_bootloader(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.bootloader_timeout
        while True:
            try:
                if self.device.id in await self.context.fastboot.list_device_ids():
                    return
            except ToolError as e:
                self.logger.debug(f"[{self.device.id}] fastboot devices failed: {e}")
            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(
                    f"[{self.device.id}] not listed by fastboot after "
                    f"{self.config.bootloader_timeout}s, continuing"
                )
                return
            await asyncio.sleep(min(self.config.poll_interval, remaining))

    async def _unlock(self) -> None:
        lock_status = await self._read_lock_status()
        if lock_status is LockStatus.UNLOCKED:
            self._transition(FlashStatus.UNLOCKED, "Bootloader already unlocked")
            return

        self._transition(
            FlashStatus.UNLOCKING,
            "Unlocking bootloader, use the volume and power keys on the device to confirm",
        )
        await self.context.fastboot.execute(self.device.id, "flashing", "unlock")
        if not await self._confirm_lock_status(LockStatus.UNLOCKED):
            raise UnlockNotConfirmedError()
        self._transition(FlashStatus.UNLOCKED, "Bootloader unlocked")

    async def _flash(self) -> None:
        image = self.context.image
        self._transition(
            FlashStatus.FLASHING, f"Flashing {image.name} with {image.flash_script}"
        )

        # Bare fastboot calls inside the script target this device only
        env = {**self.context.script_env, "ANDROID_SERIAL": self.device.id}

        try:
            process = await asyncio.create_subprocess_exec(
                *self._script_command(),
                cwd=str(image.extract_directory),
                env=env,
            )
            returncode = await process.wait()
        except OSError as e:
            raise FlashScriptFailedError(f"flash script could not be started: {e}")

        if returncode != 0:
            raise FlashScriptFailedError(
                f"flash script exited non-zero (exit code {returncode})"
            )
        self._transition(FlashStatus.FLASHED, f"{image.name} flashed")

    def _script_command(self) -> List[str]:
        script = str(self.context.image.script_path)
        if self.config.host_os == "windows":
            return [script]
        # Archives do not always carry the executable bit
        return ["sh", script]

    async def _lock(self) -> None:
        self._transition(
            FlashStatus.LOCKING,
            "Locking bootloader, use the volume and power keys on the device to confirm",
        )
        await self.context.fastboot.execute(self.device.id, "flashing", "lock")
        if not await self._confirm_lock_status(LockStatus.LOCKED):
            raise LockNotConfirmedError()
        self._transition(FlashStatus.LOCKED, "Bootloader locked")

    async def _reboot(self) -> None:
        await self.context.fastboot.execute(self.device.id, "reboot")
        self._transition(FlashStatus.REBOOTED, "Rebooted")

    async def _read_lock_status(self) -> LockStatus:
        lock_status = await self.context.fastboot.get_lock_status(self.device.id)
        self.device.lock_status = lock_status
        return lock_status

    async def _confirm_lock_status(self, target: LockStatus) -> bool:
        """Settle, then re-read the lock state until it matches or time runs out.

        At least one read always happens after the settle pause.
        """
        await asyncio.sleep(self.config.settle_interval)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.verification_timeout
        while True:
            lock_status = await self._read_lock_status()
            if lock_status is target:
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(
                    f"[{self.device.id}] lock state is {lock_status.value}, "
                    f"expected {target.value}"
                )
                return False
            await asyncio.sleep(min(self.config.poll_interval, remaining))
