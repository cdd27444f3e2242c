"""Concurrent flashing of every discovered device."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from device_flasher.config import FlasherConfig
from device_flasher.models.device import Device, FlashResult, RunOutcome
from device_flasher.models.status import FlashStatus
from device_flasher.services.factory_image import FactoryImage
from device_flasher.services.provisioner import PlatformTools
from device_flasher.services.state_machine import DeviceFlashStateMachine, FlashContext
from device_flasher.services.status_board import StatusBoard


def build_script_env(tools_path: Path, base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Environment for the flash script with the tool directory first on PATH."""
    env = dict(os.environ if base_env is None else base_env)
    current = env.get("PATH", "")
    env["PATH"] = f"{tools_path}{os.pathsep}{current}" if current else str(tools_path)
    return env


class Orchestrator:
    """Runs one state machine per device and joins them all."""

    def __init__(
        self,
        config: FlasherConfig,
        tools: PlatformTools,
        image: FactoryImage,
        extract_root: Path,
        status_board: Optional[StatusBoard] = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Run configuration
            tools: Provisioned adb/fastboot drivers
            image: Factory image shared by every device
            extract_root: Scratch directory for the extracted image
            status_board: Optional progress sink for the status API
        """
        self.logger = logging.getLogger("device_flasher.orchestrator")
        self.config = config
        self.tools = tools
        self.image = image
        self.extract_root = Path(extract_root)
        self.status_board = status_board

    async def flash(self, devices: List[Device]) -> RunOutcome:
        """Validate and extract the image once, then flash all devices concurrently.

        Returns:
            RunOutcome with one result per device, in input order

        Raises:
            ValidationError: If the image does not match a device's codename
            ExtractError: If the image cannot be extracted
            ScriptNotFoundError: If the image has no flash script
        """
        try:
            self.logger.info("Running pre-extract validation")
            for device in devices:
                self.image.validate(device.codename)

            self.image.extract(self.extract_root)

            script_env = build_script_env(self.tools.path)
            self.logger.debug(f"Flash script PATH={script_env['PATH']}")

            context = FlashContext(
                config=self.config,
                adb=self.tools.adb,
                fastboot=self.tools.fastboot,
                image=self.image,
                script_env=script_env,
                status_board=self.status_board,
            )
            machines = [DeviceFlashStateMachine(device, context) for device in devices]

            self.logger.info(f"Flashing {len(machines)} devices")
            raw_results = await asyncio.gather(
                *(machine.run() for machine in machines), return_exceptions=True
            )
        finally:
            await self.tools.adb.kill_server()

        results = [
            self._as_result(device, raw) for device, raw in zip(devices, raw_results)
        ]
        outcome = RunOutcome(results=results)

        for result in outcome.results:
            if result.succeeded:
                self.logger.info(f"[{result.device_id}] {result.status.value}")
            else:
                self.logger.error(
                    f"[{result.device_id}] {result.status.value}: {result.error}"
                )
        self.logger.info(
            f"Bulk flashing complete: {len(results) - len(outcome.failed)}/{len(results)} succeeded"
        )
        return outcome

    def _as_result(self, device: Device, raw) -> FlashResult:
        if isinstance(raw, FlashResult):
            return raw

        # Anything other than a FlasherError escaped the state machine
        self.logger.error(f"[{device.id}] Unexpected error: {raw!r}", exc_info=raw)
        if not device.flash_status.is_terminal:
            device.advance(FlashStatus.FAILED)
        if self.status_board is not None:
            self.status_board.update(
                device, "Failed: unexpected error", error=f"UNEXPECTED_ERROR: {raw}"
            )
        return FlashResult(
            device_id=device.id,
            codename=device.codename,
            status=FlashStatus.FAILED,
            error_code="UNEXPECTED_ERROR",
            error=str(raw) or type(raw).__name__,
        )
