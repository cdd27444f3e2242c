"""Discovery of attached devices in runtime or bootloader mode."""

import logging
from typing import List

from device_flasher.config import ADB_CODENAME_PROPERTY, FASTBOOT_CODENAME_VARIABLE
from device_flasher.errors import CodenameUnresolvedError, NoDeviceError
from device_flasher.models.device import Device
from device_flasher.services.tools import AdbDriver, FastbootDriver


class DeviceDiscovery:
    """Enumerates devices through adb first, then fastboot."""

    def __init__(self, adb: AdbDriver, fastboot: FastbootDriver):
        self.logger = logging.getLogger("device_flasher.discovery")
        self.adb = adb
        self.fastboot = fastboot

    async def discover(self) -> List[Device]:
        """Find attached devices and resolve their codenames.

        Returns:
            Devices in the order the tool listed them

        Raises:
            ToolError: If a listing invocation fails
            NoDeviceError: If neither tool reports a device
            CodenameUnresolvedError: If any device's codename cannot be read
        """
        device_ids = await self.adb.list_device_ids()
        if not device_ids:
            self.logger.info("No devices in adb, checking fastboot")
            device_ids = await self.fastboot.list_device_ids()
        if not device_ids:
            raise NoDeviceError("no devices detected with adb or fastboot")

        self.logger.info(f"Detected {len(device_ids)} devices: {', '.join(device_ids)}")

        devices = []
        for device_id in device_ids:
            codename = await self.resolve_codename(device_id)
            devices.append(Device(id=device_id, codename=codename))
            self.logger.info(f"[{device_id}] codename={codename}")
        return devices

    async def resolve_codename(self, device_id: str) -> str:
        """Runtime property first, bootloader variable only if that is empty."""
        codename = await self.adb.query_property(device_id, ADB_CODENAME_PROPERTY)
        if not codename:
            codename = await self.fastboot.query_variable(
                device_id, FASTBOOT_CODENAME_VARIABLE
            )
        if not codename:
            raise CodenameUnresolvedError(
                f"cannot determine device model for device {device_id}"
            )
        return codename.lower()
