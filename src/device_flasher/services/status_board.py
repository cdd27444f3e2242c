"""In-memory per-device progress shared with the progress API."""

import logging
from typing import Dict, List, Optional

from device_flasher.api.models import DeviceProgress
from device_flasher.models.device import Device


class StatusBoard:
    """Latest progress for every device in the current run.

    Each device's entry is written only by that device's state machine;
    readers get snapshots.
    """

    def __init__(self):
        self.logger = logging.getLogger("device_flasher.status_board")
        self._entries: Dict[str, DeviceProgress] = {}

    def update(
        self,
        device: Device,
        message: str,
        error: Optional[str] = None,
    ) -> None:
        """Record the device's current status.

        Args:
            device: Device whose status changed
            message: Human-readable description
            error: Error code and message if the device failed
        """
        self._entries[device.id] = DeviceProgress(
            device_id=device.id,
            codename=device.codename,
            status=device.flash_status,
            lock_status=device.lock_status,
            progress=device.flash_status.progress,
            message=message,
            error=error,
        )
        self.logger.debug(
            f"[{device.id}] status={device.flash_status.value}, message={message}"
        )

    def get_status(self) -> List[DeviceProgress]:
        return [entry.model_copy() for entry in self._entries.values()]

    def get_device(self, device_id: str) -> Optional[DeviceProgress]:
        entry = self._entries.get(device_id)
        return entry.model_copy() if entry else None
