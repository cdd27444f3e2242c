"""Status enums for device lock and flash state."""

from enum import Enum


class LockStatus(str, Enum):
    """Bootloader lock state as read back from the device."""

    UNKNOWN = "unknown"
    UNLOCKED = "unlocked"
    LOCKED = "locked"


class FlashStatus(str, Enum):
    """Per-device flash lifecycle.

    State transitions (each step only moves forward):
    discovered → bootloaderEntered → unlocking → unlocked → flashing → flashed
        → locking → locked → rebooted
                  ↓             ↓           ↓          ↓
                failed ←────────────────────────────────
    """

    DISCOVERED = "discovered"
    BOOTLOADER_ENTERED = "bootloaderEntered"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"
    FLASHING = "flashing"
    FLASHED = "flashed"
    LOCKING = "locking"
    LOCKED = "locked"
    REBOOTED = "rebooted"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _FLASH_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (FlashStatus.REBOOTED, FlashStatus.FAILED)

    @property
    def progress(self) -> int:
        """Rough completion percentage for progress reporting."""
        if self is FlashStatus.FAILED:
            return 0
        return int(self.rank / FlashStatus.REBOOTED.rank * 100)


_FLASH_ORDER = list(FlashStatus)
