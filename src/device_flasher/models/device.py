"""Device records and per-run flash results."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from device_flasher.errors import InvalidTransitionError
from device_flasher.models.status import FlashStatus, LockStatus


class Device(BaseModel):
    """A device attached to the host for one run.

    Owned and mutated by a single state machine only.
    """

    id: str = Field(..., min_length=1, description="Serial assigned by the USB stack")
    codename: str = Field(..., min_length=1, description="Hardware codename")
    lock_status: LockStatus = Field(default=LockStatus.UNKNOWN)
    flash_status: FlashStatus = Field(default=FlashStatus.DISCOVERED)

    @field_validator("codename")
    @classmethod
    def lowercase_codename(cls, v: str) -> str:
        return v.strip().lower()

    def advance(self, status: FlashStatus) -> None:
        """Move to ``status``, refusing regressions and exits from terminal states."""
        current = self.flash_status
        if current.is_terminal:
            raise InvalidTransitionError(
                f"device {self.id} is already {current.value}, cannot move to {status.value}"
            )
        if status is not FlashStatus.FAILED and status.rank <= current.rank:
            raise InvalidTransitionError(
                f"device {self.id} cannot move from {current.value} back to {status.value}"
            )
        self.flash_status = status


class FlashResult(BaseModel):
    """Outcome of one device's state machine run."""

    device_id: str
    codename: str
    status: FlashStatus
    error_code: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is FlashStatus.REBOOTED


class RunOutcome(BaseModel):
    """Aggregate of every device's result, in the order devices were given."""

    results: List[FlashResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def failed(self) -> List[FlashResult]:
        return [result for result in self.results if not result.succeeded]
