"""Pydantic models for the progress API."""

from typing import List, Optional

from pydantic import BaseModel, Field

from device_flasher.models.status import FlashStatus, LockStatus


class DeviceProgress(BaseModel):
    """Progress of one device, as reported by GET /api/v1.0/progress."""

    device_id: str = Field(..., description="Device serial")
    codename: str = Field(..., description="Hardware codename")
    status: FlashStatus = Field(..., description="Current flash status")
    lock_status: LockStatus = Field(
        default=LockStatus.UNKNOWN, description="Last bootloader lock state read back"
    )
    progress: int = Field(..., ge=0, le=100, description="Percentage completion (0-100)")
    message: str = Field(..., description="Human-readable status description")
    error: Optional[str] = Field(
        None, description="Error code and message if status == failed"
    )


class ProgressResponse(BaseModel):
    """GET /api/v1.0/progress response.

    HTTP status is always 200; ``code`` is 500 when any device has failed.
    """

    code: int = Field(..., description="Application-level status code (200/500)")
    msg: str = Field(..., description="Status message or failure summary")
    data: List[DeviceProgress] = Field(
        default_factory=list, description="Per-device progress in discovery order"
    )
