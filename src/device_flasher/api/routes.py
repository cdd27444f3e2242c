"""API route handlers for flash progress."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from device_flasher.api.models import ProgressResponse
from device_flasher.models.status import FlashStatus
from device_flasher.services.status_board import StatusBoard

router = APIRouter(prefix="/api/v1.0")


def _status_board(request: Request) -> StatusBoard:
    return request.app.state.status_board


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(request: Request):
    """GET /api/v1.0/progress - Per-device status of the current run.

    Response format:
        {
            "code": 200,
            "msg": "success",
            "data": [
                {
                    "device_id": "R1",
                    "codename": "sargo",
                    "status": "flashing",
                    "lock_status": "unlocked",
                    "progress": 44,
                    "message": "Flashing CalyxOS with flash-all.sh",
                    "error": null
                }
            ]
        }

    ``code`` is 500 when at least one device has failed; the remaining
    devices keep running and keep reporting.
    """
    entries = _status_board(request).get_status()
    failed = [entry for entry in entries if entry.status is FlashStatus.FAILED]

    if failed:
        ids = ", ".join(entry.device_id for entry in failed)
        return ProgressResponse(code=500, msg=f"Flash failed on: {ids}", data=entries)
    return ProgressResponse(code=200, msg="success", data=entries)


@router.get("/progress/{device_id}")
async def get_device_progress(device_id: str, request: Request):
    """GET /api/v1.0/progress/{device_id} - Status of a single device."""
    entry = _status_board(request).get_device(device_id)
    if entry is None:
        return JSONResponse(
            status_code=200,
            content={"code": 404, "msg": f"DEVICE_NOT_FOUND: {device_id}", "data": None},
        )
    return JSONResponse(
        status_code=200,
        content={"code": 200, "msg": "success", "data": entry.model_dump(mode="json")},
    )
