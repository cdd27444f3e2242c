"""FastAPI application serving flash progress."""

from typing import Optional

from fastapi import FastAPI

from device_flasher.api.routes import router
from device_flasher.services.status_board import StatusBoard


def create_app(status_board: Optional[StatusBoard] = None) -> FastAPI:
    """Build the progress API around a run's status board."""
    app = FastAPI(
        title="Device Flasher",
        description="Progress of a multi-device factory image flashing run",
        version="1.0.0",
    )
    app.state.status_board = status_board or StatusBoard()
    app.include_router(router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "device-flasher", "version": "1.0.0"}

    return app
