"""Command-line entry point for flashing factory images onto attached devices."""

import argparse
import asyncio
import contextlib
import logging
import socket
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

import pydantic
import uvicorn

from device_flasher.api.app import create_app
from device_flasher.config import DEFAULT_OS_NAME, DEFAULT_TOOLS_VERSION, FlasherConfig
from device_flasher.errors import FlasherError, StatusServerError
from device_flasher.models.device import RunOutcome
from device_flasher.services.discovery import DeviceDiscovery
from device_flasher.services.factory_image import FactoryImage
from device_flasher.services.orchestrator import Orchestrator
from device_flasher.services.provisioner import PlatformToolsProvisioner
from device_flasher.services.status_board import StatusBoard
from device_flasher.utils.logging import console_level_for, setup_logger

OPERATOR_INSTRUCTIONS = (
    "Do the following for each device:",
    "Connect to a wifi network and ensure that no SIM cards are installed",
    'Enable Developer Options on device (Settings -> About Phone -> tap "Build number" 7 times)',
    "Enable USB debugging on device (Settings -> System -> Advanced -> Developer Options) "
    'and allow the computer to debug (hit "OK" on the popup when USB is connected)',
    "Enable OEM Unlocking (in the same Developer Options menu)",
)

STATUS_HOST = "127.0.0.1"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="device-flasher",
        description="Flash a factory image onto every attached device, "
        "unlocking and relocking the bootloader around it.",
    )
    parser.add_argument("--image", required=True, help="Factory image archive to flash")
    parser.add_argument("--name", default=DEFAULT_OS_NAME, help="OS name (display only)")
    parser.add_argument(
        "--tools-version", default=DEFAULT_TOOLS_VERSION, help="platform-tools version"
    )
    parser.add_argument(
        "--verify-tools",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Check the platform-tools download against its known SHA-256",
    )
    parser.add_argument(
        "--tools-sha256", default=None, help="Expected platform-tools SHA-256 override"
    )
    parser.add_argument(
        "--settle-interval",
        type=float,
        default=5.0,
        help="Seconds to wait after unlock/lock before re-checking the lock state",
    )
    parser.add_argument(
        "--verification-timeout",
        type=float,
        default=30.0,
        help="Seconds to keep re-checking the lock state after the settle interval",
    )
    parser.add_argument(
        "--yes", action="store_true", help="Skip the device preparation prompt"
    )
    parser.add_argument(
        "--fail-on-device-error",
        action="store_true",
        help="Exit non-zero when any device fails to flash",
    )
    parser.add_argument(
        "--status-port",
        type=int,
        default=None,
        help="Serve the progress API on this port for the duration of the run",
    )
    parser.add_argument(
        "--log-file", default="./logs/device-flasher.log", help="Rotating log file"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Debug output on the console"
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Only warnings and errors on the console"
    )
    return parser


async def _prompt_operator() -> None:
    for line in OPERATOR_INSTRUCTIONS:
        print(line)
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, input, "When done, press enter to continue")


@contextlib.asynccontextmanager
async def serve_status(status_board: StatusBoard, port: Optional[int]):
    """Serve the progress API in the background while the body runs.

    The port is bound before the server starts, so a port already in use
    fails the run up front instead of inside the server task.

    Raises:
        StatusServerError: If the port cannot be bound
    """
    if port is None:
        yield
        return

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((STATUS_HOST, port))
    except OSError as e:
        sock.close()
        raise StatusServerError(
            f"cannot serve progress API on {STATUS_HOST}:{port}: {e}"
        )

    server = uvicorn.Server(
        uvicorn.Config(create_app(status_board), log_level="warning")
    )
    task = asyncio.create_task(server.serve(sockets=[sock]))
    try:
        yield
    finally:
        server.should_exit = True
        await task
        sock.close()


async def run(
    config: FlasherConfig,
    status_board: Optional[StatusBoard] = None,
    prompt: bool = True,
) -> RunOutcome:
    """Provision tools, discover devices and flash them all.

    Both scratch directories are removed on exit, whatever the outcome.

    Raises:
        FlasherError: On any failure before device flashing starts
    """
    logger = logging.getLogger("device_flasher")

    with tempfile.TemporaryDirectory(prefix="device-flasher-platformtools-") as tools_dir, \
            tempfile.TemporaryDirectory(prefix="device-flasher-factory-") as image_dir:
        tools = await PlatformToolsProvisioner(config, Path(tools_dir)).initialize()

        if prompt:
            await _prompt_operator()

        devices = await DeviceDiscovery(tools.adb, tools.fastboot).discover()

        orchestrator = Orchestrator(
            config=config,
            tools=tools,
            image=FactoryImage(config.image_path, config.os_name, config.flash_script),
            extract_root=Path(image_dir),
            status_board=status_board,
        )
        outcome = await orchestrator.flash(devices)

    logger.debug("Removed scratch directories")
    return outcome


async def _main(args: argparse.Namespace, config: FlasherConfig) -> RunOutcome:
    status_board = StatusBoard()
    async with serve_status(status_board, args.status_port):
        return await run(config, status_board=status_board, prompt=not args.yes)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = FlasherConfig(
            image_path=Path(args.image),
            os_name=args.name,
            tools_version=args.tools_version,
            verify_integrity=args.verify_tools,
            expected_sha256=args.tools_sha256,
            settle_interval=args.settle_interval,
            verification_timeout=args.verification_timeout,
        )
    except pydantic.ValidationError as e:
        parser.error(str(e))

    logger = setup_logger(
        "device_flasher",
        args.log_file,
        level=logging.DEBUG,
        console_level=console_level_for(verbose=args.verbose, quiet=args.quiet),
    )

    try:
        outcome = asyncio.run(_main(args, config))
    except FlasherError as e:
        logger.error(e.describe())
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130

    if outcome.failed and args.fail_on_device_error:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
