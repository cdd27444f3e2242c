"""Drivers for the two platform tools: adb (runtime mode) and fastboot (bootloader mode)."""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Tuple

from device_flasher.config import FASTBOOT_LOCK_VARIABLE
from device_flasher.errors import ToolError
from device_flasher.models.status import LockStatus


class ToolDriver(ABC):
    """Uniform capability surface over one platform tool executable.

    Every call is scoped by device id and keeps no per-call state on the
    instance, so one driver can serve all device tasks concurrently.
    """

    name = "tool"
    has_listing_header = False

    def __init__(self, executable: Path):
        """Initialize driver.

        Args:
            executable: Absolute path to the tool binary
        """
        self.executable = Path(executable)
        self.logger = logging.getLogger(f"device_flasher.tools.{self.name}")

    async def _run(self, args: List[str]) -> Tuple[int, str]:
        """Run the tool and return (exit code, combined stdout/stderr).

        Raises:
            ToolError: If the process cannot be launched
        """
        command = [str(self.executable), *args]
        self.logger.debug(f"Running: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            stdout, _ = await process.communicate()
        except OSError as e:
            raise ToolError(f"Failed to launch {self.name}: {e}")

        output = stdout.decode(errors="replace") if stdout else ""
        return process.returncode, output

    async def command(self, args: List[str]) -> str:
        """Run the tool, raising ToolError on a non-zero exit.

        Returns:
            Combined stdout/stderr of the tool
        """
        returncode, output = await self._run(args)
        if returncode != 0:
            raise ToolError(
                f"{self.name} {' '.join(args)} exited with code {returncode}: "
                f"{output.strip()}",
                returncode=returncode,
                output=output,
            )
        return output

    async def list_device_ids(self) -> List[str]:
        """List attached device ids in the order the tool reports them.

        Raises:
            ToolError: If the listing invocation fails
        """
        output = await self.command(["devices"])
        return self.parse_device_ids(output)

    @classmethod
    def parse_device_ids(cls, output: str) -> List[str]:
        """Extract device ids from ``<tool> devices`` output.

        The first whitespace-delimited field of every device line is the id.
        The adb header line is skipped; blank lines, daemon chatter and
        trailing summary lines (fewer than two fields) are dropped.
        """
        lines = output.splitlines()
        if cls.has_listing_header:
            lines = [line for line in lines if not line.startswith("*")][1:]

        device_ids = []
        for line in lines:
            fields = line.split()
            if len(fields) < 2 or line.startswith("*"):
                continue
            device_ids.append(fields[0])
        return device_ids

    async def query_property(self, device_id: str, key: str) -> str:
        """Read a runtime property; empty string when unresolved."""
        return ""

    async def query_variable(self, device_id: str, key: str) -> str:
        """Read a bootloader variable; empty string when unresolved."""
        return ""

    async def execute(self, device_id: str, verb: str, *args: str) -> str:
        """Run ``<tool> -s <id> <verb> <args...>``.

        Raises:
            ToolError: On launch failure or non-zero exit
        """
        self.logger.info(f"[{device_id}] {self.name} {verb} {' '.join(args)}".rstrip())
        return await self.command(["-s", device_id, verb, *args])

    @abstractmethod
    def describe(self) -> str:
        ...


class AdbDriver(ToolDriver):
    """adb: talks to devices booted into the full OS."""

    name = "adb"
    has_listing_header = True

    async def query_property(self, device_id: str, key: str) -> str:
        try:
            output = await self.command(["-s", device_id, "shell", "getprop", key])
        except ToolError as e:
            self.logger.debug(f"[{device_id}] getprop {key} failed: {e}")
            return ""
        return output.strip().strip("[]").strip()

    async def kill_server(self) -> None:
        """Stop the adb server; failures are logged only."""
        try:
            await self.command(["kill-server"])
        except ToolError as e:
            self.logger.warning(f"adb kill-server failed: {e}")

    def describe(self) -> str:
        return f"adb ({self.executable})"


class FastbootDriver(ToolDriver):
    """fastboot: talks to devices sitting in the bootloader."""

    name = "fastboot"
    has_listing_header = False

    async def query_variable(self, device_id: str, key: str) -> str:
        try:
            output = await self.command(["-s", device_id, "getvar", key])
        except ToolError as e:
            self.logger.debug(f"[{device_id}] getvar {key} failed: {e}")
            return ""
        return self.parse_variable(output, key)

    @staticmethod
    def parse_variable(output: str, key: str) -> str:
        """Take the second space-delimited token of the line naming ``key``."""
        for line in output.splitlines():
            if key not in line:
                continue
            tokens = line.strip().split(" ")
            if len(tokens) > 1:
                return tokens[1].strip()
        return ""

    async def get_lock_status(self, device_id: str) -> LockStatus:
        value = await self.query_variable(device_id, FASTBOOT_LOCK_VARIABLE)
        if value == "yes":
            return LockStatus.UNLOCKED
        if value == "no":
            return LockStatus.LOCKED
        return LockStatus.UNKNOWN

    def describe(self) -> str:
        return f"fastboot ({self.executable})"

