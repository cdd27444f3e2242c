"""Platform-tools provisioning: download, verify, extract, build drivers."""

import logging
from pathlib import Path

import aiofiles
import httpx
from pydantic import BaseModel, ConfigDict

from device_flasher.config import PLATFORM_TOOLS_DIRNAME, FlasherConfig, executable_name
from device_flasher.errors import NetworkError, ToolNotFoundError
from device_flasher.services.tools import AdbDriver, FastbootDriver
from device_flasher.utils.archive import safe_extract
from device_flasher.utils.verification import verify_sha256_or_raise


class PlatformTools(BaseModel):
    """A provisioned platform-tools bundle and its two drivers."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    host_os: str
    version: str
    download_uri: str
    expected_sha256: str
    archive_path: Path
    path: Path
    adb: AdbDriver
    fastboot: FastbootDriver


class PlatformToolsProvisioner:
    """Acquires the platform-tools bundle for the host into a working directory."""

    ARCHIVE_NAME = "platform-tools.zip"

    def __init__(self, config: FlasherConfig, working_directory: Path):
        """Initialize provisioner.

        Args:
            config: Run configuration (host OS, tools version, integrity toggle)
            working_directory: Scratch directory owned by this run
        """
        self.logger = logging.getLogger("device_flasher.provisioner")
        self.config = config
        self.working_directory = Path(working_directory)
        self.archive_path = self.working_directory / self.ARCHIVE_NAME
        self.tools_path = self.working_directory / PLATFORM_TOOLS_DIRNAME
        self.chunk_size = 64 * 1024

    async def initialize(self) -> PlatformTools:
        """Download, verify, extract and wrap the platform tools.

        Returns:
            PlatformTools with adb and fastboot drivers

        Raises:
            NetworkError: If the download fails or returns a non-2xx status
            IntegrityError: If integrity checking is on and the digest differs
            ExtractError: If the archive is malformed or unsafe
            ToolNotFoundError: If adb or fastboot is missing after extraction
        """
        uri = self.config.download_uri
        self.logger.info(
            f"Provisioning platform-tools {self.config.tools_version} "
            f"for {self.config.host_os} from {uri}"
        )

        await self._download(uri)

        if self.config.verify_integrity:
            self.logger.info("Verifying platform-tools SHA-256...")
            verify_sha256_or_raise(self.archive_path, self.config.platform_tools_sha256)
        else:
            self.logger.debug("Integrity verification disabled")

        safe_extract(self.archive_path, self.working_directory)

        adb = AdbDriver(self._locate("adb"))
        fastboot = FastbootDriver(self._locate("fastboot"))
        self.logger.info(f"Tools ready: {adb.describe()}, {fastboot.describe()}")

        return PlatformTools(
            host_os=self.config.host_os,
            version=self.config.tools_version,
            download_uri=uri,
            expected_sha256=self.config.platform_tools_sha256,
            archive_path=self.archive_path,
            path=self.tools_path,
            adb=adb,
            fastboot=fastboot,
        )

    async def _download(self, uri: str) -> None:
        self.working_directory.mkdir(parents=True, exist_ok=True)

        bytes_downloaded = 0
        try:
            async with httpx.AsyncClient(
                timeout=self.config.download_timeout, follow_redirects=True
            ) as client:
                async with client.stream("GET", uri) as response:
                    if not response.is_success:
                        raise NetworkError(
                            f"bad download status from {uri}: {response.status_code}"
                        )

                    async with aiofiles.open(self.archive_path, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                            await f.write(chunk)
                            bytes_downloaded += len(chunk)
        except httpx.HTTPError as e:
            self.logger.error(f"Download failed: {e}")
            raise NetworkError(f"failed to download {uri}: {e}")

        self.logger.info(f"Downloaded {bytes_downloaded} bytes to {self.archive_path}")

    def _locate(self, tool: str) -> Path:
        executable = self.tools_path / executable_name(tool, self.config.host_os)
        if not executable.is_file():
            raise ToolNotFoundError(f"{executable.name} not found in {self.tools_path}")
        return executable
