"""Run configuration and platform constants."""

import platform
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URI = "https://dl.google.com/android/repository"
PLATFORM_TOOLS_FILENAME_TEMPLATE = "platform-tools-{version}-{os}.zip"
PLATFORM_TOOLS_DIRNAME = "platform-tools"

# Known-good digests of the published platform-tools bundles
PLATFORM_TOOLS_SHA256 = {
    "linux": "f7306a7c66d8149c4430aff270d6ed644c720ea29ef799dc613d3dc537485c6e",
    "darwin": "ab9dbab873fff677deb2cfd95ea60b9295ebd53b58ec8533e9e1110b2451e540",
    "windows": "265dd7b55f58dff1a5ad5073a92f4a5308bd070b72bd8b0d604674add6db8a41",
}

SUPPORTED_HOST_OS = ("linux", "darwin", "windows")

FACTORY_IMAGE_MARKER = "factory"
FACTORY_IMAGE_EXTENSION = ".zip"
FLASH_SCRIPT_POSIX = "flash-all.sh"
FLASH_SCRIPT_WINDOWS = "flash-all.bat"

ADB_CODENAME_PROPERTY = "ro.product.device"
FASTBOOT_CODENAME_VARIABLE = "product"
FASTBOOT_LOCK_VARIABLE = "unlocked"

DEFAULT_OS_NAME = "CalyxOS"
DEFAULT_TOOLS_VERSION = "latest"


def detect_host_os() -> str:
    """Return the host OS in the naming used by platform-tools downloads."""
    return platform.system().lower()


def flash_script_name(host_os: str) -> str:
    if host_os == "windows":
        return FLASH_SCRIPT_WINDOWS
    return FLASH_SCRIPT_POSIX


def executable_name(tool: str, host_os: str) -> str:
    if host_os == "windows":
        return f"{tool}.exe"
    return tool


class FlasherConfig(BaseModel):
    """Configuration for one flashing run.

    Built once by the CLI and handed to every component; nothing reads
    process-wide state after construction.
    """

    image_path: Path = Field(..., description="Factory image archive to flash")
    os_name: str = Field(
        default=DEFAULT_OS_NAME, description="Display name of the OS being flashed"
    )
    tools_version: str = Field(
        default=DEFAULT_TOOLS_VERSION, description="platform-tools version label"
    )
    host_os: str = Field(default_factory=detect_host_os, description="Host OS name")
    base_uri: str = Field(
        default=DEFAULT_BASE_URI, pattern=r"^https?://.+", description="Tool download host"
    )
    verify_integrity: bool = Field(
        default=False, description="Verify the platform-tools SHA-256 before extraction"
    )
    expected_sha256: Optional[str] = Field(
        None,
        pattern=r"^[a-fA-F0-9]{64}$",
        description="Override for the per-OS platform-tools digest",
    )
    download_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout (s)")
    bootloader_timeout: float = Field(
        default=60.0,
        ge=0,
        description="Maximum wait for a device to appear in fastboot after reboot (s)",
    )
    settle_interval: float = Field(
        default=5.0, ge=0, description="Pause after unlock/lock before the first re-check (s)"
    )
    poll_interval: float = Field(
        default=1.0, gt=0, description="Delay between lock-state re-checks (s)"
    )
    verification_timeout: float = Field(
        default=30.0,
        ge=0,
        description="Maximum wait after the settle pause for a lock-state change (s)",
    )

    @field_validator("host_os")
    @classmethod
    def supported_host_os(cls, v: str) -> str:
        v = v.lower()
        if v not in SUPPORTED_HOST_OS:
            raise ValueError(
                f"Unsupported host OS {v!r} (expected one of {', '.join(SUPPORTED_HOST_OS)})"
            )
        return v

    @property
    def platform_tools_filename(self) -> str:
        return PLATFORM_TOOLS_FILENAME_TEMPLATE.format(
            version=self.tools_version, os=self.host_os
        )

    @property
    def download_uri(self) -> str:
        return f"{self.base_uri.rstrip('/')}/{self.platform_tools_filename}"

    @property
    def platform_tools_sha256(self) -> str:
        if self.expected_sha256:
            return self.expected_sha256.lower()
        return PLATFORM_TOOLS_SHA256[self.host_os]

    @property
    def flash_script(self) -> str:
        return flash_script_name(self.host_os)
