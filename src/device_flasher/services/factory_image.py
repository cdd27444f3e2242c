"""Factory image validation and extraction."""

import logging
from pathlib import Path
from typing import Optional

from device_flasher.config import FACTORY_IMAGE_EXTENSION, FACTORY_IMAGE_MARKER
from device_flasher.errors import ScriptNotFoundError, ValidationError
from device_flasher.utils.archive import safe_extract


class FactoryImage:
    """A vendor factory image archive shared by every device in a run.

    After ``extract`` the extract directory and flash script are fixed and
    only ever read.
    """

    def __init__(self, image_path: Path, name: str, flash_script: str):
        """Initialize factory image.

        Args:
            image_path: Path to the factory image archive
            name: Display name of the OS being flashed
            flash_script: Name of the flash-orchestration script for this host
        """
        self.logger = logging.getLogger("device_flasher.factory_image")
        self.image_path = Path(image_path)
        self.name = name
        self.flash_script = flash_script
        self.extract_directory: Optional[Path] = None

    def validate(self, codename: str) -> None:
        """Check the archive filename against a device codename.

        Performs no filesystem mutation.

        Raises:
            ValidationError: If the archive is missing, or its filename lacks
                the codename, the factory marker, or the archive extension
        """
        filename = self.image_path.name
        if not self.image_path.is_file():
            raise ValidationError(f"factory image {self.image_path} does not exist")
        if codename.lower() not in filename.lower():
            raise ValidationError(
                f"image filename {filename} should contain device codename {codename}"
            )
        if not filename.endswith(FACTORY_IMAGE_EXTENSION):
            raise ValidationError(
                f"image filename {filename} should end in {FACTORY_IMAGE_EXTENSION}"
            )
        if FACTORY_IMAGE_MARKER not in filename:
            raise ValidationError(
                f"image filename {filename} should contain {FACTORY_IMAGE_MARKER}"
            )
        self.logger.debug(f"{filename} is a valid factory image for {codename}")

    def extract(self, destination: Path) -> Path:
        """Unpack the archive and locate the directory holding the flash script.

        Returns:
            Directory containing the flash script

        Raises:
            ExtractError: If the archive is malformed or unsafe
            ScriptNotFoundError: If no immediate subdirectory has the script
        """
        destination = safe_extract(self.image_path, destination)

        for candidate in sorted(p for p in destination.iterdir() if p.is_dir()):
            if (candidate / self.flash_script).is_file():
                self.extract_directory = candidate
                break
        else:
            raise ScriptNotFoundError(
                f"unable to find {self.flash_script} in {destination}"
            )

        self.logger.info(
            f"{self.name} image extracted: script={self.flash_script}, "
            f"directory={self.extract_directory}"
        )
        return self.extract_directory

    @property
    def script_path(self) -> Path:
        if self.extract_directory is None:
            raise ScriptNotFoundError(f"{self.image_path.name} has not been extracted")
        return self.extract_directory / self.flash_script
