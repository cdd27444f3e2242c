"""Zip extraction that refuses entries escaping the destination."""

import logging
import os
import shutil
import zipfile
from pathlib import Path

from device_flasher.errors import ExtractError

logger = logging.getLogger("device_flasher.archive")


def _resolve_member(destination: Path, member: zipfile.ZipInfo) -> Path:
    target = (destination / member.filename).resolve()
    if target != destination and destination not in target.parents:
        raise ExtractError(f"{member.filename}: illegal file path outside {destination}")
    return target


def safe_extract(archive_path: Path, destination: Path) -> Path:
    """Extract ``archive_path`` into ``destination``.

    Every entry is checked before anything is written, so a path-traversal
    entry leaves the destination untouched. Unix permission bits stored in
    the archive are restored (tool binaries and flash scripts must stay
    executable).

    Returns:
        The resolved destination directory

    Raises:
        ExtractError: If the archive is missing, malformed, or contains an
            entry that resolves outside the destination
    """
    destination = Path(destination).resolve()
    logger.info(f"Extracting {archive_path} to {destination}")

    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            members = [(member, _resolve_member(destination, member)) for member in zf.infolist()]

            destination.mkdir(parents=True, exist_ok=True)
            for member, target in members:
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member) as src_file, open(target, "wb") as dst_file:
                    shutil.copyfileobj(src_file, dst_file)

                mode = (member.external_attr >> 16) & 0o777
                if mode:
                    os.chmod(target, mode)
    except zipfile.BadZipFile as e:
        raise ExtractError(f"Invalid ZIP archive {archive_path}: {e}")
    except FileNotFoundError as e:
        raise ExtractError(f"Archive not found: {e}")
    except OSError as e:
        raise ExtractError(f"Failed to extract {archive_path}: {e}")

    logger.debug(f"Extracted {len(members)} entries from {Path(archive_path).name}")
    return destination
