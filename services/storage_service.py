"""
Image Storage Service

Optionally keeps a copy of every generated frame on local disk:
- Files named <YYYY-MM-DD_HH-mm-ss>_<device>_<position>.jpg in a configured zone
- Storage statistics for status surfaces
- Retention sweep deleting files older than a max age

Write failures are logged and skipped; they never stop an event from being
published.
"""

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo

from config.emitter_config import StorageConfig
from core.exceptions import PersistenceError
from core.time_utils import parse_iso_timestamp

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
FILENAME_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"
IMAGE_SUFFIX = ".jpg"


@dataclass(frozen=True)
class StorageRecord:
    """A saved image on disk."""
    filename: str
    filepath: str
    size: int
    modified_at: float

    def to_saved_dict(self) -> Dict[str, Any]:
        """The 'saved' block of the broker message."""
        return {
            "filename": self.filename,
            "filepath": self.filepath,
            "diskSize": self.size,
        }


def sanitize_component(value: str) -> str:
    """Replace everything outside [A-Za-z0-9_-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub('_', value)


class StorageService:
    """
    Persists generated images to a retention-bounded local folder.

    All methods are synchronous; the scheduler runs them in a worker thread.
    """

    def __init__(self, config: Optional[StorageConfig] = None):
        """
        Initialize the storage service.

        Args:
            config: Storage settings (defaults: disabled, ./tmp/images, UTC)
        """
        config = config or StorageConfig()
        self.save_images = config.save_images
        self.tmp_folder = Path(config.tmp_folder)
        self.timezone = ZoneInfo(config.timezone)

        if self.save_images:
            self._ensure_tmp_folder_exists()

    def _ensure_tmp_folder_exists(self) -> None:
        try:
            if not self.tmp_folder.exists():
                self.tmp_folder.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created image folder: {self.tmp_folder}")
        except OSError as e:
            logger.error(f"Error creating image folder {self.tmp_folder}, image saving disabled: {e}")
            self.save_images = False

    def generate_filename(
        self,
        device_id: str,
        position: str,
        timestamp: Union[str, datetime]
    ) -> str:
        """
        Build the on-disk filename for an image.

        Args:
            device_id: Device identifier (sanitized)
            position: Label anchor name (sanitized)
            timestamp: ISO-8601 string or aware datetime

        Returns:
            Filename such as 2024-05-01_14-30-00_CAM-1_top-left.jpg
        """
        moment = parse_iso_timestamp(timestamp) if isinstance(timestamp, str) else timestamp
        timestamp_str = moment.astimezone(self.timezone).strftime(FILENAME_TIME_FORMAT)
        return f"{timestamp_str}_{sanitize_component(device_id)}_{sanitize_component(position)}{IMAGE_SUFFIX}"

    def _write(self, filepath: Path, image_bytes: bytes) -> StorageRecord:
        try:
            filepath.write_bytes(image_bytes)
            stats = filepath.stat()
        except OSError as e:
            raise PersistenceError(path=str(filepath), reason=str(e)) from e
        return StorageRecord(
            filename=filepath.name,
            filepath=str(filepath),
            size=stats.st_size,
            modified_at=stats.st_mtime,
        )

    def save_image(
        self,
        image_bytes: bytes,
        device_id: str,
        position: str,
        timestamp: Union[str, datetime]
    ) -> Optional[StorageRecord]:
        """
        Save an encoded image.

        Returns:
            StorageRecord, or None when saving is disabled or the write failed
        """
        if not self.save_images:
            return None

        try:
            filename = self.generate_filename(device_id, position, timestamp)
            record = self._write(self.tmp_folder / filename, image_bytes)
        except (PersistenceError, ValueError) as e:
            logger.warning(f"Image save skipped for {device_id}: {e}")
            return None

        logger.debug(f"Image saved: {record.filename} ({round(record.size / 1024)} KB)")
        return record

    def save_image_from_base64(
        self,
        base64_data: str,
        device_id: str,
        position: str,
        timestamp: Union[str, datetime]
    ) -> Optional[StorageRecord]:
        """Decode base64 image data and save it."""
        if not self.save_images:
            return None

        try:
            image_bytes = base64.b64decode(base64_data, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Image save skipped for {device_id}: invalid base64 data ({e})")
            return None
        return self.save_image(image_bytes, device_id, position, timestamp)

    def _stored_files(self):
        return [p for p in self.tmp_folder.iterdir() if p.is_file() and p.suffix == IMAGE_SUFFIX]

    def get_storage_stats(self) -> Dict[str, Any]:
        """
        Summarize the image folder.

        Returns:
            Dict with enabled, folder, total_files, total_size, total_size_mb
            (and error when the folder could not be read)
        """
        if not self.save_images or not self.tmp_folder.exists():
            return {
                "enabled": False,
                "folder": str(self.tmp_folder),
                "total_files": 0,
                "total_size": 0,
                "total_size_mb": 0,
            }

        try:
            files = self._stored_files()
            total_size = sum(p.stat().st_size for p in files)
        except OSError as e:
            logger.error(f"Error getting storage stats: {e}")
            return {
                "enabled": False,
                "folder": str(self.tmp_folder),
                "total_files": 0,
                "total_size": 0,
                "total_size_mb": 0,
                "error": str(e),
            }

        return {
            "enabled": True,
            "folder": str(self.tmp_folder),
            "total_files": len(files),
            "total_size": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }

    def cleanup_old_images(self, max_age_hours: float = 24) -> Dict[str, int]:
        """
        Delete images whose modification time is older than max_age_hours.

        A failure on one file is counted and the sweep continues.

        Returns:
            Dict with deleted, errors and space_freed (bytes)
        """
        if not self.save_images or not self.tmp_folder.exists():
            return {"deleted": 0, "errors": 0, "space_freed": 0}

        max_age_seconds = max_age_hours * 60 * 60
        now = time.time()
        deleted = 0
        errors = 0
        space_freed = 0

        try:
            files = self._stored_files()
        except OSError as e:
            logger.error(f"Error during cleanup: {e}")
            return {"deleted": 0, "errors": 1, "space_freed": 0}

        for filepath in files:
            try:
                stats = filepath.stat()
                if now - stats.st_mtime > max_age_seconds:
                    filepath.unlink()
                    deleted += 1
                    space_freed += stats.st_size
            except OSError as e:
                logger.error(f"Error deleting file {filepath.name}: {e}")
                errors += 1

        if deleted > 0:
            logger.info(f"Cleaned up {deleted} old images (older than {max_age_hours}h)")

        return {"deleted": deleted, "errors": errors, "space_freed": space_freed}
