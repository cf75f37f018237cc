"""Document storage manager for the medication reminder."""

import asyncio
import json
from pathlib import Path
from typing import Union

import aiofiles
from loguru import logger

from medication_reminder.utils import log_operation

from .models import AppData


class DataManager:
    """Manager for the persisted document stored as a single JSON file.

    The whole document is serialized on every save. Uses atomic write
    pattern (write to temp file, then rename) for data integrity.
    Saves through one manager are serialized; concurrent writers in other
    processes follow last-write-wins.
    """

    def __init__(self, data_path: Union[str, Path] = "data/medication_app.json"):
        """Initialize data manager.

        Args:
            data_path: Path of the JSON document
        """
        self.data_path = Path(data_path)
        self._save_lock = asyncio.Lock()
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        """Ensure the document's directory exists."""
        self.data_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Data directory ensured: {self.data_path.parent}")

    @property
    def temp_path(self) -> Path:
        """Path to temporary file for atomic writes."""
        return self.data_path.with_name(self.data_path.name + ".tmp")

    @property
    def corrupt_path(self) -> Path:
        """Path an unreadable document is moved to."""
        return self.data_path.with_name(self.data_path.name + ".corrupt")

    def exists(self) -> bool:
        return self.data_path.exists()

    async def load(self) -> AppData:
        """Load the document from disk.

        An unreadable document is moved aside to :attr:`corrupt_path`
        (replacing an older one) so it can be recovered by hand.

        Returns:
            AppData instance, empty when the file is missing or corrupted
        """
        if not self.data_path.exists():
            logger.debug(f"Document not found, starting empty: {self.data_path}")
            return AppData()

        try:
            async with aiofiles.open(self.data_path, mode="r", encoding="utf-8") as f:
                content = await f.read()
            data = AppData.from_dict(json.loads(content))
            logger.debug(
                f"Loaded document: {len(data.medications)} medication(s), "
                f"{len(data.records)} record(s), "
                f"{len(data.bleeding_records)} bleeding record(s)"
            )
            return data

        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(
                f"Corrupted document {self.data_path}: {type(e).__name__}: {e}. "
                "Starting with an empty document."
            )
            try:
                self.data_path.replace(self.corrupt_path)
                log_operation(
                    "corrupted_document_moved",
                    path=str(self.data_path),
                    backup=str(self.corrupt_path),
                )
            except OSError as move_error:
                logger.error(f"Failed to move corrupted document aside: {move_error}")
            return AppData()

    async def save(self, data: AppData) -> None:
        """Save the whole document with atomic write.

        Args:
            data: AppData instance to save

        Raises:
            Exception: If save operation fails
        """
        async with self._save_lock:
            await self._write(data)

    async def _write(self, data: AppData) -> None:
        temp_path = self.temp_path

        try:
            json_content = json.dumps(data.to_dict(), ensure_ascii=False, indent=2)

            async with aiofiles.open(temp_path, mode="w", encoding="utf-8") as f:
                await f.write(json_content)

            # Atomic rename (replaces existing file)
            temp_path.replace(self.data_path)

            logger.debug(f"Saved document: {self.data_path}")

        except Exception as e:
            logger.error(f"Error saving document {self.data_path}: {type(e).__name__}: {e}")
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as unlink_error:
                    logger.error(f"Failed to remove temp file: {unlink_error}")
            raise
