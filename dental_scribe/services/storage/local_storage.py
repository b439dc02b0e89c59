# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Local file storage manager."""
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

# Recorded audio containers; mimetypes reports some of them as video
AUDIO_CONTENT_TYPES = {
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
}


def guess_content_type(key: str) -> str:
    """Content type for a stored file, with audio containers always served as audio."""
    return (
        AUDIO_CONTENT_TYPES.get(Path(key).suffix.lower())
        or mimetypes.guess_type(key)[0]
        or "application/octet-stream"
    )


class StorageManager:
    """Manages local file storage operations.

    Files are addressed by a relative key (``<subfolder>/<filename>``) so that keys
    are interchangeable with the S3 backend.
    """

    def __init__(self, base_path: str = "./uploads"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        """Map a key to a path, refusing anything outside ``base_path``."""
        base = self.base_path.resolve()
        path = (base / key).resolve()
        if base not in path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return path

    async def save_file(
        self, file_content: bytes, filename: str, subfolder: Optional[str] = None
    ) -> str:
        """Save file content under ``filename`` and return its storage key."""
        key = f"{subfolder}/{Path(filename).name}" if subfolder else Path(filename).name
        file_path = self._resolve(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(file_path, "wb") as f:
            await f.write(file_content)

        logger.info(f"Saved {len(file_content)} bytes to {file_path}")
        return key

    async def read_file(self, key: str) -> bytes:
        """Read file content."""
        async with aiofiles.open(self._resolve(key), "rb") as f:
            return await f.read()

    async def delete_file(self, key: str) -> bool:
        """Delete a file. Returns False if it could not be removed."""
        try:
            await aiofiles.os.remove(self._resolve(key))
            logger.info(f"Deleted file: {key}")
            return True
        except FileNotFoundError:
            logger.warning(f"File already absent: {key}")
            return False
        except (OSError, ValueError) as e:
            logger.error(f"Error deleting file {key}: {e}")
            return False

    async def file_exists(self, key: str) -> bool:
        """Check if file exists."""
        try:
            return self._resolve(key).is_file()
        except ValueError:
            return False

    def content_type(self, key: str) -> str:
        return guess_content_type(key)
