# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Serves stored recording audio from whichever storage backend is configured."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from dental_scribe.deps import Settings, get_settings
from dental_scribe.exceptions import NotFoundError
from dental_scribe.routers.recordings import get_storage_manager
from dental_scribe.services.storage import AUDIO_URL_PREFIX, AudioStorage

logger = logging.getLogger(__name__)
router = APIRouter(prefix=AUDIO_URL_PREFIX.rstrip("/"), tags=["uploads"])


@router.get("/{subfolder}/{filename}")
async def get_audio(
    subfolder: str,
    filename: str,
    settings: Settings = Depends(get_settings),
    storage: AudioStorage = Depends(get_storage_manager),
):
    """Return the audio bytes for a stored recording."""
    key = f"{subfolder}/{filename}"
    if subfolder != settings.recordings_subfolder or not await storage.file_exists(key):
        raise NotFoundError(f"Audio {key} non trovato")

    try:
        content = await storage.read_file(key)
    except FileNotFoundError as e:
        raise NotFoundError(f"Audio {key} non trovato") from e

    logger.debug(f"Serving {len(content)} bytes of {key}")
    return Response(content=content, media_type=storage.content_type(key))
