# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Storage backends and factory."""
from typing import Union

from dental_scribe.deps import Settings
from dental_scribe.services.storage.local_storage import StorageManager
from dental_scribe.services.storage.s3_storage import S3StorageManager

__all__ = [
    "StorageManager",
    "S3StorageManager",
    "AudioStorage",
    "create_storage_manager",
    "AUDIO_URL_PREFIX",
    "audio_url_for_key",
    "audio_key_from_url",
]

AudioStorage = Union[StorageManager, S3StorageManager]


def create_storage_manager(settings: Settings) -> AudioStorage:
    """
    Build the storage manager selected by ``settings.storage_backend``.

    Args:
        settings: Application settings

    Returns:
        StorageManager for ``local``, S3StorageManager for ``s3``
    """
    if settings.storage_backend == "s3":
        if not settings.minio_bucket_name:
            raise ValueError("minio_bucket_name is required for the s3 backend")
        endpoint = settings.minio_endpoint
        if not endpoint.startswith("http"):
            scheme = "https" if settings.minio_use_ssl else "http"
            endpoint = f"{scheme}://{endpoint}"
        return S3StorageManager(
            bucket_name=settings.minio_bucket_name,
            endpoint_url=endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            use_ssl=settings.minio_use_ssl,
        )
    return StorageManager(base_path=settings.upload_dir)


# Public URL prefix under which stored audio is served
AUDIO_URL_PREFIX = "/api/uploads/"


def audio_url_for_key(key: str) -> str:
    """Stable reference URL recorded on the row for a storage key."""
    return f"{AUDIO_URL_PREFIX}{key}"


def audio_key_from_url(audio_url: str) -> str:
    """Storage key for a reference URL produced by ``audio_url_for_key``."""
    if audio_url.startswith(AUDIO_URL_PREFIX):
        return audio_url[len(AUDIO_URL_PREFIX):]
    return audio_url.lstrip("/")
