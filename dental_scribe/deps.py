# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""FastAPI dependencies and dependency injection."""
import logging
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API Configuration
    debug: bool = False
    api_title: str = "Dental Scribe API"
    api_version: str = "0.2.0"
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./dental_scribe.db"
    database_echo: bool = False

    # Storage
    storage_backend: str = "local"  # "local" or "s3"
    upload_dir: str = "./uploads"
    recordings_subfolder: str = "recordings"
    max_audio_bytes: int = 100 * 1024 * 1024  # 100MB

    # S3/MinIO (only used when storage_backend == "s3")
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = ""
    minio_secret_key: str = ""
    minio_bucket_name: str = "dental-scribe"
    minio_use_ssl: bool = False

    # OpenAI
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None

    # Speech-to-text
    transcription_model: str = "whisper-1"
    transcription_language: str = "it"
    transcription_timeout: int = 300  # 5 minutes

    # Structured report generation
    report_model: str = "gpt-4o"
    report_temperature: float = 0.2
    report_max_tokens: int = 4000
    report_timeout: int = 120

    # Tooth chart extraction
    chart_model: str = "gpt-4o-mini"
    chart_temperature: float = 0.1
    chart_max_tokens: int = 3000
    chart_timeout: int = 60

    # Processing
    processing_stale_after_seconds: int = 900
    process_rate_limit: str = "10/minute"


def _load_settings() -> Settings:
    """Internal function to load settings."""
    # Always load .env file, but only override in development for hot-reloading
    debug_mode = os.getenv("DEBUG", "false").lower() == "true"
    load_dotenv(override=debug_mode)

    settings = Settings()

    logger.debug(
        f"Settings loaded: openai_api_key={'***' if settings.openai_api_key else 'NOT SET'}, "
        f"storage_backend={settings.storage_backend}, debug={settings.debug}"
    )

    return settings


# Cached version for production
@lru_cache()
def _get_settings_cached() -> Settings:
    """Get cached application settings for production."""
    return _load_settings()


def get_settings() -> Settings:
    """Get application settings with smart caching based on environment."""
    # DEBUG=true disables caching so .env edits are picked up
    if os.getenv("DEBUG", "false").lower() == "true":
        return _load_settings()
    return _get_settings_cached()
