# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Client settings."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Settings for the clinician-side client, read from ``DENTAL_SCRIBE_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="DENTAL_SCRIBE_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # API
    base_url: str = "http://localhost:8000"
    request_timeout: float = 30.0
    # Processing runs synchronously inside the trigger request
    process_timeout: float = 600.0

    # Report polling
    poll_interval: float = 5.0
    max_attempts: int = 24

    # Audio capture
    sample_rate: int = 16000
    channels: int = 1
    input_device: Optional[str] = None


@lru_cache()
def get_client_settings() -> ClientSettings:
    return ClientSettings()
