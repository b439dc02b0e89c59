# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Context dataclass for recording processing."""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from dental_scribe.deps import Settings
from dental_scribe.repositories.recording_repository import RecordingRepository
from dental_scribe.services.llm import RefertoGenerator
from dental_scribe.services.storage import AudioStorage
from dental_scribe.services.transcription import TranscriptionService


@dataclass
class ProcessingContext:
    """Everything one processing run needs, injected by the caller."""

    recording_id: str

    # Database
    db: AsyncSession
    recording_repo: RecordingRepository

    # Services
    storage_manager: AudioStorage
    transcription_service: TranscriptionService
    referto_generator: RefertoGenerator

    settings: Settings
