# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Speech-to-text for recorded visits using the OpenAI transcription API."""
import logging
from pathlib import Path
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from dental_scribe.deps import Settings
from dental_scribe.exceptions import TranscriptionError
from dental_scribe.services.llm import create_openai_client

logger = logging.getLogger(__name__)


class TranscriptionService:
    """Transcribes stored visit audio to plain text."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.client = client or create_openai_client(settings)

    async def transcribe(
        self, audio_data: bytes, filename: str, language: Optional[str] = None
    ) -> str:
        """
        Transcribe audio bytes.

        Args:
            audio_data: Encoded audio (webm, wav, ...)
            filename: Name whose extension tells the service the container format
            language: ISO language code, defaults to the configured one

        Returns:
            Transcript text, stripped

        Raises:
            TranscriptionError: on transport failure, timeout or an empty result
        """
        language = language or self.settings.transcription_language
        logger.info(
            f"Transcribing {len(audio_data)} bytes ({Path(filename).suffix or 'no extension'}) "
            f"with {self.settings.transcription_model}, language={language}"
        )

        try:
            response = await self.client.with_options(
                timeout=self.settings.transcription_timeout, max_retries=0
            ).audio.transcriptions.create(
                model=self.settings.transcription_model,
                file=(Path(filename).name, audio_data),
                language=language,
                response_format="json",
                temperature=0,
            )
        except OpenAIError as e:
            logger.error(f"Transcription request failed: {e}")
            raise TranscriptionError(f"Trascrizione fallita: {e}") from e

        text = response if isinstance(response, str) else getattr(response, "text", None)
        transcript = (text or "").strip()
        if not transcript:
            raise TranscriptionError("Trascrizione vuota: nessun parlato riconosciuto")

        logger.info(f"Transcription completed: {len(transcript)} characters")
        return transcript
