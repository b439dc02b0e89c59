# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Recording processing pipeline: audio to transcript, report and tooth chart."""
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from dental_scribe.exceptions import (
    ChartExtractionError,
    MissingAudioError,
    NotFoundError,
    ProcessingConflictError,
    ValidationError,
)
from dental_scribe.models import database as db_models
from dental_scribe.models.api.odontogramma_schema import Odontogramma
from dental_scribe.models.api.referto_schema import StructuredReport
from dental_scribe.models.database.recordings_model import utcnow
from dental_scribe.services.storage import audio_key_from_url
from dental_scribe.services.visit_types import get_visit_type

from .processing_context import ProcessingContext

logger = logging.getLogger(__name__)


class ProcessingStage(str, Enum):
    FETCHED = "fetched"
    AUDIO_VERIFIED = "audio_verified"
    TRANSCRIBED = "transcribed"
    REPORT_GENERATED = "report_generated"
    CHART_EXTRACTED = "chart_extracted"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass
class ProcessingResult:
    recording_id: str
    doctor_name: Optional[str]
    transcript: str
    referto: StructuredReport
    odontogramma: Odontogramma


class RecordingProcessor:
    """Runs one recording through the AI pipeline.

    Each stage is a separate step. Fetching and claiming happen before any state is
    written, so rejected requests leave the row untouched. Once the row is claimed,
    a fatal error hands it back for a later retry and is re-raised: ``completed`` when
    an earlier run left a full set of outputs, else ``pending``, except for missing
    audio, which retrying cannot fix and which marks the row ``failed``. A chart
    extraction error is recovered with an empty chart.
    """

    def __init__(self, ctx: ProcessingContext):
        self.ctx = ctx
        self.stage: Optional[ProcessingStage] = None
        self.recording: Optional[db_models.Recording] = None
        # Outputs of an earlier successful run, kept intact until replaced as a set
        self.has_previous_outputs = False

    async def process(self) -> ProcessingResult:
        """
        Main processing pipeline.

        Returns:
            ProcessingResult with the persisted outputs

        Raises:
            NotFoundError: recording missing or deleted
            ValidationError: doctor name or visit type missing or unsupported
            ProcessingConflictError: another run holds a fresh claim
            MissingAudioError, TranscriptionError, ReportGenerationError: fatal stage errors
        """
        await self._fetch_recording()
        await self._claim()

        try:
            audio_data = await self._verify_audio()
            transcript = await self._transcribe(audio_data)
            report = await self._generate_report(transcript)
            chart = await self._extract_chart(report)
            return await self._persist(transcript, report, chart)
        except Exception as e:
            await self._handle_failure(e)
            raise

    def _advance(self, stage: ProcessingStage):
        self.stage = stage
        logger.info(f"[{self.ctx.recording_id}] Stage {stage.value}")

    async def _fetch_recording(self):
        recording = await self.ctx.recording_repo.get_by_id(self.ctx.recording_id)
        if recording is None:
            raise NotFoundError(f"Registrazione {self.ctx.recording_id} non trovata")
        if not recording.doctor_name or not recording.doctor_name.strip():
            raise ValidationError("Nome del medico mancante", field="doctor_name")
        if not recording.visit_type:
            raise ValidationError("Tipo di visita mancante", field="visit_type")
        if get_visit_type(recording.visit_type) is None:
            raise ValidationError(
                f"Tipo di visita non supportato: {recording.visit_type}", field="visit_type"
            )

        self.recording = recording
        self.has_previous_outputs = bool(recording.referto_data)
        self._advance(ProcessingStage.FETCHED)

    async def _claim(self):
        """Take the processing claim and commit it so concurrent triggers see it."""
        stale_before = utcnow() - timedelta(seconds=self.ctx.settings.processing_stale_after_seconds)
        claimed = await self.ctx.recording_repo.claim_for_processing(
            self.ctx.recording_id, stale_before
        )
        if not claimed:
            await self.ctx.db.rollback()
            raise ProcessingConflictError(
                f"Elaborazione già in corso per la registrazione {self.ctx.recording_id}"
            )
        await self.ctx.db.commit()
        logger.info(f"[{self.ctx.recording_id}] Claimed for processing")

    async def _verify_audio(self) -> bytes:
        """Load the referenced audio.

        Raises:
            MissingAudioError: no reference, or the stored file is gone
        """
        if not self.recording.audio_url:
            raise MissingAudioError("Nessun file audio associato alla registrazione")

        key = audio_key_from_url(self.recording.audio_url)
        if not await self.ctx.storage_manager.file_exists(key):
            raise MissingAudioError("Audio file not found", detail=key)

        try:
            audio_data = await self.ctx.storage_manager.read_file(key)
        except (OSError, RuntimeError) as e:
            raise MissingAudioError("Audio file not readable", detail=str(e)) from e
        if not audio_data:
            raise MissingAudioError("Audio file is empty", detail=key)

        self._advance(ProcessingStage.AUDIO_VERIFIED)
        logger.info(f"[{self.ctx.recording_id}] Loaded {len(audio_data)} bytes of audio")
        return audio_data

    async def _transcribe(self, audio_data: bytes) -> str:
        transcript = await self.ctx.transcription_service.transcribe(
            audio_data, filename=self.recording.audio_filename or "audio.webm"
        )

        # Intermediate state: the transcript survives a later stage failure. A row that
        # already holds outputs only gets a new transcript together with them.
        if not self.has_previous_outputs:
            await self.ctx.recording_repo.save_transcript(self.ctx.recording_id, transcript)
            await self.ctx.db.commit()

        self._advance(ProcessingStage.TRANSCRIBED)
        return transcript

    async def _generate_report(self, transcript: str) -> StructuredReport:
        report = await self.ctx.referto_generator.generate_referto(
            transcript,
            visit_type=self.recording.visit_type,
            doctor_name=self.recording.doctor_name,
            visit_date=self.recording.created_at,
        )
        self._advance(ProcessingStage.REPORT_GENERATED)
        return report

    async def _extract_chart(self, report: StructuredReport) -> Odontogramma:
        """Prefer the chart embedded in the report, else ask for one, else fall back."""
        if report.odontogramma is not None and report.odontogramma.has_highlights():
            chart = report.odontogramma
            logger.info(f"[{self.ctx.recording_id}] Using odontogramma embedded in the referto")
        else:
            try:
                chart = await self.ctx.referto_generator.extract_odontogramma(report)
            except ChartExtractionError as e:
                logger.warning(
                    f"[{self.ctx.recording_id}] {e.message}; continuing with empty odontogramma"
                )
                chart = Odontogramma.empty(error=e.message)

        report.odontogramma = chart
        self._advance(ProcessingStage.CHART_EXTRACTED)
        return chart

    async def _persist(
        self, transcript: str, report: StructuredReport, chart: Odontogramma
    ) -> ProcessingResult:
        """Write every output and the completed status in one UPDATE, then commit."""
        await self.ctx.recording_repo.mark_completed(
            self.ctx.recording_id,
            transcript=transcript,
            referto_data=json.dumps(report.to_document(), ensure_ascii=False),
            odontogramma_data=json.dumps(chart.model_dump(mode="json"), ensure_ascii=False),
        )
        await self.ctx.db.commit()

        self._advance(ProcessingStage.PERSISTED)
        logger.info(f"[{self.ctx.recording_id}] Processing completed")
        return ProcessingResult(
            recording_id=self.ctx.recording_id,
            doctor_name=self.recording.doctor_name,
            transcript=transcript,
            referto=report,
            odontogramma=chart,
        )

    async def _handle_failure(self, error: Exception):
        """Release the claim with the status the error calls for. The caller re-raises ``error``."""
        failed_stage = self.stage.value if self.stage else "claimed"
        self.stage = ProcessingStage.FAILED
        error_message = getattr(error, "message", None) or str(error) or type(error).__name__
        if self.has_previous_outputs:
            status = "completed"
        elif isinstance(error, MissingAudioError):
            status = "failed"
        else:
            status = "pending"

        logger.error(
            f"[{self.ctx.recording_id}] Processing failed after stage {failed_stage}, "
            f"returning to {status}: {error_message}",
            exc_info=True,
        )

        try:
            await self.ctx.db.rollback()
            await self.ctx.recording_repo.release_claim(
                self.ctx.recording_id, status, error_message
            )
            await self.ctx.db.commit()
        except Exception as cleanup_error:
            logger.error(
                f"[{self.ctx.recording_id}] Error during failure cleanup: {cleanup_error}",
                exc_info=True,
            )
