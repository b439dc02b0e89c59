# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Recordings router: persistence, processing trigger and report status."""
import base64
import binascii
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from dental_scribe.database import get_db
from dental_scribe.deps import Settings, get_settings
from dental_scribe.exceptions import NotFoundError, ValidationError
from dental_scribe.models import database as db_models
from dental_scribe.models.api import (
    DeleteResponse,
    Odontogramma,
    ProcessResponse,
    RecordingCreate,
    RecordingDetailResponse,
    RecordingListResponse,
    RecordingResponse,
    RecordingUpdate,
    RefertoStatusResponse,
    parse_report,
    unwrap_referto,
)
from dental_scribe.repositories import RecordingRepository
from dental_scribe.services.llm import RefertoGenerator
from dental_scribe.services.storage import AudioStorage, audio_key_from_url, audio_url_for_key
from dental_scribe.services.transcription import TranscriptionService
from dental_scribe.services.visit_types import get_visit_type
from dental_scribe.workers import ProcessingContext, RecordingProcessor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/recordings", tags=["recordings"])
limiter = Limiter(key_func=get_remote_address)

# MIME subtype to file extension for incoming audio
_AUDIO_EXTENSIONS = {
    "webm": "webm",
    "wav": "wav",
    "x-wav": "wav",
    "wave": "wav",
    "ogg": "ogg",
    "mpeg": "mp3",
    "mp3": "mp3",
    "mp4": "m4a",
    "m4a": "m4a",
    "x-m4a": "m4a",
    "flac": "flac",
}


def get_storage_manager(request: Request) -> AudioStorage:
    """Get storage manager from app state."""
    return request.app.state.storage_manager


def get_transcription_service(request: Request) -> TranscriptionService:
    """Get transcription service from app state."""
    return request.app.state.transcription_service


def get_referto_generator(request: Request) -> RefertoGenerator:
    """Get report generator from app state."""
    return request.app.state.referto_generator


def _process_rate_limit() -> str:
    return get_settings().process_rate_limit


def decode_audio_payload(audio_data: str, audio_format: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Decode base64 audio, optionally wrapped in a ``data:`` URL.

    Returns:
        Tuple of raw bytes and file extension

    Raises:
        ValidationError: not valid base64, empty, or an unsupported format
    """
    mime_subtype = None
    encoded = audio_data.strip()
    if encoded.startswith("data:"):
        header, _, encoded = encoded.partition(",")
        # data:audio/webm;codecs=opus;base64
        mime = header[len("data:"):].split(";", 1)[0]
        mime_subtype = mime.split("/", 1)[-1] if "/" in mime else None

    extension = _AUDIO_EXTENSIONS.get((audio_format or mime_subtype or "webm").lower().lstrip("."))
    if extension is None:
        raise ValidationError(
            f"Formato audio non supportato: {audio_format or mime_subtype}", field="audio_format"
        )

    try:
        audio_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("audio_data non è base64 valido", field="audio_data") from e
    if not audio_bytes:
        raise ValidationError("audio_data è vuoto", field="audio_data")
    return audio_bytes, extension


def _load_json(raw: Optional[str], recording_id: str, column: str) -> Optional[Any]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"Recording {recording_id} has invalid JSON in {column}")
        return None


def _stored_referto(recording: db_models.Recording) -> Optional[Dict[str, Any]]:
    document = unwrap_referto(_load_json(recording.referto_data, recording.id, "referto_data"))
    return document if isinstance(document, dict) else None


def _stored_odontogramma(recording: db_models.Recording) -> Optional[Dict[str, Any]]:
    chart = _load_json(recording.odontogramma_data, recording.id, "odontogramma_data")
    return chart if isinstance(chart, dict) else None


def _to_response(recording: db_models.Recording) -> RecordingResponse:
    return RecordingResponse(
        id=recording.id,
        studio_id=recording.studio_id,
        patient_id=recording.patient_id,
        user_id=recording.user_id,
        duration=recording.duration,
        visit_type=recording.visit_type,
        doctor_name=recording.doctor_name,
        audio_url=recording.audio_url,
        transcript=recording.transcript,
        referto_data=_stored_referto(recording),
        odontogramma_data=_stored_odontogramma(recording),
        processing_status=recording.processing_status,
        processing_error=recording.processing_error,
        status=recording.status,
        created_at=recording.created_at,
        updated_at=recording.updated_at,
    )


async def _get_recording(
    db: AsyncSession, recording_id: str, studio_id: Optional[str] = None
) -> db_models.Recording:
    """Fetch a visible recording, scoped to ``studio_id`` when given."""
    recording = await RecordingRepository(db).get_by_id(recording_id)
    if recording is None or (studio_id and recording.studio_id != studio_id):
        raise NotFoundError(f"Registrazione {recording_id} non trovata")
    return recording


def _require(value: Optional[str], field: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field} è obbligatorio", field=field)
    return value.strip()


@router.get("", response_model=RecordingListResponse)
async def list_recordings(
    studio_id: Optional[str] = Query(None),
    patient_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List a studio's recordings, newest first."""
    studio_id = _require(studio_id, "studio_id")
    recordings = await RecordingRepository(db).list_by_studio(studio_id, patient_id=patient_id)
    return RecordingListResponse(
        count=len(recordings), recordings=[_to_response(r) for r in recordings]
    )


@router.get("/patient/{patient_id}", response_model=RecordingListResponse)
async def list_patient_recordings(
    patient_id: str,
    studio_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List one patient's recordings within a studio, newest first."""
    studio_id = _require(studio_id, "studio_id")
    recordings = await RecordingRepository(db).list_by_patient(patient_id, studio_id)
    return RecordingListResponse(
        count=len(recordings), recordings=[_to_response(r) for r in recordings]
    )


@router.post("", response_model=RecordingDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_recording(
    payload: RecordingCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    storage: AudioStorage = Depends(get_storage_manager),
):
    """
    Persist a recording and its audio.

    The row starts with ``processing_status=pending``. If the audio cannot be
    stored the row is still created, and processing will report the missing audio.
    """
    studio_id = _require(payload.studio_id, "studio_id")
    patient_id = _require(payload.patient_id, "patient_id")
    if payload.visit_type and get_visit_type(payload.visit_type) is None:
        raise ValidationError(
            f"Tipo di visita non supportato: {payload.visit_type}", field="visit_type"
        )
    if payload.duration < 0:
        raise ValidationError("duration non può essere negativa", field="duration")

    recording_id = str(uuid4())
    audio_url = None
    if payload.audio_data:
        audio_bytes, extension = decode_audio_payload(payload.audio_data, payload.audio_format)
        if len(audio_bytes) > settings.max_audio_bytes:
            raise ValidationError(
                f"Audio troppo grande: {len(audio_bytes)} byte (massimo {settings.max_audio_bytes})",
                field="audio_data",
            )
        filename = f"recording_{recording_id}_{int(time.time() * 1000)}.{extension}"
        try:
            key = await storage.save_file(
                audio_bytes, filename, subfolder=settings.recordings_subfolder
            )
            audio_url = audio_url_for_key(key)
        except (OSError, RuntimeError, ValueError) as e:
            logger.error(f"Failed to store audio for recording {recording_id}: {e}", exc_info=True)

    recording = await RecordingRepository(db).create(
        recording_id=recording_id,
        studio_id=studio_id,
        patient_id=patient_id,
        user_id=payload.user_id,
        visit_type=payload.visit_type,
        doctor_name=payload.doctor_name.strip() if payload.doctor_name else None,
        duration=payload.duration,
        audio_url=audio_url,
    )
    await db.commit()

    logger.info(
        f"Created recording {recording.id} for patient {patient_id} "
        f"(studio {studio_id}, {payload.duration}s, audio={'yes' if audio_url else 'no'})"
    )
    return RecordingDetailResponse(recording=_to_response(recording))


@router.get("/{recording_id}", response_model=RecordingDetailResponse)
async def get_recording(
    recording_id: str,
    studio_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Get a single recording."""
    recording = await _get_recording(db, recording_id, studio_id)
    return RecordingDetailResponse(recording=_to_response(recording))


@router.put("/{recording_id}", response_model=RecordingDetailResponse)
async def update_recording(
    recording_id: str,
    payload: RecordingUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update the editable fields of a recording. Visit type cannot change."""
    await _get_recording(db, recording_id, payload.studio_id)

    changes: Dict[str, Any] = {}
    if payload.doctor_name is not None:
        changes["doctor_name"] = _require(payload.doctor_name, "doctor_name")
    if payload.transcript is not None:
        changes["transcript"] = payload.transcript
    if payload.referto_data is not None:
        try:
            report = parse_report(payload.referto_data)
        except ValueError as e:
            raise ValidationError("referto_data non valido", field="referto_data", detail=str(e)) from e
        changes["referto_data"] = json.dumps(report.to_document(), ensure_ascii=False)
    if payload.odontogramma_data is not None:
        chart = Odontogramma.from_payload(payload.odontogramma_data)
        changes["odontogramma_data"] = json.dumps(chart.model_dump(mode="json"), ensure_ascii=False)

    recording = await RecordingRepository(db).update(recording_id, **changes)
    await db.commit()

    logger.info(f"Updated recording {recording_id}: {sorted(changes)}")
    return RecordingDetailResponse(recording=_to_response(recording))


@router.delete("/{recording_id}", response_model=DeleteResponse)
async def delete_recording(
    recording_id: str,
    studio_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    storage: AudioStorage = Depends(get_storage_manager),
):
    """Soft-delete a recording and remove its audio on a best-effort basis."""
    await _get_recording(db, recording_id, studio_id)
    recording = await RecordingRepository(db).soft_delete(recording_id)
    audio_url = recording.audio_url
    await db.commit()

    if audio_url:
        key = audio_key_from_url(audio_url)
        try:
            if not await storage.delete_file(key):
                logger.warning(f"Audio {key} of deleted recording {recording_id} was not removed")
        except Exception as e:
            logger.warning(f"Audio removal failed for recording {recording_id}: {e}", exc_info=True)

    logger.info(f"Deleted recording {recording_id}")
    return DeleteResponse(message="Registrazione eliminata")


@router.post("/{recording_id}/process", response_model=ProcessResponse)
@limiter.limit(_process_rate_limit)
async def process_recording(
    request: Request,
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    storage: AudioStorage = Depends(get_storage_manager),
    transcription_service: TranscriptionService = Depends(get_transcription_service),
    referto_generator: RefertoGenerator = Depends(get_referto_generator),
):
    """
    Run transcription, report generation and chart extraction synchronously.

    Returns 409 while another run holds the recording.
    """
    ctx = ProcessingContext(
        recording_id=recording_id,
        db=db,
        recording_repo=RecordingRepository(db),
        storage_manager=storage,
        transcription_service=transcription_service,
        referto_generator=referto_generator,
        settings=settings,
    )
    result = await RecordingProcessor(ctx).process()

    return ProcessResponse(
        recording_id=result.recording_id,
        doctor_name=result.doctor_name,
        transcript=result.transcript,
        referto=result.referto.to_document(),
        odontogramma=result.odontogramma.model_dump(mode="json"),
    )


@router.get("/{recording_id}/referto", response_model=RefertoStatusResponse)
async def get_referto(
    recording_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Processing status and outputs, polled by the report view."""
    recording = await _get_recording(db, recording_id)
    return RefertoStatusResponse(
        recording_id=recording.id,
        patient_id=recording.patient_id,
        visit_type=recording.visit_type,
        doctor_name=recording.doctor_name,
        transcript=recording.transcript,
        referto=_stored_referto(recording),
        odontogramma=_stored_odontogramma(recording),
        processing_status=recording.processing_status or "pending",
        processing_error=recording.processing_error,
        created_at=recording.created_at,
    )
