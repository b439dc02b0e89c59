# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import json
import re

import pytest
from openai import OpenAIError

from dental_scribe.exceptions import (
    MissingAudioError,
    NotFoundError,
    ProcessingConflictError,
    ReportGenerationError,
    TranscriptionError,
    ValidationError,
)
from dental_scribe.models.database.recordings_model import utcnow
from dental_scribe.repositories import RecordingRepository
from dental_scribe.services.llm import RefertoGenerator
from dental_scribe.services.storage import audio_url_for_key
from dental_scribe.services.transcription import TranscriptionService
from dental_scribe.workers import ProcessingContext, ProcessingStage, RecordingProcessor
from tests.fakes import SAMPLE_CHART, SAMPLE_TRANSCRIPT, FakeOpenAI, sample_referto

AUDIO = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 64


async def _recording(db_session, storage, with_audio=True, **overrides):
    audio_url = None
    if with_audio:
        key = await storage.save_file(AUDIO, "recording_test.wav", subfolder="recordings")
        audio_url = audio_url_for_key(key)
    fields = dict(
        studio_id="studio-1",
        patient_id="pat-1",
        visit_type="prima_visita_generica",
        doctor_name="Dr. Rossi",
        duration=42,
        audio_url=audio_url,
    )
    fields.update(overrides)
    recording = await RecordingRepository(db_session).create(**fields)
    await db_session.commit()
    return recording


def _processor(db_session, storage, settings, openai_client, recording_id):
    ctx = ProcessingContext(
        recording_id=recording_id,
        db=db_session,
        recording_repo=RecordingRepository(db_session),
        storage_manager=storage,
        transcription_service=TranscriptionService(settings, client=openai_client),
        referto_generator=RefertoGenerator(settings, client=openai_client),
        settings=settings,
    )
    return RecordingProcessor(ctx)


async def _stored(db_session, recording_id):
    return await RecordingRepository(db_session).get_by_id(recording_id, include_deleted=True)


async def test_pipeline_persists_all_outputs(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    fake = FakeOpenAI(chat_replies=[sample_referto(with_chart=True)])
    processor = _processor(db_session, storage, settings, fake, recording.id)

    result = await processor.process()

    assert processor.stage is ProcessingStage.PERSISTED
    assert result.transcript == SAMPLE_TRANSCRIPT
    assert result.doctor_name == "Dr. Rossi"
    assert result.odontogramma.denti_da_evidenziare.carie == ["36"]
    # Embedded chart is reused, so only the report request is made
    assert len(fake.chat_calls) == 1
    assert fake.transcription_calls[0]["language"] == "it"
    assert fake.transcription_calls[0]["file"] == ("recording_test.wav", AUDIO)

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "completed"
    assert stored.processing_error is None
    assert stored.transcript == SAMPLE_TRANSCRIPT
    referto = json.loads(stored.referto_data)
    assert referto["intestazione"]["tipo_visita"] == "Prima visita generica"
    assert referto["intestazione"]["medico"] == "Dr. Rossi"
    assert re.fullmatch(r"\d{2}/\d{2}/\d{4}", referto["intestazione"]["data"])
    assert referto["odontogramma"]["denti_da_evidenziare"]["mancanti"] == ["18"]
    assert json.loads(stored.odontogramma_data)["totale_denti_mancanti"] == 1


async def test_report_request_carries_transcript_doctor_and_json_mode(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    fake = FakeOpenAI(chat_replies=[sample_referto(with_chart=True)])

    await _processor(db_session, storage, settings, fake, recording.id).process()

    call = fake.chat_calls[0]
    assert call["model"] == settings.report_model
    assert call["response_format"] == {"type": "json_object"}
    user_message = call["messages"][-1]["content"]
    assert SAMPLE_TRANSCRIPT in user_message
    assert "Dr. Rossi" in user_message
    assert {"timeout": settings.report_timeout, "max_retries": 0} in fake.options


async def test_chart_requested_when_report_has_none(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    fake = FakeOpenAI(chat_replies=[sample_referto(), SAMPLE_CHART])

    result = await _processor(db_session, storage, settings, fake, recording.id).process()

    assert len(fake.chat_calls) == 2
    assert fake.chat_calls[1]["model"] == settings.chart_model
    assert result.odontogramma.denti_da_evidenziare.parodontale == ["46"]
    assert result.referto.odontogramma == result.odontogramma


@pytest.mark.parametrize(
    "chart_reply",
    [OpenAIError("connection reset"), "non json", ["36"], {"risposta": "nessun dente"}],
)
async def test_chart_failure_falls_back_to_empty_chart(db_session, storage, settings, chart_reply):
    recording = await _recording(db_session, storage)
    fake = FakeOpenAI(chat_replies=[sample_referto(), chart_reply])

    result = await _processor(db_session, storage, settings, fake, recording.id).process()

    chart = result.odontogramma
    assert chart.errore
    assert not chart.has_highlights()
    assert chart.completezza.denti_classificati == 0

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "completed"
    stored_chart = json.loads(stored.odontogramma_data)
    assert sorted(stored_chart["denti_da_evidenziare"]) == sorted(
        ["mancanti", "carie", "restauri", "endodonzia", "estrazioni", "impianti", "protesi", "parodontale"]
    )


@pytest.mark.parametrize("transcript", [OpenAIError("timeout"), "", "   "])
async def test_transcription_failure_returns_recording_to_pending(db_session, storage, settings, transcript):
    recording = await _recording(db_session, storage)
    fake = FakeOpenAI(transcript=transcript)

    with pytest.raises(TranscriptionError):
        await _processor(db_session, storage, settings, fake, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "pending"
    assert stored.processing_error
    assert stored.referto_data is None
    assert fake.chat_calls == []


@pytest.mark.parametrize("reply", ["{non valido", "", "[]", {}, OpenAIError("rate limited")])
async def test_report_failure_keeps_transcript(db_session, storage, settings, reply):
    recording = await _recording(db_session, storage)
    fake = FakeOpenAI(chat_replies=[reply])

    with pytest.raises(ReportGenerationError):
        await _processor(db_session, storage, settings, fake, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "pending"
    assert stored.processing_error.startswith("Generazione referto fallita")
    assert stored.transcript == SAMPLE_TRANSCRIPT
    assert stored.referto_data is None
    assert stored.odontogramma_data is None


async def test_missing_audio_file_marks_failed(db_session, storage, settings):
    recording = await _recording(db_session, storage, with_audio=False)
    await RecordingRepository(db_session).update(
        recording.id, audio_url="/api/uploads/recordings/gone.webm"
    )
    await db_session.commit()
    fake = FakeOpenAI()

    with pytest.raises(MissingAudioError):
        await _processor(db_session, storage, settings, fake, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "failed"
    assert stored.processing_error == "Audio file not found"
    assert fake.transcription_calls == []


async def test_unknown_or_deleted_recording_is_not_found(db_session, storage, settings):
    with pytest.raises(NotFoundError):
        await _processor(db_session, storage, settings, FakeOpenAI(), "missing").process()

    recording = await _recording(db_session, storage)
    await RecordingRepository(db_session).soft_delete(recording.id)
    await db_session.commit()
    with pytest.raises(NotFoundError):
        await _processor(db_session, storage, settings, FakeOpenAI(), recording.id).process()


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"doctor_name": None}, "doctor_name"),
        ({"doctor_name": "  "}, "doctor_name"),
        ({"visit_type": None}, "visit_type"),
        ({"visit_type": "visita_estetica"}, "visit_type"),
    ],
)
async def test_invalid_recording_is_rejected_untouched(db_session, storage, settings, overrides, field):
    recording = await _recording(db_session, storage, **overrides)

    with pytest.raises(ValidationError) as exc_info:
        await _processor(db_session, storage, settings, FakeOpenAI(), recording.id).process()

    assert exc_info.value.field == field
    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "pending"


async def test_concurrent_run_is_rejected(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    await RecordingRepository(db_session).claim_for_processing(recording.id, utcnow())
    await db_session.commit()
    fake = FakeOpenAI()

    with pytest.raises(ProcessingConflictError):
        await _processor(db_session, storage, settings, fake, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "processing"
    assert fake.transcription_calls == []


async def test_failed_recording_can_be_retried(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    with pytest.raises(TranscriptionError):
        await _processor(
            db_session, storage, settings, FakeOpenAI(transcript=""), recording.id
        ).process()

    fake = FakeOpenAI(chat_replies=[sample_referto(with_chart=True)])
    await _processor(db_session, storage, settings, fake, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "completed"
    assert stored.processing_error is None


async def test_failed_rerun_keeps_previous_outputs_together(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    first = FakeOpenAI(chat_replies=[sample_referto(with_chart=True)])
    await _processor(db_session, storage, settings, first, recording.id).process()
    before = await _stored(db_session, recording.id)
    referto_before, chart_before = before.referto_data, before.odontogramma_data

    rerun = FakeOpenAI(transcript="nuovo testo", chat_replies=["{non valido"])
    with pytest.raises(ReportGenerationError):
        await _processor(db_session, storage, settings, rerun, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "completed"
    assert stored.processing_error.startswith("Generazione referto fallita")
    assert stored.transcript == SAMPLE_TRANSCRIPT
    assert stored.referto_data == referto_before
    assert stored.odontogramma_data == chart_before


async def test_successful_rerun_replaces_outputs(db_session, storage, settings):
    recording = await _recording(db_session, storage)
    first = FakeOpenAI(chat_replies=[sample_referto(with_chart=True)])
    await _processor(db_session, storage, settings, first, recording.id).process()

    document = sample_referto(with_chart=True)
    document["conclusioni"]["diagnosi"] = "Parodontite localizzata 46"
    rerun = FakeOpenAI(transcript="nuovo testo", chat_replies=[document])
    await _processor(db_session, storage, settings, rerun, recording.id).process()

    stored = await _stored(db_session, recording.id)
    assert stored.processing_status == "completed"
    assert stored.processing_error is None
    assert stored.transcript == "nuovo testo"
    assert json.loads(stored.referto_data)["conclusioni"]["diagnosi"] == "Parodontite localizzata 46"
