# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio

import pytest

from dental_scribe.client.config import ClientSettings, get_client_settings
from dental_scribe.client.poller import TIMEOUT_MESSAGE, PollState
from dental_scribe.client.recorder import AudioRecorder
from dental_scribe.client.report_view import ReportView
from dental_scribe.client.visit import VisitController
from dental_scribe.exceptions import TransportError, ValidationError
from tests.fakes import SAMPLE_CHART, FakeApi, FakeClock, FakeStream, sample_referto, status_payload


async def no_sleep(seconds):
    return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def streams():
    return []


@pytest.fixture
def recorder(clock, streams):
    def factory(samplerate, channels, device, callback):
        stream = FakeStream(callback)
        streams.append(stream)
        return stream

    return AudioRecorder(clock=clock, stream_factory=factory)


@pytest.fixture
def visit(recorder):
    controller = VisitController(FakeApi(), recorder, studio_id="studio-1", user_id="user-1")
    controller.select("pat-1", "prima_visita_generica", "  Dr. Rossi ", consents_accepted=True)
    return controller


@pytest.fixture
def settings():
    return ClientSettings(poll_interval=0, max_attempts=3)


@pytest.mark.parametrize(
    "patient_id,visit_type,doctor_name,consents,field",
    [
        (None, "prima_visita_generica", "Dr. Rossi", True, "patient_id"),
        ("pat-1", None, "Dr. Rossi", True, "visit_type"),
        ("pat-1", "igiene", "Dr. Rossi", True, "visit_type"),
        ("pat-1", "prima_visita_generica", "   ", True, "doctor_name"),
        ("pat-1", "prima_visita_generica", "Dr. Rossi", False, "consents"),
    ],
)
def test_visit_form_validation(visit, streams, patient_id, visit_type, doctor_name, consents, field):
    visit.select(patient_id, visit_type, doctor_name, consents_accepted=consents)

    with pytest.raises(ValidationError) as exc_info:
        visit.start()

    assert exc_info.value.field == field
    assert streams == []


async def test_submit_uploads_wav_and_resets(visit, recorder, streams, clock):
    assert visit.start()
    streams[0].feed(b"\x01\x00" * 800)
    clock.advance(42)

    recording = await visit.submit()

    assert recording["id"] == "rec-new"
    assert visit.last_recording == recording
    created = visit.api.created[0]
    assert created["audio"].startswith(b"RIFF")
    assert created["duration"] == 42
    assert created["audio_format"] == "wav"
    assert created["doctor_name"] == "Dr. Rossi"
    assert created["studio_id"] == "studio-1"
    assert created["user_id"] == "user-1"
    assert streams[0].closed
    assert not recorder.is_recording
    assert recorder.get_blob() is None


async def test_submit_without_audio_is_rejected(visit):
    with pytest.raises(ValidationError) as exc_info:
        await visit.submit()

    assert exc_info.value.field == "audio_data"
    assert visit.api.created == []


async def test_failed_upload_keeps_audio(recorder, streams):
    api = FakeApi(create_result=TransportError("rete assente"))
    visit = VisitController(api, recorder, studio_id="studio-1")
    visit.select("pat-1", "visita_parodontale", "Dr. Rossi", consents_accepted=True)
    assert visit.start()
    streams[0].feed(b"\x00\x00" * 100)
    assert visit.stop()

    with pytest.raises(TransportError):
        await visit.submit()

    assert recorder.get_blob() is not None
    assert visit.last_recording is None


async def test_report_view_renders_completed_report(settings):
    api = FakeApi(
        [
            status_payload("processing"),
            status_payload("completed", referto=sample_referto(), odontogramma=SAMPLE_CHART),
        ]
    )
    view = ReportView(api, "rec-1", settings=settings, sleep=no_sleep)

    outcome = await view.open()

    assert outcome.state is PollState.COMPLETED
    assert view.state is PollState.COMPLETED
    assert view.message is None
    assert 'id="tooth-36"' in view.html
    assert view.describe_tooth("36") == "Dente 36: Carie"
    assert view.chart.lookup_tooth("18").category == "mancanti"


async def test_report_view_timeout_message(settings):
    api = FakeApi([status_payload("processing")])
    view = ReportView(api, "rec-1", settings=settings, sleep=no_sleep)

    outcome = await view.open()

    assert outcome.state is PollState.TIMED_OUT
    assert api.referto_calls == 3
    assert view.message == TIMEOUT_MESSAGE
    assert view.html is None
    assert view.describe_tooth("36") is None


async def test_report_view_processing_failure(settings):
    api = FakeApi([status_payload("failed", processingError="Trascrizione fallita: timeout")])
    view = ReportView(api, "rec-1", settings=settings, sleep=no_sleep)

    outcome = await view.open()

    assert outcome.state is PollState.ERRORED
    assert view.message == "Errore nell'elaborazione del referto: Trascrizione fallita: timeout"


async def test_closing_report_view_stops_polling(settings):
    blocked = asyncio.Event()

    async def wait_forever(seconds):
        await blocked.wait()

    api = FakeApi([status_payload("processing")])
    view = ReportView(api, "rec-1", settings=settings, sleep=wait_forever)
    opening = asyncio.create_task(view.open())
    for _ in range(5):
        await asyncio.sleep(0)

    view.close()

    with pytest.raises(asyncio.CancelledError):
        await opening
    assert api.referto_calls == 1
    assert view.html is None


async def test_save_edits_rerenders_from_stored_values(settings):
    api = FakeApi([status_payload("processing")])
    view = ReportView(api, "rec-1", settings=settings, sleep=no_sleep)

    chart = {"denti_da_evidenziare": {"impianti": ["36"]}}
    await view.save_edits(referto=sample_referto(), odontogramma=chart, doctor_name="Dr. Bianchi")

    assert api.updates == [
        {
            "referto_data": sample_referto(),
            "odontogramma_data": chart,
            "doctor_name": "Dr. Bianchi",
        }
    ]
    assert view.describe_tooth(36) == "Dente 36: Impianti"
    assert "Carie distale 36" in view.html


def test_report_view_uses_shared_client_settings(monkeypatch):
    monkeypatch.setenv("DENTAL_SCRIBE_POLL_INTERVAL", "2.5")
    monkeypatch.setenv("DENTAL_SCRIBE_MAX_ATTEMPTS", "10")
    get_client_settings.cache_clear()
    try:
        view = ReportView(FakeApi(), "rec-1")

        assert view.poller.interval == 2.5
        assert view.poller.max_attempts == 10
        assert get_client_settings() is get_client_settings()
    finally:
        get_client_settings.cache_clear()
