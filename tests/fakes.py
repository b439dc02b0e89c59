# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Test doubles shared across the suite."""
import copy
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

SAMPLE_TRANSCRIPT = (
    "Paziente di 45 anni, viene per dolore al 36 da una settimana. Iperteso, prende ramipril. "
    "Nessuna allergia nota. Fuma dieci sigarette al giorno. Carie distale sul 36, manca il 18, "
    "otturazione in composito sul 25 in buono stato. Tasca di 5 millimetri sul 46."
)

SAMPLE_REFERTO: Dict[str, Any] = {
    "intestazione": {"data": "Non specificato", "medico": "Non specificato"},
    "anamnesi": {
        "motivo_visita": {"contenuto": "Dolore al 36 da una settimana"},
        "anamnesi_medica_generale": {"contenuto": "Ipertensione"},
        "farmaci_assunti": {"contenuto": "Ramipril"},
        "allergie": {"contenuto": "Nessuna allergia nota"},
        "abitudini": {"contenuto": "Fumatore, 10 sigarette al giorno"},
    },
    "1_elementi_dentari": {"mappa": {"18": "mancante", "36": "presente"}},
    "2_carie": {"lesioni": [{"dente": "36", "superfici": "distale", "profondita": "media"}]},
    "3_restauri": {"restauri": [{"dente": 25, "tipo": "otturazione", "materiale": "composito"}]},
    "7_igiene_parodontologia": {"tasche": [{"dente": "46", "profondita_mm": "5 mm"}]},
    "conclusioni": {
        "diagnosi": "Carie distale 36",
        "piano_terapeutico": "Restauro conservativo 36",
        "follow_up": "Controllo tra 6 mesi",
    },
}

SAMPLE_CHART: Dict[str, Any] = {
    "denti_da_evidenziare": {
        "mancanti": ["18"],
        "carie": ["36"],
        "restauri": ["25"],
        "parodontale": ["46"],
    }
}


def sample_referto(with_chart: bool = False) -> Dict[str, Any]:
    document = copy.deepcopy(SAMPLE_REFERTO)
    if with_chart:
        document["odontogramma"] = copy.deepcopy(SAMPLE_CHART)
    return document


def _completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeOpenAI:
    """Stands in for ``AsyncOpenAI``: ``with_options`` then the two endpoints used.

    ``chat_replies`` are consumed in order; each is a dict (sent as JSON), a raw
    string, or an exception to raise.
    """

    def __init__(
        self,
        transcript: Any = SAMPLE_TRANSCRIPT,
        chat_replies: Optional[List[Any]] = None,
    ):
        self.transcript = transcript
        self.chat_replies = list(chat_replies or [])
        self.options: List[Dict[str, Any]] = []
        self.transcription_calls: List[Dict[str, Any]] = []
        self.chat_calls: List[Dict[str, Any]] = []
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._transcribe))
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._complete))

    def with_options(self, **options):
        self.options.append(options)
        return self

    async def _transcribe(self, **kwargs):
        self.transcription_calls.append(kwargs)
        if isinstance(self.transcript, Exception):
            raise self.transcript
        return SimpleNamespace(text=self.transcript)

    async def _complete(self, **kwargs):
        self.chat_calls.append(kwargs)
        if not self.chat_replies:
            raise AssertionError("Unexpected chat completion request")
        reply = self.chat_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return _completion(reply)
        return _completion(json.dumps(reply))


class FakeApi:
    """Scripted ``ScribeApiClient`` for the poller and the screen controllers.

    ``responses`` are returned by ``get_referto`` in order, the last one repeating.
    Exceptions in the list are raised instead.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        process_result: Any = None,
        create_result: Any = None,
    ):
        self.responses = list(responses or [{}])
        self.process_result = process_result or {"success": True}
        self.create_result = create_result or {}
        self.created: List[Dict[str, Any]] = []
        self.referto_calls = 0
        self.process_calls = 0
        self.updates: List[Dict[str, Any]] = []

    async def get_referto(self, recording_id: str):
        self.referto_calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def process_recording(self, recording_id: str):
        self.process_calls += 1
        if isinstance(self.process_result, Exception):
            raise self.process_result
        return self.process_result

    async def update_recording(self, recording_id: str, **fields):
        self.updates.append(fields)
        return {"id": recording_id, **fields}

    async def create_recording(self, **fields):
        self.created.append(fields)
        if isinstance(self.create_result, Exception):
            raise self.create_result
        return {"id": "rec-new", **self.create_result}


def status_payload(status: str, referto: Any = None, **extra) -> Dict[str, Any]:
    payload = {
        "success": True,
        "recordingId": "rec-1",
        "patientId": "pat-1",
        "processingStatus": status,
        "referto": referto,
        "odontogramma": None,
        "processingError": None,
    }
    payload.update(extra)
    return payload


class FakeStream:
    """Input stream double; ``feed`` plays audio through the recorder callback."""

    def __init__(self, callback):
        self.callback = callback
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True

    def feed(self, data: bytes):
        self.callback(data, len(data) // 2, None, None)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
