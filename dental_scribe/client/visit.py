# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Controller for the recording screen of one visit."""
import logging
from typing import Any, Dict, Optional

from dental_scribe.exceptions import ValidationError
from dental_scribe.services.visit_types import get_visit_type

from .api import ScribeApiClient
from .recorder import AudioRecorder

logger = logging.getLogger(__name__)


class VisitController:
    """Holds the state of one visit: the selected patient, the form and the recorder."""

    def __init__(
        self,
        api: ScribeApiClient,
        recorder: AudioRecorder,
        studio_id: str,
        user_id: Optional[str] = None,
    ):
        self.api = api
        self.recorder = recorder
        self.studio_id = studio_id
        self.user_id = user_id
        self.patient_id: Optional[str] = None
        self.visit_type: Optional[str] = None
        self.doctor_name: Optional[str] = None
        self.consents_accepted = False
        self.last_recording: Optional[Dict[str, Any]] = None

    def select(
        self,
        patient_id: Optional[str],
        visit_type: Optional[str],
        doctor_name: Optional[str],
        consents_accepted: bool = False,
    ):
        self.patient_id = patient_id
        self.visit_type = visit_type
        self.doctor_name = doctor_name.strip() if doctor_name else None
        self.consents_accepted = consents_accepted

    def validate(self):
        """
        Check the form before recording or upload.

        Raises:
            ValidationError: first missing or invalid field, with ``field`` set
        """
        if not self.patient_id:
            raise ValidationError("Seleziona un paziente", field="patient_id")
        if not self.visit_type:
            raise ValidationError("Seleziona una tipologia di visita", field="visit_type")
        if get_visit_type(self.visit_type) is None:
            raise ValidationError(
                f"Tipologia di visita non supportata: {self.visit_type}", field="visit_type"
            )
        if not self.doctor_name:
            raise ValidationError("Inserisci il nome del dottore", field="doctor_name")
        if not self.consents_accepted:
            raise ValidationError(
                "Accetta Privacy Policy e Termini & Condizioni", field="consents"
            )

    def start(self) -> bool:
        self.validate()
        return self.recorder.start()

    def pause(self) -> bool:
        return self.recorder.pause()

    def resume(self) -> bool:
        return self.recorder.resume()

    def stop(self) -> bool:
        return self.recorder.stop()

    async def submit(self) -> Dict[str, Any]:
        """
        Upload the captured audio and clear the recorder.

        Returns:
            The created recording; its id opens the report view

        Raises:
            ValidationError: invalid form or nothing recorded
            ApiError, TransportError: upload failed; the recorder keeps its audio
        """
        self.validate()
        if self.recorder.is_recording:
            self.recorder.stop()
        audio = self.recorder.get_blob()
        if audio is None:
            raise ValidationError("Nessuna registrazione disponibile", field="audio_data")

        duration = self.recorder.get_duration()
        logger.info(
            f"Uploading {len(audio)} bytes ({duration}s) for patient {self.patient_id}, "
            f"visit {self.visit_type}, doctor {self.doctor_name}"
        )
        recording = await self.api.create_recording(
            studio_id=self.studio_id,
            patient_id=self.patient_id,
            audio=audio,
            duration=duration,
            visit_type=self.visit_type,
            doctor_name=self.doctor_name,
            user_id=self.user_id,
            audio_format="wav",
        )
        self.recorder.reset()
        self.last_recording = recording
        return recording
