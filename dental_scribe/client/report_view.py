# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Controller for the report screen of one recording."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .api import ScribeApiClient
from .config import ClientSettings, get_client_settings
from .poller import PollOutcome, PollState, RefertoPoller
from .renderer import ChartView, RefertoRenderer, ReportViewModel

logger = logging.getLogger(__name__)


class ReportView:
    """Waits for a recording's report and renders it.

    One instance per opened view; ``close`` cancels polling and any in-flight
    processing trigger.
    """

    def __init__(
        self,
        api: ScribeApiClient,
        recording_id: str,
        settings: Optional[ClientSettings] = None,
        renderer: Optional[RefertoRenderer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        settings = settings or get_client_settings()
        self.api = api
        self.recording_id = recording_id
        self.renderer = renderer or RefertoRenderer()
        self.poller = RefertoPoller(
            api,
            recording_id,
            interval=settings.poll_interval,
            max_attempts=settings.max_attempts,
            sleep=sleep,
        )
        self.outcome: Optional[PollOutcome] = None
        self.view_model: Optional[ReportViewModel] = None
        self.html: Optional[str] = None
        self.message: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> PollState:
        return self.poller.state

    async def open(self) -> PollOutcome:
        """Poll until the report settles and render it on completion."""
        self._task = asyncio.create_task(self.poller.run())
        self.outcome = await self._task

        if self.outcome.state is PollState.COMPLETED:
            payload = self.outcome.payload or {}
            self.view_model = self.renderer.build(self.outcome.referto, payload.get("odontogramma"))
            self.html = self.renderer.render(self.outcome.referto, payload.get("odontogramma"))
            logger.info(f"[{self.recording_id}] Report rendered after {self.outcome.attempts} polls")
        elif self.outcome.state is PollState.TIMED_OUT:
            self.message = self.outcome.error
        else:
            self.message = f"Errore nell'elaborazione del referto: {self.outcome.error}"
            logger.error(f"[{self.recording_id}] {self.message}")
        return self.outcome

    def close(self):
        """Leave the view: stop polling and drop the pending trigger."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.poller.cancel_trigger()

    @property
    def chart(self) -> Optional[ChartView]:
        return self.view_model.chart if self.view_model else None

    def describe_tooth(self, tooth: Any) -> Optional[str]:
        return self.chart.describe_tooth(tooth) if self.chart else None

    async def save_edits(
        self,
        referto: Any = None,
        odontogramma: Any = None,
        doctor_name: Optional[str] = None,
    ):
        """Store clinician corrections and re-render from the normalized result."""
        fields = {
            key: value
            for key, value in (
                ("referto_data", referto),
                ("odontogramma_data", odontogramma),
                ("doctor_name", doctor_name),
            )
            if value is not None
        }
        recording = await self.api.update_recording(self.recording_id, **fields)
        self.view_model = self.renderer.build(
            recording.get("referto_data"), recording.get("odontogramma_data")
        )
        self.html = self.renderer.render(
            recording.get("referto_data"), recording.get("odontogramma_data")
        )
        return recording
