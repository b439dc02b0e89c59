# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Polls a recording's report until it completes, fails or runs out of attempts."""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from dental_scribe.exceptions import ApiError, DentalScribeError, PollingTimeout, TransportError
from dental_scribe.models.api import unwrap_referto

from .api import ScribeApiClient

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("pending", "processing")
TIMEOUT_MESSAGE = "Il referto non è ancora pronto. Riprova più tardi."
# Error codes of a processing run that ended without a report
PIPELINE_FAILURE_CODES = ("transcription_failed", "report_generation_failed", "audio_not_found")


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


@dataclass
class PollOutcome:
    """Final result of a polling session."""

    state: PollState
    attempts: int
    payload: Optional[Dict[str, Any]] = None
    referto: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timeout: Optional[PollingTimeout] = None


class RefertoPoller:
    """
    State machine for one report view.

    Fetches the report status immediately and then every ``interval`` seconds, at
    most ``max_attempts`` times. If the first observation is ``pending`` it fires a
    single non-blocking processing trigger. When that run reports a pipeline failure
    and the row is back at ``pending``, the next observation ends polling as ERRORED.
    Transport errors count as a pending observation without triggering.
    """

    def __init__(
        self,
        api: ScribeApiClient,
        recording_id: str,
        interval: float = 5.0,
        max_attempts: int = 24,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api = api
        self.recording_id = recording_id
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

        self.state = PollState.IDLE
        self.attempts = 0
        self.trigger_sent = False
        self.trigger_task: Optional[asyncio.Task] = None
        self.trigger_error: Optional[ApiError] = None
        self.outcome: Optional[PollOutcome] = None

    async def run(self) -> PollOutcome:
        """Poll until a terminal state. Cancelling the caller cancels the trigger too."""
        if self.state is not PollState.IDLE:
            raise RuntimeError(f"Poller for {self.recording_id} already ran")
        self.state = PollState.POLLING

        try:
            while self.attempts < self.max_attempts:
                outcome = await self._poll_once()
                if outcome is not None:
                    return self._settle(outcome)
                if self.attempts < self.max_attempts:
                    await self._sleep(self.interval)
        except asyncio.CancelledError:
            self.cancel_trigger()
            raise

        logger.warning(f"[{self.recording_id}] No report after {self.attempts} attempts")
        return self._settle(
            PollOutcome(
                state=PollState.TIMED_OUT,
                attempts=self.attempts,
                error=TIMEOUT_MESSAGE,
                timeout=PollingTimeout(TIMEOUT_MESSAGE),
            )
        )

    async def _poll_once(self) -> Optional[PollOutcome]:
        """One fetch. Returns an outcome when the observation is terminal."""
        self.attempts += 1
        try:
            payload = await self.api.get_referto(self.recording_id)
        except TransportError as e:
            logger.warning(f"[{self.recording_id}] Poll {self.attempts} failed: {e.message}")
            return None
        except ApiError as e:
            if e.status_code >= 500:
                logger.warning(f"[{self.recording_id}] Poll {self.attempts} got {e.status_code}")
                return None
            return PollOutcome(state=PollState.ERRORED, attempts=self.attempts, error=e.message)

        payload = payload if isinstance(payload, dict) else {}
        status = payload.get("processingStatus") or "pending"
        referto = unwrap_referto(payload.get("referto"))
        logger.info(f"[{self.recording_id}] Poll {self.attempts}/{self.max_attempts}: {status}")

        if status == "completed" and isinstance(referto, dict) and referto:
            return PollOutcome(
                state=PollState.COMPLETED, attempts=self.attempts, payload=payload, referto=referto
            )
        if status == "failed":
            return PollOutcome(
                state=PollState.ERRORED,
                attempts=self.attempts,
                payload=payload,
                error=payload.get("processingError") or "Elaborazione non riuscita",
            )
        if status not in ACTIVE_STATUSES and status != "completed":
            return PollOutcome(
                state=PollState.ERRORED,
                attempts=self.attempts,
                payload=payload,
                error=f"Stato di elaborazione sconosciuto: {status}",
            )

        if status == "pending" and self.trigger_error is not None:
            # The run this view started is over and handed the row back
            return PollOutcome(
                state=PollState.ERRORED,
                attempts=self.attempts,
                payload=payload,
                error=payload.get("processingError") or self.trigger_error.message,
            )

        if self.attempts == 1 and status == "pending" and not self.trigger_sent:
            self._fire_trigger()
        return None

    def _fire_trigger(self):
        self.trigger_sent = True
        self.trigger_task = asyncio.create_task(self._trigger())
        logger.info(f"[{self.recording_id}] Processing triggered")

    async def _trigger(self):
        try:
            await self.api.process_recording(self.recording_id)
            logger.info(f"[{self.recording_id}] Processing request finished")
        except ApiError as e:
            if e.code in PIPELINE_FAILURE_CODES:
                self.trigger_error = e
            logger.warning(f"[{self.recording_id}] Processing request failed: {e.message}")
        except DentalScribeError as e:
            # Polling observes the real outcome
            logger.warning(f"[{self.recording_id}] Processing request failed: {e.message}")

    def cancel_trigger(self):
        if self.trigger_task is not None and not self.trigger_task.done():
            self.trigger_task.cancel()

    def _settle(self, outcome: PollOutcome) -> PollOutcome:
        self.state = outcome.state
        self.outcome = outcome
        return outcome
