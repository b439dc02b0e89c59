# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio

import pytest

from dental_scribe.client.poller import TIMEOUT_MESSAGE, PollState, RefertoPoller
from dental_scribe.exceptions import ApiError, PollingTimeout, TransportError
from tests.fakes import FakeApi, sample_referto, status_payload


async def no_sleep(seconds):
    await asyncio.sleep(0)


def _poller(api, **kwargs):
    return RefertoPoller(api, "rec-1", interval=5.0, max_attempts=24, sleep=no_sleep, **kwargs)


async def test_completed_on_first_fetch_does_not_trigger():
    api = FakeApi([status_payload("completed", referto=sample_referto())])
    poller = _poller(api)

    outcome = await poller.run()

    assert outcome.state is PollState.COMPLETED
    assert outcome.attempts == 1
    assert outcome.referto["conclusioni"]["diagnosi"] == "Carie distale 36"
    assert api.process_calls == 0
    assert poller.state is PollState.COMPLETED


async def test_nested_referto_is_unwrapped():
    api = FakeApi([status_payload("completed", referto={"referto": {"referto": sample_referto()}})])

    outcome = await _poller(api).run()

    assert "referto" not in outcome.referto
    assert outcome.referto["2_carie"]["lesioni"][0]["dente"] == "36"


async def test_pending_triggers_once_then_completes():
    api = FakeApi(
        [
            status_payload("pending"),
            status_payload("processing"),
            status_payload("pending"),
            status_payload("completed", referto=sample_referto()),
        ]
    )
    poller = _poller(api)

    outcome = await poller.run()
    await poller.trigger_task

    assert outcome.state is PollState.COMPLETED
    assert outcome.attempts == 4
    assert api.process_calls == 1
    assert poller.trigger_sent


async def test_processing_on_first_fetch_does_not_trigger():
    api = FakeApi([status_payload("processing"), status_payload("completed", referto=sample_referto())])
    poller = _poller(api)

    await poller.run()

    assert api.process_calls == 0
    assert poller.trigger_task is None


async def test_times_out_after_exactly_24_fetches():
    sleeps = []

    async def record_sleep(seconds):
        sleeps.append(seconds)

    api = FakeApi([status_payload("processing")])
    poller = RefertoPoller(api, "rec-1", interval=5.0, max_attempts=24, sleep=record_sleep)

    outcome = await poller.run()

    assert outcome.state is PollState.TIMED_OUT
    assert outcome.error == TIMEOUT_MESSAGE
    assert isinstance(outcome.timeout, PollingTimeout)
    assert api.referto_calls == 24
    assert sleeps == [5.0] * 23


async def test_completed_without_payload_keeps_polling():
    api = FakeApi([status_payload("completed"), status_payload("completed", referto=sample_referto())])

    outcome = await _poller(api).run()

    assert outcome.state is PollState.COMPLETED
    assert outcome.attempts == 2


async def test_transport_errors_count_as_pending_without_trigger():
    api = FakeApi(
        [
            TransportError("rete assente"),
            status_payload("pending"),
            status_payload("completed", referto=sample_referto()),
        ]
    )
    poller = _poller(api)

    outcome = await poller.run()

    assert outcome.state is PollState.COMPLETED
    assert outcome.attempts == 3
    assert api.process_calls == 0


async def test_transport_errors_are_bounded_by_the_same_ceiling():
    api = FakeApi([TransportError("rete assente")])

    outcome = await _poller(api).run()

    assert outcome.state is PollState.TIMED_OUT
    assert api.referto_calls == 24


async def test_failed_status_is_an_error():
    api = FakeApi([status_payload("failed", processingError="Audio file not found")])

    outcome = await _poller(api).run()

    assert outcome.state is PollState.ERRORED
    assert outcome.error == "Audio file not found"
    assert api.referto_calls == 1
    assert api.process_calls == 0


async def test_reopened_view_retriggers_after_earlier_pipeline_failure():
    empty = "Trascrizione vuota: nessun parlato riconosciuto"
    api = FakeApi(
        [
            status_payload("pending", processingError="Trascrizione fallita: timeout"),
            status_payload("pending", processingError=empty),
        ],
        process_result=ApiError(empty, status_code=502, code="transcription_failed"),
    )
    poller = _poller(api)

    outcome = await poller.run()

    assert api.process_calls == 1
    assert outcome.state is PollState.ERRORED
    assert outcome.attempts == 2
    assert outcome.error == empty


async def test_unknown_status_is_an_error_not_a_timeout():
    api = FakeApi([status_payload("archived")])

    outcome = await _poller(api).run()

    assert outcome.state is PollState.ERRORED
    assert "archived" in outcome.error


async def test_not_found_is_an_error():
    api = FakeApi([ApiError("Registrazione non trovata", status_code=404, code="not_found")])

    outcome = await _poller(api).run()

    assert outcome.state is PollState.ERRORED
    assert outcome.error == "Registrazione non trovata"


async def test_failed_trigger_is_not_fatal():
    api = FakeApi(
        [status_payload("pending"), status_payload("completed", referto=sample_referto())],
        process_result=ApiError("Elaborazione già in corso", status_code=409),
    )
    poller = _poller(api)

    outcome = await poller.run()
    await poller.trigger_task

    assert outcome.state is PollState.COMPLETED
    assert api.process_calls == 1


async def test_cancel_stops_polling_and_trigger():
    started = asyncio.Event()
    release = asyncio.Event()

    class SlowApi(FakeApi):
        async def process_recording(self, recording_id):
            started.set()
            await release.wait()

    api = SlowApi([status_payload("pending")])
    poller = RefertoPoller(api, "rec-1", interval=5.0, max_attempts=24)
    task = asyncio.create_task(poller.run())
    await started.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    with pytest.raises(asyncio.CancelledError):
        await poller.trigger_task

    assert poller.trigger_task.cancelled()
    assert api.referto_calls == 1


async def test_poller_runs_once():
    api = FakeApi([status_payload("completed", referto=sample_referto())])
    poller = _poller(api)
    await poller.run()

    with pytest.raises(RuntimeError):
        await poller.run()
