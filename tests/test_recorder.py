# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import io
import wave

import pytest

from dental_scribe.client.recorder import AudioRecorder
from tests.fakes import FakeClock, FakeStream


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

    return AudioRecorder(sample_rate=16000, channels=1, clock=clock, stream_factory=factory)


def test_duration_is_zero_before_start(recorder):
    assert recorder.get_duration() == 0
    assert recorder.get_elapsed() == 0.0
    assert recorder.get_blob() is None


def test_pauses_are_excluded_from_duration(recorder, clock):
    assert recorder.start()
    clock.advance(10)
    assert recorder.pause()
    clock.advance(30)
    assert recorder.get_duration() == 10
    assert recorder.resume()
    clock.advance(5)
    assert recorder.stop()

    assert recorder.get_duration() == 15
    clock.advance(100)
    assert recorder.get_duration() == 15


def test_stop_while_paused_does_not_count_pause(recorder, clock):
    recorder.start()
    clock.advance(42)
    recorder.pause()
    clock.advance(20)
    recorder.stop()

    assert recorder.get_duration() == 42


def test_pause_and_resume_are_noops_in_wrong_state(recorder, clock):
    assert not recorder.pause()
    assert not recorder.resume()

    recorder.start()
    assert not recorder.resume()
    assert recorder.pause()
    assert not recorder.pause()

    recorder.stop()
    assert not recorder.pause()
    assert not recorder.resume()
    assert not recorder.stop()


def test_paused_audio_is_not_buffered(recorder, streams):
    recorder.start()
    stream = streams[0]
    stream.feed(b"\x01\x00" * 4)
    recorder.pause()
    stream.feed(b"\x02\x00" * 4)
    recorder.resume()
    stream.feed(b"\x03\x00" * 4)
    recorder.stop()

    with wave.open(io.BytesIO(recorder.get_blob()), "rb") as handle:
        assert handle.getframerate() == 16000
        assert handle.getnchannels() == 1
        assert handle.getsampwidth() == 2
        assert handle.readframes(100) == b"\x01\x00" * 4 + b"\x03\x00" * 4


def test_stop_closes_stream(recorder, streams):
    recorder.start()
    recorder.stop()

    assert streams[0].closed
    assert not recorder.is_recording


def test_start_failure_is_reported_not_raised(clock):
    def factory(**kwargs):
        raise RuntimeError("Permesso microfono negato")

    recorder = AudioRecorder(clock=clock, stream_factory=factory)

    assert recorder.start() is False
    assert not recorder.is_recording
    assert recorder.get_duration() == 0


def test_second_start_is_rejected(recorder):
    assert recorder.start()
    assert not recorder.start()


def test_reset_clears_everything(recorder, clock, streams):
    recorder.start()
    streams[0].feed(b"\x01\x00" * 4)
    clock.advance(8)

    recorder.reset()

    assert streams[0].closed
    assert recorder.get_duration() == 0
    assert recorder.get_blob() is None
    assert recorder.start()
