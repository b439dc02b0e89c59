# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Microphone capture with pause/resume and wall-clock duration accounting."""
import io
import logging
import time
import wave
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

# 16-bit PCM
SAMPLE_WIDTH = 2


def open_input_stream(
    samplerate: int, channels: int, device: Optional[str], callback: Callable[..., None]
) -> Any:
    """Open a sounddevice input stream delivering int16 blocks to ``callback``."""
    try:
        import sounddevice as sd
    except ImportError as exc:  # pragma: no cover - environment-dependent
        raise RuntimeError("sounddevice is required for recording.") from exc

    return sd.InputStream(
        samplerate=samplerate,
        channels=channels,
        dtype="int16",
        device=device,
        callback=callback,
    )


class AudioRecorder:
    """Buffers microphone audio for one visit.

    Duration is measured on the wall clock with paused intervals excluded. Time
    after ``stop`` is never counted. ``clock`` and ``stream_factory`` can be
    replaced in tests.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        stream_factory: Callable[..., Any] = open_input_stream,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._clock = clock
        self._stream_factory = stream_factory
        self._reset_state()

    def _reset_state(self):
        self._stream = None
        self._chunks: List[bytes] = []
        self._started_at: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0
        self._stopped_at: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self._started_at is not None and self._stopped_at is None

    @property
    def is_paused(self) -> bool:
        return self.is_recording and self._paused_at is not None

    def _on_audio(self, indata, frames, time_info, status):
        if status:
            logger.debug(f"Input stream status: {status}")
        if self._paused_at is None and self._stopped_at is None:
            self._chunks.append(bytes(indata))

    def start(self) -> bool:
        """Open the microphone and start buffering. Returns False if it cannot."""
        if self.is_recording:
            logger.warning("Recording already in progress")
            return False

        self._reset_state()
        try:
            stream = self._stream_factory(
                samplerate=self.sample_rate,
                channels=self.channels,
                device=self.device,
                callback=self._on_audio,
            )
            stream.start()
        except Exception as e:
            logger.error(f"Could not open microphone: {e}", exc_info=True)
            return False

        self._stream = stream
        self._started_at = self._clock()
        logger.info(f"Recording started ({self.sample_rate} Hz, {self.channels} ch)")
        return True

    def pause(self) -> bool:
        if not self.is_recording or self.is_paused:
            return False
        self._paused_at = self._clock()
        logger.info(f"Recording paused at {self.get_elapsed():.1f}s")
        return True

    def resume(self) -> bool:
        if not self.is_paused:
            return False
        self._paused_total += self._clock() - self._paused_at
        self._paused_at = None
        logger.info("Recording resumed")
        return True

    def stop(self) -> bool:
        """Finalize buffering, release the microphone and freeze the duration."""
        if not self.is_recording:
            return False
        now = self._clock()
        if self._paused_at is not None:
            self._paused_total += now - self._paused_at
            self._paused_at = None
        self._stopped_at = now
        self._close_stream()
        logger.info(
            f"Recording stopped: {self.get_duration()}s, {sum(len(c) for c in self._chunks)} bytes"
        )
        return True

    def _close_stream(self):
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing input stream: {e}")

    def get_elapsed(self) -> float:
        """Recorded seconds so far, excluding pauses."""
        if self._started_at is None:
            return 0.0
        if self._stopped_at is not None:
            end = self._stopped_at
        elif self._paused_at is not None:
            end = self._paused_at
        else:
            end = self._clock()
        return max(0.0, end - self._started_at - self._paused_total)

    def get_duration(self) -> int:
        return int(round(self.get_elapsed()))

    def get_blob(self) -> Optional[bytes]:
        """WAV container of the buffered audio, or None if nothing was captured."""
        if not self._chunks:
            return None
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as handle:
            handle.setnchannels(self.channels)
            handle.setsampwidth(SAMPLE_WIDTH)
            handle.setframerate(self.sample_rate)
            handle.writeframes(b"".join(self._chunks))
        return buffer.getvalue()

    def reset(self):
        """Release the microphone and clear all state."""
        self._close_stream()
        self._reset_state()
