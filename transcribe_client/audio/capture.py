"""Microphone capture and a playback position handle.

WHY: The live-recording half of the capture capability set. A recording
session owns the input device exclusively; leaking an open stream keeps
the microphone busy (and its indicator lit) long after the user stopped,
so the stream has to be released on every exit path.

HOW: MicrophoneRecorder opens a sounddevice.InputStream whose callback
appends int16 blocks to an internal buffer list. stop_capture() releases
the stream first, then concatenates the blocks and encodes them with the
canonical WAV codec. sounddevice is imported lazily so the package (and
its tests) import on machines without PortAudio.

RULES:
- One stream per recorder; start_capture() while recording is an error
- The stream is stopped and closed in a finally block on stop, cancel,
  and any start failure
- Device/permission failures raise CapturePermissionError, no retry
- An empty recording raises ValidationError
- Captured audio is mono 44.1 kHz 16-bit by default
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, List, Optional

import numpy as np

from transcribe_client.audio.normalizer import NormalizedAudio, encode_pcm
from transcribe_client.audio.wav import PcmAudio
from transcribe_client.config import CAPTURE_CHANNELS, CAPTURE_SAMPLE_RATE
from transcribe_client.errors import CapturePermissionError, ValidationError

logger = logging.getLogger(__name__)


_DEVICE_UNAVAILABLE = "Microphone access was denied or no input device is available."


class _PortAudioStream:
    """sounddevice stream whose start() maps PortAudio failures."""

    def __init__(self, stream: Any, error_type: type) -> None:
        self._stream = stream
        self._error_type = error_type

    def start(self) -> None:
        try:
            self._stream.start()
        except self._error_type as exc:
            raise CapturePermissionError(_DEVICE_UNAVAILABLE) from exc

    def stop(self) -> None:
        self._stream.stop()

    def close(self) -> None:
        self._stream.close()


def _default_stream_factory(**kwargs: Any) -> Any:
    """Open a sounddevice input stream, mapping PortAudio failures."""
    try:
        import sounddevice as sd
    except OSError as exc:
        raise CapturePermissionError(
            "No audio input available (PortAudio library not found)."
        ) from exc

    try:
        stream = sd.InputStream(**kwargs)
    except sd.PortAudioError as exc:
        raise CapturePermissionError(_DEVICE_UNAVAILABLE) from exc
    return _PortAudioStream(stream, sd.PortAudioError)


class MicrophoneRecorder:
    """Continuous microphone capture into an in-memory buffer list.

    Args:
        sample_rate: Capture rate in Hz.
        channels: Capture channel count.
        stream_factory: Callable returning an object with start/stop/close;
            defaults to sounddevice.InputStream.
    """

    def __init__(
        self,
        sample_rate: int = CAPTURE_SAMPLE_RATE,
        channels: int = CAPTURE_CHANNELS,
        stream_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self._stream_factory = stream_factory or _default_stream_factory
        self._stream: Any = None
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    @property
    def recorded_seconds(self) -> float:
        """Length of audio captured so far."""
        with self._lock:
            frames = sum(chunk.shape[0] for chunk in self._chunks)
        return frames / float(self.sample_rate)

    def _on_audio(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        # Runs on the PortAudio thread
        if status:
            logger.debug("Input stream status: %s", status)
        with self._lock:
            self._chunks.append(np.array(indata, dtype=np.int16, copy=True))

    def start_capture(self) -> None:
        """Open the input device and start buffering audio.

        Raises:
            CapturePermissionError: The device could not be opened.
            RuntimeError: A capture is already running.
        """
        if self._stream is not None:
            raise RuntimeError("Recording already in progress.")

        with self._lock:
            self._chunks = []

        stream = None
        try:
            stream = self._stream_factory(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                callback=self._on_audio,
            )
            stream.start()
        except CapturePermissionError:
            self._close_stream(stream)
            raise
        except (PermissionError, OSError, RuntimeError) as exc:
            self._close_stream(stream)
            raise CapturePermissionError(_DEVICE_UNAVAILABLE) from exc
        except BaseException:
            self._close_stream(stream)
            raise

        self._stream = stream
        logger.info("Recording started (%d Hz, %d channel(s))", self.sample_rate, self.channels)

    def stop_capture(self) -> NormalizedAudio:
        """Stop recording, release the device, and return the WAV payload.

        Raises:
            RuntimeError: No capture is running.
            ValidationError: Nothing was recorded, or the encoded payload
                exceeds the upload limit.
        """
        if self._stream is None:
            raise RuntimeError("No recording in progress.")

        self._release()

        with self._lock:
            chunks, self._chunks = self._chunks, []

        if not chunks:
            raise ValidationError("No audio was recorded.")

        samples = np.concatenate(chunks, axis=0).reshape(-1, self.channels)
        if samples.shape[0] == 0:
            raise ValidationError("No audio was recorded.")

        pcm = PcmAudio(samples=samples, sample_rate=self.sample_rate)
        logger.info("Recording stopped after %.2fs", pcm.duration_s)
        return encode_pcm(pcm, label="recording.wav")

    def cancel_capture(self) -> None:
        """Discard the current recording and release the device."""
        self._release()
        with self._lock:
            self._chunks = []

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        self._close_stream(stream)

    @staticmethod
    def _close_stream(stream: Any) -> None:
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def __enter__(self) -> MicrophoneRecorder:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self._release()


def format_clock(seconds: float) -> str:
    """Format seconds as ``m:ss``; non-finite values show ``0:00``."""
    if seconds != seconds or seconds in (float("inf"), float("-inf")) or seconds < 0:
        return "0:00"
    minutes = int(seconds // 60)
    return "{}:{:02d}".format(minutes, int(seconds % 60))


class PlaybackHandle:
    """Duration and current position of a prepared payload, for scrubbing."""

    def __init__(self, duration_s: float) -> None:
        self.duration_s = max(0.0, duration_s)
        self.position_s = 0.0

    def seek(self, fraction: float) -> float:
        """Jump to a fraction of the duration (clamped to [0, 1])."""
        fraction = min(1.0, max(0.0, fraction))
        self.position_s = fraction * self.duration_s
        return self.position_s

    def advance(self, seconds: float) -> float:
        self.position_s = min(self.duration_s, max(0.0, self.position_s + seconds))
        return self.position_s

    def reset(self) -> None:
        self.position_s = 0.0

    def __str__(self) -> str:
        return "{} / {}".format(format_clock(self.position_s), format_clock(self.duration_s))
