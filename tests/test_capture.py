"""Tests for microphone capture and the playback handle.

WHY: The input stream must be released on every exit path, and device
failures must surface as CapturePermissionError rather than raw
PortAudio errors.

HOW: A fake stream factory stands in for sounddevice.InputStream. The
test drives the recorder's callback directly with numpy blocks.
"""

from __future__ import annotations

import numpy as np
import pytest

from transcribe_client.audio.capture import (
    MicrophoneRecorder,
    PlaybackHandle,
    _PortAudioStream,
    format_clock,
)
from transcribe_client.audio.wav import decode_wav
from transcribe_client.errors import CapturePermissionError, ValidationError


class DeviceError(Exception):
    """Stands in for sounddevice.PortAudioError, a plain Exception subclass."""


class FakeStream:
    def __init__(self, fail_on_start: bool = False, start_error=None, **kwargs):
        self.kwargs = kwargs
        self.fail_on_start = fail_on_start
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.start_error is not None:
            raise self.start_error
        if self.fail_on_start:
            raise OSError("device busy")
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True


@pytest.fixture
def streams():
    return []


@pytest.fixture
def recorder(streams):
    def factory(**kwargs):
        stream = FakeStream(**kwargs)
        streams.append(stream)
        return stream

    return MicrophoneRecorder(sample_rate=8000, channels=1, stream_factory=factory)


class TestMicrophoneRecorder:

    def test_stream_opened_with_capture_settings(self, recorder, streams):
        recorder.start_capture()
        assert recorder.is_recording
        kwargs = streams[0].kwargs
        assert kwargs["samplerate"] == 8000
        assert kwargs["channels"] == 1
        assert kwargs["dtype"] == "int16"
        assert callable(kwargs["callback"])

    def test_stop_returns_wav_and_releases_stream(self, recorder, streams):
        recorder.start_capture()
        callback = streams[0].kwargs["callback"]
        callback(np.array([[1], [2]], dtype=np.int16), 2, None, None)
        callback(np.array([[3], [4]], dtype=np.int16), 2, None, None)

        audio = recorder.stop_capture()

        assert streams[0].stopped and streams[0].closed
        assert not recorder.is_recording
        assert audio.label == "recording.wav"
        assert decode_wav(audio.payload).samples[:, 0].tolist() == [1, 2, 3, 4]
        assert audio.duration_s == pytest.approx(4 / 8000)

    def test_empty_recording_is_a_validation_error(self, recorder, streams):
        recorder.start_capture()
        with pytest.raises(ValidationError, match="No audio"):
            recorder.stop_capture()
        assert streams[0].closed

    def test_start_failure_maps_to_permission_error_and_closes(self, streams):
        def factory(**kwargs):
            stream = FakeStream(fail_on_start=True, **kwargs)
            streams.append(stream)
            return stream

        rec = MicrophoneRecorder(stream_factory=factory)
        with pytest.raises(CapturePermissionError):
            rec.start_capture()
        assert streams[0].closed
        assert not rec.is_recording

    def test_unmapped_start_failure_still_closes_stream(self, streams):
        def factory(**kwargs):
            stream = FakeStream(start_error=DeviceError("PaErrorCode -9985"), **kwargs)
            streams.append(stream)
            return stream

        rec = MicrophoneRecorder(stream_factory=factory)
        with pytest.raises(DeviceError):
            rec.start_capture()
        assert streams[0].stopped and streams[0].closed
        assert not rec.is_recording

    def test_portaudio_start_failure_maps_to_permission_error(self, streams):
        def factory(**kwargs):
            stream = FakeStream(start_error=DeviceError("PaErrorCode -9985"), **kwargs)
            streams.append(stream)
            return _PortAudioStream(stream, DeviceError)

        rec = MicrophoneRecorder(stream_factory=factory)
        with pytest.raises(CapturePermissionError) as excinfo:
            rec.start_capture()
        assert isinstance(excinfo.value.__cause__, DeviceError)
        assert streams[0].closed
        assert not rec.is_recording

    def test_permission_error_is_a_builtin_permission_error(self):
        def factory(**kwargs):
            raise PermissionError("denied")

        with pytest.raises(PermissionError):
            MicrophoneRecorder(stream_factory=factory).start_capture()

    def test_double_start_rejected(self, recorder):
        recorder.start_capture()
        with pytest.raises(RuntimeError):
            recorder.start_capture()

    def test_cancel_discards_audio(self, recorder, streams):
        recorder.start_capture()
        streams[0].kwargs["callback"](np.ones((10, 1), dtype=np.int16), 10, None, None)
        recorder.cancel_capture()
        assert streams[0].closed
        assert recorder.recorded_seconds == 0

    def test_context_manager_releases_on_error(self, recorder, streams):
        with pytest.raises(KeyError):
            with recorder:
                recorder.start_capture()
                raise KeyError("boom")
        assert streams[0].closed


class TestPlayback:

    def test_format_clock(self):
        assert format_clock(0) == "0:00"
        assert format_clock(65.4) == "1:05"
        assert format_clock(float("nan")) == "0:00"
        assert format_clock(float("inf")) == "0:00"

    def test_seek_is_clamped(self):
        handle = PlaybackHandle(10.0)
        assert handle.seek(0.5) == 5.0
        assert handle.seek(2.0) == 10.0
        assert handle.seek(-1) == 0.0

    def test_advance_and_str(self):
        handle = PlaybackHandle(90.0)
        handle.advance(61)
        assert str(handle) == "1:01 / 1:30"
        handle.reset()
        assert handle.position_s == 0.0
