"""Canonical uncompressed WAV codec: the provider's audio wire contract.

WHY: The provider only accepts 16-bit PCM in a RIFF/WAVE container.
Every input (microphone capture, MP3, FLAC, M4A...) is re-encoded to
this one format before upload, so the upload client never needs
format-specific logic. Keeping the codec pure (bytes and arrays in,
bytes and arrays out) makes the byte-exact header testable on its own.

HOW: encode_wav() writes a fixed 44-byte header with struct and appends
interleaved little-endian int16 samples. decode_wav() walks the RIFF
chunks, reads the fmt chunk, and returns the samples as a
(frames, channels) int16 array.

RULES:
- Header is exactly 44 bytes: RIFF, WAVE, "fmt " (size 16), data
- Format tag 1 (PCM), 16 bits per sample, all fields little-endian
- byte_rate = sample_rate * channels * 2, block_align = channels * 2
- Float input is clamped to [-1, 1]; negatives scale by 0x8000,
  positives by 0x7FFF
- decode_wav(encode_wav(x)) returns x sample-for-sample for int16 input
- Non-PCM or non-16-bit input raises DecodeError
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

import numpy as np

from transcribe_client.errors import DecodeError

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
PCM_FORMAT_TAG = 1

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass
class PcmAudio:
    """Decoded linear PCM audio.

    samples is an int16 array shaped (frames, channels).
    """

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / float(self.sample_rate)


def float_to_int16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples in [-1, 1] to int16 using the asymmetric scale."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    # Truncate toward zero, like a DataView int16 store
    return np.trunc(scaled).astype(np.int16)


def _as_frames(samples: np.ndarray) -> np.ndarray:
    arr = np.asarray(samples)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ValueError("samples must be 1-D (mono) or 2-D (frames, channels)")
    if arr.dtype != np.int16:
        if np.issubdtype(arr.dtype, np.floating):
            arr = float_to_int16(arr)
        else:
            raise ValueError("samples must be int16 or floating point, got {}".format(arr.dtype))
    return arr


def build_header(channels: int, sample_rate: int, data_length: int) -> bytes:
    """Build the 44-byte canonical WAV header.

    Args:
        channels: Channel count (1 = mono).
        sample_rate: Frames per second.
        data_length: Size of the sample data in bytes.
    """
    return _HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channels,
        sample_rate,
        sample_rate * channels * BYTES_PER_SAMPLE,
        channels * BYTES_PER_SAMPLE,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode PCM samples into the canonical WAV container.

    Args:
        samples: int16 or float array, shape (frames,) or (frames, channels).
        sample_rate: Frames per second.

    Returns:
        Header plus interleaved little-endian int16 sample bytes.
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    frames = _as_frames(samples)
    channels = frames.shape[1]
    if channels < 1:
        raise ValueError("samples must have at least one channel")
    data = np.ascontiguousarray(frames, dtype="<i2").tobytes()
    return build_header(channels, sample_rate, len(data)) + data


def decode_wav(payload: bytes) -> PcmAudio:
    """Decode a 16-bit PCM WAV payload.

    HOW: Validates the RIFF/WAVE preamble, then walks chunks until both
    ``fmt `` and ``data`` are found. Unknown chunks (LIST, fact...) are
    skipped, honoring the RIFF pad byte on odd sizes.

    Raises:
        DecodeError: Malformed container, non-PCM format, or a bit depth
            other than 16.
    """
    if len(payload) < 12 or payload[0:4] != b"RIFF" or payload[8:12] != b"WAVE":
        raise DecodeError("Not a RIFF/WAVE payload.")

    fmt: tuple[int, int, int, int] | None = None
    data: bytes | None = None
    offset = 12
    while offset + 8 <= len(payload):
        chunk_id = payload[offset:offset + 4]
        (chunk_size,) = struct.unpack_from("<I", payload, offset + 4)
        body_start = offset + 8
        body = payload[body_start:body_start + chunk_size]
        if chunk_id == b"fmt ":
            if len(body) < 16:
                raise DecodeError("WAV fmt chunk is truncated.")
            format_tag, channels, sample_rate, _byte_rate, _align, bits = struct.unpack_from(
                "<HHIIHH", body, 0
            )
            fmt = (format_tag, channels, sample_rate, bits)
        elif chunk_id == b"data":
            data = body
        if fmt is not None and data is not None:
            break
        offset = body_start + chunk_size + (chunk_size & 1)

    if fmt is None or data is None:
        raise DecodeError("WAV payload is missing its fmt or data chunk.")

    format_tag, channels, sample_rate, bits = fmt
    if format_tag != PCM_FORMAT_TAG or bits != BITS_PER_SAMPLE:
        raise DecodeError(
            "Unsupported WAV encoding (format tag {}, {} bits).".format(format_tag, bits)
        )
    if channels < 1:
        raise DecodeError("WAV payload declares no channels.")

    frame_size = channels * BYTES_PER_SAMPLE
    usable = len(data) - (len(data) % frame_size)
    samples = np.frombuffer(data[:usable], dtype="<i2").astype(np.int16)
    return PcmAudio(samples=samples.reshape(-1, channels), sample_rate=sample_rate)
