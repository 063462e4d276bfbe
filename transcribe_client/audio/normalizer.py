"""File acceptance and normalization to the canonical WAV payload.

WHY: Users hand us whatever audio they have: MP3 voice memos, FLAC
exports, M4A phone recordings. The provider accepts one thing: 16-bit
PCM WAV under 5 MiB. This module validates the input cheaply (size and
MIME type) before doing any work, decodes it to PCM, re-encodes it with
the canonical codec, and checks the size again.

HOW: accept_file() reads the file, validate_input() checks size and MIME
type, decode_audio() tries the built-in WAV decoder for WAV input, then
soundfile (libsndfile), then pydub (ffmpeg) for containers libsndfile
cannot read. encode_pcm() produces the NormalizedAudio payload.

RULES:
- Size and MIME validation happen before decoding (ValidationError)
- Any decode failure is a DecodeError, terminal for the attempt
- The re-encoded payload is capped at the same MAX_AUDIO_BYTES ceiling,
  with its own error message
- NormalizedAudio.content_type is always "audio/wav"
"""

from __future__ import annotations

import io
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from transcribe_client.audio.wav import PcmAudio, decode_wav, encode_wav
from transcribe_client.config import ALLOWED_AUDIO_MIME_TYPES, MAX_AUDIO_BYTES
from transcribe_client.errors import DecodeError, ValidationError

logger = logging.getLogger(__name__)

WAV_CONTENT_TYPE = "audio/wav"

_WAV_MIME_TYPES = {"audio/wav", "audio/wave", "audio/x-wav"}

# Extensions mimetypes does not know on every platform
_EXTRA_MIME_TYPES = {
    ".m4a": "audio/x-m4a",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
}


@dataclass
class NormalizedAudio:
    """Canonical upload payload plus the metadata the UI shows.

    RULES:
    - payload is a complete WAV file (44-byte header + samples)
    - label is the pathname-derived name shown as the job's audio_ref
    """

    payload: bytes
    sample_rate: int
    channels: int
    duration_s: float
    label: str = "recording.wav"
    content_type: str = WAV_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.payload)


def format_file_size(num_bytes: int) -> str:
    """Human-readable size, e.g. ``5 MB`` or ``1.5 KB``."""
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = "{:.2f}".format(value).rstrip("0").rstrip(".")
    return "{} {}".format(text, units[index])


def guess_mime_type(path: Path) -> str | None:
    """Guess an audio MIME type from a filename extension."""
    suffix = path.suffix.lower()
    if suffix in _EXTRA_MIME_TYPES:
        return _EXTRA_MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed


def validate_input(size: int, mime_type: str | None) -> None:
    """Reject oversize or unsupported input before any decoding.

    Raises:
        ValidationError: size above MAX_AUDIO_BYTES or MIME type not in
            the allow-list.
    """
    if size > MAX_AUDIO_BYTES:
        raise ValidationError(
            "File size must be less than {}".format(format_file_size(MAX_AUDIO_BYTES))
        )
    if mime_type is None or mime_type.lower() not in ALLOWED_AUDIO_MIME_TYPES:
        raise ValidationError(
            "Please upload a supported audio file (MP3, WAV, AAC, OGG, FLAC, M4A)"
        )


def _decode_with_soundfile(data: bytes) -> PcmAudio:
    import soundfile as sf

    samples, sample_rate = sf.read(io.BytesIO(data), dtype="int16", always_2d=True)
    return PcmAudio(samples=np.asarray(samples, dtype=np.int16), sample_rate=int(sample_rate))


def _decode_with_pydub(data: bytes) -> PcmAudio:
    from pydub import AudioSegment

    segment = AudioSegment.from_file(io.BytesIO(data)).set_sample_width(2)
    samples = np.array(segment.get_array_of_samples(), dtype=np.int16)
    return PcmAudio(
        samples=samples.reshape(-1, segment.channels),
        sample_rate=int(segment.frame_rate),
    )


def decode_audio(data: bytes, mime_type: str | None = None) -> PcmAudio:
    """Decode any accepted container to linear 16-bit PCM.

    HOW: WAV input goes through the built-in decoder first. Anything it
    rejects, and every other container, is handed to soundfile; when
    libsndfile cannot read it either, pydub/ffmpeg gets the last try.

    Raises:
        DecodeError: No decoder could read the payload, or it holds no
            samples.
    """
    if not data:
        raise DecodeError("Audio file is empty.")

    if mime_type in _WAV_MIME_TYPES:
        try:
            pcm = decode_wav(data)
        except DecodeError:
            logger.debug("Built-in WAV decoder declined payload, trying soundfile")
        else:
            if pcm.frames:
                return pcm

    try:
        pcm = _decode_with_soundfile(data)
    except (RuntimeError, ValueError, TypeError) as exc:
        logger.debug("soundfile could not decode payload: %s", exc)
    else:
        if pcm.frames:
            return pcm

    from pydub.exceptions import CouldntDecodeError

    try:
        pcm = _decode_with_pydub(data)
    except (CouldntDecodeError, OSError, IndexError) as exc:
        raise DecodeError(
            "Failed to decode audio. The file may be corrupt or in an unsupported format."
        ) from exc

    if not pcm.frames:
        raise DecodeError("Audio file contains no samples.")
    return pcm


def encode_pcm(pcm: PcmAudio, label: str = "recording.wav") -> NormalizedAudio:
    """Re-encode decoded PCM to the canonical payload and check its size.

    Raises:
        ValidationError: The re-encoded WAV exceeds MAX_AUDIO_BYTES.
    """
    payload = encode_wav(pcm.samples, pcm.sample_rate)
    if len(payload) > MAX_AUDIO_BYTES:
        raise ValidationError(
            "Converted audio is {} which exceeds the {} upload limit. "
            "Please use a shorter recording.".format(
                format_file_size(len(payload)), format_file_size(MAX_AUDIO_BYTES)
            )
        )
    logger.debug(
        "Normalized %s: %d Hz, %d channel(s), %.2fs, %s",
        label,
        pcm.sample_rate,
        pcm.channels,
        pcm.duration_s,
        format_file_size(len(payload)),
    )
    return NormalizedAudio(
        payload=payload,
        sample_rate=pcm.sample_rate,
        channels=pcm.channels,
        duration_s=pcm.duration_s,
        label=label,
    )


def normalize_bytes(data: bytes, mime_type: str | None, label: str) -> NormalizedAudio:
    """Validate, decode, and re-encode an in-memory audio file."""
    validate_input(len(data), mime_type)
    pcm = decode_audio(data, mime_type.lower() if mime_type else None)
    return encode_pcm(pcm, label=label)


def accept_file(path: str | Path, mime_type: str | None = None) -> NormalizedAudio:
    """Accept a user-supplied audio file and return the upload payload.

    WHY: This is the file half of the capture capability set. Validation
    uses the on-disk size so a 6 MiB file is rejected without reading it.

    RULES:
    - mime_type defaults to a guess from the file extension
    - Raises ValidationError before reading oversize files
    - Raises DecodeError for unreadable audio

    Args:
        path: Audio file on disk.
        mime_type: Declared MIME type, if the caller knows it.

    Returns:
        NormalizedAudio labelled with the file name.
    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError("Audio file not found: {}".format(path))
    if mime_type is None:
        mime_type = guess_mime_type(path)
    validate_input(path.stat().st_size, mime_type)
    return normalize_bytes(path.read_bytes(), mime_type, label=path.name)
