"""Audio capture and normalization to the provider's WAV wire format.

RULES:
- wav.py is the only place that knows the byte layout of the container
- Everything handed to the upload client is a NormalizedAudio
"""

from transcribe_client.audio.capture import MicrophoneRecorder, PlaybackHandle
from transcribe_client.audio.normalizer import NormalizedAudio, accept_file
from transcribe_client.audio.wav import PcmAudio, decode_wav, encode_wav

__all__ = [
    "MicrophoneRecorder",
    "NormalizedAudio",
    "PcmAudio",
    "PlaybackHandle",
    "accept_file",
    "decode_wav",
    "encode_wav",
]
