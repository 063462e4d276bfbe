"""Provider API package: async HTTP interface to the transcription service.

WHY: The client needs to upload audio, list job history, delete jobs, and
log in. This package encapsulates all provider communication.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. TranscribeClient covers
the transcription endpoints; auth.login covers the login endpoint.
Responses are validated by pydantic schemas and returned as the
dataclasses defined in models.py.

RULES:
- All HTTP calls go through this package (no direct httpx usage elsewhere)
- Authentication is via Bearer token from config
"""

from transcribe_client.api.client import TranscribeClient
from transcribe_client.api.models import (
    CanonicalStatus,
    HistorySnapshot,
    Job,
    UploadResult,
)

__all__ = ["CanonicalStatus", "HistorySnapshot", "Job", "TranscribeClient", "UploadResult"]
