"""Shared test fixtures for the transcribe_client test suite.

WHY: Most test modules need a TranscribeClient wired to a fake provider,
sample provider payloads, and a small canonical WAV payload. Centralizing
them here keeps the individual tests about behavior, not plumbing.

HOW: The provider is faked with httpx.MockTransport; each test supplies a
handler function and gets back a client factory plus the list of
requests the fake saw. Payload fixtures return builder functions so a
test can shape exactly the listing it needs.

RULES:
- No test reaches the network; every client uses a MockTransport
- No test sleeps; retry and poll delays are recorded, not awaited
- Timestamps are fixed and timezone-aware for deterministic ordering
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import numpy as np
import pytest

from transcribe_client.api.client import TranscribeClient
from transcribe_client.audio.normalizer import NormalizedAudio
from transcribe_client.audio.wav import encode_wav

API_URL = "https://transcribe.example.test"
API_TOKEN = "test-token"

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_provider(recording_sleep):
    """Factory: handler → (client factory, seen requests).

    Usage::

        make_client, seen = fake_provider(handler)
        async with make_client() as client: ...
    """

    def build(handler: Callable[[httpx.Request], httpx.Response]):
        seen: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording_handler)

        def make_client() -> TranscribeClient:
            return TranscribeClient(
                base_url=API_URL,
                auth_token=API_TOKEN,
                transport=transport,
                retry_sleep=recording_sleep,
            )

        return make_client, seen

    return build


@pytest.fixture
def tone_audio() -> NormalizedAudio:
    """Half a second of a 440 Hz mono tone at 8 kHz, canonical WAV."""
    rate = 8000
    t = np.arange(rate // 2) / rate
    samples = (np.sin(2 * np.pi * 440 * t) * 0.5).astype(np.float32)
    payload = encode_wav(samples, rate)
    return NormalizedAudio(
        payload=payload,
        sample_rate=rate,
        channels=1,
        duration_s=0.5,
        label="tone.wav",
    )


@pytest.fixture
def make_item():
    """Builder for one provider job dict; minutes offsets set created_at."""

    def build(
        job_id: Any,
        status: Optional[str] = "completed",
        text: Optional[str] = None,
        error: Optional[str] = None,
        minutes: int = 0,
        language_code: Optional[str] = "en",
    ) -> Dict[str, Any]:
        return {
            "id": job_id,
            "text": text,
            "error": error,
            "status": status,
            "language_code": language_code,
            "audio_url": "/media/audio/{}.wav".format(job_id),
            "created_at": (BASE_TIME + timedelta(minutes=minutes)).isoformat(),
            "completed_at": None,
        }

    return build


@pytest.fixture
def history_payload():
    """Builder for a partitioned GET /api/transcribe/ body."""

    def build(
        queued: Optional[List[Dict[str, Any]]] = None,
        processing: Optional[List[Dict[str, Any]]] = None,
        completed: Optional[List[Dict[str, Any]]] = None,
        error: Optional[List[Dict[str, Any]]] = None,
        current_page: int = 1,
        total_pages: int = 1,
    ) -> Dict[str, Any]:
        groups = {
            "queued": queued or [],
            "processing": processing or [],
            "completed": completed or [],
            "error": error or [],
        }
        return {
            "transcriptions": groups,
            "status_counts": {name: len(items) for name, items in groups.items()},
            "current_page": current_page,
            "total_pages": total_pages,
            "total_count": sum(len(items) for items in groups.values()),
        }

    return build
