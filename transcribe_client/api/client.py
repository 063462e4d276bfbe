"""Async HTTP client for the transcription provider's REST API.

WHY: Uploading audio, listing history, checking one job, and deleting a
job all share auth, timeouts, and error mapping. This module puts the
whole provider surface behind a single client class so the lifecycle
code (session, poller, history fetcher) never touches HTTP details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. TranscribeClient is
an async context manager. Enter it to get an authenticated client, exit
to close the connection pool. upload_audio() streams a multipart body so
it can report progress, and retries 429 responses with backoff.
fetch_history() validates the listing with pydantic.

RULES:
- Always use the async context manager (async with TranscribeClient() as client:)
- Base URL and bearer token are required; missing either fails before I/O
- 429: up to 3 attempts, Retry-After seconds if present else 1s, 2s, 4s
- 400 → ValidationError, 5xx → ServerError; neither is retried
- Progress never reports 100 until the body is sent and accepted
- History failures of any kind surface as HistoryFetchError
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx
from pydantic import ValidationError as PydanticValidationError

from transcribe_client.api.models import (
    STATUS_ORDER,
    HistorySnapshot,
    Job,
    UploadResult,
)
from transcribe_client.api.schemas import HistoryResponse, UploadResponse, snapshot_from_list
from transcribe_client.audio.normalizer import NormalizedAudio
from transcribe_client.config import (
    HISTORY_PATH,
    TRANSCRIBE_HTTP_TIMEOUT_S,
    UPLOAD_BACKOFF_BASE_S,
    UPLOAD_MAX_ATTEMPTS,
    UPLOAD_PATH,
    load_api_url,
    load_auth_token,
)
from transcribe_client.errors import (
    AuthenticationError,
    HistoryFetchError,
    ProtocolError,
    RateLimitError,
    ServerError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_UPLOAD_CHUNK_SIZE = 64 * 1024

_DEFAULT_400_MESSAGE = (
    "Invalid request. Please ensure the audio file is in a supported format and under 5MB."
)
_RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a few minutes."

# Trailing id segment of a status URL, e.g. /api/transcribe/42/ or .../status/abc-123
_ID_IN_URL = re.compile(r"/([A-Za-z0-9][A-Za-z0-9_-]*)/?(?:\?.*)?$")

ProgressCallback = Callable[[int], None]
SleepFunc = Callable[[float], Awaitable[None]]


def _error_text(resp: httpx.Response) -> str | None:
    """Pull an ``error`` or ``detail`` message out of a JSON error body."""
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return None


def _parse_retry_after(resp: httpx.Response) -> float | None:
    """Seconds from a Retry-After header, or None if absent/unparseable."""
    raw = resp.headers.get("retry-after")
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def _id_from_url(url: str | None) -> str | None:
    if not url:
        return None
    match = _ID_IN_URL.search(url)
    if match is None:
        return None
    segment = match.group(1)
    # Collection names are not ids
    if segment in ("transcribe", "upload", "api", "status"):
        return None
    return segment


def upload_filename(content_type: str) -> str:
    """Filename sent with the multipart file part, e.g. ``recording.wav``."""
    subtype = content_type.split(";", 1)[0].split("/", 1)[-1].strip() if "/" in content_type else ""
    if subtype in ("wave", "x-wav"):
        subtype = "wav"
    return "recording.{}".format(subtype or "wav")


class TranscribeClient:
    """Async client for the transcription provider.

    WHY: Provides a clean, typed interface for every provider call the
    lifecycle manager needs: upload → list history → check → delete.
    Handles auth, retries, progress, and error mapping.

    HOW: Wraps httpx.AsyncClient with Bearer token auth. Use as an async
    context manager to ensure the HTTP connection pool is properly closed.

    RULES:
    - Use as: async with TranscribeClient() as client: ...
    - base_url defaults to load_api_url(), auth_token to load_auth_token()
    - transport and retry_sleep exist so tests can fake the network and clock
    """

    def __init__(
        self,
        base_url: str | None = None,
        auth_token: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_sleep: SleepFunc | None = None,
    ) -> None:
        self._base_url = (base_url or load_api_url()).rstrip("/")
        self._auth_token = auth_token or load_auth_token()
        self._timeout_s = timeout_s if timeout_s is not None else TRANSCRIBE_HTTP_TIMEOUT_S
        self._transport = transport
        self._sleep = retry_sleep or asyncio.sleep
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TranscribeClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._auth_token}"},
            timeout=httpx.Timeout(self._timeout_s, connect=10.0),
            transport=self._transport,
            event_hooks={"response": [self._log_response]},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "TranscribeClient must be used as an async context manager: "
                "async with TranscribeClient() as client: ..."
            )
        return self._client

    @staticmethod
    async def _log_response(response: httpx.Response) -> None:
        request = response.request
        logger.debug("API response [%s %s]: %d", request.method, request.url.path, response.status_code)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_audio(
        self,
        audio: NormalizedAudio,
        language_code: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Upload a normalized payload and return how to follow it up.

        WHY: This is the only way audio reaches the provider. The result
        tells the caller whether to start polling (queued) or show text
        immediately (direct).

        HOW: Sends a multipart POST to /api/transcribe/upload/. The body is
        streamed in 64 KiB chunks so on_progress can report percentages.
        429 responses are retried; every other failure is mapped to a
        typed error immediately.

        RULES:
        - Retries only on 429, at most UPLOAD_MAX_ATTEMPTS attempts in total
        - Delay: Retry-After seconds, else UPLOAD_BACKOFF_BASE_S * 2**attempt
        - on_progress restarts from 0 on each attempt; 100 only on success
        - Ambiguous 2xx bodies raise ProtocolError

        Args:
            audio: Canonical WAV payload from the normalizer or recorder.
            language_code: Optional language hint; None lets the provider detect.
            on_progress: Optional callback receiving integer percentages.

        Returns:
            UploadResult of kind "queued" (with id) or "direct" (with text).
        """
        self._ensure_client()

        for attempt in range(UPLOAD_MAX_ATTEMPTS):
            logger.info(
                "Uploading %s (%d bytes, attempt %d/%d)",
                audio.label,
                audio.size,
                attempt + 1,
                UPLOAD_MAX_ATTEMPTS,
            )
            resp = await self._post_upload(audio, language_code, on_progress)

            if resp.status_code == 429:
                if attempt < UPLOAD_MAX_ATTEMPTS - 1:
                    delay = _parse_retry_after(resp)
                    if delay is None:
                        delay = UPLOAD_BACKOFF_BASE_S * (2 ** attempt)
                    logger.warning("Rate limited. Waiting %.1fs before retry...", delay)
                    await self._sleep(delay)
                    continue
                raise RateLimitError(_RATE_LIMIT_MESSAGE, attempts=attempt + 1)

            self._raise_for_upload_status(resp)
            result = self._parse_upload_response(resp)
            if on_progress:
                on_progress(100)
            return result

        # Unreachable: the loop either returns or raises on the last attempt
        raise RateLimitError(_RATE_LIMIT_MESSAGE, attempts=UPLOAD_MAX_ATTEMPTS)

    async def _post_upload(
        self,
        audio: NormalizedAudio,
        language_code: str | None,
        on_progress: ProgressCallback | None,
    ) -> httpx.Response:
        client = self._ensure_client()
        data = {"language_code": language_code} if language_code else None
        request = client.build_request(
            "POST",
            UPLOAD_PATH,
            files={"file": (upload_filename(audio.content_type), audio.payload, audio.content_type)},
            data=data,
            headers={"Accept": "application/json"},
        )
        body = await request.aread()

        if on_progress:
            on_progress(0)
            request = httpx.Request(
                request.method,
                request.url,
                headers=request.headers,
                content=_progress_stream(body, on_progress),
            )

        try:
            return await client.send(request)
        except httpx.TransportError as exc:
            raise ServerError("Network error during upload: {}".format(exc)) from exc

    @staticmethod
    def _raise_for_upload_status(resp: httpx.Response) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status == 400:
            raise ValidationError(_error_text(resp) or _DEFAULT_400_MESSAGE)
        if status in (401, 403):
            raise AuthenticationError(
                _error_text(resp) or "The provider rejected the API token."
            )
        if status >= 500:
            raise ServerError("Server error. Please try again later.", status_code=status)
        raise ServerError(
            _error_text(resp) or "Upload failed with HTTP {}.".format(status),
            status_code=status,
        )

    @staticmethod
    def _parse_upload_response(resp: httpx.Response) -> UploadResult:
        """Classify a 2xx upload body as queued, direct, or an error.

        RULES:
        - id or transcription_id → queued
        - non-blank text → direct
        - id-bearing url/status_url field or Location header → queued
        - error without any of the above → ServerError
        - anything else → ProtocolError
        """
        try:
            raw = resp.json()
        except ValueError:
            raw = None

        payload = UploadResponse()
        if isinstance(raw, dict):
            try:
                payload = UploadResponse.model_validate(raw)
            except PydanticValidationError as exc:
                raise ProtocolError("Unrecognized upload response: {}".format(exc)) from exc

        job_id = payload.id or payload.transcription_id
        if job_id:
            logger.info("Upload accepted, job %s", job_id)
            return UploadResult.queued(job_id)

        if payload.text and payload.text.strip():
            logger.info("Upload returned an inline transcript")
            return UploadResult.direct(payload.text)

        url_id = (
            _id_from_url(payload.url)
            or _id_from_url(payload.status_url)
            or _id_from_url(resp.headers.get("location"))
        )
        if url_id:
            logger.info("Upload accepted, job %s (from status URL)", url_id)
            return UploadResult.queued(url_id)

        if payload.error:
            raise ServerError(payload.error, status_code=resp.status_code)

        raise ProtocolError(
            "Upload response contained no job id, transcript, or status URL."
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def fetch_history(
        self,
        page: int | None = None,
        status: str | None = None,
    ) -> HistorySnapshot:
        """Fetch the server-authoritative job listing.

        WHY: The provider offers no push channel; the full listing is the
        only source of truth for every job's state.

        HOW: GET /api/transcribe/ with optional page and status query
        parameters. The partitioned object is validated with pydantic; a
        bare array is also accepted and bucketed by each job's status.

        RULES:
        - status "all" (or None) sends no status filter
        - Unknown status filters raise ValueError before any request
        - Network, HTTP, and shape failures all raise HistoryFetchError
        - The snapshot is returned verbatim; reconciliation happens in core

        Args:
            page: 1-based page number.
            status: One of queued/processing/completed/error/all.

        Returns:
            HistorySnapshot with partition, counts, and pagination.
        """
        client = self._ensure_client()

        params: dict = {}
        if page is not None:
            params["page"] = page
        if status and status != "all":
            if status not in {s.value for s in STATUS_ORDER}:
                raise ValueError("Unknown status filter: {}".format(status))
            params["status"] = status

        try:
            resp = await client.get(HISTORY_PATH, params=params or None)
        except httpx.TransportError as exc:
            raise HistoryFetchError("Failed to load history: {}".format(exc)) from exc

        if resp.status_code != 200:
            raise HistoryFetchError(
                "Failed to load history (HTTP {}): {}".format(
                    resp.status_code, _error_text(resp) or resp.reason_phrase
                )
            )

        try:
            raw = resp.json()
        except ValueError as exc:
            raise HistoryFetchError("History response was not JSON.") from exc

        try:
            if isinstance(raw, list):
                return snapshot_from_list(raw)
            return HistoryResponse.model_validate(raw).to_snapshot()
        except PydanticValidationError as exc:
            raise HistoryFetchError("Unrecognized history response: {}".format(exc)) from exc

    async def check_status(self, job_id: str) -> Job:
        """Find one job by id in the history listing.

        RULES:
        - Ids compare as strings
        - Raises LookupError if the job is not listed
        """
        snapshot = await self.fetch_history()
        for job in snapshot.jobs:
            if job.id is not None and str(job.id) == str(job_id):
                return job
        raise LookupError("Transcription not found. Please check the ID and try again.")

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_transcription(self, job_id: str) -> None:
        """Delete a job on the provider.

        RULES:
        - 200/202/204 are success; 404 raises LookupError
        - Other failures raise ServerError
        """
        client = self._ensure_client()
        try:
            resp = await client.delete("{}{}/".format(HISTORY_PATH, job_id))
        except httpx.TransportError as exc:
            raise ServerError("Network error during delete: {}".format(exc)) from exc

        if resp.status_code in (200, 202, 204):
            logger.info("Deleted job %s", job_id)
            return
        if resp.status_code == 404:
            raise LookupError("Transcription {} not found.".format(job_id))
        if resp.status_code in (401, 403):
            raise AuthenticationError(_error_text(resp) or "Not allowed to delete this transcription.")
        raise ServerError(
            _error_text(resp) or "Delete failed with HTTP {}.".format(resp.status_code),
            status_code=resp.status_code,
        )


async def _progress_stream(body: bytes, on_progress: ProgressCallback) -> AsyncIterator[bytes]:
    """Yield the request body in chunks, reporting percent sent (max 99)."""
    total = len(body)
    sent = 0
    last = 0
    for start in range(0, total, _UPLOAD_CHUNK_SIZE):
        chunk = body[start:start + _UPLOAD_CHUNK_SIZE]
        yield chunk
        sent += len(chunk)
        percent = min(99, (sent * 100) // total) if total else 99
        if percent != last:
            on_progress(percent)
            last = percent
