"""Pydantic models for the provider's JSON payloads.

WHY: The provider's responses are loosely shaped: ids arrive as numbers
or strings, lists may be missing, timestamps may lack a timezone. Pydantic
validates each payload at the boundary so a malformed response becomes
one typed error instead of a KeyError deep inside the reconciler.

HOW: One model per payload. Every field has Field(description=...) and a
lenient default; before-validators coerce ids to strings and naive
timestamps to UTC. to_job()/to_snapshot() convert into the domain
dataclasses from api/models.py.

RULES:
- Unknown extra fields are ignored
- Missing status lists become empty lists, missing counts become 0
- Python 3.9+ compatible (Optional from typing)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from transcribe_client.api.models import (
    STATUS_ORDER,
    CanonicalStatus,
    HistorySnapshot,
    Job,
    LoginResult,
    User,
)


def _id_to_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


IdStr = Annotated[Optional[str], BeforeValidator(_id_to_str)]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TranscriptionItem(BaseModel):
    """One job as listed by GET /api/transcribe/."""

    model_config = ConfigDict(extra="ignore")

    id: IdStr = Field(default=None, description="Provider-assigned job identifier.")
    text: Optional[str] = Field(default=None, description="Transcript text, if any.")
    audio_url: Optional[str] = Field(default=None, description="URL of the submitted audio.")
    language_code: Optional[str] = Field(default=None, description="Language hint given at submission.")
    created_at: Optional[datetime] = Field(default=None, description="Job creation time.")
    completed_at: Optional[datetime] = Field(default=None, description="Completion time, if terminal.")
    error: Optional[str] = Field(default=None, description="Error text or a sentinel string.")
    status: Optional[str] = Field(default=None, description="Provider's own status field.")

    @field_validator("created_at", "completed_at", mode="before")
    @classmethod
    def _blank_dates(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("created_at", "completed_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _aware(value)

    def to_job(self) -> Job:
        return Job(
            id=self.id,
            audio_ref=self.audio_url or "",
            language_code=self.language_code or None,
            created_at=self.created_at,
            completed_at=self.completed_at,
            raw_text=self.text,
            raw_error=self.error,
            server_status=self.status,
        )


class TranscriptionsByStatus(BaseModel):
    """The four-way partition as sent by the server."""

    model_config = ConfigDict(extra="ignore")

    queued: List[TranscriptionItem] = Field(default_factory=list, description="Queued jobs.")
    processing: List[TranscriptionItem] = Field(default_factory=list, description="Jobs in progress.")
    completed: List[TranscriptionItem] = Field(default_factory=list, description="Completed jobs.")
    error: List[TranscriptionItem] = Field(default_factory=list, description="Failed jobs.")

    @field_validator("queued", "processing", "completed", "error", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class StatusCounts(BaseModel):
    """Server-side aggregate counts per status."""

    model_config = ConfigDict(extra="ignore")

    queued: int = Field(default=0, description="Number of queued jobs.")
    processing: int = Field(default=0, description="Number of jobs in progress.")
    completed: int = Field(default=0, description="Number of completed jobs.")
    error: int = Field(default=0, description="Number of failed jobs.")


class HistoryResponse(BaseModel):
    """Full payload of GET /api/transcribe/."""

    model_config = ConfigDict(extra="ignore")

    transcriptions: TranscriptionsByStatus = Field(description="Jobs grouped by status.")
    status_counts: StatusCounts = Field(default_factory=StatusCounts, description="Per-status totals.")
    current_page: int = Field(default=1, description="1-based page number of this listing.")
    total_pages: int = Field(default=1, description="Number of pages available.")
    total_count: Optional[int] = Field(default=None, description="Total jobs across all pages.")
    count: Optional[int] = Field(default=None, description="Jobs on this page.")
    next: Optional[str] = Field(default=None, description="URL of the next page.")
    previous: Optional[str] = Field(default=None, description="URL of the previous page.")

    @field_validator("status_counts", mode="before")
    @classmethod
    def _none_counts(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_snapshot(self) -> HistorySnapshot:
        partition = {
            status: [item.to_job() for item in getattr(self.transcriptions, status.value)]
            for status in STATUS_ORDER
        }
        counts = {status: getattr(self.status_counts, status.value) for status in STATUS_ORDER}
        return HistorySnapshot(
            partition=partition,
            counts=counts,
            current_page=max(1, self.current_page),
            total_pages=max(1, self.total_pages),
            total_count=self.total_count,
        )


def snapshot_from_list(items: List[Dict[str, Any]]) -> HistorySnapshot:
    """Build a snapshot from a bare array of jobs.

    WHY: Some provider deployments answer the listing with a plain array
    instead of the partitioned object. Jobs are bucketed by their own
    status field; unknown values land in processing until reconciled.
    """
    partition: Dict[CanonicalStatus, List[Job]] = {status: [] for status in STATUS_ORDER}
    for raw in items:
        job = TranscriptionItem.model_validate(raw).to_job()
        try:
            bucket = CanonicalStatus(job.server_status or "")
        except ValueError:
            bucket = CanonicalStatus.PROCESSING
        partition[bucket].append(job)
    counts = {status: len(jobs) for status, jobs in partition.items()}
    return HistorySnapshot(partition=partition, counts=counts, total_count=len(items))


class UploadResponse(BaseModel):
    """Payload of POST /api/transcribe/upload/ (any of its shapes)."""

    model_config = ConfigDict(extra="ignore")

    id: IdStr = Field(default=None, description="Job identifier.")
    transcription_id: IdStr = Field(default=None, description="Alternate job identifier key.")
    text: Optional[str] = Field(default=None, description="Inline transcript for synchronous results.")
    error: Optional[str] = Field(default=None, description="Error message.")
    status: Optional[str] = Field(default=None, description="Provider status, informational.")
    url: Optional[str] = Field(default=None, description="Status URL carrying the job id.")
    status_url: Optional[str] = Field(default=None, description="Alternate status URL key.")


class UserPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str = Field(description="Login name.")
    is_admin: bool = Field(default=False, description="Whether the user may manage all jobs.")


class LoginResponse(BaseModel):
    """Payload of POST /login/."""

    model_config = ConfigDict(extra="ignore")

    token: str = Field(description="Bearer token for subsequent calls.")
    user: UserPayload = Field(description="Profile of the logged-in user.")

    def to_result(self) -> LoginResult:
        return LoginResult(
            token=self.token,
            user=User(username=self.user.username, is_admin=self.user.is_admin),
        )
