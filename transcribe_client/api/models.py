"""Domain dataclasses for jobs, upload results, and history snapshots.

WHY: The rest of the client works with typed objects, not provider JSON.
Raw server fields are kept verbatim next to the derived canonical status
so the reconciler can always recompute truth from the original signals.

HOW: Plain dataclasses. The pydantic wire schemas in api/schemas.py
validate the JSON and hand back these objects via their to_*() methods.

RULES:
- Job.canonical_status is None until core.reconciler assigns it
- raw_text / raw_error / server_status are never rewritten client-side
- UploadResult.kind is "queued" (has id) or "direct" (has text)
- HistorySnapshot.partition is keyed by the server's own bucket names
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union


class CanonicalStatus(str, enum.Enum):
    """Reconciled status of a job.

    RULES:
    - completed and error are terminal
    - Inherits from str so values serialize cleanly and compare to tab names
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (CanonicalStatus.COMPLETED, CanonicalStatus.ERROR)


STATUS_ORDER: List[CanonicalStatus] = [
    CanonicalStatus.QUEUED,
    CanonicalStatus.PROCESSING,
    CanonicalStatus.COMPLETED,
    CanonicalStatus.ERROR,
]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class Job:
    """One transcription request and its evolving result.

    RULES:
    - id is None for optimistic local jobs and inline (direct) results
    - created_at/completed_at are timezone-aware when present
    - audio_ref is presentation only
    """

    id: Optional[str]
    audio_ref: str = ""
    language_code: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    raw_text: Optional[str] = None
    raw_error: Optional[str] = None
    server_status: Optional[str] = None
    canonical_status: Optional[CanonicalStatus] = None

    @property
    def sort_key(self) -> datetime:
        return self.created_at or _EPOCH

    @property
    def audio_label(self) -> str:
        """Last path segment of audio_ref, e.g. ``recording.wav``."""
        ref = self.audio_ref.split("?", 1)[0].rstrip("/")
        return ref.rsplit("/", 1)[-1] if ref else ""

    @property
    def has_text(self) -> bool:
        return bool(self.raw_text and self.raw_text.strip())


def sort_newest_first(jobs: List[Job]) -> List[Job]:
    """Return jobs ordered by created_at descending (missing dates last)."""
    return sorted(jobs, key=lambda j: j.sort_key, reverse=True)


@dataclass
class UploadResult:
    """Discriminated outcome of a successful upload call."""

    kind: str
    id: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def queued(cls, job_id: str) -> UploadResult:
        return cls(kind="queued", id=job_id)

    @classmethod
    def direct(cls, text: str) -> UploadResult:
        return cls(kind="direct", text=text)


PageItem = Union[int, str]


@dataclass
class HistorySnapshot:
    """Server-authoritative history listing, returned verbatim.

    RULES:
    - partition always has all four status keys
    - counts is the server's status_counts summary (may span all pages)
    - current_page and total_pages are 1-based
    """

    partition: Dict[CanonicalStatus, List[Job]] = field(
        default_factory=lambda: {status: [] for status in STATUS_ORDER}
    )
    counts: Dict[CanonicalStatus, int] = field(
        default_factory=lambda: {status: 0 for status in STATUS_ORDER}
    )
    current_page: int = 1
    total_pages: int = 1
    total_count: Optional[int] = None

    @property
    def jobs(self) -> List[Job]:
        return [job for status in STATUS_ORDER for job in self.partition.get(status, [])]

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    def page_numbers(self, delta: int = 2) -> List[PageItem]:
        """Page links with ``"..."`` for gaps.

        HOW: Always shows the first and last page plus a window of
        ``delta`` pages around the current one. A gap of exactly one page
        is filled with that page instead of an ellipsis.
        """
        window = [
            page
            for page in range(1, self.total_pages + 1)
            if page == 1
            or page == self.total_pages
            or self.current_page - delta <= page <= self.current_page + delta
        ]
        result: List[PageItem] = []
        previous: Optional[int] = None
        for page in window:
            if previous is not None:
                if page - previous == 2:
                    result.append(previous + 1)
                elif page - previous != 1:
                    result.append("...")
            result.append(page)
            previous = page
        return result


@dataclass
class User:
    username: str
    is_admin: bool = False


@dataclass
class LoginResult:
    token: str
    user: User
