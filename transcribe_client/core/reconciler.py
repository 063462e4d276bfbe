"""Status reconciliation: derive one trustworthy status per job.

WHY: The provider's status field is unreliable. It has been observed to
report "completed" with an empty payload while the job is still running,
and it overloads the error field with sentinel strings that are not
errors at all. Every view of a job must agree on its status, so there is
exactly one function that decides it, and nothing else in the client
branches on raw server fields.

HOW: canonicalize() is a pure function of (raw_text, raw_error,
server_status). reconcile_job() stamps the result on a copy of a Job,
and reconcile_partition() re-buckets a whole snapshot by canonical
status. is_settled() is the polling loop's stop test and
settled_status() names the outcome it stopped on.

RULES:
- Sentinel checks run before the server status is consulted
- "Please wait, processing your audio..." → processing, always
- "Transcription not available" or any other non-blank error → error
- A blank error field means no error
- completed requires non-blank text and no error
- Server "completed" with blank text and no error → error (data integrity)
- Server "queued"/"processing" are trusted verbatim; unknown → processing
- Only canonicalize() decides canonical_status
"""

from __future__ import annotations

import dataclasses
from typing import Dict, Iterable, List, Optional

from transcribe_client.api.models import STATUS_ORDER, CanonicalStatus, Job, sort_newest_first

PROCESSING_SENTINEL = "Please wait, processing your audio..."
NOT_AVAILABLE_SENTINEL = "Transcription not available"

_SERVER_ERROR_STATUSES = {"error", "failed", "failure"}


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def canonicalize(
    raw_text: Optional[str],
    raw_error: Optional[str],
    server_status: Optional[str],
) -> CanonicalStatus:
    """Map raw server signals to a canonical status.

    Args:
        raw_text: Transcript text as sent by the server.
        raw_error: Error field as sent by the server (may hold a sentinel).
        server_status: The server's own status field.

    Returns:
        One of the four CanonicalStatus values.
    """
    if raw_error == PROCESSING_SENTINEL:
        return CanonicalStatus.PROCESSING
    if not _is_blank(raw_error):
        # Includes NOT_AVAILABLE_SENTINEL
        return CanonicalStatus.ERROR

    status = (server_status or "").strip().lower()

    if status == CanonicalStatus.COMPLETED.value:
        if not _is_blank(raw_text):
            return CanonicalStatus.COMPLETED
        return CanonicalStatus.ERROR
    if status == CanonicalStatus.QUEUED.value:
        return CanonicalStatus.QUEUED
    if status in _SERVER_ERROR_STATUSES:
        return CanonicalStatus.ERROR
    return CanonicalStatus.PROCESSING


def reconcile_job(job: Job) -> Job:
    """Return a copy of job with canonical_status recomputed."""
    status = canonicalize(job.raw_text, job.raw_error, job.server_status)
    return dataclasses.replace(job, canonical_status=status)


def reconcile_partition(jobs: Iterable[Job]) -> Dict[CanonicalStatus, List[Job]]:
    """Reconcile every job and bucket it by canonical status.

    RULES:
    - Input grouping is ignored; a job listed under "completed" by the
      server can land in processing or error
    - Each bucket is sorted newest first
    - All four keys are always present
    """
    partition: Dict[CanonicalStatus, List[Job]] = {status: [] for status in STATUS_ORDER}
    for job in jobs:
        reconciled = reconcile_job(job)
        partition[reconciled.canonical_status].append(reconciled)
    return {status: sort_newest_first(bucket) for status, bucket in partition.items()}


def carries_error(job: Job) -> bool:
    """True when the error field holds a real error, not the processing sentinel."""
    return not _is_blank(job.raw_error) and job.raw_error != PROCESSING_SENTINEL


def is_settled(job: Job) -> bool:
    """Whether polling for this job can stop.

    A job is settled once its canonical status is terminal, it carries
    non-blank text, or it carries a non-sentinel error.
    """
    status = job.canonical_status or canonicalize(job.raw_text, job.raw_error, job.server_status)
    return status.is_terminal or job.has_text or carries_error(job)


def settled_status(job: Job) -> CanonicalStatus:
    """Terminal outcome of a settled job, recorded on its Submission.

    Non-blank text settles a job as completed even while the sentinel
    keeps its canonical status at processing. The outcome is stored
    beside the job; canonical_status stays what canonicalize() says.
    """
    if carries_error(job):
        return CanonicalStatus.ERROR
    status = job.canonical_status or canonicalize(job.raw_text, job.raw_error, job.server_status)
    if status == CanonicalStatus.ERROR:
        return CanonicalStatus.ERROR
    return CanonicalStatus.COMPLETED

