"""Lifecycle store: the single client-held view of all known jobs.

WHY: Every consumer (history table, tab counts, progress line, CLI
output) must see the same jobs with the same statuses. Earlier designs
kept counts separately from the job lists and the two drifted; here the
counts are derived from the lists every time they are read, and the
lists are only ever replaced wholesale.

HOW: LifecycleStore holds the reconciled partition, the last server
counts (informational), pagination metadata, and at most one active
Submission. Submission carries the optimistic Job plus the session phase
and upload progress.

RULES:
- replace_snapshot() swaps the whole partition atomically, never merges
- derive_counts() is always computed from jobs_by_status
- derive_filtered("all") flattens all buckets, newest first
- Only the history fetcher path and the submission transitions write here
- Jobs leave the store only via drop_job() after a successful delete
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from transcribe_client.api.models import STATUS_ORDER, CanonicalStatus, Job, sort_newest_first
from transcribe_client.core.reconciler import reconcile_job

logger = logging.getLogger(__name__)

ALL_TAB = "all"
Tab = Union[str, CanonicalStatus]


class SubmissionPhase(str, enum.Enum):
    """Named states of the submission state machine.

    RULES:
    - idle: nothing in flight
    - uploading: payload being transmitted
    - polling: upload accepted, waiting for a terminal status
    - done: active job reached completed or error
    - errored: capture/encode/upload failed (submission then resets)
    - stalled: poll budget spent without a terminal status
    - paused: polling stopped by the user before the job settled
    """

    IDLE = "idle"
    UPLOADING = "uploading"
    POLLING = "polling"
    DONE = "done"
    ERRORED = "errored"
    STALLED = "stalled"
    PAUSED = "paused"


@dataclass
class Submission:
    """The single job currently being uploaded or polled."""

    job: Job
    phase: SubmissionPhase = SubmissionPhase.UPLOADING
    progress: int = 0
    # Terminal outcome once done: completed or error
    outcome: Optional[CanonicalStatus] = None


def empty_partition() -> Dict[CanonicalStatus, List[Job]]:
    return {status: [] for status in STATUS_ORDER}


def normalize_tab(tab: Tab) -> str:
    value = tab.value if isinstance(tab, CanonicalStatus) else str(tab)
    if value != ALL_TAB and value not in {s.value for s in STATUS_ORDER}:
        raise ValueError("Unknown tab: {}".format(tab))
    return value


class LifecycleStore:
    """Client-side store of jobs, derived counts, and the active submission."""

    def __init__(self) -> None:
        self._jobs_by_status: Dict[CanonicalStatus, List[Job]] = empty_partition()
        self.reported_counts: Dict[CanonicalStatus, int] = {status: 0 for status in STATUS_ORDER}
        self.current_page = 1
        self.total_pages = 1
        self.active_submission: Optional[Submission] = None
        self.has_snapshot = False
        self.version = 0

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    @property
    def jobs_by_status(self) -> Dict[CanonicalStatus, List[Job]]:
        """Copy of the partition; mutate the store only through its methods."""
        return {status: list(jobs) for status, jobs in self._jobs_by_status.items()}

    def replace_snapshot(
        self,
        partition: Dict[CanonicalStatus, List[Job]],
        counts: Optional[Dict[CanonicalStatus, int]] = None,
        page: Optional[int] = None,
        total_pages: Optional[int] = None,
    ) -> None:
        """Atomically adopt a reconciled partition.

        Args:
            partition: Jobs keyed by canonical status (missing keys → empty).
            counts: Server-reported totals, kept for display only.
            page: Current page of the listing.
            total_pages: Page count of the listing.
        """
        new_partition = empty_partition()
        for status in STATUS_ORDER:
            new_partition[status] = sort_newest_first(list(partition.get(status, [])))

        self._jobs_by_status = new_partition
        if counts is not None:
            self.reported_counts = {status: int(counts.get(status, 0)) for status in STATUS_ORDER}
        if page is not None:
            self.current_page = page
        if total_pages is not None:
            self.total_pages = total_pages
        self.has_snapshot = True
        self.version += 1
        logger.debug("Adopted snapshot v%d: %s", self.version, self.derive_counts())

    def derive_counts(self) -> Dict[CanonicalStatus, int]:
        return {status: len(self._jobs_by_status[status]) for status in STATUS_ORDER}

    @property
    def status_counts(self) -> Dict[CanonicalStatus, int]:
        return self.derive_counts()

    @property
    def total_jobs(self) -> int:
        return sum(self.derive_counts().values())

    def derive_filtered(self, tab: Tab = ALL_TAB) -> List[Job]:
        """Jobs visible under a tab.

        RULES:
        - "all" flattens the four lists and sorts by created_at descending
        - A status tab returns that bucket as stored (already newest first)
        - Unknown tabs raise ValueError
        """
        value = normalize_tab(tab)
        if value == ALL_TAB:
            everything = [job for status in STATUS_ORDER for job in self._jobs_by_status[status]]
            return sort_newest_first(everything)
        return list(self._jobs_by_status[CanonicalStatus(value)])

    def find_job(self, job_id: str) -> Optional[Job]:
        for status in STATUS_ORDER:
            for job in self._jobs_by_status[status]:
                if job.id is not None and str(job.id) == str(job_id):
                    return job
        return None

    def latest_job(self) -> Optional[Job]:
        """Most recently created job across all buckets."""
        jobs = self.derive_filtered(ALL_TAB)
        return jobs[0] if jobs else None

    def drop_job(self, job_id: str) -> bool:
        """Remove a deleted job. Returns False if it was not present."""
        removed = False
        new_partition = empty_partition()
        for status in STATUS_ORDER:
            kept = [job for job in self._jobs_by_status[status] if str(job.id) != str(job_id)]
            removed = removed or len(kept) != len(self._jobs_by_status[status])
            new_partition[status] = kept
        if removed:
            self._jobs_by_status = new_partition
            self.version += 1
        return removed

    # ------------------------------------------------------------------
    # Active submission
    # ------------------------------------------------------------------

    def begin_submission(self, audio_ref: str, language_code: Optional[str] = None) -> Submission:
        """Create the optimistic local job the instant an upload starts."""
        job = reconcile_job(
            Job(
                id=None,
                audio_ref=audio_ref,
                language_code=language_code,
                created_at=datetime.now(timezone.utc),
                server_status=CanonicalStatus.QUEUED.value,
            )
        )
        self.active_submission = Submission(job=job, phase=SubmissionPhase.UPLOADING)
        self.version += 1
        return self.active_submission

    def set_progress(self, percent: int) -> None:
        if self.active_submission is not None:
            self.active_submission.progress = max(0, min(100, int(percent)))
            self.version += 1

    def assign_job_id(self, job_id: str) -> None:
        """Attach the server id and move the submission to polling."""
        submission = self._require_submission()
        submission.job = reconcile_job(
            replace(submission.job, id=job_id, server_status=CanonicalStatus.PROCESSING.value)
        )
        submission.phase = SubmissionPhase.POLLING
        self.version += 1

    def finish_submission(
        self,
        job: Job,
        phase: SubmissionPhase = SubmissionPhase.DONE,
        outcome: Optional[CanonicalStatus] = None,
    ) -> None:
        """Record the active job's final state (terminal or stalled)."""
        submission = self._require_submission()
        submission.job = job
        submission.phase = phase
        submission.outcome = outcome
        self.version += 1

    def observe_submission_job(self, job: Job) -> None:
        """Record a fresher view of the active job found outside the snapshot."""
        submission = self.active_submission
        if submission is None or submission.job.id is None:
            return
        if str(job.id) != str(submission.job.id):
            return
        submission.job = job
        self.version += 1

    def pause_submission(self) -> None:
        """Polling -> paused; no-op in any other phase."""
        submission = self.active_submission
        if submission is not None and submission.phase == SubmissionPhase.POLLING:
            submission.phase = SubmissionPhase.PAUSED
            self.version += 1

    def resume_submission(self) -> None:
        submission = self._require_submission()
        submission.phase = SubmissionPhase.POLLING
        self.version += 1

    def clear_submission(self) -> None:
        if self.active_submission is not None:
            self.active_submission = None
            self.version += 1

    def _require_submission(self) -> Submission:
        if self.active_submission is None:
            raise RuntimeError("No active submission.")
        return self.active_submission
