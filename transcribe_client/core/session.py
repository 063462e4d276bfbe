"""Submission session: the lifecycle state machine a front end drives.

WHY: A submission moves through upload, polling, and a terminal result,
and the user can reload, switch tabs, close the history view, or start
another upload at any point. Those transitions were previously spread
over loosely coupled flags; here they are one object with one phase and
one error slot.

HOW: SubmissionSession owns a LifecycleStore, a HistoryFetcher, and a
StatusPoller, all sharing one TranscribeClient. submit() uploads with
progress, then either finishes immediately (inline transcript) or hands
the job to the poller. Listeners registered with subscribe() are called
after every change so a CLI or UI can redraw.

RULES:
- Phases: idle → uploading → polling (⇄ paused) → done | stalled;
  errored on failure
- Stopping the poller before the job settles leaves it paused; resume()
  and open_history() restart it
- Polling follows the active job on page 1 whatever page is being viewed
- Capture/encode/upload errors reset the submission to idle and set error
- One error slot, most recent wins; a new submit() clears it
- Tabs "completed" and "error" need no live updates and stop polling
- close_history(), reload() and cancel() stop polling
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import List, Optional, Union

from transcribe_client.api.client import TranscribeClient
from transcribe_client.api.models import CanonicalStatus, HistorySnapshot, Job
from transcribe_client.audio.normalizer import NormalizedAudio, accept_file
from transcribe_client.config import POLL_INTERVAL_S, POLL_MAX_ATTEMPTS
from transcribe_client.core.history import HistoryFetcher
from transcribe_client.core.poller import StatusPoller
from transcribe_client.core.reconciler import is_settled, reconcile_job, settled_status
from transcribe_client.core.store import (
    ALL_TAB,
    LifecycleStore,
    Submission,
    SubmissionPhase,
    Tab,
    normalize_tab,
)
from transcribe_client.errors import HistoryFetchError, RateLimitError, TranscribeClientError

logger = logging.getLogger(__name__)

RATE_LIMIT_NOTICE = "Rate limit reached. Please wait a moment and try again."

_STATIC_TABS = {CanonicalStatus.COMPLETED.value, CanonicalStatus.ERROR.value}
_UNSETTLED_PHASES = {SubmissionPhase.POLLING, SubmissionPhase.PAUSED}
_SUBMISSION_PAGE = 1

Listener = Callable[["SubmissionSession"], None]


def error_message(exc: BaseException) -> str:
    """User-facing text for an error placed in the session's error slot."""
    if isinstance(exc, RateLimitError):
        return RATE_LIMIT_NOTICE
    if isinstance(exc, TranscribeClientError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class SubmissionSession:
    """One user's view of uploads and job history.

    Args:
        client: An entered TranscribeClient.
        store: Store to populate (a fresh one by default).
        poll_interval_s: Seconds between poll ticks.
        poll_max_attempts: Tick budget before the submission stalls.
        sleep: Awaitable sleep for the poller, replaceable in tests.
    """

    def __init__(
        self,
        client: TranscribeClient,
        store: Optional[LifecycleStore] = None,
        poll_interval_s: float = POLL_INTERVAL_S,
        poll_max_attempts: int = POLL_MAX_ATTEMPTS,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.client = client
        self.store = store or LifecycleStore()
        self.fetcher = HistoryFetcher(client, self.store, on_error=self._set_error)
        self.poller = StatusPoller(
            self._poll_refresh,
            self.store,
            interval_s=poll_interval_s,
            max_attempts=poll_max_attempts,
            on_change=self._notify,
            sleep=sleep,
        )
        self.active_tab = ALL_TAB
        self.page = 1
        self.history_open = False
        self.error: Optional[str] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SubmissionPhase:
        submission = self.store.active_submission
        return submission.phase if submission else SubmissionPhase.IDLE

    @property
    def submission(self) -> Optional[Submission]:
        return self.store.active_submission

    @property
    def progress(self) -> int:
        submission = self.store.active_submission
        return submission.progress if submission else 0

    @property
    def is_polling(self) -> bool:
        return self.poller.is_running

    def visible_jobs(self) -> List[Job]:
        return self.store.derive_filtered(self.active_tab)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set_error(self, exc: BaseException) -> None:
        self.error = error_message(exc)
        self._notify()

    def clear_error(self) -> None:
        if self.error is not None:
            self.error = None
            self._notify()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        audio: NormalizedAudio,
        language_code: Optional[str] = None,
    ) -> Submission:
        """Upload a payload and start following the resulting job.

        Returns:
            The active Submission, in phase polling (queued upload) or
            done (inline transcript).

        Raises:
            TranscribeClientError: Upload failed; the session is idle again
                and the error slot holds the message.
        """
        self.poller.stop()
        self.error = None
        self.page = 1
        submission = self.store.begin_submission(audio.label, language_code)
        self._notify()

        try:
            result = await self.client.upload_audio(
                audio, language_code=language_code, on_progress=self._on_progress
            )
        except TranscribeClientError as exc:
            logger.warning("Upload of %s failed: %s", audio.label, exc.message)
            self._abort(exc)
            raise

        if result.kind == "direct":
            job = reconcile_job(dataclasses.replace(
                submission.job,
                raw_text=result.text,
                server_status=CanonicalStatus.COMPLETED.value,
            ))
            self.store.finish_submission(job, SubmissionPhase.DONE, settled_status(job))
            self._notify()
            await self.refresh()
            return submission

        self.store.assign_job_id(result.id)
        self.history_open = True
        self._notify()
        self.poller.start()
        return submission

    async def submit_file(
        self,
        path: Union[str, Path],
        language_code: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Submission:
        """Validate, normalize, and submit an audio file from disk."""
        try:
            audio = await asyncio.to_thread(accept_file, path, mime_type)
        except TranscribeClientError as exc:
            logger.warning("Rejected %s: %s", path, exc.message)
            self._abort(exc)
            raise
        return await self.submit(audio, language_code)

    def report_capture_error(self, exc: TranscribeClientError) -> None:
        """Record a recorder failure the same way as an upload failure."""
        self._abort(exc)

    def _abort(self, exc: BaseException) -> None:
        submission = self.store.active_submission
        if submission is not None:
            submission.phase = SubmissionPhase.ERRORED
        self.store.clear_submission()
        self._set_error(exc)

    def _on_progress(self, percent: int) -> None:
        self.store.set_progress(percent)
        self._notify()

    # ------------------------------------------------------------------
    # History view
    # ------------------------------------------------------------------

    async def refresh(self) -> Optional[HistorySnapshot]:
        """Refresh the store from the current history page."""
        snapshot = await self.fetcher.refresh(page=self.page)
        if snapshot is not None:
            self._notify()
        return snapshot

    async def _poll_refresh(self) -> None:
        """Poll tick: refresh the viewed page and keep the active job current."""
        await self.refresh()
        if self.page != _SUBMISSION_PAGE:
            await self._follow_active_job()

    async def _follow_active_job(self) -> None:
        # New uploads are listed first, so the active job lives on page 1
        submission = self.store.active_submission
        if submission is None or submission.job.id is None:
            return
        try:
            snapshot = await self.client.fetch_history(page=_SUBMISSION_PAGE)
        except HistoryFetchError as exc:
            self._set_error(exc)
            return
        if submission is not self.store.active_submission:
            return
        if submission.phase != SubmissionPhase.POLLING:
            return
        for job in snapshot.jobs:
            if str(job.id) == str(submission.job.id):
                self.store.observe_submission_job(reconcile_job(job))
                return

    async def reload(self) -> Optional[HistorySnapshot]:
        """Manual reload: supersedes polling with one refresh."""
        self._pause()
        snapshot = await self.refresh()
        self._settle_from_store()
        return snapshot

    async def go_to_page(self, page: int) -> Optional[HistorySnapshot]:
        if page < 1:
            raise ValueError("Page numbers start at 1.")
        self.page = page
        return await self.refresh()

    async def open_history(self) -> Optional[HistorySnapshot]:
        self.history_open = True
        self._notify()
        snapshot = await self.refresh()
        await self.resume()
        return snapshot

    def select_tab(self, tab: Tab) -> None:
        self.active_tab = normalize_tab(tab)
        if self.active_tab in _STATIC_TABS:
            self._pause()
        self._notify()

    def close_history(self) -> None:
        self.history_open = False
        self._pause()
        self._notify()

    async def resume(self) -> bool:
        """Restart polling for a paused submission. Returns True if restarted."""
        submission = self.store.active_submission
        if submission is None or submission.phase != SubmissionPhase.PAUSED:
            return False
        self.store.resume_submission()
        self._notify()
        self.poller.start()
        return True

    def _pause(self) -> None:
        self.poller.stop()
        self.store.pause_submission()

    def _settle_from_store(self) -> None:
        submission = self.store.active_submission
        if submission is None or submission.phase not in _UNSETTLED_PHASES:
            return
        if submission.job.id is None:
            return
        job = self.store.find_job(submission.job.id)
        if job is not None and is_settled(job):
            self.store.finish_submission(job, SubmissionPhase.DONE, settled_status(job))
            self._notify()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def delete(self, job_id: str) -> bool:
        """Delete a job on the provider, then drop it locally."""
        try:
            await self.client.delete_transcription(job_id)
        except TranscribeClientError as exc:
            self._set_error(exc)
            raise
        removed = self.store.drop_job(job_id)
        self._notify()
        return removed

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def wait(self) -> SubmissionPhase:
        """Wait for polling to finish and return the resulting phase."""
        await self.poller.wait()
        return self.phase

    def cancel(self) -> None:
        """Stop polling, leaving the submission paused as last seen."""
        self._pause()
        self._notify()

    async def aclose(self) -> None:
        self.poller.stop()
        self._listeners.clear()

    async def __aenter__(self) -> SubmissionSession:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()
