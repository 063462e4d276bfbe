"""Polling loop that follows the active submission to a terminal status.

WHY: The provider has no push channel, so after an upload the client
re-reads the listing until the new job settles. The loop must stop
reliably: clearing a variable does not stop a sleeping task, and two
loops racing over one store produce flickering, contradictory state.

HOW: StatusPoller runs one asyncio task at a time. Each start() bumps a
generation counter and cancels the previous task; the loop re-checks its
generation after every await. A tick is: refresh history, find the
active job (by id, falling back to the submission's own record of it),
and stop if reconciler.is_settled() says so.

RULES:
- At most one loop; start() supersedes, never stacks
- First tick runs immediately, then one tick per interval
- Settled → finish_submission(job, DONE, settled_status(job))
- max_attempts ticks without settling → finish_submission(job, STALLED)
- stop() is idempotent and safe to call from any callback
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from transcribe_client.api.models import CanonicalStatus, Job
from transcribe_client.config import POLL_INTERVAL_S, POLL_MAX_ATTEMPTS
from transcribe_client.core.reconciler import is_settled, settled_status
from transcribe_client.core.store import LifecycleStore, SubmissionPhase

logger = logging.getLogger(__name__)


class StatusPoller:
    """Generation-guarded polling loop over a refresh callable.

    Args:
        refresh: Coroutine function that refreshes the store.
        store: Store whose active submission is being followed.
        interval_s: Delay between ticks.
        max_attempts: Tick budget before giving up as stalled.
        on_change: Called after the loop records a final state.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        store: LifecycleStore,
        interval_s: float = POLL_INTERVAL_S,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        on_change: Optional[Callable[[], None]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._refresh = refresh
        self._store = store
        self.interval_s = interval_s
        self.max_attempts = max(1, max_attempts)
        self._on_change = on_change
        self._sleep = sleep or asyncio.sleep
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start a new loop, superseding any running one."""
        self.stop()
        self._generation += 1
        self.ticks = 0
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))
        return self._task

    def stop(self) -> None:
        """Flip the stop switch and cancel the running task, if any."""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the current loop to finish (or be cancelled)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _active_job(self) -> Optional[Job]:
        submission = self._store.active_submission
        if submission is None:
            return None
        if submission.job.id is not None:
            # Not on the listed page: use the last record seen for this id
            return self._store.find_job(submission.job.id) or submission.job
        return self._store.latest_job()

    def _finish(
        self,
        job: Job,
        phase: SubmissionPhase,
        outcome: Optional[CanonicalStatus] = None,
    ) -> None:
        if self._store.active_submission is None:
            return
        self._store.finish_submission(job, phase, outcome)
        if self._on_change:
            self._on_change()

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            self.ticks += 1
            await self._refresh()
            if generation != self._generation:
                return

            job = self._active_job()
            if job is not None and is_settled(job):
                outcome = settled_status(job)
                logger.info("Job %s settled as %s after %d tick(s)", job.id, outcome.value, self.ticks)
                self._finish(job, SubmissionPhase.DONE, outcome)
                return

            if self.ticks >= self.max_attempts:
                submission = self._store.active_submission
                logger.warning("Polling gave up after %d tick(s); job still processing", self.ticks)
                if submission is not None:
                    self._finish(job or submission.job, SubmissionPhase.STALLED)
                return

            await self._sleep(self.interval_s)
