"""History fetcher: refresh the store from the provider's listing.

WHY: The listing is the only source of truth, and refreshes overlap: the
poller ticks while the user pages or reloads. A slow early response must
never overwrite a newer one, and a failed refresh must never blank a
store that already holds good data.

HOW: Every refresh() takes a sequence number before awaiting the
network. When the response arrives, it is applied only if its number is
still the latest issued. Applied snapshots are reconciled job-by-job and
handed to LifecycleStore.replace_snapshot().

RULES:
- Responses from superseded requests are dropped, success or failure
- On HistoryFetchError the store is untouched and on_error fires once
- refresh() returns the applied snapshot, or None if nothing was applied
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from transcribe_client.api.client import TranscribeClient
from transcribe_client.api.models import HistorySnapshot
from transcribe_client.core.reconciler import reconcile_partition
from transcribe_client.core.store import LifecycleStore
from transcribe_client.errors import HistoryFetchError

logger = logging.getLogger(__name__)


class HistoryFetcher:
    """Sequence-numbered history refreshes applied to a LifecycleStore."""

    def __init__(
        self,
        client: TranscribeClient,
        store: LifecycleStore,
        on_error: Optional[Callable[[HistoryFetchError], None]] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._on_error = on_error
        self._issued = 0
        self._applied = 0
        self.last_error: Optional[HistoryFetchError] = None

    @property
    def issued(self) -> int:
        return self._issued

    @property
    def applied(self) -> int:
        return self._applied

    async def refresh(
        self,
        page: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Optional[HistorySnapshot]:
        """Fetch the listing and adopt it if no newer request was issued."""
        self._issued += 1
        seq = self._issued

        try:
            snapshot = await self._client.fetch_history(page=page, status=status)
        except HistoryFetchError as exc:
            if seq != self._issued:
                logger.debug("Ignoring failure of superseded history request #%d", seq)
                return None
            self.last_error = exc
            logger.warning("History refresh #%d failed, keeping %d known job(s): %s",
                           seq, self._store.total_jobs, exc.message)
            if self._on_error:
                self._on_error(exc)
            return None

        if seq != self._issued:
            logger.debug("Dropping stale history response #%d (latest is #%d)", seq, self._issued)
            return None

        self.last_error = None
        self._store.replace_snapshot(
            reconcile_partition(snapshot.jobs),
            counts=snapshot.counts,
            page=snapshot.current_page,
            total_pages=snapshot.total_pages,
        )
        self._applied = seq
        return snapshot
