"""Tests for the sequence-numbered HistoryFetcher.

WHY: Refreshes overlap (poll ticks, paging, reloads). A late response
from an older request must never overwrite newer data, and a failed
refresh must leave the known jobs in place.

HOW: An async MockTransport handler parks each request on an
asyncio.Event keyed by its page parameter, so the test decides the order
in which responses arrive.
"""

from __future__ import annotations

import asyncio

import httpx

from transcribe_client.api.client import TranscribeClient
from transcribe_client.api.models import CanonicalStatus
from transcribe_client.core.history import HistoryFetcher
from transcribe_client.core.reconciler import PROCESSING_SENTINEL
from transcribe_client.core.store import LifecycleStore
from transcribe_client.errors import HistoryFetchError

API_URL = "https://transcribe.example.test"


def _gated_client(payloads):
    """Client whose response for ?page=N waits until gates[N] is set.

    entered[N] is set once request N has reached the provider.
    """
    gates = {page: asyncio.Event() for page in payloads}
    entered = {page: asyncio.Event() for page in payloads}

    async def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        entered[page].set()
        await gates[page].wait()
        return httpx.Response(200, json=payloads[page])

    client = TranscribeClient(
        base_url=API_URL, auth_token="t", transport=httpx.MockTransport(handler)
    )
    return client, gates, entered


class TestOrdering:

    def test_late_stale_response_is_dropped(self, history_payload, make_item):
        stale = history_payload(processing=[make_item(1, status="processing")], current_page=1)
        fresh = history_payload(completed=[make_item(1, text="done")], current_page=2)

        async def run():
            client, gates, entered = _gated_client({1: stale, 2: fresh})
            async with client:
                store = LifecycleStore()
                fetcher = HistoryFetcher(client, store)
                older = asyncio.create_task(fetcher.refresh(page=1))
                newer = asyncio.create_task(fetcher.refresh(page=2))
                await entered[1].wait()
                await entered[2].wait()

                gates[2].set()
                newer_result = await newer
                gates[1].set()
                older_result = await older
                return store, fetcher, older_result, newer_result

        store, fetcher, older_result, newer_result = asyncio.run(run())

        assert newer_result is not None
        assert older_result is None
        assert store.current_page == 2
        assert [j.id for j in store.derive_filtered(CanonicalStatus.COMPLETED)] == ["1"]
        assert store.derive_counts()[CanonicalStatus.PROCESSING] == 0
        assert fetcher.applied == 2

    def test_early_superseded_response_is_dropped(self, history_payload, make_item):
        first = history_payload(queued=[make_item(1, status="queued")], current_page=1)
        second = history_payload(queued=[make_item(2, status="queued")], current_page=2)

        async def run():
            client, gates, entered = _gated_client({1: first, 2: second})
            async with client:
                store = LifecycleStore()
                fetcher = HistoryFetcher(client, store)
                older = asyncio.create_task(fetcher.refresh(page=1))
                newer = asyncio.create_task(fetcher.refresh(page=2))
                await entered[1].wait()
                await entered[2].wait()

                gates[1].set()
                older_result = await older
                version_after_older = store.version
                gates[2].set()
                await newer
                return store, older_result, version_after_older

        store, older_result, version_after_older = asyncio.run(run())

        assert older_result is None
        assert version_after_older == 0
        assert [j.id for j in store.derive_filtered()] == ["2"]

    def test_snapshot_is_reconciled(self, fake_provider, history_payload, make_item):
        payload = history_payload(completed=[
            make_item(1, text=None, error=PROCESSING_SENTINEL),
            make_item(2, text=None),
        ])
        make_client, _ = fake_provider(lambda r: httpx.Response(200, json=payload))

        async def run():
            async with make_client() as client:
                store = LifecycleStore()
                await HistoryFetcher(client, store).refresh()
                return store

        store = asyncio.run(run())
        assert [j.id for j in store.derive_filtered(CanonicalStatus.PROCESSING)] == ["1"]
        assert [j.id for j in store.derive_filtered(CanonicalStatus.ERROR)] == ["2"]
        assert store.derive_filtered(CanonicalStatus.COMPLETED) == []
        # Server totals are kept for display, not used for counts
        assert store.reported_counts[CanonicalStatus.COMPLETED] == 2


class TestFailure:

    def test_failed_fetch_keeps_known_jobs(self, fake_provider, history_payload, make_item):
        good = history_payload(completed=[make_item(i, text="t{}".format(i), minutes=i) for i in range(5)])
        responses = iter([httpx.Response(200, json=good), httpx.Response(502)])
        make_client, _ = fake_provider(lambda r: next(responses))
        surfaced = []

        async def run():
            async with make_client() as client:
                store = LifecycleStore()
                fetcher = HistoryFetcher(client, store, on_error=surfaced.append)
                await fetcher.refresh()
                result = await fetcher.refresh()
                return store, fetcher, result

        store, fetcher, result = asyncio.run(run())

        assert result is None
        assert store.total_jobs == 5
        assert len(surfaced) == 1
        assert isinstance(surfaced[0], HistoryFetchError)
        assert fetcher.last_error is surfaced[0]
