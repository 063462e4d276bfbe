"""Tests for status reconciliation.

WHY: canonicalize() is the single source of truth for job status. It has
to be pure, total over arbitrary server input, and honor the sentinel
strings before anything the server claims.

HOW: Table tests for each rule, plus a seeded fuzz loop that checks
purity and the invariants over thousands of random inputs.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from transcribe_client.api.models import STATUS_ORDER, CanonicalStatus, Job
from transcribe_client.core.reconciler import (
    NOT_AVAILABLE_SENTINEL,
    PROCESSING_SENTINEL,
    canonicalize,
    is_settled,
    reconcile_job,
    reconcile_partition,
    settled_status,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestCanonicalize:

    def test_processing_sentinel_beats_completed_with_text(self):
        assert canonicalize("hello", PROCESSING_SENTINEL, "completed") == CanonicalStatus.PROCESSING

    def test_processing_sentinel_beats_error_status(self):
        assert canonicalize(None, PROCESSING_SENTINEL, "error") == CanonicalStatus.PROCESSING

    def test_not_available_sentinel_is_error(self):
        assert canonicalize("text", NOT_AVAILABLE_SENTINEL, "completed") == CanonicalStatus.ERROR

    def test_any_error_text_is_error(self):
        assert canonicalize("text", "boom", "processing") == CanonicalStatus.ERROR

    def test_blank_error_is_no_error(self):
        assert canonicalize("hello", "", "completed") == CanonicalStatus.COMPLETED
        assert canonicalize(None, "  ", "queued") == CanonicalStatus.QUEUED

    def test_completed_requires_text(self):
        assert canonicalize("hello", None, "completed") == CanonicalStatus.COMPLETED
        assert canonicalize("   ", None, "completed") == CanonicalStatus.ERROR
        assert canonicalize(None, None, "completed") == CanonicalStatus.ERROR

    @pytest.mark.parametrize("server,expected", [
        ("queued", CanonicalStatus.QUEUED),
        ("processing", CanonicalStatus.PROCESSING),
        ("error", CanonicalStatus.ERROR),
        ("failed", CanonicalStatus.ERROR),
        ("mystery", CanonicalStatus.PROCESSING),
        (None, CanonicalStatus.PROCESSING),
        ("COMPLETED", CanonicalStatus.ERROR),
    ])
    def test_server_status_fallback(self, server, expected):
        assert canonicalize(None, None, server) == expected


class TestCanonicalizeFuzz:
    """Purity and invariants over random inputs."""

    TEXTS = [None, "", "  ", "hello world", "こんにちは", PROCESSING_SENTINEL]
    ERRORS = [None, "", PROCESSING_SENTINEL, NOT_AVAILABLE_SENTINEL, "Something broke"]
    STATUSES = [None, "", "queued", "processing", "completed", "error", "failed", "pending", "Done"]

    def test_pure_and_invariant(self):
        rng = random.Random(1234)
        for _ in range(5000):
            text = rng.choice(self.TEXTS)
            error = rng.choice(self.ERRORS)
            status = rng.choice(self.STATUSES)

            first = canonicalize(text, error, status)
            assert canonicalize(text, error, status) == first
            assert first in STATUS_ORDER

            if error == PROCESSING_SENTINEL:
                assert first == CanonicalStatus.PROCESSING
            elif error is not None and error.strip():
                assert first == CanonicalStatus.ERROR
            if first == CanonicalStatus.COMPLETED:
                assert text is not None and text.strip()
                assert not error


class TestPartition:

    def _job(self, job_id, minutes, **fields):
        return Job(id=job_id, created_at=BASE_TIME + timedelta(minutes=minutes), **fields)

    def test_jobs_are_rebucketed_by_canonical_status(self):
        jobs = [
            self._job("1", 0, raw_text="done", server_status="completed"),
            self._job("2", 1, raw_error=PROCESSING_SENTINEL, server_status="completed"),
            self._job("3", 2, server_status="completed"),
            self._job("4", 3, server_status="queued"),
        ]
        partition = reconcile_partition(jobs)
        assert [j.id for j in partition[CanonicalStatus.COMPLETED]] == ["1"]
        assert [j.id for j in partition[CanonicalStatus.PROCESSING]] == ["2"]
        assert [j.id for j in partition[CanonicalStatus.ERROR]] == ["3"]
        assert [j.id for j in partition[CanonicalStatus.QUEUED]] == ["4"]

    def test_buckets_are_newest_first_and_complete(self):
        jobs = [self._job(str(i), i, server_status="queued") for i in range(3)]
        partition = reconcile_partition(jobs)
        assert set(partition) == set(STATUS_ORDER)
        assert [j.id for j in partition[CanonicalStatus.QUEUED]] == ["2", "1", "0"]

    def test_raw_fields_are_kept(self):
        job = reconcile_job(Job(id="9", raw_error=PROCESSING_SENTINEL, server_status="completed"))
        assert job.raw_error == PROCESSING_SENTINEL
        assert job.server_status == "completed"
        assert job.canonical_status == CanonicalStatus.PROCESSING


class TestSettled:

    def test_processing_is_not_settled(self):
        job = reconcile_job(Job(id="1", server_status="processing"))
        assert not is_settled(job)

    def test_sentinel_is_not_settled(self):
        job = reconcile_job(Job(id="1", raw_error=PROCESSING_SENTINEL, server_status="processing"))
        assert not is_settled(job)

    def test_text_settles_as_completed(self):
        job = reconcile_job(Job(id="1", raw_text="hi", server_status="processing"))
        assert is_settled(job)
        assert settled_status(job) == CanonicalStatus.COMPLETED

    def test_text_under_sentinel_settles_without_restamping(self):
        job = reconcile_job(Job(id="1", raw_text="hi", raw_error=PROCESSING_SENTINEL))
        assert is_settled(job)
        assert settled_status(job) == CanonicalStatus.COMPLETED
        assert job.canonical_status == CanonicalStatus.PROCESSING

    def test_real_error_settles_as_error(self):
        job = reconcile_job(Job(id="1", raw_error="decoder crashed", server_status="processing"))
        assert is_settled(job)
        assert settled_status(job) == CanonicalStatus.ERROR
