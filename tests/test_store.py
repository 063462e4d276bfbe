"""Tests for the LifecycleStore.

WHY: Counts and filtered lists shown to the user must always agree with
the job lists, and snapshots must replace rather than merge.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from transcribe_client.api.models import CanonicalStatus, HistorySnapshot, Job
from transcribe_client.core.reconciler import reconcile_partition
from transcribe_client.core.store import LifecycleStore, SubmissionPhase

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id, minutes, **fields):
    return Job(id=job_id, created_at=BASE_TIME + timedelta(minutes=minutes), **fields)


@pytest.fixture
def store():
    s = LifecycleStore()
    s.replace_snapshot(reconcile_partition([
        _job("1", 0, raw_text="a", server_status="completed"),
        _job("2", 5, server_status="processing"),
        _job("3", 2, raw_error="bad audio", server_status="error"),
        _job("4", 9, server_status="queued"),
        _job("5", 7, raw_text="b", server_status="completed"),
    ]))
    return s


class TestSnapshot:

    def test_counts_derived_from_lists(self, store):
        counts = store.derive_counts()
        assert counts == {
            CanonicalStatus.QUEUED: 1,
            CanonicalStatus.PROCESSING: 1,
            CanonicalStatus.COMPLETED: 2,
            CanonicalStatus.ERROR: 1,
        }
        assert store.total_jobs == 5

    def test_all_tab_is_newest_first(self, store):
        assert [j.id for j in store.derive_filtered("all")] == ["4", "5", "2", "3", "1"]

    def test_status_tab(self, store):
        assert [j.id for j in store.derive_filtered(CanonicalStatus.COMPLETED)] == ["5", "1"]
        assert [j.id for j in store.derive_filtered("error")] == ["3"]

    def test_unknown_tab(self, store):
        with pytest.raises(ValueError):
            store.derive_filtered("archived")

    def test_replace_does_not_merge(self, store):
        store.replace_snapshot(reconcile_partition([_job("9", 20, server_status="queued")]))
        assert [j.id for j in store.derive_filtered()] == ["9"]
        assert store.total_jobs == 1

    def test_returned_partition_is_a_copy(self, store):
        store.jobs_by_status[CanonicalStatus.QUEUED].clear()
        assert store.derive_counts()[CanonicalStatus.QUEUED] == 1

    def test_drop_job(self, store):
        assert store.drop_job("2") is True
        assert store.find_job("2") is None
        assert store.drop_job("2") is False
        assert store.total_jobs == 4

    def test_latest_job(self, store):
        assert store.latest_job().id == "4"


class TestSubmission:

    def test_optimistic_job_is_queued(self):
        store = LifecycleStore()
        submission = store.begin_submission("tone.wav", "en")
        assert submission.phase == SubmissionPhase.UPLOADING
        assert submission.job.id is None
        assert submission.job.canonical_status == CanonicalStatus.QUEUED
        assert submission.job.created_at is not None

    def test_assign_id_moves_to_polling(self):
        store = LifecycleStore()
        store.begin_submission("tone.wav")
        store.assign_job_id("77")
        assert store.active_submission.phase == SubmissionPhase.POLLING
        assert store.active_submission.job.id == "77"
        assert store.active_submission.job.canonical_status == CanonicalStatus.PROCESSING

    def test_progress_is_clamped(self):
        store = LifecycleStore()
        store.begin_submission("tone.wav")
        store.set_progress(140)
        assert store.active_submission.progress == 100

    def test_pause_only_from_polling(self):
        store = LifecycleStore()
        store.begin_submission("tone.wav")
        store.pause_submission()
        assert store.active_submission.phase == SubmissionPhase.UPLOADING

        store.assign_job_id("77")
        store.pause_submission()
        assert store.active_submission.phase == SubmissionPhase.PAUSED
        store.resume_submission()
        assert store.active_submission.phase == SubmissionPhase.POLLING

    def test_observed_job_must_match_active_id(self):
        store = LifecycleStore()
        store.begin_submission("tone.wav")
        store.assign_job_id("77")
        store.observe_submission_job(Job(id="78", raw_text="other"))
        assert store.active_submission.job.raw_text is None
        store.observe_submission_job(Job(id="77", raw_text="mine"))
        assert store.active_submission.job.raw_text == "mine"

    def test_finish_requires_submission(self):
        with pytest.raises(RuntimeError):
            LifecycleStore().finish_submission(Job(id="1"))


class TestPageNumbers:

    @pytest.mark.parametrize("current,total,expected", [
        (1, 1, [1]),
        (1, 5, [1, 2, 3, 4, 5]),
        (1, 10, [1, 2, 3, "...", 10]),
        (6, 12, [1, "...", 4, 5, 6, 7, 8, "...", 12]),
        (4, 10, [1, 2, 3, 4, 5, 6, "...", 10]),
    ])
    def test_window(self, current, total, expected):
        snapshot = HistorySnapshot(current_page=current, total_pages=total)
        assert snapshot.page_numbers() == expected
