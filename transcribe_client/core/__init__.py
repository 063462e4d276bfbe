"""Lifecycle core: reconciliation, store, history refresh, polling, session.

Nothing in this package performs HTTP itself; it drives a
TranscribeClient and keeps the LifecycleStore consistent.
"""

from transcribe_client.core.history import HistoryFetcher
from transcribe_client.core.poller import StatusPoller
from transcribe_client.core.reconciler import canonicalize, is_settled, reconcile_partition
from transcribe_client.core.session import SubmissionSession
from transcribe_client.core.store import LifecycleStore, Submission, SubmissionPhase
from transcribe_client.core.transcript import TranscriptStats, transcript_stats

__all__ = [
    "HistoryFetcher",
    "LifecycleStore",
    "StatusPoller",
    "Submission",
    "SubmissionPhase",
    "SubmissionSession",
    "TranscriptStats",
    "canonicalize",
    "is_settled",
    "reconcile_partition",
    "transcript_stats",
]
