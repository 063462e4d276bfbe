"""Transcribe client: audio submission and transcription lifecycle tracking.

WHY: The transcription provider accepts an audio upload and finishes the
work asynchronously. Its status field is unreliable, so a client has to
upload, poll, and reconcile several ambiguous fields into one trustworthy
view of every job.

HOW: Four layers: audio (capture + canonical WAV encoding), api (httpx
client for upload/history/delete/login), core (reconciler, store, history
fetcher, poller, submission session), and a thin argparse CLI on top.

RULES:
- Canonical status is written only by core.reconciler
- The LifecycleStore is replaced wholesale from history snapshots
- At most one submission is uploading or polling at a time
"""

__version__ = "0.1.0"
