"""Command-line interface for the transcription client.

WHY: Users need a terminal front end for the whole lifecycle: log in,
upload a file or record from the microphone, watch the job settle, and
browse, check, or delete past jobs. The CLI is a thin driver over
SubmissionSession; all state decisions live in the core package.

HOW: argparse subcommands, each backed by an async handler run with
asyncio.run(). Status lines go to stderr; transcript text goes to stdout
or to the --output file. Progress is rendered by a session listener.

RULES:
- Status output goes to stderr, transcripts to stdout (pipe-friendly)
- logging.basicConfig is called here and nowhere else (--verbose → DEBUG)
- Every TranscribeClientError is reported as "Error: <message>", exit 1
- A job still processing when polling gives up exits with code 2
- Ctrl+C exits with code 130
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from transcribe_client import __version__
from transcribe_client.api import auth
from transcribe_client.api.client import TranscribeClient
from transcribe_client.api.models import STATUS_ORDER, CanonicalStatus, Job
from transcribe_client.audio.capture import MicrophoneRecorder, format_clock
from transcribe_client.audio.normalizer import format_file_size
from transcribe_client.config import LANGUAGES, language_name
from transcribe_client.core.reconciler import reconcile_job
from transcribe_client.core.session import SubmissionSession, error_message
from transcribe_client.core.store import ALL_TAB, SubmissionPhase
from transcribe_client.core.transcript import save_transcript, transcript_stats
from transcribe_client.errors import TranscribeClientError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_STALLED = 2
EXIT_INTERRUPTED = 130

_PREVIEW_CHARS = 60


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _preview(job: Job) -> str:
    if job.canonical_status == CanonicalStatus.ERROR:
        text = job.raw_error or "Transcription not available"
    elif job.has_text:
        text = job.raw_text or ""
    else:
        return ""
    text = " ".join(text.split())
    if len(text) > _PREVIEW_CHARS:
        text = text[:_PREVIEW_CHARS - 3] + "..."
    return text


def _format_job(job: Job) -> str:
    created = job.created_at.strftime("%Y-%m-%d %H:%M") if job.created_at else "-"
    status = job.canonical_status.value if job.canonical_status else "-"
    return "{:>8}  {:<10}  {:<16}  {:<10}  {:<20}  {}".format(
        job.id or "-",
        status,
        created,
        language_name(job.language_code),
        job.audio_label or "-",
        _preview(job),
    )


def _emit_transcript(text: str, output: Optional[str]) -> None:
    """Write the transcript to stdout or to a file, then report its stats."""
    if output:
        path = save_transcript(text, output)
        _status("Saved transcript to {}".format(path))
    else:
        print(text)
    stats = transcript_stats(text)
    _status("{} characters, {} words, {} sentences".format(
        stats.characters, stats.words, stats.sentences
    ))


class _ProgressPrinter:
    """Session listener that prints upload progress and phase changes."""

    def __init__(self) -> None:
        self._last_progress = -1
        self._last_phase: Optional[SubmissionPhase] = None
        self._last_version = -1

    def __call__(self, session: SubmissionSession) -> None:
        phase = session.phase
        if phase == SubmissionPhase.UPLOADING and session.progress != self._last_progress:
            self._last_progress = session.progress
            _status("  Uploading... {}%".format(session.progress))
        if phase != self._last_phase:
            self._last_phase = phase
            if phase == SubmissionPhase.POLLING:
                _status("Waiting for transcription (job {})...".format(session.submission.job.id))
        elif phase == SubmissionPhase.POLLING and session.store.version != self._last_version:
            job = session.store.find_job(session.submission.job.id)
            if job is not None and job.canonical_status is not None:
                _status("  Status: {}".format(job.canonical_status.value))
        self._last_version = session.store.version


async def _finish_submission(session: SubmissionSession, args: argparse.Namespace) -> int:
    """Wait for the active submission to settle and print its outcome."""
    if args.no_wait and session.phase == SubmissionPhase.POLLING:
        session.cancel()
        _status("Queued as job {}. Check it later with: status {}".format(
            session.submission.job.id, session.submission.job.id
        ))
        return EXIT_OK

    phase = await session.wait()
    submission = session.submission
    if submission is None:
        _status("Error: {}".format(session.error or "Submission was cancelled."))
        return EXIT_ERROR

    job = submission.job
    if phase == SubmissionPhase.STALLED:
        _status("Still processing. Check back later with: status {}".format(job.id))
        return EXIT_STALLED
    if submission.outcome == CanonicalStatus.COMPLETED and job.has_text:
        _emit_transcript(job.raw_text or "", args.output)
        return EXIT_OK

    _status("Error: {}".format(job.raw_error or "Transcription not available"))
    return EXIT_ERROR


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _cmd_login(args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    result = await auth.login(args.username, password)
    role = " (admin)" if result.user.is_admin else ""
    _status("Logged in as {}{}".format(result.user.username, role))
    return EXIT_OK


async def _cmd_logout(args: argparse.Namespace) -> int:
    auth.logout()
    _status("Logged out.")
    return EXIT_OK


async def _cmd_upload(args: argparse.Namespace) -> int:
    path = Path(args.input_file)
    async with TranscribeClient() as client:
        async with SubmissionSession(client) as session:
            session.subscribe(_ProgressPrinter())
            _status("Uploading {} ({})...".format(
                path.name, format_file_size(path.stat().st_size) if path.is_file() else "?"
            ))
            await session.submit_file(path, language_code=args.language)
            return await _finish_submission(session, args)


async def _record_until_done(recorder: MicrophoneRecorder, seconds: Optional[float]) -> None:
    if seconds is not None:
        deadline = time.monotonic() + seconds
        while time.monotonic() < deadline:
            await asyncio.sleep(min(1.0, max(0.0, deadline - time.monotonic())))
            _status("  {}".format(format_clock(recorder.recorded_seconds)))
        return
    _status("Recording... press Enter to stop.")
    await asyncio.to_thread(sys.stdin.readline)


async def _cmd_record(args: argparse.Namespace) -> int:
    recorder = MicrophoneRecorder()
    async with TranscribeClient() as client:
        async with SubmissionSession(client) as session:
            session.subscribe(_ProgressPrinter())
            try:
                with recorder:
                    recorder.start_capture()
                    await _record_until_done(recorder, args.seconds)
                    audio = recorder.stop_capture()
            except TranscribeClientError as exc:
                session.report_capture_error(exc)
                raise
            _status("Recorded {} ({})".format(
                format_clock(audio.duration_s), format_file_size(audio.size)
            ))
            await session.submit(audio, language_code=args.language)
            return await _finish_submission(session, args)


async def _cmd_history(args: argparse.Namespace) -> int:
    async with TranscribeClient() as client:
        async with SubmissionSession(client) as session:
            session.page = args.page
            snapshot = await session.refresh()
            if snapshot is None:
                _status("Error: {}".format(session.error))
                return EXIT_ERROR
            session.select_tab(args.status)

            counts = session.store.derive_counts()
            _status("  ".join(
                "{}: {}".format(status.value, counts[status]) for status in STATUS_ORDER
            ))
            for job in session.visible_jobs():
                print(_format_job(job))
            if snapshot.total_pages > 1:
                pages = " ".join(
                    "[{}]".format(p) if p == snapshot.current_page else str(p)
                    for p in snapshot.page_numbers()
                )
                _status("Page {} of {}: {}".format(
                    snapshot.current_page, snapshot.total_pages, pages
                ))
            return EXIT_OK


async def _cmd_status(args: argparse.Namespace) -> int:
    async with TranscribeClient() as client:
        job = reconcile_job(await client.check_status(args.job_id))
    _status(_format_job(job))
    if job.canonical_status == CanonicalStatus.COMPLETED:
        _emit_transcript(job.raw_text or "", args.output)
        return EXIT_OK
    if job.canonical_status == CanonicalStatus.ERROR:
        _status("Error: {}".format(job.raw_error or "Transcription not available"))
        return EXIT_ERROR
    return EXIT_STALLED


async def _cmd_delete(args: argparse.Namespace) -> int:
    async with TranscribeClient() as client:
        async with SubmissionSession(client) as session:
            await session.delete(args.job_id)
    _status("Deleted job {}.".format(args.job_id))
    return EXIT_OK


async def _cmd_languages(args: argparse.Namespace) -> int:
    for code, (english, native) in LANGUAGES.items():
        print("{}  {} ({})".format(code, english, native))
    return EXIT_OK


_HANDLERS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "upload": _cmd_upload,
    "record": _cmd_record,
    "history": _cmd_history,
    "status": _cmd_status,
    "delete": _cmd_delete,
    "languages": _cmd_languages,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    RULES:
    - One subcommand per lifecycle action
    - --verbose is global and must precede the subcommand
    """
    parser = argparse.ArgumentParser(
        prog="transcribe_client",
        description="Upload or record audio, follow transcription jobs, "
                    "and browse transcription history.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the token locally.")
    login.add_argument("username")
    login.add_argument("--password", default=None,
                       help="Password (prompted for when omitted).")

    sub.add_parser("logout", help="Forget the stored token and user.")

    def add_submit_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--language", choices=sorted(LANGUAGES), default=None,
                       help="Language code (default: detected by the provider).")
        p.add_argument("--output", default=None,
                       help="Write the transcript to this file or directory.")
        p.add_argument("--no-wait", action="store_true",
                       help="Return as soon as the upload is queued.")

    upload = sub.add_parser("upload", help="Transcribe an audio file (max 5 MB).")
    upload.add_argument("input_file", help="Path to the audio file.")
    add_submit_options(upload)

    record = sub.add_parser("record", help="Record from the microphone and transcribe.")
    record.add_argument("--seconds", type=float, default=None,
                        help="Stop after this many seconds (default: wait for Enter).")
    add_submit_options(record)

    history = sub.add_parser("history", help="List past transcriptions.")
    history.add_argument("--page", type=int, default=1)
    history.add_argument("--status", default=ALL_TAB,
                         choices=[ALL_TAB] + [s.value for s in STATUS_ORDER])

    status = sub.add_parser("status", help="Show one job and its transcript.")
    status.add_argument("job_id")
    status.add_argument("--output", default=None,
                        help="Write the transcript to this file or directory.")

    delete = sub.add_parser("delete", help="Delete a transcription.")
    delete.add_argument("job_id")

    sub.add_parser("languages", help="List supported language codes.")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``python -m transcribe_client``.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = _HANDLERS[args.command]
    try:
        return asyncio.run(handler(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        return EXIT_INTERRUPTED
    except TranscribeClientError as exc:
        _status("Error: {}".format(error_message(exc)))
        return EXIT_ERROR
    except LookupError as exc:
        _status("Error: {}".format(exc.args[0] if exc.args else exc))
        return EXIT_ERROR
    except OSError as exc:
        logger.exception("Unexpected I/O failure")
        _status("Error: {}".format(exc))
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
