"""Transcript helpers: statistics and saving to disk."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# A sentence ends at one or more terminators, Latin or CJK
_SENTENCE_END = re.compile(r"[.!?。！？]+")


@dataclass(frozen=True)
class TranscriptStats:
    characters: int
    words: int
    sentences: int


def transcript_stats(text: Optional[str]) -> TranscriptStats:
    """Count characters, whitespace-separated words, and sentences.

    RULES:
    - Blank text → all zeros
    - Trailing text without a terminator still counts as a sentence
    """
    if not text or not text.strip():
        return TranscriptStats(characters=0, words=0, sentences=0)

    stripped = text.strip()
    sentences = [part for part in _SENTENCE_END.split(stripped) if part.strip()]
    return TranscriptStats(
        characters=len(text),
        words=len(stripped.split()),
        sentences=len(sentences),
    )


def download_filename(on: Optional[date] = None) -> str:
    """Default download name, e.g. ``transcription-2024-05-01.txt``."""
    return "transcription-{}.txt".format((on or date.today()).isoformat())


def save_transcript(
    text: str,
    destination: Union[str, Path, None] = None,
    on: Optional[date] = None,
) -> Path:
    """Write transcript text as UTF-8.

    A directory destination (or None, meaning the working directory) gets
    the dated default filename.
    """
    path = Path(destination) if destination is not None else Path.cwd()
    if path.is_dir():
        path = path / download_filename(on)
    path.write_text(text, encoding="utf-8")
    logger.info("Saved transcript to %s", path)
    return path
