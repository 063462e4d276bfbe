"""Tests for transcript statistics and saving."""

from __future__ import annotations

from datetime import date

from transcribe_client.core.transcript import download_filename, save_transcript, transcript_stats


class TestStats:

    def test_counts(self):
        stats = transcript_stats("Hello there. How are you? Fine")
        assert stats.characters == 30
        assert stats.words == 6
        assert stats.sentences == 3

    def test_blank(self):
        stats = transcript_stats("   ")
        assert (stats.characters, stats.words, stats.sentences) == (0, 0, 0)

    def test_cjk_terminators(self):
        assert transcript_stats("こんにちは。元気ですか？").sentences == 2


class TestSave:

    def test_default_filename(self):
        assert download_filename(date(2024, 5, 1)) == "transcription-2024-05-01.txt"

    def test_directory_gets_dated_name(self, tmp_path):
        path = save_transcript("hi", tmp_path, on=date(2024, 1, 2))
        assert path.name == "transcription-2024-01-02.txt"
        assert path.read_text(encoding="utf-8") == "hi"

    def test_explicit_file(self, tmp_path):
        path = save_transcript("日本語", tmp_path / "out.txt")
        assert path.read_text(encoding="utf-8") == "日本語"
