"""Tests for TXT and SRT export."""

from __future__ import annotations

from pathlib import Path

from vid2txt.models import Segment, TranscriptRecord
from vid2txt.writers.srt_writer import format_timestamp, write_srt
from vid2txt.writers.txt_writer import format_seconds, write_txt


class TestTxtWriter:
    def test_format_seconds(self) -> None:
        assert format_seconds(0) == "00:00:00"
        assert format_seconds(3725.9) == "01:02:05"

    def test_write(self, tmp_path: Path, record) -> None:
        path = write_txt(record, tmp_path / "out" / "t.txt")
        assert path.read_text(encoding="utf-8").splitlines() == [
            "[00:00:00 - 00:00:01] Hello there.",
            "[00:00:01 - 00:00:03] General Kenobi.",
        ]

    def test_without_segments(self, tmp_path: Path) -> None:
        path = write_txt(TranscriptRecord(text="plain text"), tmp_path / "t.txt")
        assert path.read_text(encoding="utf-8") == "plain text\n"


class TestSrtWriter:
    def test_format_timestamp(self) -> None:
        assert format_timestamp(0) == "00:00:00,000"
        assert format_timestamp(61.5) == "00:01:01,500"
        assert format_timestamp(3600.9999) == "01:00:01,000"

    def test_write(self, tmp_path: Path) -> None:
        record = TranscriptRecord(text="a b", segments=[Segment(0.0, 1.25, "a"), Segment(1.25, 2.0, "b")])
        path = write_srt(record, tmp_path / "t.srt")
        assert path.read_text(encoding="utf-8") == (
            "1\n00:00:00,000 --> 00:00:01,250\na\n\n"
            "2\n00:00:01,250 --> 00:00:02,000\nb\n\n"
        )
