"""Tests for the error taxonomy and user guidance."""

from __future__ import annotations

import pytest

from vid2txt.errors import (
    AcquisitionCause,
    AcquisitionFailure,
    AuthenticationFailure,
    CacheCorrupt,
    ExtractionFailure,
    InvalidLocator,
    PipelineCancelled,
    StorageIOFailure,
    TranscriberError,
    TranscriptionFailure,
    guidance_for,
)


class TestCodes:
    def test_distinct_exit_codes(self) -> None:
        classes = [
            InvalidLocator, AcquisitionFailure, ExtractionFailure, TranscriptionFailure,
            AuthenticationFailure, CacheCorrupt, StorageIOFailure, PipelineCancelled,
        ]
        codes = [cls.code for cls in classes]
        assert len(set(codes)) == len(codes)
        assert all(code > 1 for code in codes)

    def test_code_override(self) -> None:
        assert TranscriberError("x", code=42).code == 42
        assert TranscriberError("x").code == 1

    def test_authentication_is_a_transcription_failure(self) -> None:
        assert issubclass(AuthenticationFailure, TranscriptionFailure)

    def test_acquisition_cause(self) -> None:
        error = AcquisitionFailure("Video is private", AcquisitionCause.PRIVATE)
        assert error.cause is AcquisitionCause.PRIVATE
        assert AcquisitionFailure("x").cause is AcquisitionCause.TOOL_ERROR
        assert str(error) == "Video is private"


class TestGuidance:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("OpenAI API key is not configured", "Please check your OpenAI API key configuration."),
            ("Network error during download", "Check your internet connection."),
            ("Could not connect", "Check your internet connection."),
            ("ffmpeg error: Invalid data", "Issue with the FFmpeg component used for audio extraction."),
            ("yt-dlp binary not found at: PATH", "Please ensure yt-dlp is installed and accessible."),
            ("HTTP 403 Forbidden", "API authentication failed."),
            ("OpenAI rate limit exceeded (429)", "API rate limit exceeded. Please try again later."),
        ],
    )
    def test_messages(self, message: str, expected: str) -> None:
        assert guidance_for(message) == expected

    def test_first_match_wins(self) -> None:
        assert guidance_for("Invalid OpenAI API key (401)") == "Please check your OpenAI API key configuration."

    def test_accepts_exceptions(self) -> None:
        assert guidance_for(ExtractionFailure("FFmpeg crashed")) is not None

    def test_no_match(self) -> None:
        assert guidance_for("Video file not found: /tmp/x.mp4") is None
