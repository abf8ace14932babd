"""Tests for locator classification and ID extraction."""

from __future__ import annotations

from pathlib import Path

import pytest

from vid2txt.errors import InvalidLocator
from vid2txt.models import LocatorKind, SourceKind
from vid2txt.urls import (
    extract_drive_file_id,
    extract_video_id,
    is_drive_url,
    is_streaming_url,
    parse_locator,
    require_drive_file_id,
    require_video_id,
)


class TestStreamingUrls:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
            "http://m.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/v/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_recognized_and_id_extracted(self, url: str) -> None:
        assert is_streaming_url(url)
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    def test_watch_with_other_params_first(self) -> None:
        url = "https://www.youtube.com/watch?feature=share&v=abc123"
        assert is_streaming_url(url)
        assert require_video_id(url) == "abc123"

    def test_rejects_other_hosts(self) -> None:
        assert not is_streaming_url("https://vimeo.com/12345")
        assert not is_streaming_url("https://notyoutube.com/watch?v=abc")

    def test_require_video_id_raises(self) -> None:
        with pytest.raises(InvalidLocator, match="Invalid YouTube URL format"):
            require_video_id("https://example.com/watch?v=abc")


class TestDriveUrls:
    @pytest.mark.parametrize(
        "url",
        [
            "https://drive.google.com/file/d/1AbC_dEf-123/view?usp=sharing",
            "https://drive.google.com/open?id=1AbC_dEf-123",
            "https://drive.google.com/uc?export=download&id=1AbC_dEf-123",
            "https://docs.google.com/d/1AbC_dEf-123/edit",
        ],
    )
    def test_file_id_extracted(self, url: str) -> None:
        assert is_drive_url(url)
        assert extract_drive_file_id(url) == "1AbC_dEf-123"

    def test_host_must_be_drive(self) -> None:
        assert extract_drive_file_id("https://evil.example.com/file/d/1AbC/view") is None

    def test_scheme_must_be_http(self) -> None:
        assert extract_drive_file_id("ftp://drive.google.com/file/d/1AbC/view") is None

    def test_drive_url_without_id(self) -> None:
        with pytest.raises(InvalidLocator, match="Invalid Google Drive URL format"):
            require_drive_file_id("https://drive.google.com/drive/my-drive")


class TestParseLocator:
    def test_streaming(self) -> None:
        locator = parse_locator("  https://youtu.be/abc  ")
        assert locator.kind is LocatorKind.STREAMING_URL
        assert locator.value == "https://youtu.be/abc"
        assert locator.source is SourceKind.STREAMING

    def test_drive(self) -> None:
        locator = parse_locator("https://drive.google.com/file/d/XYZ/view")
        assert locator.kind is LocatorKind.DRIVE_URL
        assert locator.source is SourceKind.DRIVE

    def test_local_path_strips_quotes(self) -> None:
        locator = parse_locator('"/tmp/my video.mp4"')
        assert locator.kind is LocatorKind.LOCAL_PATH
        assert Path(locator.value) == Path("/tmp/my video.mp4")

    def test_empty_input(self) -> None:
        with pytest.raises(InvalidLocator):
            parse_locator("   ")

    def test_unsupported_url_is_not_a_path(self) -> None:
        with pytest.raises(InvalidLocator, match="Unsupported URL"):
            parse_locator("https://vimeo.com/12345")
