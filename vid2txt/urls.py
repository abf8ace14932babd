"""Locator classification for streaming-site and drive URLs."""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from vid2txt.errors import InvalidLocator
from vid2txt.models import MediaLocator


STREAMING_URL_PATTERNS = [
    re.compile(r'^https?://(?:www\.|m\.)?(?:youtube\.com/(?:watch\?v=|embed/|v/|shorts/)|youtu\.be/)'),
    re.compile(r'^https?://(?:www\.|m\.)?youtube\.com/watch\?.*v='),
]

STREAMING_ID_PATTERNS = [
    re.compile(r'(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/|youtube\.com/shorts/)([^&\n?#/]+)'),
    re.compile(r'youtube\.com/watch\?.*v=([^&\n?#/]+)'),
]

DRIVE_HOSTS = ('drive.google.com', 'docs.google.com')

DRIVE_ID_PATTERNS = [
    re.compile(r'/file/d/([a-zA-Z0-9_-]+)'),  # /file/d/FILE_ID
    re.compile(r'[?&]id=([a-zA-Z0-9_-]+)'),   # ?id=FILE_ID
    re.compile(r'/d/([a-zA-Z0-9_-]+)'),       # /d/FILE_ID
]


def is_streaming_url(url: str) -> bool:
    url = url.strip()
    return any(pattern.match(url) for pattern in STREAMING_URL_PATTERNS)


def extract_video_id(url: str) -> Optional[str]:
    """Extract the video ID from the supported streaming URL formats."""
    for pattern in STREAMING_ID_PATTERNS:
        match = pattern.search(url.strip())
        if match:
            return match.group(1)
    return None


def extract_drive_file_id(url: str) -> Optional[str]:
    """Return the file ID of a drive link, or None when the URL is not one."""
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        return None
    if (parsed.hostname or '').lower() not in DRIVE_HOSTS:
        return None
    for pattern in DRIVE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_drive_url(url: str) -> bool:
    return extract_drive_file_id(url) is not None


def require_video_id(url: str) -> str:
    if not is_streaming_url(url):
        raise InvalidLocator(f"Invalid YouTube URL format: {url}")
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidLocator(f"Could not extract video ID from YouTube URL: {url}")
    return video_id


def require_drive_file_id(url: str) -> str:
    file_id = extract_drive_file_id(url)
    if not file_id:
        raise InvalidLocator(f"Invalid Google Drive URL format: {url}")
    return file_id


def parse_locator(text: str) -> MediaLocator:
    """
    Classify raw user input as a streaming URL, a drive URL or a local path.

    Any other http(s) URL is rejected rather than treated as a path.
    """
    value = (text or '').strip().strip('"').strip("'")
    if not value:
        raise InvalidLocator("No video path or URL provided")
    if is_streaming_url(value):
        return MediaLocator.streaming(value)
    if is_drive_url(value):
        return MediaLocator.drive(value)
    if re.match(r'^[a-zA-Z][a-zA-Z0-9+.-]*://', value):
        raise InvalidLocator(f"Unsupported URL: {value}")
    return MediaLocator.local(Path(value).expanduser())
