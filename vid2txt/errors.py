"""Error taxonomy for acquisition, extraction and transcription failures."""

from enum import Enum
from typing import Optional


class TranscriberError(RuntimeError):
    """Base error. ``code`` doubles as the CLI exit status."""

    code = 1

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class InvalidLocator(TranscriberError):
    """The path or URL supplied by the user has the wrong shape."""

    code = 2


class AcquisitionCause(str, Enum):
    UNAVAILABLE = "unavailable"
    PRIVATE = "private"
    CERTIFICATE = "certificate"
    NETWORK = "network"
    SIGN_IN_REQUIRED = "sign_in_required"
    AGE_RESTRICTED = "age_restricted"
    PERMISSION = "permission"
    TOOL_MISSING = "tool_missing"
    TOOL_ERROR = "tool_error"
    FILE_NOT_FOUND = "file_not_found"


class AcquisitionFailure(TranscriberError):
    """The fetch tool could not produce a local file."""

    code = 3

    def __init__(self, message: str, cause: AcquisitionCause = AcquisitionCause.TOOL_ERROR) -> None:
        super().__init__(message)
        self.cause = cause


class ExtractionFailure(TranscriberError):
    """ffmpeg failed to produce the audio artifact."""

    code = 4


class TranscriptionFailure(TranscriberError):
    """The transcription service returned an error."""

    code = 5


class AuthenticationFailure(TranscriptionFailure):
    """The transcription service rejected the API key (HTTP 401)."""

    code = 6


class CacheCorrupt(TranscriberError):
    """A transcript side-car exists but cannot be deserialized."""

    code = 7


class StorageIOFailure(TranscriberError):
    """Filesystem error while reading or writing managed files."""

    code = 8


class PipelineCancelled(TranscriberError):
    code = 9


# Checked in order; first match wins.
_GUIDANCE = [
    (("api key",), "Please check your OpenAI API key configuration."),
    (("network", "connect"), "Check your internet connection."),
    (("ffmpeg",), "Issue with the FFmpeg component used for audio extraction."),
    (("yt-dlp",), "Please ensure yt-dlp is installed and accessible."),
    (("401", "403"), "API authentication failed."),
    (("429", "rate limit"), "API rate limit exceeded. Please try again later."),
]


def guidance_for(error) -> Optional[str]:
    """
    Return best-effort help text for an error message.

    Matching is a case-insensitive substring search, so it only covers the
    messages this package produces itself plus the common library ones.
    """
    message = str(error).lower()
    for needles, text in _GUIDANCE:
        if any(needle in message for needle in needles):
            return text
    return None
