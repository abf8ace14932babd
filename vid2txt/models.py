"""Data models for locators, acquired media, transcripts and pipeline events."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


class SourceKind(str, Enum):
    """Where a video file came from."""
    LOCAL = "local"
    STREAMING = "streaming"
    DRIVE = "drive"


class LocatorKind(str, Enum):
    LOCAL_PATH = "local_path"
    STREAMING_URL = "streaming_url"
    DRIVE_URL = "drive_url"


@dataclass(frozen=True)
class MediaLocator:
    """User-supplied reference to a video: a local path or a remote URL."""
    kind: LocatorKind
    value: str

    @classmethod
    def local(cls, path) -> "MediaLocator":
        return cls(LocatorKind.LOCAL_PATH, str(path))

    @classmethod
    def streaming(cls, url: str) -> "MediaLocator":
        return cls(LocatorKind.STREAMING_URL, url)

    @classmethod
    def drive(cls, url: str) -> "MediaLocator":
        return cls(LocatorKind.DRIVE_URL, url)

    @property
    def source(self) -> SourceKind:
        return {
            LocatorKind.LOCAL_PATH: SourceKind.LOCAL,
            LocatorKind.STREAMING_URL: SourceKind.STREAMING,
            LocatorKind.DRIVE_URL: SourceKind.DRIVE,
        }[self.kind]


@dataclass
class AcquiredMedia:
    """A video file on local disk, ready for processing."""
    file_path: Path
    source: SourceKind
    title: str
    file_size_bytes: int
    already_existed: bool
    remote_id: Optional[str] = None
    duration: Optional[float] = None  # Seconds, when the fetch tool reported it


@dataclass
class Word:
    word: str
    start: float
    end: float


@dataclass
class Segment:
    """A single segment of transcribed text with timing information."""
    start: float  # Start time in seconds
    end: float    # End time in seconds
    text: str
    words: Optional[list[Word]] = None

    def to_dict(self) -> dict:
        data = {'start': self.start, 'end': self.end, 'text': self.text}
        if self.words is not None:
            data['words'] = [
                {'word': w.word, 'start': w.start, 'end': w.end}
                for w in self.words
            ]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        words = data.get('words')
        return cls(
            start=float(data['start']),
            end=float(data['end']),
            text=str(data.get('text', '')),
            words=[
                Word(word=str(w['word']), start=float(w['start']), end=float(w['end']))
                for w in words
            ] if words is not None else None,
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a trailing Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: str) -> datetime:
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class TranscriptRecord:
    """Complete transcript. Replaced wholesale, never mutated in place."""
    text: str
    segments: list[Segment] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utc_now)

    def to_sidecar(self, **key_fields) -> dict:
        """
        Build the persisted side-car payload.

        Args:
            key_fields: ``videoPath`` and/or ``md5Hash`` identifying the source video
        """
        data = {'generatedAt': format_timestamp(self.generated_at)}
        data.update(key_fields)
        data['text'] = self.text
        data['segments'] = [segment.to_dict() for segment in self.segments]
        return data

    @classmethod
    def from_sidecar(cls, data: dict) -> "TranscriptRecord":
        """Raises KeyError/TypeError/ValueError on malformed payloads."""
        if not isinstance(data, dict):
            raise TypeError("side-car payload must be an object")
        text = data['text']
        if not isinstance(text, str):
            raise TypeError("side-car 'text' must be a string")
        segments = data.get('segments') or []
        if not isinstance(segments, list):
            raise TypeError("side-car 'segments' must be a list")
        generated_at = data['generatedAt']
        if not isinstance(generated_at, str):
            raise TypeError("side-car 'generatedAt' must be a string")
        return cls(
            text=text,
            segments=[Segment.from_dict(s) for s in segments],
            generated_at=parse_timestamp(generated_at),
        )


@dataclass
class LibraryEntry:
    """One previously acquired video, reconstructed from a directory scan."""
    file_path: Path
    source: SourceKind
    title: str
    file_size_bytes: int
    downloaded_at: datetime
    has_transcript: bool


@dataclass
class StorageInfo:
    total_files: int
    total_bytes: int
    human_readable_total: str


class PipelinePhase(str, Enum):
    ACQUIRING = "acquiring"
    CACHE_CHECK = "cache_check"
    EXTRACTING = "extracting"
    TRANSCRIBING = "transcribing"
    PERSISTING = "persisting"
    CLEANUP = "cleanup"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class StatusEvent:
    """Phase transition or progress notification emitted by the pipeline."""
    phase: PipelinePhase
    message: str
    progress: Optional[float] = None  # 0.0 - 1.0 when known


@dataclass
class PipelineResult:
    record: TranscriptRecord
    media: AcquiredMedia
    cached: bool
    transcript_path: Optional[Path] = None
