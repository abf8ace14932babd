"""Configuration management and environment variable loading."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from vid2txt.models import SourceKind


VIDEO_EXTENSIONS = ('.mp4', '.mkv', '.avi', '.mov', '.wmv', '.flv', '.webm')

TRANSCRIPTION_TASKS = ('translate', 'transcribe')

# Settings a hosted deployment may provide as secrets instead of a .env file
SECRET_ENV_VARS = ('MODEL', 'TRANSCRIPTION_TASK', 'MAX_RETRIES', 'VIDEO_TRANSCRIBER_HOME')


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return Path(value).expanduser() if value else None


def export_secrets(secrets, names, environ=None) -> list:
    """
    Copy secrets into the environment without overriding variables already set.

    Returns:
        Names that were exported
    """
    environ = os.environ if environ is None else environ
    exported = []
    for name in names:
        if name in secrets and name not in environ:
            environ[name] = str(secrets[name])
            exported.append(name)
    return exported


@dataclass
class Config:
    """Application configuration, passed explicitly to every component."""

    home_dir: Path = field(default_factory=lambda: Path.home() / "VideoTranscriber")
    model: str = "whisper-1"
    task: str = "translate"
    max_retries: int = 2
    request_timeout: float = 600.0
    ytdlp_path: Optional[Path] = None
    ffmpeg_path: Optional[Path] = None
    audio_bitrate: str = "64k"
    audio_sample_rate: int = 16000
    max_upload_mb: int = 25
    video_format: str = "best[height<=720]/best"
    cookies_file: Optional[Path] = None
    # Scoped to this process; artifacts inside are removed after each run
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / f"vid2txt-{os.getpid()}")

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Config":
        """
        Build configuration from the environment.

        A ``.env`` file is loaded first without overriding variables that
        are already set.
        """
        load_dotenv(env_file, override=False)
        defaults = cls()
        return cls(
            home_dir=_optional_path(os.getenv("VIDEO_TRANSCRIBER_HOME")) or defaults.home_dir,
            model=os.getenv("MODEL", defaults.model),
            task=os.getenv("TRANSCRIPTION_TASK", defaults.task).strip().lower(),
            max_retries=int(os.getenv("MAX_RETRIES", str(defaults.max_retries))),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", str(defaults.request_timeout))),
            ytdlp_path=_optional_path(os.getenv("YTDLP_PATH")),
            ffmpeg_path=_optional_path(os.getenv("FFMPEG_PATH")),
            audio_bitrate=os.getenv("AUDIO_BITRATE", defaults.audio_bitrate),
            audio_sample_rate=int(os.getenv("AUDIO_SAMPLE_RATE", str(defaults.audio_sample_rate))),
            max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", str(defaults.max_upload_mb))),
            video_format=os.getenv("VIDEO_FORMAT", defaults.video_format),
            cookies_file=_optional_path(os.getenv("YOUTUBE_COOKIES_TXT")),
            temp_dir=_optional_path(os.getenv("TEMP_DIR")) or defaults.temp_dir,
        )

    @property
    def downloads_dir(self) -> Path:
        return self.home_dir / "Downloads"

    @property
    def streaming_dir(self) -> Path:
        return self.downloads_dir / "StreamingSite"

    @property
    def drive_dir(self) -> Path:
        return self.downloads_dir / "CloudDrive"

    @property
    def local_files_dir(self) -> Path:
        return self.downloads_dir / "local_files"

    @property
    def local_index_path(self) -> Path:
        return self.local_files_dir / "metadata.json"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def managed_dir(self, source: SourceKind) -> Path:
        return {
            SourceKind.STREAMING: self.streaming_dir,
            SourceKind.DRIVE: self.drive_dir,
            SourceKind.LOCAL: self.local_files_dir,
        }[source]

    def ensure_directories(self) -> None:
        """Create every managed directory (idempotent)."""
        for directory in (self.streaming_dir, self.drive_dir, self.local_files_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def source_for_path(self, path: Path) -> SourceKind:
        """Acquired files live in a managed directory; anything else is local."""
        resolved = Path(path).expanduser().resolve()
        for source in (SourceKind.STREAMING, SourceKind.DRIVE):
            managed = self.managed_dir(source).expanduser().resolve()
            if resolved.parent == managed:
                return source
        return SourceKind.LOCAL

    def validate(self) -> None:
        """Validate that configuration values are usable."""
        if self.task not in TRANSCRIPTION_TASKS:
            raise ValueError(
                f"TRANSCRIPTION_TASK must be one of {', '.join(TRANSCRIPTION_TASKS)}, got {self.task!r}"
            )
        if self.max_upload_mb <= 0:
            raise ValueError("MAX_UPLOAD_MB must be positive")
        if self.max_retries < 0:
            raise ValueError("MAX_RETRIES cannot be negative")
        if self.audio_sample_rate <= 0:
            raise ValueError("AUDIO_SAMPLE_RATE must be positive")
