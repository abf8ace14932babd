"""Audio extraction from video files using ffmpeg."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from pydub.utils import mediainfo_json, which

from vid2txt.config import Config
from vid2txt.errors import ExtractionFailure
from vid2txt.process import run_streaming

logger = logging.getLogger(__name__)

OUT_TIME_RE = re.compile(r'^out_time_(?:us|ms)=(\d+)$')


@dataclass
class AudioChunk:
    path: Path
    offset: float  # Seconds from the start of the source video


@dataclass
class ExtractedAudio:
    """Mono audio artifact, possibly split into upload-sized chunks."""
    path: Path
    chunks: list[AudioChunk] = field(default_factory=list)


def artifact_paths(base_path: Path) -> list[Path]:
    """Every file a run may have produced for this artifact name."""
    base_path = Path(base_path)
    found = [base_path] if base_path.exists() else []
    if base_path.parent.is_dir():
        found += sorted(base_path.parent.glob(f"{base_path.stem}_*{base_path.suffix}"))
    return found


def remove_artifacts(base_path: Path) -> None:
    """Delete the artifact and its chunks; missing files are fine."""
    for path in artifact_paths(base_path):
        try:
            path.unlink()
            logger.debug("Deleted temp audio file: %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to delete temp audio file %s: %s", path, e)


def _parse_bitrate(bitrate: str) -> Optional[int]:
    """'64k' -> 64000 bits per second."""
    match = re.match(r'^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)\s*$', bitrate or '')
    if not match:
        return None
    value = float(match.group(1))
    unit = match.group(2).lower()
    if unit == 'k':
        value *= 1000
    elif unit == 'm':
        value *= 1000 * 1000
    return int(value)


class AudioExtractionStage:
    """Produces a mono, low-bitrate MP3 from a video file."""

    def __init__(
        self,
        ffmpeg_path: Optional[Path] = None,
        bitrate: str = "64k",
        sample_rate: int = 16000,
        max_upload_bytes: int = 25 * 1024 * 1024,
        runner=run_streaming,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.bitrate = bitrate
        self.sample_rate = sample_rate
        self.max_upload_bytes = max_upload_bytes
        self.runner = runner

    @classmethod
    def from_config(cls, config: Config) -> "AudioExtractionStage":
        return cls(
            ffmpeg_path=config.ffmpeg_path,
            bitrate=config.audio_bitrate,
            sample_rate=config.audio_sample_rate,
            max_upload_bytes=config.max_upload_bytes,
        )

    def locate_ffmpeg(self) -> str:
        if self.ffmpeg_path:
            if not Path(self.ffmpeg_path).exists():
                raise ExtractionFailure(f"ffmpeg binary not found at: {self.ffmpeg_path}")
            return str(self.ffmpeg_path)
        found = which('ffmpeg')
        if not found:
            raise ExtractionFailure("ffmpeg not found. Install ffmpeg or set FFMPEG_PATH.")
        return found

    def probe_duration(self, media_path: Path) -> Optional[float]:
        """Duration in seconds via ffprobe, or None when it cannot be determined."""
        try:
            info = mediainfo_json(str(media_path))
            return float(info['format']['duration'])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("Could not probe duration of %s: %s", media_path, e)
            return None

    def build_command(self, ffmpeg: str, video_path: Path, output_path: Path) -> list[str]:
        return [
            ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-nostdin",
            "-y",
            "-i", str(video_path),
            "-vn",
            "-ac", "1",
            "-ar", str(self.sample_rate),
            "-c:a", "libmp3lame",
            "-b:a", self.bitrate,
            "-progress", "pipe:1",
            str(output_path),
        ]

    def _run(self, cmd: list[str], on_line=None):
        try:
            return self.runner(cmd, on_stdout=on_line)
        except OSError as e:
            raise ExtractionFailure(f"ffmpeg could not be started: {e}") from e

    def extract(
        self,
        video_path: Path,
        output_path: Path,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> ExtractedAudio:
        """
        Extract the audio track of a video.

        Args:
            video_path: Source video
            output_path: Where the MP3 artifact goes; chunk files share its stem
            on_progress: Called with a 0.0-1.0 fraction while ffmpeg runs

        Returns:
            ExtractedAudio with one chunk, or several when the artifact is
            larger than the upload limit

        Raises:
            ExtractionFailure: ffmpeg is missing or exits with an error. Any
                partial output is removed before raising.
        """
        ffmpeg = self.locate_ffmpeg()
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        duration = self.probe_duration(video_path) if on_progress else None

        def on_line(line: str) -> None:
            match = OUT_TIME_RE.match(line.strip())
            if match and duration:
                seconds = int(match.group(1)) / 1_000_000
                on_progress(max(0.0, min(seconds / duration, 1.0)))

        logger.info("Extracting audio: %s -> %s", video_path, output_path)
        try:
            result = self._run(self.build_command(ffmpeg, video_path, output_path), on_line)
            if result.returncode != 0 or not output_path.exists():
                detail = result.stderr.strip() or f"exit code {result.returncode}"
                raise ExtractionFailure(f"ffmpeg error: {detail}")
            if on_progress:
                on_progress(1.0)

            size = output_path.stat().st_size
            if size <= self.max_upload_bytes:
                return ExtractedAudio(path=output_path, chunks=[AudioChunk(output_path, 0.0)])
            logger.info("Audio is %.1f MB, above the upload limit; splitting", size / (1024 * 1024))
            return ExtractedAudio(path=output_path, chunks=self._split(ffmpeg, output_path, size))
        except BaseException:
            remove_artifacts(output_path)
            raise

    def _segment_seconds(self, audio_path: Path, size: int) -> int:
        bits_per_second = _parse_bitrate(self.bitrate)
        if not bits_per_second:
            duration = self.probe_duration(audio_path)
            if not duration:
                raise ExtractionFailure(f"ffmpeg error: cannot determine duration of {audio_path}")
            bits_per_second = size * 8 / duration
        # Stay comfortably below the limit; MP3 frames are not exactly CBR
        return max(1, int(self.max_upload_bytes * 0.9 * 8 / bits_per_second))

    def _split(self, ffmpeg: str, audio_path: Path, size: int) -> list[AudioChunk]:
        segment_seconds = self._segment_seconds(audio_path, size)
        pattern = audio_path.with_name(f"{audio_path.stem}_%03d{audio_path.suffix}")
        cmd = [
            ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-nostdin",
            "-y",
            "-i", str(audio_path),
            "-f", "segment",
            "-segment_time", str(segment_seconds),
            "-reset_timestamps", "1",
            "-c", "copy",
            str(pattern),
        ]
        result = self._run(cmd)
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise ExtractionFailure(f"ffmpeg error while splitting audio: {detail}")

        paths = sorted(audio_path.parent.glob(f"{audio_path.stem}_[0-9][0-9][0-9]{audio_path.suffix}"))
        if not paths:
            raise ExtractionFailure("ffmpeg error: splitting produced no audio chunks")

        chunks = []
        offset = 0.0
        for path in paths:
            chunks.append(AudioChunk(path, offset))
            offset += self.probe_duration(path) or segment_seconds
        audio_path.unlink()
        logger.info("Split audio into %d chunks of ~%ds", len(chunks), segment_seconds)
        return chunks
