"""Video acquisition from local disk, YouTube and Google Drive using yt-dlp."""

import logging
import os
import re
import shutil
import stat
import sys
from pathlib import Path
from typing import Callable, Optional

from vid2txt.config import Config, VIDEO_EXTENSIONS
from vid2txt.errors import AcquisitionCause, AcquisitionFailure, InvalidLocator
from vid2txt.models import AcquiredMedia, LocatorKind, MediaLocator, PipelinePhase, SourceKind, StatusEvent
from vid2txt.process import ProcessResult, run_streaming
from vid2txt.urls import require_drive_file_id, require_video_id

logger = logging.getLogger(__name__)

StatusCallback = Optional[Callable[[StatusEvent], None]]

USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

PERCENT_RE = re.compile(r'(\d+(?:\.\d+)?)%')


def _notify(on_status: StatusCallback, message: str, progress: Optional[float] = None) -> None:
    if on_status:
        on_status(StatusEvent(PipelinePhase.ACQUIRING, message, progress))


def title_from_filename(filename: str) -> str:
    """
    Recover a display title from ``source_id_title.ext``.

    Best effort: an ID containing underscores shifts the split point.
    """
    stem = Path(filename).stem
    parts = stem.split('_', 2)
    if len(parts) == 3 and parts[2]:
        return parts[2].replace('_', ' ').strip() or stem
    return stem


def find_fetch_tool(configured: Optional[Path] = None) -> Optional[Path]:
    """Configured path, then ``yt-dlp`` on PATH, then the script next to the interpreter."""
    if configured:
        return Path(configured)
    found = shutil.which('yt-dlp')
    if found:
        return Path(found)
    script = 'yt-dlp.exe' if os.name == 'nt' else 'yt-dlp'
    candidate = Path(sys.executable).parent / script
    if candidate.exists():
        return candidate
    return None


class FetchTool:
    """Thin wrapper around the yt-dlp executable."""

    def __init__(self, binary: Optional[Path] = None, runner=run_streaming) -> None:
        self.binary = binary
        self.runner = runner

    def locate(self) -> Path:
        binary = find_fetch_tool(self.binary)
        if binary is None or (binary.is_absolute() and not binary.exists()):
            raise AcquisitionFailure(
                f"yt-dlp binary not found at: {binary or 'PATH'}",
                AcquisitionCause.TOOL_MISSING,
            )
        self._ensure_executable(binary)
        return binary

    @staticmethod
    def _ensure_executable(binary: Path) -> None:
        if os.name == 'nt' or not binary.exists():
            return
        mode = binary.stat().st_mode
        if mode & 0o111:
            return
        logger.info("Making yt-dlp executable: %s", binary)
        try:
            binary.chmod(mode | stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH)
        except OSError as e:
            logger.warning("Could not set yt-dlp permissions: %s", e)
            raise AcquisitionFailure(
                f"yt-dlp at {binary} is not executable and permissions could not be fixed",
                AcquisitionCause.PERMISSION,
            ) from e

    def run(self, args: list[str], on_line: Optional[Callable[[str], None]] = None) -> ProcessResult:
        binary = self.locate()
        try:
            return self.runner([str(binary)] + args, on_stdout=on_line, on_stderr=on_line)
        except FileNotFoundError as e:
            raise AcquisitionFailure(
                f"yt-dlp binary not found at: {binary}", AcquisitionCause.TOOL_MISSING
            ) from e
        except PermissionError as e:
            raise AcquisitionFailure(
                f"Permission denied accessing yt-dlp at: {binary}", AcquisitionCause.PERMISSION
            ) from e
        except OSError as e:
            raise AcquisitionFailure(
                f"Failed to start yt-dlp. Please ensure it is installed and accessible: {e}",
                AcquisitionCause.TOOL_ERROR,
            ) from e


def check_fetch_tool(tool: FetchTool) -> str:
    """Run ``yt-dlp --version`` and return the version string."""
    result = tool.run(['--version'])
    if result.returncode == 0:
        return next((line.strip() for line in result.stdout_lines if line.strip()), 'unknown')
    if result.returncode == 126:
        raise AcquisitionFailure(
            "Permission denied. The yt-dlp binary is not executable or is blocked by the OS.",
            AcquisitionCause.PERMISSION,
        )
    if result.returncode == 127:
        raise AcquisitionFailure("yt-dlp command not found.", AcquisitionCause.TOOL_MISSING)
    first = result.stderr.strip().splitlines()[0] if result.stderr.strip() else f"exit code {result.returncode}"
    raise AcquisitionFailure(f"yt-dlp test failed: {first}", AcquisitionCause.TOOL_ERROR)


def map_fetch_error(returncode: int, stderr: str, label: str) -> AcquisitionFailure:
    """Translate a failed yt-dlp run into a readable, categorized error."""
    checks = [
        (('Private video',), AcquisitionCause.PRIVATE,
         "Video is private"),
        (('Video unavailable', 'This video is not available', 'has been removed'), AcquisitionCause.UNAVAILABLE,
         "Video is unavailable, not available in your region or has been removed"),
        (('Unsupported URL',), AcquisitionCause.PRIVATE,
         f"{label} URL not supported or file is private"),
        (('CERTIFICATE_VERIFY_FAILED', 'certificate verify failed', 'unable to get local issuer certificate'),
         AcquisitionCause.CERTIFICATE,
         "SSL certificate verification failed. This may be due to network restrictions or outdated certificates."),
        (('Sign in to confirm',), AcquisitionCause.SIGN_IN_REQUIRED,
         "Video requires sign-in to download"),
        (('age-restricted', 'confirm your age'), AcquisitionCause.AGE_RESTRICTED,
         "Video is age-restricted and cannot be downloaded"),
        (('Permission denied', 'EACCES'), AcquisitionCause.PERMISSION,
         "Permission denied - check file/directory permissions"),
        (('command not found',), AcquisitionCause.TOOL_MISSING,
         "yt-dlp not found. Please install yt-dlp."),
        (('network', 'HTTP Error', 'URLError', 'Unable to download webpage', 'timed out'),
         AcquisitionCause.NETWORK,
         "Network error during download"),
    ]
    for needles, cause, message in checks:
        if any(needle in stderr for needle in needles):
            return AcquisitionFailure(message, cause)

    if returncode == 127:
        return AcquisitionFailure(
            "yt-dlp command not found - please ensure it is installed", AcquisitionCause.TOOL_MISSING
        )
    if returncode == 126:
        return AcquisitionFailure(
            "yt-dlp is not executable - check its permissions", AcquisitionCause.PERMISSION
        )
    first_line = stderr.strip().splitlines()[0] if stderr.strip() else ''
    if first_line:
        return AcquisitionFailure(f"{label} download failed: {first_line}", AcquisitionCause.TOOL_ERROR)
    return AcquisitionFailure(
        f"{label} download failed (yt-dlp exit code {returncode})", AcquisitionCause.TOOL_ERROR
    )


class AcquisitionSource:
    """Turns a MediaLocator into a local video file."""

    source: SourceKind

    def lock_key(self, locator: MediaLocator) -> str:
        """Identity of the acquisition target; equal keys must not download concurrently."""
        return f"{self.source.value}:{locator.value}"

    def resolve(self, locator: MediaLocator, on_status: StatusCallback = None) -> AcquiredMedia:
        raise NotImplementedError


class LocalSource(AcquisitionSource):
    source = SourceKind.LOCAL

    def resolve(self, locator: MediaLocator, on_status: StatusCallback = None) -> AcquiredMedia:
        if locator.kind is not LocatorKind.LOCAL_PATH:
            raise InvalidLocator(f"Not a local path: {locator.value}")
        path = Path(locator.value).expanduser()
        if not path.is_file():
            raise InvalidLocator(f"Video file not found: {path}")
        path = path.resolve()
        _notify(on_status, f"Local video selected: {path.name}")
        return AcquiredMedia(
            file_path=path,
            source=SourceKind.LOCAL,
            title=path.stem,
            file_size_bytes=path.stat().st_size,
            already_existed=True,
        )


class RemoteSource(AcquisitionSource):
    """Shared download logic for sites handled by yt-dlp."""

    prefix = ''
    label = ''
    locator_kind: LocatorKind

    def __init__(self, config: Config, fetch_tool: Optional[FetchTool] = None) -> None:
        self.config = config
        self.fetch_tool = fetch_tool or FetchTool(config.ytdlp_path)

    @property
    def download_dir(self) -> Path:
        return self.config.managed_dir(self.source)

    def extract_id(self, url: str) -> str:
        raise NotImplementedError

    def lock_key(self, locator: MediaLocator) -> str:
        return f"{self.prefix}:{self.extract_id(locator.value)}"

    def _matches_id(self, path: Path, remote_id: str) -> bool:
        name = path.name
        if path.suffix.lower() not in VIDEO_EXTENSIONS:
            return False
        return name.startswith(f"{self.prefix}_{remote_id}_") or path.stem == f"{self.prefix}_{remote_id}"

    def find_existing(self, remote_id: str) -> Optional[Path]:
        """Newest managed file already downloaded for this ID."""
        if not self.download_dir.is_dir():
            return None
        matches = [p for p in self.download_dir.iterdir() if p.is_file() and self._matches_id(p, remote_id)]
        if not matches:
            return None
        return max(matches, key=lambda p: p.stat().st_mtime)

    def build_args(self, url: str) -> list[str]:
        output_template = self.download_dir / f"{self.prefix}_%(id)s_%(title)s.%(ext)s"
        args = [
            '--format', self.config.video_format,
            '--output', str(output_template),
            '--no-playlist',
            '--print', 'after_move:filepath',  # Final file path
            '--print', 'title',
            '--print', 'duration',
            '--restrict-filenames',
            '--no-check-certificate',
            '--progress',
            '--newline',
            '--user-agent', USER_AGENT,
        ]
        cookies = self.config.cookies_file
        if cookies and cookies.exists():
            args += ['--cookies', str(cookies)]
            logger.info("Using cookies from: %s", cookies)
        args.append(url)
        return args

    def resolve(self, locator: MediaLocator, on_status: StatusCallback = None) -> AcquiredMedia:
        if locator.kind is not self.locator_kind:
            raise InvalidLocator(f"Not a {self.label} URL: {locator.value}")
        url = locator.value.strip()
        remote_id = self.extract_id(url)

        self.config.ensure_directories()
        existing = self.find_existing(remote_id)
        if existing is not None:
            title = title_from_filename(existing.name)
            logger.info("Using previously downloaded video for %s: %s", remote_id, existing)
            _notify(on_status, f"Video already downloaded: {title}")
            return AcquiredMedia(
                file_path=existing.resolve(),
                source=self.source,
                title=title,
                file_size_bytes=existing.stat().st_size,
                already_existed=True,
                remote_id=remote_id,
            )

        def on_line(line: str) -> None:
            logger.debug("yt-dlp: %s", line)
            if '%' in line:
                match = PERCENT_RE.search(line)
                if match:
                    percent = float(match.group(1))
                    _notify(on_status, f"Downloading: {match.group(1)}%", min(percent / 100.0, 1.0))

        _notify(on_status, f"Starting {self.label} download...")
        result = self.fetch_tool.run(self.build_args(url), on_line)

        file_path, title, duration = self._parse_output(result.stdout_lines, remote_id)
        if result.returncode != 0:
            if file_path is None:
                logger.error("yt-dlp failed with code %s: %s", result.returncode, result.stderr)
                raise map_fetch_error(result.returncode, result.stderr, self.label)
            # Post-processing can fail after the media itself was saved
            logger.warning("yt-dlp exited with %s but produced %s", result.returncode, file_path)
        if file_path is None:
            logger.error("yt-dlp stdout lines: %s", result.stdout_lines)
            raise AcquisitionFailure(
                "Download completed but the downloaded file was not found",
                AcquisitionCause.FILE_NOT_FOUND,
            )

        title = title or title_from_filename(file_path.name)
        _notify(on_status, f"{self.label} download completed: {title}", 1.0)
        return AcquiredMedia(
            file_path=file_path.resolve(),
            source=self.source,
            title=title,
            file_size_bytes=file_path.stat().st_size,
            already_existed=False,
            remote_id=remote_id,
            duration=duration,
        )

    def _in_download_dir(self, line: str) -> bool:
        if not line.lower().endswith(VIDEO_EXTENSIONS):
            return False
        if str(self.download_dir) in line:
            return True
        try:
            return Path(line).parent.resolve() == self.download_dir.resolve()
        except (OSError, ValueError):
            return False

    def _parse_output(self, lines: list[str], remote_id: str):
        """Return (file_path, title, duration) from yt-dlp's --print lines."""
        valid = [line.strip() for line in lines if line.strip()]

        file_path = None
        for line in reversed(valid):
            if self._in_download_dir(line):
                file_path = Path(line)
                break

        title = None
        for line in valid:
            if '/' not in line and '\\' not in line and len(line) < 200 and not line.startswith('['):
                title = line
                break

        duration = None
        for line in reversed(valid):
            if line == title:
                continue
            try:
                duration = float(line)
                break
            except ValueError:
                continue

        if file_path is None or not file_path.exists():
            file_path = self._newest_download(remote_id)
        return file_path, title, duration

    def _newest_download(self, remote_id: str) -> Optional[Path]:
        if not self.download_dir.is_dir():
            return None
        candidates = [
            p for p in self.download_dir.iterdir()
            if p.is_file()
            and p.name.startswith(f"{self.prefix}_")
            and remote_id in p.name
            and p.suffix.lower() in VIDEO_EXTENSIONS
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.stat().st_mtime)


class StreamingSource(RemoteSource):
    source = SourceKind.STREAMING
    locator_kind = LocatorKind.STREAMING_URL
    prefix = 'streaming'
    label = 'YouTube'

    def extract_id(self, url: str) -> str:
        return require_video_id(url)


class DriveSource(RemoteSource):
    source = SourceKind.DRIVE
    locator_kind = LocatorKind.DRIVE_URL
    prefix = 'gdrive'
    label = 'Google Drive'

    def extract_id(self, url: str) -> str:
        return require_drive_file_id(url)


def default_sources(config: Config, fetch_tool: Optional[FetchTool] = None) -> dict:
    """One acquisition source per locator kind."""
    tool = fetch_tool or FetchTool(config.ytdlp_path)
    return {
        LocatorKind.LOCAL_PATH: LocalSource(),
        LocatorKind.STREAMING_URL: StreamingSource(config, tool),
        LocatorKind.DRIVE_URL: DriveSource(config, tool),
    }
