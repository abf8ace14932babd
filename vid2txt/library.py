"""Download history and storage accounting reconstructed from directory contents."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from vid2txt.config import Config, VIDEO_EXTENSIONS
from vid2txt.downloader import title_from_filename
from vid2txt.models import LibraryEntry, SourceKind, StorageInfo
from vid2txt.transcript_store import TranscriptStore

logger = logging.getLogger(__name__)

SIZE_UNITS = ['B', 'KB', 'MB', 'GB', 'TB']


def format_bytes(num_bytes: int) -> str:
    """Format bytes as a short human readable string, e.g. ``1.5 MB``."""
    if num_bytes <= 0:
        return '0 B'
    index = 0
    while num_bytes >= 1024 ** (index + 1) and index < len(SIZE_UNITS) - 1:
        index += 1
    value = round(num_bytes / (1024 ** index), 2)
    return f"{value:g} {SIZE_UNITS[index]}"


def _created_at(stats) -> datetime:
    # st_birthtime is not available on every platform
    timestamp = getattr(stats, 'st_birthtime', None) or stats.st_mtime
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class MediaLibrary:
    """
    Browsable history of acquired videos.

    There is no ledger: the managed directories are scanned on every call,
    so files added or removed outside the application are picked up.
    """

    def __init__(self, config: Config, store: TranscriptStore) -> None:
        self.config = config
        self.store = store

    def scan(self, directory: Path, source: SourceKind) -> list[LibraryEntry]:
        entries = []
        try:
            if not directory.is_dir():
                return entries
            files = sorted(directory.iterdir())
        except OSError as e:
            logger.error("Error scanning directory %s: %s", directory, e)
            return entries

        for path in files:
            if path.suffix.lower() not in VIDEO_EXTENSIONS:
                continue
            try:
                if not path.is_file():
                    continue
                stats = path.stat()
                entries.append(LibraryEntry(
                    file_path=path,
                    source=source,
                    title=title_from_filename(path.name),
                    file_size_bytes=stats.st_size,
                    downloaded_at=_created_at(stats),
                    has_transcript=self.store.has_transcript(path, source),
                ))
            except OSError as e:
                logger.warning("Error processing file %s: %s", path, e)

        entries.sort(key=lambda entry: entry.downloaded_at, reverse=True)
        return entries

    def history(self) -> list[LibraryEntry]:
        """All acquired videos, newest first."""
        entries = (
            self.scan(self.config.streaming_dir, SourceKind.STREAMING)
            + self.scan(self.config.drive_dir, SourceKind.DRIVE)
        )
        entries.sort(key=lambda entry: entry.downloaded_at, reverse=True)
        return entries

    def storage_info(self) -> StorageInfo:
        total_bytes = 0
        total_files = 0
        for entry in self.history():
            if entry.file_path.exists():
                total_bytes += entry.file_size_bytes
                total_files += 1
        return StorageInfo(
            total_files=total_files,
            total_bytes=total_bytes,
            human_readable_total=format_bytes(total_bytes),
        )
