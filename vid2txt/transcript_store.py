"""Cached transcript storage keyed by video path or content hash."""

import json
import logging
from pathlib import Path
from typing import NamedTuple, Optional

from vid2txt.config import Config
from vid2txt.errors import CacheCorrupt, StorageIOFailure
from vid2txt.fingerprint import compute_file_md5
from vid2txt.models import SourceKind, TranscriptRecord, format_timestamp, utc_now

logger = logging.getLogger(__name__)

INDEX_VERSION = "1.0.0"


class CachedTranscript(NamedTuple):
    record: TranscriptRecord
    path: Path


def sidecar_path(video_path: Path) -> Path:
    """``video.mp4`` -> ``video.transcript.json`` in the same directory."""
    video_path = Path(video_path)
    return video_path.with_name(f"{video_path.stem}.transcript.json")


def _read_record(path: Path) -> TranscriptRecord:
    """Raises CacheCorrupt when the file exists but cannot be used."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return TranscriptRecord.from_sidecar(data)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise CacheCorrupt(f"Unreadable transcript {path}: {e}") from e


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + '.tmp')
    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    tmp_path.replace(path)


class TranscriptStore:
    """
    At most one transcript per video.

    Acquired videos keep a ``.transcript.json`` side-car next to the file,
    since their managed filename already embeds the source and remote ID.
    Local videos can live anywhere and move around, so their transcripts
    are keyed by MD5 in the local-files directory with a metadata index.
    """

    def __init__(self, config: Config) -> None:
        self.config = config

    # -- acquired media -------------------------------------------------

    def find_acquired(self, video_path: Path) -> Optional[CachedTranscript]:
        path = sidecar_path(video_path)
        if not path.exists():
            return None
        try:
            record = _read_record(path)
        except CacheCorrupt as e:
            logger.warning("%s (will be regenerated)", e)
            return None
        logger.info("Loaded cached transcript for downloaded video: %s", path)
        return CachedTranscript(record, path)

    def save_acquired(self, video_path: Path, record: TranscriptRecord) -> Path:
        path = sidecar_path(video_path)
        try:
            _write_json(path, record.to_sidecar(videoPath=str(video_path)))
        except OSError as e:
            raise StorageIOFailure(f"Could not save transcript {path}: {e}") from e
        logger.info("Transcript saved for downloaded video: %s", path)
        return path

    # -- local media ----------------------------------------------------

    def local_transcript_path(self, md5_hash: str) -> Path:
        return self.config.local_files_dir / f"transcript_{md5_hash}.json"

    def read_index(self) -> dict:
        """The local-files metadata index; a missing or broken index reads as empty."""
        path = self.config.local_index_path
        empty = {'version': INDEX_VERSION, 'files': {}}
        if not path.exists():
            return empty
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Error reading local files metadata %s: %s", path, e)
            return empty
        if not isinstance(data, dict) or not isinstance(data.get('files'), dict):
            logger.warning("Ignoring malformed local files metadata: %s", path)
            return empty
        broken = [key for key, entry in data['files'].items() if not isinstance(entry, dict)]
        for key in broken:
            logger.warning("Dropping malformed local files metadata entry: %s", key)
            del data['files'][key]
        data.setdefault('version', INDEX_VERSION)
        return data

    def _write_index(self, index: dict) -> None:
        try:
            _write_json(self.config.local_index_path, index)
        except OSError as e:
            raise StorageIOFailure(f"Could not write {self.config.local_index_path}: {e}") from e

    def _hash(self, video_path: Path) -> str:
        try:
            return compute_file_md5(video_path)
        except OSError as e:
            raise StorageIOFailure(f"Could not read {video_path}: {e}") from e

    def find_local(self, video_path: Path) -> Optional[CachedTranscript]:
        try:
            md5_hash = self._hash(video_path)
        except StorageIOFailure as e:
            logger.warning("%s", e)
            return None
        path = self.local_transcript_path(md5_hash)
        if not path.exists():
            return None
        try:
            record = _read_record(path)
        except CacheCorrupt as e:
            logger.warning("%s (will be regenerated)", e)
            return None

        index = self.read_index()
        entry = index['files'].get(md5_hash)
        if entry is not None:
            entry['lastAccessed'] = format_timestamp(utc_now())
            entry['originalPath'] = str(video_path)  # The file may have moved
            try:
                self._write_index(index)
            except StorageIOFailure as e:
                logger.warning("%s", e)

        logger.info("Loaded cached transcript for local video: %s", path)
        return CachedTranscript(record, path)

    def save_local(self, video_path: Path, record: TranscriptRecord) -> Path:
        md5_hash = self._hash(video_path)
        path = self.local_transcript_path(md5_hash)
        generated_at = format_timestamp(record.generated_at)
        try:
            _write_json(path, record.to_sidecar(videoPath=str(video_path), md5Hash=md5_hash))
        except OSError as e:
            raise StorageIOFailure(f"Could not save transcript {path}: {e}") from e

        index = self.read_index()
        index['files'][md5_hash] = {
            'originalPath': str(video_path),
            'transcriptPath': str(path),
            'lastAccessed': format_timestamp(utc_now()),
            'generatedAt': generated_at,
        }
        self._write_index(index)
        logger.info("Transcript saved for local video: %s", path)
        return path

    # -- dispatch -------------------------------------------------------

    def find(self, video_path: Path, source: SourceKind) -> Optional[CachedTranscript]:
        """Cached record and its location, or None when absent or unparsable. Never raises."""
        if source is SourceKind.LOCAL:
            return self.find_local(video_path)
        return self.find_acquired(video_path)

    def load(self, video_path: Path, source: SourceKind) -> Optional[TranscriptRecord]:
        cached = self.find(video_path, source)
        return cached.record if cached else None

    def save(self, video_path: Path, record: TranscriptRecord, source: SourceKind) -> Path:
        """Overwrite the cached record. Raises StorageIOFailure."""
        if source is SourceKind.LOCAL:
            return self.save_local(video_path, record)
        return self.save_acquired(video_path, record)

    def has_transcript(self, video_path: Path, source: SourceKind) -> bool:
        return self.load(video_path, source) is not None

    def transcript_path(self, video_path: Path, source: SourceKind) -> Path:
        if source is SourceKind.LOCAL:
            return self.local_transcript_path(self._hash(video_path))
        return sidecar_path(video_path)

    def delete(self, video_path: Path, source: SourceKind) -> bool:
        """
        Remove a cached transcript. Idempotent.

        Returns:
            True if a transcript file was removed
        """
        if source is SourceKind.LOCAL:
            md5_hash = self._hash(video_path)
            path = self.local_transcript_path(md5_hash)
            index = self.read_index()
            if index['files'].pop(md5_hash, None) is not None:
                self._write_index(index)
        else:
            path = sidecar_path(video_path)

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOFailure(f"Could not delete transcript {path}: {e}") from e
        logger.info("Deleted transcript: %s", path)
        return True
