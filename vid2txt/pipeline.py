"""Acquire -> cache check -> extract audio -> transcribe -> persist -> clean up."""

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional, Union

from vid2txt.audio import AudioExtractionStage, remove_artifacts
from vid2txt.config import Config
from vid2txt.credentials import CredentialStore, DotenvCredentialStore
from vid2txt.downloader import default_sources, title_from_filename
from vid2txt.errors import (
    AuthenticationFailure,
    InvalidLocator,
    PipelineCancelled,
    StorageIOFailure,
)
from vid2txt.models import (
    AcquiredMedia,
    MediaLocator,
    PipelinePhase,
    PipelineResult,
    SourceKind,
    StatusEvent,
    format_timestamp,
)
from vid2txt.transcriber import TranscriptionStage
from vid2txt.transcript_store import TranscriptStore
from vid2txt.urls import parse_locator

logger = logging.getLogger(__name__)

StatusCallback = Optional[Callable[[StatusEvent], None]]
Target = Union[MediaLocator, Path, str]


class _KeyLocks:
    """One lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)


# Shared by every pipeline in the process so recreated pipelines still serialize
_key_locks = _KeyLocks()


class TranscriptionPipeline:
    """
    Turns a locator into a transcript, reusing cached results.

    Runs on the caller's thread. Work on the same video (same download
    target or same file path) is serialized; different videos run in
    parallel when called from several threads.
    """

    def __init__(
        self,
        config: Config,
        store: Optional[TranscriptStore] = None,
        sources: Optional[dict] = None,
        extractor: Optional[AudioExtractionStage] = None,
        transcriber: Optional[TranscriptionStage] = None,
        credentials: Optional[CredentialStore] = None,
    ) -> None:
        self.config = config
        self.store = store or TranscriptStore(config)
        self.sources = sources or default_sources(config)
        self.extractor = extractor or AudioExtractionStage.from_config(config)
        self.transcriber = transcriber
        self.credentials = credentials

    def run(
        self,
        target: Target,
        force_recompute: bool = False,
        on_status: StatusCallback = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineResult:
        """
        Produce the transcript for a video.

        Args:
            target: A MediaLocator, raw user input (str) or an existing file
                (Path) to process directly without acquisition
            force_recompute: Ignore and overwrite any cached transcript
            on_status: Receives a StatusEvent at each phase transition
            cancel_event: When set, the run stops at the next phase boundary

        Returns:
            PipelineResult; ``cached`` tells whether extraction and
            transcription were skipped
        """
        def emit(phase: PipelinePhase, message: str, progress: Optional[float] = None) -> None:
            if on_status:
                on_status(StatusEvent(phase, message, progress))

        try:
            emit(PipelinePhase.ACQUIRING, "Locating video...")
            media = self._acquire(target, on_status)
            self._check_cancel(cancel_event)

            with _key_locks.hold(f"file:{media.file_path}"):
                if not force_recompute:
                    emit(PipelinePhase.CACHE_CHECK, "Checking for a cached transcript...")
                    cached = self.store.find(media.file_path, media.source)
                    if cached is not None:
                        emit(
                            PipelinePhase.DONE,
                            f"Loaded cached transcript (generated: {format_timestamp(cached.record.generated_at)})",
                            1.0,
                        )
                        return PipelineResult(
                            record=cached.record,
                            media=media,
                            cached=True,
                            transcript_path=cached.path,
                        )

                record = self._extract_and_transcribe(media, emit, cancel_event)

                emit(PipelinePhase.PERSISTING, "Saving transcript...")
                transcript_path = None
                try:
                    transcript_path = self.store.save(media.file_path, record, media.source)
                except StorageIOFailure as e:
                    logger.warning("Transcript not cached: %s", e)

            emit(PipelinePhase.DONE, "Processing complete.", 1.0)
            return PipelineResult(record=record, media=media, cached=False, transcript_path=transcript_path)

        except AuthenticationFailure as e:
            if self.credentials is not None:
                logger.warning("Deleting stored API key after authentication failure")
                self.credentials.delete()
            emit(PipelinePhase.ERRORED, f"Error: {e}")
            raise
        except Exception as e:
            emit(PipelinePhase.ERRORED, f"Error: {e}")
            raise

    def process_file(self, path: Path, force_recompute: bool = False, on_status: StatusCallback = None) -> PipelineResult:
        """Process a file that is already on disk, e.g. from the history list."""
        return self.run(Path(path), force_recompute=force_recompute, on_status=on_status)

    def _acquire(self, target: Target, on_status: StatusCallback) -> AcquiredMedia:
        if isinstance(target, Path):
            return self._media_for_path(target)
        locator = target if isinstance(target, MediaLocator) else parse_locator(target)
        source = self.sources.get(locator.kind)
        if source is None:
            raise InvalidLocator(f"No acquisition source for {locator.kind.value}")
        with _key_locks.hold(f"acquire:{source.lock_key(locator)}"):
            return source.resolve(locator, on_status)

    def _media_for_path(self, path: Path) -> AcquiredMedia:
        path = path.expanduser()
        if not path.is_file():
            raise InvalidLocator(f"Video file not found: {path}")
        path = path.resolve()
        source = self.config.source_for_path(path)
        title = path.stem if source is SourceKind.LOCAL else title_from_filename(path.name)
        return AcquiredMedia(
            file_path=path,
            source=source,
            title=title,
            file_size_bytes=path.stat().st_size,
            already_existed=True,
        )

    def _transcription_stage(self) -> TranscriptionStage:
        if self.transcriber is not None:
            return self.transcriber
        api_key = self.credentials.get() if self.credentials is not None else None
        if not api_key:
            raise AuthenticationFailure("OpenAI API key is not configured")
        return TranscriptionStage.from_config(self.config, api_key)

    def _extract_and_transcribe(self, media: AcquiredMedia, emit, cancel_event):
        transcriber = self._transcription_stage()
        artifact = self.config.temp_dir / f"audio_{uuid.uuid4().hex}.mp3"
        try:
            emit(PipelinePhase.EXTRACTING, "Extracting audio...")
            audio = self.extractor.extract(
                media.file_path,
                artifact,
                on_progress=lambda fraction: emit(
                    PipelinePhase.EXTRACTING, f"Extracting audio: {fraction:.0%}", fraction
                ),
            )
            self._check_cancel(cancel_event)

            emit(PipelinePhase.TRANSCRIBING, "Uploading and translating audio (this may take a while)...")

            def on_chunk(number: int, total: int) -> None:
                if total > 1:
                    emit(
                        PipelinePhase.TRANSCRIBING,
                        f"Transcribing chunk {number}/{total}...",
                        (number - 1) / total,
                    )

            return transcriber.transcribe(audio, on_chunk=on_chunk)
        finally:
            try:
                emit(PipelinePhase.CLEANUP, "Removing temporary audio...")
            finally:
                remove_artifacts(artifact)

    @staticmethod
    def _check_cancel(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled("Processing cancelled")


def build_pipeline(
    config: Optional[Config] = None,
    credentials: Optional[CredentialStore] = None,
) -> TranscriptionPipeline:
    """
    Create a pipeline from configuration and a credential store.

    After the stored key changes, build a new pipeline rather than
    mutating an existing one.
    """
    config = config or Config.from_env()
    config.validate()
    config.ensure_directories()
    return TranscriptionPipeline(config, credentials=credentials or DotenvCredentialStore())
