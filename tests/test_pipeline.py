"""End-to-end pipeline tests with fake extraction and transcription stages."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vid2txt.audio import AudioChunk, ExtractedAudio
from vid2txt.config import Config
from vid2txt.credentials import MemoryCredentialStore
from vid2txt.errors import (
    AuthenticationFailure,
    ExtractionFailure,
    InvalidLocator,
    PipelineCancelled,
    StorageIOFailure,
    TranscriptionFailure,
)
from vid2txt.models import AcquiredMedia, LocatorKind, PipelinePhase, SourceKind, TranscriptRecord
from vid2txt.pipeline import TranscriptionPipeline, build_pipeline
from vid2txt.transcript_store import sidecar_path


class FakeExtractor:
    """Writes a dummy artifact where ffmpeg would."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[Path] = []
        self.artifacts: list[Path] = []

    def extract(self, video_path, output_path, on_progress=None):
        self.calls.append(Path(video_path))
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"mp3")
        self.artifacts.append(output_path)
        if on_progress:
            on_progress(0.5)
        if self.error is not None:
            raise self.error
        return ExtractedAudio(path=output_path, chunks=[AudioChunk(output_path, 0.0)])


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def transcriber(record) -> MagicMock:
    stage = MagicMock()
    stage.transcribe.return_value = record
    return stage


@pytest.fixture
def credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore("sk-test")


@pytest.fixture
def pipeline(config, extractor, transcriber, credentials) -> TranscriptionPipeline:
    return TranscriptionPipeline(config, extractor=extractor, transcriber=transcriber, credentials=credentials)


def temp_audio(config) -> list[Path]:
    if not config.temp_dir.exists():
        return []
    return list(config.temp_dir.iterdir())


class TestCaching:
    def test_second_run_is_cached(self, pipeline, transcriber, extractor, video_file) -> None:
        first = pipeline.run(str(video_file))
        second = pipeline.run(str(video_file))

        assert first.cached is False
        assert second.cached is True
        assert transcriber.transcribe.call_count == 1
        assert len(extractor.calls) == 1
        assert second.record.text == first.record.text
        assert [s.text for s in second.record.segments] == [s.text for s in first.record.segments]
        assert second.transcript_path == first.transcript_path

    def test_moved_and_renamed_local_file_hits(self, pipeline, transcriber, video_file, tmp_path) -> None:
        pipeline.run(str(video_file))
        moved = tmp_path / "archive" / "renamed.mov"
        moved.parent.mkdir()
        video_file.rename(moved)

        result = pipeline.run(str(moved))

        assert result.cached is True
        assert transcriber.transcribe.call_count == 1

    def test_changed_bytes_miss(self, pipeline, transcriber, video_file) -> None:
        pipeline.run(str(video_file))
        with open(video_file, "ab") as f:
            f.write(b"more")

        assert pipeline.run(str(video_file)).cached is False
        assert transcriber.transcribe.call_count == 2

    def test_force_recompute_overwrites(self, pipeline, transcriber, video_file) -> None:
        pipeline.run(str(video_file))
        transcriber.transcribe.return_value = TranscriptRecord(text="fresh")

        forced = pipeline.run(str(video_file), force_recompute=True)
        again = pipeline.run(str(video_file))

        assert forced.cached is False
        assert again.cached is True
        assert again.record.text == "fresh"

    def test_corrupt_cache_is_regenerated(self, config, pipeline, transcriber) -> None:
        video = config.streaming_dir / "streaming_abc_Title.mp4"
        video.write_bytes(b"video")
        sidecar_path(video).write_text("{broken", encoding="utf-8")

        result = pipeline.process_file(video)

        assert result.cached is False
        assert result.media.source is SourceKind.STREAMING
        assert transcriber.transcribe.call_count == 1
        assert pipeline.run(video).cached is True

    def test_existing_download_without_transcript_is_processed(self, config, pipeline, transcriber) -> None:
        video = config.drive_dir / "gdrive_FILE_Review.mp4"
        video.write_bytes(b"video")

        result = pipeline.process_file(video)

        assert result.media.already_existed is True
        assert result.media.title == "Review"
        assert result.cached is False
        assert result.transcript_path == sidecar_path(video.resolve())

    def test_save_failure_still_returns_transcript(self, pipeline, video_file, record) -> None:
        with patch.object(pipeline.store, "save", side_effect=StorageIOFailure("disk full")):
            result = pipeline.run(str(video_file))

        assert result.record is record
        assert result.cached is False
        assert result.transcript_path is None


class TestCleanup:
    def test_after_success(self, config, pipeline, extractor, video_file) -> None:
        pipeline.run(str(video_file))
        assert extractor.artifacts
        assert temp_audio(config) == []

    def test_after_extraction_failure(self, config, transcriber, credentials, video_file) -> None:
        extractor = FakeExtractor(error=ExtractionFailure("ffmpeg error: boom"))
        pipeline = TranscriptionPipeline(config, extractor=extractor, transcriber=transcriber, credentials=credentials)

        with pytest.raises(ExtractionFailure):
            pipeline.run(str(video_file))
        assert temp_audio(config) == []
        transcriber.transcribe.assert_not_called()

    def test_after_transcription_failure(self, config, pipeline, transcriber, video_file) -> None:
        transcriber.transcribe.side_effect = TranscriptionFailure("OpenAI API error (400): bad")

        with pytest.raises(TranscriptionFailure):
            pipeline.run(str(video_file))
        assert temp_audio(config) == []

    def test_after_cancellation(self, config, pipeline, transcriber, video_file) -> None:
        cancel = threading.Event()

        def cancel_during_extraction(event):
            if event.phase is PipelinePhase.EXTRACTING:
                cancel.set()

        with pytest.raises(PipelineCancelled):
            pipeline.run(str(video_file), on_status=cancel_during_extraction, cancel_event=cancel)
        assert temp_audio(config) == []
        transcriber.transcribe.assert_not_called()

    def test_when_status_callback_raises_on_cleanup(self, config, pipeline, extractor, video_file) -> None:
        class Rerun(BaseException):
            pass

        def interrupted_ui(event):
            if event.phase is PipelinePhase.CLEANUP:
                raise Rerun()

        with pytest.raises(Rerun):
            pipeline.run(str(video_file), on_status=interrupted_ui)
        assert extractor.artifacts
        assert temp_audio(config) == []


class TestStatusEvents:
    def test_phase_sequence_on_miss(self, pipeline, video_file) -> None:
        events = []
        pipeline.run(str(video_file), on_status=events.append)

        phases = []
        for event in events:
            if not phases or phases[-1] is not event.phase:
                phases.append(event.phase)
        assert phases == [
            PipelinePhase.ACQUIRING,
            PipelinePhase.CACHE_CHECK,
            PipelinePhase.EXTRACTING,
            PipelinePhase.TRANSCRIBING,
            PipelinePhase.CLEANUP,
            PipelinePhase.PERSISTING,
            PipelinePhase.DONE,
        ]
        assert events[-1].progress == 1.0

    def test_phase_sequence_on_hit(self, pipeline, video_file) -> None:
        pipeline.run(str(video_file))
        events = []
        pipeline.run(str(video_file), on_status=events.append)

        phases = [e.phase for e in events]
        assert PipelinePhase.EXTRACTING not in phases
        assert phases[-1] is PipelinePhase.DONE
        assert "Loaded cached transcript" in events[-1].message

    def test_errored_event(self, pipeline, tmp_path) -> None:
        events = []
        with pytest.raises(InvalidLocator):
            pipeline.run(str(tmp_path / "missing.mp4"), on_status=events.append)
        assert events[-1].phase is PipelinePhase.ERRORED


class TestAuthentication:
    def test_rejected_key_is_deleted(self, pipeline, transcriber, credentials, video_file) -> None:
        transcriber.transcribe.side_effect = AuthenticationFailure("Invalid OpenAI API key (401).")

        with pytest.raises(AuthenticationFailure):
            pipeline.run(str(video_file))
        assert credentials.get() is None

    def test_missing_key(self, config, extractor, video_file) -> None:
        pipeline = TranscriptionPipeline(config, extractor=extractor, credentials=MemoryCredentialStore())
        with pytest.raises(AuthenticationFailure, match="not configured"):
            pipeline.run(str(video_file))
        assert extractor.calls == []

    def test_cache_hit_needs_no_key(self, config, pipeline, extractor, video_file) -> None:
        pipeline.run(str(video_file))
        keyless = TranscriptionPipeline(config, extractor=extractor, credentials=MemoryCredentialStore())
        assert keyless.run(str(video_file)).cached is True


class TestAcquisition:
    def test_remote_locator_goes_through_source(self, config, extractor, transcriber, credentials) -> None:
        video = config.streaming_dir / "streaming_abc123_Title.mp4"
        video.write_bytes(b"video")
        source = MagicMock()
        source.lock_key.return_value = "streaming:abc123"
        source.resolve.return_value = AcquiredMedia(
            file_path=video,
            source=SourceKind.STREAMING,
            title="Title",
            file_size_bytes=5,
            already_existed=False,
            remote_id="abc123",
        )
        pipeline = TranscriptionPipeline(
            config,
            sources={LocatorKind.STREAMING_URL: source},
            extractor=extractor,
            transcriber=transcriber,
            credentials=credentials,
        )

        result = pipeline.run("https://youtu.be/abc123")

        locator = source.resolve.call_args.args[0]
        assert locator.kind is LocatorKind.STREAMING_URL
        assert result.transcript_path == sidecar_path(video)

    def test_acquisition_failure_skips_processing(self, config, extractor, transcriber, credentials) -> None:
        pipeline = TranscriptionPipeline(config, extractor=extractor, transcriber=transcriber, credentials=credentials)
        with pytest.raises(InvalidLocator):
            pipeline.run("https://vimeo.com/1234")
        assert extractor.calls == []

    def test_cancel_before_start(self, pipeline, extractor, video_file) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(PipelineCancelled):
            pipeline.run(str(video_file), cancel_event=cancel)
        assert extractor.calls == []


class TestConcurrency:
    def test_same_video_is_transcribed_once(self, pipeline, transcriber, record, video_file) -> None:
        def slow_transcribe(audio, on_chunk=None):
            time.sleep(0.2)
            return record

        transcriber.transcribe.side_effect = slow_transcribe
        results = []

        threads = [threading.Thread(target=lambda: results.append(pipeline.run(str(video_file)))) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert transcriber.transcribe.call_count == 1
        assert sorted(r.cached for r in results) == [False, True]


class TestBuildPipeline:
    def test_creates_directories(self, tmp_path) -> None:
        config = Config(home_dir=tmp_path / "fresh", temp_dir=tmp_path / "tmp")
        pipeline = build_pipeline(config, MemoryCredentialStore("sk-x"))
        assert config.streaming_dir.is_dir()
        assert config.local_files_dir.is_dir()
        assert pipeline.credentials.get() == "sk-x"

    def test_rejects_bad_config(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            build_pipeline(Config(home_dir=tmp_path, task="summarize"), MemoryCredentialStore())
