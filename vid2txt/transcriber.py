"""OpenAI Whisper API integration for transcription and translation."""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from openai import OpenAI
from openai import APIConnectionError, APIError, APIStatusError, AuthenticationError, RateLimitError

from vid2txt.audio import ExtractedAudio
from vid2txt.config import Config
from vid2txt.errors import AuthenticationFailure, TranscriptionFailure
from vid2txt.models import Segment, TranscriptRecord, Word, utc_now

logger = logging.getLogger(__name__)


def _field(item, name, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _as_dict(response) -> dict:
    if hasattr(response, 'model_dump'):
        return response.model_dump()
    if isinstance(response, dict):
        return response
    return {
        'text': getattr(response, 'text', ''),
        'segments': getattr(response, 'segments', None),
        'words': getattr(response, 'words', None),
        'duration': getattr(response, 'duration', None),
    }


def normalize_segments(segments: list[Segment]) -> list[Segment]:
    """
    Enforce ordering: sorted by start, no overlaps, end > start.

    Overlapping starts are pushed to the previous end; segments left with
    no duration are folded into the previous segment's text.
    """
    ordered = sorted(segments, key=lambda s: (s.start, s.end))
    result: list[Segment] = []
    for segment in ordered:
        start, end = max(segment.start, 0.0), segment.end
        if result and start < result[-1].end:
            start = result[-1].end
        if end <= start:
            if result and segment.text:
                previous = result[-1]
                previous.text = f"{previous.text} {segment.text}".strip()
                if segment.words:
                    previous.words = (previous.words or []) + segment.words
            else:
                logger.debug("Dropping zero-length segment at %.2fs: %r", segment.start, segment.text)
            continue
        result.append(Segment(start=start, end=end, text=segment.text, words=segment.words))
    return result


def parse_response(response_dict: dict, offset: float = 0.0) -> tuple[str, list[Segment]]:
    """Convert a verbose_json response into text and offset-corrected segments."""
    text = (response_dict.get('text') or '').strip()
    raw_segments = response_dict.get('segments')
    if not raw_segments:
        logger.warning("Whisper response did not contain segments.")
        return text, []

    words = [
        Word(
            word=str(_field(w, 'word', '')).strip(),
            start=float(_field(w, 'start', 0)) + offset,
            end=float(_field(w, 'end', 0)) + offset,
        )
        for w in (response_dict.get('words') or [])
    ]

    segments = []
    for seg in raw_segments:
        start = float(_field(seg, 'start', 0)) + offset
        end = float(_field(seg, 'end', 0)) + offset
        segment_words = None
        if words:
            segment_words = [w for w in words if w.start >= start and w.start < end]
        segments.append(Segment(
            start=start,
            end=end,
            text=str(_field(seg, 'text', '')).strip(),
            words=segment_words,
        ))
    return text, segments


class TranscriptionStage:
    """Sends audio to Whisper and normalizes the response."""

    def __init__(
        self,
        client,
        model: str = "whisper-1",
        task: str = "translate",
        max_retries: int = 2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.model = model
        self.task = task
        self.max_retries = max_retries
        self.sleep = sleep

    @classmethod
    def from_config(cls, config: Config, api_key: str) -> "TranscriptionStage":
        client = OpenAI(api_key=api_key, timeout=config.request_timeout)
        return cls(client, model=config.model, task=config.task, max_retries=config.max_retries)

    def _create(self, audio_file):
        if self.task == 'transcribe':
            return self.client.audio.transcriptions.create(
                model=self.model,
                file=audio_file,
                response_format="verbose_json",
                timestamp_granularities=["segment", "word"],
            )
        return self.client.audio.translations.create(
            model=self.model,
            file=audio_file,
            response_format="verbose_json",
        )

    def _request(self, audio_path: Path) -> dict:
        """One API call with retries on rate limits, connection and 5xx errors."""
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                if attempt > 0:
                    logger.info("Attempt %d/%d for %s", attempt + 1, attempts, audio_path.name)
                with open(audio_path, 'rb') as audio_file:
                    return _as_dict(self._create(audio_file))

            except AuthenticationError as e:
                raise AuthenticationFailure(
                    "Invalid OpenAI API key (401). Please re-enter your key."
                ) from e

            except RateLimitError as e:
                if attempt < self.max_retries:
                    wait_time = 2 ** attempt
                    logger.warning("Rate limit hit. Waiting %d seconds...", wait_time)
                    self.sleep(wait_time)
                    continue
                raise TranscriptionFailure(
                    f"OpenAI rate limit exceeded (429) after {attempts} attempts."
                ) from e

            except APIConnectionError as e:
                if attempt < self.max_retries:
                    wait_time = 2 ** attempt
                    logger.warning("Connection error. Waiting %d seconds...", wait_time)
                    self.sleep(wait_time)
                    continue
                raise TranscriptionFailure(
                    f"Network error: could not connect to OpenAI after {attempts} attempts: {e}"
                ) from e

            except APIStatusError as e:
                if 500 <= e.status_code < 600 and attempt < self.max_retries:
                    wait_time = 2 ** attempt
                    logger.warning("Server error (%s). Waiting %d seconds...", e.status_code, wait_time)
                    self.sleep(wait_time)
                    continue
                raise TranscriptionFailure(f"OpenAI API error ({e.status_code}): {e.message}") from e

            except APIError as e:
                raise TranscriptionFailure(f"OpenAI API error: {e}") from e

            except OSError as e:
                raise TranscriptionFailure(f"Could not read audio file {audio_path}: {e}") from e

        raise TranscriptionFailure(f"Transcription failed after {attempts} attempts")

    def transcribe(
        self,
        audio: ExtractedAudio,
        on_chunk: Optional[Callable[[int, int], None]] = None,
    ) -> TranscriptRecord:
        """
        Transcribe every chunk and merge them into one record.

        Args:
            audio: Extracted audio; chunk offsets shift segment timestamps
            on_chunk: Called with (chunk_number, total_chunks) before each upload
        """
        texts = []
        segments = []
        total = len(audio.chunks)
        for number, chunk in enumerate(audio.chunks, start=1):
            if on_chunk:
                on_chunk(number, total)
            logger.info("Transcribing chunk %d/%d: %s", number, total, chunk.path.name)
            response = self._request(chunk.path)
            text, chunk_segments = parse_response(response, offset=chunk.offset)
            if text:
                texts.append(text)
            segments.extend(chunk_segments)

        record = TranscriptRecord(
            text=" ".join(texts),
            segments=normalize_segments(segments),
            generated_at=utc_now(),
        )
        logger.info("Transcription complete: %d segments", len(record.segments))
        return record
