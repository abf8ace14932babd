"""Command-line entry point for video transcription."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from vid2txt.audio import AudioExtractionStage
from vid2txt.config import Config
from vid2txt.credentials import CredentialStore, DotenvCredentialStore, looks_like_api_key
from vid2txt.downloader import FetchTool, check_fetch_tool
from vid2txt.errors import AuthenticationFailure, TranscriberError, guidance_for
from vid2txt.library import MediaLibrary
from vid2txt.models import PipelinePhase, PipelineResult, StatusEvent
from vid2txt.pipeline import TranscriptionPipeline
from vid2txt.transcript_store import TranscriptStore
from vid2txt.writers.srt_writer import write_srt
from vid2txt.writers.txt_writer import write_txt

EXPORTERS = {
    'txt': write_txt,
    'srt': write_srt,
}


class ConsoleStatus:
    """Renders pipeline status events as printed lines and a tqdm bar."""

    def __init__(self) -> None:
        self._bar: Optional[tqdm] = None
        self._phase: Optional[PipelinePhase] = None

    def __call__(self, event: StatusEvent) -> None:
        if event.phase is not self._phase:
            self.close()
            self._phase = event.phase
            if event.phase is PipelinePhase.ERRORED:
                return
            print(event.message)
        if event.progress is None or event.phase in (PipelinePhase.DONE, PipelinePhase.ERRORED):
            return
        if self._bar is None:
            self._bar = tqdm(
                total=100,
                desc=event.phase.value.replace('_', ' ').capitalize(),
                unit="%",
                bar_format="{desc}: {percentage:3.0f}%|{bar}| {elapsed}",
                ncols=80,
                leave=False,
            )
        self._bar.n = int(event.progress * 100)
        self._bar.refresh()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def _fail(error: Exception) -> int:
    print(f"\n✗ {error}", file=sys.stderr)
    hint = guidance_for(error)
    if hint:
        print(f"  {hint}", file=sys.stderr)
    if isinstance(error, AuthenticationFailure):
        print("  The stored API key was removed. Run 'vid2txt set-key' to enter a new one.", file=sys.stderr)
    return getattr(error, 'code', 1)


def _print_result(result: PipelineResult) -> None:
    record = result.record
    print()
    print("=" * 60)
    if result.cached:
        print("✓ Loaded cached transcript (no API call)")
    else:
        print("✓ Transcription complete!")
    print(f"Video: {result.media.title}")
    print(f"File: {result.media.file_path}")
    if result.transcript_path:
        print(f"Transcript: {result.transcript_path}")
    else:
        print("⚠ Transcript could not be cached; it will be regenerated next time")
    print(f"Segments: {len(record.segments)}")
    print("=" * 60)


def _load_config() -> Config:
    config = Config.from_env()
    config.validate()
    config.ensure_directories()
    return config


def cmd_transcribe(args, config: Config, credentials: CredentialStore) -> int:
    pipeline = TranscriptionPipeline(config, credentials=credentials)
    status = ConsoleStatus()
    try:
        result = pipeline.run(args.locator, force_recompute=args.force, on_status=status)
    finally:
        status.close()
    _print_result(result)

    if args.export:
        default_name = f"{result.media.file_path.stem}.{args.export}"
        output_path = Path(args.out) if args.out else Path.cwd() / default_name
        EXPORTERS[args.export](result.record, output_path)
        print(f"✓ Exported {args.export.upper()} to: {output_path}")
    elif not args.quiet:
        print()
        print(result.record.text)
    return 0


def cmd_history(args, config: Config, credentials: CredentialStore) -> int:
    library = MediaLibrary(config, TranscriptStore(config))
    entries = library.history()
    if not entries:
        print("No downloaded videos yet.")
        return 0
    for entry in entries:
        marker = "✓" if entry.has_transcript else " "
        when = entry.downloaded_at.astimezone().strftime("%Y-%m-%d %H:%M")
        print(f"[{marker}] {when}  {entry.source.value:<9}  {entry.title}")
        print(f"      {entry.file_path}")
    return 0


def cmd_storage(args, config: Config, credentials: CredentialStore) -> int:
    info = MediaLibrary(config, TranscriptStore(config)).storage_info()
    print(f"Downloaded videos: {info.total_files}")
    print(f"Total size: {info.human_readable_total}")
    print(f"Location: {config.downloads_dir}")
    return 0


def cmd_forget(args, config: Config, credentials: CredentialStore) -> int:
    path = Path(args.path).expanduser()
    if not path.is_file():
        print(f"✗ Video file not found: {path}", file=sys.stderr)
        return 2
    source = config.source_for_path(path)
    if TranscriptStore(config).delete(path.resolve(), source):
        print(f"✓ Deleted cached transcript for {path.name}")
    else:
        print(f"No cached transcript for {path.name}")
    return 0


def cmd_set_key(args, config: Config, credentials: CredentialStore) -> int:
    key = args.key or input("Enter your OpenAI API key: ").strip()
    if not looks_like_api_key(key):
        print("✗ Invalid API key format. OpenAI keys start with 'sk-'.", file=sys.stderr)
        return 2
    credentials.set(key)
    print("✓ API key saved")
    return 0


def cmd_check(args, config: Config, credentials: CredentialStore) -> int:
    ok = True
    try:
        version = check_fetch_tool(FetchTool(config.ytdlp_path))
        print(f"✓ yt-dlp {version}")
    except TranscriberError as e:
        print(f"✗ {e}")
        ok = False
    try:
        print(f"✓ ffmpeg: {AudioExtractionStage.from_config(config).locate_ffmpeg()}")
    except TranscriberError as e:
        print(f"✗ {e}")
        ok = False
    if credentials.get():
        print("✓ OpenAI API key configured")
    else:
        print("⚠ OpenAI API key not configured. Run 'vid2txt set-key'.")
        ok = False
    print(f"Data directory: {config.home_dir}")
    return 0 if ok else 1


def interactive(config: Config, credentials: CredentialStore) -> int:
    """Prompt for videos until the user stops."""
    print("=" * 60)
    print("Video Transcriber")
    print("=" * 60)

    if not credentials.get():
        print()
        print("⚠ No OpenAI API key configured.")
        args = argparse.Namespace(key=None)
        if cmd_set_key(args, config, credentials) != 0:
            return 2

    pipeline = TranscriptionPipeline(config, credentials=credentials)
    while True:
        print()
        print("-" * 60)
        locator = input("Paste a YouTube or Google Drive URL, or a local video path: ").strip()
        if not locator:
            print("No video provided. Exiting...")
            break

        print()
        status = ConsoleStatus()
        try:
            result = pipeline.run(locator, on_status=status)
            status.close()
            _print_result(result)
        except TranscriberError as e:
            status.close()
            _fail(e)
            if isinstance(e, AuthenticationFailure):
                if cmd_set_key(argparse.Namespace(key=None), config, credentials) != 0:
                    return e.code
                pipeline = TranscriptionPipeline(config, credentials=credentials)

        print()
        another = input("Would you like to transcribe another video? (y/n): ").strip().lower()
        if another not in ('y', 'yes'):
            break

    print()
    print("Thank you for using Video Transcriber!")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vid2txt",
        description="Transcribe videos from YouTube, Google Drive or local disk with OpenAI Whisper.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--env-file", type=Path, default=Path(".env"), help="Where the API key is stored")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("transcribe", help="Transcribe a video URL or file")
    p.add_argument("locator", help="YouTube URL, Google Drive URL or local video path")
    p.add_argument("--force", action="store_true", help="Ignore any cached transcript")
    p.add_argument("--export", choices=sorted(EXPORTERS), help="Also write the transcript in this format")
    p.add_argument("--out", help="Export destination (default: ./<video name>.<format>)")
    p.add_argument("-q", "--quiet", action="store_true", help="Do not print the transcript text")
    p.set_defaults(func=cmd_transcribe)

    p = sub.add_parser("history", help="List downloaded videos")
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("storage", help="Show disk usage of downloaded videos")
    p.set_defaults(func=cmd_storage)

    p = sub.add_parser("forget", help="Delete the cached transcript of a video")
    p.add_argument("path")
    p.set_defaults(func=cmd_forget)

    p = sub.add_parser("set-key", help="Store the OpenAI API key")
    p.add_argument("key", nargs="?")
    p.set_defaults(func=cmd_set_key)

    p = sub.add_parser("check", help="Check that yt-dlp, ffmpeg and the API key are available")
    p.set_defaults(func=cmd_check)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load_config()
    except (ValueError, OSError) as e:
        print(f"✗ Configuration Error: {e}", file=sys.stderr)
        return 1
    credentials = DotenvCredentialStore(args.env_file)

    try:
        if args.command is None:
            return interactive(config, credentials)
        return args.func(args, config, credentials)
    except TranscriberError as e:
        return _fail(e)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
