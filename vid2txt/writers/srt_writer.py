"""Writer for SRT subtitle format."""

from pathlib import Path

from vid2txt.models import TranscriptRecord


def format_timestamp(seconds: float) -> str:
    """Format seconds as SRT timestamp: HH:MM:SS,mmm."""
    total_millis = int(round(max(seconds, 0.0) * 1000))
    hours, rest = divmod(total_millis, 3600 * 1000)
    minutes, rest = divmod(rest, 60 * 1000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def write_srt(record: TranscriptRecord, output_path: Path) -> Path:
    """Write transcript segments as numbered subtitle cues."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        for index, segment in enumerate(record.segments, start=1):
            f.write(f"{index}\n")
            f.write(f"{format_timestamp(segment.start)} --> {format_timestamp(segment.end)}\n")
            f.write(f"{segment.text}\n")
            f.write("\n")  # Blank line between cues
    return output_path
