"""Writer for TXT format with timestamps."""

from pathlib import Path

from vid2txt.models import TranscriptRecord


def format_seconds(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = max(seconds, 0.0)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def write_txt(record: TranscriptRecord, output_path: Path) -> Path:
    """
    Write a transcript as one line per segment.

    Format: [HH:MM:SS - HH:MM:SS] text

    A record without segments is written as its plain text.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        if not record.segments:
            f.write(f"{record.text}\n")
        for segment in record.segments:
            f.write(f"[{format_seconds(segment.start)} - {format_seconds(segment.end)}] {segment.text}\n")
    return output_path
