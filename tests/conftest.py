"""Shared fixtures: an isolated data directory and fake child processes."""

from __future__ import annotations

from pathlib import Path

import pytest

from vid2txt.config import Config
from vid2txt.models import Segment, TranscriptRecord
from vid2txt.process import ProcessResult


@pytest.fixture
def config(tmp_path: Path) -> Config:
    cfg = Config(home_dir=tmp_path / "home", temp_dir=tmp_path / "tmp")
    cfg.ensure_directories()
    return cfg


@pytest.fixture
def video_file(tmp_path: Path) -> Path:
    path = tmp_path / "videos" / "lecture.mp4"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"frame" * 100)
    return path


@pytest.fixture
def record() -> TranscriptRecord:
    return TranscriptRecord(
        text="Hello there. General Kenobi.",
        segments=[
            Segment(start=0.0, end=1.5, text="Hello there."),
            Segment(start=1.5, end=3.0, text="General Kenobi."),
        ],
    )


class FakeRunner:
    """
    Stands in for ``run_streaming``.

    ``behaviour(cmd)`` may create files and returns (returncode, stdout, stderr)
    where stdout/stderr are lists of lines fed to the callbacks.
    """

    def __init__(self, behaviour) -> None:
        self.behaviour = behaviour
        self.calls: list[list[str]] = []

    def __call__(self, cmd, on_stdout=None, on_stderr=None) -> ProcessResult:
        self.calls.append(list(cmd))
        returncode, stdout, stderr = self.behaviour(list(cmd))
        for line in stdout:
            if on_stdout:
                on_stdout(line)
        for line in stderr:
            if on_stderr:
                on_stderr(line)
        return ProcessResult(returncode=returncode, stdout_lines=list(stdout), stderr_lines=list(stderr))


@pytest.fixture
def fake_runner():
    """Factory for FakeRunner instances."""
    return FakeRunner
