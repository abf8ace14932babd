"""Tests for content hashing."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from vid2txt.fingerprint import compute_file_md5


class TestComputeFileMd5:
    def test_matches_hashlib(self, tmp_path: Path) -> None:
        data = b"some video bytes" * 1000
        path = tmp_path / "clip.mp4"
        path.write_bytes(data)
        assert compute_file_md5(path) == hashlib.md5(data).hexdigest()

    def test_chunk_size_does_not_change_result(self, tmp_path: Path) -> None:
        path = tmp_path / "clip.mp4"
        path.write_bytes(bytes(range(256)) * 50)
        assert compute_file_md5(path, chunk_size=7) == compute_file_md5(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.mp4"
        path.write_bytes(b"")
        assert compute_file_md5(path) == "d41d8cd98f00b204e9800998ecf8427e"

    def test_independent_of_name_and_location(self, tmp_path: Path) -> None:
        a = tmp_path / "a.mp4"
        b = tmp_path / "sub" / "renamed.mkv"
        b.parent.mkdir()
        a.write_bytes(b"same")
        b.write_bytes(b"same")
        assert compute_file_md5(a) == compute_file_md5(b)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            compute_file_md5(tmp_path / "missing.mp4")
