"""Content hashing for local video files."""

import hashlib
from pathlib import Path

CHUNK_SIZE = 1024 * 1024


def compute_file_md5(file_path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """
    MD5 over the full byte stream, read in a single streaming pass.

    Raises OSError if the file cannot be read.
    """
    digest = hashlib.md5()
    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()
