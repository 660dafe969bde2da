"""
hashing.py - SHA256 hashing and checksum sidecar records.

A Script's checksum record lives beside it as `<script>.sha256` in the
format written by `sha256sum`: `<64hex>  <filename>`. Only the validator
reads it and only the repairer (and promotions of known-good copies)
write it.

Usage:
    from bootguard.hashing import sha256_file, write_checksum, checksum_matches

    write_checksum(Path("init.sh"))
    assert checksum_matches(Path("init.sh"))
"""

import hashlib
from pathlib import Path
from typing import Optional, Union

SIDECAR_SUFFIX = ".sha256"


def sha256_file(path: Union[str, Path], chunk_size: int = 65536) -> str:
    """Compute SHA256 hash of a file's contents.

    Args:
        path: Path to the file to hash
        chunk_size: Read buffer size (default 64KB)

    Returns:
        Lowercase hex digest of SHA256 hash

    Raises:
        FileNotFoundError: If file doesn't exist
        IsADirectoryError: If path is a directory
    """
    path = Path(path)
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def sidecar_path(path: Union[str, Path]) -> Path:
    """Return the checksum record path for a script."""
    path = Path(path)
    return path.with_name(path.name + SIDECAR_SUFFIX)


def read_checksum(path: Union[str, Path]) -> Optional[str]:
    """Read the recorded digest for a script.

    Returns:
        The recorded hex digest, "" if the record exists but is empty or
        unreadable, or None if no record exists.
    """
    record = sidecar_path(path)
    if not record.is_file():
        return None
    try:
        text = record.read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        return ""
    return text.split()[0].lower() if text else ""


def checksum_matches(path: Union[str, Path]) -> bool:
    """Check a script against its checksum record.

    A script without a record is considered matching. A record for a
    missing script never matches.
    """
    recorded = read_checksum(path)
    if recorded is None:
        return True
    try:
        return recorded == sha256_file(path)
    except OSError:
        return False


def write_checksum(path: Union[str, Path]) -> Path:
    """(Re)compute and persist the checksum record for a script.

    Returns:
        Path of the written record

    Raises:
        OSError: If the script cannot be read or the record cannot be written
    """
    path = Path(path)
    record = sidecar_path(path)
    record.write_text(f"{sha256_file(path)}  {path.name}\n", encoding="utf-8")
    return record


__all__ = [
    "SIDECAR_SUFFIX",
    "sha256_file",
    "sidecar_path",
    "read_checksum",
    "checksum_matches",
    "write_checksum",
]
