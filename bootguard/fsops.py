"""
fsops.py - Directory and file primitives shared by the components.

All functions raise OSError on failure; callers translate that into their
own failure member. Nothing here logs.
"""

import os
import shutil
import stat
from pathlib import Path
from typing import Iterable, List, Union

PathLike = Union[str, Path]


def make_executable(path: PathLike) -> None:
    """Add the execute bits wherever the read bits are set (chmod +x)."""
    path = Path(path)
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def is_executable(path: PathLike) -> bool:
    path = Path(path)
    return path.is_file() and os.access(path, os.X_OK)


def copy_file(source: PathLike, destination: PathLike) -> Path:
    """Copy file content over `destination` (cp -f), creating its parent."""
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
    return destination


def is_mount_point(path: PathLike) -> bool:
    return os.path.ismount(str(path))


def purge_contents(directory: PathLike, keep: Iterable[str] = ()) -> List[Path]:
    """Delete everything inside `directory` but not the directory itself.

    Args:
        directory: Directory to empty
        keep: Entry names (direct children) to leave in place

    Returns:
        Paths that were removed
    """
    directory = Path(directory)
    keep = set(keep)
    removed = []
    for entry in sorted(directory.iterdir()):
        if entry.name in keep:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed.append(entry)
    return removed


def prepare_directory(directory: PathLike, keep: Iterable[str] = ()) -> str:
    """Leave `directory` existing and empty.

    A mount point cannot be removed, so its contents are purged in place.
    Any other existing directory is removed and recreated, unless entries
    must be kept, in which case it is purged like a mount point.

    Returns:
        "purged", "recreated" or "created"
    """
    directory = Path(directory)
    keep = tuple(keep)
    if directory.is_dir() and (is_mount_point(directory) or keep):
        purge_contents(directory, keep=keep)
        return "purged"
    if directory.exists():
        shutil.rmtree(directory)
        directory.mkdir(parents=True)
        return "recreated"
    directory.mkdir(parents=True)
    return "created"


def copy_contents(source: PathLike, destination: PathLike, exclude: Iterable[str] = ()) -> List[Path]:
    """Copy the children of `source` into an existing `destination` (cp -r src/* dst/).

    Args:
        source: Directory whose entries are copied
        destination: Existing target directory
        exclude: Entry names (direct children of source) to skip

    Returns:
        Destination paths of the copied top-level entries

    Raises:
        OSError: If source has no entries to copy or any copy fails
    """
    source, destination = Path(source), Path(destination)
    exclude = set(exclude)
    entries = [e for e in sorted(source.iterdir()) if e.name not in exclude]
    if not entries:
        raise FileNotFoundError(f"Nothing to copy in {source}")
    copied = []
    for entry in entries:
        target = destination / entry.name
        if entry.is_dir():
            shutil.copytree(entry, target, dirs_exist_ok=True)
        else:
            shutil.copy2(entry, target)
        copied.append(target)
    return copied


def is_empty_dir(directory: PathLike, ignore: Iterable[str] = ()) -> bool:
    """True when `directory` is missing or has no entries besides `ignore`."""
    directory = Path(directory)
    if not directory.is_dir():
        return True
    ignore = set(ignore)
    return not any(entry.name not in ignore for entry in directory.iterdir())


def list_tree(directory: PathLike, max_depth: int = 2) -> List[str]:
    """Relative paths under `directory` up to `max_depth` levels (debug output)."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    found = []
    for path in sorted(directory.rglob("*")):
        rel = path.relative_to(directory)
        if len(rel.parts) <= max_depth:
            found.append(str(rel))
    return found
