"""
Source tree enumeration in canonical order.

Walks a directory without following symlinks and returns one entry per
file, directory, and symlink, sorted bytewise by relative POSIX path.
Directory iteration order of the host filesystem never leaks into the
result.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .policy import sort_key

logger = logging.getLogger("detarchive.tree")


@dataclass(frozen=True)
class ArchiveEntry:
    """One filesystem entry destined for the archive.

    Attributes:
        rel_path: Path relative to the source root, '/'-separated.
        kind: "file", "directory" or "symlink".
        path: Absolute path on disk.
        size: Byte size (files only).
        mode: Raw st_mode from lstat.
        link_target: Symlink target, verbatim.
    """

    rel_path: str
    kind: str
    path: Path
    size: int = 0
    mode: int = 0
    link_target: str = ""


def _raise(exc: OSError) -> None:
    raise exc


def _entry_for(full: Path, rel_path: str) -> ArchiveEntry | None:
    st = os.lstat(full)
    if stat.S_ISLNK(st.st_mode):
        return ArchiveEntry(rel_path, "symlink", full, mode=st.st_mode,
                            link_target=os.readlink(full))
    if stat.S_ISDIR(st.st_mode):
        return ArchiveEntry(rel_path, "directory", full, mode=st.st_mode)
    if stat.S_ISREG(st.st_mode):
        return ArchiveEntry(rel_path, "file", full, size=st.st_size, mode=st.st_mode)
    logger.warning("Skipping special file %s", full)
    return None


def scan_tree(source_root: Path, exclude: Iterable[Path] = ()) -> list[ArchiveEntry]:
    """Enumerate every entry under ``source_root``.

    Args:
        source_root: Directory to walk.
        exclude: Paths to leave out (e.g. the output archive itself).

    Returns:
        list[ArchiveEntry]: Entries in canonical order.

    Raises:
        OSError: If any directory cannot be read. Silently skipping it
            would make the archive depend on the caller's permissions.
    """
    root = Path(source_root).expanduser().resolve()
    excluded = {Path(p).expanduser().resolve() for p in exclude}
    entries: list[ArchiveEntry] = []

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        base = Path(dirpath)
        for name in dirnames + filenames:
            full = base / name
            if full in excluded:
                logger.debug("Excluding %s from scan", full)
                continue
            rel_path = full.relative_to(root).as_posix()
            entry = _entry_for(full, rel_path)
            if entry is not None:
                entries.append(entry)

    entries.sort(key=lambda e: sort_key(e.rel_path))
    return entries


def total_size(entries: Iterable[ArchiveEntry]) -> int:
    """Sum of regular-file sizes."""
    return sum(e.size for e in entries if e.kind == "file")
