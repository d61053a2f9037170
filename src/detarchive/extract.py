"""
Extraction — the other half of the round trip.

Only the single supported profile is accepted: a .tar.gz / .tgz file
that really is gzip-compressed tar. ZIP and every other container are
rejected at the boundary; they are outside the deterministic guarantee.
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path

from .errors import EmptyTreeError, MissingSourceError, UnsupportedFormatError
from .policy import has_supported_suffix

logger = logging.getLogger("detarchive.extract")

GZIP_MAGIC = b"\x1f\x8b"


def check_supported(archive_path: Path) -> Path:
    """Verify an input archive is in the supported profile.

    Args:
        archive_path: Candidate archive.

    Returns:
        Path: The expanded archive path.

    Raises:
        MissingSourceError: If the file does not exist.
        UnsupportedFormatError: Wrong extension, or not gzip-wrapped tar.
    """
    path = Path(archive_path).expanduser()
    if not has_supported_suffix(path):
        raise UnsupportedFormatError(
            f"Unsupported archive format: {path.name}. "
            "Only .tar.gz or .tgz files are accepted (for deterministic compression)"
        )
    if not path.is_file():
        raise MissingSourceError(f"Archive not found: {path}")

    with open(path, "rb") as fh:
        magic = fh.read(2)
    if magic != GZIP_MAGIC:
        raise UnsupportedFormatError(f"Not a gzip stream: {path.name}")
    try:
        with tarfile.open(path, "r:gz") as tar:
            tar.next()
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise UnsupportedFormatError(f"Not a gzip-compressed tar archive: {path.name} ({exc})") from exc
    return path


def _root_of(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return name.split("/")[0]


def extract(archive_path: str | Path, dest_dir: str | Path) -> Path:
    """Extract an archive and locate its root folder.

    Extraction uses tarfile's "data" filter: absolute paths, parent
    escapes, and device nodes are refused.

    Args:
        archive_path: Path to a .tar.gz / .tgz archive.
        dest_dir: Where to materialize the contents. Created if missing;
            the caller owns its cleanup.

    Returns:
        Path: The single top-level directory when the archive has
            exactly one root entry and it is a directory, else ``dest_dir``.

    Raises:
        MissingSourceError: Archive does not exist.
        UnsupportedFormatError: Archive is not in the supported profile.
        EmptyTreeError: Archive holds no members.
    """
    path = check_supported(Path(archive_path))
    dest = Path(dest_dir).expanduser()
    dest.mkdir(parents=True, exist_ok=True)

    with tarfile.open(path, "r:gz") as tar:
        members = tar.getmembers()
        if not members:
            raise EmptyTreeError(f"Archive is empty: {path}")
        try:
            tar.extractall(path=dest, filter="data")
        except tarfile.TarError as exc:
            raise UnsupportedFormatError(f"Refusing unsafe archive member in {path.name}: {exc}") from exc

    roots = {_root_of(m.name) for m in members} - {"", "."}
    logger.info("Extracted %d members from %s to %s", len(members), path.name, dest)

    if len(roots) == 1:
        root = dest / roots.pop()
        if root.is_dir():
            return root
    return dest
