"""
Normalization policy — the fixed metadata every archive member gets.

The policy is versioned pure data. Every member's modification time,
ownership, and (by default) permission bits are overwritten with the
constants below, and the gzip header carries no timestamp and no file
name. Bumping any constant means bumping ``version``.
"""

from __future__ import annotations

import os
import stat
import tarfile

from pydantic import BaseModel, ConfigDict

# 2000-01-01T00:00:00Z
POLICY_MTIME = 946684800

FILE_MODE = 0o644
EXEC_MODE = 0o755
DIR_MODE = 0o755
SYMLINK_MODE = 0o777


class NormalizationPolicy(BaseModel):
    """Metadata overrides applied uniformly to every archive member.

    Attributes:
        version: Policy revision; changes whenever the output bytes would.
        mtime: Constant modification time for every member.
        uid: Numeric owner id.
        gid: Numeric group id.
        uname: Symbolic owner name (empty avoids host name lookups).
        gname: Symbolic group name.
        gzip_mtime: Gzip header MTIME; 0 means "no timestamp".
        normalize_permissions: Replace mode bits with fixed values.
        compresslevel: zlib compression level.
    """

    model_config = ConfigDict(frozen=True)

    version: int = 1
    mtime: int = POLICY_MTIME
    uid: int = 0
    gid: int = 0
    uname: str = ""
    gname: str = ""
    gzip_mtime: int = 0
    normalize_permissions: bool = True
    compresslevel: int = 9

    def mode_for(self, kind: str, mode: int) -> int:
        """Permission bits a member of ``kind`` is stored with.

        Args:
            kind: One of "file", "directory", "symlink".
            mode: The raw st_mode from the filesystem.

        Returns:
            int: Permission bits (no file-type bits).
        """
        if not self.normalize_permissions:
            return stat.S_IMODE(mode)
        if kind == "directory":
            return DIR_MODE
        if kind == "symlink":
            return SYMLINK_MODE
        return EXEC_MODE if mode & stat.S_IXUSR else FILE_MODE

    def apply(self, info: tarfile.TarInfo, kind: str, mode: int) -> tarfile.TarInfo:
        """Overwrite host-dependent fields of a tar header in place."""
        info.mtime = self.mtime
        info.uid = self.uid
        info.gid = self.gid
        info.uname = self.uname
        info.gname = self.gname
        info.mode = self.mode_for(kind, mode)
        info.pax_headers = {}
        return info


DEFAULT_POLICY = NormalizationPolicy()

SUPPORTED_SUFFIXES = (".tar.gz", ".tgz")


def has_supported_suffix(path: str | os.PathLike) -> bool:
    """Whether a file name carries the single supported extension."""
    return os.fspath(path).lower().endswith(SUPPORTED_SUFFIXES)


def sort_key(rel_path: str) -> bytes:
    """Canonical member order: bytewise on the encoded relative path."""
    return rel_path.encode("utf-8", "surrogateescape")
