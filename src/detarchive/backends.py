"""
Archiving backends -- what actually turns sorted entries into bytes.

Each backend takes entries that are already in canonical order plus the
normalization policy and returns the complete .tar.gz byte stream. The
archiver never knows whether that happened in-process or in a child
process.

Python: tarfile + gzip bound in-process. Preferred, nothing to spawn.
GNU tar: shells out to tar >= 1.28 and gzip -n, for hosts that want
the reference tool.
"""

from __future__ import annotations

import gzip
import logging
import os
import re
import shutil
import subprocess
import tarfile
import zlib
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import Optional, Sequence

from .errors import ArchiveError, BackendUnavailableError, BuildTimeoutError
from .policy import DIR_MODE, NormalizationPolicy
from .tree import ArchiveEntry

logger = logging.getLogger("detarchive.backends")

GNU_TAR_MIN_VERSION = (1, 28)

# Child processes never inherit the caller's locale or timezone.
FIXED_ENV = {"LC_ALL": "C", "TZ": "UTC"}


def _sed_escape(text: str) -> str:
    """Escape a literal for the replacement half of a tar --transform."""
    return re.sub(r"([\\&,])", r"\\\1", text)


def _source_root(entries: Sequence[ArchiveEntry]) -> Path:
    """Directory the entries' relative paths hang off."""
    first = entries[0]
    return first.path.parents[first.rel_path.count("/")]


class ArchiveBackend(ABC):
    """Abstract deterministic archive producer."""

    @abstractmethod
    def produce_deterministic_archive(
        self,
        entries: Sequence[ArchiveEntry],
        policy: NormalizationPolicy,
        archive_name: str,
    ) -> bytes:
        """Serialize and compress entries under ``archive_name/``.

        Args:
            entries: Entries in canonical order.
            policy: Metadata overrides to apply to every member.
            archive_name: Common root folder of all members.

        Returns:
            The complete gzip-compressed tar stream.
        """

    @abstractmethod
    def available(self) -> bool:
        """Check if this backend can run on this host."""

    def version(self) -> str:
        """Version string of whatever does the work."""
        return ""

    def with_timeout(self, timeout: Optional[float]) -> "ArchiveBackend":
        """Return a backend whose child processes are killed after ``timeout``.

        In-process backends have nothing to kill and return themselves.
        """
        return self

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend identifier."""


class PythonTarBackend(ArchiveBackend):
    """In-process tarfile + gzip backend.

    Members are written in GNU tar format with utf-8 names. The gzip
    header carries MTIME 0 and no original file name.
    """

    @property
    def name(self) -> str:
        return "python"

    def available(self) -> bool:
        return hasattr(zlib, "compressobj")

    def version(self) -> str:
        return f"tarfile/zlib {zlib.ZLIB_RUNTIME_VERSION}"

    def produce_deterministic_archive(
        self,
        entries: Sequence[ArchiveEntry],
        policy: NormalizationPolicy,
        archive_name: str,
    ) -> bytes:
        raw = BytesIO()
        with gzip.GzipFile(
            filename="",
            mode="wb",
            fileobj=raw,
            compresslevel=policy.compresslevel,
            mtime=policy.gzip_mtime,
        ) as gz:
            with tarfile.open(
                fileobj=gz,
                mode="w",
                format=tarfile.GNU_FORMAT,
                encoding="utf-8",
                errors="surrogateescape",
            ) as tar:
                root_mode = os.lstat(_source_root(entries)).st_mode if entries else DIR_MODE
                root = tarfile.TarInfo(archive_name)
                root.type = tarfile.DIRTYPE
                tar.addfile(policy.apply(root, "directory", root_mode))

                for entry in entries:
                    info = tarfile.TarInfo(f"{archive_name}/{entry.rel_path}")
                    policy.apply(info, entry.kind, entry.mode)
                    if entry.kind == "directory":
                        info.type = tarfile.DIRTYPE
                        tar.addfile(info)
                    elif entry.kind == "symlink":
                        info.type = tarfile.SYMTYPE
                        info.linkname = entry.link_target
                        tar.addfile(info)
                    else:
                        info.type = tarfile.REGTYPE
                        info.size = entry.size
                        with open(entry.path, "rb") as fh:
                            tar.addfile(info, fh)
        return raw.getvalue()


class GnuTarBackend(ArchiveBackend):
    """GNU tar + gzip subprocess backend.

    The member list is fed on stdin in canonical order with
    --no-recursion, so tar's own directory walk never decides the order.
    """

    def __init__(self, tar_binary: str = "tar", gzip_binary: str = "gzip",
                 timeout: Optional[float] = None):
        self.tar_binary = tar_binary
        self.gzip_binary = gzip_binary
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "gnu-tar"

    def with_timeout(self, timeout: Optional[float]) -> "GnuTarBackend":
        if timeout is None:
            return self
        if self.timeout is not None:
            timeout = min(timeout, self.timeout)
        return GnuTarBackend(self.tar_binary, self.gzip_binary, timeout)

    def version(self) -> str:
        binary = shutil.which(self.tar_binary)
        if not binary:
            return ""
        try:
            result = subprocess.run(
                [binary, "--version"],
                capture_output=True, text=True, timeout=5, env=FIXED_ENV,
            )
        except (OSError, subprocess.TimeoutExpired):
            return ""
        if result.returncode != 0:
            return ""
        return result.stdout.strip().split("\n")[0][:60]

    def available(self) -> bool:
        if not shutil.which(self.gzip_binary):
            return False
        match = re.match(r"tar \(GNU tar\) (\d+)\.(\d+)", self.version())
        if not match:
            return False
        return (int(match.group(1)), int(match.group(2))) >= GNU_TAR_MIN_VERSION

    def tar_command(self, root: str, policy: NormalizationPolicy, archive_name: str) -> list[str]:
        """Build the tar invocation for one archive."""
        cmd = [
            self.tar_binary,
            "--create",
            "--file=-",
            f"--directory={root}",
            "--format=gnu",
            "--no-recursion",
            "--null",
            "--files-from=-",
            "--hard-dereference",
            f"--owner={policy.uid}",
            f"--group={policy.gid}",
            "--numeric-owner",
            f"--mtime=@{policy.mtime}",
            f"--transform=s,^\\.(/|$),{_sed_escape(archive_name)}/,Sx",
        ]
        if policy.normalize_permissions:
            cmd.append("--mode=u=rwX,go=rX")
        return cmd

    def produce_deterministic_archive(
        self,
        entries: Sequence[ArchiveEntry],
        policy: NormalizationPolicy,
        archive_name: str,
    ) -> bytes:
        if not entries:
            raise ArchiveError("No entries to archive")
        root = str(_source_root(entries))
        names = [b"."] + [b"./" + e.rel_path.encode("utf-8", "surrogateescape") for e in entries]
        file_list = b"\0".join(names) + b"\0"

        tar_out = self._run(self.tar_command(root, policy, archive_name), file_list)
        return self._run(
            [self.gzip_binary, "-n", "-c", f"-{max(policy.compresslevel, 1)}"], tar_out,
        )

    def _run(self, cmd: list[str], stdin: bytes) -> bytes:
        # FIXED_ENV carries no PATH; run the binary the probe found.
        cmd = [shutil.which(cmd[0]) or cmd[0], *cmd[1:]]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd, input=stdin, capture_output=True, timeout=self.timeout, env=FIXED_ENV,
            )
        except subprocess.TimeoutExpired as exc:
            raise BuildTimeoutError(f"{cmd[0]} exceeded {self.timeout}s") from exc
        except OSError as exc:
            raise BackendUnavailableError(f"Cannot run {cmd[0]}: {exc}") from exc
        if result.returncode != 0:
            err = result.stderr.decode("utf-8", "replace").strip()
            raise ArchiveError(f"{cmd[0]} failed (exit {result.returncode}): {err}")
        return result.stdout


BACKENDS: dict[str, type[ArchiveBackend]] = {
    "python": PythonTarBackend,
    "gnu-tar": GnuTarBackend,
}


def get_backend(name: str) -> ArchiveBackend:
    """Instantiate a backend by name.

    Raises:
        BackendUnavailableError: If the name is unknown.
    """
    try:
        return BACKENDS[name]()
    except KeyError:
        raise BackendUnavailableError(
            f"Unknown backend '{name}' (choose from {', '.join(BACKENDS)})"
        ) from None
