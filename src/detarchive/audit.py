"""
Archive audit — does an existing file honor the deterministic profile?

Building twice and comparing hashes proves determinism for one tree.
Auditing checks a single archive for everything that would break it:
a timestamp or file name in the gzip header, members with host
metadata, members out of canonical order, or more than one root.
"""

from __future__ import annotations

import hashlib
import logging
import struct
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .extract import check_supported
from .policy import DEFAULT_POLICY, NormalizationPolicy, sort_key

logger = logging.getLogger("detarchive.audit")

FEXTRA = 0x04
FNAME = 0x08
FCOMMENT = 0x10


@dataclass
class AuditReport:
    """Profile audit of one archive.

    Attributes:
        path: The audited archive.
        member_count: Number of tar members.
        root_names: Distinct top-level names.
        content_hash: Digest of the archive bytes.
        issues: Human-readable profile violations.
    """

    path: str
    member_count: int = 0
    root_names: list[str] = field(default_factory=list)
    content_hash: str = ""
    issues: list[str] = field(default_factory=list)

    @property
    def compliant(self) -> bool:
        """Whether the archive matches the profile."""
        return not self.issues

    def to_dict(self) -> dict:
        """Serialize to a JSON-friendly dict."""
        return {
            "path": self.path,
            "compliant": self.compliant,
            "member_count": self.member_count,
            "root_names": self.root_names,
            "content_hash": self.content_hash,
            "issues": self.issues,
        }


def hash_file(path: str | Path, algorithm: str = "sha256") -> str:
    """Compute the hex digest of a file.

    Args:
        path: File to hash.
        algorithm: hashlib algorithm name.

    Returns:
        str: Hex digest.

    Raises:
        ValueError: Unknown algorithm, or a variable-length shake digest.
    """
    if algorithm.lower().startswith("shake_"):
        raise ValueError(f"Variable-length digest not supported: {algorithm}")
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def _gzip_header_issues(header: bytes, policy: NormalizationPolicy) -> list[str]:
    if len(header) < 10:
        return ["gzip header truncated"]
    _magic, method, flags, mtime = struct.unpack("<2sBBI", header[:8])
    issues = []
    if method != 8:
        issues.append(f"gzip compression method {method} is not deflate")
    if flags & FNAME:
        issues.append("gzip header embeds an original file name")
    if flags & FCOMMENT:
        issues.append("gzip header embeds a comment")
    if flags & FEXTRA:
        issues.append("gzip header carries an extra field")
    if mtime != policy.gzip_mtime:
        issues.append(f"gzip header timestamp is {mtime}, expected {policy.gzip_mtime}")
    return issues


def _member_issues(member: tarfile.TarInfo, policy: NormalizationPolicy) -> list[str]:
    issues = []
    if member.mtime != policy.mtime:
        issues.append(f"{member.name}: mtime {member.mtime}, expected {policy.mtime}")
    if (member.uid, member.gid) != (policy.uid, policy.gid):
        issues.append(f"{member.name}: owner {member.uid}:{member.gid}, "
                      f"expected {policy.uid}:{policy.gid}")
    if (member.uname, member.gname) != (policy.uname, policy.gname):
        issues.append(f"{member.name}: symbolic owner '{member.uname}:{member.gname}'")
    if policy.normalize_permissions and not member.issym():
        kind = "directory" if member.isdir() else "file"
        if member.mode != policy.mode_for(kind, member.mode):
            issues.append(f"{member.name}: mode {member.mode:o} is not normalized")
    return issues


def audit_archive(
    archive_path: str | Path,
    policy: NormalizationPolicy = DEFAULT_POLICY,
) -> AuditReport:
    """Audit an archive against the deterministic profile.

    Args:
        archive_path: Path to a .tar.gz / .tgz archive.
        policy: The policy the archive should have been built with.

    Returns:
        AuditReport: Every violation found; empty issues means compliant.

    Raises:
        UnsupportedFormatError: If the file is not gzip-wrapped tar.
        MissingSourceError: If the file does not exist.
    """
    path = check_supported(Path(archive_path))
    report = AuditReport(path=str(path), content_hash=hash_file(path))

    with open(path, "rb") as fh:
        report.issues.extend(_gzip_header_issues(fh.read(10), policy))

    names: list[str] = []
    with tarfile.open(path, "r:gz") as tar:
        for member in tar:
            names.append(member.name)
            report.issues.extend(_member_issues(member, policy))

    report.member_count = len(names)
    report.root_names = sorted({n.split("/")[0] for n in names})

    if not names:
        report.issues.append("archive has no members")
    if len(report.root_names) > 1:
        report.issues.append(f"archive has {len(report.root_names)} top-level entries")
    for prev, cur in zip(names, names[1:]):
        if sort_key(prev) >= sort_key(cur):
            report.issues.append(f"member order: '{cur}' follows '{prev}'")

    logger.info("Audited %s: %d members, %d issues", path.name,
                report.member_count, len(report.issues))
    return report


def list_members(archive_path: str | Path) -> list[dict[str, Any]]:
    """List archive members in stored order.

    Args:
        archive_path: Path to a .tar.gz / .tgz archive.

    Returns:
        list[dict]: name, type, size, mode, mtime, uid, gid per member.
    """
    path = check_supported(Path(archive_path))
    members = []
    with tarfile.open(path, "r:gz") as tar:
        for m in tar:
            if m.isdir():
                kind = "directory"
            elif m.issym():
                kind = "symlink"
            elif m.isfile():
                kind = "file"
            else:
                kind = "other"
            members.append({
                "name": m.name,
                "type": kind,
                "size": m.size,
                "mode": f"{m.mode:04o}",
                "mtime": m.mtime,
                "uid": m.uid,
                "gid": m.gid,
            })
    return members
