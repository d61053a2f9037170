"""
Pydantic models for archive requests, results, and configuration.

A request goes in, a frozen result comes out. Nothing here reads the
clock or the environment; the archive bytes must only ever depend on
the tree being archived.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BackendPreference(str, Enum):
    """Which archiving backend the probe should look for."""

    AUTO = "auto"
    PYTHON = "python"
    GNU_TAR = "gnu-tar"


class ArchiveRequest(BaseModel):
    """Input to a single archive build.

    Attributes:
        source_root: Directory tree to archive.
        output_path: Target .tar.gz / .tgz file.
        archive_name: Root folder embedded as the common member prefix.
            Defaults to the name of ``source_root``.
        timeout: Optional wall-clock limit in seconds.
    """

    source_root: Path
    output_path: Path
    archive_name: str = ""
    timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("archive_name")
    @classmethod
    def archive_name_is_one_component(cls, v: str) -> str:
        """Reject names that would not form a single root folder."""
        if v and (v in (".", "..") or "/" in v or "\\" in v or "\x00" in v):
            raise ValueError(f"archive_name must be a single path component: got '{v}'")
        return v

    @model_validator(mode="after")
    def default_archive_name(self) -> "ArchiveRequest":
        """Fall back to the source directory's own name."""
        if not self.archive_name:
            name = self.source_root.expanduser().resolve().name
            self.archive_name = name or "archive"
        return self


class ArchiveResult(BaseModel):
    """Outcome of a successful build. Never mutated after return."""

    model_config = ConfigDict(frozen=True)

    output_path: Path
    content_hash: str
    hash_algorithm: str = "sha256"
    member_count: int
    total_uncompressed_bytes: int
    archive_size: int
    backend: str


class DeterminismReport(BaseModel):
    """Hashes recorded by repeated builds of one source tree."""

    source_root: Path
    trials: int
    hashes: list[str] = Field(default_factory=list)

    @property
    def distinct_hashes(self) -> list[str]:
        """Unique hashes in first-seen order."""
        return list(dict.fromkeys(self.hashes))

    @property
    def deterministic(self) -> bool:
        """True when every trial produced the same hash."""
        return len(self.hashes) == self.trials and len(self.distinct_hashes) == 1


class ArchiverConfig(BaseModel):
    """Archiver settings, loaded from config.yaml."""

    backend: BackendPreference = BackendPreference.AUTO
    hash_algorithm: str = "sha256"
    normalize_permissions: bool = True
    compresslevel: int = Field(default=9, ge=0, le=9)
    verify_trials: int = Field(default=5, ge=2)
    log_level: str = "WARNING"

    @field_validator("hash_algorithm")
    @classmethod
    def hash_algorithm_known(cls, v: str) -> str:
        """Only accept algorithms hashlib can construct."""
        import hashlib

        v = v.lower()
        if v not in hashlib.algorithms_guaranteed or v.startswith("shake_"):
            raise ValueError(f"unknown hash algorithm: '{v}'")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_upper(cls, v: str) -> str:
        """Normalize the level name for logging.basicConfig."""
        return v.upper()
