"""Typed errors raised by the archiver, the extractor, and the probe."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for every failure surfaced by detarchive."""


class MissingSourceError(ArchiveError):
    """Raised when a source tree or input archive does not exist."""


class BackendUnavailableError(ArchiveError):
    """Raised when no deterministic-capable backend is present."""


class UnsupportedFormatError(ArchiveError):
    """Raised when a path is not a .tar.gz/.tgz in the supported profile."""


class WriteError(ArchiveError):
    """Raised when the output archive cannot be written."""


class EmptyTreeError(ArchiveError):
    """Raised for a source tree or archive with zero entries."""


class BuildTimeoutError(ArchiveError):
    """Raised when a build exceeds its wall-clock timeout."""
