"""
Capability probe — is a deterministic-capable backend present?

The answer is computed lazily, at most once per probe, under a lock,
and then treated as immutable. A probe that finds nothing makes every
build fail fast; there is no fallback to a backend that cannot honor
the normalization policy.

Probes are injectable: tests and alternate hosts pass their own
detector, or use ``CapabilityProbe.fixed()``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .backends import BACKENDS, ArchiveBackend
from .errors import BackendUnavailableError
from .models import BackendPreference

logger = logging.getLogger("detarchive.capability")

Detector = Callable[[], Optional[ArchiveBackend]]

PREFERENCE_ORDER = {
    BackendPreference.AUTO: ["python", "gnu-tar"],
    BackendPreference.PYTHON: ["python"],
    BackendPreference.GNU_TAR: ["gnu-tar"],
}


@dataclass
class BackendCheck:
    """Result of checking a single backend."""

    name: str
    available: bool
    version: str = ""
    detail: str = ""


def detect_backend(
    preference: BackendPreference | str = BackendPreference.AUTO,
) -> Optional[ArchiveBackend]:
    """Return the first available backend in preference order.

    Args:
        preference: "auto", "python" or "gnu-tar".

    Returns:
        An available backend, or None.
    """
    for name in PREFERENCE_ORDER[BackendPreference(preference)]:
        backend = BACKENDS[name]()
        if backend.available():
            logger.debug("Backend %s available (%s)", name, backend.version())
            return backend
        logger.debug("Backend %s not available", name)
    return None


def check_backends() -> list[BackendCheck]:
    """Probe every known backend, for diagnostics.

    Returns:
        list[BackendCheck]: One result per backend.
    """
    checks = []
    for name, cls in BACKENDS.items():
        backend = cls()
        ok = backend.available()
        detail = "" if ok else {
            "python": "zlib support is missing from this interpreter.",
            "gnu-tar": "GNU tar >= 1.28 and gzip are required on PATH.",
        }.get(name, "")
        checks.append(BackendCheck(name=name, available=ok,
                                   version=backend.version() if ok else "",
                                   detail=detail))
    return checks


class CapabilityProbe:
    """One-time, thread-safe answer to "which backend may I use?"."""

    def __init__(self, detector: Detector = detect_backend):
        """Initialize the probe.

        Args:
            detector: Callable returning an available backend or None.
                Called at most once.
        """
        self._detector = detector
        self._lock = threading.Lock()
        self._resolved = False
        self._backend: Optional[ArchiveBackend] = None

    @classmethod
    def fixed(cls, backend: Optional[ArchiveBackend]) -> "CapabilityProbe":
        """A probe that always reports ``backend`` (None means absent)."""
        return cls(detector=lambda: backend)

    def backend(self) -> Optional[ArchiveBackend]:
        """The detected backend, probing on first call."""
        if not self._resolved:
            with self._lock:
                if not self._resolved:
                    self._backend = self._detector()
                    self._resolved = True
                    if self._backend is None:
                        logger.warning("No deterministic archive backend available")
                    else:
                        logger.info("Using archive backend: %s", self._backend.name)
        return self._backend

    @property
    def available(self) -> bool:
        """Whether a compliant backend was found."""
        return self.backend() is not None

    def require(self) -> ArchiveBackend:
        """The detected backend.

        Raises:
            BackendUnavailableError: If none is present.
        """
        backend = self.backend()
        if backend is None:
            raise BackendUnavailableError(
                "No deterministic archive backend available "
                "(need Python zlib, or GNU tar >= 1.28 with gzip)"
            )
        return backend

    def reset(self) -> None:
        """Forget the cached answer. Intended for tests."""
        with self._lock:
            self._resolved = False
            self._backend = None


_default_probe: Optional[CapabilityProbe] = None
_default_lock = threading.Lock()


def get_default_probe() -> CapabilityProbe:
    """Get or create the process-wide probe.

    Returns:
        CapabilityProbe: Shared by every archiver that was not handed
            its own probe.
    """
    global _default_probe
    if _default_probe is None:
        with _default_lock:
            if _default_probe is None:
                _default_probe = CapabilityProbe()
    return _default_probe
