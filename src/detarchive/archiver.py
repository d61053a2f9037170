"""
Deterministic archiver — tree in, byte-stable tar.gz out.

The mapping from tree contents to archive bytes is a pure function:
entries are enumerated and put in canonical order, every member gets
the normalization policy's metadata, and the gzip header carries no
timestamp. Two builds of byte-identical trees produce byte-identical
archives, so their content hashes match no matter when, where, or how
often the build runs.

Output is written atomically. A failed build never leaves a partial
archive behind.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from .backends import ArchiveBackend
from .capability import CapabilityProbe, detect_backend, get_default_probe
from .errors import (
    ArchiveError,
    BuildTimeoutError,
    EmptyTreeError,
    MissingSourceError,
    UnsupportedFormatError,
    WriteError,
)
from .models import (
    ArchiveRequest,
    ArchiveResult,
    ArchiverConfig,
    BackendPreference,
    DeterminismReport,
)
from .policy import DEFAULT_POLICY, NormalizationPolicy, has_supported_suffix
from .tree import ArchiveEntry, scan_tree, total_size

logger = logging.getLogger("detarchive.archiver")

BuildFn = Callable[[ArchiveRequest], ArchiveResult]


class DeterministicArchiver:
    """Builds and verifies deterministic archives.

    Holds no mutable state of its own; one instance may serve builds
    from several threads.
    """

    def __init__(
        self,
        probe: Optional[CapabilityProbe] = None,
        policy: NormalizationPolicy = DEFAULT_POLICY,
        hash_algorithm: str = "sha256",
    ):
        """Initialize the archiver.

        Args:
            probe: Backend capability probe. Defaults to the process-wide one.
            policy: Metadata normalization applied to every member.
            hash_algorithm: hashlib algorithm for the content hash.
        """
        self.probe = probe or get_default_probe()
        self.policy = policy
        self.hash_algorithm = hash_algorithm

    @classmethod
    def from_config(cls, config: ArchiverConfig) -> "DeterministicArchiver":
        """Create an archiver from loaded configuration."""
        if config.backend == BackendPreference.AUTO:
            probe = get_default_probe()
        else:
            probe = CapabilityProbe(lambda: detect_backend(config.backend))
        policy = NormalizationPolicy(
            normalize_permissions=config.normalize_permissions,
            compresslevel=config.compresslevel,
        )
        return cls(probe=probe, policy=policy, hash_algorithm=config.hash_algorithm)

    def build(self, request: ArchiveRequest) -> ArchiveResult:
        """Build one archive.

        Args:
            request: Source tree, output path, and embedded root name.

        Returns:
            ArchiveResult: Output path, content hash, and counts.

        Raises:
            UnsupportedFormatError: Output is not .tar.gz / .tgz.
            MissingSourceError: Source tree is absent or not a directory.
            BackendUnavailableError: No compliant backend on this host.
            EmptyTreeError: Source tree has no entries.
            BuildTimeoutError: ``request.timeout`` expired.
            WriteError: Output cannot be written.
        """
        output = request.output_path.expanduser()
        source = request.source_root.expanduser()

        if not has_supported_suffix(output):
            raise UnsupportedFormatError(
                f"Unsupported archive extension: {output.name} (only .tar.gz or .tgz)"
            )
        if not source.exists():
            raise MissingSourceError(f"Source tree not found: {source}")
        if not source.is_dir():
            raise MissingSourceError(f"Source is not a directory: {source}")

        backend = self.probe.require()

        try:
            entries = scan_tree(source, exclude=[output])
        except OSError as exc:
            raise ArchiveError(f"Cannot read source tree {source}: {exc}") from exc
        if not entries:
            raise EmptyTreeError(f"Source tree is empty: {source}")

        data = self._produce(backend, entries, request)
        self._write(output, data)

        result = ArchiveResult(
            output_path=output,
            content_hash=hashlib.new(self.hash_algorithm, data).hexdigest(),
            hash_algorithm=self.hash_algorithm,
            member_count=len(entries),
            total_uncompressed_bytes=total_size(entries),
            archive_size=len(data),
            backend=backend.name,
        )
        logger.info(
            "Archive built: %s (%d members, %d bytes -> %d bytes, %s %s)",
            output, result.member_count, result.total_uncompressed_bytes,
            result.archive_size, self.hash_algorithm, result.content_hash,
        )
        return result

    def _produce(
        self,
        backend: ArchiveBackend,
        entries: Sequence[ArchiveEntry],
        request: ArchiveRequest,
    ) -> bytes:
        """Run the backend, in a daemon thread when a timeout applies.

        Child processes are killed at the deadline. An in-process build
        cannot be interrupted; it is abandoned and never holds up
        interpreter exit.
        """
        if request.timeout is None:
            return self._call_backend(backend, entries, request.archive_name)

        backend = backend.with_timeout(request.timeout)
        outcome: dict = {}

        def work() -> None:
            try:
                outcome["data"] = self._call_backend(backend, entries, request.archive_name)
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=work, name="detarchive-build", daemon=True)
        worker.start()
        worker.join(request.timeout)
        if worker.is_alive():
            raise BuildTimeoutError(f"Build of {request.source_root} exceeded {request.timeout}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["data"]

    def _call_backend(
        self,
        backend: ArchiveBackend,
        entries: Sequence[ArchiveEntry],
        archive_name: str,
    ) -> bytes:
        try:
            return backend.produce_deterministic_archive(entries, self.policy, archive_name)
        except OSError as exc:
            raise ArchiveError(f"Failed reading source tree: {exc}") from exc

    def _write(self, output: Path, data: bytes) -> None:
        """Write ``data`` to ``output`` via a temp file and rename."""
        tmp: Optional[Path] = None
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{output.name}.", suffix=".part", dir=output.parent,
            )
            tmp = Path(tmp_name)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp, 0o644)
            os.replace(tmp, output)
        except OSError as exc:
            raise WriteError(f"Cannot write {output}: {exc}") from exc
        finally:
            if tmp is not None and tmp.exists():
                tmp.unlink()

    def check_determinism(
        self,
        source_root: Path,
        build_fn: Optional[BuildFn] = None,
        trials: int = 5,
        delay: float = 0.0,
        archive_name: str = "",
    ) -> DeterminismReport:
        """Build the same tree repeatedly and record every hash.

        Args:
            source_root: Tree to archive.
            build_fn: Build callable. Defaults to ``self.build``.
            trials: Number of builds, at least 2.
            delay: Seconds to sleep between builds.
            archive_name: Root folder name; defaults to the tree's name.

        Returns:
            DeterminismReport: Per-trial hashes.
        """
        if trials < 2:
            raise ValueError(f"trials must be at least 2: got {trials}")
        build = build_fn or self.build
        report = DeterminismReport(source_root=Path(source_root), trials=trials)

        with tempfile.TemporaryDirectory(prefix="detarchive-verify-") as workdir:
            for trial in range(trials):
                if trial and delay:
                    time.sleep(delay)
                request = ArchiveRequest(
                    source_root=Path(source_root),
                    output_path=Path(workdir) / f"trial-{trial}.tar.gz",
                    archive_name=archive_name,
                )
                result = build(request)
                report.hashes.append(result.content_hash)
                logger.debug("Trial %d/%d: %s", trial + 1, trials, result.content_hash)

        return report

    def verify_determinism(
        self,
        source_root: Path,
        build_fn: Optional[BuildFn] = None,
        trials: int = 5,
    ) -> bool:
        """True iff ``trials`` builds of ``source_root`` share one hash."""
        report = self.check_determinism(source_root, build_fn=build_fn, trials=trials)
        if not report.deterministic:
            logger.warning(
                "Non-deterministic output for %s: %d distinct hashes over %d trials: %s",
                source_root, len(report.distinct_hashes), trials,
                ", ".join(report.distinct_hashes),
            )
        return report.deterministic


def build_archive(
    source_root: str | Path,
    output_path: str | Path,
    archive_name: str = "",
    timeout: Optional[float] = None,
) -> ArchiveResult:
    """Build an archive with the default archiver.

    Args:
        source_root: Directory tree to archive.
        output_path: Target .tar.gz / .tgz.
        archive_name: Embedded root folder name.
        timeout: Optional wall-clock limit in seconds.

    Returns:
        ArchiveResult for the written archive.
    """
    request = ArchiveRequest(
        source_root=Path(source_root),
        output_path=Path(output_path),
        archive_name=archive_name,
        timeout=timeout,
    )
    return DeterministicArchiver().build(request)


def verify_determinism(
    source_root: str | Path,
    build_fn: Optional[BuildFn] = None,
    trials: int = 5,
) -> bool:
    """Check determinism of ``source_root`` with the default archiver."""
    return DeterministicArchiver().verify_determinism(
        Path(source_root), build_fn=build_fn, trials=trials,
    )
