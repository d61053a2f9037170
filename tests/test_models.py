"""Tests for the data model and the normalization policy."""

from __future__ import annotations

import stat
import tarfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from detarchive.models import (
    ArchiveRequest,
    ArchiverConfig,
    BackendPreference,
    DeterminismReport,
)
from detarchive.policy import (
    DEFAULT_POLICY,
    POLICY_MTIME,
    NormalizationPolicy,
    has_supported_suffix,
    sort_key,
)


class TestNormalizationPolicy:
    """Tests for NormalizationPolicy."""

    def test_defaults(self) -> None:
        """Policy v1 pins time to 2000-01-01 and ownership to root."""
        assert DEFAULT_POLICY.version == 1
        assert DEFAULT_POLICY.mtime == POLICY_MTIME == 946684800
        assert DEFAULT_POLICY.uid == 0
        assert DEFAULT_POLICY.gid == 0
        assert DEFAULT_POLICY.gzip_mtime == 0

    def test_frozen(self) -> None:
        """The policy cannot be mutated after creation."""
        with pytest.raises(ValidationError):
            DEFAULT_POLICY.mtime = 0

    def test_mode_for_plain_file(self) -> None:
        """Owner-only files still come out 0644."""
        assert DEFAULT_POLICY.mode_for("file", stat.S_IFREG | 0o600) == 0o644

    def test_mode_for_executable(self) -> None:
        """The owner execute bit selects 0755."""
        assert DEFAULT_POLICY.mode_for("file", stat.S_IFREG | 0o700) == 0o755

    def test_mode_for_directory_and_symlink(self) -> None:
        """Directories are 0755, symlinks 0777."""
        assert DEFAULT_POLICY.mode_for("directory", stat.S_IFDIR | 0o700) == 0o755
        assert DEFAULT_POLICY.mode_for("symlink", stat.S_IFLNK | 0o777) == 0o777

    def test_mode_preserved_when_not_normalizing(self) -> None:
        """With normalization off only the type bits are dropped."""
        policy = NormalizationPolicy(normalize_permissions=False)
        assert policy.mode_for("file", stat.S_IFREG | 0o640) == 0o640

    def test_apply_overwrites_host_metadata(self) -> None:
        """apply() replaces time, ownership, names, and mode."""
        info = tarfile.TarInfo("x/file")
        info.mtime = 1_700_000_000
        info.uid, info.gid = 1000, 1000
        info.uname, info.gname = "alice", "staff"
        DEFAULT_POLICY.apply(info, "file", stat.S_IFREG | 0o664)
        assert info.mtime == POLICY_MTIME
        assert (info.uid, info.gid) == (0, 0)
        assert (info.uname, info.gname) == ("", "")
        assert info.mode == 0o644

    @pytest.mark.parametrize("name,ok", [
        ("data.tar.gz", True),
        ("DATA.TGZ", True),
        ("data.tar", False),
        ("data.zip", False),
        ("data.gz", False),
    ])
    def test_supported_suffix(self, name: str, ok: bool) -> None:
        """Only .tar.gz and .tgz are accepted, in any case."""
        assert has_supported_suffix(name) is ok

    def test_sort_key_is_bytewise(self) -> None:
        """'-' (0x2d) sorts before '/' (0x2f)."""
        names = ["a/b", "a-c", "a", "B"]
        assert sorted(names, key=sort_key) == ["B", "a", "a-c", "a/b"]


class TestArchiveRequest:
    """Tests for ArchiveRequest."""

    def test_archive_name_defaults_to_source_name(self, tmp_path: Path) -> None:
        """The embedded root is the source directory's own name."""
        req = ArchiveRequest(source_root=tmp_path / "GSE1", output_path=tmp_path / "o.tar.gz")
        assert req.archive_name == "GSE1"

    def test_explicit_archive_name(self, tmp_path: Path) -> None:
        """An explicit name wins."""
        req = ArchiveRequest(source_root=tmp_path, output_path=tmp_path / "o.tgz",
                             archive_name="bundle")
        assert req.archive_name == "bundle"

    @pytest.mark.parametrize("bad", ["a/b", "..", ".", "a\\b"])
    def test_rejects_multi_component_name(self, tmp_path: Path, bad: str) -> None:
        """Names that are not one path component are rejected."""
        with pytest.raises(ValidationError):
            ArchiveRequest(source_root=tmp_path, output_path=tmp_path / "o.tgz", archive_name=bad)

    def test_timeout_must_be_positive(self, tmp_path: Path) -> None:
        """A zero timeout makes no sense."""
        with pytest.raises(ValidationError):
            ArchiveRequest(source_root=tmp_path, output_path=tmp_path / "o.tgz", timeout=0)


class TestArchiverConfig:
    """Tests for ArchiverConfig."""

    def test_defaults(self) -> None:
        """Defaults pick auto detection and sha256."""
        config = ArchiverConfig()
        assert config.backend == BackendPreference.AUTO
        assert config.hash_algorithm == "sha256"
        assert config.verify_trials == 5

    def test_unknown_hash_rejected(self) -> None:
        """Algorithms hashlib cannot build are rejected."""
        with pytest.raises(ValidationError):
            ArchiverConfig(hash_algorithm="crc32")

    def test_hash_and_level_normalized(self) -> None:
        """Names are case-normalized."""
        config = ArchiverConfig(hash_algorithm="SHA512", log_level="debug")
        assert config.hash_algorithm == "sha512"
        assert config.log_level == "DEBUG"

    def test_verify_trials_minimum(self) -> None:
        """A single trial proves nothing."""
        with pytest.raises(ValidationError):
            ArchiverConfig(verify_trials=1)


class TestDeterminismReport:
    """Tests for DeterminismReport."""

    def test_deterministic(self, tmp_path: Path) -> None:
        """Identical hashes for every trial."""
        report = DeterminismReport(source_root=tmp_path, trials=3, hashes=["a", "a", "a"])
        assert report.deterministic is True
        assert report.distinct_hashes == ["a"]

    def test_not_deterministic(self, tmp_path: Path) -> None:
        """Distinct hashes keep first-seen order."""
        report = DeterminismReport(source_root=tmp_path, trials=3, hashes=["b", "a", "b"])
        assert report.deterministic is False
        assert report.distinct_hashes == ["b", "a"]

    def test_incomplete_is_not_deterministic(self, tmp_path: Path) -> None:
        """A report missing trials does not pass."""
        report = DeterminismReport(source_root=tmp_path, trials=3, hashes=["a"])
        assert report.deterministic is False
