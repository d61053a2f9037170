"""Tests for the detarchive command line."""

from __future__ import annotations

import json
import tarfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from detarchive import __version__
from detarchive.cli import main


@pytest.fixture
def run(tmp_path: Path):
    """Invoke the CLI with an isolated (absent) config file."""
    runner = CliRunner()
    config = tmp_path / "no-config.yaml"

    def _run(*args: str):
        return runner.invoke(main, ["--config", str(config), *args])

    return _run


class TestBuildCommand:
    """Tests for `detarchive build`."""

    def test_build(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """build writes the archive and shows the hash."""
        out = tmp_path / "d.tar.gz"
        result = run("build", str(sample_tree), str(out))
        assert result.exit_code == 0, result.output
        assert out.exists()
        assert "Build Complete" in result.output

    def test_build_json(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """--json-out prints the ArchiveResult."""
        out = tmp_path / "d.tgz"
        result = run("build", str(sample_tree), str(out), "--name", "GSE1", "--json-out")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["member_count"] == 4
        assert len(data["content_hash"]) == 64
        with tarfile.open(out, "r:gz") as tar:
            assert tar.getnames()[0] == "GSE1"

    def test_build_twice_same_hash(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """Two CLI builds agree."""
        a = json.loads(run("build", str(sample_tree), str(tmp_path / "a.tar.gz"), "--json-out").output)
        b = json.loads(run("build", str(sample_tree), str(tmp_path / "b.tar.gz"), "--json-out").output)
        assert a["content_hash"] == b["content_hash"]

    def test_build_missing_source(self, run, tmp_path: Path) -> None:
        """Missing source exits 1 with a message."""
        result = run("build", str(tmp_path / "nope"), str(tmp_path / "o.tar.gz"))
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_build_rejects_zip(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """A .zip output exits 1."""
        result = run("build", str(sample_tree), str(tmp_path / "o.zip"))
        assert result.exit_code == 1
        assert "Unsupported" in result.output

    def test_build_bad_name(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """An archive name with a slash exits 1."""
        result = run("build", str(sample_tree), str(tmp_path / "o.tgz"), "--name", "a/b")
        assert result.exit_code == 1


class TestVerifyCommand:
    """Tests for `detarchive verify`."""

    def test_verify(self, run, sample_tree: Path) -> None:
        """verify reports a deterministic tree."""
        result = run("verify", str(sample_tree), "--trials", "3")
        assert result.exit_code == 0, result.output
        assert "DETERMINISTIC" in result.output

    def test_verify_json(self, run, sample_tree: Path) -> None:
        """--json-out includes every hash."""
        result = run("verify", str(sample_tree), "--trials", "2", "--json-out")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["deterministic"] is True
        assert len(data["hashes"]) == 2
        assert len(data["distinct_hashes"]) == 1

    def test_verify_too_few_trials(self, run, sample_tree: Path) -> None:
        """One trial exits 1."""
        result = run("verify", str(sample_tree), "--trials", "1")
        assert result.exit_code == 1


class TestExtractAndInspect:
    """Tests for `detarchive extract` and `detarchive inspect`."""

    def test_extract(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """extract materializes the tree and names its root."""
        out = tmp_path / "d.tar.gz"
        run("build", str(sample_tree), str(out))
        result = run("extract", str(out), str(tmp_path / "work"))
        assert result.exit_code == 0, result.output
        assert (tmp_path / "work" / "dataset" / "pheno.csv").exists()

    def test_extract_zip_rejected(self, run, tmp_path: Path) -> None:
        """Unsupported formats exit 1."""
        bogus = tmp_path / "x.zip"
        bogus.write_bytes(b"PK\x03\x04")
        result = run("extract", str(bogus), str(tmp_path / "work"))
        assert result.exit_code == 1

    def test_inspect_compliant(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """Our own archives audit clean."""
        out = tmp_path / "d.tar.gz"
        run("build", str(sample_tree), str(out))
        result = run("inspect", str(out), "--members")
        assert result.exit_code == 0, result.output
        assert "COMPLIANT" in result.output
        assert "pheno.csv" in result.output

    def test_inspect_json(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """--json-out carries the member list."""
        out = tmp_path / "d.tar.gz"
        run("build", str(sample_tree), str(out))
        data = json.loads(run("inspect", str(out), "--members", "--json-out").output)
        assert data["compliant"] is True
        assert len(data["members"]) == 5

    def test_inspect_noncompliant(self, run, sample_tree: Path, tmp_path: Path) -> None:
        """A naive archive exits 1."""
        naive = tmp_path / "naive.tar.gz"
        with tarfile.open(naive, "w:gz") as tar:
            tar.add(sample_tree, arcname="dataset")
        result = run("inspect", str(naive))
        assert result.exit_code == 1
        assert "NON-COMPLIANT" in result.output


class TestDiagnostics:
    """Tests for probe, hash, config, and --version."""

    def test_version(self, run) -> None:
        """--version prints the package version."""
        result = run("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_probe_json(self, run) -> None:
        """probe lists backends and selects python under auto."""
        result = run("probe", "--json-out")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["selected"] == "python"
        assert {b["name"] for b in data["backends"]} == {"python", "gnu-tar"}

    def test_hash(self, run, tmp_path: Path) -> None:
        """hash prints digest and path."""
        f = tmp_path / "f.txt"
        f.write_bytes(b"abc")
        result = run("hash", str(f), "--algorithm", "md5")
        assert result.exit_code == 0
        assert result.output.startswith("900150983cd24fb0d6963f7d28e17f72")

    def test_hash_shake_exits_cleanly(self, run, tmp_path: Path) -> None:
        """A shake algorithm is an error message, not a traceback."""
        f = tmp_path / "f.txt"
        f.write_bytes(b"abc")
        result = run("hash", str(f), "-a", "shake_128")
        assert result.exit_code == 1
        assert not isinstance(result.exception, TypeError)
        assert "Variable-length digest" in result.output

    def test_hash_missing_file(self, run, tmp_path: Path) -> None:
        """Unreadable files exit 1."""
        result = run("hash", str(tmp_path / "nope"))
        assert result.exit_code == 1

    def test_config_show_and_init(self, run, tmp_path: Path) -> None:
        """config prints YAML; --init writes it."""
        shown = run("config")
        assert shown.exit_code == 0
        assert "hash_algorithm: sha256" in shown.output

        target = tmp_path / "written.yaml"
        result = run("config", "--init", str(target))
        assert result.exit_code == 0
        assert "verify_trials: 5" in target.read_text()
