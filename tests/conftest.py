"""Shared test fixtures for detarchive."""

from __future__ import annotations

from pathlib import Path

import pytest

from detarchive.archiver import DeterministicArchiver
from detarchive.backends import PythonTarBackend
from detarchive.capability import CapabilityProbe


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """Provide a methylation-style dataset: a sample sheet plus IDAT pairs."""
    root = tmp_path / "dataset"
    (root / "IDATs").mkdir(parents=True)
    (root / "pheno.csv").write_text(
        "Sample_Name,Sentrix_ID,Sentrix_Position\n"
        "S1,A,1\n"
        "S2,B,2\n"
    )
    (root / "IDATs" / "A_1_Red.idat").write_bytes(bytes(range(256)) * 4)
    (root / "IDATs" / "A_1_Grn.idat").write_bytes(b"IDAT" + bytes(range(255, -1, -1)))
    return root


@pytest.fixture
def archiver() -> DeterministicArchiver:
    """Provide an archiver pinned to the in-process tarfile backend."""
    return DeterministicArchiver(probe=CapabilityProbe.fixed(PythonTarBackend()))
