"""
Pytest configuration and shared fixtures for iis-procfinder tests.
"""

import os
import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator, List

from iis_procfinder.correlation.architecture import ArchitectureResolver
from iis_procfinder.correlation.candidates import CandidateEnumerator
from iis_procfinder.correlation.app_pools import ApplicationPoolEnumerator
from iis_procfinder.engine import CorrelationEngine
from tests.fixtures.process_fixtures import (
    DEFAULT_POOL_LISTING,
    FakeProcess,
    FakeWow64Probe,
    ProcessFixtures,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, temp_dir: Path):
    """Keep user config files and IIS_PROCFINDER_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("IIS_PROCFINDER_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(temp_dir / "home"))
    monkeypatch.setenv("USERPROFILE", str(temp_dir / "home"))
    monkeypatch.chdir(temp_dir)


@pytest.fixture
def fake_probe() -> FakeWow64Probe:
    """A probe reporting every process as native 64-bit."""
    return FakeWow64Probe()


@pytest.fixture
def resolver(fake_probe: FakeWow64Probe) -> ArchitectureResolver:
    return ArchitectureResolver(probe=fake_probe)


@pytest.fixture
def process_table() -> List[FakeProcess]:
    """One dotnet.exe hosted by worker 1234 plus unrelated processes."""
    return [
        FakeProcess(4, 0, "System"),
        FakeProcess(1234, 600, "w3wp.exe"),
        FakeProcess(
            5678, 1234, "dotnet.exe",
            environ={"USERDOMAIN": "IIS APPPOOL", "USERNAME": "DefaultAppPool"}
        ),
        FakeProcess(9000, 800, "dotnet.exe"),
    ]


@pytest.fixture
def mock_appcmd(temp_dir: Path) -> Path:
    """Mock appcmd printing the DefaultAppPool worker 1234."""
    bin_dir = temp_dir / "bin"
    bin_dir.mkdir()
    return ProcessFixtures.create_mock_appcmd(bin_dir, DEFAULT_POOL_LISTING)


@pytest.fixture
def engine(mock_appcmd: Path, resolver: ArchitectureResolver, process_table) -> CorrelationEngine:
    """Engine wired to the mock appcmd and the fake process table."""
    return CorrelationEngine(
        process_names=["dotnet.exe"],
        pool_enumerator=ApplicationPoolEnumerator(mock_appcmd, architecture_reader=None),
        candidate_enumerator=CandidateEnumerator(
            resolver=resolver,
            process_iter=lambda attrs: iter(process_table)
        ),
    )
