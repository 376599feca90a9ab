"""
Pytest configuration for backend tests.

Shared fixtures for recorder, repository and archivist tests.
"""
import shutil
import sys
from pathlib import Path

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from termsarchive.recorder import Recorder
from termsarchive.repositories.git import GitRepository
from termsarchive.settings import Settings
from tests.factories import InMemoryRepository


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "git: marks tests that drive a real git repository")


# --- Repository Fixtures ---
@pytest.fixture
def snapshots_repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def versions_repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def recorder(snapshots_repository, versions_repository) -> Recorder:
    return Recorder(versions_repository=versions_repository, snapshots_repository=snapshots_repository)


@pytest.fixture
def git_repository(tmp_path: Path) -> GitRepository:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    return GitRepository(
        tmp_path / "snapshots",
        author_name="Test Bot",
        author_email="test@example.com",
        snapshot_identifier_template="https://example.com/snapshots/commit/%SNAPSHOT_ID",
    )


# --- Settings Fixtures ---
@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and pointing at tmp_path."""
    return Settings(
        repo_root=tmp_path,
        data_dir=tmp_path / "data",
        declarations_dir=tmp_path / "declarations",
        shutdown_timeout_s=1.0,
    )
