from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TERMSARCHIVE_", extra="ignore")

    repo_root: Path = Field(default_factory=_default_repo_root)
    data_dir: Path | None = None
    declarations_dir: Path | None = None
    snapshots_path: Path | None = None
    versions_path: Path | None = None

    # Git repositories
    author_name: str = "Terms Archive Bot"
    author_email: str = "bot@termsarchive.invalid"
    # `%SNAPSHOT_ID` is replaced by the snapshot commit hash in version messages
    snapshot_identifier_template: str = "%SNAPSHOT_ID"

    # Fetcher
    fetcher_timeout_s: float = 30.0
    fetcher_user_agent: str = "TermsArchive/1.0 (terms and conditions tracker)"

    # Parallel terms tracks; live fetches get 403s and storage contention above 1
    max_parallel_tracks: int = 1
    max_parallel_tracks_extract_only: int = 10

    shutdown_timeout_s: float = 60.0
    # Third-party notification quota errors, unrelated to the tracked documents
    quota_error_marker: str = "HttpError: API rate limit exceeded for user ID"

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or (self.repo_root / "data")

    @property
    def resolved_declarations_dir(self) -> Path:
        return self.declarations_dir or (self.repo_root / "declarations")

    @property
    def resolved_snapshots_path(self) -> Path:
        return self.snapshots_path or (self.resolved_data_dir / "snapshots")

    @property
    def resolved_versions_path(self) -> Path:
        return self.versions_path or (self.resolved_data_dir / "versions")
