"""Git-backed record repository.

Each record is a commit touching exactly one file at
``<service_id>/<terms_type>[ #<document_id>].<ext>``. The git executable is
driven through ``subprocess`` in worker threads.
"""
from __future__ import annotations

import asyncio
import logging
import os
import subprocess
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

import anyio

from termsarchive.errors import GitCommandError
from termsarchive.record import Record, SaveResult
from termsarchive.repositories.base import RecordRepository
from termsarchive.repositories.git.codec import (
    SNAPSHOT_ID_MARKER,
    Commit,
    generate_file_path,
    to_domain,
    to_persistence,
)

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x00"
_LOG_FORMAT = "%H%x00%aI%x00%s%x00%b"
_TEXT_MIME_TYPES = {"application/json", "application/xhtml+xml", "application/xml"}


class Git:
    """Thin synchronous wrapper around the git command line."""

    def __init__(
        self,
        path: Path,
        *,
        author_name: str,
        author_email: str,
        timeout_s: float = 60.0,
    ) -> None:
        self.path = path
        self._author_name = author_name
        self._author_email = author_email
        self._timeout_s = timeout_s

    def run(
        self,
        *args: str,
        input: bytes | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[bytes]:
        command = [
            "git",
            "-c", f"user.name={self._author_name}",
            "-c", f"user.email={self._author_email}",
            "-c", "core.quotepath=false",
            "-c", "commit.gpgsign=false",
            *args,
        ]
        result = subprocess.run(
            command,
            cwd=str(self.path),
            input=input,
            capture_output=True,
            env={**os.environ, **env} if env else None,
            timeout=self._timeout_s,
        )
        if check and result.returncode != 0:
            raise GitCommandError(command, result.returncode, result.stderr.decode("utf-8", errors="replace"))
        return result

    def init(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        if (self.path / ".git").exists():
            return
        self.run("init", "--quiet")
        logger.info("Initialized git repository in %s", self.path)

    def has_commits(self) -> bool:
        return self.run("rev-parse", "--verify", "--quiet", "HEAD", check=False).returncode == 0

    def is_tracked(self, file_path: str) -> bool:
        if not self.has_commits():
            return False
        result = self.run("log", "-n", "1", "--format=%H", "--", f":(literal){file_path}")
        return bool(result.stdout.strip())

    def add(self, file_path: str) -> None:
        self.run("add", "--", f":(literal){file_path}")

    def has_staged_changes(self, file_path: str) -> bool:
        return self.run("diff", "--cached", "--quiet", "--", f":(literal){file_path}", check=False).returncode == 1

    def unstage(self, file_path: str) -> None:
        self.run("reset", "--quiet", "--", f":(literal){file_path}", check=False)

    def restore(self, file_path: str) -> None:
        self.run("checkout", "--", f":(literal){file_path}", check=False)

    def commit(self, message: str, date: datetime, file_path: str) -> str:
        # git ignores sub-second precision and needs an explicit offset
        if date.tzinfo is None:
            date = date.replace(tzinfo=UTC)
        iso_date = date.replace(microsecond=0).isoformat()
        self.run(
            "commit",
            "--quiet",
            "--cleanup=verbatim",
            "--file=-",
            f"--date={iso_date}",
            # Other paths left staged by an interrupted save must stay out of this commit
            "--only",
            "--",
            f":(literal){file_path}",
            input=message.encode("utf-8"),
            env={"GIT_COMMITTER_DATE": iso_date},
        )
        return self.run("rev-parse", "HEAD").stdout.decode("utf-8").strip()

    def last_commit(self, pathspec: str) -> Commit | None:
        if not self.has_commits():
            return None
        result = self.run("log", "-n", "1", f"--format={_LOG_FORMAT}", "--", pathspec)
        output = result.stdout.decode("utf-8", errors="replace")
        if not output.strip():
            return None
        commit_hash, date, subject, body = output.split(_FIELD_SEP, 3)
        return Commit(
            hash=commit_hash.strip(),
            date=datetime.fromisoformat(date.strip()),
            subject=subject,
            body=body.strip(),
            files=self.changed_files(commit_hash.strip()),
        )

    def changed_files(self, commit_hash: str) -> list[str]:
        result = self.run("diff-tree", "--root", "--no-commit-id", "--no-renames", "-r", "--name-only", "-z", commit_hash)
        return [name for name in result.stdout.decode("utf-8").split(_FIELD_SEP) if name]

    def show(self, commit_hash: str, file_path: str) -> bytes:
        return self.run("show", f"{commit_hash}:{file_path}").stdout


class GitRepository(RecordRepository):
    def __init__(
        self,
        path: Path,
        *,
        author_name: str = "Terms Archive Bot",
        author_email: str = "bot@termsarchive.invalid",
        snapshot_identifier_template: str = SNAPSHOT_ID_MARKER,
    ) -> None:
        self.path = Path(path)
        self.snapshot_identifier_template = snapshot_identifier_template
        self.git = Git(self.path, author_name=author_name, author_email=author_email)
        self._write_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            await anyio.to_thread.run_sync(self.git.init)
            self._initialized = True

    async def finalize(self) -> None:
        # Pending saves hold the write lock until their commit is done
        async with self._write_lock:
            self._initialized = False

    async def save(self, record: Record) -> SaveResult:
        async with self._write_lock:
            commit = asyncio.ensure_future(anyio.to_thread.run_sync(self._save_sync, record))
            try:
                return await asyncio.shield(commit)
            except asyncio.CancelledError:
                # The worker thread cannot be interrupted: keep the lock until its commit is done
                await asyncio.gather(commit, return_exceptions=True)
                raise

    def _save_sync(self, record: Record) -> SaveResult:
        file_path = generate_file_path(record.service_id, record.terms_type, record.document_id, record.mime_type)
        was_tracked = self.git.is_tracked(file_path)
        if record.is_first_record is None:
            record = replace(record, is_first_record=not was_tracked)

        persisted = to_persistence(record, self.snapshot_identifier_template)
        self._write_file(persisted.file_path, persisted.content)
        try:
            self.git.add(persisted.file_path)
            if not self.git.has_staged_changes(persisted.file_path):
                logger.debug("No changes for %s, nothing committed", persisted.file_path)
                return SaveResult(id=None)
            commit_hash = self.git.commit(persisted.message, record.fetch_date, persisted.file_path)
        except Exception:
            logger.warning("Could not record %s in %s, discarding the change", persisted.file_path, self.path)
            self._discard(persisted.file_path, was_tracked)
            raise

        logger.debug("Recorded %s in %s as %s", persisted.file_path, self.path, commit_hash)
        return SaveResult(id=commit_hash, is_first_record=bool(record.is_first_record))

    def _discard(self, file_path: str, was_tracked: bool) -> None:
        self.git.unstage(file_path)
        if was_tracked:
            self.git.restore(file_path)
        else:
            (self.path / file_path).unlink(missing_ok=True)

    def _write_file(self, file_path: str, content: str | bytes | None) -> None:
        destination = self.path / file_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            destination.write_bytes(content)
        else:
            destination.write_text(content or "", encoding="utf-8")

    async def find_latest(
        self,
        service_id: str,
        terms_type: str,
        document_id: str | None = None,
    ) -> Record | None:
        return await anyio.to_thread.run_sync(self._find_latest_sync, service_id, terms_type, document_id)

    def _find_latest_sync(self, service_id: str, terms_type: str, document_id: str | None) -> Record | None:
        # The mime type is not known ahead of time: match any extension
        pathspec = f":(glob){generate_file_path(service_id, terms_type, document_id)}"
        commit = self.git.last_commit(pathspec)
        if commit is None:
            return None

        record = to_domain(commit)
        raw = self.git.show(commit.hash, commit.files[0])
        return replace(record, content=_decode_content(raw, record.mime_type))


def _decode_content(raw: bytes, mime_type: str | None) -> str | bytes:
    if mime_type and (mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES):
        return raw.decode("utf-8")
    return raw
