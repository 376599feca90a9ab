"""Mapping between records and git commits.

A record is stored as a single file in a commit. Everything that is not part
of the file path or content (first record, extract only, source snapshots)
is carried by the commit message so that it can be read back from history.
"""
from __future__ import annotations

import mimetypes
import posixpath
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from termsarchive.errors import StoreIntegrityError
from termsarchive.record import Record

TERMS_TYPE_AND_DOCUMENT_ID_SEPARATOR = " #"
SNAPSHOT_ID_MARKER = "%SNAPSHOT_ID"
UNKNOWN_EXTENSION = "*"

SINGLE_SNAPSHOT_PREFIX = "This version was recorded after an extraction from the snapshot"
MULTIPLE_SNAPSHOTS_PREFIX = (
    "This version was recorded after an extraction and an assembling from the following snapshots "
    "from %NUMBER source documents:"
)

_snapshot_id_re = re.compile(r"\b[0-9a-f]{5,40}\b")

# mimetypes results depend on the host tables, pin the extensions that end up in history
_EXTENSIONS_BY_MIME_TYPE = {
    "text/markdown": "md",
    "text/html": "html",
    "text/plain": "txt",
    "application/pdf": "pdf",
    "application/xhtml+xml": "xhtml",
    "application/json": "json",
}
_MIME_TYPES_BY_EXTENSION = {extension: mime_type for mime_type, extension in _EXTENSIONS_BY_MIME_TYPE.items()}


class CommitMessagePrefix(str, Enum):
    START_TRACKING = "Initial record of"
    EXTRACT_ONLY = "Apply technical or declaration upgrade on"
    UPDATE = "Record new changes of"
    DEPRECATED_START_TRACKING = "Start tracking"
    DEPRECATED_REFILTER = "Refilter"
    DEPRECATED_UPDATE = "Update"


# Only the first three prefixes are written, the deprecated ones still appear in older histories
FIRST_RECORD_PREFIXES = tuple(
    prefix.value for prefix in (CommitMessagePrefix.START_TRACKING, CommitMessagePrefix.DEPRECATED_START_TRACKING)
)
EXTRACT_ONLY_PREFIXES = tuple(
    prefix.value for prefix in (CommitMessagePrefix.EXTRACT_ONLY, CommitMessagePrefix.DEPRECATED_REFILTER)
)


@dataclass(frozen=True)
class PersistedRecord:
    message: str
    content: str | bytes | None
    file_path: str


@dataclass(frozen=True)
class Commit:
    """The parts of a git commit needed to rebuild a record."""

    hash: str
    date: datetime
    subject: str
    body: str = ""
    files: list[str] = field(default_factory=list)


def to_persistence(record: Record, snapshot_identifier_template: str = SNAPSHOT_ID_MARKER) -> PersistedRecord:
    if record.is_first_record:
        prefix = CommitMessagePrefix.START_TRACKING
    elif record.is_extract_only:
        prefix = CommitMessagePrefix.EXTRACT_ONLY
    else:
        prefix = CommitMessagePrefix.UPDATE

    subject = f"{prefix.value} {record.service_id} {record.terms_type}"
    document_id_message = f"Document ID {record.document_id}\n\n" if record.document_id else ""
    snapshot_ids_message = _snapshot_ids_message(record.snapshot_ids, snapshot_identifier_template)

    return PersistedRecord(
        message=f"{subject}\n\n{document_id_message}\n\n{snapshot_ids_message}",
        content=record.content,
        file_path=generate_file_path(record.service_id, record.terms_type, record.document_id, record.mime_type),
    )


def _snapshot_ids_message(snapshot_ids: tuple[str, ...], template: str) -> str:
    if not snapshot_ids:
        return ""
    if len(snapshot_ids) == 1:
        return f"{SINGLE_SNAPSHOT_PREFIX} {template.replace(SNAPSHOT_ID_MARKER, snapshot_ids[0])}"
    lines = [MULTIPLE_SNAPSHOTS_PREFIX.replace("%NUMBER", str(len(snapshot_ids)))]
    lines.extend(f"- {template.replace(SNAPSHOT_ID_MARKER, snapshot_id)}" for snapshot_id in snapshot_ids)
    return "\n".join(lines)


def to_domain(commit: Commit) -> Record:
    if len(commit.files) > 1:
        raise StoreIntegrityError(
            f"Only one file should have been recorded in {commit.hash}, "
            f"but all these files were recorded: {', '.join(commit.files)}"
        )
    if not commit.files:
        raise StoreIntegrityError(f"No file was recorded in {commit.hash}")

    [file_path] = commit.files
    stem, extension = _split_extension(posixpath.basename(file_path))
    terms_type, _, document_id = stem.partition(TERMS_TYPE_AND_DOCUMENT_ID_SEPARATOR)

    return Record(
        id=commit.hash,
        service_id=posixpath.dirname(file_path),
        terms_type=terms_type,
        document_id=document_id or None,
        mime_type=mime_type_for_extension(extension),
        fetch_date=commit.date,
        is_first_record=commit.subject.startswith(FIRST_RECORD_PREFIXES),
        is_extract_only=commit.subject.startswith(EXTRACT_ONLY_PREFIXES),
        snapshot_ids=tuple(dict.fromkeys(_snapshot_id_re.findall(commit.body))),
    )


def _split_extension(file_name: str) -> tuple[str, str]:
    stem, dot, extension = file_name.rpartition(".")
    if not dot:
        return file_name, ""
    return stem, extension


def extension_for_mime_type(mime_type: str | None) -> str:
    if not mime_type:
        return UNKNOWN_EXTENSION
    if mime_type in _EXTENSIONS_BY_MIME_TYPE:
        return _EXTENSIONS_BY_MIME_TYPE[mime_type]
    guessed = mimetypes.guess_extension(mime_type, strict=False)
    return guessed.lstrip(".") if guessed else UNKNOWN_EXTENSION


def mime_type_for_extension(extension: str) -> str | None:
    if not extension or extension == UNKNOWN_EXTENSION:
        return None
    if extension in _MIME_TYPES_BY_EXTENSION:
        return _MIME_TYPES_BY_EXTENSION[extension]
    mime_type, _ = mimetypes.guess_type(f"file.{extension}", strict=False)
    return mime_type


def generate_file_name(terms_type: str, document_id: str | None, extension: str) -> str:
    suffix = f"{TERMS_TYPE_AND_DOCUMENT_ID_SEPARATOR}{document_id}" if document_id else ""
    return f"{terms_type}{suffix}.{extension}"


def generate_file_path(
    service_id: str,
    terms_type: str,
    document_id: str | None = None,
    mime_type: str | None = None,
) -> str:
    # `*` stands for any extension when the mime type is not known yet, paths stay `/` separated on every host
    return f"{service_id}/{generate_file_name(terms_type, document_id, extension_for_mime_type(mime_type))}"
