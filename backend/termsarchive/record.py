from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

MARKDOWN_MIME_TYPE = "text/markdown"


@dataclass(frozen=True)
class Record:
    """One entry of a snapshots or versions history.

    Snapshots hold raw fetched content and have no ``snapshot_ids``; versions
    hold extracted content and reference the snapshots they come from.
    """

    service_id: str
    terms_type: str
    content: str | bytes | None = None
    mime_type: str | None = None
    fetch_date: datetime | None = None
    document_id: str | None = None
    id: str | None = None
    is_first_record: bool | None = None
    is_extract_only: bool = False
    snapshot_ids: tuple[str, ...] = ()

    @property
    def is_refilter(self) -> bool:
        return self.is_extract_only


@dataclass(frozen=True)
class SaveResult:
    id: str | None
    is_first_record: bool = False

    @property
    def changed(self) -> bool:
        return self.id is not None
