from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from termsarchive.errors import RecordValidationError
from termsarchive.record import MARKDOWN_MIME_TYPE, Record, SaveResult
from termsarchive.repositories.base import RecordRepository


class Recorder:
    """Records snapshots and versions in their respective repositories."""

    def __init__(
        self,
        *,
        versions_repository: RecordRepository | None = None,
        snapshots_repository: RecordRepository | None = None,
    ) -> None:
        if versions_repository is None or snapshots_repository is None:
            raise ValueError("Storage repositories should be defined both for versions and snapshots")

        self.versions_repository = versions_repository
        self.snapshots_repository = snapshots_repository

    async def initialize(self) -> None:
        await asyncio.gather(self.versions_repository.initialize(), self.snapshots_repository.initialize())

    async def finalize(self) -> None:
        await asyncio.gather(self.versions_repository.finalize(), self.snapshots_repository.finalize())

    async def get_latest_snapshot(
        self,
        service_id: str,
        terms_type: str,
        document_id: str | None = None,
    ) -> Record | None:
        return await self.snapshots_repository.find_latest(service_id, terms_type, document_id)

    async def get_latest_version(self, service_id: str, terms_type: str) -> Record | None:
        return await self.versions_repository.find_latest(service_id, terms_type)

    async def record_snapshot(
        self,
        *,
        service_id: str,
        terms_type: str,
        fetch_date: datetime,
        mime_type: str,
        content: str | bytes,
        document_id: str | None = None,
    ) -> SaveResult:
        _validate(service_id=service_id, terms_type=terms_type, fetch_date=fetch_date, content=content, mime_type=mime_type)

        return await self.snapshots_repository.save(
            Record(
                service_id=service_id,
                terms_type=terms_type,
                document_id=document_id or None,
                fetch_date=fetch_date,
                mime_type=mime_type,
                content=content,
            )
        )

    async def record_version(
        self,
        *,
        service_id: str,
        terms_type: str,
        fetch_date: datetime,
        content: str,
        snapshot_ids: Iterable[str] | None = None,
        snapshot_id: str | None = None,
        mime_type: str = MARKDOWN_MIME_TYPE,
        is_extract_only: bool = False,
        is_refilter: bool = False,
    ) -> SaveResult:
        _validate(service_id=service_id, terms_type=terms_type, fetch_date=fetch_date, content=content, mime_type=mime_type)
        lineage = _snapshot_lineage(snapshot_ids, snapshot_id)
        if not lineage:
            raise RecordValidationError(
                f"A snapshot ID is required to ensure data consistency for {service_id}'s {terms_type}"
            )

        return await self.versions_repository.save(
            Record(
                service_id=service_id,
                terms_type=terms_type,
                fetch_date=fetch_date,
                mime_type=mime_type,
                content=content,
                snapshot_ids=lineage,
                is_extract_only=is_extract_only or is_refilter,
            )
        )

    async def record_refilter(self, **params: Any) -> SaveResult:
        params.pop("is_refilter", None)
        return await self.record_version(**{**params, "is_extract_only": True})


def _snapshot_lineage(snapshot_ids: Iterable[str] | None, snapshot_id: str | None) -> tuple[str, ...]:
    ids = [*(snapshot_ids or ()), *([snapshot_id] if snapshot_id else [])]
    return tuple(dict.fromkeys(id_ for id_ in ids if id_))


def _validate(
    *,
    service_id: str,
    terms_type: str,
    fetch_date: datetime,
    content: str | bytes,
    mime_type: str,
) -> None:
    if not service_id:
        raise RecordValidationError("A service ID is required")
    if not terms_type:
        raise RecordValidationError("A terms type is required")
    if not fetch_date:
        raise RecordValidationError("The fetch date of the snapshot is required to ensure data consistency")
    if not content:
        raise RecordValidationError("A document content is required")
    if not mime_type:
        raise RecordValidationError("A document mime type is required to ensure data consistency")
