from __future__ import annotations

from abc import ABC, abstractmethod

from termsarchive.record import Record, SaveResult


class RecordRepository(ABC):
    """Append-only history of records for one collection (snapshots or versions).

    Implementations must apply concurrent ``save`` calls one at a time, in
    submission order.
    """

    @abstractmethod
    async def initialize(self) -> None: ...

    @abstractmethod
    async def finalize(self) -> None: ...

    @abstractmethod
    async def save(self, record: Record) -> SaveResult:
        """Append ``record`` unless its content equals the current tip.

        Returns ``SaveResult(id=None)`` when nothing was written.
        """

    @abstractmethod
    async def find_latest(
        self,
        service_id: str,
        terms_type: str,
        document_id: str | None = None,
    ) -> Record | None: ...

    async def find_latest_by_service_id_and_document_type(
        self,
        service_id: str,
        terms_type: str,
        document_id: str | None = None,
    ) -> Record | None:
        return await self.find_latest(service_id, terms_type, document_id)
