"""Archivist - tracks terms changes.

For every terms of the declared services, the archivist runs:

    fetch documents → record snapshots → load latest snapshots →
    extract versions content → record version

Terms are processed through a bounded queue. Failures to access a document
are reported per terms through the ``inaccessible_content`` event. Any other
failure, including an extraction error such as a selector that no longer
matches the page, aborts the whole batch after storage has been finalized.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import anyio

from termsarchive.errors import (
    FatalTrackingError,
    FetchDocumentError,
    FetchTransportError,
    InaccessibleContentError,
)
from termsarchive.events import EventPublisher, TrackingEvent
from termsarchive.extract import extract_content
from termsarchive.fetcher import FetchResult, HttpFetcher
from termsarchive.record import Record
from termsarchive.recorder import Recorder
from termsarchive.repositories import GitRepository
from termsarchive.services import Service, SourceDocument, Terms, count_terms, for_each_terms, load_services
from termsarchive.settings import Settings
from termsarchive.tracking_queue import TrackingQueue

logger = logging.getLogger(__name__)


class DocumentFetcher(Protocol):
    async def launch(self) -> None: ...

    async def stop(self) -> None: ...

    async def fetch(
        self,
        url: str,
        *,
        execute_client_scripts: bool = False,
        css_selectors: Sequence[str] = (),
    ) -> FetchResult: ...


Extractor = Callable[[str | bytes, str, SourceDocument], Awaitable[str]]


@dataclass(frozen=True)
class TrackingJob:
    terms: Terms
    extract_only: bool = False


@dataclass(frozen=True)
class FetchedDocument:
    service_id: str
    terms_type: str
    document_id: str | None
    content: str | bytes
    mime_type: str
    fetch_date: datetime


class Archivist(EventPublisher):
    def __init__(
        self,
        *,
        recorder: Recorder,
        services: Mapping[str, Service],
        fetcher: DocumentFetcher,
        extract: Extractor = extract_content,
        settings: Settings | None = None,
        exit_fn: Callable[[int], object] = os._exit,
    ) -> None:
        super().__init__()
        self.recorder = recorder
        self.services = dict(services)
        self.fetcher = fetcher
        self.extract = extract
        self.settings = settings or Settings()
        self._exit = exit_fn
        self._fatal_error: FatalTrackingError | None = None
        self.tracking_queue: TrackingQueue[TrackingJob] = self._create_queue()

    @classmethod
    def from_settings(cls, settings: Settings) -> Archivist:
        def repository(path: Path) -> GitRepository:
            return GitRepository(
                path,
                author_name=settings.author_name,
                author_email=settings.author_email,
                snapshot_identifier_template=settings.snapshot_identifier_template,
            )

        return cls(
            recorder=Recorder(
                versions_repository=repository(settings.resolved_versions_path),
                snapshots_repository=repository(settings.resolved_snapshots_path),
            ),
            services=load_services(settings.resolved_declarations_dir),
            fetcher=HttpFetcher(timeout_s=settings.fetcher_timeout_s, user_agent=settings.fetcher_user_agent),
            settings=settings,
        )

    @property
    def service_ids(self) -> list[str]:
        return list(self.services)

    def number_of_terms(self, service_ids: Iterable[str] | None = None) -> int:
        return count_terms(self.services, service_ids)

    def _create_queue(self) -> TrackingQueue[TrackingJob]:
        return TrackingQueue(
            self._track_job,
            concurrency=self.settings.max_parallel_tracks,
            on_error=self._on_tracking_error,
        )

    async def track_all_terms_changes(
        self,
        *,
        service_ids: Iterable[str] | None = None,
        terms_types: Iterable[str] | None = None,
        extract_only: bool = False,
    ) -> None:
        service_ids = self.service_ids if service_ids is None else list(service_ids)
        unknown = [service_id for service_id in service_ids if service_id not in self.services]
        if unknown:
            raise ValueError(f"Unknown services: {', '.join(unknown)}")

        number_of_terms = self.number_of_terms(service_ids)
        self.emit(TrackingEvent.TRACKING_STARTED, len(service_ids), number_of_terms, extract_only)

        self._fatal_error = None
        self.tracking_queue = self._create_queue()
        self.tracking_queue.concurrency = (
            self.settings.max_parallel_tracks_extract_only if extract_only else self.settings.max_parallel_tracks
        )

        try:
            await asyncio.gather(self.fetcher.launch(), self.recorder.initialize())
            for terms in for_each_terms(self.services, service_ids, terms_types):
                self.tracking_queue.push(TrackingJob(terms=terms, extract_only=extract_only))
            await self.tracking_queue.drain()
        except BaseException:
            self.tracking_queue.kill()
            await self._shutdown()
            raise

        if self._fatal_error is not None:
            await self._shutdown()
            raise self._fatal_error from self._fatal_error.cause

        await self._release()
        self.emit(TrackingEvent.TRACKING_COMPLETED, len(service_ids), number_of_terms, extract_only)

    async def _release(self) -> None:
        await asyncio.gather(self.fetcher.stop(), self.recorder.finalize())

    async def _shutdown(self) -> None:
        logger.warning("Abort and clean up operations before exiting…")
        with anyio.move_on_after(self.settings.shutdown_timeout_s) as scope:
            await self._release()
        if scope.cancelled_caught:
            logger.error("Cleaning timed out, force process to exit")
            self._exit(2)
            return
        logger.info("Fetcher stopped and recorder finalized")

    def _on_tracking_error(self, error: Exception, job: TrackingJob) -> None:
        terms = job.terms

        if self.settings.quota_error_marker in f"{type(error).__name__}: {error}":
            logger.debug("Ignoring quota error for %s %s: %s", terms.service_id, terms.terms_type, error)
            return

        if isinstance(error, InaccessibleContentError):
            self.emit(TrackingEvent.INACCESSIBLE_CONTENT, error, terms.service_id, terms.terms_type, terms)
            return

        self.emit(TrackingEvent.ERROR, error, terms.service_id, terms.terms_type)
        if self._fatal_error is None:
            self._fatal_error = FatalTrackingError(error, terms.service_id, terms.terms_type)
        self.tracking_queue.kill()

    async def _track_job(self, job: TrackingJob) -> None:
        await self.track_terms_changes(job.terms, extract_only=job.extract_only)

    async def track_terms_changes(self, terms: Terms, *, extract_only: bool = False) -> None:
        inaccessible_content_errors: list[str] = []
        if not extract_only:
            inaccessible_content_errors = await self.fetch_and_record_snapshots(terms)

        snapshots = await self.get_terms_snapshots(terms)
        if snapshots:
            await self.record_version(
                service_id=terms.service_id,
                terms_type=terms.terms_type,
                content=await self.extract_version_content(snapshots, terms),
                snapshot_ids=[snapshot.id for snapshot in snapshots],
                # Multi documents terms are dated by their first snapshot
                fetch_date=snapshots[0].fetch_date,
                extract_only=extract_only,
            )
        else:
            logger.info("%s %s: no snapshot recorded yet, skipping", terms.service_id, terms.terms_type)

        if inaccessible_content_errors:
            raise InaccessibleContentError(inaccessible_content_errors)

    async def fetch_and_record_snapshots(self, terms: Terms) -> list[str]:
        """Fetch every document of ``terms`` and record a snapshot as soon as each one arrives.

        Returns the messages of the documents whose content was inaccessible.
        Any other failure is raised at once and cancels the sibling fetches.
        """
        inaccessible_content_errors: list[str] = []

        async def fetch_and_record(document: SourceDocument) -> None:
            try:
                fetched = await self.fetch_document(terms, document)
            except FetchTransportError:
                # No retry here: the process supervisor restarts the batch
                raise
            except FetchDocumentError as e:
                inaccessible_content_errors.append(str(e))
                return
            await self.record_snapshot(fetched)

        tasks = [asyncio.create_task(fetch_and_record(document)) for document in terms.documents]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return inaccessible_content_errors

    async def fetch_document(self, terms: Terms, document: SourceDocument) -> FetchedDocument:
        result = await self.fetcher.fetch(
            document.location,
            execute_client_scripts=document.execute_client_scripts,
            css_selectors=document.css_selectors,
        )
        return FetchedDocument(
            service_id=terms.service_id,
            terms_type=terms.terms_type,
            document_id=document.id if terms.is_multi_document else None,
            content=result.content,
            mime_type=result.mime_type,
            fetch_date=datetime.now(UTC),
        )

    async def get_terms_snapshots(self, terms: Terms) -> list[Record]:
        snapshots = await asyncio.gather(
            *(
                self.recorder.get_latest_snapshot(
                    terms.service_id,
                    terms.terms_type,
                    document.id if terms.is_multi_document else None,
                )
                for document in terms.documents
            )
        )
        return [snapshot for snapshot in snapshots if snapshot is not None]

    async def extract_version_content(self, snapshots: Sequence[Record], terms: Terms) -> str:
        contents = await asyncio.gather(
            *(
                self.extract(snapshot.content, snapshot.mime_type, terms.get_document(snapshot.document_id))
                for snapshot in snapshots
            )
        )
        return "\n\n".join(contents)

    async def record_snapshot(self, fetched: FetchedDocument) -> str | None:
        result = await self.recorder.record_snapshot(
            service_id=fetched.service_id,
            terms_type=fetched.terms_type,
            document_id=fetched.document_id,
            content=fetched.content,
            mime_type=fetched.mime_type,
            fetch_date=fetched.fetch_date,
        )

        if result.id is None:
            self.emit(TrackingEvent.SNAPSHOT_NOT_CHANGED, fetched.service_id, fetched.terms_type, fetched.document_id)
            return None

        event = TrackingEvent.FIRST_SNAPSHOT_RECORDED if result.is_first_record else TrackingEvent.SNAPSHOT_RECORDED
        self.emit(event, fetched.service_id, fetched.terms_type, fetched.document_id, result.id)
        return result.id

    async def record_version(
        self,
        *,
        service_id: str,
        terms_type: str,
        content: str,
        snapshot_ids: Sequence[str],
        fetch_date: datetime,
        extract_only: bool = False,
    ) -> str | None:
        result = await self.recorder.record_version(
            service_id=service_id,
            terms_type=terms_type,
            content=content,
            snapshot_ids=snapshot_ids,
            fetch_date=fetch_date,
            is_extract_only=extract_only,
        )

        if result.id is None:
            self.emit(TrackingEvent.VERSION_NOT_CHANGED, service_id, terms_type)
            return None

        event = TrackingEvent.FIRST_VERSION_RECORDED if result.is_first_record else TrackingEvent.VERSION_RECORDED
        self.emit(event, service_id, terms_type, result.id)
        return result.id
