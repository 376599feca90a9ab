"""Logging listener for archivist events."""
from __future__ import annotations

import logging

from termsarchive.errors import InaccessibleContentError
from termsarchive.services import Terms

logger = logging.getLogger("termsarchive.tracking")


def _label(service_id: str, terms_type: str, document_id: str | None = None) -> str:
    return f"{service_id} {terms_type}" + (f" #{document_id}" if document_id else "")


class TrackingLogger:
    def __init__(self, log: logging.Logger = logger) -> None:
        self.log = log

    def on_tracking_started(self, number_of_services: int, number_of_terms: int, extract_only: bool) -> None:
        action = "Extracting versions" if extract_only else "Tracking changes"
        self.log.info("%s of %d terms from %d services…", action, number_of_terms, number_of_services)

    def on_tracking_completed(self, number_of_services: int, number_of_terms: int, extract_only: bool) -> None:
        action = "Extracted versions" if extract_only else "Tracked changes"
        self.log.info("%s of %d terms from %d services", action, number_of_terms, number_of_services)

    def on_first_snapshot_recorded(self, service_id: str, terms_type: str, document_id: str | None, snapshot_id: str) -> None:
        self.log.info("%s: recorded first snapshot with id %s", _label(service_id, terms_type, document_id), snapshot_id)

    def on_snapshot_recorded(self, service_id: str, terms_type: str, document_id: str | None, snapshot_id: str) -> None:
        self.log.info("%s: recorded snapshot with id %s", _label(service_id, terms_type, document_id), snapshot_id)

    def on_snapshot_not_changed(self, service_id: str, terms_type: str, document_id: str | None) -> None:
        self.log.info("%s: no changes, did not record snapshot", _label(service_id, terms_type, document_id))

    def on_first_version_recorded(self, service_id: str, terms_type: str, version_id: str) -> None:
        self.log.info("%s: recorded first version with id %s", _label(service_id, terms_type), version_id)

    def on_version_recorded(self, service_id: str, terms_type: str, version_id: str) -> None:
        self.log.info("%s: recorded version with id %s", _label(service_id, terms_type), version_id)

    def on_version_not_changed(self, service_id: str, terms_type: str) -> None:
        self.log.info("%s: no changes after filtering, did not record version", _label(service_id, terms_type))

    def on_inaccessible_content(
        self,
        error: InaccessibleContentError,
        service_id: str,
        terms_type: str,
        terms: Terms,
    ) -> None:
        self.log.warning("%s: %s", _label(service_id, terms_type), error)

    def on_error(self, error: BaseException, service_id: str, terms_type: str) -> None:
        self.log.error("%s: %s", _label(service_id, terms_type), error, exc_info=error)
