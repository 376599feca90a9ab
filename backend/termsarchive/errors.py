from __future__ import annotations


class RecordValidationError(ValueError):
    """Raised when a record is missing a field required to persist it."""


class StoreIntegrityError(Exception):
    """Raised when the stored history does not follow the one-file-per-commit layout."""


class GitCommandError(Exception):
    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"'{' '.join(command)}' exited with {returncode}: {stderr.strip()}")


class FetchDocumentError(Exception):
    """The document content could not be retrieved from its location."""


class FetchTransportError(FetchDocumentError):
    """Network level failure (e.g. name resolution) unrelated to the document itself."""


class ExtractDocumentError(Exception):
    pass


class InaccessibleContentError(Exception):
    def __init__(self, messages: list[str]) -> None:
        self.messages = list(messages)
        super().__init__(
            "The documents cannot be accessed or their contents can not be selected:\n"
            + "\n".join(f"  - {message}" for message in self.messages)
        )


class FatalTrackingError(Exception):
    """Tracking was aborted; storage has been finalized before this is raised."""

    def __init__(self, cause: BaseException, service_id: str | None = None, terms_type: str | None = None) -> None:
        self.cause = cause
        self.service_id = service_id
        self.terms_type = terms_type
        where = f" while tracking {service_id} {terms_type}" if service_id else ""
        super().__init__(f"Tracking aborted{where}: {cause}")
