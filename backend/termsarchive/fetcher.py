from __future__ import annotations

import logging
import socket
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from termsarchive.errors import FetchDocumentError, FetchTransportError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "TermsArchive/1.0 (terms and conditions tracker)"

_TEXT_MIME_TYPES = {"application/json", "application/xhtml+xml", "application/xml"}


@dataclass(frozen=True)
class FetchResult:
    content: str | bytes
    mime_type: str


class HttpFetcher:
    """Fetches documents over plain HTTP with one client shared by a whole batch.

    Client scripts are not executed: documents declared with
    ``execute_client_scripts`` are fetched as served.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def launch(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=self._timeout_s,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent},
            transport=self._transport,
        )

    async def stop(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.aclose()

    async def fetch(
        self,
        url: str,
        *,
        execute_client_scripts: bool = False,
        css_selectors: Sequence[str] = (),
    ) -> FetchResult:
        if self._client is None:
            raise RuntimeError("The fetcher must be launched before fetching documents")
        if execute_client_scripts:
            logger.debug("Client scripts are not executed for %s", url)

        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchDocumentError(
                f"Received HTTP code {e.response.status_code} when trying to fetch '{url}'"
            ) from e
        except httpx.TimeoutException as e:
            raise FetchDocumentError(f"Timed out after {self._timeout_s}s when trying to fetch '{url}'") from e
        except httpx.RequestError as e:
            if _is_temporary_name_resolution_failure(e):
                raise FetchTransportError(f"EAI_AGAIN: name resolution failed when trying to fetch '{url}': {e}") from e
            raise FetchDocumentError(f"Could not fetch '{url}': {e}") from e

        if not response.content:
            raise FetchDocumentError(f"Received an empty content when trying to fetch '{url}'")

        mime_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if not mime_type:
            raise FetchDocumentError(f"No content type received when trying to fetch '{url}'")

        if mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES:
            return FetchResult(content=response.text, mime_type=mime_type)
        return FetchResult(content=response.content, mime_type=mime_type)


def _is_temporary_name_resolution_failure(error: BaseException) -> bool:
    # The gaierror is usually a few levels down the httpx/httpcore exception chain
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, socket.gaierror) and current.errno == socket.EAI_AGAIN:
            return True
        if "Temporary failure in name resolution" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False
