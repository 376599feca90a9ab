"""Extraction of the version text from a snapshot.

An `ExtractDocumentError` (a `select` selector without match, an unsupported
mime type, an empty result) is not an inaccessible content: the archivist
treats it as any other unexpected error and aborts the whole batch. A
declaration whose selectors drifted from the page therefore stops tracking
until it is fixed.
"""
from __future__ import annotations

import io
import re

import anyio
from bs4 import BeautifulSoup
from pypdf import PdfReader

from termsarchive.errors import ExtractDocumentError
from termsarchive.services import SourceDocument

_whitespace_re = re.compile(r"[ \t]+")
_many_newlines_re = re.compile(r"\n{3,}")

_HTML_MIME_TYPES = {"text/html", "application/xhtml+xml"}
_PASSTHROUGH_MIME_TYPES = {"text/markdown", "text/plain"}


def _clean_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _whitespace_re.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _many_newlines_re.sub("\n\n", text)
    return text.strip()


def extract_html(content: str | bytes, document: SourceDocument) -> str:
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    for selector in document.remove:
        for tag in soup.select(selector):
            tag.decompose()

    if document.select:
        parts = [tag.get_text(separator="\n") for selector in document.select for tag in soup.select(selector)]
        if not parts:
            raise ExtractDocumentError(
                f"The provided selector {', '.join(document.select)!r} has no match in the web page at '{document.location}'"
            )
        text = "\n\n".join(parts)
    else:
        root = soup.body or soup
        text = root.get_text(separator="\n")
    return _clean_text(text)


def extract_pdf(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    pages = [_clean_text(page.extract_text() or "") for page in reader.pages]
    return _clean_text("\n\n".join(page for page in pages if page))


def _extract_sync(content: str | bytes, mime_type: str, document: SourceDocument) -> str:
    if mime_type in _HTML_MIME_TYPES:
        text = extract_html(content, document)
    elif mime_type == "application/pdf":
        if not isinstance(content, bytes):
            raise ExtractDocumentError(f"PDF content of '{document.location}' should be binary")
        text = extract_pdf(content)
    elif mime_type in _PASSTHROUGH_MIME_TYPES:
        text = _clean_text(content.decode("utf-8") if isinstance(content, bytes) else content)
    else:
        raise ExtractDocumentError(f"Unsupported mime type {mime_type!r} for '{document.location}'")

    if not text:
        raise ExtractDocumentError(f"No content could be extracted from '{document.location}'")
    return text


async def extract_content(content: str | bytes, mime_type: str, document: SourceDocument) -> str:
    """Turn a snapshot content into the text recorded as a version."""
    return await anyio.to_thread.run_sync(_extract_sync, content, mime_type, document)
