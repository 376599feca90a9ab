"""Tests for snapshot to version content extraction."""
from __future__ import annotations

import pytest

from termsarchive.errors import ExtractDocumentError
from termsarchive.extract import extract_content, extract_html
from tests.factories import make_document

PAGE = """
<html>
  <head><title>Example</title><style>p { color: red; }</style></head>
  <body>
    <nav>Home | About</nav>
    <main>
      <h1>Terms of Service</h1>
      <p>You agree   to these terms.</p>
      <div class="ads">Buy now!</div>
      <script>track();</script>
    </main>
  </body>
</html>
"""


class TestExtractHtml:
    def test_select_and_remove(self):
        document = make_document(select=["main"], remove=[".ads"])

        text = extract_html(PAGE, document)

        assert text == "Terms of Service\n\nYou agree to these terms."

    def test_whole_body_without_select(self):
        text = extract_html(PAGE, make_document())

        assert text.startswith("Home | About")
        assert "Buy now!" in text
        assert "track()" not in text
        assert "color: red" not in text

    def test_selector_without_match_is_an_error(self):
        document = make_document(select=["#does-not-exist"])

        with pytest.raises(ExtractDocumentError, match="has no match"):
            extract_html(PAGE, document)


@pytest.mark.asyncio
async def test_markdown_passes_through_cleaned():
    text = await extract_content("# Title\n\n\n\nText  ", "text/markdown", make_document())

    assert text == "# Title\n\nText"


@pytest.mark.asyncio
async def test_html_bytes_are_accepted():
    text = await extract_content(PAGE.encode("utf-8"), "text/html", make_document(select=["h1"]))

    assert text == "Terms of Service"


@pytest.mark.asyncio
async def test_unsupported_mime_type():
    with pytest.raises(ExtractDocumentError, match="Unsupported mime type"):
        await extract_content(b"\x00\x01", "image/png", make_document())


@pytest.mark.asyncio
async def test_pdf_must_be_binary():
    with pytest.raises(ExtractDocumentError, match="binary"):
        await extract_content("%PDF-1.4", "application/pdf", make_document())


@pytest.mark.asyncio
async def test_empty_extraction_is_an_error():
    with pytest.raises(ExtractDocumentError, match="No content"):
        await extract_content("<html><body><script>x()</script></body></html>", "text/html", make_document())
