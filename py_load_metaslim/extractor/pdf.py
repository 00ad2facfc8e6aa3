import asyncio
import logging
from pathlib import Path

import pdfplumber

from py_load_metaslim.errors import DocumentParseError

logger = logging.getLogger(__name__)

PAGE_MARKER = "\n--- Page {number} ---\n"


class PdfTextExtractor:
    """Converts a PDF document into page-delimited plain text."""

    def __init__(self, max_pages: int = 15):
        """Initializes the extractor.

        Args:
            max_pages: Only the first `max_pages` pages of a document are read.
        """
        self.max_pages = max_pages

    def extract_text(self, path: str | Path) -> str:
        """Reads the text of the first pages of `path`.

        Each page is prefixed with a ``--- Page N ---`` marker. Any failure to
        open or parse the document raises DocumentParseError; no partial text
        is ever returned.
        """
        path = Path(path)
        try:
            with pdfplumber.open(path) as pdf:
                parts = []
                for number, page in enumerate(pdf.pages[: self.max_pages], start=1):
                    parts.append(PAGE_MARKER.format(number=number))
                    parts.append(page.extract_text() or "")
        except Exception as e:
            raise DocumentParseError(f"Could not parse PDF {path.name}: {e}") from e
        logger.debug("Extracted %d page(s) from %s", len(parts) // 2, path.name)
        return "".join(parts)

    async def aextract_text(self, path: str | Path) -> str:
        """Runs extract_text in a worker thread so the event loop stays free."""
        return await asyncio.to_thread(self.extract_text, path)
