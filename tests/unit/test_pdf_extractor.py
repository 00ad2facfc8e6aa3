from unittest.mock import MagicMock, patch

import pytest

from py_load_metaslim.errors import DocumentParseError
from py_load_metaslim.extractor.pdf import PdfTextExtractor

pytestmark = pytest.mark.unit


def fake_pdf(page_texts):
    """Builds a pdfplumber-like context manager with the given page texts."""
    pdf = MagicMock()
    pdf.pages = []
    for text in page_texts:
        page = MagicMock()
        page.extract_text.return_value = text
        pdf.pages.append(page)
    opened = MagicMock()
    opened.__enter__.return_value = pdf
    opened.__exit__.return_value = False
    return opened


@patch("py_load_metaslim.extractor.pdf.pdfplumber")
def test_extract_text_marks_pages(mock_pdfplumber):
    mock_pdfplumber.open.return_value = fake_pdf(["first page", None])

    text = PdfTextExtractor().extract_text("trial.pdf")

    assert text == "\n--- Page 1 ---\nfirst page\n--- Page 2 ---\n"


@patch("py_load_metaslim.extractor.pdf.pdfplumber")
def test_extract_text_caps_page_count(mock_pdfplumber):
    pages = [f"page {i}" for i in range(1, 21)]
    mock_pdfplumber.open.return_value = fake_pdf(pages)

    text = PdfTextExtractor(max_pages=15).extract_text("long.pdf")

    assert "--- Page 15 ---" in text
    assert "--- Page 16 ---" not in text
    assert "page 16" not in text


@patch("py_load_metaslim.extractor.pdf.pdfplumber")
def test_parse_failure_raises_without_partial_text(mock_pdfplumber):
    mock_pdfplumber.open.side_effect = ValueError("No /Root object! - Is this really a PDF?")

    with pytest.raises(DocumentParseError, match="broken.pdf"):
        PdfTextExtractor().extract_text("broken.pdf")


@patch("py_load_metaslim.extractor.pdf.pdfplumber")
def test_page_failure_raises(mock_pdfplumber):
    opened = fake_pdf(["ok"])
    opened.__enter__.return_value.pages[0].extract_text.side_effect = RuntimeError("bad stream")
    mock_pdfplumber.open.return_value = opened

    with pytest.raises(DocumentParseError, match="bad stream"):
        PdfTextExtractor().extract_text("broken.pdf")


@pytest.mark.asyncio
@patch("py_load_metaslim.extractor.pdf.pdfplumber")
async def test_aextract_text_runs_in_thread(mock_pdfplumber):
    mock_pdfplumber.open.return_value = fake_pdf(["async page"])

    text = await PdfTextExtractor().aextract_text("trial.pdf")

    assert "async page" in text
