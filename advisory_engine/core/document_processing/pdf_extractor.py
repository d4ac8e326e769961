"""PDF document extractor.

Uses PyMuPDF (fitz) for native text extraction. Pages are walked in order and
their text joined with a blank line. Scanned pages without a text layer come
out empty; there is no OCR step. Parsing runs in a worker thread.
"""

import asyncio
import io

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
)
from advisory_engine.core.errors import CorruptFileError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

PAGE_SEPARATOR = "\n\n"

# Lazy import to avoid loading heavy libraries at module load
fitz = None


def _get_fitz():
    """Lazy load PyMuPDF."""
    global fitz
    if fitz is None:
        import fitz as _fitz

        fitz = _fitz
    return fitz


def read_pdf_pages(file_bytes: bytes) -> tuple[list[str], list[str], int]:
    """Blocking page walk: (page texts, warnings, page count).

    Raises:
        CorruptFileError: If PyMuPDF cannot open or read the file
    """
    fitz_lib = _get_fitz()

    try:
        doc = fitz_lib.open(stream=io.BytesIO(file_bytes), filetype="pdf")
    except Exception as e:
        raise CorruptFileError(f"Failed to open PDF: {e}", extractor="pdf") from e

    warnings: list[str] = []
    page_texts: list[str] = []
    try:
        page_count = len(doc)
        for page_num in range(page_count):
            text = doc[page_num].get_text("text").strip()
            if text:
                page_texts.append(text)
            else:
                warnings.append(f"Page {page_num + 1} has no text layer")
    except Exception as e:
        raise CorruptFileError(f"Failed to read PDF pages: {e}", extractor="pdf") from e
    finally:
        doc.close()

    return page_texts, warnings, page_count


class PDFExtractor(BaseExtractor):
    """PDF extractor backed by PyMuPDF."""

    name = "pdf"

    def get_supported_types(self) -> list[str]:
        return ["application/pdf"]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        """Extract text from every page of a PDF.

        Args:
            file_bytes: Raw PDF content
            filename: Original filename
            mime_type: Declared MIME type

        Returns:
            ExtractionResult with pages joined by a blank line

        Raises:
            CorruptFileError: If PyMuPDF cannot open or read the file
        """
        page_texts, warnings, page_count = await asyncio.to_thread(read_pdf_pages, file_bytes)

        logger.info(
            f"Extracted PDF {filename}: {page_count} pages, "
            f"{len(page_texts)} with text"
        )

        return self.result(
            PAGE_SEPARATOR.join(page_texts),
            mime_type,
            page_count=page_count,
            warnings=warnings,
        )
