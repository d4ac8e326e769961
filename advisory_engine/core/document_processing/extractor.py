"""Text Extractor: the single entry point from uploaded bytes to plain text.

``TextExtractor.extract`` never raises. Unsupported types and extractor
failures come back as placeholder text with a non-TEXT variant; the pipeline
decides whether that text is enough to analyze.
"""

import time

from advisory_engine.core.document_processing.base import (
    ExtractionResult,
    ExtractionVariant,
    ExtractorRegistry,
)
from advisory_engine.core.document_processing.docx_extractor import DOCXExtractor
from advisory_engine.core.document_processing.image_extractor import ImageExtractor
from advisory_engine.core.document_processing.legacy_office_extractor import (
    LegacyDocExtractor,
    PresentationExtractor,
)
from advisory_engine.core.document_processing.pdf_extractor import PDFExtractor
from advisory_engine.core.document_processing.spreadsheet_extractor import SpreadsheetExtractor
from advisory_engine.core.document_processing.text_extractor import (
    CSVExtractor,
    PlainTextExtractor,
)
from advisory_engine.core.errors import ExtractionError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

# Short labels used in error placeholders ("Error processing PDF: ...")
_FORMAT_LABELS = {
    "pdf": "PDF",
    "docx": "DOCX",
    "spreadsheet": "XLSX",
    "presentation": "PowerPoint",
    "text": "text",
    "csv": "CSV",
}


def build_default_registry() -> ExtractorRegistry:
    """Registry with every built-in extractor."""
    registry = ExtractorRegistry()
    for extractor in (
        PDFExtractor(),
        DOCXExtractor(),
        LegacyDocExtractor(),
        SpreadsheetExtractor(),
        PresentationExtractor(),
        PlainTextExtractor(),
        CSVExtractor(),
        ImageExtractor(),
    ):
        registry.register(extractor)
    return registry


def unsupported_placeholder(filename: str, mime_type: str, size_bytes: int) -> str:
    return (
        f"Unsupported file type: {mime_type or 'unknown'}\n"
        f"File: {filename} ({size_bytes} bytes)\n\n"
        "No text could be extracted from this file."
    )


class TextExtractor:
    """Dispatches uploaded files to extractors by declared MIME type."""

    def __init__(self, registry: ExtractorRegistry | None = None):
        self.registry = registry or build_default_registry()

    def supports(self, mime_type: str | None) -> bool:
        return self.registry.get(mime_type) is not None

    async def extract(
        self,
        file_bytes: bytes,
        mime_type: str,
        filename: str = "document",
    ) -> ExtractionResult:
        """Convert an uploaded file into plain text.

        Args:
            file_bytes: Raw file content
            mime_type: Declared MIME type (drives dispatch)
            filename: Original filename for placeholders and logs

        Returns:
            ExtractionResult; never raises
        """
        extractor = self.registry.get(mime_type)
        if extractor is None:
            logger.warning(f"No extractor for {mime_type!r} ({filename})")
            return ExtractionResult(
                text=unsupported_placeholder(filename, mime_type, len(file_bytes)),
                variant=ExtractionVariant.UNSUPPORTED,
                mime_type=mime_type,
                extractor="none",
            )

        start = time.time()
        try:
            result = await extractor.extract(file_bytes, filename, mime_type)
        except ExtractionError as e:
            logger.error(f"{extractor.name} extraction failed for {filename}: {e}")
            return self._error_result(extractor.name, mime_type, e)
        except Exception as e:
            logger.exception(f"Unexpected {extractor.name} extractor failure for {filename}")
            return self._error_result(extractor.name, mime_type, e)

        logger.info(
            f"Extracted {result.word_count} words from {filename} "
            f"via {result.extractor} ({result.variant.value}) in {time.time() - start:.2f}s"
        )
        return result

    @staticmethod
    def _error_result(name: str, mime_type: str, error: Exception) -> ExtractionResult:
        label = _FORMAT_LABELS.get(name, name)
        return ExtractionResult(
            text=f"Error processing {label}: {error}",
            variant=ExtractionVariant.ERROR,
            mime_type=mime_type,
            extractor=name,
            warnings=[str(error)],
        )
