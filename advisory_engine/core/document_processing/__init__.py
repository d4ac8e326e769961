"""Document processing package: turns uploaded files into plain text.

Usage:
    from advisory_engine.core.document_processing import TextExtractor

    result = await TextExtractor().extract(file_bytes, "application/pdf", "deck.pdf")
"""

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
    ExtractionVariant,
    ExtractorRegistry,
)
from advisory_engine.core.document_processing.extractor import (
    TextExtractor,
    build_default_registry,
)
from advisory_engine.core.document_processing.legacy_office_extractor import (
    scrape_printable_text,
)

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "ExtractionVariant",
    "ExtractorRegistry",
    "TextExtractor",
    "build_default_registry",
    "scrape_printable_text",
]
