"""Base extractor interface and MIME dispatch table for document processing.

Defines the contract every extractor implements and the registry that maps a
declared MIME type to exactly one extractor. Dispatch is purely on the declared
type; file contents are never sniffed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ExtractionVariant(Enum):
    """What kind of text an extraction produced."""

    TEXT = "text"
    """Real content extracted from the file."""

    PLACEHOLDER = "placeholder"
    """Metadata stand-in for a format we deliberately do not read (images, legacy office)."""

    UNSUPPORTED = "unsupported"
    """No extractor is registered for the declared MIME type."""

    ERROR = "error"
    """The extractor failed; the text describes the failure."""


@dataclass
class ExtractionResult:
    """Result of running a file through the Text Extractor."""

    text: str
    """Plain text handed to the analyzer and chunker."""

    variant: ExtractionVariant
    """Whether the text is real content or a placeholder."""

    mime_type: str
    """Declared MIME type used for dispatch."""

    extractor: str
    """Name of the extractor that produced the text."""

    page_count: int = 0
    """Pages, sheets or slides seen, where the format has them."""

    warnings: list[str] = field(default_factory=list)

    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def is_placeholder(self) -> bool:
        return self.variant is not ExtractionVariant.TEXT


class BaseExtractor(ABC):
    """Base class for document extractors.

    Each format family (PDF, DOCX, spreadsheets, ...) has its own extractor.
    Extractors may raise ``ExtractionError`` subclasses; the Text Extractor
    converts those into placeholder text.
    """

    name: str = "base"

    @abstractmethod
    def get_supported_types(self) -> list[str]:
        """Return list of supported MIME types."""

    @abstractmethod
    async def extract(
        self,
        file_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> ExtractionResult:
        """Extract plain text from a document.

        Args:
            file_bytes: Raw file content
            filename: Original filename (used in placeholders only)
            mime_type: Declared MIME type

        Returns:
            ExtractionResult with text and variant

        Raises:
            ExtractionError: If the file cannot be read
        """

    def result(
        self,
        text: str,
        mime_type: str,
        variant: ExtractionVariant = ExtractionVariant.TEXT,
        **kwargs: Any,
    ) -> ExtractionResult:
        """Build an ExtractionResult attributed to this extractor."""
        return ExtractionResult(
            text=text,
            variant=variant,
            mime_type=mime_type,
            extractor=self.name,
            **kwargs,
        )


class ExtractorRegistry:
    """MIME type -> extractor dispatch table."""

    def __init__(self) -> None:
        self._by_mime: dict[str, BaseExtractor] = {}

    def register(self, extractor: BaseExtractor) -> None:
        """Register an extractor for every MIME type it supports.

        Later registrations replace earlier ones for the same type.
        """
        for mime_type in extractor.get_supported_types():
            self._by_mime[mime_type.lower()] = extractor

    def get(self, mime_type: str | None) -> BaseExtractor | None:
        """Look up the extractor for a declared MIME type."""
        if not mime_type:
            return None
        # Drop parameters such as "; charset=utf-8"
        key = mime_type.split(";", 1)[0].strip().lower()
        return self._by_mime.get(key)

    def supported_types(self) -> list[str]:
        return sorted(self._by_mime)


def format_size_kb(size_bytes: int) -> int:
    """Round a byte count to whole kilobytes for placeholder text."""
    return round(size_bytes / 1024)
