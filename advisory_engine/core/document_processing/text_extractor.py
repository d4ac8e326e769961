"""Plain text and CSV extractors.

Text passes through unchanged; CSV is prefixed with a literal label so the
analyzer knows it is looking at tabular data.
"""

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
)
from advisory_engine.core.errors import CorruptFileError

CSV_LABEL = "CSV Data:\n"


def decode_bytes(raw_bytes: bytes) -> tuple[str, str]:
    """
    Attempt to decode bytes using fallback chain.

    Returns:
        Tuple of (decoded_text, encoding_name)

    Raises:
        CorruptFileError: If no encoding works
    """
    # Check for UTF-8 BOM first
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        try:
            return raw_bytes.decode("utf-8-sig"), "utf-8-sig"
        except UnicodeDecodeError:
            pass

    for encoding in ("utf-8", "latin-1"):
        try:
            return raw_bytes.decode(encoding), encoding
        except UnicodeDecodeError:
            continue

    raise CorruptFileError("Unable to decode file as text", extractor="text")


class PlainTextExtractor(BaseExtractor):
    """Pass-through extractor for text-like formats."""

    name = "text"

    def get_supported_types(self) -> list[str]:
        return ["text/plain", "text/markdown", "application/json"]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        text, encoding = decode_bytes(file_bytes)
        return self.result(text, mime_type, metadata={"encoding": encoding})


class CSVExtractor(BaseExtractor):
    """CSV pass-through with a leading label."""

    name = "csv"

    def get_supported_types(self) -> list[str]:
        return ["text/csv"]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        text, encoding = decode_bytes(file_bytes)
        return self.result(f"{CSV_LABEL}{text}", mime_type, metadata={"encoding": encoding})
