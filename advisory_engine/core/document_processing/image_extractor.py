"""Image extractor.

Images are accepted but not read: there is no OCR. The extractor returns a
metadata placeholder so the document still flows through analysis.
"""

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
    ExtractionVariant,
)

IMAGE_MIME_TYPES = [
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
]


def image_placeholder(filename: str, mime_type: str, size_bytes: int) -> str:
    return (
        f"Image file: {filename}\n"
        f"Type: {mime_type}\n"
        f"Size: {size_bytes} bytes\n\n"
        "Note: OCR text extraction not implemented. "
        "Please provide text documents for analysis."
    )


class ImageExtractor(BaseExtractor):
    """Placeholder-only extractor for images."""

    name = "image"

    def get_supported_types(self) -> list[str]:
        return IMAGE_MIME_TYPES

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        return self.result(
            image_placeholder(filename, mime_type, len(file_bytes)),
            mime_type,
            variant=ExtractionVariant.PLACEHOLDER,
            metadata={"size_bytes": len(file_bytes)},
        )
