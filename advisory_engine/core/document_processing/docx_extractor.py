"""DOCX document extractor using python-docx.

Produces raw text only: paragraph text in document order followed by table
rows, with all formatting discarded.
"""

import asyncio
from io import BytesIO

from docx import Document

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
)
from advisory_engine.core.errors import CorruptFileError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)


def read_docx_blocks(file_bytes: bytes) -> list[str]:
    """Blocking parse: paragraph texts, then table rows joined with `` | ``."""
    try:
        doc = Document(BytesIO(file_bytes))
    except Exception as e:
        raise CorruptFileError(f"Failed to open DOCX: {e}", extractor="docx") from e

    parts = [para.text for para in doc.paragraphs if para.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append(" | ".join(cells))
    return parts


class DOCXExtractor(BaseExtractor):
    """Word (OOXML) extractor."""

    name = "docx"

    def get_supported_types(self) -> list[str]:
        return ["application/vnd.openxmlformats-officedocument.wordprocessingml.document"]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        parts = await asyncio.to_thread(read_docx_blocks, file_bytes)

        logger.info(f"Extracted {len(parts)} text blocks from {filename}")

        return self.result("\n".join(parts), mime_type)
