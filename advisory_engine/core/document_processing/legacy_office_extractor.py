"""Best-effort extractors for presentation and legacy Word formats.

PPTX is read with python-pptx. Legacy binary PowerPoint (.ppt), and any PPTX
python-pptx cannot open, goes through ``scrape_printable_text``: a lossy scan
for printable ASCII runs in the raw bytes. That scan is a known heuristic, not
a parser:

- it cannot see UTF-16 text, which is how most .ppt files store slide text,
  so it mostly recovers embedded ASCII fragments;
- it returns fragments in byte order, which need not match slide order;
- it keeps any ASCII run that survives the artifact filter, including font
  names and property strings.

When the scan yields too little text the document gets a metadata placeholder,
as images do. Legacy .doc files are not scanned at all.
"""

import asyncio
import io
import re

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
    ExtractionVariant,
    format_size_kb,
)
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

# Runs shorter than this are binary noise
MIN_RUN_LENGTH = 4
# Below this many characters the scan is treated as having found nothing
MIN_USABLE_CHARS = 20
# Container and XML markers that show up as printable runs in office files
ARTIFACT_MARKERS = ("<?xml", "PK", "rels", ".xml", "Content_Types", "docProps")

_PRINTABLE_RUN = re.compile(rb"[\x20-\x7e]{%d,}" % MIN_RUN_LENGTH)
_NOT_TEXT = re.compile(r"[^\w\s.,!?-]")
_WHITESPACE = re.compile(r"\s+")

PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
PPT_MIME = "application/vnd.ms-powerpoint"
DOC_MIME = "application/msword"


def scrape_printable_text(raw: bytes) -> str | None:
    """Scan raw bytes for printable ASCII runs.

    Args:
        raw: Raw file bytes

    Returns:
        Cleaned text, or None when fewer than MIN_USABLE_CHARS survive
    """
    runs = []
    for match in _PRINTABLE_RUN.finditer(raw):
        run = match.group().decode("ascii")
        if any(marker in run for marker in ARTIFACT_MARKERS):
            continue
        runs.append(run)

    text = _WHITESPACE.sub(" ", " ".join(runs))
    text = _NOT_TEXT.sub("", text).strip()
    text = _WHITESPACE.sub(" ", text)

    return text if len(text) > MIN_USABLE_CHARS else None


def presentation_placeholder(filename: str, size_bytes: int, legacy: bool) -> str:
    kind = "legacy PowerPoint presentation" if legacy else "PowerPoint presentation"
    return (
        f"PowerPoint presentation: {filename}\n\n"
        f"This is a {kind} file ({format_size_kb(size_bytes)}KB). "
        "Its text could not be extracted; no slide parser or OCR is available for it."
    )


def doc_placeholder(filename: str, size_bytes: int) -> str:
    return (
        f"Word document: {filename} ({format_size_kb(size_bytes)}KB)\n\n"
        "DOC file processing not fully implemented. Please convert to DOCX or PDF."
    )


def _pptx_slide_text(file_bytes: bytes) -> tuple[str, int]:
    """Read slide text with python-pptx, slides in order."""
    from pptx import Presentation

    prs = Presentation(io.BytesIO(file_bytes))
    slides: list[str] = []
    for slide in prs.slides:
        parts = []
        for shape in slide.shapes:
            if shape.has_text_frame:
                for paragraph in shape.text_frame.paragraphs:
                    text = paragraph.text.strip()
                    if text:
                        parts.append(text)
        if parts:
            slides.append("\n".join(parts))
    return "\n\n".join(slides), len(prs.slides)


class PresentationExtractor(BaseExtractor):
    """PPTX via python-pptx, PPT via the printable-ASCII scan."""

    name = "presentation"

    def get_supported_types(self) -> list[str]:
        return [PPTX_MIME, PPT_MIME]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        legacy = mime_type == PPT_MIME
        warnings: list[str] = []

        if not legacy:
            try:
                text, slide_count = await asyncio.to_thread(_pptx_slide_text, file_bytes)
                if text.strip():
                    return self.result(text, mime_type, page_count=slide_count)
                warnings.append("Presentation has no slide text")
            except Exception as e:
                logger.warning(f"python-pptx could not read {filename}: {e}")
                warnings.append(f"Slide parsing failed: {e}")

        scraped = scrape_printable_text(file_bytes)
        if scraped:
            return self.result(
                scraped,
                mime_type,
                warnings=warnings + ["Text recovered by raw byte scan"],
                metadata={"method": "ascii_scan"},
            )

        return self.result(
            presentation_placeholder(filename, len(file_bytes), legacy),
            mime_type,
            variant=ExtractionVariant.PLACEHOLDER,
            warnings=warnings,
        )


class LegacyDocExtractor(BaseExtractor):
    """Binary Word (.doc) files get a conversion placeholder."""

    name = "doc"

    def get_supported_types(self) -> list[str]:
        return [DOC_MIME]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        return self.result(
            doc_placeholder(filename, len(file_bytes)),
            mime_type,
            variant=ExtractionVariant.PLACEHOLDER,
        )
