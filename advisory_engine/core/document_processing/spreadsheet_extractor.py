"""Excel extractor (XLSX and legacy XLS) using pandas.

Worksheets are read in file order. Each sheet starts with a ``Sheet: <name>``
header line, each row becomes its comma-joined cell values, and sheets are
separated by a blank line. The workbook is read in a worker thread.
"""

import asyncio
import io
import math
from typing import Any

import pandas as pd

from advisory_engine.core.document_processing.base import (
    BaseExtractor,
    ExtractionResult,
)
from advisory_engine.core.errors import CorruptFileError
from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)


def _format_cell(value: Any) -> str:
    """Render a cell value the way a spreadsheet user would read it."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    if value is pd.NaT:
        return ""
    return str(value)


def rows_to_text(sheet_name: str, rows: list[list[Any]]) -> str:
    """Render one worksheet as header line plus comma-joined rows."""
    lines = [f"Sheet: {sheet_name}"]
    for row in rows:
        cells = [_format_cell(v) for v in row]
        if any(cells):
            lines.append(",".join(cells))
    return "\n".join(lines)


def read_workbook(file_bytes: bytes, filename: str) -> tuple[list[str], list[str], list[str]]:
    """Blocking workbook read: (sheet texts, warnings, sheet names).

    Raises:
        CorruptFileError: If the workbook cannot be opened
    """
    try:
        excel_file = pd.ExcelFile(io.BytesIO(file_bytes))
    except Exception as e:
        raise CorruptFileError(f"Failed to open spreadsheet: {e}", extractor="spreadsheet") from e

    sheet_texts: list[str] = []
    warnings: list[str] = []

    for sheet_name in excel_file.sheet_names:
        try:
            df = excel_file.parse(sheet_name, header=None)
        except Exception as e:
            warnings.append(f"Sheet {sheet_name} could not be read: {e}")
            logger.warning(f"Error reading sheet {sheet_name} of {filename}: {e}")
            continue
        sheet_texts.append(rows_to_text(str(sheet_name), df.values.tolist()))

    return sheet_texts, warnings, [str(s) for s in excel_file.sheet_names]


class SpreadsheetExtractor(BaseExtractor):
    """XLSX/XLS extractor. pandas picks openpyxl or xlrd per format."""

    name = "spreadsheet"

    def get_supported_types(self) -> list[str]:
        return [
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "application/vnd.ms-excel",
        ]

    async def extract(self, file_bytes: bytes, filename: str, mime_type: str) -> ExtractionResult:
        sheet_texts, warnings, sheet_names = await asyncio.to_thread(
            read_workbook, file_bytes, filename
        )

        logger.info(
            f"Extracted spreadsheet {filename}: {len(sheet_texts)} of "
            f"{len(sheet_names)} sheets"
        )

        return self.result(
            "\n\n".join(sheet_texts).strip(),
            mime_type,
            page_count=len(sheet_names),
            warnings=warnings,
            metadata={"sheet_names": sheet_names},
        )
