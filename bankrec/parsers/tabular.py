"""Read statement files (CSV or Excel workbooks) into raw rows of text."""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List

import pandas as pd

from bankrec.exceptions import FormatError, UnsupportedFormatError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "xlsx", "xls")

# Encodings tried in order for delimited text
CSV_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

MIN_POPULATED_CELLS = 3


@dataclass
class RawTable:
    """Header row plus data rows, every cell as trimmed text."""
    header: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    discarded: int = 0


def normalize_format(file_format: str) -> str:
    """
    Validate a declared statement format.

    Raises:
        UnsupportedFormatError: If the format is not csv, xlsx or xls.
    """
    normalized = str(file_format or "").strip().lower().lstrip(".")
    if normalized not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(file_format)
    return normalized


def read_table(data: bytes, file_format: str) -> RawTable:
    """
    Decode statement bytes into a header row and data rows.

    Args:
        data: Raw file content.
        file_format: Declared format, one of csv, xlsx or xls.

    Returns:
        RawTable with malformed rows (fewer than three populated cells)
        already removed.

    Raises:
        UnsupportedFormatError: Before reading anything, for other formats.
        FormatError: If the content cannot be decoded as the declared format.
    """
    file_format = normalize_format(file_format)

    if file_format == "csv":
        grid = _read_csv(data)
    else:
        grid = _read_workbook(data, file_format)

    if not grid:
        return RawTable()

    header, body = grid[0], grid[1:]
    rows = [row for row in body if _populated(row) >= MIN_POPULATED_CELLS]
    table = RawTable(header=header, rows=rows, discarded=len(body) - len(rows))

    logger.debug(
        "Read %s statement: %d columns, %d rows, %d discarded",
        file_format, len(header), len(rows), table.discarded,
    )
    return table


def _read_csv(data: bytes) -> List[List[str]]:
    """Split delimited text, honouring quoted fields and doubled quotes."""
    for encoding in CSV_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        return _split_csv(text)

    raise FormatError("csv", "could not decode file with any supported encoding")


def _split_csv(text: str) -> List[List[str]]:
    """
    Parse decoded CSV text into a grid as wide as its header row.

    Data rows with more fields than the header (a trailing delimiter is the
    usual cause) are clipped to the header width instead of being dropped.
    """
    options = dict(
        header=None,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        skip_blank_lines=True,
        engine="python",
    )
    try:
        width = len(pd.read_csv(io.StringIO(text), nrows=1, **options).columns)
        df = pd.read_csv(
            io.StringIO(text),
            on_bad_lines=lambda fields: fields[:width],
            **options,
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, csv.Error, ValueError) as e:
        raise FormatError("csv", str(e)) from e
    return _frame_to_grid(df)


def _read_workbook(data: bytes, file_format: str) -> List[List[str]]:
    """Read the first sheet of a workbook without header inference."""
    try:
        df = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object)
    except ImportError:
        raise
    except Exception as e:
        raise FormatError(file_format, str(e)) from e
    return _frame_to_grid(df)


def _frame_to_grid(df: pd.DataFrame) -> List[List[str]]:
    return [[_cell_to_text(value) for value in row] for row in df.itertuples(index=False, name=None)]


def _cell_to_text(value: Any) -> str:
    """Render one cell; workbook dates become ISO ``YYYY-MM-DD`` strings."""
    if value is None:
        return ""
    if isinstance(value, (pd.Timestamp, datetime)):
        return "" if pd.isna(value) else value.strftime("%Y-%m-%d")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _populated(row: List[str]) -> int:
    return sum(1 for cell in row if cell)
