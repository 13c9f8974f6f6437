"""CSV and XLSX parsing for spreadsheet imports."""

import csv
import io
import zipfile
from dataclasses import dataclass, field
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import SpreadsheetParseError


@dataclass
class ParsedSheet:
    """Header row plus data rows keyed by header, in file order."""

    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)


def normalize_cell(value: Any) -> str:
    """Trim a cell value to a string; missing values become ''."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_row(row: dict[Any, Any]) -> dict[str, str]:
    """Trim keys and values of a raw row, dropping blank or missing keys."""
    normalized: dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            continue
        trimmed_key = str(key).strip()
        if not trimmed_key:
            continue
        normalized[trimmed_key] = normalize_cell(value)
    return normalized


def _decode(file_content: bytes) -> str:
    """Decode CSV bytes as UTF-8 (BOM tolerant), falling back to Latin-1."""
    try:
        return file_content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return file_content.decode("latin-1")


def parse_csv(file_content: bytes) -> ParsedSheet:
    """Parse CSV file content into headers and rows.

    Blank rows are kept so that row numbers stay aligned with the file;
    the executor counts them as skipped.

    Args:
        file_content: Raw CSV file bytes.

    Returns:
        ParsedSheet with trimmed headers and normalized rows.

    Raises:
        SpreadsheetParseError: If the CSV is malformed or has no headers.
    """
    text = _decode(file_content)
    try:
        reader = csv.DictReader(io.StringIO(text, newline=""))
        fieldnames = reader.fieldnames
        if not fieldnames:
            raise SpreadsheetParseError("The uploaded file does not contain a header row.")

        headers = [h.strip() for h in fieldnames if h and h.strip()]
        if not headers:
            raise SpreadsheetParseError("The uploaded file does not contain a header row.")

        rows = [normalize_row(row) for row in reader]
    except csv.Error as e:
        raise SpreadsheetParseError(f"Failed to parse CSV file: {e}") from e

    return ParsedSheet(headers=headers, rows=rows)


def parse_xlsx(file_content: bytes) -> ParsedSheet:
    """Parse XLSX file content into headers and rows (first sheet only).

    Uses openpyxl read_only mode and iterates rows lazily to avoid loading
    the entire sheet into memory at once.

    Args:
        file_content: Raw XLSX file bytes.

    Returns:
        ParsedSheet with trimmed headers and normalized rows.

    Raises:
        SpreadsheetParseError: If the workbook is unreadable or has no headers.
    """
    try:
        wb = load_workbook(filename=io.BytesIO(file_content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise SpreadsheetParseError(
            "Failed to parse file. Please ensure it is a valid CSV or Excel file."
        ) from e

    try:
        ws = wb.active
        if ws is None:
            raise SpreadsheetParseError("The uploaded workbook has no worksheets.")

        row_iter = ws.iter_rows(values_only=True)
        try:
            raw_headers = next(row_iter)
        except StopIteration:
            raise SpreadsheetParseError("The uploaded file does not contain a header row.")

        # Keep column positions so gaps in the header row don't shift values
        columns = [
            (index, normalize_cell(h))
            for index, h in enumerate(raw_headers)
            if normalize_cell(h)
        ]
        if not columns:
            raise SpreadsheetParseError("The uploaded file does not contain a header row.")

        rows: list[dict[str, str]] = []
        for row_values in row_iter:
            rows.append(
                {
                    header: normalize_cell(row_values[index]) if index < len(row_values) else ""
                    for index, header in columns
                }
            )
    finally:
        wb.close()

    # read_only sheets report formatted-but-empty trailing rows
    while rows and not any(rows[-1].values()):
        rows.pop()

    return ParsedSheet(headers=[header for _, header in columns], rows=rows)


def parse_spreadsheet(file_content: bytes, file_type: str) -> ParsedSheet:
    """Parse an uploaded spreadsheet according to its file type."""
    if file_type == "xlsx":
        return parse_xlsx(file_content)
    if file_type == "csv":
        return parse_csv(file_content)
    raise SpreadsheetParseError(f"Unsupported file type '{file_type}'")
