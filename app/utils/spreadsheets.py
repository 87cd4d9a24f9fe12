"""
Commission Tracker - Spreadsheet Reading

Reads uploaded CSV and XLSX files into header-keyed rows. Only the first
worksheet of a workbook is used and the first row is always the header.
"""

import csv
import io
import logging
import re
import unicodedata
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.utils.error_handling import BulkImportException

logger = logging.getLogger(__name__)


XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MIMES = {"text/csv", "application/csv", "application/vnd.ms-excel"}

# Day zero of the Excel 1900 date system, adjusted for the fictitious 1900-02-29
EXCEL_EPOCH = date(1899, 12, 30)

DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d")


@dataclass
class SheetRow:
    """One data row of an uploaded sheet; ``row_number`` is 1-based with the header as row 1."""
    row_number: int
    values: Dict[str, Any] = field(default_factory=dict)


def detect_file_kind(filename: Optional[str], content_type: Optional[str]) -> str:
    """Return "csv" or "xlsx", or raise when the upload is neither."""
    name = (filename or "").lower()
    mime = (content_type or "").split(";")[0].strip().lower()

    if name.endswith(".xlsx") or mime == XLSX_MIME:
        return "xlsx"
    if name.endswith(".csv") or mime in CSV_MIMES:
        return "csv"
    raise BulkImportException("Only CSV or XLSX files are allowed.")


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def _read_csv(content: bytes) -> List[SheetRow]:
    text = _decode(content)
    try:
        dialect = csv.Sniffer().sniff(text[:2048], delimiters=",;\t")
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    rows = []
    for row_number, row in enumerate(reader, start=2):
        values = {key: value for key, value in row.items() if key is not None}
        rows.append(SheetRow(row_number=row_number, values=values))
    return rows


def _read_xlsx(content: bytes) -> List[SheetRow]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        logger.warning(f"Unreadable workbook upload: {exc}")
        raise BulkImportException("The file could not be read. Check that it is a valid XLSX workbook.")

    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        iterator = sheet.iter_rows(values_only=True)
        header_row = next(iterator, None)
        if header_row is None:
            return []
        headers = [str(cell).strip() if cell is not None else "" for cell in header_row]

        rows = []
        for row_number, cells in enumerate(iterator, start=2):
            values = {}
            for header, cell in zip(headers, cells):
                if header:
                    values[header] = cell
            rows.append(SheetRow(row_number=row_number, values=values))
        return rows
    finally:
        workbook.close()


def read_spreadsheet(
    content: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> List[SheetRow]:
    """Parse an uploaded CSV or XLSX file into rows keyed by the raw header text."""
    kind = detect_file_kind(filename, content_type)
    if kind == "xlsx":
        return _read_xlsx(content)
    try:
        return _read_csv(content)
    except csv.Error as exc:
        raise BulkImportException(f"The file could not be read: {exc}")


# ===========================================
# CELL HELPERS
# ===========================================

def normalize_header(header: Any) -> str:
    """Lower-case, strip accents and drop every non-alphanumeric character."""
    text = unicodedata.normalize("NFD", str(header or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]", "", text.lower())


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def cell_text(value: Any) -> Optional[str]:
    """Cell value as trimmed text, or None when blank."""
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def map_columns(values: Mapping[str, Any], aliases: Mapping[str, str]) -> Dict[str, Any]:
    """
    Translate a raw row into canonical field names.

    Unknown headers are ignored; when two headers map to the same field the
    first non-blank value wins.
    """
    mapped: Dict[str, Any] = {}
    for header, value in values.items():
        target = aliases.get(normalize_header(header))
        if not target:
            continue
        if target not in mapped or is_blank(mapped[target]):
            mapped[target] = value
    return mapped


def all_blank(values: Iterable[Any]) -> bool:
    return all(is_blank(value) for value in values)


def excel_serial_to_date(serial: Any) -> date:
    """Date for an Excel serial day number; ValueError when it falls outside the calendar."""
    try:
        return EXCEL_EPOCH + timedelta(days=int(serial))
    except (OverflowError, ValueError):
        raise ValueError(f"Date serial out of range: {serial!r}")


def parse_sheet_date(value: Any) -> Optional[date]:
    """
    Normalise a date cell.

    Accepts date/datetime objects, Excel serial numbers and ISO or
    day-first strings. Returns None for blank cells and raises ValueError
    for anything else.
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid date: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        return excel_serial_to_date(value)

    text = str(value).strip()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return excel_serial_to_date(float(text))
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}")


def parse_sheet_number(value: Any) -> Optional[Decimal]:
    """Numeric cell as Decimal; None when blank, ValueError when not a number."""
    if is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid number: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
    else:
        text = str(value).strip().replace(" ", "")
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid number: {value!r}")
    if not number.is_finite():
        raise ValueError(f"Invalid number: {value!r}")
    return number
