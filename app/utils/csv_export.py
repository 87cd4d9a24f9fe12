"""
Commission Tracker - CSV Export

Renders record views as CSV for download. Every cell is quoted and date
columns are cut to YYYY-MM-DD.
"""

import csv
import io
import re
import unicodedata
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.utils.payment_status import classify_status


# (column header, record key)
EXPORT_COLUMNS: List[Tuple[str, str]] = [
    ("ID", "id"),
    ("RUT", "student_rut"),
    ("Student", "title"),
    ("Program", "category"),
    ("Program code", "program_code"),
    ("Version", "program_version"),
    ("Enrollment fee", "enrollment_fee"),
    ("Commission", "amount"),
    ("Status summary", "status_summary"),
    ("Payment status", "payment_status"),
    ("Enrollment date", "enrollment_date"),
    ("Registered at", "created_at"),
    ("Advisor", "advisor"),
    ("Advisor comment", "advisor_comment"),
]

DATE_KEYS = {"enrollment_date", "created_at"}


def _format_cell(key: str, value: Any) -> str:
    if value is None:
        return ""
    if key in DATE_KEYS:
        if isinstance(value, date):
            return value.isoformat()[:10]
        return str(value)[:10]
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def records_to_csv(records: Iterable[Dict[str, Any]]) -> str:
    """Serialize record views to CSV text (header line always present)."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([header for header, _ in EXPORT_COLUMNS])

    for record in records:
        row = []
        for _, key in EXPORT_COLUMNS:
            if key == "status_summary":
                category = classify_status(record.get("status"))
                value = category.value if category else "unclassified"
            else:
                value = record.get(key)
            row.append(_format_cell(key, value))
        writer.writerow(row)

    return output.getvalue()


def slugify(label: Optional[str]) -> str:
    """
    File-name friendly form of a label.

    >>> slugify("Pagos de Marzo")
    'pagos-de-marzo'
    """
    text = unicodedata.normalize("NFD", label or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return text or "todos"


def export_filename(label: Optional[str], today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"comisiones-{slugify(label)}-{today.isoformat()}.csv"
