"""
Commission Tracker - CSV Export Tests
"""

import csv
import io
from datetime import date

from app.utils.csv_export import EXPORT_COLUMNS, export_filename, records_to_csv, slugify


RECORD = {
    "id": "7f1c",
    "student_rut": "12345678-K",
    "title": 'Camila "Cami" Soto',
    "category": "MBA Ejecutivo",
    "program_code": "MBA01",
    "program_version": "1",
    "enrollment_fee": 150000.0,
    "amount": 0,
    "status": "Pendiente de pago",
    "payment_status": "Pendiente de pago",
    "enrollment_date": "2026-03-10",
    "created_at": "2026-03-10T14:22:05.123456+00:00",
    "advisor": "Ana Rojas",
    "advisor_comment": None,
}


def _rows(text):
    return list(csv.reader(io.StringIO(text)))


class TestRecordsToCsv:

    def test_header_only_for_no_records(self):
        text = records_to_csv([])

        assert _rows(text) == [[header for header, _ in EXPORT_COLUMNS]]

    def test_every_cell_quoted(self):
        text = records_to_csv([RECORD])

        line = text.splitlines()[1]
        assert line.startswith('"7f1c","12345678-K","Camila ""Cami"" Soto"')

    def test_values_formatted(self):
        row = dict(zip([h for h, _ in EXPORT_COLUMNS], _rows(records_to_csv([RECORD]))[1]))

        assert row["Enrollment fee"] == "150000"
        assert row["Registered at"] == "2026-03-10"
        assert row["Status summary"] == "pending"
        assert row["Advisor comment"] == ""

    def test_unclassified_status(self):
        row = _rows(records_to_csv([dict(RECORD, status="Toku")]))[1]

        assert "unclassified" in row


class TestFileNames:

    def test_slugify(self):
        assert slugify("Pagos de Marzo") == "pagos-de-marzo"
        assert slugify("Comisión Pagada") == "comision-pagada"
        assert slugify("  ") == "todos"
        assert slugify(None) == "todos"

    def test_export_filename(self):
        assert export_filename("Pendientes", date(2026, 3, 10)) == "comisiones-pendientes-2026-03-10.csv"
