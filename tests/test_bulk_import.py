"""
Commission Tracker - Bulk Import Tests

Template uploads (CSV and XLSX) and the manual entry grid.
"""

import io
from datetime import date, datetime
from decimal import Decimal

import pytest
from httpx import AsyncClient
from openpyxl import Workbook

from app.config import settings
from app.services.bulk_import_service import COLUMN_ALIASES, validate_row
from app.utils.spreadsheets import map_columns, parse_sheet_date, parse_sheet_number


CSV_HEADER = "RUT,Nombres,Apellidos,Correo,Código Programa,Nombre Programa,Matrícula,Sede\n"


def _csv(*rows: str) -> bytes:
    return (CSV_HEADER + "".join(row + "\n" for row in rows)).encode("utf-8")


def _xlsx(rows) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["RUT", "Nombres", "Apellidos", "Correo", "Codigo Programa", "Nombre Programa", "Fecha Matricula"])
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestParseSheetDate:

    @pytest.mark.parametrize("value,expected", [
        (46113, date(2026, 4, 1)),
        (46113.75, date(2026, 4, 1)),
        ("46113", date(2026, 4, 1)),
        (1, date(1899, 12, 31)),
        ("2026-03-10", date(2026, 3, 10)),
        ("10-03-2026", date(2026, 3, 10)),
        ("10/03/2026", date(2026, 3, 10)),
        ("2026/03/10", date(2026, 3, 10)),
        ("2026-03-10T09:30:00", date(2026, 3, 10)),
        (datetime(2026, 3, 10, 9, 30), date(2026, 3, 10)),
        (date(2026, 3, 10), date(2026, 3, 10)),
    ])
    def test_accepted_forms(self, value, expected):
        assert parse_sheet_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_is_absent(self, value):
        assert parse_sheet_date(value) is None

    @pytest.mark.parametrize("value", [
        "31/31/2026",
        "mañana",
        True,
        "4000000",
        4000000,
        10 ** 20,
        float("inf"),
        Decimal("NaN"),
    ])
    def test_invalid_raises_value_error(self, value):
        with pytest.raises(ValueError):
            parse_sheet_date(value)


class TestParseSheetNumber:

    def test_numbers(self):
        assert parse_sheet_number(95000) == Decimal("95000")
        assert parse_sheet_number(" 95 000 ") == Decimal("95000")
        assert parse_sheet_number("1250.50") == Decimal("1250.50")
        assert parse_sheet_number("") is None

    @pytest.mark.parametrize("value", ["abc", True, "Infinity", float("inf"), "NaN"])
    def test_invalid_raises_value_error(self, value):
        with pytest.raises(ValueError):
            parse_sheet_number(value)


class TestValidateRow:

    def test_valid_row_is_normalised(self):
        mapped = map_columns({
            "RUT": "15.222.333-k",
            "Nombres": "Ignacio",
            "Apellidos": "Vera",
            "Correo": "ignacio.vera@example.com",
            "Código Programa": "mgp-02",
            "Nombre Programa": "Magíster en Gestión",
            "Matrícula": "95000",
        }, COLUMN_ALIASES)

        result = validate_row(2, mapped)

        assert result.is_valid
        assert result.data.rut == "15222333-K"
        assert result.data.program_code == "MGP-02"
        assert result.data.payment_status.value == "Pendiente de pago"
        assert result.data.program_version == "1"

    def test_reports_every_problem(self):
        mapped = map_columns({
            "RUT": "15222333-K",
            "Correo": "not-an-email",
            "Matrícula": "abc",
            "Fecha Matrícula": "31/31/2026",
        }, COLUMN_ALIASES)

        result = validate_row(7, mapped)

        assert not result.is_valid
        assert "First names are required." in result.messages
        assert "Program code is required." in result.messages
        assert "Email format is invalid." in result.messages
        assert "Enrollment fee must be numeric." in result.messages
        assert "Enrollment date is invalid." in result.messages
        assert result.to_error()["row"] == 7

    def test_out_of_range_serial_is_a_row_error(self):
        mapped = map_columns({
            "RUT": "15222333-K",
            "Nombres": "Ignacio",
            "Apellidos": "Vera",
            "Correo": "ignacio.vera@example.com",
            "Código Programa": "MGP-02",
            "Nombre Programa": "Magíster en Gestión",
            "Fecha": "4000000",
        }, COLUMN_ALIASES)

        result = validate_row(2, mapped)

        assert result.messages == ["Enrollment date is invalid."]


class TestBulkUploadAPI:

    @pytest.mark.asyncio
    async def test_csv_upload(self, client: AsyncClient, hub, advisor_headers, test_record):
        content = _csv(
            "16.111.222-3,Josefa,Pino,josefa.pino@example.com,dip-ia,Diplomado en IA,120000,Online",
            "17.333.444-5,Tomás,Reyes,,dip-ia,Diplomado en IA,120000,Online",
            "16.111.222-3,Josefa,Pino,josefa.pino@example.com,dip-ia,Diplomado en IA,120000,Online",
            "12.345.678-k,Camila,Soto,camila.soto@example.com,MBA01,MBA Ejecutivo,150000,Santiago",
            "16.111.222-3,Josefa,Pino,josefa.pino@example.com,mba01,MBA Ejecutivo,250000,Santiago",
            ",,,,,,,",
        )

        response = await client.post(
            "/api/records/bulk",
            files={"file": ("plantilla.csv", content, "text/csv")},
            headers=advisor_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 2
        assert data["failed"] == 3
        errors = {error["row"]: error for error in data["errors"]}
        assert set(errors) == {3, 4, 5}
        assert errors[3]["messages"] == ["Email is required."]
        assert errors[4]["rut"] == "16111222-3"
        assert "already exists" in errors[4]["messages"][0]
        assert "already exists" in errors[5]["messages"][0]

        records = data["records"]
        assert {r["program_code"] for r in records} == {"DIP-IA", "MBA01"}
        assert all(r["payment_status"] == "Pendiente de pago" for r in records)
        assert all(r["amount"] == 0 for r in records)

        listing = (await client.get("/api/records", headers=advisor_headers)).json()
        assert listing["total"] == 3

    @pytest.mark.asyncio
    async def test_xlsx_upload(self, client: AsyncClient, advisor_headers, advisor_user):
        content = _xlsx([
            ["18.555.666-7", "Martina", "Lagos", "martina.lagos@example.com", "ING-01", "Ingeniería Comercial", 46113],
        ])

        response = await client.post(
            "/api/records/bulk",
            files={"file": ("plantilla.xlsx", content, "application/octet-stream")},
            headers=advisor_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 1
        assert data["records"][0]["enrollment_date"] == "2026-04-01"

    @pytest.mark.asyncio
    async def test_rejects_other_file_types(self, client: AsyncClient, advisor_headers):
        response = await client.post(
            "/api/records/bulk",
            files={"file": ("notas.txt", b"hola", "text/plain")},
            headers=advisor_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "BULK_IMPORT_ERROR"

    @pytest.mark.asyncio
    async def test_rejects_empty_template(self, client: AsyncClient, advisor_headers):
        response = await client.post(
            "/api/records/bulk",
            files={"file": ("plantilla.csv", _csv(), "text/csv")},
            headers=advisor_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "The template is empty."

    @pytest.mark.asyncio
    async def test_rejects_oversized_file(self, client: AsyncClient, advisor_headers):
        content = b"x" * (settings.bulk_upload_max_bytes + 1)

        response = await client.post(
            "/api/records/bulk",
            files={"file": ("plantilla.csv", content, "text/csv")},
            headers=advisor_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_requires_advisor_profile(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/records/bulk",
            files={"file": ("plantilla.csv", _csv(), "text/csv")},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ADVISOR_REQUIRED"

    @pytest.mark.asyncio
    async def test_rejects_too_many_rows(self, client: AsyncClient, advisor_headers, advisor_user):
        rows = [
            f"{10000000 + index}-1,Nombre,Apellido,a{index}@example.com,MBA01,MBA Ejecutivo,100000,Santiago"
            for index in range(settings.bulk_max_rows + 1)
        ]

        response = await client.post(
            "/api/records/bulk",
            files={"file": ("plantilla.csv", _csv(*rows), "text/csv")},
            headers=advisor_headers,
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "BULK_IMPORT_ERROR"
        assert detail["details"]["max_rows"] == settings.bulk_max_rows

        listing = (await client.get("/api/records", headers=advisor_headers)).json()
        assert listing["total"] == 0


class TestManualBulkAPI:

    @pytest.mark.asyncio
    async def test_manual_rows(self, client: AsyncClient, hub, advisor_headers, advisor_user):
        rows = [
            {
                "rut": "19.777.888-9",
                "first_names": "Florencia",
                "last_names": "Castro",
                "email": "florencia.castro@example.com",
                "program_code": "dip-ux",
                "program_name": "Diplomado UX",
                "enrollment_fee": "80000",
            },
            {"rut": "", "first_names": "", "last_names": ""},
            {"rut": "20.111.222-3", "first_names": "Sin", "last_names": "Programa", "email": "sin@example.com"},
        ]

        response = await client.post("/api/records/bulk/manual", json={"rows": rows}, headers=advisor_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 1
        assert data["failed"] == 1
        assert data["errors"][0]["row"] == 3
        assert "Program code is required." in data["errors"][0]["messages"]

        # Same rows through the legacy path: the first one is now a duplicate
        response = await client.post("/api/carga-masiva", json={"rows": rows}, headers=advisor_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 0
        assert {error["row"] for error in data["errors"]} == {1, 3}

        listing = (await client.get("/api/records", headers=advisor_headers)).json()
        assert listing["total"] == 1

    @pytest.mark.asyncio
    async def test_out_of_range_date_reported_per_row(self, client: AsyncClient, advisor_headers, advisor_user):
        rows = [
            {
                "rut": "19.777.888-9",
                "first_names": "Florencia",
                "last_names": "Castro",
                "email": "florencia.castro@example.com",
                "program_code": "dip-ux",
                "program_name": "Diplomado UX",
                "fecha": "4000000",
            },
            {
                "rut": "20.111.222-3",
                "first_names": "Matías",
                "last_names": "Fuentes",
                "email": "matias.fuentes@example.com",
                "program_code": "dip-ux",
                "program_name": "Diplomado UX",
                "fecha": "10/03/2026",
            },
        ]

        response = await client.post("/api/records/bulk/manual", json={"rows": rows}, headers=advisor_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 1
        assert data["errors"][0]["row"] == 1
        assert data["errors"][0]["messages"] == ["Enrollment date is invalid."]
        assert data["records"][0]["enrollment_date"] == "2026-03-10"
