"""
Commission Tracker - Records API Tests

Integration tests for listing, creating, updating, deleting and exporting
commission records.
"""

import uuid
from datetime import date
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from tests.conftest import make_headers


RECORD_PAYLOAD = {
    "rut": "11.111.111-k",
    "first_names": "Valentina",
    "last_names": "Fuentes",
    "email": "valentina.fuentes@example.com",
    "phone": "+56 9 1234 5678",
    "program_code": "dip-ia",
    "program_name": "Diplomado en IA",
    "cost_center": "CC-200",
    "enrollment_date": "2026-04-02",
    "campus": "Online",
    "enrollment_fee": 120000,
}


async def _listen(hub, user):
    """Attach a fake socket to the hub on behalf of ``user``."""
    websocket = AsyncMock()
    await hub.connect(
        websocket,
        user_id=user.id,
        role=user.role.value,
        advisor_id=user.advisor_id,
    )
    websocket.send_json.reset_mock()
    return websocket


def _record_events(websocket):
    return [
        call.args[0]["data"]
        for call in websocket.send_json.await_args_list
        if call.args[0]["event"] == "record-event"
    ]


class TestListRecords:

    @pytest.mark.asyncio
    async def test_advisor_sees_only_own_records(
        self, client: AsyncClient, advisor_headers, test_record, other_record,
    ):
        response = await client.get("/api/records", headers=advisor_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        record = data["records"][0]
        assert record["id"] == str(test_record.id)
        assert record["title"] == "Camila Soto"
        assert record["category"] == "MBA Ejecutivo"
        assert record["status"] == "Pendiente de pago"
        assert record["advisor"] == "Ana Rojas"
        assert record["created_at"].startswith("2026-03-10")

    @pytest.mark.asyncio
    async def test_admin_sees_every_record(
        self, client: AsyncClient, admin_headers, test_record, other_record,
    ):
        response = await client.get("/api/records", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        # Newest enrollment first
        assert [r["id"] for r in data["records"]] == [str(test_record.id), str(other_record.id)]

    @pytest.mark.asyncio
    async def test_pagination(
        self, client: AsyncClient, accounting_headers, test_record, other_record,
    ):
        response = await client.get(
            "/api/records",
            params={"page": 2, "limit": 1},
            headers=accounting_headers,
        )

        data = response.json()
        assert data["total"] == 2
        assert [r["id"] for r in data["records"]] == [str(other_record.id)]

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/records")

        assert response.status_code == 401


class TestCreateRecord:

    @pytest.mark.asyncio
    async def test_create_record(self, client: AsyncClient, hub, advisor_user, admin_user):
        advisor_socket = await _listen(hub, advisor_user)
        admin_socket = await _listen(hub, admin_user)

        response = await client.post(
            "/api/records",
            json=RECORD_PAYLOAD,
            headers=make_headers(advisor_user),
        )

        assert response.status_code == 201
        record = response.json()["record"]
        assert record["student_rut"] == "11111111-K"
        assert record["program_code"] == "DIP-IA"
        assert record["program_version"] == "1"
        assert record["payment_status"] == "Pendiente de pago"
        assert record["amount"] == 0
        assert record["student_phone"] == "+56912345678"
        assert record["advisor_id"] == 1

        for socket in (advisor_socket, admin_socket):
            events = _record_events(socket)
            assert len(events) == 1
            assert events[0]["type"] == "record-created"
            assert events[0]["record"]["id"] == record["id"]

    @pytest.mark.asyncio
    async def test_other_advisor_not_notified(
        self, client: AsyncClient, hub, advisor_user, other_advisor_user,
    ):
        other_socket = await _listen(hub, other_advisor_user)

        response = await client.post(
            "/api/records",
            json=RECORD_PAYLOAD,
            headers=make_headers(advisor_user),
        )

        assert response.status_code == 201
        assert _record_events(other_socket) == []

    @pytest.mark.asyncio
    async def test_create_upserts_program(self, client: AsyncClient, advisor_headers, test_program):
        payload = dict(RECORD_PAYLOAD, program_code="mba01", program_name="MBA Ejecutivo 2026")

        response = await client.post("/api/records", json=payload, headers=advisor_headers)
        assert response.status_code == 201

        programs = (await client.get("/api/programs", headers=advisor_headers)).json()["programs"]
        assert programs == [{"code": "MBA01", "name": "MBA Ejecutivo 2026", "cost_center": "CC-200"}]

    @pytest.mark.asyncio
    async def test_create_without_advisor_profile(self, client: AsyncClient, admin_headers):
        response = await client.post("/api/records", json=RECORD_PAYLOAD, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ADVISOR_REQUIRED"

    @pytest.mark.asyncio
    async def test_create_missing_fields(self, client: AsyncClient, advisor_headers):
        response = await client.post(
            "/api/records",
            json={"rut": "1-9", "first_names": "Solo"},
            headers=advisor_headers,
        )

        assert response.status_code == 422


class TestUpdateRecord:

    @pytest.mark.asyncio
    async def test_advisor_comment_resets_status(
        self, client: AsyncClient, db_session, advisor_headers, test_record,
    ):
        response = await client.put(
            f"/api/records/{test_record.id}",
            json={"advisor_comment": "Alumno pidió factura", "campus": "Viña del Mar"},
            headers=advisor_headers,
        )

        assert response.status_code == 200
        record = response.json()["record"]
        assert record["advisor_comment"] == "Alumno pidió factura"
        assert record["campus"] == "Viña del Mar"
        assert record["payment_status"] == "Pendiente de pago"

    @pytest.mark.asyncio
    async def test_advisor_cannot_change_payment_state(
        self, client: AsyncClient, advisor_headers, test_record,
    ):
        response = await client.put(
            f"/api/records/{test_record.id}",
            json={"payment_status": "Pagado"},
            headers=advisor_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_accounting_settles_payment(
        self, client: AsyncClient, hub, accounting_user, advisor_user, test_record,
    ):
        advisor_socket = await _listen(hub, advisor_user)

        response = await client.put(
            f"/api/records/{test_record.id}",
            json={"payment_status": "Pagado", "commission_amount": 95000},
            headers=make_headers(accounting_user),
        )

        assert response.status_code == 200
        record = response.json()["record"]
        assert record["payment_status"] == "Pagado"
        assert record["amount"] == 95000

        events = _record_events(advisor_socket)
        assert [event["type"] for event in events] == ["record-updated"]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, client: AsyncClient, admin_headers, test_record):
        response = await client.put(
            f"/api/records/{test_record.id}",
            json={"student_rut": "1-9"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, client: AsyncClient, admin_headers, test_record):
        response = await client.put(
            f"/api/records/{test_record.id}",
            json={},
            headers=admin_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_other_advisors_record_is_hidden(
        self, client: AsyncClient, advisor_headers, other_record,
    ):
        response = await client.put(
            f"/api/records/{other_record.id}",
            json={"campus": "Temuco"},
            headers=advisor_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "RECORD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_record_id(self, client: AsyncClient, admin_headers):
        response = await client.put(
            "/api/records/not-a-uuid",
            json={"campus": "Temuco"},
            headers=admin_headers,
        )

        assert response.status_code == 422


class TestDeleteRecord:

    @pytest.mark.asyncio
    async def test_advisor_deletes_own_record(
        self, client: AsyncClient, hub, advisor_user, test_record,
    ):
        socket = await _listen(hub, advisor_user)
        headers = make_headers(advisor_user)

        response = await client.delete(f"/api/records/{test_record.id}", headers=headers)

        assert response.status_code == 204
        assert [event["type"] for event in _record_events(socket)] == ["record-deleted"]
        listing = (await client.get("/api/records", headers=headers)).json()
        assert listing["total"] == 0

    @pytest.mark.asyncio
    async def test_accounting_cannot_delete(self, client: AsyncClient, accounting_headers, test_record):
        response = await client.delete(f"/api/records/{test_record.id}", headers=accounting_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_unknown_record(self, client: AsyncClient, admin_headers):
        response = await client.delete(f"/api/records/{uuid.uuid4()}", headers=admin_headers)

        assert response.status_code == 404


class TestExports:

    @pytest.mark.asyncio
    async def test_export_single_record(self, client: AsyncClient, advisor_headers, test_record):
        response = await client.get(f"/api/records/{test_record.id}/export", headers=advisor_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert f"comision-{test_record.id}.csv" in response.headers["content-disposition"]
        lines = response.text.strip().split("\n")
        assert len(lines) == 2
        assert '"12345678-K"' in lines[1]
        assert '"pending"' in lines[1]

    @pytest.mark.asyncio
    async def test_export_filtered_by_status(
        self, client: AsyncClient, admin_headers, test_record, other_record,
    ):
        response = await client.get(
            "/api/records/export",
            params={"status": "paid"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert f"comisiones-paid-{date.today().isoformat()}.csv" in response.headers["content-disposition"]
        lines = response.text.strip().split("\n")
        assert len(lines) == 2
        assert str(other_record.id) in lines[1]

    @pytest.mark.asyncio
    async def test_export_unknown_status(self, client: AsyncClient, admin_headers):
        response = await client.get(
            "/api/records/export",
            params={"status": "everything"},
            headers=admin_headers,
        )

        assert response.status_code == 400


class TestSummaryAndPrograms:

    @pytest.mark.asyncio
    async def test_summary(self, client: AsyncClient, admin_headers, test_record, other_record):
        response = await client.get("/api/records/summary", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_entries"] == 2
        assert data["paid"] == 1
        assert data["pending"] == 1
        assert data["rejected"] == 0
        assert data["paid_amount"] == 85000
        assert [bucket["key"] for bucket in data["trend"]] == ["2026-02", "2026-03"]

    @pytest.mark.asyncio
    async def test_programs_catalog(self, client: AsyncClient, advisor_headers, test_program):
        for path in ("/api/programs", "/api/records/programs"):
            response = await client.get(path, headers=advisor_headers)
            assert response.status_code == 200
            assert response.json()["programs"][0]["code"] == "MBA01"
