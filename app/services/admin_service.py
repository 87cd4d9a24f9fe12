"""
Commission Tracker - Admin Service

Cross-advisor reporting and record management for administrators:
- Schema snapshot (every non-credential table, row by row)
- Cases grouped by advisor with commission and enrollment fee totals
- Student entries created, edited or removed on behalf of advisors
- Advisor profiles
"""

import logging
import re
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Base
from app.models.advisor import Advisor
from app.models.commission import Commission
from app.schemas.admin import AdminStudentCreate, AdminStudentUpdate, AdvisorCreate
from app.services.notification_hub import NotificationHub, RecordEventType
from app.services.record_service import RecordService, serialize_record, sanitize_phone
from app.utils.error_handling import (
    BadRequestException,
    DuplicateEntryException,
    NotFoundException,
    RecordNotFoundException,
)

logger = logging.getLogger(__name__)


# Tables never exposed by the snapshot
CREDENTIAL_TABLES = {"users", "password_reset_tokens"}

TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

STUDENT_FIELDS = ("first_names", "last_names", "email", "phone")
PROGRAM_FIELDS = ("program_name", "cost_center")
COMMISSION_FIELDS = (
    "program_code", "program_version", "payment_status", "commission_amount",
    "enrollment_fee", "enrollment_date", "campus", "advisor_comment", "advisor_id",
)


def _enrollment_sort_key(case: Dict[str, Any]):
    # Newest first, undated last
    value = case.get("enrollment_date")
    return (value is not None, value.toordinal() if value else 0)


class AdminService:
    """Service for administrator reporting and management."""

    def __init__(self, db: AsyncSession, hub: Optional[NotificationHub] = None):
        self.db = db
        self.records = RecordService(db, hub)

    # ===========================================
    # REPORTING
    # ===========================================

    async def snapshot_tables(self) -> Dict[str, List[Dict[str, Any]]]:
        """Dump every mapped table except the credential tables."""
        tables: Dict[str, List[Dict[str, Any]]] = {}
        for name, table in sorted(Base.metadata.tables.items()):
            if name in CREDENTIAL_TABLES or not TABLE_NAME_PATTERN.match(name):
                continue
            result = await self.db.execute(select(table))
            tables[name] = [jsonable_encoder(dict(row)) for row in result.mappings().all()]
        return tables

    async def cases_by_advisor(self) -> List[Dict[str, Any]]:
        """
        Every advisor with their cases and totals.

        Cases are newest enrollment first; advisors are ordered by case count
        (descending) and then by name.
        """
        advisors = (await self.db.execute(select(Advisor))).scalars().all()
        commissions = (await self.db.execute(select(Commission))).scalars().all()

        by_advisor: Dict[int, List[Commission]] = {}
        for commission in commissions:
            by_advisor.setdefault(commission.advisor_id, []).append(commission)

        summaries = []
        for advisor in advisors:
            cases = []
            total_commission = Decimal("0")
            total_fee = Decimal("0")
            for commission in by_advisor.get(advisor.id, []):
                total_commission += commission.commission_amount or 0
                total_fee += commission.enrollment_fee or 0
                cases.append({
                    "commission_id": commission.id,
                    "payment_status": commission.payment_status.value if commission.payment_status else None,
                    "commission_amount": float(commission.commission_amount or 0),
                    "program": commission.program.name if commission.program else None,
                    "program_version": commission.program_version,
                    "categories": sorted(category.case_name for category in commission.categories),
                    "student": commission.student.full_name if commission.student else None,
                    "student_rut": commission.student_rut,
                    "enrollment_date": commission.enrollment_date,
                    "campus": commission.campus,
                })
            cases.sort(key=_enrollment_sort_key, reverse=True)
            summaries.append({
                "advisor_id": advisor.id,
                "full_name": advisor.full_name,
                "email": advisor.email,
                "total_cases": len(cases),
                "total_commission": float(total_commission),
                "total_enrollment_fee": float(total_fee),
                "cases": cases,
            })

        summaries.sort(key=lambda s: (-s["total_cases"], s["full_name"].lower()))
        return summaries

    async def schema_snapshot(self) -> Dict[str, Any]:
        return {
            "tables": await self.snapshot_tables(),
            "cases_by_advisor": await self.cases_by_advisor(),
        }

    async def list_commissions(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Commission).order_by(
                Commission.enrollment_date.desc().nulls_last(),
                Commission.created_at.desc(),
            )
        )
        return [serialize_record(c) for c in result.scalars().all()]

    # ===========================================
    # ADVISORS
    # ===========================================

    async def list_advisors(self) -> List[Advisor]:
        result = await self.db.execute(select(Advisor).order_by(Advisor.full_name))
        return list(result.scalars().all())

    async def create_advisor(self, data: AdvisorCreate) -> Advisor:
        if data.id is not None and await self.db.get(Advisor, data.id) is not None:
            raise DuplicateEntryException("Advisor", "id", str(data.id))

        advisor_id = data.id
        if advisor_id is None:
            current_max = (await self.db.execute(select(func.max(Advisor.id)))).scalar_one()
            advisor_id = (current_max or 0) + 1

        advisor = Advisor(
            id=advisor_id,
            full_name=data.full_name,
            email=str(data.email) if data.email else None,
        )
        self.db.add(advisor)
        await self.db.commit()
        logger.info(f"Advisor {advisor.id} created")
        return advisor

    # ===========================================
    # STUDENT ENTRIES
    # ===========================================

    async def create_student_entry(self, data: AdminStudentCreate) -> Dict[str, Any]:
        return await self.records.create_for_advisor(data.advisor_id, data)

    async def update_student_entry(self, commission_id: uuid.UUID, data: AdminStudentUpdate) -> Dict[str, Any]:
        """Partial update across the student, program and commission rows of an entry."""
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestException("No fields to update.")

        commission = await self.records.get_commission(commission_id)
        if commission is None:
            raise RecordNotFoundException(commission_id)

        if changes.get("advisor_id") is not None and await self.db.get(Advisor, changes["advisor_id"]) is None:
            raise NotFoundException("Advisor", changes["advisor_id"])

        student = commission.student
        for name in STUDENT_FIELDS:
            if name in changes:
                value = changes[name]
                if name == "phone":
                    value = sanitize_phone(value)
                elif name == "email" and value is not None:
                    value = str(value)
                if value is None and name in ("first_names", "last_names"):
                    continue
                setattr(student, name, value)

        commission_values = {name: changes[name] for name in COMMISSION_FIELDS if name in changes}

        if "program_code" in commission_values or any(name in changes for name in PROGRAM_FIELDS):
            code = commission_values.get("program_code") or commission.program_code
            current = commission.program
            name = changes.get("program_name") or (current.name if current and current.code == code.upper() else None)
            if not name:
                raise BadRequestException(
                    "program_name is required when switching to a new program code.",
                    field="program_name",
                )
            program = await self.records.upsert_program(code, name, changes.get("cost_center"))
            if "program_code" in commission_values:
                commission_values["program_code"] = program.code

        if commission_values.get("program_version", "1") is None:
            commission_values["program_version"] = "1"
        if "commission_amount" in commission_values and commission_values["commission_amount"] is None:
            commission_values["commission_amount"] = Decimal("0")
        for required in ("program_code", "advisor_id"):
            if required in commission_values and commission_values[required] is None:
                del commission_values[required]

        await self.db.flush()
        if commission_values:
            await self.db.execute(
                update(Commission)
                .where(Commission.id == commission.id)
                .values(**commission_values)
                .execution_options(synchronize_session=False)
            )
        await self.db.commit()

        record = serialize_record(await self.records.get_commission(commission.id))
        logger.info(f"Admin updated entry {commission.id}: {sorted(changes)}")
        await self.records.publish(RecordEventType.UPDATED, record)
        return record

    async def delete_student_entry(self, commission_id: uuid.UUID) -> None:
        commission = await self.records.get_commission(commission_id)
        if commission is None:
            raise RecordNotFoundException(commission_id)

        record = serialize_record(commission)
        await self.db.delete(commission)
        await self.db.commit()

        logger.info(f"Admin deleted entry {commission_id}")
        await self.records.publish(RecordEventType.DELETED, record)
