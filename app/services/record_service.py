"""
Commission Tracker - Record Service

Business logic for commission records: role-scoped listing, creation with
student/program upserts, whitelisted partial updates, deletion and CSV
export. Every change is published to the notification hub.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from sqlalchemy import false, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.advisor import Advisor
from app.models.commission import Commission, PaymentStatus
from app.models.student import Program, Student
from app.models.user import User, UserRole
from app.schemas.record import RecordCreate, RecordUpdate
from app.services.notification_hub import NotificationHub, RecordEventType, notification_hub
from app.utils.csv_export import export_filename, records_to_csv
from app.utils.error_handling import (
    AuthorizationException,
    BadRequestException,
    ErrorCode,
    NotFoundException,
    RecordNotFoundException,
)
from app.utils.payment_status import classify_status

logger = logging.getLogger(__name__)


# Columns a record update may touch, keyed by request field
UPDATABLE_COLUMNS = {
    "advisor_comment": Commission.advisor_comment,
    "campus": Commission.campus,
    "enrollment_date": Commission.enrollment_date,
    "enrollment_fee": Commission.enrollment_fee,
    "program_version": Commission.program_version,
    "payment_status": Commission.payment_status,
    "commission_amount": Commission.commission_amount,
}

# Reconciliation fields reserved for admin and accounting
STAFF_ONLY_FIELDS = {"payment_status", "commission_amount"}

EXPORT_STATUS_FILTERS = ("all", "paid", "pending", "rejected")


# ===========================================
# NORMALISATION HELPERS
# ===========================================

def sanitize_rut(rut: Optional[str]) -> str:
    """RUT without dots, upper-cased (``12.345.678-k`` -> ``12345678-K``)."""
    return (rut or "").replace(".", "").strip().upper()


def sanitize_phone(phone: Optional[str]) -> Optional[str]:
    if phone is None:
        return None
    cleaned = "".join(str(phone).split())
    return cleaned or None


def normalize_program_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def serialize_record(commission: Commission) -> Dict[str, Any]:
    """Flat record view of a commission and its student, program and advisor."""
    student = commission.student
    program = commission.program
    advisor = commission.advisor

    full_name = student.full_name if student else ""
    title = full_name or (student.first_names if student else None) or commission.program_code or "Untitled"
    category = (program.name if program else None) or commission.program_code or "Uncategorized"
    status = commission.payment_status.value if commission.payment_status else "pending"
    created = commission.enrollment_date or commission.created_at

    return {
        "id": commission.id,
        "title": title,
        "category": category,
        "amount": float(commission.commission_amount or 0),
        "status": status,
        "created_at": created.isoformat() if created else None,
        "student_rut": commission.student_rut,
        "program_code": commission.program_code,
        "program_version": commission.program_version,
        "advisor_comment": commission.advisor_comment,
        "advisor": advisor.full_name if advisor else None,
        "advisor_id": commission.advisor_id,
        "payment_status": commission.payment_status.value if commission.payment_status else None,
        "enrollment_date": commission.enrollment_date,
        "campus": commission.campus,
        "enrollment_fee": float(commission.enrollment_fee) if commission.enrollment_fee is not None else None,
        "student_first_names": student.first_names if student else None,
        "student_last_names": student.last_names if student else None,
        "student_email": student.email if student else None,
        "student_phone": student.phone if student else None,
    }


class RecordService:
    """Service for commission record operations."""

    def __init__(self, db: AsyncSession, hub: Optional[NotificationHub] = None):
        self.db = db
        self.hub = hub or notification_hub

    # ===========================================
    # QUERIES
    # ===========================================

    def _visible_to(self, query, user: User):
        """Restrict a Commission query to the rows the user may see."""
        if user.sees_all_records:
            return query
        if user.advisor_id is None:
            return query.where(false())
        return query.where(Commission.advisor_id == user.advisor_id)

    def _ordered(self, query):
        return query.order_by(
            Commission.enrollment_date.desc().nulls_last(),
            Commission.created_at.desc(),
        )

    async def get_commission(self, record_id: uuid.UUID) -> Optional[Commission]:
        """Load a commission with fresh relationships."""
        result = await self.db.execute(
            select(Commission)
            .where(Commission.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_visible_commission(self, user: User, record_id: uuid.UUID) -> Commission:
        commission = await self.get_commission(record_id)
        if commission is None:
            raise RecordNotFoundException(record_id)
        if not user.sees_all_records and commission.advisor_id != user.advisor_id:
            raise RecordNotFoundException(record_id)
        return commission

    async def list_records(
        self,
        user: User,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """One page of the records visible to the user, newest enrollment first."""
        page = max(page, 1)
        limit = min(max(limit, 1), 1000)

        count_query = self._visible_to(select(func.count()).select_from(Commission), user)
        total = (await self.db.execute(count_query)).scalar_one()

        query = self._ordered(self._visible_to(select(Commission), user))
        result = await self.db.execute(query.offset((page - 1) * limit).limit(limit))
        records = [serialize_record(c) for c in result.scalars().all()]
        return records, total

    async def list_all_visible(self, user: User) -> List[Dict[str, Any]]:
        """Every record visible to the user (dashboard and export)."""
        query = self._ordered(self._visible_to(select(Commission), user))
        result = await self.db.execute(query)
        return [serialize_record(c) for c in result.scalars().all()]

    async def list_programs(self) -> List[Program]:
        result = await self.db.execute(select(Program).order_by(Program.name, Program.code))
        return list(result.scalars().all())

    # ===========================================
    # UPSERTS
    # ===========================================

    async def upsert_program(self, code: str, name: str, cost_center: Optional[str] = None) -> Program:
        """Insert or refresh a catalog program. An absent cost center keeps the stored one."""
        code = normalize_program_code(code)
        program = await self.db.get(Program, code)
        if program is None:
            program = Program(code=code, name=name, cost_center=cost_center)
            self.db.add(program)
        else:
            program.name = name
            if cost_center:
                program.cost_center = cost_center
        return program

    async def upsert_student(
        self,
        rut: str,
        first_names: str,
        last_names: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Student:
        """Insert or refresh a student. Absent email/phone keep the stored values."""
        rut = sanitize_rut(rut)
        phone = sanitize_phone(phone)
        student = await self.db.get(Student, rut)
        if student is None:
            student = Student(
                rut=rut,
                first_names=first_names,
                last_names=last_names,
                email=email,
                phone=phone,
            )
            self.db.add(student)
        else:
            student.first_names = first_names
            student.last_names = last_names
            if email:
                student.email = email
            if phone:
                student.phone = phone
        return student

    async def add_commission(self, advisor_id: int, data: RecordCreate) -> Commission:
        """
        Stage student, program and commission rows for one enrollment.

        The caller owns the transaction.
        """
        await self.upsert_program(data.program_code, data.program_name, data.cost_center)
        student = await self.upsert_student(
            data.rut,
            data.first_names,
            data.last_names,
            str(data.email) if data.email else None,
            data.phone,
        )
        commission = Commission(
            student_rut=student.rut,
            program_code=normalize_program_code(data.program_code),
            program_version=data.program_version or "1",
            advisor_id=advisor_id,
            commission_amount=data.commission_amount if data.commission_amount is not None else Decimal("0"),
            enrollment_fee=data.enrollment_fee,
            payment_status=data.payment_status or PaymentStatus.PENDING,
            enrollment_date=data.enrollment_date,
            campus=data.campus,
            advisor_comment=data.advisor_comment,
        )
        self.db.add(commission)
        await self.db.flush()
        return commission

    # ===========================================
    # COMMANDS
    # ===========================================

    async def create_for_advisor(self, advisor_id: int, data: RecordCreate) -> Dict[str, Any]:
        """Create a record for the given advisor and publish ``record-created``."""
        if await self.db.get(Advisor, advisor_id) is None:
            raise NotFoundException("Advisor", advisor_id)

        commission = await self.add_commission(advisor_id, data)
        await self.db.commit()

        record = serialize_record(await self.get_commission(commission.id))
        logger.info(f"Record {commission.id} created for advisor {advisor_id}")
        await self.publish(RecordEventType.CREATED, record)
        return record

    async def create_record(self, user: User, data: RecordCreate) -> Dict[str, Any]:
        """Create a record owned by the current advisor."""
        if user.advisor_id is None:
            raise BadRequestException(
                "Your account is not linked to an advisor.",
                code=ErrorCode.ADVISOR_REQUIRED,
            )
        return await self.create_for_advisor(user.advisor_id, data)

    async def update_record(self, user: User, record_id: uuid.UUID, data: RecordUpdate) -> Dict[str, Any]:
        """
        Apply a partial update composed from the whitelisted columns.

        Advisors may only touch their own records and may not change payment
        state or amount; commenting moves the record back to pending.
        """
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestException("No fields to update.")

        commission = await self.get_visible_commission(user, record_id)

        if not user.sees_all_records:
            forbidden = sorted(set(changes) & STAFF_ONLY_FIELDS)
            if forbidden:
                raise AuthorizationException(
                    f"Advisors cannot change: {', '.join(forbidden)}",
                    required_permission="admin or accounting",
                )
            if changes.get("advisor_comment"):
                changes["payment_status"] = PaymentStatus.PENDING

        if "program_version" in changes and not changes["program_version"]:
            changes["program_version"] = "1"
        if "commission_amount" in changes and changes["commission_amount"] is None:
            changes["commission_amount"] = Decimal("0")

        values = {UPDATABLE_COLUMNS[name].key: value for name, value in changes.items()}
        await self.db.execute(
            update(Commission)
            .where(Commission.id == commission.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        record = serialize_record(await self.get_commission(commission.id))
        logger.info(f"Record {commission.id} updated by {user.username}: {sorted(values)}")
        await self.publish(RecordEventType.UPDATED, record)
        return record

    async def delete_record(self, user: User, record_id: uuid.UUID) -> None:
        """Delete a record: advisors their own, admins any."""
        if user.role == UserRole.ACCOUNTING:
            raise AuthorizationException("Accounting users cannot delete records")

        commission = await self.get_visible_commission(user, record_id)
        record = serialize_record(commission)
        await self.db.delete(commission)
        await self.db.commit()

        logger.info(f"Record {record_id} deleted by {user.username}")
        await self.publish(RecordEventType.DELETED, record)

    async def publish(self, event_type: RecordEventType, record: Dict[str, Any], description: Optional[str] = None):
        await self.hub.publish_record_event(event_type, jsonable_encoder(record), description)

    # ===========================================
    # EXPORT
    # ===========================================

    async def export_record_csv(self, user: User, record_id: uuid.UUID) -> str:
        commission = await self.get_visible_commission(user, record_id)
        return records_to_csv([serialize_record(commission)])

    async def export_records_csv(
        self,
        user: User,
        status: str = "all",
        current_month: bool = False,
        today: Optional[date] = None,
    ) -> Tuple[str, str]:
        """
        CSV of the visible records filtered by status bucket and month.

        Returns:
            (filename, csv text)
        """
        if status not in EXPORT_STATUS_FILTERS:
            raise BadRequestException(
                f"Unknown status filter '{status}'",
                field="status",
                details={"allowed": list(EXPORT_STATUS_FILTERS)},
            )
        today = today or date.today()
        month_key = today.strftime("%Y-%m")

        records = await self.list_all_visible(user)
        if status != "all":
            records = [r for r in records if (classify_status(r["status"]) or "") == status]
        if current_month:
            records = [r for r in records if (r["created_at"] or "")[:7] == month_key]

        label = status if not current_month else f"{status} current month"
        return export_filename(label, today), records_to_csv(records)
