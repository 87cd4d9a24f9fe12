"""
Commission Tracker - Bulk Import Service

Validates and inserts enrollments uploaded as a CSV/XLSX template or typed
into the bulk entry grid.

Rules:
- Headers are matched loosely (case, accents and punctuation ignored)
- Required: RUT, first names, last names, email, program code, program name
- Imported rows always start as "Pendiente de pago" with a zero commission
- A row duplicates an existing record of the same advisor when the RUT
  matches and, if both carry one, the enrollment fee matches too
- Each row is inserted in its own savepoint; failures are reported per row
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.commission import Commission, PaymentStatus
from app.models.user import User
from app.schemas.record import RecordCreate
from app.services.notification_hub import NotificationHub, RecordEventType
from app.services.record_service import (
    RecordService,
    normalize_program_code,
    sanitize_phone,
    sanitize_rut,
    serialize_record,
)
from app.utils.error_handling import BadRequestException, BulkImportException, ErrorCode
from app.utils.spreadsheets import (
    SheetRow,
    all_blank,
    cell_text,
    map_columns,
    parse_sheet_date,
    parse_sheet_number,
    read_spreadsheet,
)

logger = logging.getLogger(__name__)


# Normalised header -> field
COLUMN_ALIASES = {
    "rut": "rut",
    "rutsinpuntos": "rut",
    "nombres": "first_names",
    "firstnames": "first_names",
    "apellidos": "last_names",
    "lastnames": "last_names",
    "correo": "email",
    "email": "email",
    "telefono": "phone",
    "phone": "phone",
    "codigoprograma": "program_code",
    "codigo": "program_code",
    "codprograma": "program_code",
    "programcode": "program_code",
    "nombreprograma": "program_name",
    "programa": "program_name",
    "programname": "program_name",
    "centrocostos": "cost_center",
    "centrodecostos": "cost_center",
    "costcenter": "cost_center",
    "estadopago": "payment_status",
    "estado": "payment_status",
    "paymentstatus": "payment_status",
    "fechamatricula": "enrollment_date",
    "fecha": "enrollment_date",
    "enrollmentdate": "enrollment_date",
    "sede": "campus",
    "campus": "campus",
    "matricula": "enrollment_fee",
    "enrollmentfee": "enrollment_fee",
    "versionprograma": "program_version",
    "version": "program_version",
    "programversion": "program_version",
    "comentarioasesor": "advisor_comment",
    "comentario": "advisor_comment",
    "advisorcomment": "advisor_comment",
}

REQUIRED_FIELDS = (
    ("rut", "RUT is required."),
    ("first_names", "First names are required."),
    ("last_names", "Last names are required."),
    ("email", "Email is required."),
    ("program_code", "Program code is required."),
    ("program_name", "Program name is required."),
)

FIELD_LIMITS = {
    "rut": 12,
    "first_names": 60,
    "last_names": 60,
    "phone": 12,
    "program_code": 12,
    "program_name": 120,
    "cost_center": 30,
    "campus": 60,
    "program_version": 30,
}

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class RowValidation:
    """Outcome of validating one uploaded row."""
    row_number: int
    values: Dict[str, Optional[str]]
    data: Optional[RecordCreate] = None
    messages: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.messages and self.data is not None

    def to_error(self) -> Dict[str, Any]:
        error = {"row": self.row_number, "messages": list(self.messages)}
        for key in (
            "rut", "first_names", "last_names", "email", "program_code",
            "program_name", "enrollment_fee", "campus", "program_version",
        ):
            error[key] = self.values.get(key)
        return error


def validate_row(row_number: int, mapped: Dict[str, Any]) -> RowValidation:
    """Check one mapped row and build the create payload when it is valid."""
    values = {key: cell_text(value) for key, value in mapped.items()}
    if values.get("rut"):
        values["rut"] = sanitize_rut(values["rut"])
    if values.get("phone"):
        values["phone"] = sanitize_phone(values["phone"])
    if values.get("program_code"):
        values["program_code"] = normalize_program_code(values["program_code"])

    result = RowValidation(row_number=row_number, values=values)

    for key, message in REQUIRED_FIELDS:
        if not values.get(key):
            result.messages.append(message)

    email = values.get("email")
    if email and not EMAIL_PATTERN.match(email):
        result.messages.append("Email format is invalid.")

    for key, limit in FIELD_LIMITS.items():
        value = values.get(key)
        if value and len(value) > limit:
            result.messages.append(f"{key} must be at most {limit} characters.")

    enrollment_date: Optional[date] = None
    try:
        enrollment_date = parse_sheet_date(mapped.get("enrollment_date"))
    except ValueError:
        result.messages.append("Enrollment date is invalid.")

    enrollment_fee: Optional[Decimal] = None
    try:
        enrollment_fee = parse_sheet_number(mapped.get("enrollment_fee"))
    except ValueError:
        result.messages.append("Enrollment fee must be numeric.")
    else:
        if enrollment_fee is not None and enrollment_fee < 0:
            result.messages.append("Enrollment fee cannot be negative.")

    if result.messages:
        return result

    try:
        result.data = RecordCreate(
            rut=values["rut"],
            first_names=values["first_names"],
            last_names=values["last_names"],
            email=email,
            phone=values.get("phone"),
            program_code=values["program_code"],
            program_name=values["program_name"],
            cost_center=values.get("cost_center"),
            payment_status=PaymentStatus.PENDING,
            enrollment_date=enrollment_date,
            campus=values.get("campus"),
            commission_amount=Decimal("0"),
            enrollment_fee=enrollment_fee,
            program_version=values.get("program_version") or "1",
            advisor_comment=values.get("advisor_comment"),
        )
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"])
            result.messages.append(f"{location}: {error['msg']}")
    return result


def _same_fee(left: Optional[Decimal], right: Optional[Decimal]) -> bool:
    if left is None or right is None:
        return True
    return Decimal(left) == Decimal(right)


class BulkImportService:
    """Service for bulk enrollment imports."""

    def __init__(self, db: AsyncSession, hub: Optional[NotificationHub] = None):
        self.db = db
        self.records = RecordService(db, hub)

    def _require_advisor(self, user: User) -> int:
        if user.advisor_id is None:
            raise BadRequestException(
                "Your account is not linked to an advisor.",
                code=ErrorCode.ADVISOR_REQUIRED,
            )
        return user.advisor_id

    async def import_file(
        self,
        user: User,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> Dict[str, Any]:
        """Import an uploaded template."""
        advisor_id = self._require_advisor(user)
        if len(content) > settings.bulk_upload_max_bytes:
            raise BulkImportException(
                "The file exceeds the maximum allowed size.",
                details={"max_bytes": settings.bulk_upload_max_bytes},
            )
        rows = read_spreadsheet(content, filename, content_type)
        logger.info(f"Bulk upload {filename!r} from {user.username}: {len(rows)} row(s)")
        return await self.import_rows(advisor_id, rows)

    async def import_manual(self, user: User, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Import rows typed into the bulk grid; row numbers start at 1."""
        advisor_id = self._require_advisor(user)
        sheet_rows = [SheetRow(row_number=index, values=row) for index, row in enumerate(rows, start=1)]
        return await self.import_rows(advisor_id, sheet_rows)

    async def _existing_fees_by_rut(self, advisor_id: int, ruts: List[str]) -> Dict[str, List[Optional[Decimal]]]:
        existing: Dict[str, List[Optional[Decimal]]] = {}
        if not ruts:
            return existing
        result = await self.db.execute(
            select(Commission.student_rut, Commission.enrollment_fee).where(
                Commission.advisor_id == advisor_id,
                Commission.student_rut.in_(ruts),
            )
        )
        for rut, fee in result.all():
            existing.setdefault(rut, []).append(fee)
        return existing

    async def import_rows(self, advisor_id: int, rows: List[SheetRow]) -> Dict[str, Any]:
        """
        Validate and insert rows for one advisor.

        Returns:
            {"inserted", "failed", "errors", "records"}
        """
        candidates: List[Tuple[int, Dict[str, Any]]] = []
        for row in rows:
            mapped = map_columns(row.values, COLUMN_ALIASES)
            if all_blank(mapped.values()):
                continue
            candidates.append((row.row_number, mapped))

        if not candidates:
            raise BulkImportException("The template is empty.")
        if len(candidates) > settings.bulk_max_rows:
            raise BulkImportException(
                f"The file has more than {settings.bulk_max_rows} rows.",
                details={"rows": len(candidates), "max_rows": settings.bulk_max_rows},
            )

        validations = [validate_row(row_number, mapped) for row_number, mapped in candidates]
        ruts = sorted({v.data.rut for v in validations if v.is_valid})
        existing = await self._existing_fees_by_rut(advisor_id, ruts)

        errors: List[Dict[str, Any]] = []
        created_ids = []

        for validation in validations:
            if not validation.is_valid:
                errors.append(validation.to_error())
                continue

            data = validation.data
            previous_fees = existing.get(data.rut, [])
            if any(_same_fee(fee, data.enrollment_fee) for fee in previous_fees):
                validation.messages.append("A record for this RUT and enrollment fee already exists.")
                errors.append(validation.to_error())
                continue

            try:
                async with self.db.begin_nested():
                    commission = await self.records.add_commission(advisor_id, data)
            except SQLAlchemyError as exc:
                logger.warning(f"Bulk row {validation.row_number} failed: {exc}")
                validation.messages.append("The row could not be saved.")
                errors.append(validation.to_error())
                continue

            existing.setdefault(data.rut, []).append(data.enrollment_fee)
            created_ids.append(commission.id)

        await self.db.commit()

        records = []
        for commission_id in created_ids:
            record = serialize_record(await self.records.get_commission(commission_id))
            records.append(record)
            await self.records.publish(RecordEventType.CREATED, record, "Record added by bulk upload")

        logger.info(f"Bulk import for advisor {advisor_id}: {len(records)} inserted, {len(errors)} failed")
        return {
            "inserted": len(records),
            "failed": len(errors),
            "errors": errors,
            "records": records,
        }
