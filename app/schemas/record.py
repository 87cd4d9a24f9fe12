"""
Commission Tracker - Record Schemas

Pydantic schemas for commission records, bulk imports and the dashboard
summary.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.commission import PaymentStatus


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class RecordCreate(BaseModel):
    """
    Enrollment logged by an advisor.

    Student and program are upserted from the same payload.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    rut: str = Field(..., min_length=1, max_length=12)
    first_names: str = Field(..., min_length=1, max_length=60)
    last_names: str = Field(..., min_length=1, max_length=60)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=12)
    program_code: str = Field(..., min_length=1, max_length=12)
    program_name: str = Field(..., min_length=1, max_length=120)
    cost_center: Optional[str] = Field(None, max_length=30)
    payment_status: Optional[PaymentStatus] = None
    enrollment_date: Optional[date] = None
    campus: Optional[str] = Field(None, max_length=60)
    commission_amount: Optional[Decimal] = Field(None, ge=0)
    enrollment_fee: Optional[Decimal] = Field(None, ge=0)
    program_version: Optional[str] = Field(None, max_length=30)
    advisor_comment: Optional[str] = None

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone_spaces(cls, value):
        if isinstance(value, str):
            return "".join(value.split()) or None
        return value


class RecordUpdate(BaseModel):
    """
    Partial update of a record. Only these columns can be changed; unknown
    keys are rejected.
    """
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    advisor_comment: Optional[str] = None
    campus: Optional[str] = Field(None, max_length=60)
    enrollment_date: Optional[date] = None
    enrollment_fee: Optional[Decimal] = Field(None, ge=0)
    program_version: Optional[str] = Field(None, min_length=1, max_length=30)
    payment_status: Optional[PaymentStatus] = None
    commission_amount: Optional[Decimal] = Field(None, ge=0)


class BulkManualRequest(BaseModel):
    """Rows typed into the bulk entry grid, keyed like the spreadsheet headers."""
    rows: List[Dict[str, Any]] = Field(..., min_length=1)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class RecordResponse(BaseModel):
    """Flat view of a commission with its student, program and advisor."""
    id: UUID
    title: str
    category: str
    amount: float
    status: str
    created_at: Optional[str] = None
    student_rut: str
    program_code: str
    program_version: Optional[str] = None
    advisor_comment: Optional[str] = None
    advisor: Optional[str] = None
    advisor_id: Optional[int] = None
    payment_status: Optional[str] = None
    enrollment_date: Optional[date] = None
    campus: Optional[str] = None
    enrollment_fee: Optional[float] = None
    student_first_names: Optional[str] = None
    student_last_names: Optional[str] = None
    student_email: Optional[str] = None
    student_phone: Optional[str] = None


class RecordEnvelope(BaseModel):
    record: RecordResponse


class RecordListResponse(BaseModel):
    records: List[RecordResponse]
    total: int


class ProgramResponse(BaseModel):
    code: str
    name: str
    cost_center: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProgramListResponse(BaseModel):
    programs: List[ProgramResponse]


class BulkRowError(BaseModel):
    """Row that could not be imported, echoed back so it can be corrected."""
    row: int
    rut: Optional[str] = None
    first_names: Optional[str] = None
    last_names: Optional[str] = None
    email: Optional[str] = None
    program_code: Optional[str] = None
    program_name: Optional[str] = None
    enrollment_fee: Optional[str] = None
    campus: Optional[str] = None
    program_version: Optional[str] = None
    messages: List[str]


class BulkImportResult(BaseModel):
    """Result of a bulk import operation."""
    inserted: int
    failed: int
    errors: List[BulkRowError]
    records: List[RecordResponse]


class TrendBucket(BaseModel):
    key: str
    month: str
    paid: int = 0
    pending: int = 0
    rejected: int = 0


class DashboardSummary(BaseModel):
    """Summary cards and monthly payment trend."""
    total_entries: int
    entries_this_month: int
    paid: int
    pending: int
    rejected: int
    total_amount: float
    month_amount: float
    paid_amount: float
    pending_amount: float
    rejected_amount: float
    trend: List[TrendBucket]
