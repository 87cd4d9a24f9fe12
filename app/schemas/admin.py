"""
Commission Tracker - Admin Schemas
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.commission import PaymentStatus
from app.schemas.record import RecordCreate


class AdvisorCreate(BaseModel):
    id: Optional[int] = Field(None, ge=1, description="CRM advisor id; generated when omitted")
    full_name: str = Field(..., min_length=1, max_length=150)
    email: Optional[EmailStr] = None


class AdvisorResponse(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AdvisorListResponse(BaseModel):
    advisors: List[AdvisorResponse]


class AdminStudentCreate(RecordCreate):
    """Enrollment entered by an administrator on behalf of an advisor."""
    advisor_id: int = Field(..., ge=1)


class AdminStudentUpdate(BaseModel):
    """Partial update across student, program and commission columns."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    first_names: Optional[str] = Field(None, min_length=1, max_length=60)
    last_names: Optional[str] = Field(None, min_length=1, max_length=60)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=12)
    program_code: Optional[str] = Field(None, min_length=1, max_length=12)
    program_name: Optional[str] = Field(None, min_length=1, max_length=120)
    cost_center: Optional[str] = Field(None, max_length=30)
    program_version: Optional[str] = Field(None, min_length=1, max_length=30)
    payment_status: Optional[PaymentStatus] = None
    commission_amount: Optional[Decimal] = Field(None, ge=0)
    enrollment_fee: Optional[Decimal] = Field(None, ge=0)
    enrollment_date: Optional[date] = None
    campus: Optional[str] = Field(None, max_length=60)
    advisor_comment: Optional[str] = None
    advisor_id: Optional[int] = Field(None, ge=1)

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone_spaces(cls, value):
        if isinstance(value, str):
            return "".join(value.split()) or None
        return value


class AdvisorCase(BaseModel):
    commission_id: UUID
    payment_status: Optional[str] = None
    commission_amount: float
    program: Optional[str] = None
    program_version: Optional[str] = None
    categories: List[str] = []
    student: Optional[str] = None
    student_rut: str
    enrollment_date: Optional[date] = None
    campus: Optional[str] = None


class AdvisorCaseSummary(BaseModel):
    advisor_id: int
    full_name: str
    email: Optional[str] = None
    total_cases: int
    total_commission: float
    total_enrollment_fee: float
    cases: List[AdvisorCase]


class SchemaSnapshot(BaseModel):
    """Every non-credential table dumped row by row, plus the advisor summary."""
    tables: Dict[str, List[Dict[str, Any]]]
    cases_by_advisor: List[AdvisorCaseSummary]
