"""
Commission Tracker - Accounting Schemas

Schemas for the commission calculation review grid.
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


RowStatus = Literal["valid", "needs-review", "pending"]


class CalculationRowInput(BaseModel):
    program_code: Optional[str] = Field(None, max_length=12)
    program_version: Optional[str] = Field(None, max_length=30)


class CalculationRow(BaseModel):
    row_number: int
    program_code: Optional[str] = None
    program_version: Optional[str] = None
    status: RowStatus
    issues: List[str] = []


class CalculationPreview(BaseModel):
    """Evaluated rows of an uploaded calculation file."""
    file_name: str
    total_rows: int
    valid_count: int
    needs_review_count: int
    can_confirm: bool
    page: int
    page_size: int
    total_pages: int
    rows: List[CalculationRow]


class CalculationConfirmRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    rows: List[CalculationRowInput] = Field(..., min_length=1)


class CalculationCaseResponse(BaseModel):
    order: int
    program_code: str
    program_version: str
    amount: float


class CalculationBatchResponse(BaseModel):
    id: UUID
    file_name: str
    processed_at: datetime
    success_count: int
    total_amount: float
    cases: List[CalculationCaseResponse]


class CalculationHistoryResponse(BaseModel):
    batches: List[CalculationBatchResponse]
