"""
Commission Tracker - Commission Calculation Service

Accounting uploads a sheet of program codes and versions, reviews the rows
that do not match the program catalog, and confirms the batch once every
row is valid. Confirmed batches are kept as calculation history.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.calculation import CalculationBatch, CalculationCase
from app.models.student import Program
from app.models.user import User
from app.utils.error_handling import (
    BulkImportException,
    BusinessRuleException,
    ErrorCode,
    NotFoundException,
)
from app.utils.spreadsheets import all_blank, cell_text, map_columns, read_spreadsheet

logger = logging.getLogger(__name__)


COLUMN_ALIASES = {
    "codigoprograma": "program_code",
    "codprograma": "program_code",
    "codigo": "program_code",
    "programacodigo": "program_code",
    "programcode": "program_code",
    "versionprograma": "program_version",
    "version": "program_version",
    "programversion": "program_version",
}

STATUS_PRIORITY = {"needs-review": 0, "pending": 1, "valid": 2}

DEFAULT_PAGE_SIZE = 12

BASE_AMOUNT = 75000
AMOUNT_STEP = 10000


@dataclass
class EvaluatedRow:
    row_number: int
    program_code: Optional[str]
    program_version: Optional[str]
    issues: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "needs-review" if self.issues else "valid"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "program_code": self.program_code,
            "program_version": self.program_version,
            "status": self.status,
            "issues": list(self.issues),
        }


def estimate_amount(program_code: str, index: int) -> int:
    """
    Estimated commission for the case at ``index`` (0-based).

    Deterministic in the code and position: 75,000 plus 0-4 steps of 10,000.
    """
    seed = sum(ord(ch) for ch in program_code) + index * 137
    return BASE_AMOUNT + (seed % 5) * AMOUNT_STEP


def evaluate_row(row_number: int, code: Optional[str], version: Optional[str], catalog: Set[str]) -> EvaluatedRow:
    code = (code or "").strip().upper() or None
    version = (version or "").strip() or None
    row = EvaluatedRow(row_number=row_number, program_code=code, program_version=version)
    if not code:
        row.issues.append("Program code is required.")
    elif code not in catalog:
        row.issues.append("Code does not exist in the catalog.")
    if not version:
        row.issues.append("Program version is required.")
    return row


def sort_rows(rows: Iterable[EvaluatedRow]) -> List[EvaluatedRow]:
    """Rows needing review first, then pending, then valid; ties by row number."""
    return sorted(rows, key=lambda r: (STATUS_PRIORITY.get(r.status, 3), r.row_number))


def serialize_batch(batch: CalculationBatch) -> Dict[str, Any]:
    return {
        "id": batch.id,
        "file_name": batch.file_name,
        "processed_at": batch.processed_at,
        "success_count": batch.success_count,
        "total_amount": float(batch.total_amount),
        "cases": [
            {
                "order": case.order,
                "program_code": case.program_code,
                "program_version": case.program_version,
                "amount": float(case.amount),
            }
            for case in batch.cases
        ],
    }


class CalculationService:
    """Service for accounting commission calculations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def program_catalog(self) -> Set[str]:
        result = await self.db.execute(select(Program.code))
        return {code.upper() for code in result.scalars().all()}

    async def evaluate(self, rows: List[Dict[str, Optional[str]]]) -> List[EvaluatedRow]:
        """Check ``[{"row_number", "program_code", "program_version"}]`` against the catalog."""
        catalog = await self.program_catalog()
        return [
            evaluate_row(row["row_number"], row.get("program_code"), row.get("program_version"), catalog)
            for row in rows
        ]

    async def preview(
        self,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """Parse an uploaded calculation sheet and return the review grid."""
        if len(content) > settings.bulk_upload_max_bytes:
            raise BulkImportException(
                "The file exceeds the maximum allowed size.",
                details={"max_bytes": settings.bulk_upload_max_bytes},
            )

        parsed = []
        for sheet_row in read_spreadsheet(content, filename, content_type):
            mapped = map_columns(sheet_row.values, COLUMN_ALIASES)
            if all_blank(mapped.values()):
                continue
            parsed.append({
                "row_number": sheet_row.row_number,
                "program_code": cell_text(mapped.get("program_code")),
                "program_version": cell_text(mapped.get("program_version")),
            })

        if not parsed:
            raise BulkImportException("The file has no program code or version rows to process.")
        if len(parsed) > settings.bulk_max_rows:
            raise BulkImportException(
                f"The file has more than {settings.bulk_max_rows} rows.",
                details={"rows": len(parsed), "max_rows": settings.bulk_max_rows},
            )

        rows = sort_rows(await self.evaluate(parsed))
        needs_review = sum(1 for row in rows if row.status == "needs-review")

        page_size = max(page_size, 1)
        total_pages = max(math.ceil(len(rows) / page_size), 1)
        page = min(max(page, 1), total_pages)
        start = (page - 1) * page_size

        logger.info(f"Calculation preview {filename!r}: {len(rows)} row(s), {needs_review} to review")
        return {
            "file_name": filename or "upload",
            "total_rows": len(rows),
            "valid_count": len(rows) - needs_review,
            "needs_review_count": needs_review,
            "can_confirm": needs_review == 0,
            "page": page,
            "page_size": page_size,
            "total_pages": total_pages,
            "rows": [row.to_dict() for row in rows[start:start + page_size]],
        }

    async def confirm(self, user: User, file_name: str, rows: List[Dict[str, Optional[str]]]) -> Dict[str, Any]:
        """
        Compute and store a batch. Refused while any row still needs review.
        """
        numbered = [
            {"row_number": index, **row}
            for index, row in enumerate(rows, start=1)
        ]
        evaluated = await self.evaluate(numbered)
        pending_review = [row for row in evaluated if row.status != "valid"]
        if pending_review:
            raise BusinessRuleException(
                "Some rows still need review before confirming.",
                rule="all rows valid",
                code=ErrorCode.CALCULATION_NEEDS_REVIEW,
                details={"rows": [row.to_dict() for row in pending_review]},
            )

        batch = CalculationBatch(
            id=uuid.uuid4(),
            file_name=file_name,
            processed_at=datetime.now(timezone.utc),
            processed_by_id=user.id,
        )
        total = Decimal("0")
        for index, row in enumerate(evaluated):
            amount = Decimal(estimate_amount(row.program_code, index))
            total += amount
            batch.cases.append(CalculationCase(
                order=index + 1,
                program_code=row.program_code,
                program_version=row.program_version or "1",
                amount=amount,
            ))
        batch.success_count = len(evaluated)
        batch.total_amount = total

        self.db.add(batch)
        await self.db.commit()

        logger.info(f"Calculation batch {batch.id} confirmed by {user.username}: {len(evaluated)} case(s)")
        return serialize_batch(batch)

    async def history(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(CalculationBatch).order_by(CalculationBatch.processed_at.desc())
        )
        return [serialize_batch(batch) for batch in result.scalars().all()]

    async def get_batch(self, batch_id: uuid.UUID) -> Dict[str, Any]:
        batch = await self.db.get(CalculationBatch, batch_id)
        if batch is None:
            raise NotFoundException("Calculation batch", batch_id)
        return serialize_batch(batch)
