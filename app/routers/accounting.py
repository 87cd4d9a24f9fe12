"""
Commission Tracker - Accounting Router

Commission calculation review and history for the accounting team.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import require_accounting
from app.models.user import User
from app.schemas.accounting import (
    CalculationBatchResponse,
    CalculationConfirmRequest,
    CalculationHistoryResponse,
    CalculationPreview,
)
from app.services.calculation_service import DEFAULT_PAGE_SIZE, CalculationService


router = APIRouter()


@router.post(
    "/calculations/preview",
    response_model=CalculationPreview,
    summary="Preview a calculation file",
    description="Parse a CSV or XLSX file of program codes and versions and flag rows that need review.",
)
async def preview_calculation(
    file: UploadFile = File(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=500),
    current_user: User = Depends(require_accounting),
    db: AsyncSession = Depends(get_async_session),
):
    content = await file.read()
    return await CalculationService(db).preview(
        content,
        filename=file.filename,
        content_type=file.content_type,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/calculations/confirm",
    response_model=CalculationBatchResponse,
    summary="Confirm a calculation batch",
)
async def confirm_calculation(
    payload: CalculationConfirmRequest,
    current_user: User = Depends(require_accounting),
    db: AsyncSession = Depends(get_async_session),
):
    rows = [row.model_dump() for row in payload.rows]
    return await CalculationService(db).confirm(current_user, payload.file_name, rows)


@router.get(
    "/calculations",
    response_model=CalculationHistoryResponse,
    summary="Calculation history",
)
async def list_calculations(
    current_user: User = Depends(require_accounting),
    db: AsyncSession = Depends(get_async_session),
):
    return CalculationHistoryResponse(batches=await CalculationService(db).history())


@router.get(
    "/calculations/{batch_id}",
    response_model=CalculationBatchResponse,
    summary="Get calculation batch",
)
async def get_calculation(
    batch_id: UUID,
    current_user: User = Depends(require_accounting),
    db: AsyncSession = Depends(get_async_session),
):
    return await CalculationService(db).get_batch(batch_id)
