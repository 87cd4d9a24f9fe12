"""
Commission Tracker - Records Router

API endpoints for commission records: listing, creation, partial updates,
deletion, bulk imports and CSV exports.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_current_active_user
from app.models.user import User
from app.schemas.record import (
    BulkImportResult,
    BulkManualRequest,
    DashboardSummary,
    ProgramListResponse,
    ProgramResponse,
    RecordCreate,
    RecordEnvelope,
    RecordListResponse,
    RecordUpdate,
)
from app.services.bulk_import_service import BulkImportService
from app.services.dashboard_service import DashboardService
from app.services.notification_hub import NotificationHub, get_notification_hub
from app.services.record_service import RecordService


router = APIRouter()

# Routes mounted directly under /api
catalog_router = APIRouter()


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _list_programs(db: AsyncSession) -> ProgramListResponse:
    programs = await RecordService(db).list_programs()
    return ProgramListResponse(programs=[ProgramResponse.model_validate(p) for p in programs])


# ===========================================
# LISTING
# ===========================================

@router.get(
    "",
    response_model=RecordListResponse,
    summary="List records",
    description="Records visible to the current user, newest enrollment first. Advisors only see their own.",
)
async def list_records(
    page: int = Query(1, description="Page number (1-based)"),
    limit: int = Query(50, description="Page size, clamped to 1..1000"),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    records, total = await RecordService(db).list_records(current_user, page=page, limit=limit)
    return RecordListResponse(records=records, total=total)


@router.get(
    "/summary",
    response_model=DashboardSummary,
    summary="Dashboard summary",
    description="Status counts, amounts and the monthly payment trend for the visible records.",
)
async def get_summary(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return await DashboardService(db).get_summary(current_user)


@router.get(
    "/export",
    summary="Export records to CSV",
    description="Visible records filtered by status bucket and, optionally, the current month.",
)
async def export_records(
    status_filter: str = Query("all", alias="status", description="all, paid, pending or rejected"),
    current_month: bool = Query(False, description="Only records from the current month"),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    filename, content = await RecordService(db).export_records_csv(
        current_user,
        status=status_filter,
        current_month=current_month,
    )
    return _csv_response(content, filename)


@router.get(
    "/programs",
    response_model=ProgramListResponse,
    summary="Program catalog",
)
async def list_programs(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return await _list_programs(db)


# ===========================================
# CREATE / BULK
# ===========================================

@router.post(
    "",
    response_model=RecordEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create record",
    description="Register an enrollment for the current advisor, upserting the student and program.",
)
async def create_record(
    payload: RecordCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    record = await RecordService(db, hub).create_record(current_user, payload)
    return RecordEnvelope(record=record)


@router.post(
    "/bulk",
    response_model=BulkImportResult,
    summary="Bulk upload records",
    description="Import enrollments from a CSV or XLSX template (max 2 MB, 500 rows).",
)
async def bulk_upload(
    file: UploadFile = File(..., description="CSV or XLSX template"),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    content = await file.read()
    return await BulkImportService(db, hub).import_file(
        current_user,
        content,
        filename=file.filename,
        content_type=file.content_type,
    )


async def _bulk_manual(
    payload: BulkManualRequest,
    current_user: User,
    db: AsyncSession,
    hub: NotificationHub,
):
    return await BulkImportService(db, hub).import_manual(current_user, payload.rows)


@router.post(
    "/bulk/manual",
    response_model=BulkImportResult,
    summary="Bulk create records from the entry grid",
)
async def bulk_manual(
    payload: BulkManualRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    return await _bulk_manual(payload, current_user, db, hub)


# ===========================================
# SINGLE RECORD
# ===========================================

@router.get(
    "/{record_id}/export",
    summary="Export one record to CSV",
)
async def export_record(
    record_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    content = await RecordService(db).export_record_csv(current_user, record_id)
    return _csv_response(content, f"comision-{record_id}.csv")


@router.put(
    "/{record_id}",
    response_model=RecordEnvelope,
    summary="Update record",
    description="Partial update. Advisors edit their own records; payment state is reserved for admin and accounting.",
)
async def update_record(
    record_id: UUID,
    payload: RecordUpdate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    record = await RecordService(db, hub).update_record(current_user, record_id, payload)
    return RecordEnvelope(record=record)


@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete record",
)
async def delete_record(
    record_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    await RecordService(db, hub).delete_record(current_user, record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ===========================================
# /api ALIASES
# ===========================================

@catalog_router.get(
    "/programs",
    response_model=ProgramListResponse,
    summary="Program catalog",
)
async def list_programs_catalog(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
):
    return await _list_programs(db)


@catalog_router.post(
    "/carga-masiva",
    response_model=BulkImportResult,
    summary="Bulk create records (entry grid)",
)
async def bulk_manual_alias(
    payload: BulkManualRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    return await _bulk_manual(payload, current_user, db, hub)
