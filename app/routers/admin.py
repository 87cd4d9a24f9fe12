"""
Commission Tracker - Admin Router

Administrator-only endpoints: schema snapshot, cross-advisor listings,
advisor and account management, and student entries on behalf of advisors.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import require_admin
from app.models.user import User
from app.schemas.admin import (
    AdminStudentCreate,
    AdminStudentUpdate,
    AdvisorCreate,
    AdvisorListResponse,
    AdvisorResponse,
    SchemaSnapshot,
)
from app.schemas.auth import UserCreateRequest, UserResponse
from app.schemas.record import RecordEnvelope, RecordListResponse
from app.services.admin_service import AdminService
from app.services.auth_service import AuthService
from app.services.notification_hub import NotificationHub, get_notification_hub


router = APIRouter()


@router.get(
    "/schema",
    response_model=SchemaSnapshot,
    summary="Database snapshot",
    description="Every non-credential table plus cases grouped by advisor.",
)
async def get_schema_snapshot(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    return await AdminService(db).schema_snapshot()


@router.get(
    "/commissions",
    response_model=RecordListResponse,
    summary="List all commissions",
)
async def list_commissions(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    records = await AdminService(db).list_commissions()
    return RecordListResponse(records=records, total=len(records))


# ===========================================
# ADVISORS AND ACCOUNTS
# ===========================================

@router.get(
    "/advisors",
    response_model=AdvisorListResponse,
    summary="List advisors",
)
async def list_advisors(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    advisors = await AdminService(db).list_advisors()
    return AdvisorListResponse(advisors=[AdvisorResponse.model_validate(a) for a in advisors])


@router.post(
    "/advisors",
    response_model=AdvisorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create advisor",
)
async def create_advisor(
    payload: AdvisorCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    advisor = await AdminService(db).create_advisor(payload)
    return AdvisorResponse.model_validate(advisor)


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user account",
    description="Create an advisor, admin or accounting login. Advisor accounts may link an advisor profile.",
)
async def create_user(
    payload: UserCreateRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    user = await AuthService(db).create_user(
        username=payload.username,
        password=payload.password,
        role=payload.role,
        full_name=payload.full_name,
        email=str(payload.email) if payload.email else None,
        advisor_id=payload.advisor_id,
    )
    return UserResponse.model_validate(user)


# ===========================================
# STUDENT ENTRIES
# ===========================================

@router.post(
    "/students",
    response_model=RecordEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create student entry",
)
async def create_student_entry(
    payload: AdminStudentCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    record = await AdminService(db, hub).create_student_entry(payload)
    return RecordEnvelope(record=record)


@router.put(
    "/students/{commission_id}",
    response_model=RecordEnvelope,
    summary="Update student entry",
)
async def update_student_entry(
    commission_id: UUID,
    payload: AdminStudentUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    record = await AdminService(db, hub).update_student_entry(commission_id, payload)
    return RecordEnvelope(record=record)


@router.delete(
    "/students/{commission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete student entry",
)
async def delete_student_entry(
    commission_id: UUID,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    await AdminService(db, hub).delete_student_entry(commission_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
