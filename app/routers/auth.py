"""
Commission Tracker - Authentication Router

API endpoints for session login, logout and password reset.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.dependencies import get_current_active_user
from app.models.user import User
from app.schemas.auth import (
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    UserResponse,
)
from app.services.auth_service import AuthService
from app.services.email_service import EmailService, email_service


router = APIRouter()


def get_email_service() -> EmailService:
    return email_service


def _cookie_options() -> dict:
    if settings.is_production:
        return {"httponly": True, "secure": True, "samesite": "none", "path": "/"}
    return {"httponly": True, "secure": False, "samesite": "lax", "path": "/"}


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login user",
    description="Authenticate with username and password. Sets the session cookie and returns the token.",
)
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
):
    """Login with username and password."""
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(
        username=request.username,
        password=request.password,
    )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    token = auth_service.create_session_token(user)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_minutes * 60,
        **_cookie_options(),
    )

    return LoginResponse(user=UserResponse.model_validate(user), token=token)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Logout user",
    description="Clear the session cookie.",
)
async def logout(
    current_user: User = Depends(get_current_active_user),
):
    """
    Logout user.

    Tokens are stateless; clearing the cookie ends the browser session.
    """
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    options = _cookie_options()
    response.delete_cookie(
        key=settings.session_cookie_name,
        path=options["path"],
        secure=options["secure"],
        httponly=options["httponly"],
        samesite=options["samesite"],
    )
    return response


@router.get(
    "/me",
    response_model=CurrentUserResponse,
    summary="Get current user",
)
async def get_me(
    current_user: User = Depends(get_current_active_user),
):
    return CurrentUserResponse(user=UserResponse.model_validate(current_user))


@router.post(
    "/password-reset/request",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Request password reset",
    description="Email a password reset link. Always answers 204 so account existence is not revealed.",
)
async def request_password_reset(
    request: PasswordResetRequest,
    db: AsyncSession = Depends(get_async_session),
    mailer: EmailService = Depends(get_email_service),
):
    """Request password reset email."""
    auth_service = AuthService(db, mailer)
    await auth_service.request_password_reset(request.username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/password-reset/confirm",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset password with token",
    description="Set a new password using a valid reset token.",
)
async def confirm_password_reset(
    request: PasswordResetConfirm,
    db: AsyncSession = Depends(get_async_session),
):
    """Reset password using reset token."""
    auth_service = AuthService(db)
    await auth_service.reset_password_with_token(
        token=request.token,
        new_password=request.new_password,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
