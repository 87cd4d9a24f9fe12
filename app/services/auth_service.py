"""
Commission Tracker - Authentication Service

Business logic for login, account creation and password reset.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.advisor import Advisor
from app.models.password_reset import PasswordResetToken
from app.models.user import User, UserRole
from app.services.email_service import EmailService, email_service
from app.utils.error_handling import (
    BadRequestException,
    EmailDeliveryException,
    ErrorCode,
    NotFoundException,
    DuplicateEntryException,
)
from app.utils.security import (
    create_access_token,
    generate_reset_token,
    get_password_hash,
    hash_reset_token,
    verify_password,
)

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession, mailer: Optional[EmailService] = None):
        self.db = db
        self.mailer = mailer or email_service

    async def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by login name (case-insensitive)."""
        result = await self.db.execute(
            select(User).where(User.username == username.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get user by ID."""
        return await self.db.get(User, user_id)

    async def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """
        Authenticate user with username and password.

        Returns:
            User if authentication successful, None otherwise
        """
        user = await self.get_user_by_username(username)

        if not user:
            return None

        if not verify_password(password, user.hashed_password):
            return None

        return user

    def create_session_token(self, user: User) -> str:
        """JWT carried by the session cookie and returned at login."""
        token_data = {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role.value,
        }
        return create_access_token(
            token_data,
            expires_delta=timedelta(minutes=settings.session_ttl_minutes),
        )

    async def create_user(
        self,
        username: str,
        password: str,
        role: UserRole = UserRole.ADVISOR,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        advisor_id: Optional[int] = None,
    ) -> User:
        """Create an account. Advisor accounts may be linked to an advisor profile."""
        normalized = username.strip().lower()
        if await self.get_user_by_username(normalized):
            raise DuplicateEntryException("User", "username", normalized)

        if advisor_id is not None and await self.db.get(Advisor, advisor_id) is None:
            raise NotFoundException("Advisor", advisor_id)

        user = User(
            username=normalized,
            hashed_password=get_password_hash(password),
            full_name=full_name,
            email=email.lower() if email else None,
            role=role,
            advisor_id=advisor_id,
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Created {role.value} account {normalized}")
        return user

    async def ensure_bootstrap_admin(self) -> Optional[User]:
        """Create the configured bootstrap admin if it does not exist yet."""
        username = settings.bootstrap_admin_username
        password = settings.bootstrap_admin_password
        if not username or not password:
            return None

        existing = await self.get_user_by_username(username)
        if existing:
            return existing

        logger.info(f"Creating bootstrap admin account {username}")
        return await self.create_user(
            username=username,
            password=password,
            role=UserRole.ADMIN,
            full_name=settings.bootstrap_admin_full_name,
            email=settings.bootstrap_admin_email,
        )

    # ===========================================
    # PASSWORD RESET
    # ===========================================

    def _reset_email_for(self, user: User) -> Optional[str]:
        if user.email:
            return user.email
        # Usernames are usually institutional addresses
        if "@" in user.username:
            return user.username
        return None

    async def request_password_reset(self, username: str) -> bool:
        """
        Issue a reset token and email the link.

        Unknown users and users without an address are ignored silently so
        the endpoint does not reveal which accounts exist. Returns True when
        an email was sent.
        """
        user = await self.get_user_by_username(username)
        if not user or not user.is_active:
            logger.info("Password reset requested for unknown or inactive user")
            return False

        to_email = self._reset_email_for(user)
        if not to_email:
            logger.info(f"Password reset requested for {user.username} without an email address")
            return False

        now = datetime.now(timezone.utc)
        await self.db.execute(
            delete(PasswordResetToken).where(
                or_(
                    PasswordResetToken.user_id == user.id,
                    PasswordResetToken.expires_at < now,
                )
            )
        )

        raw_token = generate_reset_token()
        ttl = settings.password_reset_token_ttl_minutes
        self.db.add(PasswordResetToken(
            user_id=user.id,
            token_hash=hash_reset_token(raw_token),
            expires_at=now + timedelta(minutes=ttl),
        ))
        await self.db.commit()

        reset_url = f"{settings.app_base_url.rstrip('/')}/reset-password?token={raw_token}"
        sent = await self.mailer.send_password_reset(
            to_email=to_email,
            reset_url=reset_url,
            ttl_minutes=ttl,
            name=user.full_name,
        )
        if not sent:
            raise EmailDeliveryException()
        return True

    async def reset_password_with_token(self, token: str, new_password: str) -> User:
        """
        Consume a reset token and set the new password.

        Raises:
            BadRequestException: token unknown, already used or expired
        """
        result = await self.db.execute(
            select(PasswordResetToken).where(
                PasswordResetToken.token_hash == hash_reset_token(token)
            )
        )
        reset_token = result.scalar_one_or_none()
        now = datetime.now(timezone.utc)

        if (
            reset_token is None
            or reset_token.used_at is not None
            or _aware(reset_token.expires_at) <= now
        ):
            raise BadRequestException(
                "The reset link is invalid or has expired.",
                code=ErrorCode.RESET_TOKEN_INVALID,
            )

        user = await self.get_user_by_id(reset_token.user_id)
        if user is None:
            raise BadRequestException(
                "The reset link is invalid or has expired.",
                code=ErrorCode.RESET_TOKEN_INVALID,
            )

        user.hashed_password = get_password_hash(new_password)
        reset_token.used_at = now
        await self.db.commit()

        logger.info(f"Password reset completed for {user.username}")
        return user
