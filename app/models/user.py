"""
Commission Tracker - User Model

User accounts with role-based access control.

Roles:
- Advisor: logs enrollments for the advisor profile linked to the account
- Admin: sees and manages every advisor's records
- Accounting: reconciles payment states and runs commission calculations
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.advisor import Advisor


class UserRole(str, Enum):
    """Application roles."""
    ADVISOR = "advisor"
    ADMIN = "admin"
    ACCOUNTING = "accounting"


class User(BaseModel):
    """
    User model for authentication and authorization.

    Advisor accounts carry ``advisor_id``; records are scoped by it.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    # Institutional address used for password reset links
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.ADVISOR,
        nullable=False,
    )
    advisor_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("advisors.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    advisor: Mapped[Optional["Advisor"]] = relationship("Advisor", lazy="selectin")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def sees_all_records(self) -> bool:
        """Admin and accounting work across every advisor."""
        return self.role in (UserRole.ADMIN, UserRole.ACCOUNTING)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"
