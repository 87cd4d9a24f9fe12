"""
Commission Tracker - Commission Models

A commission row is one enrollment logged by an advisor: the student, the
program (and version) they enrolled in, the enrollment fee and the
commission owed, plus its payment state.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Column, Date, ForeignKey, Integer, Numeric, String, Table, Text, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.advisor import Advisor
from app.models.base import BaseModel
from app.models.student import Program, Student


class PaymentStatus(str, Enum):
    """Payment states as stored by the payments team."""
    APPROVED = "Aprobado"
    TOKU = "Toku"
    REJECTED = "Rechazado"
    WEBPAY = "Webpay"
    PAID = "Pagado"
    PENDING = "Pendiente de pago"


commission_categories = Table(
    "commission_categories",
    Base.metadata,
    Column("commission_id", ForeignKey("commissions.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Category(Base):
    """Case category attached to commissions (e.g. campaign or case type)."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, case_name={self.case_name})>"


class Commission(BaseModel):
    """
    Commission record for a single enrollment.

    ``commission_amount`` defaults to 0 until accounting settles it.
    """

    __tablename__ = "commissions"

    student_rut: Mapped[str] = mapped_column(
        String(12),
        ForeignKey("students.rut", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    program_code: Mapped[str] = mapped_column(
        String(12),
        ForeignKey("programs.code", onupdate="CASCADE"),
        nullable=False,
    )
    program_version: Mapped[str] = mapped_column(String(30), default="1", nullable=False)
    advisor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("advisors.id"),
        nullable=False,
        index=True,
    )

    commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    enrollment_fee: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
    )
    payment_status: Mapped[Optional[PaymentStatus]] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=PaymentStatus.PENDING,
        nullable=True,
    )
    enrollment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    campus: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    advisor_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    student: Mapped[Student] = relationship("Student", lazy="selectin")
    program: Mapped[Program] = relationship("Program", lazy="selectin")
    advisor: Mapped[Advisor] = relationship(
        "Advisor",
        back_populates="commissions",
        lazy="selectin",
    )
    categories: Mapped[List[Category]] = relationship(
        "Category",
        secondary=commission_categories,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Commission(id={self.id}, rut={self.student_rut}, program={self.program_code})>"
