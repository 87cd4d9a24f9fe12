"""
Commission Tracker - Commission Calculation Models

History of confirmed accounting calculations uploaded from spreadsheets.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import utcnow


class CalculationBatch(Base):
    """A confirmed calculation run over one uploaded file."""

    __tablename__ = "calculation_batches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    processed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    success_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=2), default=Decimal("0"), nullable=False)

    cases: Mapped[List["CalculationCase"]] = relationship(
        "CalculationCase",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="CalculationCase.order",
        lazy="selectin",
    )


class CalculationCase(Base):
    """One computed line of a calculation batch."""

    __tablename__ = "calculation_cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("calculation_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    program_code: Mapped[str] = mapped_column(String(12), nullable=False)
    program_version: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)

    batch: Mapped[CalculationBatch] = relationship("CalculationBatch", back_populates="cases")
