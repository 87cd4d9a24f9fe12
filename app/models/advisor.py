"""
Commission Tracker - Advisor Model
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.commission import Commission


class Advisor(Base):
    """Sales advisor. The id mirrors the advisor's CRM identifier."""

    __tablename__ = "advisors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    commissions: Mapped[List["Commission"]] = relationship(
        "Commission",
        back_populates="advisor",
    )

    def __repr__(self) -> str:
        return f"<Advisor(id={self.id}, full_name={self.full_name})>"
