"""
Commission Tracker - Student and Program Models

Students are keyed by RUT and programs by catalog code; both are upserted
whenever an enrollment is registered.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Student(Base):
    """Enrolled student."""

    __tablename__ = "students"

    rut: Mapped[str] = mapped_column(String(12), primary_key=True)
    first_names: Mapped[str] = mapped_column(String(60), nullable=False)
    last_names: Mapped[str] = mapped_column(String(60), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_names, self.last_names) if part).strip()

    def __repr__(self) -> str:
        return f"<Student(rut={self.rut})>"


class Program(Base):
    """Academic program from the catalog."""

    __tablename__ = "programs"

    code: Mapped[str] = mapped_column(String(12), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    cost_center: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    def __repr__(self) -> str:
        return f"<Program(code={self.code})>"
