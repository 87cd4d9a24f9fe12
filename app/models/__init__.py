"""
Commission Tracker - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.user import User, UserRole
from app.models.advisor import Advisor
from app.models.student import Student, Program
from app.models.commission import Commission, PaymentStatus, Category, commission_categories
from app.models.password_reset import PasswordResetToken
from app.models.calculation import CalculationBatch, CalculationCase

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "User",
    "UserRole",
    "Advisor",
    "Student",
    "Program",
    "Commission",
    "PaymentStatus",
    "Category",
    "commission_categories",
    "PasswordResetToken",
    "CalculationBatch",
    "CalculationCase",
]
