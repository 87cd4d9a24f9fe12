"""
Commission Tracker - Services Package

Business logic services.
"""

from app.services.auth_service import AuthService
from app.services.email_service import EmailService, email_service
from app.services.notification_hub import NotificationHub, notification_hub, get_notification_hub
from app.services.record_service import RecordService
from app.services.bulk_import_service import BulkImportService
from app.services.admin_service import AdminService
from app.services.calculation_service import CalculationService
from app.services.dashboard_service import DashboardService

__all__ = [
    "AuthService",
    "EmailService",
    "email_service",
    "NotificationHub",
    "notification_hub",
    "get_notification_hub",
    "RecordService",
    "BulkImportService",
    "AdminService",
    "CalculationService",
    "DashboardService",
]
