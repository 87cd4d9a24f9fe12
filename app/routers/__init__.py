"""
Commission Tracker - Routers Package

FastAPI route handlers.

Routers:
- auth: Session login, logout and password reset
- records: Commission records, bulk imports and CSV exports
- admin: Administrator reporting and management
- accounting: Commission calculation review and history
- websocket: Real-time record notifications
"""

from app.routers import (
    accounting,
    admin,
    auth,
    records,
    websocket,
)

__all__ = [
    "accounting",
    "admin",
    "auth",
    "records",
    "websocket",
]
