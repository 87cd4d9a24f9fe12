"""
Commission Tracker - Middleware Package

Security and request logging middleware for FastAPI.
"""

from app.middleware.security import (
    ActivityLoggingMiddleware,
    SecurityHeadersMiddleware,
    configure_activity_log,
    request_actor,
    setup_security_middleware,
)

__all__ = [
    "ActivityLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "configure_activity_log",
    "request_actor",
    "setup_security_middleware",
]
