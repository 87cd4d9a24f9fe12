"""
Commission Tracker - Security Middleware

FastAPI middleware for:
1. Security Headers
2. Activity Logging (one line per request in activity.log)
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.utils.security import verify_access_token

logger = logging.getLogger(__name__)

activity_logger = logging.getLogger("commission_tracker.activity")

ACTIVITY_LOG_FILE = "activity.log"


# ============================================================================
# SECURITY HEADERS MIDDLEWARE
# ============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers:
    - Content-Security-Policy
    - X-Content-Type-Options
    - X-Frame-Options
    - Strict-Transport-Security (production only)
    - Referrer-Policy
    """

    DEFAULT_CSP = "default-src 'none'; frame-ancestors 'none'"

    # Swagger UI loads its assets from a CDN
    DOCS_PATHS = ("/api/docs", "/api/redoc")

    def __init__(
        self,
        app: FastAPI,
        csp_policy: Optional[str] = None,
        development_mode: bool = False,
    ):
        super().__init__(app)
        self.development_mode = development_mode
        self.csp_policy = csp_policy or self.DEFAULT_CSP

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if not request.url.path.startswith(self.DOCS_PATHS):
            response.headers["Content-Security-Policy"] = self.csp_policy

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if not self.development_mode:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


# ============================================================================
# ACTIVITY LOGGING MIDDLEWARE
# ============================================================================

def request_actor(request: Request) -> str:
    """Username carried by the request's bearer token or session cookie, else ``anon``."""
    token = None
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token:
        token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return "anon"
    payload = verify_access_token(token)
    if not payload:
        return "anon"
    return payload.get("username") or payload.get("sub") or "anon"


class ActivityLoggingMiddleware(BaseHTTPMiddleware):
    """
    Record every HTTP request in the activity log.

    Line format (tab separated):
        timestamp  actor  METHOD  path  status  duration
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        actor = request_actor(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        activity_logger.info(
            "\t".join([
                datetime.now(timezone.utc).isoformat(),
                actor,
                request.method,
                request.url.path,
                str(response.status_code),
                f"{duration_ms:.0f}ms",
            ])
        )

        if response.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} - {response.status_code} - {actor}")

        response.headers["X-Response-Time"] = f"{duration_ms:.0f}ms"
        return response


def configure_activity_log(log_dir: Optional[str] = None) -> logging.Logger:
    """Attach the activity.log file handler once."""
    log_dir = log_dir or settings.log_dir
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.abspath(os.path.join(log_dir, ACTIVITY_LOG_FILE))

    for handler in activity_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == path:
            return activity_logger

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    activity_logger.addHandler(handler)
    activity_logger.setLevel(logging.INFO)
    activity_logger.propagate = False
    return activity_logger


# ============================================================================
# SETUP FUNCTION
# ============================================================================

def setup_security_middleware(
    app: FastAPI,
    development_mode: bool = False,
    activity_log_enabled: bool = True,
):
    """
    Setup all security middleware for the application.

    Args:
        app: FastAPI application instance
        development_mode: If True, skips HSTS
        activity_log_enabled: Write one line per request to activity.log
    """
    # Later middleware wraps earlier ones
    app.add_middleware(
        SecurityHeadersMiddleware,
        development_mode=development_mode,
    )

    if activity_log_enabled:
        configure_activity_log()
        app.add_middleware(ActivityLoggingMiddleware)

    logger.info(
        f"Security middleware configured: "
        f"activity_log={activity_log_enabled}, "
        f"development_mode={development_mode}"
    )
