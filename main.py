"""
Commission Tracker - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import async_session_maker, close_db, init_db
from app.middleware.security import setup_security_middleware
from app.utils.error_handling import setup_exception_handlers


def configure_logging() -> None:
    """Console output plus application.log under the configured log directory."""
    os.makedirs(settings.log_dir, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(settings.log_dir, "application.log"), encoding="utf-8"),
        ],
    )


# Configure logging
configure_logging()
logger = logging.getLogger(__name__)


async def seed_bootstrap_admin():
    """
    Create the configured bootstrap admin on startup so a fresh database
    always has one account able to manage the rest.
    """
    from app.services.auth_service import AuthService

    async with async_session_maker() as session:
        admin = await AuthService(session).ensure_bootstrap_admin()
        if admin is not None:
            logger.info(f"Bootstrap admin ready: {admin.username}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - production schemas are provisioned separately)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    await seed_bootstrap_admin()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Enrollment commission tracking for advisors, administrators and accounting",
    version="0.1.0",
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_security_middleware(
    app=app,
    development_mode=settings.is_development,
)

setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

from app.routers import accounting, admin, auth, records, websocket  # noqa: E402

# Authentication
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])

# Commission records
app.include_router(records.router, prefix="/api/records", tags=["Records"])
app.include_router(records.catalog_router, prefix="/api", tags=["Records"])

# Administration
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])

# Accounting
app.include_router(accounting.router, prefix="/api/accounting", tags=["Accounting"])

# Real-time notifications
app.include_router(websocket.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.is_development,
    )
