"""
Commission Tracker - Test Configuration

Pytest fixtures and configuration.
"""

import os
import tempfile

# Settings are read at import time; point them at throwaway resources first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-commission-tracker")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="commission-tracker-logs-"))

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_async_session
from app.models.advisor import Advisor
from app.models.commission import Commission, PaymentStatus
from app.models.student import Program, Student
from app.models.user import User, UserRole
from app.services.notification_hub import NotificationHub, get_notification_hub
from app.utils.security import create_access_token, get_password_hash
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"

TEST_PASSWORD = "TestPassword123!"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def hub() -> NotificationHub:
    """Isolated notification hub per test."""
    return NotificationHub()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, hub: NotificationHub) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session and hub overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_notification_hub] = lambda: hub

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

async def _create_user(
    db_session: AsyncSession,
    username: str,
    role: UserRole,
    advisor_id=None,
    email=None,
) -> User:
    user = User(
        username=username,
        hashed_password=get_password_hash(TEST_PASSWORD),
        full_name=username.split("@")[0].title(),
        email=email,
        role=role,
        advisor_id=advisor_id,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def make_headers(user: User) -> dict:
    token = create_access_token(data={
        "sub": str(user.id),
        "username": user.username,
        "role": user.role.value,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_advisor(db_session: AsyncSession) -> Advisor:
    advisor = Advisor(id=1, full_name="Ana Rojas", email="ana.rojas@example.com")
    db_session.add(advisor)
    await db_session.commit()
    return advisor


@pytest_asyncio.fixture
async def other_advisor(db_session: AsyncSession) -> Advisor:
    advisor = Advisor(id=2, full_name="Bruno Díaz", email="bruno.diaz@example.com")
    db_session.add(advisor)
    await db_session.commit()
    return advisor


@pytest_asyncio.fixture
async def advisor_user(db_session: AsyncSession, test_advisor: Advisor) -> User:
    return await _create_user(
        db_session,
        "ana.rojas@example.com",
        UserRole.ADVISOR,
        advisor_id=test_advisor.id,
        email="ana.rojas@example.com",
    )


@pytest_asyncio.fixture
async def other_advisor_user(db_session: AsyncSession, other_advisor: Advisor) -> User:
    return await _create_user(
        db_session,
        "bruno.diaz@example.com",
        UserRole.ADVISOR,
        advisor_id=other_advisor.id,
    )


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin", UserRole.ADMIN, email="admin@example.com")


@pytest_asyncio.fixture
async def accounting_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "contabilidad", UserRole.ACCOUNTING)


@pytest.fixture
def advisor_headers(advisor_user: User) -> dict:
    return make_headers(advisor_user)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return make_headers(admin_user)


@pytest.fixture
def accounting_headers(accounting_user: User) -> dict:
    return make_headers(accounting_user)


@pytest_asyncio.fixture
async def test_program(db_session: AsyncSession) -> Program:
    program = Program(code="MBA01", name="MBA Ejecutivo", cost_center="CC-100")
    db_session.add(program)
    await db_session.commit()
    return program


@pytest_asyncio.fixture
async def test_record(
    db_session: AsyncSession,
    test_advisor: Advisor,
    test_program: Program,
) -> Commission:
    """A pending enrollment owned by the first advisor."""
    student = Student(
        rut="12345678-K",
        first_names="Camila",
        last_names="Soto",
        email="camila.soto@example.com",
    )
    db_session.add(student)
    commission = Commission(
        student_rut=student.rut,
        program_code=test_program.code,
        program_version="1",
        advisor_id=test_advisor.id,
        commission_amount=Decimal("0"),
        enrollment_fee=Decimal("150000"),
        payment_status=PaymentStatus.PENDING,
        enrollment_date=date(2026, 3, 10),
        campus="Santiago",
    )
    db_session.add(commission)
    await db_session.commit()
    return commission


@pytest_asyncio.fixture
async def other_record(
    db_session: AsyncSession,
    other_advisor: Advisor,
    test_program: Program,
) -> Commission:
    """A paid enrollment owned by the second advisor."""
    student = Student(rut="9876543-2", first_names="Diego", last_names="Muñoz")
    db_session.add(student)
    commission = Commission(
        student_rut=student.rut,
        program_code=test_program.code,
        program_version="2",
        advisor_id=other_advisor.id,
        commission_amount=Decimal("85000"),
        enrollment_fee=Decimal("200000"),
        payment_status=PaymentStatus.PAID,
        enrollment_date=date(2026, 2, 5),
    )
    db_session.add(commission)
    await db_session.commit()
    return commission
