"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.auth.dependencies import create_access_token
from leavedesk.common.constants import LeaveStatus, UserRole
from leavedesk.common.rate_limit import limiter
from leavedesk.database import Base, get_db, session_scope
from leavedesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leavedesk.core_hr.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401
import leavedesk.leave_balances.models  # noqa: F401
import leavedesk.leave_types.models  # noqa: F401

from leavedesk.core_hr.models import Employee
from leavedesk.leave.models import LeaveApplication
from leavedesk.leave_balances.models import LeaveBalance
from leavedesk.leave_types.models import LeaveType

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Clear slowapi's in-memory counters so tests do not share quota."""
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with session_scope(TestSessionFactory) as session:
        yield session


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def make_employee(
    db: AsyncSession,
    *,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    is_active: bool = True,
) -> Employee:
    code = uuid.uuid4().hex[:6].upper()
    employee = Employee(
        id=uuid.uuid4(),
        employee_code=f"LD-{code}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{code.lower()}@leavedesk.test",
        is_active=is_active,
    )
    db.add(employee)
    await db.flush()
    return employee


async def make_leave_type(
    db: AsyncSession,
    *,
    name: str = "ANNUAL",
    default_days_per_year: int = 20,
    requires_document: bool = False,
    is_active: bool = True,
    color: Optional[str] = "#2196F3",
) -> LeaveType:
    leave_type = LeaveType(
        id=uuid.uuid4(),
        name=name,
        description=f"{name.title()} leave",
        default_days_per_year=default_days_per_year,
        requires_document=requires_document,
        color=color,
        is_active=is_active,
    )
    db.add(leave_type)
    await db.flush()
    return leave_type


async def make_balance(
    db: AsyncSession,
    employee: Employee,
    leave_type: LeaveType,
    *,
    year: int = 2025,
    total_days: int = 12,
    used_days: int = 0,
    created_at: Optional[datetime] = None,
) -> LeaveBalance:
    balance = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        year=year,
        total_days=total_days,
        used_days=used_days,
    )
    if created_at is not None:
        balance.created_at = created_at
    db.add(balance)
    await db.flush()
    return balance


async def make_application(
    db: AsyncSession,
    employee: Employee,
    leave_type: LeaveType,
    *,
    start_date: date = date(2025, 3, 10),
    end_date: date = date(2025, 3, 12),
    status: LeaveStatus = LeaveStatus.pending,
    reason: str = "Family function out of town",
    created_at: Optional[datetime] = None,
) -> LeaveApplication:
    """Insert an application directly, bypassing the overlap check."""
    application = LeaveApplication(
        id=uuid.uuid4(),
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        start_date=start_date,
        end_date=end_date,
        total_days=(end_date - start_date).days + 1,
        reason=reason,
        status=status,
    )
    if created_at is not None:
        application.created_at = created_at
    db.add(application)
    await db.flush()
    return application


@pytest.fixture
async def test_employee(db) -> Employee:
    employee = await make_employee(db, first_name="Asha", last_name="Rao")
    await db.commit()
    return employee


@pytest.fixture
async def hr_admin(db) -> Employee:
    employee = await make_employee(db, first_name="Hana", last_name="Admin")
    await db.commit()
    return employee


@pytest.fixture
async def annual_type(db) -> LeaveType:
    leave_type = await make_leave_type(db, name="ANNUAL", default_days_per_year=20)
    await db.commit()
    return leave_type


# ── Auth helpers ────────────────────────────────────────────────────

def auth_headers(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
) -> dict[str, str]:
    """Authorization header carrying a freshly signed access token."""
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}


@pytest.fixture
def employee_headers(test_employee) -> dict[str, str]:
    return auth_headers(test_employee.id)


@pytest.fixture
def admin_headers(hr_admin) -> dict[str, str]:
    return auth_headers(hr_admin.id, UserRole.hr_admin)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
