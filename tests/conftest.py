"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL. The
exclusion constraint on leave dates is PostgreSQL-only; the service-level
overlap check is what these tests exercise.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_portal.common.constants import (
    REQUIRED_PERMISSIONS,
    ApprovalStatus,
    UserRole,
    permission_category,
)
from leave_portal.config import settings
from leave_portal.database import Base, discard_after_commit, get_db, run_after_commit
from leave_portal.main import create_app

# Import ALL model modules so every table is in Base.metadata
import leave_portal.authorizations.models  # noqa: F401
import leave_portal.common.audit  # noqa: F401
import leave_portal.leave.models  # noqa: F401
import leave_portal.notifications.models  # noqa: F401
import leave_portal.permissions.models  # noqa: F401
import leave_portal.users.models  # noqa: F401

from leave_portal.leave.models import LeaveApplication, LeaveBalance, LeaveType
from leave_portal.permissions.models import Permission, UserPermission
from leave_portal.users.models import User

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
    return "TEXT"


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


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the
    # transaction (pysqlite's legacy handling breaks begin_nested()).
    dbapi_conn.isolation_level = None
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )


@event.listens_for(engine.sync_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


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
    """Clear slowapi's in-memory counters between tests."""
    from leave_portal.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
            await run_after_commit(session)
        except Exception:
            await session.rollback()
            discard_after_commit(session)
            raise
        finally:
            await session.close()


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
# API tests commit their seed data before calling the client: every
# session shares one SQLite connection, and a failed request rolls it back.

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


async def _commit(db: AsyncSession) -> None:
    """Commit like the request dependency does, running after-commit hooks."""
    await db.commit()
    await run_after_commit(db)


# ── Model factories ─────────────────────────────────────────────────

async def _seed_user(
    db: AsyncSession,
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    role: UserRole = UserRole.employee,
    department: Optional[str] = "Engineering",
    manager_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email or f"user.{uuid.uuid4().hex[:8]}@example.com",
        first_name=first_name,
        last_name=last_name,
        role=role,
        department=department,
        manager_id=manager_id,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def _seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """Insert the full permission catalog; returns it keyed by permission_key."""
    catalog: dict[str, Permission] = {}
    for key, name, description in REQUIRED_PERMISSIONS:
        permission = Permission(
            id=uuid.uuid4(),
            permission_key=key,
            permission_name=name,
            description=description,
            category=permission_category(key),
            is_active=True,
        )
        db.add(permission)
        catalog[key] = permission
    await db.flush()
    return catalog


async def _grant(
    db: AsyncSession,
    user: User,
    catalog: dict[str, Permission],
    keys: Iterable[str],
) -> None:
    for key in keys:
        db.add(
            UserPermission(
                id=uuid.uuid4(),
                user_id=user.id,
                permission_id=catalog[key].id,
                granted=True,
            )
        )
    await db.flush()


async def _seed_leave_type(
    db: AsyncSession,
    *,
    name: str = "Casual",
    code: str = "CL",
    max_days: int = 12,
    is_active: bool = True,
) -> LeaveType:
    leave_type = LeaveType(
        id=uuid.uuid4(),
        name=name,
        code=code,
        max_days=max_days,
        is_active=is_active,
    )
    db.add(leave_type)
    await db.flush()
    return leave_type


async def _seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    leave_type: str = "Casual",
    year: int = 2026,
    total: Decimal = Decimal("12"),
    used: Decimal = Decimal("0"),
) -> LeaveBalance:
    balance = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type=leave_type,
        year=year,
        total_balance=total,
        used_balance=used,
    )
    db.add(balance)
    await db.flush()
    return balance


async def _seed_leave(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    leave_type: str = "Casual",
    start_date: date = date(2026, 3, 10),
    end_date: date = date(2026, 3, 12),
    hod_status: str = "Pending",
    admin_status: str = "Pending",
) -> LeaveApplication:
    leave = LeaveApplication(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        number_of_days=(end_date - start_date).days + 1,
        reason="Family function",
        hod_status=ApprovalStatus(hod_status),
        admin_status=ApprovalStatus(admin_status),
    )
    db.add(leave)
    await db.flush()
    return leave


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


# ── Scenario fixture: department with employee, HOD and admin ───────

EMPLOYEE_KEYS = (
    "leave.apply", "leave.view.own", "leave.edit", "leave.delete",
    "authorization.apply",
)
HOD_KEYS = EMPLOYEE_KEYS + ("leave.approve", "leave.reject")


@pytest.fixture
async def org(db) -> dict:
    """Employee reporting to a HOD, an admin, a Casual leave type and a
    12-day 2026 balance for the employee."""
    catalog = await _seed_permissions(db)
    admin = await _seed_user(
        db, email="admin@example.com", first_name="Asha", role=UserRole.admin,
        department="HR",
    )
    hod = await _seed_user(
        db, email="hod@example.com", first_name="Hari", role=UserRole.hod,
    )
    employee = await _seed_user(
        db, email="emp@example.com", first_name="Esha", manager_id=hod.id,
    )
    await _grant(db, employee, catalog, EMPLOYEE_KEYS)
    await _grant(db, hod, catalog, HOD_KEYS)
    await _seed_leave_type(db)
    await _seed_balance(db, employee.id)
    await db.commit()
    return {
        "catalog": catalog,
        "admin": admin,
        "hod": hod,
        "employee": employee,
    }
