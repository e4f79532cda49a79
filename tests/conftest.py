import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_JSON", "false")

from datetime import date
from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Dict, Optional
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from billing_ledger.core.config import settings
from billing_ledger.core.models import Group, School, SchoolCycle, Student
from billing_ledger.db.session import Base, get_db
from billing_ledger.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FULL_PERMISSIONS = {
    "billing": {"create": True, "read": True, "update": True, "delete": True},
    "payments": {"create": True, "read": True, "update": True},
    "reports": {"read": True},
}


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; StaticPool keeps every session on the same connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def seed(db_session: AsyncSession) -> SimpleNamespace:
    """
    One school with an active cycle, two groups (grade 1 A, grade 2 B), two active students
    (ana in 1A, beto in 2B) and one inactive student (carla in 1A). A second school exists
    to check tenant isolation.
    """
    school = School(name="Colegio Norte")
    other_school = School(name="Colegio Sur")
    db_session.add_all([school, other_school])
    await db_session.flush()

    cycle = SchoolCycle(
        school_id=school.id,
        name="2025-2026",
        start_date=date(2025, 8, 25),
        end_date=date(2026, 7, 10),
        status="active",
    )
    db_session.add(cycle)
    await db_session.flush()

    group_a = Group(school_id=school.id, name="A", grade="1")
    group_b = Group(school_id=school.id, name="B", grade="2")
    db_session.add_all([group_a, group_b])
    await db_session.flush()

    ana = Student(
        school_id=school.id,
        school_cycle_id=cycle.id,
        group_id=group_a.id,
        enrollment="E-001",
        name="Ana",
        last_name="Lopez",
        tutor_name="Maria Lopez",
        tutor_phone="555-0101",
    )
    beto = Student(
        school_id=school.id,
        school_cycle_id=cycle.id,
        group_id=group_b.id,
        enrollment="E-002",
        name="Beto",
        last_name="Ruiz",
    )
    carla = Student(
        school_id=school.id,
        school_cycle_id=cycle.id,
        group_id=group_a.id,
        enrollment="E-003",
        name="Carla",
        last_name="Diaz",
        status="inactive",
    )
    db_session.add_all([ana, beto, carla])
    await db_session.commit()

    return SimpleNamespace(
        school_id=school.id,
        other_school_id=other_school.id,
        cycle_id=cycle.id,
        group_a_id=group_a.id,
        group_b_id=group_b.id,
        ana_id=ana.id,
        beto_id=beto.id,
        carla_id=carla.id,
    )


@pytest.fixture()
def load_student(db_session: AsyncSession) -> Callable:
    """Reload a student from the database, bypassing the identity map."""

    async def _load(student_id: UUID) -> Student:
        result = await db_session.execute(
            select(Student).where(Student.id == student_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()

    return _load


@pytest.fixture()
def make_token() -> Callable[..., str]:
    def _make(
        school_id: UUID,
        role: str = "ADMIN",
        permissions: Optional[Dict[str, Dict[str, bool]]] = None,
        user_id: Optional[UUID] = None,
    ) -> str:
        claims = {
            "sub": str(user_id or uuid4()),
            "school_id": str(school_id),
            "role": role,
            "permissions": FULL_PERMISSIONS if permissions is None else permissions,
        }
        return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    return _make


@pytest.fixture()
def auth_headers(seed: SimpleNamespace, make_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(seed.school_id)}"}
