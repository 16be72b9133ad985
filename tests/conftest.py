import os
import tempfile
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator

# Settings() reads the environment at import time
_TEST_DIR = tempfile.mkdtemp(prefix="hostel-gate-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["CREDENTIAL_SECRET_KEY"] = "test-credential-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import StaffProfile, StudentProfile, User
from app.auth.security import create_access_token
from app.core.clock import Clock, get_clock
from app.core.enums import UserRole
from app.db.session import AsyncSessionLocal, Base, engine, get_db
from app.main import app


class FrozenClock(Clock):
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs) -> None:
        self._now = self._now + timedelta(**kwargs)


# 09:00 campus time; leave dates in tests are expressed relative to this day
TODAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 9, 0)


def days(n: int) -> date:
    return TODAY + timedelta(days=n)


class FailingFlushSession(AsyncSession):
    """Session whose explicit flushes fail as if the store dropped the write."""

    async def flush(self, objects=None) -> None:
        raise OperationalError("INSERT INTO gate_logs", {}, OSError("disk I/O error"))


@pytest.fixture(autouse=True)
async def setup_test_db() -> AsyncGenerator[None, None]:
    """Fresh tables in a temporary SQLite file for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture()
def clock() -> FrozenClock:
    frozen = FrozenClock(NOW)
    app.dependency_overrides[get_clock] = lambda: frozen
    yield frozen
    app.dependency_overrides.pop(get_clock, None)


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture()
async def make_session():
    """Factory for extra independent sessions, e.g. to race two requests."""
    sessions = []

    def _make() -> AsyncSession:
        session = AsyncSessionLocal()
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        await session.close()


async def _add_user(db: AsyncSession, full_name: str, role: UserRole, email: str) -> User:
    user = User(full_name=full_name, email=email, role=role.value, status="ACTIVE", created_at=NOW)
    db.add(user)
    await db.flush()
    return user


async def _add_staff(db: AsyncSession, full_name: str, role: UserRole, code: str) -> User:
    user = await _add_user(db, full_name, role, f"{code.lower()}@hostel.test")
    db.add(StaffProfile(user_id=user.id, staff_name=full_name, employee_code=code, designation=role.value, created_at=NOW))
    return user


@pytest.fixture()
async def campus() -> SimpleNamespace:
    """
    One student with a guardian, a second unrelated student, and one of each staff role.
    Built in its own session so a rollback in a test session cannot expire these objects.
    """
    async with AsyncSessionLocal() as db_session:
        return await _build_campus(db_session)


async def _build_campus(db_session: AsyncSession) -> SimpleNamespace:
    guardian = await _add_user(db_session, "Ravi Kumar", UserRole.PARENT, "ravi@parents.test")
    student_user = await _add_user(db_session, "Asha Kumar", UserRole.STUDENT, "asha@students.test")
    student = StudentProfile(
        user_id=student_user.id,
        college_id="CS2024001",
        student_name="Asha Kumar",
        department="Computer Science",
        hostel_block="B",
        room_number="204",
        guardian_user_id=guardian.id,
        created_at=NOW,
    )
    db_session.add(student)

    other_user = await _add_user(db_session, "Vikram Rao", UserRole.STUDENT, "vikram@students.test")
    other_student = StudentProfile(
        user_id=other_user.id,
        college_id="ME2024017",
        student_name="Vikram Rao",
        department="Mechanical",
        hostel_block="A",
        room_number="112",
        created_at=NOW,
    )
    db_session.add(other_student)

    deputy = await _add_staff(db_session, "Meera Nair", UserRole.DEPUTY_WARDEN, "DW001")
    principal = await _add_staff(db_session, "Dr. Suresh Iyer", UserRole.PRINCIPAL, "PR001")
    watchman = await _add_staff(db_session, "Gopal Singh", UserRole.WATCHMAN, "WM001")
    await db_session.commit()

    return SimpleNamespace(
        guardian=guardian,
        student_user=student_user,
        student=student,
        other_user=other_user,
        other_student=other_student,
        deputy=deputy,
        principal=principal,
        watchman=watchman,
    )


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def client(clock: FrozenClock) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_db, None)
