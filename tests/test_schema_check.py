from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock
from app.core.models import GateLog, Notification
from app.db.schema_check import ensure_tables
from app.db.session import engine


async def test_ensure_tables_creates_only_missing() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(GateLog.__table__.drop)

    assert await ensure_tables(engine) == ["gate_logs"]
    assert await ensure_tables(engine) == []


async def test_column_defaults_use_campus_local_time(db_session: AsyncSession, campus) -> None:
    note = Notification(user_id=campus.deputy.id, notification_type="LEAVE_PENDING", title="t", message="m")
    db_session.add(note)
    await db_session.flush()

    assert note.created_at.tzinfo is None
    assert abs(note.created_at - Clock().now()) < timedelta(minutes=1)
