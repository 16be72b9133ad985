import asyncio
from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.leaves import service
from app.api.v1.leaves.schemas import LeaveApply
from app.core.enums import ApprovalTier, Decision
from app.core.exceptions import (
    AlreadyProcessed,
    InsufficientLeadTime,
    InvalidRange,
    NotApproved,
    NotFound,
    OverlappingApplication,
    TransientFailure,
    ValidationFailed,
    WrongTier,
)
from app.core.models import LeaveApplication, LeaveAuditLog, Notification

from conftest import days


def _apply(from_offset: int, to_offset: int, reason: str = "home") -> LeaveApply:
    return LeaveApply(from_date=days(from_offset), to_date=days(to_offset), reason=reason)


async def _submit(db: AsyncSession, campus, clock, from_offset=3, to_offset=5):
    return await service.apply_leave(
        db, campus.student_user.id, campus.student_user.role, _apply(from_offset, to_offset), clock=clock
    )


async def test_submit_creates_pending_leave_and_notifies(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)

    assert leave.status == "PENDING"
    assert leave.duration_days == 3
    assert leave.required_tier == ApprovalTier.DEPUTY
    assert leave.credential_issued is False

    notifications = (await db_session.execute(select(Notification))).scalars().all()
    recipients = {n.user_id for n in notifications}
    assert recipients == {campus.guardian.id, campus.deputy.id}

    audit = (await db_session.execute(select(LeaveAuditLog))).scalars().all()
    assert [a.action for a in audit] == ["APPLIED"]


async def test_submit_rejects_reversed_range(db_session: AsyncSession, campus, clock) -> None:
    with pytest.raises(InvalidRange):
        await _submit(db_session, campus, clock, 5, 3)


async def test_submit_requires_lead_time(db_session: AsyncSession, campus, clock) -> None:
    with pytest.raises(InsufficientLeadTime) as exc:
        await _submit(db_session, campus, clock, 1, 2)
    assert exc.value.status_code == 400
    assert "2 days in advance" in exc.value.message


async def test_submit_rejects_blank_reason(db_session: AsyncSession, campus, clock) -> None:
    with pytest.raises(ValidationFailed):
        await service.apply_leave(
            db_session, campus.student_user.id, "STUDENT", _apply(3, 5, reason="   "), clock=clock
        )


async def test_submit_without_student_profile(db_session: AsyncSession, campus, clock) -> None:
    with pytest.raises(NotFound):
        await service.apply_leave(db_session, campus.deputy.id, "DEPUTY_WARDEN", _apply(3, 5), clock=clock)


async def test_overlapping_submit_fails(db_session: AsyncSession, campus, clock) -> None:
    await _submit(db_session, campus, clock, 3, 5)
    with pytest.raises(OverlappingApplication):
        await _submit(db_session, campus, clock, 5, 8)

    # Adjacent ranges do not overlap
    await _submit(db_session, campus, clock, 6, 8)


async def test_rejected_leave_does_not_block_new_submit(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    await service.decide_leave(db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.REJECT, clock=clock)
    again = await _submit(db_session, campus, clock)
    assert again.status == "PENDING"


async def test_principal_cannot_decide_short_leave(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock, 3, 5)
    with pytest.raises(WrongTier) as exc:
        await service.decide_leave(
            db_session, leave.id, campus.principal.id, "PRINCIPAL", Decision.APPROVE, clock=clock
        )
    assert "Deputy warden approval required" in exc.value.message


async def test_deputy_cannot_decide_long_leave(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock, 3, 18)
    assert leave.duration_days == 16
    with pytest.raises(WrongTier) as exc:
        await service.decide_leave(
            db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock
        )
    assert exc.value.message == "Leave duration exceeds 15 days. Principal approval required."

    approved = await service.decide_leave(
        db_session, leave.id, campus.principal.id, "PRINCIPAL", Decision.APPROVE, remarks="ok", clock=clock
    )
    assert approved.status == "APPROVED_PRINCIPAL"
    assert approved.principal_approved_by == campus.principal.id
    assert approved.dw_approved_by is None


async def test_non_approver_role_is_wrong_tier(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    with pytest.raises(WrongTier):
        await service.decide_leave(db_session, leave.id, campus.watchman.id, "WATCHMAN", Decision.APPROVE, clock=clock)


async def test_tier_queues_are_disjoint(db_session: AsyncSession, campus, clock) -> None:
    short = await _submit(db_session, campus, clock, 3, 5)
    long = await _submit(db_session, campus, clock, 10, 30)

    deputy_queue = await service.list_tier_queue(db_session, ApprovalTier.DEPUTY, clock=clock)
    principal_queue = await service.list_tier_queue(db_session, ApprovalTier.PRINCIPAL, clock=clock)

    assert [r.id for r in deputy_queue] == [short.id]
    assert [r.id for r in principal_queue] == [long.id]
    assert deputy_queue[0].college_id == "CS2024001"


async def test_decide_twice_is_already_processed(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    approved = await service.decide_leave(
        db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock
    )
    assert approved.status == "APPROVED_DW"
    assert approved.dw_approved_at == clock.now()

    with pytest.raises(AlreadyProcessed):
        await service.decide_leave(
            db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.REJECT, clock=clock
        )


async def test_decide_unknown_leave(db_session: AsyncSession, campus, clock) -> None:
    with pytest.raises(NotFound):
        await service.decide_leave(
            db_session, uuid4(), campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock
        )


async def test_concurrent_approvals_one_wins(db_session: AsyncSession, make_session, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)

    results = await asyncio.gather(
        service.decide_leave(make_session(), leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock),
        service.decide_leave(make_session(), leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.REJECT, clock=clock),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadyProcessed)


async def test_rejection_notifies_student_with_reason(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    await service.decide_leave(
        db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.REJECT, remarks="Exams", clock=clock
    )
    note = (
        await db_session.execute(select(Notification).where(Notification.user_id == campus.student_user.id))
    ).scalar_one()
    assert note.notification_type == "LEAVE_REJECTED"
    assert note.message == "Your leave application has been rejected. Reason: Exams"


async def test_credential_requires_approval(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    with pytest.raises(NotApproved):
        await service.issue_or_fetch_credential(db_session, leave.id, campus.student_user.id, clock=clock)


async def test_credential_is_issued_once(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    await service.decide_leave(db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock)

    first = await service.issue_or_fetch_credential(db_session, leave.id, campus.student_user.id, clock=clock)
    clock.advance(hours=5)
    second = await service.issue_or_fetch_credential(db_session, leave.id, campus.student_user.id, clock=clock)

    assert first.token == second.token
    assert first.valid_from == datetime(2026, 3, 12, 22, 0)
    assert first.qr_code.startswith("data:image/png;base64,")

    audit = (
        await db_session.execute(select(LeaveAuditLog).where(LeaveAuditLog.action == "CREDENTIAL_ISSUED"))
    ).scalars().all()
    assert len(audit) == 1


async def test_credential_of_another_student_is_not_found(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock)
    await service.decide_leave(db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock)
    with pytest.raises(NotFound):
        await service.issue_or_fetch_credential(db_session, leave.id, campus.other_user.id, clock=clock)


async def test_my_leaves_report_expired_after_last_day(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock, 3, 5)
    await service.decide_leave(db_session, leave.id, campus.deputy.id, "DEPUTY_WARDEN", Decision.APPROVE, clock=clock)

    clock.advance(days=6)
    mine = await service.list_my_leaves(db_session, campus.student_user.id, clock=clock)
    assert [r.status for r in mine] == ["EXPIRED"]

    stored = await db_session.get(LeaveApplication, leave.id)
    assert stored.status == "APPROVED_DW"


async def test_concurrent_overlapping_submits_one_wins(make_session, campus, clock) -> None:
    results = await asyncio.gather(
        service.apply_leave(make_session(), campus.student_user.id, "STUDENT", _apply(3, 5), clock=clock),
        service.apply_leave(make_session(), campus.student_user.id, "STUDENT", _apply(4, 6), clock=clock),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], OverlappingApplication)

    check = make_session()
    stored = (await check.execute(select(func.count(LeaveApplication.id)))).scalar_one()
    assert stored == 1


async def test_store_outage_is_transient(db_session: AsyncSession, campus, clock, monkeypatch) -> None:
    async def unavailable(*args, **kwargs):
        raise OperationalError("SELECT leave_applications", {}, ConnectionResetError("connection reset"))

    monkeypatch.setattr(service, "ensure_no_overlap", unavailable)
    with pytest.raises(TransientFailure) as exc:
        await _submit(db_session, campus, clock)
    assert exc.value.status_code == 503

    monkeypatch.undo()
    leave = await _submit(db_session, campus, clock)
    assert leave.status == "PENDING"


async def test_children_leaves_are_scoped_to_guardian(db_session: AsyncSession, campus, clock) -> None:
    leave = await _submit(db_session, campus, clock, 3, 5)
    await service.apply_leave(
        db_session, campus.other_user.id, "STUDENT", _apply(3, 5, reason="fest"), clock=clock
    )

    children = await service.list_children_leaves(db_session, campus.guardian.id, clock=clock)
    assert [r.id for r in children] == [leave.id]
    assert children[0].student_name == "Asha Kumar"

    assert await service.list_children_leaves(db_session, campus.guardian.id, status="APPROVED_DW", clock=clock) == []
    assert await service.list_children_leaves(db_session, campus.other_user.id, clock=clock) == []
