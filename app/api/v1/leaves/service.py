"""Leave apply, my, approval queues, decide and gate credential with tier routing and audit."""

import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import StudentProfile
from app.core.clock import Clock
from app.core.config import Settings, settings
from app.core.credential import compute_valid_not_before, encode_credential
from app.core.enums import (
    ACTIVE_STATUSES,
    APPROVED_STATUSES,
    ApprovalTier,
    Decision,
    LeaveStatus,
    NotificationType,
    UserRole,
)
from app.core.exceptions import (
    AlreadyProcessed,
    InsufficientLeadTime,
    InvalidRange,
    NotApproved,
    NotFound,
    OverlappingApplication,
    ValidationFailed,
    WrongTier,
)
from app.core.locks import application_locks, student_locks
from app.core.models import LeaveApplication, LeaveAuditLog
from app.core.notifications import notify_role, notify_user
from app.core.qr import render_qr_data_url
from app.db.session import store_guard

from .routing import approved_status_for, effective_status, intervals_overlap, required_tier, tier_for_role
from .schemas import CredentialResponse, LeaveApplicationResponse, LeaveApply, PendingLeaveResponse

logger = logging.getLogger(__name__)


def _leave_to_response(r: LeaveApplication, today: date, threshold: int) -> LeaveApplicationResponse:
    return LeaveApplicationResponse(
        id=r.id,
        student_id=r.student_id,
        leave_type=r.leave_kind,
        from_date=r.from_date,
        to_date=r.to_date,
        duration_days=r.duration_days,
        required_tier=required_tier(r.duration_days, threshold),
        reason=r.reason,
        destination=r.destination,
        contact_during_leave=r.contact_during_leave,
        status=effective_status(r.status, r.to_date, today),
        dw_approved_by=r.dw_approved_by,
        dw_remarks=r.dw_remarks,
        dw_approved_at=r.dw_approved_at,
        principal_approved_by=r.principal_approved_by,
        principal_remarks=r.principal_remarks,
        principal_approved_at=r.principal_approved_at,
        credential_issued=bool(r.credential_issued),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _log_leave_audit(
    db: AsyncSession,
    leave_application_id: UUID,
    action: str,
    performed_by: UUID,
    performed_by_role: str,
    at: datetime,
    remarks: Optional[str] = None,
) -> None:
    db.add(
        LeaveAuditLog(
            leave_application_id=leave_application_id,
            action=action,
            performed_by=performed_by,
            performed_by_role=performed_by_role,
            remarks=remarks,
            created_at=at,
        )
    )


async def get_student_for_user(db: AsyncSession, user_id: UUID) -> StudentProfile:
    student = (
        await db.execute(select(StudentProfile).where(StudentProfile.user_id == user_id))
    ).scalar_one_or_none()
    if not student:
        raise NotFound("Student profile not found")
    return student


async def get_leave_for_update(db: AsyncSession, leave_id: UUID) -> Optional[LeaveApplication]:
    """Fresh read of a leave row; locks the row on backends that support FOR UPDATE."""
    return await db.get(LeaveApplication, leave_id, populate_existing=True, with_for_update=True)


async def ensure_no_overlap(
    db: AsyncSession,
    student_id: UUID,
    from_date: date,
    to_date: date,
    exclude_leave_id: Optional[UUID] = None,
) -> None:
    """
    Raise OverlappingApplication if [from_date, to_date] meets any other active leave of the student.
    Locks the student row first so concurrent writers across processes serialize on it.
    Callers hold student_locks for the student.
    """
    await db.execute(select(StudentProfile.id).where(StudentProfile.id == student_id).with_for_update())
    stmt = select(LeaveApplication.from_date, LeaveApplication.to_date).where(
        LeaveApplication.student_id == student_id,
        LeaveApplication.status.in_(ACTIVE_STATUSES),
    )
    if exclude_leave_id is not None:
        stmt = stmt.where(LeaveApplication.id != exclude_leave_id)
    active = await db.execute(stmt)
    if any(
        intervals_overlap(existing_from, existing_to, from_date, to_date)
        for existing_from, existing_to in active.all()
    ):
        raise OverlappingApplication()


async def apply_leave(
    db: AsyncSession,
    current_user_id: UUID,
    current_user_role: str,
    payload: LeaveApply,
    *,
    clock: Clock,
    config: Settings = settings,
) -> LeaveApplicationResponse:
    """Apply for leave; validate dates, lead time and overlap, then notify guardian and deputy wardens."""
    if payload.to_date < payload.from_date:
        raise InvalidRange()
    today = clock.today()
    if (payload.from_date - today).days < config.min_advance_days:
        raise InsufficientLeadTime(config.min_advance_days)
    reason = payload.reason.strip()
    if not reason:
        raise ValidationFailed("Reason is required")

    student = await get_student_for_user(db, current_user_id)

    # Overlap check and insert must see the same snapshot of this student's leaves
    async with student_locks.hold(student.id):
        async with store_guard(db, "apply_leave"):
            await ensure_no_overlap(db, student.id, payload.from_date, payload.to_date)

            now = clock.now()
            leave = LeaveApplication(
                student_id=student.id,
                leave_kind=payload.leave_type.value,
                from_date=payload.from_date,
                to_date=payload.to_date,
                reason=reason,
                destination=payload.destination,
                contact_during_leave=payload.contact_during_leave,
                status=LeaveStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            db.add(leave)
            await db.flush()
            _log_leave_audit(db, leave.id, "APPLIED", current_user_id, current_user_role, now)

            if student.guardian_user_id:
                notify_user(
                    db,
                    student.guardian_user_id,
                    NotificationType.LEAVE_APPLIED,
                    "Leave Application",
                    f"{student.student_name} has applied for leave from {payload.from_date} to {payload.to_date}",
                    leave.id,
                    at=now,
                )
            await notify_role(
                db,
                UserRole.DEPUTY_WARDEN,
                NotificationType.LEAVE_PENDING,
                "New Leave Request",
                f"New leave request from {student.student_name} for {leave.duration_days} days",
                leave.id,
                at=now,
            )
            await db.commit()
    await db.refresh(leave)
    logger.info(
        "Leave %s submitted by student %s (%s to %s, %d days)",
        leave.id, student.id, leave.from_date, leave.to_date, leave.duration_days,
    )
    return _leave_to_response(leave, today, config.max_regular_leave_days)


async def list_my_leaves(
    db: AsyncSession,
    current_user_id: UUID,
    *,
    clock: Clock,
    config: Settings = settings,
) -> List[LeaveApplicationResponse]:
    """Leaves applied by the current student, newest first."""
    student = await get_student_for_user(db, current_user_id)
    result = await db.execute(
        select(LeaveApplication)
        .where(LeaveApplication.student_id == student.id)
        .order_by(LeaveApplication.created_at.desc())
    )
    today = clock.today()
    return [_leave_to_response(r, today, config.max_regular_leave_days) for r in result.scalars().all()]


def _with_student(base: LeaveApplicationResponse, student: StudentProfile) -> PendingLeaveResponse:
    return PendingLeaveResponse(
        **base.model_dump(),
        college_id=student.college_id,
        student_name=student.student_name,
        department=student.department,
        hostel_block=student.hostel_block,
        room_number=student.room_number,
    )


async def list_children_leaves(
    db: AsyncSession,
    guardian_user_id: UUID,
    *,
    status: Optional[str] = None,
    student_id: Optional[UUID] = None,
    clock: Clock,
    config: Settings = settings,
) -> List[PendingLeaveResponse]:
    """Leaves of every student linked to the guardian, newest first."""
    stmt = (
        select(LeaveApplication, StudentProfile)
        .join(StudentProfile, StudentProfile.id == LeaveApplication.student_id)
        .where(StudentProfile.guardian_user_id == guardian_user_id)
        .order_by(LeaveApplication.created_at.desc())
    )
    if student_id:
        stmt = stmt.where(StudentProfile.id == student_id)
    result = await db.execute(stmt)
    today = clock.today()
    threshold = config.max_regular_leave_days
    leaves = [_with_student(_leave_to_response(leave, today, threshold), student) for leave, student in result.all()]
    # EXPIRED is derived, so the status filter runs on the response
    if status:
        leaves = [r for r in leaves if r.status == status]
    return leaves


async def list_tier_queue(
    db: AsyncSession,
    tier: ApprovalTier,
    *,
    clock: Clock,
    config: Settings = settings,
) -> List[PendingLeaveResponse]:
    """PENDING leaves routed to the given tier, oldest first."""
    result = await db.execute(
        select(LeaveApplication, StudentProfile)
        .join(StudentProfile, StudentProfile.id == LeaveApplication.student_id)
        .where(LeaveApplication.status == LeaveStatus.PENDING.value)
        .order_by(LeaveApplication.created_at.asc())
    )
    today = clock.today()
    threshold = config.max_regular_leave_days
    queue: List[PendingLeaveResponse] = []
    for leave, student in result.all():
        if required_tier(leave.duration_days, threshold) != tier:
            continue
        queue.append(_with_student(_leave_to_response(leave, today, threshold), student))
    return queue


async def decide_leave(
    db: AsyncSession,
    leave_id: UUID,
    decided_by_user_id: UUID,
    decided_by_role: str,
    decision: Decision,
    remarks: Optional[str] = None,
    *,
    clock: Clock,
    config: Settings = settings,
) -> LeaveApplicationResponse:
    """Approve or reject a PENDING leave. Only the tier the leave is routed to may decide it."""
    tier = tier_for_role(decided_by_role)
    if tier is None:
        raise WrongTier("Only a deputy warden or the principal can decide leave applications")
    threshold = config.max_regular_leave_days

    async with application_locks.hold(leave_id):
        async with store_guard(db, "decide_leave"):
            leave = await get_leave_for_update(db, leave_id)
            if not leave:
                raise NotFound("Leave application not found")
            if leave.status != LeaveStatus.PENDING.value:
                raise AlreadyProcessed("Leave application already processed")

            needed = required_tier(leave.duration_days, threshold)
            if needed != tier:
                if needed == ApprovalTier.PRINCIPAL:
                    raise WrongTier(f"Leave duration exceeds {threshold} days. Principal approval required.")
                raise WrongTier(f"Leave duration is within {threshold} days. Deputy warden approval required.")

            now = clock.now()
            approve = decision == Decision.APPROVE
            new_status = approved_status_for(tier) if approve else LeaveStatus.REJECTED
            values = {"status": new_status.value, "updated_at": now}
            if tier == ApprovalTier.DEPUTY:
                values.update(dw_approved_by=decided_by_user_id, dw_remarks=remarks, dw_approved_at=now)
            else:
                values.update(principal_approved_by=decided_by_user_id, principal_remarks=remarks, principal_approved_at=now)

            # Guard against a concurrent decision committed since the read above
            result = await db.execute(
                update(LeaveApplication)
                .where(
                    LeaveApplication.id == leave_id,
                    LeaveApplication.status == LeaveStatus.PENDING.value,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                raise AlreadyProcessed("Leave application already processed")

            _log_leave_audit(db, leave_id, new_status.value, decided_by_user_id, decided_by_role, now, remarks=remarks)

            student = await db.get(StudentProfile, leave.student_id)
            if approve:
                message = "Your leave application has been approved"
                if tier == ApprovalTier.PRINCIPAL:
                    message += " by Principal"
                notify_user(db, student.user_id, NotificationType.LEAVE_APPROVED, "Leave Approved", message, leave_id, at=now)
            else:
                notify_user(
                    db,
                    student.user_id,
                    NotificationType.LEAVE_REJECTED,
                    "Leave Rejected",
                    f"Your leave application has been rejected. Reason: {remarks or 'Not specified'}",
                    leave_id,
                    at=now,
                )
            await db.commit()
    await db.refresh(leave)
    logger.info("Leave %s %s by %s %s", leave_id, new_status.value, decided_by_role, decided_by_user_id)
    return _leave_to_response(leave, clock.today(), threshold)


async def issue_or_fetch_credential(
    db: AsyncSession,
    leave_id: UUID,
    current_user_id: UUID,
    *,
    clock: Clock,
    config: Settings = settings,
) -> CredentialResponse:
    """Return the gate credential for an approved leave, issuing it on first request."""
    student = await get_student_for_user(db, current_user_id)

    async with application_locks.hold(leave_id):
        async with store_guard(db, "issue_credential"):
            leave = await get_leave_for_update(db, leave_id)
            if not leave or leave.student_id != student.id:
                raise NotFound("Leave application not found")
            if leave.status not in APPROVED_STATUSES:
                raise NotApproved("QR code only available for approved leaves")

            if not leave.credential_issued:
                valid_from = compute_valid_not_before(leave.from_date, config.qr_code_validity_hours)
                token = encode_credential(leave, student, valid_from, config.credential_secret_key)
                result = await db.execute(
                    update(LeaveApplication)
                    .where(
                        LeaveApplication.id == leave_id,
                        LeaveApplication.credential_payload.is_(None),
                    )
                    .values(
                        credential_issued=True,
                        credential_payload=token,
                        credential_valid_from=valid_from,
                        updated_at=clock.now(),
                    )
                )
                if result.rowcount == 1:
                    _log_leave_audit(db, leave_id, "CREDENTIAL_ISSUED", current_user_id, UserRole.STUDENT.value, clock.now())
                    logger.info("Gate credential issued for leave %s, valid from %s", leave_id, valid_from)
            await db.commit()
    await db.refresh(leave)

    return CredentialResponse(
        token=leave.credential_payload,
        qr_code=render_qr_data_url(leave.credential_payload, config.qr_code_size),
        valid_from=leave.credential_valid_from,
        from_date=leave.from_date,
        to_date=leave.to_date,
        status=effective_status(leave.status, leave.to_date, clock.today()),
    )


async def get_leave(
    db: AsyncSession,
    leave_id: UUID,
    current_user_id: UUID,
    current_user_role: str,
    *,
    clock: Clock,
    config: Settings = settings,
) -> LeaveApplicationResponse:
    """Single leave. Students see their own, guardians their ward's, staff any."""
    leave = await db.get(LeaveApplication, leave_id)
    if not leave:
        raise NotFound("Leave application not found")

    if current_user_role == UserRole.STUDENT.value:
        student = await get_student_for_user(db, current_user_id)
        if leave.student_id != student.id:
            raise NotFound("Leave application not found")
    elif current_user_role == UserRole.PARENT.value:
        student = await db.get(StudentProfile, leave.student_id)
        if student.guardian_user_id != current_user_id:
            raise NotFound("Leave application not found")

    return _leave_to_response(leave, clock.today(), config.max_regular_leave_days)
