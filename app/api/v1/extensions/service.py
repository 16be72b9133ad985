"""
Emergency extensions. A guardian requests a later end date for an approved leave;
a deputy warden decides. Approval is the only path that moves a leave's to_date.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.leaves.service import _log_leave_audit, ensure_no_overlap, get_leave_for_update
from app.auth.models import StudentProfile
from app.core.clock import Clock
from app.core.enums import APPROVED_STATUSES, Decision, ExtensionStatus, NotificationType, UserRole
from app.core.exceptions import (
    AlreadyProcessed,
    NonAdvancingDate,
    NotApproved,
    NotFound,
    ValidationFailed,
    WrongTier,
)
from app.core.locks import application_locks, student_locks
from app.core.models import EmergencyExtension, LeaveApplication
from app.core.notifications import notify_role, notify_user
from app.db.session import store_guard

from .schemas import ExtensionDetailResponse, ExtensionRequest, ExtensionResponse

logger = logging.getLogger(__name__)


async def request_extension(
    db: AsyncSession,
    guardian_user_id: UUID,
    guardian_role: str,
    payload: ExtensionRequest,
    *,
    clock: Clock,
) -> ExtensionResponse:
    reason = payload.reason.strip()
    if not reason:
        raise ValidationFailed("Reason is required")

    ward_leave = (
        select(LeaveApplication, StudentProfile)
        .join(StudentProfile, StudentProfile.id == LeaveApplication.student_id)
        .where(
            LeaveApplication.id == payload.leave_id,
            StudentProfile.guardian_user_id == guardian_user_id,
        )
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(ward_leave)).first()
    if not row:
        raise NotFound("Leave application not found")

    async with student_locks.hold(row[1].id), application_locks.hold(payload.leave_id):
        async with store_guard(db, "request_extension"):
            leave, student = (await db.execute(ward_leave)).one()

            if leave.status not in APPROVED_STATUSES:
                raise NotApproved("Can only extend approved leaves")
            if payload.extended_to_date <= leave.to_date:
                raise NonAdvancingDate()
            await ensure_no_overlap(
                db, student.id, leave.from_date, payload.extended_to_date, exclude_leave_id=leave.id
            )

            now = clock.now()
            extension = EmergencyExtension(
                leave_application_id=leave.id,
                requested_by=guardian_user_id,
                extended_to_date=payload.extended_to_date,
                reason=reason,
                status=ExtensionStatus.PENDING.value,
                created_at=now,
            )
            db.add(extension)
            await db.flush()
            _log_leave_audit(
                db, leave.id, "EXTENSION_REQUESTED", guardian_user_id, guardian_role, now,
                remarks=f"Extend to {payload.extended_to_date}: {reason}",
            )
            await notify_role(
                db,
                UserRole.DEPUTY_WARDEN,
                NotificationType.EXTENSION_REQUEST,
                "Emergency Extension Request",
                f"Emergency extension requested for {student.student_name}'s leave",
                leave.id,
                at=now,
            )
            await db.commit()
    await db.refresh(extension)
    logger.info("Extension %s requested for leave %s until %s", extension.id, leave.id, extension.extended_to_date)
    return ExtensionResponse.model_validate(extension)


def _extension_query():
    return (
        select(EmergencyExtension, LeaveApplication, StudentProfile)
        .join(LeaveApplication, LeaveApplication.id == EmergencyExtension.leave_application_id)
        .join(StudentProfile, StudentProfile.id == LeaveApplication.student_id)
    )


def _detail_rows(rows) -> List[ExtensionDetailResponse]:
    return [
        ExtensionDetailResponse(
            **ExtensionResponse.model_validate(ext).model_dump(),
            college_id=student.college_id,
            student_name=student.student_name,
            current_to_date=leave.to_date,
        )
        for ext, leave, student in rows
    ]


async def list_pending_extensions(db: AsyncSession) -> List[ExtensionDetailResponse]:
    """Pending extension requests, oldest first."""
    result = await db.execute(
        _extension_query()
        .where(EmergencyExtension.status == ExtensionStatus.PENDING.value)
        .order_by(EmergencyExtension.created_at.asc())
    )
    return _detail_rows(result.all())


async def list_my_extensions(db: AsyncSession, guardian_user_id: UUID) -> List[ExtensionDetailResponse]:
    """Extension requests made by the guardian, newest first."""
    result = await db.execute(
        _extension_query()
        .where(EmergencyExtension.requested_by == guardian_user_id)
        .order_by(EmergencyExtension.created_at.desc())
    )
    return _detail_rows(result.all())


async def decide_extension(
    db: AsyncSession,
    extension_id: UUID,
    decided_by_user_id: UUID,
    decided_by_role: str,
    decision: Decision,
    remarks: Optional[str] = None,
    *,
    clock: Clock,
) -> ExtensionResponse:
    """Approve or reject a pending extension; approval advances the leave's to_date in the same transaction."""
    if decided_by_role != UserRole.DEPUTY_WARDEN.value:
        raise WrongTier("Only a deputy warden can decide emergency extensions")

    extension = await db.get(EmergencyExtension, extension_id)
    if not extension:
        raise NotFound("Extension request not found")
    leave_id = extension.leave_application_id
    student_id = (
        await db.execute(select(LeaveApplication.student_id).where(LeaveApplication.id == leave_id))
    ).scalar_one()

    async with student_locks.hold(student_id), application_locks.hold(leave_id):
        async with store_guard(db, "decide_extension"):
            extension = await db.get(EmergencyExtension, extension_id, populate_existing=True, with_for_update=True)
            if extension.status != ExtensionStatus.PENDING.value:
                raise AlreadyProcessed("Extension request already processed")
            leave = await get_leave_for_update(db, leave_id)
            student = await db.get(StudentProfile, leave.student_id)

            now = clock.now()
            approve = decision == Decision.APPROVE
            new_status = ExtensionStatus.APPROVED if approve else ExtensionStatus.REJECTED
            if approve:
                if extension.extended_to_date <= leave.to_date:
                    raise NonAdvancingDate(f"Leave already runs until {leave.to_date}")
                # Other leaves may have been submitted since the request
                await ensure_no_overlap(
                    db, student.id, leave.from_date, extension.extended_to_date, exclude_leave_id=leave_id
                )

            result = await db.execute(
                update(EmergencyExtension)
                .where(
                    EmergencyExtension.id == extension_id,
                    EmergencyExtension.status == ExtensionStatus.PENDING.value,
                )
                .values(
                    status=new_status.value,
                    approved_by=decided_by_user_id,
                    remarks=remarks,
                    approved_at=now,
                )
            )
            if result.rowcount != 1:
                raise AlreadyProcessed("Extension request already processed")

            if approve:
                moved = await db.execute(
                    update(LeaveApplication)
                    .where(
                        LeaveApplication.id == leave_id,
                        LeaveApplication.to_date < extension.extended_to_date,
                    )
                    .values(to_date=extension.extended_to_date, updated_at=now)
                )
                if moved.rowcount != 1:
                    raise NonAdvancingDate()

            _log_leave_audit(
                db, leave_id, f"EXTENSION_{new_status.value}", decided_by_user_id, decided_by_role, now, remarks=remarks,
            )
            message = (
                "Emergency extension approved"
                if approve
                else f"Emergency extension rejected. Reason: {remarks or 'Not specified'}"
            )
            for user_id in (extension.requested_by, student.user_id):
                notify_user(db, user_id, NotificationType.EXTENSION_PROCESSED, message, message, leave_id, at=now)
            await db.commit()
    await db.refresh(extension)
    logger.info("Extension %s %s by %s", extension_id, new_status.value, decided_by_user_id)
    return ExtensionResponse.model_validate(extension)
