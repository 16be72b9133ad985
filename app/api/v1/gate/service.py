"""
Gate scan validation, manual overrides and gate log reads.

Every scan appends exactly one GateLog row, allowed or not. The log is the only
record of presence; nothing else is updated by a scan.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.auth.models import StaffProfile, StudentProfile
from app.core.clock import Clock
from app.core.config import Settings, settings
from app.core.credential import CredentialClaims, compute_valid_not_before, decode_credential
from app.core.enums import APPROVED_STATUSES, GateAction, ScanStatus, UserRole
from app.core.exceptions import CredentialError, GateLogWriteFailed, NotFound, ValidationFailed
from app.core.locks import gate_locks
from app.core.models import GateLog, LeaveApplication
from app.db.session import store_guard

from .presence import GateEntryRecord, OutsideStudent, project_presence
from .schemas import (
    GateLogResponse,
    ManualEntryResponse,
    ScanDecision,
    ScanLeave,
    ScanStudent,
    StudentOutsideResponse,
    StudentsOutsideResponse,
)

logger = logging.getLogger(__name__)

GATE_LOG_PAGE_SIZE = 100
STUDENT_HISTORY_SIZE = 50


async def _append_gate_log(db: AsyncSession, **values) -> GateLog:
    """Append and commit one gate log row. Any store failure fails the whole scan."""
    log = GateLog(**values)
    db.add(log)
    try:
        await db.flush()
        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Gate log append failed for student %s", values.get("student_id"))
        await db.rollback()
        raise GateLogWriteFailed() from exc
    return log


def _leave_for_scan(application_id: UUID, student_id: UUID):
    # The row lock is held until the gate log append commits, so concurrent scans
    # of one leave in different workers see each other's log rows
    return (
        select(LeaveApplication)
        .where(LeaveApplication.id == application_id, LeaveApplication.student_id == student_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def _resolve_leave(db: AsyncSession, claims: CredentialClaims) -> Optional[LeaveApplication]:
    try:
        application_id = UUID(claims.application_id)
        student_id = UUID(claims.student_id)
    except ValueError:
        return None
    return (await db.execute(_leave_for_scan(application_id, student_id))).scalar_one_or_none()


def check_leave_window(leave: LeaveApplication, now: datetime, config: Settings = settings) -> Tuple[str, str]:
    """Status then validity window. Dates come from the leave record, so extensions apply."""
    if leave.status not in APPROVED_STATUSES:
        return ScanStatus.INVALID.value, "Leave not approved"
    valid_from = leave.credential_valid_from or compute_valid_not_before(
        leave.from_date, config.qr_code_validity_hours
    )
    if now < valid_from:
        return ScanStatus.INVALID.value, f"QR code not yet valid. Valid from {valid_from.isoformat()}"
    if now > datetime.combine(leave.to_date, time.max):
        return ScanStatus.EXPIRED.value, "Leave period expired"
    return ScanStatus.VALID.value, "Access granted"


async def _last_scan(db: AsyncSession, student_id: UUID, leave_id: UUID) -> Optional[GateLog]:
    return (
        await db.execute(
            select(GateLog)
            .where(GateLog.student_id == student_id, GateLog.leave_application_id == leave_id)
            .order_by(GateLog.scanned_at.desc(), GateLog.id.desc())
            .limit(1)
        )
    ).scalar_one_or_none()


def _scan_decision(
    log: GateLog,
    student: Optional[StudentProfile] = None,
    leave: Optional[LeaveApplication] = None,
) -> ScanDecision:
    return ScanDecision(
        allowed=log.validation_status == ScanStatus.VALID.value,
        status=log.validation_status,
        message=log.validation_message,
        log_id=log.id,
        action_type=log.action_type,
        scanned_at=log.scanned_at,
        student=ScanStudent(
            id=student.id,
            college_id=student.college_id,
            student_name=student.student_name,
            department=student.department,
            hostel_block=student.hostel_block,
            room_number=student.room_number,
        ) if student else None,
        leave=ScanLeave(
            id=leave.id, from_date=leave.from_date, to_date=leave.to_date, status=leave.status,
        ) if leave else None,
    )


async def scan_credential(
    db: AsyncSession,
    raw_token: str,
    action: GateAction,
    scanned_by: UUID,
    *,
    location: str,
    clock: Clock,
    config: Settings = settings,
) -> ScanDecision:
    """
    Validate a presented credential for EXIT or ENTRY and record the attempt.
    ENTRY requires the last scan for the same student and leave to be a VALID EXIT.
    """
    try:
        claims = decode_credential(raw_token, config.credential_secret_key)
    except CredentialError as e:
        async with store_guard(db, "scan_credential"):
            log = await _append_gate_log(
                db,
                action_type=action.value,
                scanned_by=scanned_by,
                scanned_at=clock.now(),
                credential_payload=raw_token,
                validation_status=ScanStatus.INVALID.value,
                validation_message=e.message,
                location=location,
            )
        logger.warning("Gate %s denied: %s (log %s)", action.value, e.message, log.id)
        return _scan_decision(log)

    async with gate_locks.hold((claims.student_id, claims.application_id)):
        async with store_guard(db, "scan_credential"):
            leave = await _resolve_leave(db, claims)
            now = clock.now()
            student = None
            if leave is None:
                status, message = ScanStatus.INVALID.value, "Leave application not found"
            else:
                student = await db.get(StudentProfile, leave.student_id)
                status, message = check_leave_window(leave, now, config)
                if status == ScanStatus.VALID.value and action == GateAction.ENTRY:
                    last = await _last_scan(db, leave.student_id, leave.id)
                    if not (
                        last
                        and last.action_type == GateAction.EXIT.value
                        and last.validation_status == ScanStatus.VALID.value
                    ):
                        status, message = ScanStatus.INVALID.value, "No exit record found. Entry not allowed."
                if status == ScanStatus.VALID.value:
                    message = f"{action.value.capitalize()} allowed"

            log = await _append_gate_log(
                db,
                student_id=leave.student_id if leave else None,
                leave_application_id=leave.id if leave else None,
                action_type=action.value,
                scanned_by=scanned_by,
                scanned_at=now,
                credential_payload=raw_token,
                validation_status=status,
                validation_message=message,
                location=location,
            )

    if status == ScanStatus.VALID.value:
        logger.info("Gate %s allowed for student %s on leave %s (log %s)", action.value, leave.student_id, leave.id, log.id)
    else:
        logger.warning("Gate %s denied (%s): %s (log %s)", action.value, status, message, log.id)
    return _scan_decision(log, student, leave)


async def manual_entry_exit(
    db: AsyncSession,
    college_id: str,
    action: GateAction,
    reason: str,
    scanned_by: UUID,
    *,
    location: str,
    clock: Clock,
) -> ManualEntryResponse:
    """Record a watchman override for a student without a credential."""
    reason = reason.strip()
    if not reason:
        raise ValidationFailed("Reason is required for manual entries")

    async with store_guard(db, "manual_entry_exit"):
        student = (
            await db.execute(select(StudentProfile).where(StudentProfile.college_id == college_id))
        ).scalar_one_or_none()
        if not student:
            raise NotFound("Student not found")
        log = await _append_gate_log(
            db,
            student_id=student.id,
            leave_application_id=None,
            action_type=action.value,
            scanned_by=scanned_by,
            scanned_at=clock.now(),
            validation_status=ScanStatus.MANUAL.value,
            validation_message=f"Manual {action.value}: {reason}",
            location=location,
        )
    logger.info("Manual %s recorded for student %s by %s (log %s)", action.value, student.id, scanned_by, log.id)
    return ManualEntryResponse(
        log_id=log.id,
        student_id=student.id,
        action_type=action,
        message=f"Manual {action.value} recorded successfully",
        scanned_at=log.scanned_at,
    )


def _gate_log_query():
    scanner = aliased(StaffProfile)
    return (
        select(
            GateLog,
            StudentProfile.college_id,
            StudentProfile.student_name,
            LeaveApplication.from_date,
            LeaveApplication.to_date,
            scanner.staff_name,
        )
        .outerjoin(StudentProfile, StudentProfile.id == GateLog.student_id)
        .outerjoin(LeaveApplication, LeaveApplication.id == GateLog.leave_application_id)
        .outerjoin(scanner, scanner.user_id == GateLog.scanned_by)
        .order_by(GateLog.scanned_at.desc(), GateLog.id.desc())
    )


def _gate_log_rows(rows) -> List[GateLogResponse]:
    return [
        GateLogResponse(
            id=log.id,
            student_id=log.student_id,
            college_id=college_id,
            student_name=student_name,
            leave_application_id=log.leave_application_id,
            from_date=from_date,
            to_date=to_date,
            action_type=log.action_type,
            scanned_by=log.scanned_by,
            scanned_by_name=staff_name,
            scanned_at=log.scanned_at,
            validation_status=log.validation_status,
            validation_message=log.validation_message,
            location=log.location,
        )
        for log, college_id, student_name, from_date, to_date, staff_name in rows
    ]


async def list_gate_logs(
    db: AsyncSession,
    *,
    on_date: Optional[date] = None,
    action: Optional[GateAction] = None,
    status: Optional[ScanStatus] = None,
    clock: Clock,
) -> List[GateLogResponse]:
    """Gate logs of one day (default today), newest first."""
    day = on_date or clock.today()
    start = datetime.combine(day, time.min)
    stmt = _gate_log_query().where(GateLog.scanned_at >= start, GateLog.scanned_at < start + timedelta(days=1))
    if action:
        stmt = stmt.where(GateLog.action_type == action.value)
    if status:
        stmt = stmt.where(GateLog.validation_status == status.value)
    result = await db.execute(stmt.limit(GATE_LOG_PAGE_SIZE))
    return _gate_log_rows(result.all())


async def student_gate_history(
    db: AsyncSession,
    student_id: UUID,
    viewer_id: Optional[UUID] = None,
    viewer_role: Optional[str] = None,
) -> List[GateLogResponse]:
    """Latest gate logs of one student. Guardians only see their own ward."""
    student = await db.get(StudentProfile, student_id)
    if not student:
        raise NotFound("Student not found")
    if viewer_role == UserRole.PARENT.value and student.guardian_user_id != viewer_id:
        raise NotFound("Student not found")
    result = await db.execute(
        _gate_log_query().where(GateLog.student_id == student_id).limit(STUDENT_HISTORY_SIZE)
    )
    return _gate_log_rows(result.all())


async def students_outside(db: AsyncSession, *, clock: Clock) -> StudentsOutsideResponse:
    entries = [
        GateEntryRecord(
            id=row.id,
            student_id=row.student_id,
            leave_application_id=row.leave_application_id,
            action_type=row.action_type,
            validation_status=row.validation_status,
            scanned_at=row.scanned_at,
        )
        for row in (
            await db.execute(
                select(
                    GateLog.id,
                    GateLog.student_id,
                    GateLog.leave_application_id,
                    GateLog.action_type,
                    GateLog.validation_status,
                    GateLog.scanned_at,
                ).where(GateLog.student_id.is_not(None))
            )
        ).all()
    ]
    leave_ids = {e.leave_application_id for e in entries if e.leave_application_id}
    to_dates = {}
    if leave_ids:
        result = await db.execute(
            select(LeaveApplication.id, LeaveApplication.to_date).where(LeaveApplication.id.in_(leave_ids))
        )
        to_dates = {leave_id: to_date for leave_id, to_date in result.all()}

    snapshot = project_presence(entries, to_dates, clock.today())

    student_ids = {r.student_id for r in snapshot.outside + snapshot.overdue}
    students = {}
    if student_ids:
        result = await db.execute(select(StudentProfile).where(StudentProfile.id.in_(student_ids)))
        students = {s.id: s for s in result.scalars().all()}

    def _row(record: OutsideStudent) -> StudentOutsideResponse:
        student = students[record.student_id]
        return StudentOutsideResponse(
            student_id=student.id,
            college_id=student.college_id,
            student_name=student.student_name,
            department=student.department,
            hostel_block=student.hostel_block,
            room_number=student.room_number,
            leave_application_id=record.leave_application_id,
            to_date=record.to_date,
            exit_time=record.exited_at,
            manual=record.manual,
        )

    outside = [_row(r) for r in snapshot.outside]
    return StudentsOutsideResponse(
        count=len(outside),
        students=outside,
        overdue=[_row(r) for r in snapshot.overdue],
    )
