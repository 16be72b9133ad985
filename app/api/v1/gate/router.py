from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_roles
from app.auth.schemas import CurrentUser
from app.core.clock import Clock, get_clock
from app.core.enums import GateAction, ScanStatus, UserRole
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    GateLogResponse,
    ManualEntryRequest,
    ManualEntryResponse,
    ScanDecision,
    ScanRequest,
    StudentsOutsideResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/gate", tags=["gate"])

_gate_readers = require_roles(UserRole.WATCHMAN, UserRole.DEPUTY_WARDEN, UserRole.PRINCIPAL)


@router.post("/scan", response_model=ScanDecision)
async def scan_qr_code(
    payload: ScanRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.WATCHMAN)),
) -> ScanDecision:
    """Validate a scanned QR credential for exit or entry. Denied scans are still logged and return 200."""
    try:
        return await service.scan_credential(
            db,
            payload.qr_data,
            payload.action_type,
            current_user.id,
            location=payload.location,
            clock=clock,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/manual", response_model=ManualEntryResponse)
async def manual_entry(
    payload: ManualEntryRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.WATCHMAN)),
) -> ManualEntryResponse:
    try:
        return await service.manual_entry_exit(
            db,
            payload.college_id,
            payload.action_type,
            payload.reason,
            current_user.id,
            location=payload.location,
            clock=clock,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/logs", response_model=List[GateLogResponse])
async def list_gate_logs(
    on_date: Optional[date] = Query(None, alias="date"),
    action_type: Optional[GateAction] = Query(None),
    status: Optional[ScanStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(_gate_readers),
) -> List[GateLogResponse]:
    """Gate logs for a day (default today), newest first."""
    return await service.list_gate_logs(db, on_date=on_date, action=action_type, status=status, clock=clock)


@router.get("/students/{student_id}/history", response_model=List[GateLogResponse])
async def student_gate_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(
        require_roles(UserRole.WATCHMAN, UserRole.DEPUTY_WARDEN, UserRole.PRINCIPAL, UserRole.PARENT)
    ),
) -> List[GateLogResponse]:
    """Gate history of a student. Guardians may only read their own ward's."""
    try:
        return await service.student_gate_history(db, student_id, current_user.id, current_user.role)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/outside", response_model=StudentsOutsideResponse)
async def students_outside(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(_gate_readers),
) -> StudentsOutsideResponse:
    """Students currently outside the hostel, plus those past their leave end date who have not returned."""
    return await service.students_outside(db, clock=clock)
