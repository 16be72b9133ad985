from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_roles
from app.auth.schemas import CurrentUser
from app.core.clock import Clock, get_clock
from app.core.enums import UserRole
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .routing import tier_for_role
from .schemas import CredentialResponse, LeaveApplicationResponse, LeaveApply, LeaveDecision, PendingLeaveResponse
from . import service

router = APIRouter(prefix="/api/v1/leaves", tags=["leaves"])

_approvers = require_roles(UserRole.DEPUTY_WARDEN, UserRole.PRINCIPAL)


@router.post(
    "/apply",
    response_model=LeaveApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_leave(
    payload: LeaveApply,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.STUDENT)),
) -> LeaveApplicationResponse:
    """Apply for leave. Routed to the deputy warden or principal by duration."""
    try:
        return await service.apply_leave(db, current_user.id, current_user.role, payload, clock=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/my", response_model=List[LeaveApplicationResponse])
async def list_my_leaves(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.STUDENT)),
) -> List[LeaveApplicationResponse]:
    """List leave applications of the current student."""
    try:
        return await service.list_my_leaves(db, current_user.id, clock=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/children", response_model=List[PendingLeaveResponse])
async def list_children_leaves(
    leave_status: Optional[str] = Query(None, alias="status"),
    student_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.PARENT)),
) -> List[PendingLeaveResponse]:
    """Leave applications of the guardian's linked students."""
    return await service.list_children_leaves(
        db, current_user.id, status=leave_status, student_id=student_id, clock=clock
    )


@router.get("/pending", response_model=List[PendingLeaveResponse])
async def list_pending_leaves(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(_approvers),
) -> List[PendingLeaveResponse]:
    """Pending leaves for the caller's tier: short leaves for deputy wardens, long leaves for the principal."""
    return await service.list_tier_queue(db, tier_for_role(current_user.role), clock=clock)


@router.post("/{leave_id}/decision", response_model=LeaveApplicationResponse)
async def decide_leave(
    leave_id: UUID,
    payload: LeaveDecision,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(_approvers),
) -> LeaveApplicationResponse:
    """Approve or reject a pending leave."""
    try:
        return await service.decide_leave(
            db,
            leave_id,
            current_user.id,
            current_user.role,
            payload.action,
            remarks=payload.remarks,
            clock=clock,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{leave_id}/credential", response_model=CredentialResponse)
async def get_leave_credential(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.STUDENT)),
) -> CredentialResponse:
    """Gate QR credential for an approved leave. The same token is returned on every call."""
    try:
        return await service.issue_or_fetch_credential(db, leave_id, current_user.id, clock=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{leave_id}", response_model=LeaveApplicationResponse)
async def get_leave(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> LeaveApplicationResponse:
    try:
        return await service.get_leave(db, leave_id, current_user.id, current_user.role, clock=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
