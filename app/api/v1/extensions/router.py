from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_roles
from app.auth.schemas import CurrentUser
from app.core.clock import Clock, get_clock
from app.core.enums import UserRole
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ExtensionDecision, ExtensionDetailResponse, ExtensionRequest, ExtensionResponse
from . import service

router = APIRouter(prefix="/api/v1/extensions", tags=["extensions"])


@router.post(
    "",
    response_model=ExtensionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_extension(
    payload: ExtensionRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.PARENT)),
) -> ExtensionResponse:
    """Guardian requests an emergency extension of their ward's approved leave."""
    try:
        return await service.request_extension(db, current_user.id, current_user.role, payload, clock=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/pending", response_model=List[ExtensionDetailResponse])
async def list_pending_extensions(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(UserRole.DEPUTY_WARDEN)),
) -> List[ExtensionDetailResponse]:
    return await service.list_pending_extensions(db)


@router.get("/my", response_model=List[ExtensionDetailResponse])
async def list_my_extensions(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(UserRole.PARENT)),
) -> List[ExtensionDetailResponse]:
    """Extension requests made by the current guardian."""
    return await service.list_my_extensions(db, current_user.id)


@router.post("/{extension_id}/decision", response_model=ExtensionResponse)
async def decide_extension(
    extension_id: UUID,
    payload: ExtensionDecision,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles(UserRole.DEPUTY_WARDEN)),
) -> ExtensionResponse:
    """Approve or reject an emergency extension. Approval moves the leave's end date."""
    try:
        return await service.decide_extension(
            db,
            extension_id,
            current_user.id,
            current_user.role,
            payload.action,
            remarks=payload.remarks,
            clock=clock,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
