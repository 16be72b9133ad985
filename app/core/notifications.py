"""
Notification sink. Rows are added to the caller's session so they commit (or roll back)
together with the state change that produced them. Caller must commit.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.enums import NotificationType, UserRole
from app.core.models import Notification

logger = logging.getLogger(__name__)


def notify_user(
    db: AsyncSession,
    user_id: UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    leave_id: Optional[UUID] = None,
    *,
    at: datetime,
) -> None:
    db.add(
        Notification(
            user_id=user_id,
            notification_type=notification_type.value,
            title=title,
            message=message,
            related_leave_id=leave_id,
            created_at=at,
        )
    )
    logger.debug("Queued %s notification for user %s", notification_type.value, user_id)


async def notify_role(
    db: AsyncSession,
    role: UserRole,
    notification_type: NotificationType,
    title: str,
    message: str,
    leave_id: Optional[UUID] = None,
    *,
    at: datetime,
) -> int:
    """Notify every active user holding the role. Returns the number of recipients."""
    result = await db.execute(
        select(User.id).where(User.role == role.value, User.status == "ACTIVE")
    )
    recipients = result.scalars().all()
    for user_id in recipients:
        notify_user(db, user_id, notification_type, title, message, leave_id, at=at)
    return len(recipients)
