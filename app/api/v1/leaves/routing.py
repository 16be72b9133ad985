"""
Approval tier routing for leave applications.

duration <= MAX_REGULAR_LEAVE_DAYS -> deputy warden decides (APPROVED_DW)
duration >  MAX_REGULAR_LEAVE_DAYS -> principal decides (APPROVED_PRINCIPAL)

Both approval queues and both decision paths go through required_tier(); nothing
else compares a duration against the threshold.
"""

from datetime import date
from typing import Optional

from app.core.enums import APPROVED_STATUSES, ApprovalTier, LeaveStatus, UserRole


def required_tier(duration_days: int, threshold_days: int) -> ApprovalTier:
    if duration_days <= threshold_days:
        return ApprovalTier.DEPUTY
    return ApprovalTier.PRINCIPAL


def tier_for_role(role: str) -> Optional[ApprovalTier]:
    if role == UserRole.DEPUTY_WARDEN.value:
        return ApprovalTier.DEPUTY
    if role == UserRole.PRINCIPAL.value:
        return ApprovalTier.PRINCIPAL
    return None


def approved_status_for(tier: ApprovalTier) -> LeaveStatus:
    if tier == ApprovalTier.DEPUTY:
        return LeaveStatus.APPROVED_DW
    return LeaveStatus.APPROVED_PRINCIPAL


def effective_status(status: str, to_date: date, today: date) -> str:
    """EXPIRED is derived on read: an approved leave whose last day has passed."""
    if status in APPROVED_STATUSES and today > to_date:
        return LeaveStatus.EXPIRED.value
    return status


def intervals_overlap(a_from: date, a_to: date, b_from: date, b_to: date) -> bool:
    """Closed date intervals overlap iff each starts on or before the other ends."""
    return a_from <= b_to and b_from <= a_to
