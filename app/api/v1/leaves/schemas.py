from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import ApprovalTier, Decision, LeaveKind


# ----- Apply Leave -----
class LeaveApply(BaseModel):
    """Apply for leave. student_id is set by backend from current user."""

    leave_type: LeaveKind = LeaveKind.REGULAR
    from_date: date = Field(...)
    to_date: date = Field(...)
    reason: str = Field(..., max_length=2000)
    destination: Optional[str] = Field(None, max_length=255)
    contact_during_leave: Optional[str] = Field(None, max_length=15)


# ----- Leave Application Response -----
class LeaveApplicationResponse(BaseModel):
    id: UUID
    student_id: UUID
    leave_type: str
    from_date: date
    to_date: date
    duration_days: int
    required_tier: ApprovalTier
    reason: str
    destination: Optional[str] = None
    contact_during_leave: Optional[str] = None
    status: str
    dw_approved_by: Optional[UUID] = None
    dw_remarks: Optional[str] = None
    dw_approved_at: Optional[datetime] = None
    principal_approved_by: Optional[UUID] = None
    principal_remarks: Optional[str] = None
    principal_approved_at: Optional[datetime] = None
    credential_issued: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PendingLeaveResponse(LeaveApplicationResponse):
    """Approval queue row with the student details an approver needs."""

    college_id: str
    student_name: str
    department: Optional[str] = None
    hostel_block: Optional[str] = None
    room_number: Optional[str] = None


# ----- Approve / Reject -----
class LeaveDecision(BaseModel):
    action: Decision
    remarks: Optional[str] = Field(None, max_length=2000)


# ----- Gate credential -----
class CredentialResponse(BaseModel):
    token: str
    qr_code: str = Field(..., description="PNG data URL of the token")
    valid_from: datetime
    from_date: date
    to_date: date
    status: str
