from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import Decision


class ExtensionRequest(BaseModel):
    """Guardian asks to push an approved leave's end date."""

    leave_id: UUID
    extended_to_date: date
    reason: str = Field(..., max_length=2000)


class ExtensionResponse(BaseModel):
    id: UUID
    leave_application_id: UUID
    requested_by: UUID
    extended_to_date: date
    reason: str
    status: str
    approved_by: Optional[UUID] = None
    remarks: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ExtensionDetailResponse(ExtensionResponse):
    college_id: str
    student_name: str
    current_to_date: date


class ExtensionDecision(BaseModel):
    action: Decision
    remarks: Optional[str] = Field(None, max_length=2000)
