from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import GateAction

DEFAULT_LOCATION = "Main Gate"


class ScanRequest(BaseModel):
    qr_data: str = Field(..., max_length=4000)
    action_type: GateAction
    location: str = Field(DEFAULT_LOCATION, max_length=100)


class ScanStudent(BaseModel):
    id: UUID
    college_id: str
    student_name: str
    department: Optional[str] = None
    hostel_block: Optional[str] = None
    room_number: Optional[str] = None


class ScanLeave(BaseModel):
    id: UUID
    from_date: date
    to_date: date
    status: str


class ScanDecision(BaseModel):
    """Outcome of one gate scan. Every decision corresponds to exactly one gate log row."""

    allowed: bool
    status: str
    message: str
    log_id: int
    action_type: GateAction
    scanned_at: datetime
    student: Optional[ScanStudent] = None
    leave: Optional[ScanLeave] = None


class ManualEntryRequest(BaseModel):
    college_id: str = Field(..., min_length=1, max_length=50)
    action_type: GateAction
    reason: str = Field(..., max_length=500)
    location: str = Field(DEFAULT_LOCATION, max_length=100)


class ManualEntryResponse(BaseModel):
    log_id: int
    student_id: UUID
    action_type: GateAction
    message: str
    scanned_at: datetime


class GateLogResponse(BaseModel):
    id: int
    student_id: Optional[UUID] = None
    college_id: Optional[str] = None
    student_name: Optional[str] = None
    leave_application_id: Optional[UUID] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    action_type: str
    scanned_by: UUID
    scanned_by_name: Optional[str] = None
    scanned_at: datetime
    validation_status: str
    validation_message: Optional[str] = None
    location: Optional[str] = None


class StudentOutsideResponse(BaseModel):
    student_id: UUID
    college_id: str
    student_name: str
    department: Optional[str] = None
    hostel_block: Optional[str] = None
    room_number: Optional[str] = None
    leave_application_id: Optional[UUID] = None
    to_date: Optional[date] = None
    exit_time: datetime
    manual: bool = False


class StudentsOutsideResponse(BaseModel):
    count: int
    students: List[StudentOutsideResponse]
    overdue: List[StudentOutsideResponse]
