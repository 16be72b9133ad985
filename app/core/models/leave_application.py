"""Student leave applications: two-tier approval, cached gate credential."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import campus_now
from app.core.enums import LeaveKind, LeaveStatus
from app.db.session import Base


class LeaveApplication(Base):
    __tablename__ = "leave_applications"
    __table_args__ = (
        Index("ix_leave_applications_student_status", "student_id", "status"),
        Index("ix_leave_applications_status_dates", "status", "from_date", "to_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False)
    leave_kind = Column(String(20), nullable=False, default=LeaveKind.REGULAR.value)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=False)
    destination = Column(String(255), nullable=True)
    contact_during_leave = Column(String(15), nullable=True)
    status = Column(String(20), nullable=False, default=LeaveStatus.PENDING.value)

    # Deputy warden tier
    dw_approved_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    dw_remarks = Column(Text, nullable=True)
    dw_approved_at = Column(DateTime, nullable=True)

    # Principal tier
    principal_approved_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    principal_remarks = Column(Text, nullable=True)
    principal_approved_at = Column(DateTime, nullable=True)

    # Gate credential, written once on first request after approval
    credential_issued = Column(Boolean, nullable=False, default=False)
    credential_payload = Column(Text, nullable=True)
    credential_valid_from = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=campus_now, nullable=False)
    updated_at = Column(DateTime, default=campus_now, onupdate=campus_now, nullable=False)

    student = relationship("StudentProfile", backref="leave_applications", foreign_keys=[student_id])

    @property
    def duration_days(self) -> int:
        """Inclusive day count of the leave."""
        return (self.to_date - self.from_date).days + 1
