"""Audit log for leave lifecycle: APPLIED, APPROVED_*, REJECTED, EXTENSION_*, CREDENTIAL_ISSUED."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import campus_now
from app.db.session import Base


class LeaveAuditLog(Base):
    __tablename__ = "leave_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leave_application_id = Column(
        Uuid,
        ForeignKey("leave_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = Column(String(50), nullable=False)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_by_role = Column(String(50), nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime, default=campus_now, nullable=False)

    leave_application = relationship("LeaveApplication", backref="audit_logs", foreign_keys=[leave_application_id])
