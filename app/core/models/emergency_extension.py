"""Guardian-requested extension of an approved leave's end date."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import campus_now
from app.core.enums import ExtensionStatus
from app.db.session import Base


class EmergencyExtension(Base):
    __tablename__ = "emergency_extensions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leave_application_id = Column(
        Uuid,
        ForeignKey("leave_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_by = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    extended_to_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ExtensionStatus.PENDING.value)
    approved_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    remarks = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=campus_now, nullable=False)

    leave_application = relationship("LeaveApplication", backref="extensions", foreign_keys=[leave_application_id])
