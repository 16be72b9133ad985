"""
Append-only gate scan log. The only record of who is inside or outside; rows are
never updated or deleted. Integer ids give a stable tie-break for equal timestamps.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid

from app.db.session import Base


class GateLog(Base):
    __tablename__ = "gate_logs"
    __table_args__ = (
        Index("ix_gate_logs_student_leave_time", "student_id", "leave_application_id", "scanned_at"),
        Index("ix_gate_logs_scanned_at", "scanned_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Null when the credential could not be resolved to a leave application
    student_id = Column(Uuid, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=True)
    # Null for manual entries
    leave_application_id = Column(Uuid, ForeignKey("leave_applications.id", ondelete="SET NULL"), nullable=True)
    action_type = Column(String(10), nullable=False)
    scanned_by = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    scanned_at = Column(DateTime, nullable=False)
    credential_payload = Column(Text, nullable=True)
    validation_status = Column(String(20), nullable=False)
    validation_message = Column(Text, nullable=True)
    location = Column(String(100), nullable=True)
