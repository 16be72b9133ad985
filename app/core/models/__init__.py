# Profiles must be registered on Base before leave relationships are configured
from app.auth.models import StaffProfile, StudentProfile, User  # noqa: F401
from app.core.models.leave_application import LeaveApplication
from app.core.models.emergency_extension import EmergencyExtension
from app.core.models.gate_log import GateLog
from app.core.models.leave_audit_log import LeaveAuditLog
from app.core.models.notification import Notification

__all__ = [
    "LeaveApplication",
    "EmergencyExtension",
    "GateLog",
    "LeaveAuditLog",
    "Notification",
]
