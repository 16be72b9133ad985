from enum import Enum


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    PARENT = "PARENT"
    DEPUTY_WARDEN = "DEPUTY_WARDEN"
    PRINCIPAL = "PRINCIPAL"
    WATCHMAN = "WATCHMAN"


class ApprovalTier(str, Enum):
    DEPUTY = "DEPUTY"
    PRINCIPAL = "PRINCIPAL"


class LeaveKind(str, Enum):
    REGULAR = "REGULAR"
    EMERGENCY = "EMERGENCY"
    MEDICAL = "MEDICAL"


class LeaveStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED_DW = "APPROVED_DW"
    APPROVED_PRINCIPAL = "APPROVED_PRINCIPAL"
    REJECTED = "REJECTED"
    # Never stored; derived from to_date on read
    EXPIRED = "EXPIRED"


APPROVED_STATUSES = (LeaveStatus.APPROVED_DW.value, LeaveStatus.APPROVED_PRINCIPAL.value)
ACTIVE_STATUSES = (LeaveStatus.PENDING.value,) + APPROVED_STATUSES


class ExtensionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class GateAction(str, Enum):
    EXIT = "EXIT"
    ENTRY = "ENTRY"


class ScanStatus(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"
    UNAUTHORIZED = "UNAUTHORIZED"
    MANUAL = "MANUAL"


class NotificationType(str, Enum):
    LEAVE_APPLIED = "LEAVE_APPLIED"
    LEAVE_PENDING = "LEAVE_PENDING"
    LEAVE_APPROVED = "LEAVE_APPROVED"
    LEAVE_REJECTED = "LEAVE_REJECTED"
    EXTENSION_REQUEST = "EXTENSION_REQUEST"
    EXTENSION_PROCESSED = "EXTENSION_PROCESSED"
