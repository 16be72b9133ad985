from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ----- Validation -----
class ValidationFailed(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidRange(ValidationFailed):
    def __init__(self, message: str = "To date must be on or after from date") -> None:
        super().__init__(message)


class InsufficientLeadTime(ValidationFailed):
    def __init__(self, min_advance_days: int) -> None:
        super().__init__(f"Leave must be applied at least {min_advance_days} days in advance")
        self.min_advance_days = min_advance_days


# ----- Precondition / state -----
class NotFound(ServiceError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class WrongTier(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotApproved(ServiceError):
    def __init__(self, message: str = "Leave application is not approved") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NonAdvancingDate(ServiceError):
    def __init__(self, message: str = "Extended date must be after current end date") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class OverlappingApplication(ServiceError):
    def __init__(self, message: str = "You have an overlapping leave application") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class AlreadyProcessed(ServiceError):
    def __init__(self, message: str = "Already processed") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


# ----- Credential -----
class CredentialError(ServiceError):
    """Raised by the credential codec. The gate validator logs these as INVALID scans."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class MalformedCredential(CredentialError):
    def __init__(self, message: str = "Invalid QR code format") -> None:
        super().__init__(message)


class TamperedCredential(CredentialError):
    def __init__(self, message: str = "QR code tampered or invalid") -> None:
        super().__init__(message)


# ----- Infrastructure -----
class TransientFailure(ServiceError):
    def __init__(self, message: str = "Service temporarily unavailable, please retry") -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class GateLogWriteFailed(ServiceError):
    def __init__(self, message: str = "Gate scan could not be recorded") -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
