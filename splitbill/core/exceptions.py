"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"

    # Bill errors (2xxx)
    BILL_NOT_FOUND = "ERR_2001"
    BILL_CREATION_FAILED = "ERR_2002"
    PAYMENT_NOT_APPLIED = "ERR_2003"

    # Money errors (3xxx)
    INVALID_AMOUNT = "ERR_3001"

    # External service errors (5xxx)
    SMS_ERROR = "ERR_5001"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"

    # State machine errors (6xxx)
    SESSION_CONFLICT = "ERR_6003"
    SESSION_BUSY = "ERR_6004"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class BillNotFoundError(NotFoundException):
    """Raised when a bill id does not exist"""

    def __init__(self, bill_id: int):
        super().__init__(
            resource="Bill",
            identifier=bill_id,
            error_code=ErrorCode.BILL_NOT_FOUND
        )


class BillCreationError(AppException):
    """Raised when the bill, its creator or its members could not be persisted"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.BILL_CREATION_FAILED,
            status_code=500,
            details=details
        )


class PaymentNotAppliedError(AppException):
    """Raised by the REST layer when a mock payment flipped nothing"""

    def __init__(self, bill_id: int, member_phone: str):
        super().__init__(
            message="Bill or member not found, or payment already processed",
            error_code=ErrorCode.PAYMENT_NOT_APPLIED,
            status_code=400,
            details={"bill_id": bill_id, "member_phone": member_phone}
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class SmsError(ExternalServiceException):
    """Raised when the SMS gateway rejects or fails a request"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="sms",
            message=f"SMS API error: {message}",
            error_code=ErrorCode.SMS_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "SmsError":
        """
        Build an SmsError from an HTTP response.

        Args:
            operation: operation name (e.g. sms/send)
            response: response object (httpx.Response)
            message: custom message, built from the status code when omitted
            max_response_chars: cap on the stored response body
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )


class StateMachineException(AppException):
    """Base exception for state machine errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=409,
            details=details
        )


class SessionConflictError(StateMachineException):
    """Raised when a versioned session write lost the race"""

    def __init__(self, session_id: str, expected_version: int, actual_version: int | None):
        super().__init__(
            message=f"Session '{session_id}' was modified concurrently",
            error_code=ErrorCode.SESSION_CONFLICT,
            details={
                "session_id": session_id,
                "expected_version": expected_version,
                "actual_version": actual_version
            }
        )


class SessionBusyError(StateMachineException):
    """Raised when another turn holds the session lock for too long"""

    def __init__(self, session_id: str, timeout_seconds: float):
        super().__init__(
            message=f"Session '{session_id}' is busy",
            error_code=ErrorCode.SESSION_BUSY,
            details={"session_id": session_id, "timeout_seconds": timeout_seconds}
        )
