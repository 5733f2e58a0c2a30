"""Custom exception classes for the booking core service."""

from typing import Any, Dict, Optional


class APIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class ValidationError(APIException):
    """Exception raised for malformed or missing request fields."""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if errors:
            error_details["validation_errors"] = errors
        super().__init__(
            message=message,
            status_code=422,
            code="VALIDATION_ERROR",
            details=error_details,
        )


class NotFoundError(APIException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        if resource_id:
            message += f" with id: {resource_id}"
        error_details = details or {}
        error_details["resource"] = resource
        if resource_id:
            error_details["resource_id"] = resource_id
        super().__init__(
            message=message,
            status_code=404,
            code="NOT_FOUND",
            details=error_details,
        )


class ConflictError(APIException):
    """Exception raised when a slot or appointment is in a conflicting state.

    ``reason`` is a stable machine-readable token (``slot_locked``,
    ``slot_fully_booked``...) so clients can self-heal.
    """

    def __init__(
        self,
        message: str = "Resource conflict",
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 409,
        code: str = "CONFLICT",
    ):
        error_details = details or {}
        if reason:
            error_details["reason"] = reason
        self.reason = reason
        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            details=error_details,
        )


class SlotLockedError(ConflictError):
    """The slot is held by another checkout until ``locked_until`` (ISO-8601)."""

    def __init__(
        self,
        locked_until: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["lockedUntil"] = locked_until
        self.locked_until = locked_until
        super().__init__(
            message=message
            or "This slot is temporarily locked by another user. Please try again shortly.",
            reason="slot_locked",
            details=error_details,
        )

    def to_dict(self) -> Dict[str, Any]:
        # Older clients read lockedUntil from the top level of the body
        body = super().to_dict()
        body["lockedUntil"] = self.locked_until
        return body


class InvalidTransitionError(ConflictError):
    """Exception raised when an appointment cannot move to the requested status."""

    def __init__(
        self,
        current_status: str,
        target_status: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or f"Cannot move appointment from '{current_status}' to '{target_status}'",
            reason="invalid_status_transition",
            details={"current_status": current_status, "target_status": target_status},
            status_code=400,
            code="INVALID_STATUS_TRANSITION",
        )


class DatabaseError(APIException):
    """Exception raised for database-related errors."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="DATABASE_ERROR",
            details=details,
        )


class UpstreamError(APIException):
    """Exception raised when the payment gateway (or another upstream) fails."""

    def __init__(
        self,
        service: str,
        message: Optional[str] = None,
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_message = message or f"Upstream service '{service}' unavailable"
        error_details = details or {}
        error_details["service"] = service
        super().__init__(
            message=error_message,
            status_code=status_code,
            code="UPSTREAM_ERROR",
            details=error_details,
        )
