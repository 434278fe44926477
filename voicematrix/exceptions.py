"""
Exception classes for Voice Matrix.

Every domain failure raised by the services maps to an HTTP status code and a
machine-readable ErrorCode. The API layer turns them into the standard error
envelope in app/error_handlers.py.

Exception Hierarchy:
    VoiceMatrixException (base, 500)
    ├── ValidationError (400)
    ├── AuthenticationError (401)
    ├── ResourceNotFoundError (404)
    │   └── NoResourceToDeleteError
    ├── ConflictError (409)
    │   └── LimitReachedError
    ├── ExternalProviderError (502)
    │   └── VapiError
    └── StorageError (500)
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the error envelope."""

    INTERNAL_ERROR = "INTERNAL_ERROR"

    # 400
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PHONE_NUMBER = "INVALID_PHONE_NUMBER"
    INVALID_TWILIO_CREDENTIALS = "INVALID_TWILIO_CREDENTIALS"

    # 401
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_WEBHOOK_SECRET = "INVALID_WEBHOOK_SECRET"

    # 404
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    ASSISTANT_NOT_FOUND = "ASSISTANT_NOT_FOUND"
    PHONE_NUMBER_NOT_FOUND = "PHONE_NUMBER_NOT_FOUND"
    CALL_LOG_NOT_FOUND = "CALL_LOG_NOT_FOUND"
    NO_RESOURCE_TO_DELETE = "NO_RESOURCE_TO_DELETE"

    # 409
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    PHONE_EXISTS = "PHONE_EXISTS"
    LIMIT_REACHED = "LIMIT_REACHED"

    # 502
    EXTERNAL_PROVIDER_ERROR = "EXTERNAL_PROVIDER_ERROR"
    VAPI_ERROR = "VAPI_ERROR"

    # 500
    STORAGE_ERROR = "STORAGE_ERROR"


class VoiceMatrixException(Exception):
    """
    Base exception class for all Voice Matrix errors.

    Attributes:
        message: Client-safe error message.
        error_code: Machine-readable error code from ErrorCode.
        status_code: HTTP status code to return.
        details: Additional context (never credentials).
        internal_message: Detailed message for logging only.
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.internal_message = internal_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to the error envelope."""
        response = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


class ValidationError(VoiceMatrixException):
    """Raised when input fails validation, before any mutation happens."""

    status_code = 400
    default_error_code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid request data"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        self.field = field
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )


class AuthenticationError(VoiceMatrixException):
    """
    Raised when a request cannot be tied to a live account.

    Missing tokens, invalid tokens and expired demo accounts all raise this
    with the same message and code, so a client cannot tell them apart.
    """

    status_code = 401
    default_error_code = ErrorCode.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"


class ResourceNotFoundError(VoiceMatrixException):
    """Raised when a requested resource does not exist for the account."""

    status_code = 404
    default_error_code = ErrorCode.RESOURCE_NOT_FOUND
    default_message = "Resource not found"

    def __init__(
        self,
        message: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id[:36]
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )


class NoResourceToDeleteError(ResourceNotFoundError):
    """Raised when auto-deletion finds no assistant to remove."""

    default_error_code = ErrorCode.NO_RESOURCE_TO_DELETE
    default_message = "No assistants found to delete"


class ConflictError(VoiceMatrixException):
    """Raised on duplicate resources or state conflicts."""

    status_code = 409
    default_error_code = ErrorCode.RESOURCE_CONFLICT
    default_message = "Resource conflict"


class LimitReachedError(ConflictError):
    """
    Raised when an account is at its assistant quota.

    The assistant creation route hides this from the client (see
    app/envelope.py); other callers see a 409.
    """

    default_error_code = ErrorCode.LIMIT_REACHED
    default_message = "Plan limit reached"

    def __init__(
        self,
        message: Optional[str] = None,
        limit_type: Optional[str] = None,
        current: Optional[int] = None,
        maximum: Optional[int] = None,
        internal_message: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if limit_type:
            details["limit_type"] = limit_type
        if current is not None:
            details["current"] = current
        if maximum is not None:
            details["max"] = maximum
        super().__init__(
            message=message,
            details=details,
            internal_message=internal_message,
        )


class ExternalProviderError(VoiceMatrixException):
    """Raised when an external provider call fails after retries."""

    status_code = 502
    default_error_code = ErrorCode.EXTERNAL_PROVIDER_ERROR
    default_message = "External service error"

    def __init__(
        self,
        message: Optional[str] = None,
        service_name: Optional[str] = None,
        provider_status: Optional[int] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = details or {}
        if service_name:
            details["service"] = service_name
        if provider_status is not None:
            details["provider_status"] = provider_status
        self.provider_status = provider_status
        self.original_error = original_error
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message or (str(original_error) if original_error else None),
        )


class VapiError(ExternalProviderError):
    """Raised when a Vapi API call fails."""

    default_error_code = ErrorCode.VAPI_ERROR
    default_message = "Voice provider request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        provider_status: Optional[int] = None,
        internal_message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service_name="vapi",
            provider_status=provider_status,
            internal_message=internal_message,
            original_error=original_error,
        )


class StorageError(VoiceMatrixException):
    """Raised when the datastore fails. The client only sees a generic message."""

    status_code = 500
    default_error_code = ErrorCode.STORAGE_ERROR
    default_message = "A storage error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        operation: Optional[str] = None,
        internal_message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            message=message,
            internal_message=internal_message or (str(original_error) if original_error else None),
        )
