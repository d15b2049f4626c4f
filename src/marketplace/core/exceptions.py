from typing import Optional, Dict, Any, List
import traceback
import sys


class BaseAPIException(Exception):
    def __init__(self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None):
        self.message = message  # User-facing message
        self.internal_message = internal_message or message  # Internal/debug message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__.replace('Error', '').upper()
        self.details = details or {}

        # Capture stack trace for debugging
        self.traceback = traceback.format_exc() if sys.exc_info()[0] else None

        super().__init__(self.message)

    def to_dict(self, include_debug: bool = False) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        error = {
            "code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if include_debug and self.internal_message != self.message:
            error["debug"] = self.internal_message
        return {
            "success": False,
            "message": self.message,
            "error": error
        }


class ValidationError(BaseAPIException):
    """Raised when request validation fails; carries every violated rule"""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[str]] = None
    ):
        self.errors = list(errors or [])
        details = {"errors": self.errors} if self.errors else {}
        super().__init__(message, 400, "VALIDATION_ERROR", details)

    def to_dict(self, include_debug: bool = False) -> Dict[str, Any]:
        data = super().to_dict(include_debug)
        data["errors"] = self.errors
        return data


class NotFoundError(BaseAPIException):
    """Raised when a requested resource is not found"""

    def __init__(self, resource: str = "Resource", resource_id: Optional[Any] = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message += f" with ID: {resource_id}"
        super().__init__(message, 404, "NOT_FOUND")


class UnauthorizedError(BaseAPIException):
    """Raised when user is not authenticated"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401, "UNAUTHORIZED")


class ForbiddenError(BaseAPIException):
    """Raised when user lacks permission for the requested action"""

    def __init__(self, message: str = "Access forbidden"):
        super().__init__(message, 403, "FORBIDDEN")


class TransactionError(BaseAPIException):
    """Raised when a write transaction fails and has been rolled back"""

    def __init__(self, message: str = "Transaction failed", operation: Optional[str] = None):
        # Don't expose internal database details to users
        user_message = "An internal error occurred. Please try again later."
        details = {"operation": operation} if operation else {}
        super().__init__(
            user_message,
            500,
            "TRANSACTION_ERROR",
            details,
            internal_message=message  # Keep original message for logging
        )


class DatabaseError(BaseAPIException):
    """Raised when a read query fails for reasons other than connectivity"""

    def __init__(self, message: str = "Database operation failed", operation: Optional[str] = None):
        user_message = "An internal error occurred. Please try again later."
        details = {"operation": operation} if operation else {}
        super().__init__(
            user_message,
            500,
            "DATABASE_ERROR",
            details,
            internal_message=message
        )


class DependencyError(BaseAPIException):
    """Raised when the data store or cache is unreachable or exhausted"""

    def __init__(self, service_name: str, message: str = "Dependency unavailable"):
        details = {"service": service_name, "retryable": True}
        super().__init__(
            "A required service is temporarily unavailable. Please retry.",
            500,
            "DEPENDENCY_ERROR",
            details,
            internal_message=message
        )


class RequestTimeoutError(BaseAPIException):
    """Raised when a request exceeds its time budget"""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            "The request took too long to complete.",
            504,
            "REQUEST_TIMEOUT",
            {"timeout_seconds": timeout_seconds},
            internal_message=f"{operation} exceeded {timeout_seconds}s"
        )


class InternalServerError(BaseAPIException):
    """Raised for unexpected internal errors"""

    def __init__(self, message: str = "An unexpected error occurred", context: Optional[Dict[str, Any]] = None):
        # Don't expose internal details to users
        user_message = "An internal server error occurred. Please try again later."
        super().__init__(
            user_message,
            500,
            "INTERNAL_ERROR",
            context or {},
            internal_message=message
        )


class CacheError(Exception):
    """Raised by cache backends; callers on read paths treat it as a miss"""
