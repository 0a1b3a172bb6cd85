"""Portal error taxonomy with standardized responses"""

import logging
from typing import Dict, Any, List, Optional
from enum import Enum

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification"""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    SECURITY = "security"
    CONFLICT = "conflict"
    BUSINESS_LOGIC = "business_logic"
    RATE_LIMIT = "rate_limit"
    SYSTEM = "system"


class ErrorCodes:
    """Centralized error codes returned at the request boundary"""

    VALIDATION_ERROR = "ValidationError"
    AUTHENTICATION_REQUIRED = "AuthenticationRequired"
    FORBIDDEN = "Forbidden"
    INVALID_CREDENTIALS = "InvalidCredentials"
    CONFLICT = "ConflictError"
    CSRF_REJECTED = "CsrfRejected"
    NOT_VERIFIED = "NotVerified"
    ALREADY_SUBMITTED = "AlreadySubmitted"
    INCOMPLETE_RECORD = "IncompleteRecord"
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    INTERNAL_ERROR = "InternalError"


class PortalError(Exception):
    """Base class for every error translated at the request boundary"""

    code = ErrorCodes.INTERNAL_ERROR
    http_status = 500
    category = ErrorCategory.SYSTEM
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, field_errors: Optional[Dict[str, List[str]]] = None):
        self.message = message or self.default_message
        self.field_errors = field_errors or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field_errors:
            body["fields"] = self.field_errors
        return {"error": body}


class ValidationError(PortalError):
    """Malformed input; field_errors maps field name to messages"""

    code = ErrorCodes.VALIDATION_ERROR
    http_status = 400
    category = ErrorCategory.VALIDATION
    default_message = "Invalid input"


class AuthenticationRequired(PortalError):
    code = ErrorCodes.AUTHENTICATION_REQUIRED
    http_status = 401
    category = ErrorCategory.AUTHENTICATION
    default_message = "Authentication required"


class InvalidCredentials(PortalError):
    """Login failure; deliberately the same for unknown user and wrong password"""

    code = ErrorCodes.INVALID_CREDENTIALS
    http_status = 401
    category = ErrorCategory.AUTHENTICATION
    default_message = "Invalid credentials"


class Forbidden(PortalError):
    code = ErrorCodes.FORBIDDEN
    http_status = 403
    category = ErrorCategory.AUTHORIZATION
    default_message = "Operation not permitted"


class CsrfRejected(PortalError):
    code = ErrorCodes.CSRF_REJECTED
    http_status = 403
    category = ErrorCategory.SECURITY
    default_message = "Anti-forgery token missing or invalid"


class ConflictError(PortalError):
    code = ErrorCodes.CONFLICT
    http_status = 409
    category = ErrorCategory.CONFLICT
    default_message = "Username already exists"


class NotFoundError(PortalError):
    code = ErrorCodes.NOT_FOUND
    http_status = 404
    category = ErrorCategory.BUSINESS_LOGIC
    default_message = "Payment not found"


class LifecycleError(PortalError):
    """Payment state machine precondition violation"""

    http_status = 409
    category = ErrorCategory.BUSINESS_LOGIC


class NotVerified(LifecycleError):
    code = ErrorCodes.NOT_VERIFIED
    default_message = "Payment must be verified before submitting to SWIFT"


class AlreadySubmitted(LifecycleError):
    code = ErrorCodes.ALREADY_SUBMITTED
    default_message = "Already submitted to SWIFT"


class IncompleteRecord(LifecycleError):
    code = ErrorCodes.INCOMPLETE_RECORD
    default_message = "Missing payee account or SWIFT code"


class RateLimited(PortalError):
    code = ErrorCodes.RATE_LIMITED
    http_status = 429
    category = ErrorCategory.RATE_LIMIT
    default_message = "Too many requests"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message)


class InternalError(PortalError):
    """Store or unexpected failure; detail is never shown to the caller in production"""

    code = ErrorCodes.INTERNAL_ERROR
    http_status = 500
    category = ErrorCategory.SYSTEM
    default_message = "Internal server error"


def internal_error_for(error: Exception, expose_detail: bool) -> InternalError:
    """Wrap an unexpected exception, keeping its text only when allowed"""
    logger.error(f"Unhandled error at request boundary: {type(error).__name__}: {error}", exc_info=error)
    if expose_detail:
        return InternalError(f"{type(error).__name__}: {error}")
    return InternalError()
