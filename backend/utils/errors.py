"""Error taxonomy for FwdLink operations.

Services raise these; server.py turns them into
{"success": false, "error": ..., "error_code": ...} responses.
"""
from typing import Optional, Dict, Any
from models import ErrorCode


class FwdLinkError(Exception):
    """Base exception for expected, user-facing failures."""
    error_code: ErrorCode = ErrorCode.VALIDATION_FAILED
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            body["details"] = self.details
        return body


class UnauthorizedError(FwdLinkError):
    error_code = ErrorCode.UNAUTHORIZED
    status_code = 401
    default_message = "Unauthorized"


class NotOwnerError(UnauthorizedError):
    """Authenticated, but the record belongs to someone else."""
    status_code = 403


class UserNotFoundError(FwdLinkError):
    error_code = ErrorCode.USER_NOT_FOUND
    status_code = 404
    default_message = "User not found"


class NotFoundError(FwdLinkError):
    error_code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = "Not found"


class LimitReachedError(FwdLinkError):
    error_code = ErrorCode.LIMIT_REACHED
    status_code = 402
    default_message = "Free quota limit reached. Please upgrade to Pro."


class ValidationFailedError(FwdLinkError):
    error_code = ErrorCode.VALIDATION_FAILED
    status_code = 422
    default_message = "Invalid input"


class DeliveryFailedError(FwdLinkError):
    error_code = ErrorCode.DELIVERY_FAILED
    status_code = 502
    default_message = "Failed to send email. Please try again."


class SignatureInvalidError(FwdLinkError):
    error_code = ErrorCode.SIGNATURE_INVALID
    status_code = 403
    default_message = "Invalid signature"


class ConfigMissingError(FwdLinkError):
    error_code = ErrorCode.CONFIG_MISSING
    status_code = 500
    default_message = "Server configuration missing"


class InvalidTransitionError(FwdLinkError):
    error_code = ErrorCode.INVALID_TRANSITION
    status_code = 409
    default_message = "Status can only change from pending"


class ProRequiredError(FwdLinkError):
    error_code = ErrorCode.PRO_REQUIRED
    status_code = 403
    default_message = "Pro subscription required"


class InvalidPayloadError(ValidationFailedError):
    """Malformed webhook body. Providers expect 400 here, not 422."""
    status_code = 400
    default_message = "Invalid webhook payload"
