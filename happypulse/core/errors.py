# happypulse/core/errors.py
"""
Error kinds surfaced to callers.

Every error carries an HTTP status and a machine tag (`code`). The FastAPI
handlers in main.py render them as `{success: false, message, code, errors?}`.
"""
from typing import Optional, List, Dict


class WellnessError(Exception):
    status_code: int = 500
    code: str = "Internal"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


class Unauthenticated(WellnessError):
    status_code = 401
    code = "Unauthenticated"
    default_message = "Could not validate credentials"


class Forbidden(WellnessError):
    status_code = 403
    code = "Forbidden"
    default_message = "You do not have permission to access this resource"


class NotFound(WellnessError):
    status_code = 404
    code = "NotFound"
    default_message = "Resource not found"


class ValidationFailed(WellnessError):
    status_code = 400
    code = "Validation"
    default_message = "Validation failed"

    @classmethod
    def field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(message, errors=[{"field": field, "message": message}])


class InvalidMood(ValidationFailed):
    code = "InvalidMood"
    default_message = "Mood must be an integer between 1 and 5"


class AlreadyCheckedIn(WellnessError):
    """Raised when a second check-in lands in the same UTC day bucket."""
    status_code = 409
    code = "AlreadyCheckedIn"
    default_message = "You have already checked in today"


class DuplicateResponse(WellnessError):
    status_code = 409
    code = "DuplicateResponse"
    default_message = "You have already responded to this survey"


class WindowTooLarge(ValidationFailed):
    code = "WindowTooLarge"
    default_message = "Date range may not exceed one year"


class RateLimited(WellnessError):
    status_code = 429
    code = "RateLimited"
    default_message = "Too many requests. Please slow down."


class DependencyUnavailable(WellnessError):
    status_code = 503
    code = "DependencyUnavailable"
    default_message = "A required downstream service is unavailable"


class DeadlineExceeded(WellnessError):
    status_code = 504
    code = "DeadlineExceeded"
    default_message = "The request took too long to complete"


class InternalError(WellnessError):
    pass
