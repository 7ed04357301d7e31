"""
Error taxonomy shared by services and endpoints.

Services raise these; the handlers registered in ``app.main`` render them as
``{"error": ..., "details": ..., "code": ...}`` with the matching status.
"""
from typing import Optional


class ExamIntegrityError(Exception):
    status_code = 500
    code: Optional[str] = None
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self, expose_details: bool = True) -> dict:
        body = {"error": self.message}
        if self.details and expose_details:
            body["details"] = self.details
        if self.code:
            body["code"] = self.code
        return body


class ValidationError(ExamIntegrityError):
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(ExamIntegrityError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(ExamIntegrityError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ExamIntegrityError):
    status_code = 404
    default_message = "Not found"


class ConcurrentSessionError(ForbiddenError):
    code = "CONCURRENT_SESSION"
    default_message = "Session active on another device"


class InternalError(ExamIntegrityError):
    status_code = 500


def missing_fields_error(payload: dict, required: list) -> Optional[ValidationError]:
    """Build the 400 for absent/empty required fields, or None when all are present"""
    missing = [name for name in required if payload.get(name) in (None, "")]
    if not missing:
        return None
    return ValidationError(f"Missing required fields: {', '.join(required)}", details=", ".join(missing))
