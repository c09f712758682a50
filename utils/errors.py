"""Typed failures raised by the complaint core and mapped to HTTP responses by the app."""
from typing import Mapping


class ComplaintError(Exception):
    """Base class for user-facing failures."""

    status_code = 500
    kind = "internal_error"
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None, errors: Mapping | None = None):
        self.message = message or self.default_message
        self.errors = dict(errors or {})
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ComplaintError):
    status_code = 400
    kind = "validation_error"
    default_message = "Invalid request data"


class MissingField(ComplaintError):
    status_code = 400
    kind = "missing_field"
    default_message = "A required field is missing"

    def __init__(self, field_name: str, message: str | None = None):
        super().__init__(message or f"{field_name} is required", errors={field_name: ["This field is required."]})
        self.field_name = field_name


class Unauthorized(ComplaintError):
    status_code = 401
    kind = "unauthorized"
    default_message = "Authentication required"


class Forbidden(ComplaintError):
    status_code = 403
    kind = "forbidden"
    default_message = "You don't have permission to access this complaint"


class NotFound(ComplaintError):
    status_code = 404
    kind = "not_found"
    default_message = "Complaint not found"


class InvalidState(ComplaintError):
    status_code = 409
    kind = "invalid_state"
    default_message = "Complaint is not in a valid state for this action"


class InternalError(ComplaintError):
    status_code = 500
    kind = "internal_error"
    default_message = "Unexpected error. Please retry."


class ContractViolation(RuntimeError):
    """Raised when a caller breaks the entity store contract (programming error)."""


class TooManyAttempts(ComplaintError):
    status_code = 429
    kind = "too_many_attempts"
    default_message = "Too many failed attempts. Try again later."
