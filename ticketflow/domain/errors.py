"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Actor identity missing"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """Actor is not the bound operator (or not a schema manager)"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class SchemaValidationError(ValidationError):
    """Schema draft rejected at publish time"""
    error_code = "SCHEMA_VALIDATION_ERROR"


class FormStructureError(ValidationError):
    """IfEqual/IfEnd markers unbalanced or field keys duplicated"""
    error_code = "FORM_STRUCTURE_ERROR"


class FieldErrors(ValidationError):
    """
    One or more field-level violations in a form submission.

    details["fields"] maps every offending field key to {"code", "message"}.
    """
    error_code = "FIELD_ERRORS"

    def __init__(self, fields: Dict[str, Dict[str, str]], message: Optional[str] = None):
        super().__init__(
            message or f"{len(fields)} field(s) failed validation",
            details={"fields": fields}
        )
        self.fields = fields


class InvalidSubmissionError(ValidationError):
    """Submitted value does not match the current step's module"""
    error_code = "INVALID_SUBMISSION"


class AssignmentValidationError(ValidationError):
    """Requested operator override is not eligible for the step"""
    error_code = "ASSIGNMENT_VALIDATION_ERROR"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class SchemaNotFoundError(NotFoundError):
    """Ticket schema not found"""
    error_code = "SCHEMA_NOT_FOUND"


class FlowNotFoundError(NotFoundError):
    """Schema flow step not found"""
    error_code = "FLOW_NOT_FOUND"


class TicketNotFoundError(NotFoundError):
    """Ticket not found"""
    error_code = "TICKET_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """Directory user not found"""
    error_code = "USER_NOT_FOUND"


class RoleNotFoundError(NotFoundError):
    """Directory role not found"""
    error_code = "ROLE_NOT_FOUND"


class BlobNotFoundError(NotFoundError):
    """Blob reference not registered"""
    error_code = "BLOB_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"


class AlreadyFinishedError(ConflictError):
    """Process called on a ticket with no unfinished step"""
    error_code = "ALREADY_FINISHED"


class TicketHaltedError(ConflictError):
    """Ticket is halted by a non-restart rejection"""
    error_code = "TICKET_HALTED"


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class AmbiguousAssignmentError(EngineError):
    """Role resolves to no eligible member and no override was given"""
    error_code = "AMBIGUOUS_ASSIGNMENT"
    http_status = 422
