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
    """Token missing, invalid, or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """User lacks permission for action"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class PermissionDeniedError(AuthorizationError):
    """Access Guard denied the actor"""
    error_code = "PERMISSION_DENIED"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class InvalidStateError(ValidationError):
    """Action not valid for current instance/template state"""
    error_code = "INVALID_STATE"


class RuleBlockedError(ValidationError):
    """A blocking business rule matched the submission"""
    error_code = "RULE_BLOCKED"


class PayloadTooLargeError(ValidationError):
    """Form data log would exceed its cap"""
    error_code = "PAYLOAD_TOO_LARGE"


class InvalidFormDataError(ValidationError):
    """Form values cannot be encoded"""
    error_code = "INVALID_FORM_DATA"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class WorkflowNotFoundError(NotFoundError):
    """Workflow template not found"""
    error_code = "WORKFLOW_NOT_FOUND"


class InstanceNotFoundError(NotFoundError):
    """Workflow instance not found"""
    error_code = "INSTANCE_NOT_FOUND"


class IdentityNotFoundError(NotFoundError):
    """User identity not found"""
    error_code = "IDENTITY_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Rule expression errors. Internal to the rule evaluator, never surfaced.
class ExpressionError(Exception):
    """Base class for rule expression failures"""

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} (at position {self.position})"


class MalformedRuleExpression(ExpressionError):
    """Expression could not be parsed"""


class RuleEvaluationFailure(ExpressionError):
    """Expression parsed but could not be evaluated"""
