"""Domain exceptions raised by the services and rendered by the API."""
from typing import Optional, Dict, Any
from fastapi import status


class AppException(Exception):
    """Base application exception with structured error information."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(AppException):
    """Entity is absent, or the caller is not allowed to see it.

    Ownership failures are reported with this error too, so a caller cannot
    learn whether somebody else's classroom exists.
    """

    def __init__(self, entity: str, message: Optional[str] = None):
        self.entity = entity
        super().__init__(
            message=message or f"{entity.capitalize()} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            details={"entity": entity},
        )


class ConflictError(AppException):
    def __init__(self, message: str, error_code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
            details=details,
        )


class AlreadyEnrolledError(ConflictError):
    def __init__(self, message: str = "Student is already enrolled in this classroom"):
        super().__init__(message, error_code="ALREADY_ENROLLED")


class AlreadyCompletedError(ConflictError):
    def __init__(self, message: str = "Exercise attempt is already completed"):
        super().__init__(message, error_code="ALREADY_COMPLETED")


class ExerciseAlreadyLinkedError(ConflictError):
    def __init__(self, message: str = "Exercise is already linked to this classroom"):
        super().__init__(message, error_code="EXERCISE_ALREADY_LINKED")


class ValidationFailure(AppException):
    """Caller-correctable input problem, raised before any mutation."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="VALIDATION_FAILED",
            details={"field": field} if field else None,
        )


class CodeExhaustionError(AppException):
    """No unique access code could be allocated within the attempt budget."""

    def __init__(self, attempts: int):
        super().__init__(
            message="Could not allocate a unique access code",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="CODE_EXHAUSTION",
            details={"attempts": attempts},
        )


class EvaluatorError(Exception):
    """The external answer evaluator failed or returned garbage."""


class EvaluatorQuotaExceeded(EvaluatorError):
    """The evaluator refused the call because of a rate limit or quota."""
