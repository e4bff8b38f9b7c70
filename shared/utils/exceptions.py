"""Custom exception hierarchy for better error handling."""
from typing import Optional

from fastapi import HTTPException, status


class SpeddyException(Exception):
    """Base exception for all application errors."""
    pass


class StudentNotFoundException(SpeddyException):
    """Raised when a student record does not exist."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student {student_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Student {self.student_id} not found"
        )


class LessonNotFoundException(SpeddyException):
    """Raised when a differentiated lesson is not found."""

    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__(f"Lesson {lesson_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lesson not found"
        )


class InvalidLessonRequestException(SpeddyException):
    """Raised when a lesson generation request fails validation."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=self.message
        )


class AssessmentTypeExistsException(SpeddyException):
    """Raised when registering an assessment type whose name is taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Assessment type '{name}' already exists")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(self)
        )


class AdjustmentAccessDeniedException(SpeddyException):
    """Raised when some requested adjustments belong to another provider's students."""

    def __init__(self, requested: int, authorized: int):
        self.requested = requested
        self.authorized = authorized
        super().__init__(
            f"{requested - authorized} of {requested} adjustments do not belong to this provider"
        )

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "Unauthorized: Some adjustments do not belong to your students",
                "requested": self.requested,
                "authorized": self.authorized,
            }
        )


class NoStudentsForProviderException(SpeddyException):
    """Raised when a provider has no students on their caseload."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"No students found for provider {provider_id}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No students found for this teacher"
        )


class LLMProviderException(SpeddyException):
    """Raised when LLM provider fails."""

    def __init__(self, original_error: Exception):
        self.original_error = original_error
        super().__init__(f"LLM provider error: {str(original_error)}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service temporarily unavailable"
        )


class LLMConfigNotFoundError(SpeddyException):
    """Raised when LLM config is missing for a component."""

    def __init__(self, component_key: str):
        self.component_key = component_key
        super().__init__(
            f"LLM config not found for component '{component_key}'. "
            f"Add it via /api/admin/llm-config or run 'python db.py --seed-defaults'."
        )

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )


class DatabaseException(SpeddyException):
    """Raised when database operations fail."""

    def __init__(self, operation: str, original_error: Optional[Exception] = None):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Database {operation} failed: {str(original_error)}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database operation failed"
        )


class WorksheetNotFoundException(SpeddyException):
    """Raised when a submission references an unknown worksheet."""

    def __init__(self, worksheet_id: str):
        self.worksheet_id = worksheet_id
        super().__init__(f"Worksheet {worksheet_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Worksheet {self.worksheet_id} not found"
        )
