"""Unit tests for shared/utils/exceptions.py: custom exception hierarchy."""
import pytest

from shared.utils.exceptions import (
    AdjustmentAccessDeniedException,
    AssessmentTypeExistsException,
    DatabaseException,
    InvalidLessonRequestException,
    LLMConfigNotFoundError,
    LLMProviderException,
    LessonNotFoundException,
    NoStudentsForProviderException,
    SpeddyException,
    StudentNotFoundException,
    WorksheetNotFoundException,
)


ALL_EXCEPTIONS = [
    StudentNotFoundException("s1"),
    LessonNotFoundException("l1"),
    InvalidLessonRequestException("bad"),
    AssessmentTypeExistsException("reading_level"),
    AdjustmentAccessDeniedException(3, 1),
    NoStudentsForProviderException("p1"),
    LLMProviderException(RuntimeError("boom")),
    LLMConfigNotFoundError("lesson_generator"),
    DatabaseException("insert", RuntimeError("locked")),
    WorksheetNotFoundException("w1"),
]


class TestHierarchy:

    @pytest.mark.parametrize("exc", ALL_EXCEPTIONS, ids=lambda e: type(e).__name__)
    def test_is_speddy_exception(self, exc):
        assert isinstance(exc, SpeddyException)
        assert isinstance(exc, Exception)

    @pytest.mark.parametrize("exc", ALL_EXCEPTIONS, ids=lambda e: type(e).__name__)
    def test_every_exception_maps_to_http(self, exc):
        http = exc.to_http_exception()
        assert 400 <= http.status_code < 600


class TestStatusCodes:

    def test_student_not_found(self):
        http = StudentNotFoundException("s1").to_http_exception()
        assert http.status_code == 404
        assert http.detail == "Student s1 not found"

    def test_lesson_not_found(self):
        exc = LessonNotFoundException("l1")
        assert exc.lesson_id == "l1"
        assert exc.to_http_exception().status_code == 404
        assert exc.to_http_exception().detail == "Lesson not found"

    def test_invalid_request_carries_message(self):
        http = InvalidLessonRequestException("Subject is required").to_http_exception()
        assert http.status_code == 400
        assert http.detail == "Subject is required"

    def test_assessment_type_exists_is_conflict(self):
        http = AssessmentTypeExistsException("reading_level").to_http_exception()
        assert http.status_code == 409
        assert "reading_level" in http.detail

    def test_access_denied_reports_counts(self):
        exc = AdjustmentAccessDeniedException(requested=3, authorized=1)
        http = exc.to_http_exception()

        assert http.status_code == 403
        assert http.detail == {
            "message": "Unauthorized: Some adjustments do not belong to your students",
            "requested": 3,
            "authorized": 1,
        }
        assert "2 of 3" in str(exc)

    def test_no_students_for_provider(self):
        http = NoStudentsForProviderException("p1").to_http_exception()
        assert http.status_code == 404
        assert http.detail == "No students found for this teacher"

    def test_llm_provider_hides_internal_error(self):
        original = RuntimeError("api key sk-123 rejected")
        exc = LLMProviderException(original)
        http = exc.to_http_exception()

        assert exc.original_error is original
        assert http.status_code == 503
        assert "sk-123" not in http.detail

    def test_llm_config_not_found(self):
        exc = LLMConfigNotFoundError("lesson_generator")
        assert "lesson_generator" in str(exc)
        assert exc.to_http_exception().status_code == 503

    def test_database_exception(self):
        exc = DatabaseException("save generated lesson", RuntimeError("disk full"))
        assert "save generated lesson" in str(exc)
        assert "disk full" in str(exc)
        assert exc.to_http_exception().status_code == 500
        assert exc.to_http_exception().detail == "Database operation failed"

    def test_worksheet_not_found(self):
        assert WorksheetNotFoundException("w1").to_http_exception().status_code == 404
