"""
Tests for ServiceResult and BaseService helpers.
"""

import logging

from core.services import BaseService, ServiceResult


class TestServiceResult:
    """Tests for ServiceResult."""

    def test_success_result(self):
        result = ServiceResult.success({"id": 1})

        assert result.success is True
        assert result.data == {"id": 1}
        assert bool(result) is True

    def test_failure_result_is_falsy(self):
        result = ServiceResult.failure("Nope", error_code="NOT_PARTICIPANT")

        assert bool(result) is False
        assert result.error_code == "NOT_PARTICIPANT"
        assert result.data is None

    def test_to_response_success(self):
        assert ServiceResult.ok([1, 2]).to_response() == {"success": True, "data": [1, 2]}

    def test_to_response_failure_with_field_errors(self):
        result = ServiceResult.failure(
            "Required fields missing",
            error_code="VALIDATION_ERROR",
            errors={"content": ["This field is required."]},
        )

        assert result.to_response() == {
            "success": False,
            "error": "Required fields missing",
            "error_code": "VALIDATION_ERROR",
            "errors": {"content": ["This field is required."]},
        }

    def test_map_transforms_success(self):
        result = ServiceResult.success(2).map(lambda value: value * 10)

        assert result.data == 20

    def test_map_passes_failure_through(self):
        failure = ServiceResult.failure("Nope", error_code="X")

        assert failure.map(lambda value: value * 10) is failure

    def test_from_exception_defaults_code_to_class_name(self):
        result = ServiceResult.from_exception(ValueError("bad"))

        assert result.error == "bad"
        assert result.error_code == "VALUEERROR"


class TestBaseService:
    """Tests for BaseService helpers."""

    def test_logger_named_after_service(self):
        class PingService(BaseService):
            pass

        assert PingService.get_logger().name == f"{__name__}.PingService"

    def test_handle_exception_logs_and_returns_failure(self, caplog):
        with caplog.at_level(logging.ERROR):
            result = BaseService.handle_exception(
                RuntimeError("store down"), context="send", error_code="STORE_FAILURE"
            )

        assert result.success is False
        assert result.error_code == "STORE_FAILURE"
        assert "send: store down" in caplog.text

    def test_validate_required_flags_blank_values(self):
        result = BaseService.validate_required(content="   ", conversation_id=1)

        assert result is not None
        assert result.errors == {"content": ["This field is required."]}

    def test_validate_required_passes(self):
        assert BaseService.validate_required(content="hi") is None
