"""
Tests for ServiceResult and BaseService.

These tests verify that:
- ServiceResult success/failure constructors and response shape
- map() only transforms successful results
- handle_exception keeps the application error code
- validate_required reports blank fields
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError
from core.services import BaseService, ServiceResult


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result
        assert result.data == {"id": 1}
        assert result.to_response() == {"success": True, "data": {"id": 1}}

    def test_failure_response(self):
        result = ServiceResult.failure(
            "Required fields missing",
            error_code="VALIDATION",
            errors={"currency": ["This field is required."]},
        )

        assert not result
        assert result.to_response() == {
            "success": False,
            "error": "Required fields missing",
            "error_code": "VALIDATION",
            "errors": {"currency": ["This field is required."]},
        }

    def test_from_exception_uses_message(self):
        result = ServiceResult.from_exception(NotFoundError("No payment"), "NOT_FOUND")

        assert result.error == "No payment"
        assert result.error_code == "NOT_FOUND"

    def test_from_plain_exception_defaults_code_to_class_name(self):
        result = ServiceResult.from_exception(RuntimeError("boom"))

        assert result.error == "boom"
        assert result.error_code == "RUNTIMEERROR"

    def test_map(self):
        assert ServiceResult.success(2).map(lambda n: n * 10).data == 20

        failure = ServiceResult.failure("nope", error_code="CONFLICT")
        assert failure.map(lambda n: n * 10) is failure


class TestBaseService:
    def test_logger_is_named_after_service(self):
        class ExampleService(BaseService):
            pass

        assert ExampleService.get_logger().name.endswith(".ExampleService")

    def test_handle_exception_keeps_error_code(self):
        result = BaseService.handle_exception(ConflictError("Intent is failed"), "confirm")

        assert not result.success
        assert result.error_code == "CONFLICT"
        assert result.error == "Intent is failed"

    def test_validate_required(self):
        assert BaseService.validate_required(currency="CNY") is None

        result = BaseService.validate_required(currency="  ", amount=None)

        assert result.error_code == "VALIDATION"
        assert set(result.errors) == {"currency", "amount"}


class TestBaseApplicationError:
    def test_str_includes_code(self):
        assert str(NotFoundError("missing")) == "[NOT_FOUND] missing"

    def test_to_dict_includes_details(self):
        error = ConflictError("bad transition", details={"intent_id": "abc"})

        assert error.to_dict() == {
            "error": "bad transition",
            "error_code": "CONFLICT",
            "details": {"intent_id": "abc"},
        }
