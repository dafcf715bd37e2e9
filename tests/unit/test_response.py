"""Error envelope formatting and exception taxonomy tests."""

import pytest

from fieldguard.utils.exceptions import (
    ConfigurationError, ErrorCategory, FieldGuardError, MalformedAnnotationError,
    RequestParseError, RequestValidationError, UnknownRuleError
)
from fieldguard.utils.response import (
    INVALID_FIELD_SELECTION, VALIDATION_FAILED, ErrorEnvelope, ErrorEnvelopeBuilder, bad_request,
    conflict, field_error, forbidden, format_parse_error, format_result, has_field_error,
    internal_server_error, not_found, unauthorized
)
from fieldguard.validation import FIELD_NOT_FOUND, VALID, ValidationResult


@pytest.fixture
def failed_result():
    return ValidationResult.from_errors({
        "email": "email must be a valid email address",
        "confirmPassword": "confirmPassword must match password",
    })


class TestFormatResult:

    @pytest.mark.parametrize("source,message", [
        ("body", "Request body validation failed"),
        ("query", "Query parameter validation failed"),
        ("params", "Route parameter validation failed"),
        ("headers", "Header validation failed"),
        ("custom", "Custom validation failed"),
        (None, "Request validation failed"),
    ])
    def test_message_per_source(self, failed_result, source, message):
        envelope = format_result(failed_result, source=source)
        assert envelope.message == message
        assert envelope.error == VALIDATION_FAILED
        assert envelope.status == 422

    def test_wire_shape(self, failed_result):
        assert format_result(failed_result, source="body").to_dict() == {
            "error": "Validation failed",
            "message": "Request body validation failed",
            "status": 422,
            "details": {
                "email": "email must be a valid email address",
                "confirmPassword": "confirmPassword must match password",
            },
        }

    def test_unknown_fields_use_distinct_error(self):
        result = ValidationResult.from_errors({"nope": FIELD_NOT_FOUND}, ["nope"])
        envelope = format_result(result, source="body")

        assert envelope.error == INVALID_FIELD_SELECTION
        assert envelope.status == 422
        assert envelope.details == {"nope": "field not found"}

    def test_valid_result_cannot_be_formatted(self):
        with pytest.raises(ValueError):
            format_result(VALID)


class TestFormatParseError:

    def test_field_errors(self):
        error = RequestParseError(
            "request data could not be converted",
            source="query",
            field_errors={"page": "Not a valid integer."}
        )
        assert format_parse_error(error).to_dict() == {
            "error": "Invalid query parameters",
            "message": "Failed to parse query parameters",
            "status": 400,
            "details": {"page": "Not a valid integer."},
        }

    def test_general_message(self):
        envelope = format_parse_error(RequestParseError("request body is not valid JSON", "body"))
        assert envelope.status == 400
        assert envelope.error == "Invalid request body"
        assert envelope.details == {"general": "request body is not valid JSON"}

    def test_unknown_source(self):
        envelope = format_parse_error(RequestParseError("broken"))
        assert envelope.error == "Bad Request"
        assert envelope.message == "broken"


class TestEnvelopeBuilder:

    def test_defaults(self):
        envelope = ErrorEnvelopeBuilder().build()
        assert envelope.to_dict() == {
            "error": "Validation failed",
            "message": "Request validation failed",
            "status": 422,
        }

    def test_fluent_build(self):
        envelope = (
            ErrorEnvelopeBuilder()
            .with_error("Conflict")
            .with_message("Username taken")
            .with_status(409)
            .with_details({"username": "already exists"})
            .build()
        )
        assert envelope == ErrorEnvelope(
            error="Conflict", message="Username taken", status=409,
            details={"username": "already exists"}
        )

    def test_built_envelopes_are_independent(self):
        builder = ErrorEnvelopeBuilder().with_details({"a": "x"})
        first = builder.build()
        builder.with_details({"b": "y"})
        assert first.details == {"a": "x"}

    @pytest.mark.parametrize("factory,status,error", [
        (bad_request, 400, "Bad Request"),
        (unauthorized, 401, "Unauthorized"),
        (forbidden, 403, "Forbidden"),
        (not_found, 404, "Not Found"),
        (conflict, 409, "Conflict"),
        (internal_server_error, 500, "Internal Server Error"),
    ])
    def test_http_envelopes(self, factory, status, error):
        envelope = factory("something happened")
        assert envelope.to_dict() == {
            "error": error, "message": "something happened", "status": status
        }


class TestFieldQueries:

    def test_envelope_and_wire_dict(self, failed_result):
        envelope = format_result(failed_result)
        wire = envelope.to_dict()

        for source in (envelope, wire):
            assert has_field_error(source, "email")
            assert not has_field_error(source, "username")
            assert field_error(source, "confirmPassword") == "confirmPassword must match password"
            assert field_error(source, "username") is None

    def test_envelope_without_details(self):
        assert not has_field_error({"error": "x", "message": "y", "status": 400}, "email")


class TestExceptionTaxonomy:

    def test_categories_and_statuses(self):
        assert issubclass(UnknownRuleError, ConfigurationError)
        assert issubclass(ConfigurationError, FieldGuardError)
        assert ConfigurationError.category is ErrorCategory.CONFIGURATION
        assert RequestParseError.http_status == 400
        assert RequestValidationError.http_status == 422

    def test_to_dict(self):
        error = MalformedAnnotationError("bad bound", shape="Form", field="name", rule="min")
        assert error.to_dict() == {
            "message": "bad bound",
            "code": "MalformedAnnotationError",
            "category": "configuration",
            "details": {"shape": "Form", "field": "name", "rule": "min"},
        }

    def test_validation_error_defaults_to_summary(self, failed_result):
        error = RequestValidationError(failed_result, source="body")
        assert error.message == (
            "confirmPassword: confirmPassword must match password; "
            "email: email must be a valid email address"
        )
        assert error.result is failed_result
