"""
Standardized error envelope formatting for validation failures.

Every failure leaving the validation layer has the same wire shape:

    {"error": "Validation failed",
     "message": "Request body validation failed",
     "details": {"confirmPassword": "confirmPassword must match password"},
     "status": 422}

``details`` is only present when there are field-level messages and is always keyed by external
field name. Status codes separate the failure classes:

- 422 for body, query, route parameter, header and custom validation failures
- 400 for parse failures that happen before validation runs
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Mapping, Optional, Union

import structlog

from .exceptions import RequestParseError

logger = structlog.get_logger(__name__)

VALIDATION_FAILED = "Validation failed"
INVALID_FIELD_SELECTION = "Invalid field selection"

# Top-level message per request-data source
VALIDATION_MESSAGES = {
    'body': "Request body validation failed",
    'query': "Query parameter validation failed",
    'params': "Route parameter validation failed",
    'headers': "Header validation failed",
    'custom': "Custom validation failed",
}

PARSE_ERRORS = {
    'body': ("Invalid request body", "Failed to parse request body"),
    'query': ("Invalid query parameters", "Failed to parse query parameters"),
    'params': ("Invalid route parameters", "Failed to parse route parameters"),
    'headers': ("Invalid headers", "Failed to parse headers"),
}


@dataclass
class ErrorEnvelope:
    """Uniform error response body plus the HTTP status it is sent with."""

    error: str
    message: str
    status: int
    details: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        envelope = {
            'error': self.error,
            'message': self.message,
            'status': self.status,
        }
        if self.details:
            envelope['details'] = dict(self.details)
        return envelope


class ErrorEnvelopeBuilder:
    """
    Fluent builder for error envelopes.

    Defaults to a 422 validation failure:

        envelope = (ErrorEnvelopeBuilder()
                    .with_message("Custom validation failed")
                    .with_details({"start": "start must be before end"})
                    .build())
    """

    def __init__(self):
        self._envelope = ErrorEnvelope(
            error=VALIDATION_FAILED,
            message="Request validation failed",
            status=HTTPStatus.UNPROCESSABLE_ENTITY.value
        )

    def with_error(self, error: str) -> 'ErrorEnvelopeBuilder':
        self._envelope.error = error
        return self

    def with_message(self, message: str) -> 'ErrorEnvelopeBuilder':
        self._envelope.message = message
        return self

    def with_status(self, status: int) -> 'ErrorEnvelopeBuilder':
        self._envelope.status = int(status)
        return self

    def with_details(self, details: Mapping[str, str]) -> 'ErrorEnvelopeBuilder':
        self._envelope.details = dict(details)
        return self

    def with_result(self, result) -> 'ErrorEnvelopeBuilder':
        """Copy the field errors of a ``ValidationResult``."""
        self._envelope.details = dict(result.errors)
        if result.unknown_fields:
            self._envelope.error = INVALID_FIELD_SELECTION
        return self

    def build(self) -> ErrorEnvelope:
        return ErrorEnvelope(
            error=self._envelope.error,
            message=self._envelope.message,
            status=self._envelope.status,
            details=dict(self._envelope.details)
        )


def format_result(result, source: Optional[str] = None) -> ErrorEnvelope:
    """
    Format a failed ``ValidationResult`` into the error envelope.

    Partial validation naming unknown fields is reported with the ``Invalid field selection``
    error so callers can tell it apart from value failures; the status stays 422.

    Args:
        result: Failed validation result
        source: Request-data source the result came from (body, query, params, headers, custom)

    Raises:
        ValueError: If the result is valid
    """
    if result.valid:
        raise ValueError("cannot format a valid validation result as an error")

    envelope = (
        ErrorEnvelopeBuilder()
        .with_message(VALIDATION_MESSAGES.get(source, "Request validation failed"))
        .with_result(result)
        .build()
    )
    logger.info(
        "Validation error envelope created",
        source=source,
        error=envelope.error,
        fields=sorted(envelope.details)
    )
    return envelope


def format_parse_error(error: RequestParseError) -> ErrorEnvelope:
    """Format a parse failure as a 400 envelope."""
    title, message = PARSE_ERRORS.get(error.source, ("Bad Request", error.message))
    builder = (
        ErrorEnvelopeBuilder()
        .with_error(title)
        .with_message(message)
        .with_status(HTTPStatus.BAD_REQUEST)
    )
    if error.field_errors:
        builder.with_details(error.field_errors)
    else:
        builder.with_details({'general': error.message})
    return builder.build()


def _details_of(envelope: Union[ErrorEnvelope, Mapping[str, Any]]) -> Mapping[str, str]:
    if isinstance(envelope, ErrorEnvelope):
        return envelope.details
    return envelope.get('details') or {}


def has_field_error(envelope: Union[ErrorEnvelope, Mapping[str, Any]], field_name: str) -> bool:
    """Check whether an envelope (or its wire dict) has a message for ``field_name``."""
    return field_name in _details_of(envelope)


def field_error(
    envelope: Union[ErrorEnvelope, Mapping[str, Any]],
    field_name: str
) -> Optional[str]:
    """Return the message for ``field_name``, or ``None`` when it has none."""
    return _details_of(envelope).get(field_name)


def _http_error(status: HTTPStatus, message: str) -> ErrorEnvelope:
    return (
        ErrorEnvelopeBuilder()
        .with_error(status.phrase)
        .with_message(message)
        .with_status(status)
        .build()
    )


def bad_request(message: str) -> ErrorEnvelope:
    return _http_error(HTTPStatus.BAD_REQUEST, message)


def unauthorized(message: str) -> ErrorEnvelope:
    return _http_error(HTTPStatus.UNAUTHORIZED, message)


def forbidden(message: str) -> ErrorEnvelope:
    return _http_error(HTTPStatus.FORBIDDEN, message)


def not_found(message: str) -> ErrorEnvelope:
    return _http_error(HTTPStatus.NOT_FOUND, message)


def conflict(message: str) -> ErrorEnvelope:
    return _http_error(HTTPStatus.CONFLICT, message)


def internal_server_error(message: str) -> ErrorEnvelope:
    return _http_error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
