"""
Exception hierarchy and Flask error handler integration for request validation.

This module defines every error the validation layer can raise and the Flask handlers that turn
the recoverable ones into the uniform error envelope. Errors fall into four classes:

- Configuration errors: duplicate or unknown rule names, malformed rule parameters and
  registrations after the registry has been frozen. These abort startup or the first use of a
  shape and are never converted into HTTP responses.
- Parse errors: a candidate object could not be built from raw request data (HTTP 400).
- Validation errors: one or more fields failed their declared rules (HTTP 422).
- Usage errors: partial validation named a field the shape does not declare. Reported through
  the validation envelope at 422, but kept distinguishable through ``ValidationResult``.

Key Features:
- Hierarchical exception classes for consistent error categorization
- Structured logging of every raised error with structlog
- Prometheus counter for error tracking by type and category
- Flask error handler registration mapping exceptions to envelopes
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional

import structlog
from flask import Flask, jsonify
from prometheus_client import Counter
from werkzeug.exceptions import HTTPException

# Prometheus metrics for error tracking
error_counter = Counter(
    'fieldguard_errors_total',
    'Total number of validation layer errors by type',
    ['error_type', 'error_category']
)

# Get structured logger
logger = structlog.get_logger(__name__)


class ErrorCategory(Enum):
    """Error categories for hierarchical classification."""

    CONFIGURATION = "configuration"
    PARSE = "parse"
    VALIDATION = "validation"
    USAGE = "usage"
    SYSTEM = "system"


class FieldGuardError(Exception):
    """
    Base exception class for all validation layer errors.

    Attributes:
        message: Human-readable error message
        code: Application-specific error code, defaults to the class name
        category: Error category for classification
        details: Additional error context
        http_status: Status code used when the error reaches an HTTP boundary
    """

    category = ErrorCategory.SYSTEM
    http_status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for logs and debugging."""
        return {
            'message': self.message,
            'code': self.code,
            'category': self.category.value,
            'details': self.details
        }


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigurationError(FieldGuardError):
    """
    Rule registry or structure-definition error.

    Raised while shapes are being declared or first resolved. It must abort startup and never
    reach request handling.
    """

    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        logger.error(message, error_code=self.code, details=self.details)


class DuplicateRuleError(ConfigurationError):
    """A rule name is already bound in the registry."""

    def __init__(self, rule_name: str):
        super().__init__(
            f"rule '{rule_name}' is already registered",
            details={'rule': rule_name}
        )
        self.rule_name = rule_name


class UnknownRuleError(ConfigurationError):
    """A shape references a rule name the registry does not know."""

    def __init__(self, rule_name: str):
        super().__init__(
            f"unknown validation rule '{rule_name}'",
            details={'rule': rule_name}
        )
        self.rule_name = rule_name


class MalformedAnnotationError(ConfigurationError):
    """
    A rule declaration cannot be evaluated.

    Covers syntactically invalid parameters (a bound that is not a number, an empty choice
    list), cross-field references to fields that do not exist, and rules declared on a field
    whose type they cannot check.
    """

    def __init__(
        self,
        message: str,
        shape: Optional[str] = None,
        field: Optional[str] = None,
        rule: Optional[str] = None
    ):
        details = {}
        if shape:
            details['shape'] = shape
        if field:
            details['field'] = field
        if rule:
            details['rule'] = rule
        super().__init__(message, details=details)
        self.shape = shape
        self.field = field
        self.rule = rule


class RegistryFrozenError(ConfigurationError):
    """A registration was attempted after the registry was frozen for serving."""

    def __init__(self, rule_name: str):
        super().__init__(
            f"cannot register rule '{rule_name}': registry is frozen",
            details={'rule': rule_name}
        )
        self.rule_name = rule_name


# ============================================================================
# REQUEST ERRORS
# ============================================================================

class RequestParseError(FieldGuardError):
    """
    The candidate object could not be constructed from raw request data.

    Never forwarded into the validation engine.
    """

    category = ErrorCategory.PARSE
    http_status = 400

    def __init__(
        self,
        message: str = "Failed to parse request",
        source: Optional[str] = None,
        field_errors: Optional[Mapping[str, str]] = None
    ):
        super().__init__(message, details={'source': source} if source else None)
        self.source = source
        self.field_errors = dict(field_errors or {})


class RequestValidationError(FieldGuardError):
    """
    One or more fields failed their declared rules.

    Carries the ``ValidationResult`` so handlers can render the complete field map.
    """

    category = ErrorCategory.VALIDATION
    http_status = 422

    def __init__(self, result, source: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or result.summary(),
            details={'source': source} if source else None
        )
        self.result = result
        self.source = source
        if result.is_usage_error:
            self.category = ErrorCategory.USAGE


def register_error_handlers(app: Flask) -> None:
    """
    Register Flask error handlers that render the uniform error envelope.

    Parse and validation errors raised anywhere in a view are converted here so they never
    propagate to the transport layer. Configuration errors get no dedicated handler: raised
    inside a request they fall through to the generic 500 handler and are logged as failures.

    Args:
        app: Flask application instance
    """
    # Imported lazily: response builds on the exception classes defined above.
    from .response import (
        ErrorEnvelopeBuilder, format_parse_error, format_result, internal_server_error
    )

    def _count(error: Exception, category: ErrorCategory) -> None:
        error_counter.labels(
            error_type=error.__class__.__name__,
            error_category=category.value
        ).inc()

    @app.errorhandler(RequestValidationError)
    def handle_validation_error(error: RequestValidationError):
        _count(error, error.category)
        envelope = format_result(error.result, source=error.source)
        return jsonify(envelope.to_dict()), envelope.status

    @app.errorhandler(RequestParseError)
    def handle_parse_error(error: RequestParseError):
        _count(error, error.category)
        envelope = format_parse_error(error)
        return jsonify(envelope.to_dict()), envelope.status

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        if error.code in (400, 422):
            _count(error, ErrorCategory.PARSE if error.code == 400 else ErrorCategory.VALIDATION)
            envelope = (
                ErrorEnvelopeBuilder()
                .with_error("Request Error")
                .with_message(error.description or error.name)
                .with_status(error.code)
                .build()
            )
            return jsonify(envelope.to_dict()), envelope.status
        return error

    @app.errorhandler(Exception)
    def handle_generic_exception(error: Exception):
        if isinstance(error, HTTPException):
            return error
        _count(error, ErrorCategory.SYSTEM)
        logger.error(
            "Unhandled exception",
            exception_type=error.__class__.__name__,
            exc_info=error
        )
        envelope = internal_server_error("An unexpected error occurred")
        return jsonify(envelope.to_dict()), envelope.status

    logger.info("Error handlers registered", app_name=app.name)
