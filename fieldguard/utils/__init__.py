"""
Utils Package - error taxonomy and response envelopes shared by the validation layer.

Module Organization:
- exceptions: exception hierarchy and Flask error handler registration
- response: error envelope formatting, query helpers and the envelope builder
"""

from .exceptions import (
    ConfigurationError, DuplicateRuleError, ErrorCategory, FieldGuardError,
    MalformedAnnotationError, RegistryFrozenError, RequestParseError, RequestValidationError,
    UnknownRuleError, register_error_handlers
)
from .response import (
    ErrorEnvelope, ErrorEnvelopeBuilder, field_error, format_parse_error, format_result,
    has_field_error
)

__all__ = [
    'ConfigurationError', 'DuplicateRuleError', 'ErrorCategory', 'FieldGuardError',
    'MalformedAnnotationError', 'RegistryFrozenError', 'RequestParseError',
    'RequestValidationError', 'UnknownRuleError', 'register_error_handlers',
    'ErrorEnvelope', 'ErrorEnvelopeBuilder', 'field_error', 'format_parse_error',
    'format_result', 'has_field_error',
]
