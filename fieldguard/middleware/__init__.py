"""
Middleware Package - binds the validation engine to Flask request data.

Module Organization:
- binding: marshmallow-backed candidate construction from request mappings
- validation: source decorators, custom checks and request-scoped storage of validated objects
"""

from .binding import CandidateBinder, marshmallow_field
from .validation import (
    BODY, HEADERS, PARAMS, QUERY, SOURCES, RequestValidator, get_validated, get_validated_body,
    get_validated_headers, get_validated_params, get_validated_query, store_validated
)

__all__ = [
    'CandidateBinder', 'marshmallow_field',
    'BODY', 'HEADERS', 'PARAMS', 'QUERY', 'SOURCES', 'RequestValidator', 'get_validated',
    'get_validated_body', 'get_validated_headers', 'get_validated_params', 'get_validated_query',
    'store_validated',
]
