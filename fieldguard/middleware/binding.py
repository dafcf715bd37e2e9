"""
Candidate object binding.

Builds a candidate shape instance from raw request data before validation runs. Each shape gets
a marshmallow schema generated from its dataclass fields, keyed by the same external names the
validation engine reports errors under. The schema only coerces types (``"42"`` to ``42`` for an
``int`` field); presence and value rules stay with the validation engine, so every schema field is
optional and missing values fall back to the dataclass default.

Type coercion failures raise ``RequestParseError`` (HTTP 400) and never reach the engine.
"""

import dataclasses
import types
import typing
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional, Union

import structlog
from marshmallow import EXCLUDE, Schema, ValidationError, fields

from fieldguard.utils.exceptions import RequestParseError
from fieldguard.validation import AnnotationResolver

logger = structlog.get_logger(__name__)


class WholeInteger(fields.Integer):
    """Integer field that refuses fractional numbers instead of truncating them."""

    def _validated(self, value):
        if isinstance(value, (float, Decimal)) and not float(value).is_integer():
            raise self.make_error("invalid")
        return super()._validated(value)


SCALAR_FIELDS = (
    (bool, fields.Boolean),
    (int, WholeInteger),
    (float, fields.Float),
    (Decimal, fields.Decimal),
    (str, fields.String),
    (datetime, fields.DateTime),
    (date, fields.Date),
    (time, fields.Time),
)


def _unwrap(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return _unwrap(typing.get_args(annotation)[0])
    if origin is Union or origin is getattr(types, "UnionType", None):
        members = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return _unwrap(members[0])
    return annotation


def marshmallow_field(annotation: Any, **kwargs) -> fields.Field:
    """Map a type annotation to a marshmallow field, ``Raw`` when no mapping applies."""
    annotation = _unwrap(annotation)
    origin = typing.get_origin(annotation)

    if origin is typing.Literal:
        literal_types = {type(arg) for arg in typing.get_args(annotation)}
        annotation = literal_types.pop() if len(literal_types) == 1 else Any
        origin = None

    if origin in (list, tuple, set, frozenset):
        args = [arg for arg in typing.get_args(annotation) if arg is not Ellipsis]
        inner = marshmallow_field(args[0]) if args else fields.Raw()
        return fields.List(inner, **kwargs)
    if origin is dict or annotation is dict:
        return fields.Dict(**kwargs)
    if annotation in (list, tuple, set, frozenset):
        return fields.List(fields.Raw(), **kwargs)

    if isinstance(annotation, type):
        for python_type, field_class in SCALAR_FIELDS:
            if issubclass(annotation, python_type):
                return field_class(**kwargs)
    return fields.Raw(**kwargs)


def _flatten_messages(messages: Any) -> str:
    if isinstance(messages, str):
        return messages
    if isinstance(messages, (list, tuple)) and messages:
        return _flatten_messages(messages[0])
    if isinstance(messages, dict) and messages:
        key = next(iter(messages))
        return f"[{key}] {_flatten_messages(messages[key])}"
    return "Invalid value."


class CandidateBinder:
    """Build candidate objects from request mappings using the shapes' wire names."""

    def __init__(self, resolver: AnnotationResolver):
        self._resolver = resolver
        self._schemas: Dict[type, Schema] = {}

    def schema_for(self, shape: type) -> Schema:
        """Return the cached coercion schema of a shape, building it on first use."""
        schema = self._schemas.get(shape)
        if schema is not None:
            return schema

        hints = typing.get_type_hints(shape, include_extras=True)
        declared = {f.name: f for f in dataclasses.fields(shape)}
        field_map = {}
        for annotation in self._resolver.resolve(shape):
            dataclass_field = declared[annotation.name]
            if dataclass_field.default is not dataclasses.MISSING:
                default = dataclass_field.default
            elif dataclass_field.default_factory is not dataclasses.MISSING:
                default = dataclass_field.default_factory
            else:
                default = None
            field_map[annotation.name] = marshmallow_field(
                hints.get(annotation.name),
                data_key=annotation.wire_name,
                load_default=default,
                allow_none=True
            )

        schema_class = Schema.from_dict(field_map, name=f"{shape.__name__}BindingSchema")
        return self._schemas.setdefault(shape, schema_class(unknown=EXCLUDE))

    def bind(self, shape: type, data: Mapping[str, Any], source: Optional[str] = None) -> Any:
        """
        Build a ``shape`` instance from ``data``.

        Raises:
            RequestParseError: When a value cannot be coerced or the data is not a mapping
        """
        if not isinstance(data, Mapping):
            raise RequestParseError(
                f"expected an object, got {type(data).__name__}", source=source
            )

        try:
            loaded = self.schema_for(shape).load(dict(data))
        except ValidationError as error:
            messages = error.normalized_messages()
            field_errors = {name: _flatten_messages(message) for name, message in messages.items()}
            logger.info(
                "Request data could not be bound",
                shape=shape.__qualname__,
                source=source,
                fields=sorted(field_errors)
            )
            raise RequestParseError(
                "request data could not be converted", source=source, field_errors=field_errors
            ) from error

        try:
            return shape(**loaded)
        except (TypeError, ValueError) as error:
            raise RequestParseError(str(error), source=source) from error
