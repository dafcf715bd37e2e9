"""
Request-scope validation adapter for Flask views.

Binds the validation engine to the four request-data sources (JSON body, query string, route
parameters, headers). Each decorator builds a candidate object from its source, validates it in
full and then either calls the view with the validated object stored on ``flask.g`` or returns the
error envelope:

- 400 when the candidate cannot be built (parse failure, the engine never runs)
- 422 when the candidate fails its declared rules

Shapes are resolved when the decorator is applied, so rule configuration errors abort startup
instead of surfacing on the first request.

Example:
    validator = RequestValidator(engine)

    @blueprint.route('/users', methods=['POST'])
    @validator.body(RegisterUserRequest)
    def register_user():
        payload, found = get_validated_body(RegisterUserRequest)
        ...
"""

from functools import wraps
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Type, TypeVar, Union

import structlog
from flask import Request, g, jsonify, request
from prometheus_client import Counter

from fieldguard.utils.exceptions import RequestParseError
from fieldguard.utils.response import ErrorEnvelopeBuilder, format_parse_error, format_result
from fieldguard.validation import COLLECTION, RuleSpec, ValidationEngine, ValidationResult
from .binding import CandidateBinder

logger = structlog.get_logger(__name__)

T = TypeVar('T')
F = TypeVar('F', bound=Callable[..., Any])

BODY = 'body'
QUERY = 'query'
PARAMS = 'params'
HEADERS = 'headers'
SOURCES = (BODY, QUERY, PARAMS, HEADERS)

G_ATTRIBUTE = '_fieldguard_validated'

CustomCheck = Callable[[Request], Union[None, str, Mapping[str, str]]]

validation_counter = Counter(
    'fieldguard_validations_total',
    'Request validation outcomes by request-data source',
    ['source', 'outcome']
)


class RequestValidator:
    """
    Flask decorators running the validation engine against request data.

    Args:
        engine: Validation engine shared by every decorated view
        binder: Candidate binder; one over the engine's resolver when omitted
        log_failures: Log each failed validation with the failing field names
    """

    def __init__(
        self,
        engine: ValidationEngine,
        binder: Optional[CandidateBinder] = None,
        log_failures: bool = True
    ):
        self._engine = engine
        self._binder = binder or CandidateBinder(engine.resolver)
        self._log_failures = log_failures

    @property
    def engine(self) -> ValidationEngine:
        return self._engine

    def body(self, shape: Type[T]) -> Callable[[F], F]:
        """Validate the JSON request body against ``shape``."""
        return self._decorator(BODY, shape)

    def query(self, shape: Type[T]) -> Callable[[F], F]:
        """Validate query string parameters against ``shape``."""
        return self._decorator(QUERY, shape)

    def params(self, shape: Type[T]) -> Callable[[F], F]:
        """Validate route parameters against ``shape``."""
        return self._decorator(PARAMS, shape)

    def headers(self, shape: Type[T]) -> Callable[[F], F]:
        """Validate request headers against ``shape``; header names match case-insensitively."""
        return self._decorator(HEADERS, shape)

    def custom(self, check: CustomCheck) -> Callable[[F], F]:
        """
        Run an arbitrary check over the request.

        ``check`` returns ``None`` (or an empty mapping) to pass, a message string, or a mapping
        of field name to message. Failures use the validation envelope at 422.
        """
        def decorator(view: F) -> F:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                outcome = check(request)
                if not outcome:
                    validation_counter.labels(source='custom', outcome='valid').inc()
                    return view(*args, **kwargs)

                details = {'general': outcome} if isinstance(outcome, str) else dict(outcome)
                validation_counter.labels(source='custom', outcome='invalid').inc()
                self._log_failure('custom', sorted(details))
                envelope = (
                    ErrorEnvelopeBuilder()
                    .with_message("Custom validation failed")
                    .with_details(details)
                    .build()
                )
                return jsonify(envelope.to_dict()), envelope.status
            return wrapper  # type: ignore[return-value]
        return decorator

    def bind(self, source: str, shape: Type[T]) -> T:
        """
        Build a candidate ``shape`` from the current request without validating it.

        Raises:
            RequestParseError: When the source data cannot populate the shape
        """
        return self._binder.bind(shape, self._extract(source, shape), source)

    def validate_partial(self, obj: Any, field_names: Iterable[str]) -> ValidationResult:
        """Validate only ``field_names`` of an object, e.g. for PATCH payloads."""
        return self._engine.validate_partial(obj, field_names)

    def validate_field(self, value: Any, rules: RuleSpec, name: str = "value") -> ValidationResult:
        """Validate a single value against a rule declaration."""
        return self._engine.validate_value(value, rules, name)

    def run(self, source: str, shape: Type[T]):
        """
        Bind, validate and store the candidate for ``source``.

        Returns:
            ``None`` on success, otherwise a ``(response, status)`` tuple to return from the view
        """
        try:
            candidate = self.bind(source, shape)
        except RequestParseError as error:
            validation_counter.labels(source=source, outcome='parse_error').inc()
            envelope = format_parse_error(error)
            return jsonify(envelope.to_dict()), envelope.status

        result = self._engine.validate(candidate)
        if not result.valid:
            validation_counter.labels(source=source, outcome='invalid').inc()
            self._log_failure(source, sorted(result.errors))
            envelope = format_result(result, source=source)
            return jsonify(envelope.to_dict()), envelope.status

        validation_counter.labels(source=source, outcome='valid').inc()
        store_validated(source, candidate)
        return None

    def _decorator(self, source: str, shape: Type[T]) -> Callable[[F], F]:
        self._engine.prepare(shape)

        def decorator(view: F) -> F:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                failure = self.run(source, shape)
                if failure is not None:
                    return failure
                return view(*args, **kwargs)
            return wrapper  # type: ignore[return-value]
        return decorator

    def _extract(self, source: str, shape: type) -> Any:
        if source == BODY:
            data = request.get_json(silent=True)
            if data is None:
                raise RequestParseError("request body is not valid JSON", source=source)
            return data

        annotations = self._engine.prepare(shape)
        if source == QUERY:
            args = request.args
            return {
                a.wire_name: args.getlist(a.wire_name) if a.kind == COLLECTION
                else args.get(a.wire_name)
                for a in annotations
                if a.wire_name in args
            }
        if source == PARAMS:
            view_args = request.view_args or {}
            return {a.wire_name: view_args[a.wire_name] for a in annotations if a.wire_name in view_args}
        if source == HEADERS:
            headers = request.headers
            return {a.wire_name: headers.get(a.wire_name) for a in annotations if a.wire_name in headers}
        raise ValueError(f"unknown request-data source '{source}'")

    def _log_failure(self, source: str, fields: list) -> None:
        if self._log_failures:
            logger.info(
                "Request validation failed",
                source=source,
                endpoint=request.endpoint,
                fields=fields
            )


def store_validated(source: str, obj: Any) -> None:
    """Store a validated object for the rest of the request under its source tag."""
    if source not in SOURCES:
        raise ValueError(f"unknown request-data source '{source}'")
    validated: Dict[str, Any] = g.setdefault(G_ATTRIBUTE, {})
    validated[source] = obj


def get_validated(source: str, expected_type: Optional[Type[T]] = None) -> Tuple[Optional[T], bool]:
    """
    Retrieve the object validated for ``source`` in the current request.

    Returns:
        ``(obj, True)`` when found, ``(None, False)`` when nothing was validated for the source
        or the stored object is not an ``expected_type``
    """
    validated = g.get(G_ATTRIBUTE) or {}
    obj = validated.get(source)
    if obj is None:
        return None, False
    if expected_type is not None and not isinstance(obj, expected_type):
        return None, False
    return obj, True


def get_validated_body(expected_type: Optional[Type[T]] = None) -> Tuple[Optional[T], bool]:
    return get_validated(BODY, expected_type)


def get_validated_query(expected_type: Optional[Type[T]] = None) -> Tuple[Optional[T], bool]:
    return get_validated(QUERY, expected_type)


def get_validated_params(expected_type: Optional[Type[T]] = None) -> Tuple[Optional[T], bool]:
    return get_validated(PARAMS, expected_type)


def get_validated_headers(expected_type: Optional[Type[T]] = None) -> Tuple[Optional[T], bool]:
    return get_validated(HEADERS, expected_type)
