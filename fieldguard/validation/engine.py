"""
Validation Engine

Checks populated candidate objects against their resolved field annotations. Two entry points
share the same per-field core:

- ``validate(obj)`` checks every annotated field.
- ``validate_partial(obj, field_names)`` checks only the named fields.

For each field the rules run in declaration order and the first failure is recorded; the
remaining rules of that field are skipped. Optional fields (no ``required`` rule) holding an empty
value skip all of their rules. The engine never mutates the candidate.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple

import structlog

from fieldguard.utils.exceptions import MalformedAnnotationError
from .annotations import AnnotationResolver, FieldAnnotation, RuleBinding, RuleSpec
from .registry import RuleRegistry
from .rules import ALL_KINDS, COLLECTION, STRING, is_empty, value_kind

logger = structlog.get_logger(__name__)

FIELD_NOT_FOUND = "field not found"

UNITS = {
    STRING: " characters",
    COLLECTION: " items",
}


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a validation run.

    Attributes:
        errors: External field name to message, one message per field
        unknown_fields: Names given to partial validation that the shape does not declare
    """

    errors: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    unknown_fields: FrozenSet[str] = frozenset()

    @classmethod
    def from_errors(
        cls,
        errors: Mapping[str, str],
        unknown_fields: Iterable[str] = ()
    ) -> 'ValidationResult':
        return cls(
            errors=MappingProxyType(dict(errors)),
            unknown_fields=frozenset(unknown_fields)
        )

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def is_usage_error(self) -> bool:
        return bool(self.unknown_fields)

    def has_error(self, field_name: str) -> bool:
        return field_name in self.errors

    def error_for(self, field_name: str) -> Optional[str]:
        return self.errors.get(field_name)

    def summary(self) -> str:
        """Render ``"field: message; ..."`` sorted by field name."""
        if not self.errors:
            return "validation failed"
        return "; ".join(f"{name}: {self.errors[name]}" for name in sorted(self.errors))


VALID = ValidationResult()


class ValidationEngine:
    """
    Evaluate registry rules over candidate objects.

    Args:
        registry: Rule registry the shapes are resolved against
        resolver: Annotation resolver; a new one over ``registry`` when omitted
    """

    def __init__(self, registry: RuleRegistry, resolver: Optional[AnnotationResolver] = None):
        self._registry = registry
        self._resolver = resolver or AnnotationResolver(registry)

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def resolver(self) -> AnnotationResolver:
        return self._resolver

    def prepare(self, shape: Any) -> Tuple[FieldAnnotation, ...]:
        """
        Resolve a shape ahead of its first request.

        Call at structure-definition time so configuration errors abort startup.
        """
        return self._resolver.resolve(shape)

    def validate(self, obj: Any) -> ValidationResult:
        """Check every annotated field of ``obj``."""
        annotations = self._resolver.resolve(obj)
        errors = {}
        for annotation in annotations:
            message = self._check_field(annotation, obj)
            if message is not None:
                errors[annotation.wire_name] = message

        if not errors:
            return VALID

        logger.debug(
            "Validation failed",
            shape=type(obj).__qualname__,
            fields=sorted(errors)
        )
        return ValidationResult.from_errors(errors)

    def validate_partial(self, obj: Any, field_names: Iterable[str]) -> ValidationResult:
        """
        Check only the named fields of ``obj``.

        Names may be field identifiers or wire names. Errors are keyed by wire name, so the
        result equals ``validate(obj)`` restricted to the named fields. A name the shape does
        not declare is reported as ``field not found`` and listed in ``unknown_fields``.
        """
        annotations = self._resolver.resolve(obj)
        by_name = {annotation.name: annotation for annotation in annotations}
        by_wire_name = {annotation.wire_name: annotation for annotation in annotations}

        errors = {}
        unknown = []
        for name in dict.fromkeys(field_names):
            annotation = by_name.get(name) or by_wire_name.get(name)
            if annotation is None:
                errors[name] = FIELD_NOT_FOUND
                unknown.append(name)
                continue

            message = self._check_field(annotation, obj)
            if message is not None:
                errors[annotation.wire_name] = message

        if unknown:
            logger.warning(
                "Partial validation referenced unknown fields",
                shape=type(obj).__qualname__,
                unknown_fields=unknown
            )
        if not errors:
            return VALID
        return ValidationResult.from_errors(errors, unknown)

    def validate_value(
        self,
        value: Any,
        rules: RuleSpec,
        name: str = "value"
    ) -> ValidationResult:
        """
        Check a single value against a rule declaration.

        The value's runtime kind stands in for a declared field type.
        """
        bindings = self._resolver.bind_rules(rules, kind=value_kind(value), field_name=name)
        annotation = FieldAnnotation(name=name, wire_name=name, rules=bindings)
        message = self._evaluate(annotation, value, None)
        if message is None:
            return VALID
        return ValidationResult.from_errors({name: message})

    def _check_field(self, annotation: FieldAnnotation, obj: Any) -> Optional[str]:
        return self._evaluate(annotation, getattr(obj, annotation.name), obj)

    def _evaluate(self, annotation: FieldAnnotation, value: Any, obj: Any) -> Optional[str]:
        if annotation.optional and is_empty(value):
            return None

        for binding in annotation.rules:
            if not self._run(binding, annotation, value, obj):
                return binding.rule.render(
                    field=annotation.wire_name,
                    param=binding.display,
                    unit=UNITS.get(value_kind(value) or annotation.kind, "")
                )
        return None

    def _run(self, binding: RuleBinding, annotation: FieldAnnotation, value: Any, obj: Any) -> bool:
        rule = binding.rule
        if rule.kinds != ALL_KINDS and value is None:
            return False
        if rule.kinds != ALL_KINDS and value_kind(value) not in rule.kinds:
            raise MalformedAnnotationError(
                f"rule '{rule.name}' cannot check {type(value).__name__} value of "
                f"'{annotation.wire_name}'",
                field=annotation.name,
                rule=rule.name
            )
        try:
            return bool(rule.predicate(value, binding.param, obj))
        except Exception as error:
            raise MalformedAnnotationError(
                f"rule '{rule.name}' failed to evaluate '{annotation.wire_name}': {error}",
                field=annotation.name,
                rule=rule.name
            ) from error
