"""
Field Annotation Resolver

Shapes are plain dataclasses. Each field declares its external (wire) name and its ordered rule
list through ``rule_field``, which stores them in the dataclass field metadata; the resolver turns
that table into ``FieldAnnotation`` records bound to registry rules.

Rules are declared either as a tag string or as a sequence:

    @dataclass
    class RegisterUserRequest:
        username: str = rule_field("required,username")
        password: str = rule_field("required,password")
        confirm_password: str = rule_field("required,eqfield=password",
                                           wire_name="confirmPassword")
        role: str = rule_field([("oneof", "admin editor viewer")], default="viewer")

Resolution checks everything that can be checked without a request: rule names exist,
parameters parse, cross-field references point at fields of the same shape, and each rule can
check the field's declared type. Failures raise ``ConfigurationError`` subclasses.

Resolved annotations are cached per shape. The cache is filled by compute-and-publish: concurrent
first callers may each resolve the shape, and the first published tuple wins. Resolution is pure,
so the redundant work is harmless and no lock is needed.
"""

import dataclasses
import math
import types
import typing
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from fieldguard.utils.exceptions import MalformedAnnotationError
from .registry import ParamKind, Rule, RuleRegistry
from .rules import (
    ALL_KINDS, BOOLEAN, COLLECTION, NUMBER, STRING, TEMPORAL
)

logger = structlog.get_logger(__name__)

METADATA_KEY = "fieldguard"
REQUIRED_RULE = "required"

RuleSpec = Union[str, Sequence[Union[str, Tuple[str, Any]]]]


@dataclass(frozen=True)
class FieldSpec:
    """Raw declaration stored in dataclass field metadata."""

    rules: RuleSpec = ()
    wire_name: Optional[str] = None


@dataclass(frozen=True)
class RuleBinding:
    """A rule bound to one field with its parsed parameter."""

    rule: Rule
    raw_param: Optional[str] = None
    param: Any = None
    display: str = ""


@dataclass(frozen=True)
class FieldAnnotation:
    """Resolved per-field metadata."""

    name: str
    wire_name: str
    rules: Tuple[RuleBinding, ...] = ()
    kind: Optional[str] = None

    @property
    def optional(self) -> bool:
        return all(binding.rule.name != REQUIRED_RULE for binding in self.rules)

    @property
    def cross_field(self) -> bool:
        return any(binding.rule.cross_field for binding in self.rules)

    @property
    def rule_names(self) -> Tuple[str, ...]:
        return tuple(binding.rule.name for binding in self.rules)


def rule_field(
    rules: RuleSpec = (),
    wire_name: Optional[str] = None,
    *,
    default: Any = dataclasses.MISSING,
    default_factory: Any = dataclasses.MISSING,
    **kwargs
) -> Any:
    """
    Declare a validated dataclass field.

    Args:
        rules: Tag string such as ``"required,min=3"`` or a sequence of tokens / pairs
        wire_name: External name used on the wire and in error reports
        default: Field default
        default_factory: Field default factory
        **kwargs: Passed through to ``dataclasses.field``

    Returns:
        A ``dataclasses.Field`` carrying the declaration in its metadata
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[METADATA_KEY] = FieldSpec(rules=rules, wire_name=wire_name)
    if default is dataclasses.MISSING and default_factory is dataclasses.MISSING:
        default = None
    return dataclasses.field(
        default=default, default_factory=default_factory, metadata=metadata, **kwargs
    )


def parse_rule_spec(rules: RuleSpec, where: str = "") -> List[Tuple[str, Optional[str]]]:
    """
    Split a rule declaration into ordered ``(name, param)`` pairs.

    Raises:
        MalformedAnnotationError: For empty rule tokens or names
    """
    if isinstance(rules, str):
        tokens: Sequence[Any] = rules.split(',') if rules.strip() else []
    else:
        tokens = list(rules)

    pairs = []
    for token in tokens:
        if isinstance(token, tuple):
            if len(token) != 2:
                raise MalformedAnnotationError(
                    f"rule pair {token!r} must be (name, param){where}"
                )
            name, param = token
            name = str(name).strip()
            param = None if param is None else str(param)
        else:
            name, separator, param = str(token).strip().partition('=')
            name = name.strip()
            param = param.strip() if separator else None

        if not name:
            raise MalformedAnnotationError(f"empty rule name in {rules!r}{where}")
        pairs.append((name, param))
    return pairs


def kind_of_type(annotation: Any) -> Optional[str]:
    """Map a type annotation to a value kind, ``None`` when it cannot be determined."""
    if annotation is None or annotation is Any:
        return None

    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return kind_of_type(typing.get_args(annotation)[0])
    if origin is Union or origin is getattr(types, "UnionType", None):
        members = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return kind_of_type(members[0]) if len(members) == 1 else None
    if origin is typing.Literal:
        kinds = {_kind_of_class(type(arg)) for arg in typing.get_args(annotation)}
        return kinds.pop() if len(kinds) == 1 else None
    if origin is not None:
        return _kind_of_class(origin)
    if isinstance(annotation, type):
        return _kind_of_class(annotation)
    return None


def _kind_of_class(cls: type) -> Optional[str]:
    if issubclass(cls, bool):
        return BOOLEAN
    if issubclass(cls, (int, float, Decimal)):
        return NUMBER
    if issubclass(cls, str):
        return STRING
    if issubclass(cls, (datetime, date, time)):
        return TEMPORAL
    if issubclass(cls, (list, tuple, set, frozenset, dict)):
        return COLLECTION
    return None


def _parse_number(raw: str, message: str) -> Union[int, float]:
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        number = float(raw)
    except ValueError:
        raise MalformedAnnotationError(message) from None
    if math.isnan(number) or math.isinf(number):
        raise MalformedAnnotationError(message)
    return number


class AnnotationResolver:
    """Resolve dataclass shapes against a rule registry, caching per shape."""

    def __init__(self, registry: RuleRegistry):
        self._registry = registry
        self._cache: Dict[type, Tuple[FieldAnnotation, ...]] = {}

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    def resolve(self, shape: Any) -> Tuple[FieldAnnotation, ...]:
        """
        Return the annotations of a shape, in field declaration order.

        Args:
            shape: Dataclass type, or an instance of one

        Raises:
            MalformedAnnotationError: For invalid declarations
            UnknownRuleError: For rule names the registry does not know
        """
        if not isinstance(shape, type):
            shape = type(shape)

        cached = self._cache.get(shape)
        if cached is not None:
            return cached

        annotations = self._build(shape)
        return self._cache.setdefault(shape, annotations)

    def is_cached(self, shape: type) -> bool:
        return shape in self._cache

    def bind_rules(
        self,
        rules: RuleSpec,
        kind: Optional[str] = None,
        field_name: str = "value"
    ) -> Tuple[RuleBinding, ...]:
        """
        Bind a standalone rule declaration, outside of any shape.

        Cross-field rules need a shape and are rejected here.
        """
        bindings = []
        for name, raw in parse_rule_spec(rules, f" on '{field_name}'"):
            rule = self._registry.resolve(name)
            if rule.cross_field:
                raise MalformedAnnotationError(
                    f"rule '{name}' compares against another field and needs a shape",
                    field=field_name, rule=name
                )
            bindings.append(self._bind(rule, raw, kind, field_name, None, {}))
        return tuple(bindings)

    def _build(self, shape: type) -> Tuple[FieldAnnotation, ...]:
        shape_name = shape.__qualname__
        if not dataclasses.is_dataclass(shape):
            raise MalformedAnnotationError(
                f"{shape_name} is not a dataclass shape", shape=shape_name
            )

        try:
            hints = typing.get_type_hints(shape, include_extras=True)
        except (NameError, TypeError) as error:
            raise MalformedAnnotationError(
                f"cannot resolve type hints of {shape_name}: {error}", shape=shape_name
            ) from error

        declared = [f for f in dataclasses.fields(shape) if f.init]
        specs = {f.name: f.metadata.get(METADATA_KEY, FieldSpec()) for f in declared}
        kinds = {f.name: kind_of_type(hints.get(f.name)) for f in declared}
        wire_names = {f.name: specs[f.name].wire_name or f.name for f in declared}

        seen: Dict[str, str] = {}
        for name, wire_name in wire_names.items():
            if wire_name in seen:
                raise MalformedAnnotationError(
                    f"fields '{seen[wire_name]}' and '{name}' share wire name '{wire_name}'",
                    shape=shape_name, field=name
                )
            seen[wire_name] = name

        context = {'kinds': kinds, 'wire_names': wire_names}
        annotations = []
        for f in declared:
            where = f" on {shape_name}.{f.name}"
            bindings = tuple(
                self._bind(
                    self._registry.resolve(rule_name), raw, kinds[f.name], f.name,
                    shape_name, context
                )
                for rule_name, raw in parse_rule_spec(specs[f.name].rules, where)
            )
            annotations.append(FieldAnnotation(
                name=f.name,
                wire_name=wire_names[f.name],
                rules=bindings,
                kind=kinds[f.name]
            ))

        logger.debug(
            "Shape annotations resolved",
            shape=shape_name,
            fields=[a.wire_name for a in annotations]
        )
        return tuple(annotations)

    def _bind(
        self,
        rule: Rule,
        raw: Optional[str],
        kind: Optional[str],
        field_name: str,
        shape_name: Optional[str],
        context: Dict[str, Dict[str, Any]]
    ) -> RuleBinding:
        def malformed(message: str) -> MalformedAnnotationError:
            return MalformedAnnotationError(
                message, shape=shape_name, field=field_name, rule=rule.name
            )

        if kind is not None and rule.kinds != ALL_KINDS and kind not in rule.kinds:
            raise malformed(f"rule '{rule.name}' cannot check {kind} field '{field_name}'")

        if rule.param is ParamKind.NONE:
            if raw is not None:
                raise malformed(f"rule '{rule.name}' takes no parameter, got '{raw}'")
            return RuleBinding(rule=rule)

        if raw is None or not raw:
            raise malformed(f"rule '{rule.name}' on '{field_name}' requires a parameter")

        if rule.param is ParamKind.NUMBER:
            bound = _parse_number(
                raw, f"rule '{rule.name}' on '{field_name}' needs a numeric bound, got '{raw}'"
            )
            if kind in (STRING, COLLECTION) and (not isinstance(bound, int) or bound < 0):
                raise malformed(
                    f"rule '{rule.name}' on '{field_name}' needs a non-negative integer length, "
                    f"got '{raw}'"
                )
            return RuleBinding(rule=rule, raw_param=raw, param=bound, display=raw)

        if rule.param is ParamKind.CHOICES:
            choices = raw.split()
            if not choices:
                raise malformed(f"rule '{rule.name}' on '{field_name}' needs at least one choice")
            if kind == NUMBER:
                parsed = tuple(
                    _parse_number(
                        choice,
                        f"rule '{rule.name}' on numeric field '{field_name}' has non-numeric "
                        f"choice '{choice}'"
                    )
                    for choice in choices
                )
            else:
                parsed = tuple(choices)
            return RuleBinding(rule=rule, raw_param=raw, param=parsed, display=raw)

        if rule.param is ParamKind.FIELD:
            return self._bind_field_reference(rule, raw, kind, field_name, context, malformed)

        return RuleBinding(rule=rule, raw_param=raw, param=raw, display=raw)

    def _bind_field_reference(self, rule, raw, kind, field_name, context, malformed):
        kinds = context.get('kinds', {})
        wire_names = context.get('wire_names', {})

        target = raw if raw in kinds else None
        if target is None:
            target = next((name for name, wire in wire_names.items() if wire == raw), None)
        if target is None:
            raise malformed(f"rule '{rule.name}' on '{field_name}' references unknown field '{raw}'")
        if target == field_name:
            raise malformed(f"rule '{rule.name}' on '{field_name}' references the field itself")

        target_kind = kinds[target]
        if target_kind is not None and rule.kinds != ALL_KINDS and target_kind not in rule.kinds:
            raise malformed(
                f"rule '{rule.name}' cannot compare '{field_name}' with {target_kind} field "
                f"'{target}'"
            )
        if kind is not None and target_kind is not None and kind != target_kind:
            raise malformed(
                f"rule '{rule.name}' compares {kind} field '{field_name}' with {target_kind} "
                f"field '{target}'"
            )
        return RuleBinding(rule=rule, raw_param=raw, param=target, display=wire_names[target])
