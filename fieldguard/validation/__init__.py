"""
Declarative validation: rule registry, field annotations and the validation engine.

Typical wiring at startup:

    registry = create_registry()
    engine = ValidationEngine(registry)
    engine.prepare(RegisterUserRequest)
    registry.freeze()
"""

from .annotations import (
    AnnotationResolver, FieldAnnotation, FieldSpec, RuleBinding, RuleSpec, kind_of_type,
    parse_rule_spec, rule_field
)
from .engine import FIELD_NOT_FOUND, VALID, ValidationEngine, ValidationResult
from .registry import ParamKind, Rule, RuleRegistry, create_registry, register_builtin_rules
from .rules import (
    ALL_KINDS, BOOLEAN, COLLECTION, NUMBER, STRING, TEMPORAL, is_empty, value_kind
)

__all__ = [
    # Annotations
    'AnnotationResolver', 'FieldAnnotation', 'FieldSpec', 'RuleBinding', 'RuleSpec', 'kind_of_type',
    'parse_rule_spec', 'rule_field',
    # Engine
    'FIELD_NOT_FOUND', 'VALID', 'ValidationEngine', 'ValidationResult',
    # Registry
    'ParamKind', 'Rule', 'RuleRegistry', 'create_registry', 'register_builtin_rules',
    # Value kinds
    'ALL_KINDS', 'BOOLEAN', 'COLLECTION', 'NUMBER', 'STRING', 'TEMPORAL', 'is_empty',
    'value_kind',
]
