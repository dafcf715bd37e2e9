"""
Rule Registry

Maps rule names to predicates and human-readable message templates. A registry is an explicit
instance: the application builds one at startup with ``create_registry()``, passes it to the
validation engine and the request adapters, then freezes it before serving traffic. Tests build
their own isolated registries the same way.

Message templates are ``str.format`` strings and may reference:

- ``{field}``: the field's external (wire) name
- ``{param}``: the rule parameter as declared (for cross-field rules, the other field's
  external name)
- ``{unit}``: `` characters`` or `` items`` for bound rules on strings and collections,
  empty for numbers

Example:
    registry = RuleRegistry.with_builtins()
    registry.register(
        "even",
        lambda value, param, obj: value % 2 == 0,
        "{field} must be an even number",
        kinds={NUMBER},
    )
    registry.freeze()
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, Optional

import structlog

from fieldguard.utils.exceptions import (
    ConfigurationError, DuplicateRuleError, RegistryFrozenError, UnknownRuleError
)
from . import rules
from .rules import ALL_KINDS, NUMBER, ORDERED_KINDS, SIZED_KINDS, STRING

logger = structlog.get_logger(__name__)

Predicate = Callable[[Any, Any, Any], bool]


class ParamKind(Enum):
    """How a rule's parameter is parsed at structure-definition time."""

    NONE = "none"          # rule takes no parameter
    NUMBER = "number"      # numeric bound
    CHOICES = "choices"    # space-separated literal set
    FIELD = "field"        # identifier of another field on the same shape
    TEXT = "text"          # free-form string passed through unchanged


@dataclass(frozen=True)
class Rule:
    """A registered, immutable rule."""

    name: str
    predicate: Predicate
    message: str
    param: ParamKind = ParamKind.NONE
    kinds: FrozenSet[str] = ALL_KINDS

    @property
    def cross_field(self) -> bool:
        return self.param is ParamKind.FIELD

    def render(self, field: str, param: str = "", unit: str = "") -> str:
        return self.message.format(field=field, param=param, unit=unit)


class RuleRegistry:
    """
    Name-to-rule mapping shared read-only by every request once frozen.

    Registrations happen during startup only. After ``freeze()`` the mapping never changes, so
    concurrent lookups need no locking.
    """

    def __init__(self):
        self._rules: Dict[str, Rule] = {}
        self._frozen = False

    @classmethod
    def with_builtins(cls) -> 'RuleRegistry':
        """Create a registry seeded with the built-in rule set."""
        registry = cls()
        register_builtin_rules(registry)
        return registry

    def register(
        self,
        name: str,
        predicate: Predicate,
        message: str,
        param: ParamKind = ParamKind.NONE,
        kinds: Optional[Iterable[str]] = None
    ) -> Rule:
        """
        Bind a new rule name.

        Args:
            name: Rule name used in field declarations
            predicate: ``(value, param, obj) -> bool``
            message: Message template rendered for failures
            param: How the declared parameter is parsed
            kinds: Value kinds the rule can check; all kinds when omitted

        Returns:
            The registered rule

        Raises:
            DuplicateRuleError: If the name is already bound
            RegistryFrozenError: If the registry was frozen
            ConfigurationError: If the message template does not format
        """
        if self._frozen:
            raise RegistryFrozenError(name)
        if name in self._rules:
            raise DuplicateRuleError(name)
        try:
            message.format(field="", param="", unit="")
        except (KeyError, IndexError, ValueError) as error:
            raise ConfigurationError(
                f"message template of rule '{name}' is invalid: {error}",
                details={'rule': name}
            ) from error

        rule = Rule(
            name=name,
            predicate=predicate,
            message=message,
            param=param,
            kinds=frozenset(kinds) if kinds is not None else ALL_KINDS
        )
        self._rules[name] = rule
        logger.debug("Validation rule registered", rule=name, param=param.value)
        return rule

    def resolve(self, name: str) -> Rule:
        """
        Look up a rule by name.

        Raises:
            UnknownRuleError: If no rule is bound to the name
        """
        try:
            return self._rules[name]
        except KeyError:
            raise UnknownRuleError(name) from None

    def freeze(self) -> None:
        """Reject further registrations."""
        if not self._frozen:
            self._frozen = True
            logger.info("Rule registry frozen", rule_count=len(self._rules))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> FrozenSet[str]:
        return frozenset(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)


def register_builtin_rules(registry: RuleRegistry) -> None:
    """Register the fixed built-in rule set."""
    registry.register("required", rules.required, "{field} is required")

    registry.register(
        "min", rules.min_bound, "{field} must be at least {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )
    registry.register(
        "max", rules.max_bound, "{field} must be at most {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )
    registry.register(
        "len", rules.exact_length, "{field} must be exactly {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )
    registry.register(
        "gt", rules.greater_than, "{field} must be greater than {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )
    registry.register(
        "gte", rules.greater_or_equal, "{field} must be greater than or equal to {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )
    registry.register(
        "lt", rules.less_than, "{field} must be less than {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )
    registry.register(
        "lte", rules.less_or_equal, "{field} must be less than or equal to {param}{unit}",
        param=ParamKind.NUMBER, kinds=SIZED_KINDS
    )

    registry.register(
        "alpha", rules.alpha, "{field} must contain only letters", kinds={STRING}
    )
    registry.register(
        "alphanum", rules.alphanumeric, "{field} must contain only letters and numbers",
        kinds={STRING}
    )
    registry.register(
        "numeric", rules.numeric, "{field} must contain only numbers", kinds={STRING, NUMBER}
    )
    registry.register("uuid", rules.uuid_shape, "{field} must be a valid UUID", kinds={STRING})
    registry.register("url", rules.url_shape, "{field} must be a valid URL", kinds={STRING})
    registry.register(
        "email", rules.email_shape, "{field} must be a valid email address", kinds={STRING}
    )
    registry.register(
        "oneof", rules.one_of, "{field} must be one of: {param}",
        param=ParamKind.CHOICES, kinds={STRING, NUMBER}
    )

    registry.register(
        "eqfield", rules.equals_field, "{field} must match {param}", param=ParamKind.FIELD
    )
    registry.register(
        "nefield", rules.not_equals_field, "{field} must not match {param}",
        param=ParamKind.FIELD
    )
    registry.register(
        "gtfield", rules.greater_than_field, "{field} must be greater than {param}",
        param=ParamKind.FIELD, kinds=ORDERED_KINDS
    )
    registry.register(
        "gtefield", rules.greater_or_equal_field,
        "{field} must be greater than or equal to {param}",
        param=ParamKind.FIELD, kinds=ORDERED_KINDS
    )
    registry.register(
        "ltfield", rules.less_than_field, "{field} must be less than {param}",
        param=ParamKind.FIELD, kinds=ORDERED_KINDS
    )
    registry.register(
        "ltefield", rules.less_or_equal_field, "{field} must be less than or equal to {param}",
        param=ParamKind.FIELD, kinds=ORDERED_KINDS
    )


def create_registry(freeze: bool = False) -> RuleRegistry:
    """
    Build the registry used by the service: built-ins, then the service's custom rules.

    Args:
        freeze: Freeze the registry before returning it
    """
    # custom_rules imports this module
    from .custom_rules import register_custom_rules

    registry = RuleRegistry.with_builtins()
    register_custom_rules(registry)
    if freeze:
        registry.freeze()
    return registry

