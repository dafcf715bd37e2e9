"""
Service-specific rules registered on top of the built-in set.

These go through ``RuleRegistry.register`` like any user-supplied rule, after the built-ins, so
a name clash with a built-in is rejected with ``DuplicateRuleError``.
"""

from typing import Any

from .registry import RuleRegistry
from .rules import STRING

PASSWORD_MIN_LENGTH = 8
PASSWORD_SYMBOLS = frozenset("!@#$%^&*()_+-=[]{}|;:,.<>?")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30


def _is_ascii_lower(char: str) -> bool:
    return 'a' <= char <= 'z'


def _is_ascii_upper(char: str) -> bool:
    return 'A' <= char <= 'Z'


def _is_ascii_digit(char: str) -> bool:
    return '0' <= char <= '9'


def password_strength(value: str, param: Any, obj: Any) -> bool:
    """
    Require at least 8 characters with an uppercase letter, a lowercase letter, a digit and
    a symbol from ``PASSWORD_SYMBOLS``.

    Characters are classified in a single pass, only once the length check has passed.
    """
    if len(value) < PASSWORD_MIN_LENGTH:
        return False

    has_upper = has_lower = has_digit = has_symbol = False
    for char in value:
        if _is_ascii_upper(char):
            has_upper = True
        elif _is_ascii_lower(char):
            has_lower = True
        elif _is_ascii_digit(char):
            has_digit = True
        elif char in PASSWORD_SYMBOLS:
            has_symbol = True

    return has_upper and has_lower and has_digit and has_symbol


def username_shape(value: str, param: Any, obj: Any) -> bool:
    """3 to 30 characters of ASCII letters, digits, underscore or hyphen."""
    if not USERNAME_MIN_LENGTH <= len(value) <= USERNAME_MAX_LENGTH:
        return False
    return all(
        _is_ascii_lower(char) or _is_ascii_upper(char) or _is_ascii_digit(char)
        or char in '_-'
        for char in value
    )


def slug_shape(value: str, param: Any, obj: Any) -> bool:
    """Lowercase ASCII letters, digits and hyphens, not starting or ending with a hyphen."""
    if not value:
        return False
    if not all(_is_ascii_lower(char) or _is_ascii_digit(char) or char == '-' for char in value):
        return False
    return value[0] != '-' and value[-1] != '-'


def register_custom_rules(registry: RuleRegistry) -> None:
    """Register ``password``, ``username`` and ``slug``."""
    registry.register(
        "password",
        password_strength,
        "{field} must be at least 8 characters and contain uppercase, lowercase, "
        "number, and special character",
        kinds={STRING}
    )
    registry.register(
        "username",
        username_shape,
        "{field} must be 3-30 characters, alphanumeric with optional underscores and hyphens",
        kinds={STRING}
    )
    registry.register(
        "slug",
        slug_shape,
        "{field} must contain only lowercase letters, numbers, and hyphens",
        kinds={STRING}
    )
