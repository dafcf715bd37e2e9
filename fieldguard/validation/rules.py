"""
Built-in rule predicates.

Every predicate has the signature ``(value, param, obj) -> bool`` where ``param`` is the
already-parsed rule parameter and ``obj`` is the whole candidate object. Predicates never raise
for values of the kinds their rule declares; the engine refuses to call them with anything
else.

String lengths count Unicode code points (``len(str)``), for every length-based rule.
"""

import operator
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import urlparse

from email_validator import EmailNotValidError, validate_email

# Value kinds a rule can be declared for
STRING = "string"
NUMBER = "number"
TEMPORAL = "temporal"
COLLECTION = "collection"
BOOLEAN = "boolean"

ALL_KINDS = frozenset({STRING, NUMBER, TEMPORAL, COLLECTION, BOOLEAN})
SIZED_KINDS = frozenset({STRING, NUMBER, COLLECTION})
ORDERED_KINDS = frozenset({NUMBER, TEMPORAL})

ALPHA_REGEX = re.compile(r'[a-zA-Z]+')
ALPHANUM_REGEX = re.compile(r'[a-zA-Z0-9]+')
NUMERIC_REGEX = re.compile(r'[-+]?[0-9]+(?:\.[0-9]+)?')
UUID_REGEX = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
    re.IGNORECASE
)


def value_kind(value: Any) -> Optional[str]:
    """Classify a runtime value; ``None`` for values no rule kind covers."""
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    if isinstance(value, (datetime, date, time)):
        return TEMPORAL
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return COLLECTION
    return None


def is_empty(value: Any) -> bool:
    """
    Return True for the empty value of a field.

    ``None``, the empty string and empty collections are empty. Numeric zero and ``False`` are
    real values.
    """
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def measure(value: Any):
    """Size used by bound rules: length for strings and collections, the value for numbers."""
    if value_kind(value) == NUMBER:
        return value
    return len(value)


# ============================================================================
# PRESENCE AND BOUNDS
# ============================================================================

def required(value: Any, param: Any, obj: Any) -> bool:
    return not is_empty(value)


def min_bound(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) >= param


def max_bound(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) <= param


def exact_length(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) == param


def greater_than(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) > param


def greater_or_equal(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) >= param


def less_than(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) < param


def less_or_equal(value: Any, param: Any, obj: Any) -> bool:
    return measure(value) <= param


# ============================================================================
# STRING SHAPES
# ============================================================================

def alpha(value: str, param: Any, obj: Any) -> bool:
    return ALPHA_REGEX.fullmatch(value) is not None


def alphanumeric(value: str, param: Any, obj: Any) -> bool:
    return ALPHANUM_REGEX.fullmatch(value) is not None


def numeric(value: Any, param: Any, obj: Any) -> bool:
    if value_kind(value) == NUMBER:
        return True
    return NUMERIC_REGEX.fullmatch(value) is not None


def uuid_shape(value: str, param: Any, obj: Any) -> bool:
    return UUID_REGEX.fullmatch(value) is not None


def url_shape(value: str, param: Any, obj: Any) -> bool:
    if not value or any(char.isspace() for char in value):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    if not parsed.scheme or not parsed.scheme[0].isalpha():
        return False
    if parsed.scheme == 'file':
        return bool(parsed.path)
    return bool(parsed.netloc)


def email_shape(value: str, param: Any, obj: Any) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def one_of(value: Any, param: tuple, obj: Any) -> bool:
    return value in param


# ============================================================================
# CROSS-FIELD COMPARISON
# ============================================================================

def _comparable(value: Any, other: Any) -> bool:
    kind = value_kind(value)
    if kind not in ORDERED_KINDS or kind != value_kind(other):
        return False
    if kind == TEMPORAL:
        # date, datetime and time do not order against each other, nor naive against aware
        for temporal_type in (datetime, time):
            if isinstance(value, temporal_type) != isinstance(other, temporal_type):
                return False
        if isinstance(value, (datetime, time)):
            return (value.tzinfo is None) == (other.tzinfo is None)
    return True


def equals_field(value: Any, param: str, obj: Any) -> bool:
    return value == getattr(obj, param)


def not_equals_field(value: Any, param: str, obj: Any) -> bool:
    return value != getattr(obj, param)


def _ordered(value: Any, param: str, obj: Any, compare) -> bool:
    # An empty counterpart is left to its own required rule
    other = getattr(obj, param)
    if is_empty(other):
        return True
    return _comparable(value, other) and compare(value, other)


def greater_than_field(value: Any, param: str, obj: Any) -> bool:
    return _ordered(value, param, obj, operator.gt)


def greater_or_equal_field(value: Any, param: str, obj: Any) -> bool:
    return _ordered(value, param, obj, operator.ge)


def less_than_field(value: Any, param: str, obj: Any) -> bool:
    return _ordered(value, param, obj, operator.lt)


def less_or_equal_field(value: Any, param: str, obj: Any) -> bool:
    return _ordered(value, param, obj, operator.le)
