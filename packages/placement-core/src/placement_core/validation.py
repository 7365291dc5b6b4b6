"""
Attribute validation for policy values.

This module knows the well-known attribute names a clause can reference
and how their values must look. Rule values (values written in a policy
document) are validated strictly and raise ValidationError; observed values
(values reported by a node-state provider) are coerced best-effort and never
raise, so evaluation of a constructed policy cannot fail.

Unknown names are opaque tags: rule values are kept as strings and compared
numerically only when both sides parse as numbers.

Example:
    ```python
    validate("port", "8983")        # 8983
    validate("sysLoadAvg", "12.46")  # 12.46
    validate("port", 0)             # ValidationError: ... must be greater than or equal to 1
    ```
"""

import logging
from dataclasses import dataclass
from typing import Any

from placement_core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ANY = "#ANY"
"""Wildcard matching any value."""

EACH = "#EACH"
"""Shard wildcard meaning "evaluate every shard independently"."""

WILDCARDS = frozenset({ANY, EACH})


@dataclass(frozen=True)
class AttributeRule:
    """
    Type and bounds of a well-known attribute.

    Attributes:
        type: "int", "float", "percentage", "str" or "bool"
        min: Inclusive lower bound for numeric types
        max: Inclusive upper bound for numeric types
        allowed: Allowed values for enumerated string types
    """

    type: str
    min: float | None = None
    max: float | None = None
    allowed: frozenset[str] | None = None


ATTRIBUTE_RULES: dict[str, AttributeRule] = {
    "replica": AttributeRule("int", min=0),
    "collection": AttributeRule("str"),
    "shard": AttributeRule("str"),
    "node": AttributeRule("str"),
    "host": AttributeRule("str"),
    "type": AttributeRule("str", allowed=frozenset({"NRT", "TLOG", "PULL"})),
    "strict": AttributeRule("bool"),
    "cores": AttributeRule("int", min=0),
    "freedisk": AttributeRule("float", min=0),
    "heapUsage": AttributeRule("float", min=0),
    "sysLoadAvg": AttributeRule("percentage", min=0, max=100),
    "port": AttributeRule("int", min=1, max=65535),
    "nodeRole": AttributeRule("str", allowed=frozenset({"overseer"})),
    "diskType": AttributeRule("str", allowed=frozenset({"ssd", "rotational"})),
}
for _octet in range(1, 5):
    ATTRIBUTE_RULES[f"ip_{_octet}"] = AttributeRule("int", min=0, max=255)


def is_known_attribute(name: str) -> bool:
    """Return True if the name carries built-in validation rules."""
    return name in ATTRIBUTE_RULES


def to_number(value: Any) -> float | None:
    """
    Interpret a value as a number.

    Note: bool is a subclass of int, so it is excluded explicitly.

    Returns:
        The value as float, or None when it is not numeric.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _parse_number(name: str, rule: AttributeRule, value: Any) -> int | float:
    number = to_number(value)
    if number is None:
        raise ValidationError(name, [f"'{value}' is not a valid number"])
    if rule.type == "int":
        if not number.is_integer():
            raise ValidationError(name, [f"'{value}' is not a valid number (integer expected)"])
        return int(number)
    return number


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "false"):
        return text == "true"
    raise ValidationError(name, [f"'{value}' is not a valid boolean"])


def _coerce_observed(rule: AttributeRule, value: Any) -> Any:
    if rule.type in ("int", "float", "percentage"):
        number = to_number(value)
        if number is None:
            return value
        return int(number) if rule.type == "int" and number.is_integer() else number
    if rule.type == "str":
        return str(value)
    return value


def validate(name: str, value: Any, is_rule_val: bool = True) -> Any:
    """
    Validate and coerce an attribute value.

    Args:
        name: Attribute name (e.g., "port", "sysprop.fs")
        value: Raw value, without any leading operator character
        is_rule_val: True for values written in a policy document, False
            for values observed on a node

    Returns:
        The coerced value: int/float for numeric attributes, str for string
        attributes and opaque tags, bool for flags. Wildcards are returned
        unchanged.

    Raises:
        ValidationError: For rule values that are not parseable as the
            declared type, fall outside the declared bounds, or are not in
            the allowed set.
    """
    if value is None:
        return None

    if isinstance(value, str):
        value = value.strip()
        if is_rule_val and value in WILDCARDS:
            return value

    rule = ATTRIBUTE_RULES.get(name)
    if rule is None:
        # Opaque tag - keep rule values as text, observed values as reported
        return str(value) if is_rule_val else value

    if not is_rule_val:
        return _coerce_observed(rule, value)

    if rule.type == "bool":
        return _parse_bool(name, value)

    if rule.type == "str":
        text = str(value)
        if rule.allowed is not None and text not in rule.allowed:
            allowed = ", ".join(sorted(rule.allowed))
            raise ValidationError(name, [f"'{text}' must be one of {{{allowed}}}"])
        return text

    number = _parse_number(name, rule, value)
    errors: list[str] = []
    if rule.min is not None and number < rule.min:
        errors.append(f"{value} must be greater than or equal to {_fmt(rule.min)}")
    if rule.max is not None and number > rule.max:
        errors.append(f"{value} must be less than or equal to {_fmt(rule.max)}")
    if errors:
        raise ValidationError(name, errors)
    return number


def _fmt(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)
