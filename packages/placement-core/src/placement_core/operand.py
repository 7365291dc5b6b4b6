"""
Operands and conditions.

An Operand is one comparison semantic used by a clause: equality, numeric
less/greater than, wildcard and negation. A Condition binds an operand to an
attribute name and a validated target value, and is what a clause evaluates
against an observed tag value or a replica count.

The operand is parsed from the leading character of a rule value:

    "overseer"  -> EQUAL
    "!ssd"      -> NOT_EQUAL (case-sensitive for strings)
    "<2"        -> LESS_THAN
    ">12.7"     -> GREATER_THAN
    "#ANY"      -> WILDCARD
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from placement_core.validation import WILDCARDS, to_number, validate


class Operand(Enum):
    """
    Comparison semantics with their sort priority.

    Lower priority sorts first: concrete equality before ranges, ranges
    before wildcards.
    """

    EQUAL = ("", 0)
    GREATER_THAN = (">", 1)
    LESS_THAN = ("<", 2)
    NOT_EQUAL = ("!", 2)
    WILDCARD = ("#", 3)

    def __init__(self, symbol: str, priority: int) -> None:
        self.symbol = symbol
        self.priority = priority

    @classmethod
    def parse(cls, raw: Any) -> tuple["Operand", Any]:
        """
        Split a raw rule value into operand and remaining value.

        Returns:
            Tuple of (operand, value without the operator character)
        """
        if not isinstance(raw, str):
            return cls.EQUAL, raw
        text = raw.strip()
        if text in WILDCARDS:
            return cls.WILDCARD, text
        for operand in (cls.NOT_EQUAL, cls.LESS_THAN, cls.GREATER_THAN):
            if text.startswith(operand.symbol):
                return operand, text[1:].strip()
        return cls.EQUAL, text

    def match(self, expected: Any, observed: Any) -> bool:
        """Return True if the observed value satisfies this operand."""
        if self is Operand.WILDCARD:
            return observed is not None
        if self is Operand.EQUAL:
            return _equals(expected, observed)
        if self is Operand.NOT_EQUAL:
            return not _equals(expected, observed)

        bound = to_number(expected)
        actual = to_number(observed)
        if bound is None or actual is None:
            return False
        if self is Operand.LESS_THAN:
            return actual < bound
        return actual > bound

    def delta(self, expected: Any, observed: Any) -> float | None:
        """
        Signed distance between the observed value and the nearest legal one.

        Positive means "too many/too high", negative "too few/too low", zero
        means the value passes. None when either side is not numeric.
        """
        bound = to_number(expected)
        actual = to_number(observed)
        if bound is None or actual is None:
            return None
        if self.match(expected, observed):
            return 0
        if self is Operand.EQUAL:
            return _int_if_whole(actual - bound)
        if self is Operand.LESS_THAN:
            return _int_if_whole(actual - (bound - 1))
        if self is Operand.GREATER_THAN:
            return _int_if_whole(actual - (bound + 1))
        return 0


def _int_if_whole(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def _equals(expected: Any, observed: Any) -> bool:
    if observed is None:
        return False
    if isinstance(expected, str) and isinstance(observed, str):
        return expected == observed
    left, right = to_number(expected), to_number(observed)
    if left is not None and right is not None:
        return left == right
    return str(expected) == str(observed)


@dataclass(frozen=True)
class Condition:
    """
    One attribute predicate: name, operand and validated target value.

    Attributes:
        name: Attribute name (e.g., "replica", "nodeRole", "sysprop.fs")
        operand: Comparison semantics
        value: Target value, coerced by validate()
    """

    name: str
    operand: Operand
    value: Any

    @classmethod
    def parse(cls, name: str, raw: Any) -> "Condition":
        """
        Build a condition from a raw document value.

        Raises:
            ValidationError: If the value is not valid for the attribute.
        """
        operand, value = Operand.parse(raw)
        if operand is not Operand.WILDCARD:
            value = validate(name, value, is_rule_val=True)
        return cls(name=name, operand=operand, value=value)

    @property
    def is_wildcard(self) -> bool:
        return self.operand is Operand.WILDCARD

    @property
    def is_negated(self) -> bool:
        return self.operand is Operand.NOT_EQUAL

    def is_pass(self, observed: Any) -> bool:
        """Evaluate the condition against an observed value or count."""
        return self.operand.match(self.value, observed)

    def delta(self, observed: Any) -> float | None:
        """Signed distance from the observed value to the condition's bound."""
        return self.operand.delta(self.value, observed)

    @property
    def text(self) -> str:
        """The condition in document form, e.g. "<2" or "!ssd"."""
        if self.is_wildcard:
            return str(self.value)
        return f"{self.operand.symbol}{self.value}"

    def __str__(self) -> str:
        return f"{self.name}:{self.text}"
