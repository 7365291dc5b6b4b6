"""Tests for attribute validation and operand semantics."""

import pytest

from placement_core.exceptions import ValidationError
from placement_core.operand import Condition, Operand
from placement_core.validation import validate


def expect_error(name, value, message):
    with pytest.raises(ValidationError) as exc_info:
        validate(name, value, is_rule_val=True)
    assert message in str(exc_info.value)


class TestValidate:
    """Rule value validation."""

    def test_coerces_known_attributes(self):
        """Known attributes are coerced to their declared type."""
        assert validate("replica", "1") == 1
        assert validate("collection", "c") == "c"
        assert validate("shard", "s") == "s"
        assert validate("nodeRole", "overseer") == "overseer"
        assert validate("sysLoadAvg", "12.46") == 12.46
        assert validate("port", "8983") == 8983
        assert validate("strict", "false") is False

    def test_rejects_out_of_range_values(self):
        """Bounds and allowed sets are enforced for rule values."""
        expect_error("replica", -1, "must be greater than")
        expect_error("replica", "hello", "not a valid number")
        expect_error("nodeRole", "wrong", "must be one of")
        expect_error("sysLoadAvg", "101", "must be less than")
        expect_error("sysLoadAvg", 101, "must be less than")
        expect_error("port", 0, "must be greater than")
        expect_error("port", 70000, "must be less than")
        expect_error("ip_1", "256", "must be less than")
        expect_error("cores", "-1", "must be greater than")
        expect_error("diskType", "floppy", "must be one of")

    def test_wildcards_pass_unchanged(self):
        """Wildcards are not validated against attribute rules."""
        assert validate("replica", "#ANY") == "#ANY"
        assert validate("shard", "#EACH") == "#EACH"

    def test_unknown_names_are_opaque_strings(self):
        """Unknown attribute names keep rule values as text."""
        assert validate("sysprop.fs", "ssd") == "ssd"
        assert validate("metrics:x:y:z", 12) == "12"

    def test_observed_values_never_raise(self):
        """Observed values are coerced best-effort."""
        assert validate("cores", "x", is_rule_val=False) == "x"
        assert validate("cores", "3", is_rule_val=False) == 3
        assert validate("port", 0, is_rule_val=False) == 0
        assert validate("freedisk", "334.5", is_rule_val=False) == 334.5

    def test_error_carries_context(self):
        """ValidationError keeps the attribute name and messages."""
        with pytest.raises(ValidationError) as exc_info:
            validate("port", 0)
        assert exc_info.value.name == "port"
        assert len(exc_info.value.errors) == 1


class TestOperand:
    """Operand parsing."""

    @pytest.mark.parametrize(
        "raw,operand,value",
        [
            ("overseer", Operand.EQUAL, "overseer"),
            ("!ssd", Operand.NOT_EQUAL, "ssd"),
            ("<2", Operand.LESS_THAN, "2"),
            (">12.7", Operand.GREATER_THAN, "12.7"),
            ("#ANY", Operand.WILDCARD, "#ANY"),
            ("#EACH", Operand.WILDCARD, "#EACH"),
            (3, Operand.EQUAL, 3),
        ],
    )
    def test_parse(self, raw, operand, value):
        assert Operand.parse(raw) == (operand, value)

    def test_priorities_order_concrete_before_wildcard(self):
        assert Operand.EQUAL.priority < Operand.GREATER_THAN.priority
        assert Operand.GREATER_THAN.priority < Operand.LESS_THAN.priority
        assert Operand.LESS_THAN.priority < Operand.WILDCARD.priority


class TestCondition:
    """Condition evaluation and deltas."""

    def test_less_than(self):
        condition = Condition.parse("replica", "<2")
        assert condition.value == 2
        assert condition.is_pass(1) is True
        assert condition.is_pass(2) is False
        assert condition.delta(3) == 2
        assert condition.delta(1) == 0

    def test_greater_than_on_float_attribute(self):
        condition = Condition.parse("sysLoadAvg", ">12.7")
        assert condition.is_pass(12.8) is True
        assert condition.is_pass(12.7) is False

    def test_greater_than_delta_is_negative_when_too_low(self):
        condition = Condition.parse("replica", ">0")
        assert condition.delta(0) == -1

    def test_equal_delta(self):
        condition = Condition.parse("replica", 0)
        assert condition.delta(2) == 2
        assert Condition.parse("replica", 2).delta(0) == -2

    def test_negation_is_case_sensitive(self):
        condition = Condition.parse("sysprop.fs", "!ssd")
        assert condition.is_pass("ssd") is False
        assert condition.is_pass("SSD") is True

    def test_missing_value_passes_negation_only(self):
        assert Condition.parse("sysprop.fs", "!ssd").is_pass(None) is True
        assert Condition.parse("sysprop.fs", "ssd").is_pass(None) is False
        assert Condition.parse("node", "#ANY").is_pass(None) is False
        assert Condition.parse("cores", "<10").is_pass(None) is False

    def test_numeric_comparison_on_opaque_tags(self):
        """Opaque tags compare numerically when both sides are numbers."""
        assert Condition.parse("metrics:x:y:z", ">12.7").is_pass("12.8") is True
        assert Condition.parse("metrics:x:y:z", "5").is_pass(5) is True
        assert Condition.parse("metrics:x:y:z", "<3").is_pass("abc") is False

    def test_text(self):
        assert Condition.parse("replica", "<2").text == "<2"
        assert Condition.parse("sysprop.fs", "!ssd").text == "!ssd"
        assert Condition.parse("node", "#ANY").text == "#ANY"
        assert str(Condition.parse("replica", 0)) == "replica:0"

    def test_parse_validates(self):
        with pytest.raises(ValidationError):
            Condition.parse("port", "<70000")
