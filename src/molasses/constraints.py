"""User constraint evaluation.

Malformed rule data and user values that cannot be coerced to the declared
type never raise; the constraint is simply not met.
"""

from __future__ import annotations

from typing import Any

from .models import Operator, UserConstraint, UserParamType

_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class CoercionError(ValueError):
    """A value could not be converted to the declared parameter type."""


def parse_bool(text: str) -> bool:
    """Parse the boolean spellings accepted in rule values and user params."""
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise CoercionError(f"not a boolean: {text!r}")


def parse_number(text: str) -> float:
    """Parse a decimal number, rejecting the padding and ``_`` separators float() allows."""
    if "_" in text or text != text.strip():
        raise CoercionError(f"not a number: {text!r}")
    try:
        return float(text)
    except ValueError as e:
        raise CoercionError(f"not a number: {text!r}") from e


def to_number(value: Any) -> float:
    # bool is a subclass of int, reject it first
    if isinstance(value, bool):
        raise CoercionError("booleans are not numbers")
    if isinstance(value, str):
        return parse_number(value)
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError as e:
            raise CoercionError(f"not a number: {value!r}") from e
    raise CoercionError(f"unsupported number type: {type(value).__name__}")


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return parse_bool(value)
    if isinstance(value, (int, float)):
        return value != 0
    raise CoercionError(f"unsupported bool type: {type(value).__name__}")


def to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # 12356.0 renders as "12356" so it compares equal to the rule text
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    raise CoercionError(f"unsupported string type: {type(value).__name__}")


def _contains_value(values: str, user_value: str) -> bool:
    return user_value in values.split(",")


def meets_string(user_value: str, constraint: UserConstraint) -> bool:
    op = constraint.operator
    if op == Operator.IN:
        return _contains_value(constraint.values, user_value)
    if op == Operator.NOT_IN:
        return not _contains_value(constraint.values, user_value)
    if op == Operator.EQUALS:
        return user_value == constraint.values
    if op == Operator.NOT_EQUALS:
        return user_value != constraint.values
    if op == Operator.CONTAINS:
        return constraint.values in user_value
    if op == Operator.NOT_CONTAINS:
        return constraint.values not in user_value
    return False


def meets_number(user_value: float, constraint: UserConstraint) -> bool:
    try:
        expected = parse_number(constraint.values)
    except CoercionError:
        return False
    op = constraint.operator
    if op == Operator.EQUALS:
        return user_value == expected
    if op == Operator.NOT_EQUALS:
        return user_value != expected
    if op == Operator.GREATER_THAN:
        return user_value > expected
    if op == Operator.GREATER_THAN_OR_EQUAL:
        return user_value >= expected
    if op == Operator.LESS_THAN:
        return user_value < expected
    if op == Operator.LESS_THAN_OR_EQUAL:
        return user_value <= expected
    return False


def meets_bool(user_value: bool, constraint: UserConstraint) -> bool:
    try:
        expected = parse_bool(constraint.values)
    except CoercionError:
        return False
    if constraint.operator == Operator.EQUALS:
        return user_value == expected
    if constraint.operator == Operator.NOT_EQUALS:
        return user_value != expected
    return False


def meets(constraint: UserConstraint, user_value: Any, param_exists: bool) -> bool:
    """Decide whether one user attribute satisfies one constraint.

    Args:
        constraint: the rule to test
        user_value: raw attribute value taken from the user
        param_exists: whether the user carries the attribute at all

    Returns:
        True when the constraint is met. A missing attribute, an uncoercible
        value or an operator the declared type does not support yields False.
    """
    if not param_exists:
        return False
    try:
        if constraint.user_param_type == UserParamType.NUMBER:
            return meets_number(to_number(user_value), constraint)
        if constraint.user_param_type == UserParamType.BOOL:
            return meets_bool(to_bool(user_value), constraint)
        return meets_string(to_string(user_value), constraint)
    except CoercionError:
        return False
