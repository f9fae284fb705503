"""Comparison primitives shared by requirement evaluation and compiled rules.

A requirement conjunct such as ``rank.Athletics >= 2`` is evaluated in two
places: directly against a build (repair, randomizer) and inside a compiled
derivation rule (engine). Both go through ``compare_values`` so the two paths
can never disagree.
"""

import re
from functools import lru_cache
from typing import Any

COMPARISON_OPS = (">=", "<=", "==", "!=", "=~", "!~", ">", "<")


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def matches(pattern: str, value: Any) -> bool:
    """Return True if ``pattern`` is found anywhere in ``value``."""
    if value is None:
        value = ""
    return _compile_pattern(str(pattern)).search(str(value)) is not None


def coerce_number(value: Any) -> float | int:
    """Read an attribute value as a number.

    None is 0, booleans are 0/1, non-empty strings count as 1 (a chosen
    ancestry or deity is "present").
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 1 if value else 0
    return 1 if value else 0


def compare_values(actual: Any, op: str, expected: Any) -> bool:
    """Compare an attribute value against a literal.

    Args:
        actual: Attribute value from a build (may be None)
        op: One of COMPARISON_OPS
        expected: Literal from the requirement text

    Returns:
        True if the comparison holds

    Example:
        >>> compare_values(5, ">=", 5)
        True
        >>> compare_values(None, "!=", "Dwarf")
        True
        >>> compare_values("Neutral Good", "=~", "Good")
        True
    """
    if op == "=~":
        return matches(expected, actual)
    if op == "!~":
        return not matches(expected, actual)

    if isinstance(expected, str):
        text = "" if actual is None else str(actual)
        if op == "==":
            return text == expected
        if op == "!=":
            return text != expected
        left, right = text, expected
    else:
        left, right = coerce_number(actual), expected

    if op == ">=":
        return left >= right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    raise ValueError(f"Unknown comparison operator: {op!r}")
