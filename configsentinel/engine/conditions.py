"""
Condition evaluator.

Maps (probed value, operator, expected value) to a boolean using a fixed,
small operator set. The evaluator never raises: unknown operators, invalid
regular expressions and incomparable operands all evaluate to False.
"""

import logging
import re
from collections.abc import Mapping
from numbers import Real
from typing import Any, Union

from configsentinel.engine.schema import ConditionOperator

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _structurally_equal(actual: Any, expected: Any) -> bool:
    """Equality on type and value, recursing into sequences and mappings."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected

    if _is_number(actual) and _is_number(expected):
        return actual == expected

    if isinstance(actual, str) or isinstance(expected, str):
        return isinstance(actual, str) and isinstance(expected, str) and actual == expected

    if isinstance(actual, Mapping) and isinstance(expected, Mapping):
        if set(actual.keys()) != set(expected.keys()):
            return False
        return all(_structurally_equal(actual[k], expected[k]) for k in actual)

    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        if len(actual) != len(expected):
            return False
        return all(_structurally_equal(a, e) for a, e in zip(actual, expected))

    if type(actual) is not type(expected):
        return False

    try:
        return bool(actual == expected)
    except Exception:
        return False


def _compare(actual: Any, expected: Any) -> int:
    """
    Three-way comparison, or 0 when the operands have no common total order.

    Returning 0 makes both GreaterThan and LessThan evaluate to False.
    """
    if actual is None or expected is None:
        return 0
    if isinstance(actual, bool) or isinstance(expected, bool):
        return 0
    if not (_is_number(actual) and _is_number(expected)) and type(actual) is not type(expected):
        return 0

    try:
        if actual > expected:
            return 1
        if actual < expected:
            return -1
    except TypeError:
        return 0
    return 0


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    return _as_text(expected) in _as_text(actual)


def _regex_match(actual: Any, pattern: Any) -> bool:
    try:
        return re.search(_as_text(pattern), _as_text(actual)) is not None
    except re.error as e:
        logger.debug(f"Invalid regular expression {pattern!r}: {e}")
        return False


class ConditionEvaluator:
    """
    Evaluate a rule condition against a probed value.

    Example:
        ```python
        ConditionEvaluator.evaluate(5, "GreaterThan", 3)          # True
        ConditionEvaluator.evaluate("abc", "Contains", "b")       # True
        ConditionEvaluator.evaluate(None, "NotExists", None)      # True
        ConditionEvaluator.evaluate(1, "Between", [0, 2])         # False (unknown)
        ```
    """

    @staticmethod
    def evaluate(actual: Any, operator: Union[str, ConditionOperator], expected: Any = None) -> bool:
        """
        Evaluate `actual <operator> expected`.

        Args:
            actual: Value returned by the probe
            operator: Operator name (e.g. "Equals") or ConditionOperator
            expected: Expected value from the rule definition

        Returns:
            Condition outcome; False for unknown operators
        """
        try:
            op = ConditionOperator(operator)
        except (ValueError, TypeError):
            logger.debug(f"Unknown condition operator: {operator!r}")
            return False

        match op:
            case ConditionOperator.EQUALS:
                return _structurally_equal(actual, expected)
            case ConditionOperator.NOT_EQUALS:
                return not _structurally_equal(actual, expected)
            case ConditionOperator.GREATER_THAN:
                return _compare(actual, expected) > 0
            case ConditionOperator.LESS_THAN:
                return _compare(actual, expected) < 0
            case ConditionOperator.CONTAINS:
                return _contains(actual, expected)
            case ConditionOperator.NOT_CONTAINS:
                return not _contains(actual, expected)
            case ConditionOperator.REGEX_MATCH:
                return _regex_match(actual, expected)
            case ConditionOperator.EXISTS:
                return actual is not None
            case ConditionOperator.NOT_EXISTS:
                return actual is None

        return False

    @staticmethod
    def is_known_operator(operator: str) -> bool:
        """Check whether `operator` names a supported operator."""
        try:
            ConditionOperator(operator)
        except (ValueError, TypeError):
            return False
        return True


def evaluate(actual: Any, operator: Union[str, ConditionOperator], expected: Any = None) -> bool:
    """Module-level shortcut for ConditionEvaluator.evaluate."""
    return ConditionEvaluator.evaluate(actual, operator, expected)
