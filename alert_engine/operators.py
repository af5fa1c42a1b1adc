"""
Operator Comparator
===================
Compares a payload value against a rule operand.

Coercion rules:
- Numbers and numeric-looking strings compare numerically ("10" > 9).
- Booleans are never numeric, and never equal to numbers.
- Non-numeric operands support =, !=, > and < only. >= and <= on
  non-numeric operands are a no-match (logged), not a string comparison.
- A missing or null payload value only matches != against a non-null operand.
"""
import json
import logging
import math
import re
import threading
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Hashable, Optional, Sequence, Tuple, Union

from alert_engine.extractor import MISSING, is_missing
from alert_engine.models import Operator

logger = logging.getLogger(__name__)

# Default list length from which 'in' switches to a cached set lookup
IN_SET_THRESHOLD = 100

_NUMERIC_STRING = re.compile(r'^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$')


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a value to a finite float.

    Args:
        value: Any payload or operand value

    Returns:
        The float, or None if the value is not numeric
    """
    if value is None or value is MISSING or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str) and _NUMERIC_STRING.match(value):
        number = float(value)
    else:
        return None

    return number if math.isfinite(number) else None


def strict_equals(left: Any, right: Any) -> bool:
    """Equality that does not treat True as 1 or False as 0."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if left is MISSING or right is MISSING:
        return left is right
    try:
        return bool(left == right)
    except Exception:
        return False


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)


def membership_key(value: Any) -> Tuple[str, Hashable]:
    """
    Hashable, type-tagged key used for 'in' lookups.

    The tag keeps booleans, numbers and strings apart so that the
    linear-scan and set-based code paths agree on every input.
    """
    if value is None or value is MISSING:
        return ('null', None)
    if isinstance(value, bool):
        return ('bool', value)
    if isinstance(value, (int, float, Decimal)):
        return ('number', _number_key(value))
    if isinstance(value, str):
        return ('string', value)
    return ('json', _canonical(value))


def _number_key(value: Any) -> Hashable:
    # Integral values are keyed exactly so large ids neither overflow nor collide
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        try:
            return float(value)
        except (OverflowError, ValueError):
            return str(value)
    if value.is_integer():
        return int(value)
    return value


class MembershipSetCache:
    """
    Thread-safe cache of 'in' operand sets keyed by their canonical JSON.

    Large deny/allow lists are usually shared by many events, so the
    conversion to a set is paid once per distinct list.
    """

    def __init__(self):
        self._sets: Dict[str, FrozenSet[Tuple[str, Hashable]]] = {}
        self._lock = threading.Lock()

    def get(self, values: Sequence[Any]) -> FrozenSet[Tuple[str, Hashable]]:
        key = _canonical(list(values))

        with self._lock:
            cached = self._sets.get(key)

        if cached is None:
            built = frozenset(membership_key(v) for v in values)
            with self._lock:
                cached = self._sets.setdefault(key, built)

        return cached

    def clear(self) -> None:
        with self._lock:
            self._sets = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sets)


class OperatorComparator:
    """Evaluates `actual <operator> expected` for one engine instance."""

    def __init__(
        self,
        in_set_threshold: int = IN_SET_THRESHOLD,
        set_cache: MembershipSetCache = None
    ):
        self.in_set_threshold = in_set_threshold
        self.set_cache = set_cache if set_cache is not None else MembershipSetCache()

    def compare(self, actual: Any, operator: Union[Operator, str], expected: Any) -> bool:
        """
        Compare two resolved values.

        Args:
            actual: Value extracted from the payload (may be MISSING)
            operator: One of >, <, >=, <=, =, !=, between, in
            expected: Literal or resolved dynamic operand (may be MISSING)

        Returns:
            True if the comparison matches
        """
        try:
            op = Operator(operator)
        except ValueError:
            logger.warning(f"Unknown operator: {operator}")
            return False

        if is_missing(actual):
            return op is Operator.NE and expected is not None

        if op is Operator.BETWEEN:
            return self._evaluate_between(actual, expected)

        if op is Operator.IN:
            return self._evaluate_in(actual, expected)

        actual_num = to_number(actual)
        expected_num = to_number(expected)

        if actual_num is not None and expected_num is not None:
            if op is Operator.GT:
                return actual_num > expected_num
            if op is Operator.LT:
                return actual_num < expected_num
            if op is Operator.GTE:
                return actual_num >= expected_num
            if op is Operator.LTE:
                return actual_num <= expected_num
            if op is Operator.EQ:
                return actual_num == expected_num
            return actual_num != expected_num

        if op is Operator.EQ:
            return strict_equals(actual, expected)
        if op is Operator.NE:
            return not strict_equals(actual, expected)
        if op in (Operator.GT, Operator.LT):
            try:
                return bool(actual > expected) if op is Operator.GT else bool(actual < expected)
            except TypeError:
                logger.warning(
                    f"Cannot order {type(actual).__name__} and {type(expected).__name__} "
                    f"with '{op.value}'"
                )
                return False

        logger.warning(f"Unsupported operator for non-numeric types: {op.value}")
        return False

    def _evaluate_between(self, value: Any, bounds: Any) -> bool:
        """Inclusive range check; expects [min, max]."""
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            logger.warning(f"Invalid range for between operator: {bounds!r}")
            return False

        number = to_number(value)
        low = to_number(bounds[0])
        high = to_number(bounds[1])

        if number is None or low is None or high is None:
            return False

        if low > high:
            logger.warning(f"Invalid range: min > max ({bounds[0]!r} > {bounds[1]!r})")
            return False

        return low <= number <= high

    def _evaluate_in(self, value: Any, candidates: Any) -> bool:
        """Membership check; large lists go through the set cache."""
        if not isinstance(candidates, (list, tuple)):
            logger.warning(f"Invalid array for in operator: {candidates!r}")
            return False

        key = membership_key(value)

        if len(candidates) < self.in_set_threshold:
            return any(membership_key(candidate) == key for candidate in candidates)

        return key in self.set_cache.get(candidates)
