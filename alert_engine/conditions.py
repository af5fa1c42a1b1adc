"""
Condition evaluation for alert rules

- Leaf conditions: field / operator / value, where value may be dynamic
- AND / OR composition with short-circuit evaluation
- Complexity guard: bounds nesting depth and breadth of tenant-authored rules
"""
import logging
from collections.abc import Mapping
from typing import Any, Dict

from alert_engine.exceptions import RuleComplexityError
from alert_engine.extractor import MISSING, extract_field_value
from alert_engine.models import (
    LOGICAL_KEYS,
    AllOf,
    AnyOf,
    Condition,
    DynamicValue,
    LeafCondition,
    parse_condition,
)
from alert_engine.operators import OperatorComparator, to_number

logger = logging.getLogger(__name__)

MAX_DEPTH = 3
MAX_CONDITIONS_PER_LEVEL = 10


# =============================================================================
# COMPLEXITY GUARD
# =============================================================================

def _logical_branches(condition: Any) -> Dict[str, Any]:
    """Return the AND/OR entries of a node, typed or raw."""
    if isinstance(condition, AllOf):
        return {'AND': condition.conditions}
    if isinstance(condition, AnyOf):
        return {'OR': condition.conditions}
    if isinstance(condition, Mapping):
        return {key: condition[key] for key in LOGICAL_KEYS if key in condition}
    return {}


def validate_complexity(
    condition: Any,
    depth: int = 0,
    max_depth: int = MAX_DEPTH,
    max_conditions: int = MAX_CONDITIONS_PER_LEVEL
) -> None:
    """
    Reject condition trees that are too deep or too wide.

    Every node counts as a level, leaves included, so AND[OR[AND[leaf]]]
    sits exactly at the limit and one more wrapper is rejected.

    Args:
        condition: Raw mapping or parsed condition node
        depth: Depth of this node (0 for the rule's top-level condition)
        max_depth: Deepest allowed level
        max_conditions: Maximum children of a single AND/OR node

    Raises:
        RuleComplexityError: on any violation
    """
    if depth > max_depth:
        raise RuleComplexityError(f"Rule complexity exceeds max nesting depth ({max_depth})")

    branches = _logical_branches(condition)
    if not branches:
        return

    if len(branches) > 1:
        raise RuleComplexityError("Only one logical operator (AND/OR) allowed per level")

    operator, nested = next(iter(branches.items()))

    if not isinstance(nested, list) or not nested:
        raise RuleComplexityError(f"Empty {operator} condition")

    if len(nested) > max_conditions:
        raise RuleComplexityError(f"Max {max_conditions} conditions per level exceeded")

    for child in nested:
        validate_complexity(child, depth + 1, max_depth, max_conditions)


# =============================================================================
# EVALUATION
# =============================================================================

def resolve_dynamic_value(base_value: Any, dynamic: DynamicValue) -> Any:
    """
    Resolve a dynamic operand: (base * multiplier) + offset.

    Returns MISSING when the base value is absent or not numeric, so the
    owning comparison falls under the missing-value rule.
    """
    number = to_number(base_value)
    if number is None:
        return MISSING

    result = number
    if dynamic.multiplier is not None:
        result = result * dynamic.multiplier
    if dynamic.offset is not None:
        result = result + dynamic.offset

    return result


def evaluate_condition(
    condition: Condition,
    data: Any,
    comparator: OperatorComparator = None
) -> bool:
    """
    Evaluate a condition (simple or complex) against a payload.

    Args:
        condition: Parsed node, or a raw mapping which is parsed first
        data: Event payload
        comparator: Comparator owning the 'in' set cache

    Returns:
        True if the condition matches
    """
    if comparator is None:
        comparator = OperatorComparator()

    if not isinstance(condition, (LeafCondition, AllOf, AnyOf)):
        condition = parse_condition(condition)

    if isinstance(condition, (AllOf, AnyOf)):
        return evaluate_complex(condition, data, comparator)

    expected = condition.value
    if isinstance(expected, DynamicValue):
        expected = resolve_dynamic_value(extract_field_value(data, expected.field), expected)

    actual = extract_field_value(data, condition.field)
    return comparator.compare(actual, condition.operator, expected)


def evaluate_complex(node: Any, data: Any, comparator: OperatorComparator = None) -> bool:
    """
    Evaluate an AND/OR node with short-circuiting.

    AND stops at the first false child, OR at the first true child.
    """
    if comparator is None:
        comparator = OperatorComparator()

    if isinstance(node, AllOf):
        return all(evaluate_condition(child, data, comparator) for child in node.conditions)

    if isinstance(node, AnyOf):
        return any(evaluate_condition(child, data, comparator) for child in node.conditions)

    logger.warning(f"Complex condition has neither AND nor OR: {node!r}")
    return False
