"""
Tests for alert_engine/conditions.py and condition parsing in models.py

Tests cover:
- Leaf evaluation with literal and dynamic values
- AND / OR short-circuiting
- Complexity guard limits
- Condition tree parsing
"""
from unittest.mock import MagicMock

import pytest

from alert_engine.conditions import (
    evaluate_complex,
    evaluate_condition,
    resolve_dynamic_value,
    validate_complexity,
)
from alert_engine.exceptions import InvalidConditionError, RuleComplexityError
from alert_engine.extractor import MISSING
from alert_engine.models import (
    AllOf,
    AnyOf,
    DynamicValue,
    LeafCondition,
    Operator,
    condition_to_dict,
    parse_condition,
)
from alert_engine.operators import OperatorComparator


def leaf(field='x', operator='>', value=0):
    return {'field': field, 'operator': operator, 'value': value}


def nest(levels, node):
    """Wrap node in alternating AND/OR levels"""
    for i in range(levels):
        node = {('AND' if i % 2 == 0 else 'OR'): [node]}
    return node


# =============================================================================
# LEAF EVALUATION
# =============================================================================

class TestLeafEvaluation:

    def test_literal_value(self):
        assert evaluate_condition(leaf('total', '>', 100), {'total': 150}) is True
        assert evaluate_condition(leaf('total', '>', 100), {'total': 50}) is False

    def test_nested_field(self):
        condition = leaf('order.total', '>=', 10)
        assert evaluate_condition(condition, {'order': {'total': 10}}) is True

    def test_typed_condition(self):
        condition = LeafCondition(field='status', operator=Operator.EQ, value='paid')
        assert evaluate_condition(condition, {'status': 'paid'}) is True

    def test_missing_field(self):
        assert evaluate_condition(leaf('total', '>', 0), {}) is False
        assert evaluate_condition(leaf('total', '!=', 0), {}) is True

    def test_malformed_leaf_raises(self):
        with pytest.raises(InvalidConditionError):
            evaluate_condition({'field': 'x', 'operator': 'like', 'value': 1}, {})


class TestDynamicValues:

    def test_multiplier_then_offset(self):
        dynamic = DynamicValue(field='base', multiplier=1.5, offset=2)
        assert resolve_dynamic_value(10, dynamic) == 17

    def test_dynamic_condition_matches(self):
        condition = leaf('current', '>=', {'field': 'base', 'multiplier': 1.5, 'offset': 2})
        assert evaluate_condition(condition, {'current': 17, 'base': 10}) is True
        assert evaluate_condition(condition, {'current': 16.9, 'base': 10}) is False

    def test_numeric_string_base(self):
        dynamic = DynamicValue(field='base', multiplier=2)
        assert resolve_dynamic_value('4', dynamic) == 8

    def test_plain_field_reference(self):
        condition = leaf('sold', '>', {'field': 'stock'})
        assert evaluate_condition(condition, {'sold': 12, 'stock': 10}) is True

    @pytest.mark.parametrize('base', ['x', None, MISSING, True, [1]])
    def test_non_numeric_base_is_missing(self, base):
        dynamic = DynamicValue(field='base', multiplier=1.5, offset=2)
        assert resolve_dynamic_value(base, dynamic) is MISSING

    def test_non_numeric_base_never_matches(self):
        condition = leaf('current', '>', {'field': 'base', 'multiplier': 1.5, 'offset': 2})
        assert evaluate_condition(condition, {'current': 100, 'base': 'x'}) is False

    def test_unresolved_dynamic_value_with_not_equal(self):
        condition = leaf('current', '!=', {'field': 'base'})
        assert evaluate_condition(condition, {'base': 'x'}) is True


# =============================================================================
# BOOLEAN COMPOSITION
# =============================================================================

class TestBooleanComposition:

    def test_and(self):
        condition = {'AND': [leaf('a', '>', 1), leaf('b', '<', 5)]}
        assert evaluate_condition(condition, {'a': 2, 'b': 3}) is True
        assert evaluate_condition(condition, {'a': 2, 'b': 9}) is False

    def test_or(self):
        condition = {'OR': [leaf('a', '>', 1), leaf('b', '<', 5)]}
        assert evaluate_condition(condition, {'a': 0, 'b': 3}) is True
        assert evaluate_condition(condition, {'a': 0, 'b': 9}) is False

    def test_nested(self):
        condition = {'AND': [
            leaf('status', '=', 'open'),
            {'OR': [leaf('wait', '>', 30), leaf('priority', 'in', ['high', 'urgent'])]}
        ]}
        assert evaluate_condition(condition, {'status': 'open', 'wait': 5, 'priority': 'urgent'}) is True
        assert evaluate_condition(condition, {'status': 'open', 'wait': 5, 'priority': 'low'}) is False

    def test_and_short_circuits(self):
        comparator = MagicMock(spec=OperatorComparator)
        comparator.compare.side_effect = [False, RuntimeError('must not be evaluated')]

        node = parse_condition({'AND': [leaf('a'), leaf('b')]})

        assert evaluate_complex(node, {'a': 1, 'b': 1}, comparator) is False
        assert comparator.compare.call_count == 1

    def test_or_short_circuits(self):
        comparator = MagicMock(spec=OperatorComparator)
        comparator.compare.side_effect = [True, RuntimeError('must not be evaluated')]

        node = parse_condition({'OR': [leaf('a'), leaf('b')]})

        assert evaluate_complex(node, {'a': 1, 'b': 1}, comparator) is True
        assert comparator.compare.call_count == 1

    def test_unknown_node(self):
        assert evaluate_complex(LeafCondition(field='a', operator='>', value=1), {'a': 2}) is False


# =============================================================================
# COMPLEXITY GUARD
# =============================================================================

class TestComplexityGuard:

    def test_leaf_is_valid(self):
        validate_complexity(leaf())

    def test_depth_three_is_valid(self):
        validate_complexity(nest(3, leaf()))

    def test_depth_four_is_rejected(self):
        with pytest.raises(RuleComplexityError, match='depth'):
            validate_complexity(nest(4, leaf()))

    def test_both_operators_rejected(self):
        with pytest.raises(RuleComplexityError, match='Only one logical operator'):
            validate_complexity({'AND': [leaf()], 'OR': [leaf()]})

    def test_ten_conditions_allowed(self):
        validate_complexity({'AND': [leaf() for _ in range(10)]})

    def test_eleven_conditions_rejected(self):
        with pytest.raises(RuleComplexityError, match='Max 10'):
            validate_complexity({'AND': [leaf() for _ in range(11)]})

    def test_empty_or_rejected(self):
        with pytest.raises(RuleComplexityError, match='Empty OR'):
            validate_complexity({'OR': []})

    def test_non_list_rejected(self):
        with pytest.raises(RuleComplexityError):
            validate_complexity({'AND': leaf()})

    def test_nested_violation_rejected(self):
        with pytest.raises(RuleComplexityError):
            validate_complexity({'AND': [leaf(), {'OR': []}]})

    def test_typed_nodes(self):
        validate_complexity(parse_condition(nest(3, leaf())))
        with pytest.raises(RuleComplexityError):
            validate_complexity(parse_condition(nest(4, leaf())))

    def test_custom_limits(self):
        with pytest.raises(RuleComplexityError):
            validate_complexity({'AND': [leaf(), leaf(), leaf()]}, max_conditions=2)
        with pytest.raises(RuleComplexityError):
            validate_complexity(nest(2, leaf()), max_depth=1)


# =============================================================================
# PARSING
# =============================================================================

class TestParseCondition:

    def test_leaf(self):
        node = parse_condition(leaf('total', '>', 5))
        assert isinstance(node, LeafCondition)
        assert node.operator is Operator.GT

    def test_dynamic_leaf(self):
        node = parse_condition(leaf('x', '>', {'field': 'y', 'multiplier': 2}))
        assert isinstance(node.value, DynamicValue)
        assert node.value.multiplier == 2

    def test_list_value_stays_literal(self):
        node = parse_condition(leaf('x', 'between', [1, 2]))
        assert node.value == [1, 2]

    def test_complex(self):
        node = parse_condition({'OR': [leaf(), {'AND': [leaf(), leaf()]}]})
        assert isinstance(node, AnyOf)
        assert isinstance(node.conditions[1], AllOf)
        assert len(node.conditions[1].conditions) == 2

    @pytest.mark.parametrize('raw', [
        {'AND': [leaf()], 'OR': [leaf()]},
        {'AND': []},
        {'OR': 'x'},
        {'AND': [leaf()], 'field': 'x'},
        {'field': 'x', 'operator': '~', 'value': 1},
        {'operator': '>', 'value': 1},
        {'field': 'x', 'operator': '>', 'value': 1, 'extra': True},
        'not a condition',
    ])
    def test_invalid(self, raw):
        with pytest.raises(InvalidConditionError):
            parse_condition(raw)

    def test_round_trip_shape(self):
        raw = {'AND': [leaf('a', '>', 1), leaf('b', '<', {'field': 'c', 'offset': 1.0})]}
        assert condition_to_dict(parse_condition(raw)) == raw
