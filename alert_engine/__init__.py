"""
Alert Engine - Rule Evaluation and Alert Triggering
====================================================
Evaluates business-event payloads against tenant-defined rules (nested
AND/OR conditions, dynamic thresholds) and raises deduplicated alerts.

Usage:
    from alert_engine import RuleEngine

    engine = RuleEngine(organization_id='org-1', module_name='kitchen')
    rule = {
        'id': 'r1',
        'organization_id': 'org-1',
        'rule_name': 'Capacity Surge',
        'conditions': {'field': 'weighted_load', 'operator': '>', 'value': 20},
        'actions': {'message': 'Load at {weighted_load}', 'notify': ['slack']},
    }
    results = engine.evaluate_with_rules([rule], {'weighted_load': 21.0})
    engine.execute_actions(results)
"""

from alert_engine.actions import ActionExecutor, build_fingerprint
from alert_engine.conditions import evaluate_complex, evaluate_condition, validate_complexity
from alert_engine.config import RuleEngineConfig
from alert_engine.engine import RuleEngine
from alert_engine.exceptions import (
    AlertEngineError,
    ConfigurationError,
    InvalidConditionError,
    RuleComplexityError,
    RuleEvaluationError,
)
from alert_engine.extractor import MISSING, extract_field_value
from alert_engine.models import (
    AlertRecord,
    EvaluationContext,
    EvaluationResult,
    Rule,
    Severity,
    parse_condition,
)
from alert_engine.operators import OperatorComparator
from alert_engine.templates import interpolate_message

__all__ = [
    'ActionExecutor',
    'AlertEngineError',
    'AlertRecord',
    'ConfigurationError',
    'EvaluationContext',
    'EvaluationResult',
    'InvalidConditionError',
    'MISSING',
    'OperatorComparator',
    'Rule',
    'RuleComplexityError',
    'RuleEngine',
    'RuleEngineConfig',
    'RuleEvaluationError',
    'Severity',
    'build_fingerprint',
    'evaluate_complex',
    'evaluate_condition',
    'extract_field_value',
    'interpolate_message',
    'parse_condition',
    'validate_complexity',
]
