"""
Pydantic models for the rule alert engine
Defines rules, condition trees, evaluation context/results and alert records
"""
import json
from collections.abc import Mapping
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from alert_engine.exceptions import InvalidConditionError


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Severity(str, Enum):
    """Severity level of a rule and the alerts it raises"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Operator(str, Enum):
    """Comparison operators supported in leaf conditions"""
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "="
    NE = "!="
    BETWEEN = "between"
    IN = "in"


class AlertStatus(str, Enum):
    """Workflow status of a persisted alert"""
    NEW = "new"
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


# Statuses that block creation of another alert with the same fingerprint
OPEN_ALERT_STATUSES = (
    AlertStatus.ACTIVE.value,
    AlertStatus.ACKNOWLEDGED.value,
    AlertStatus.NEW.value,
)

LOGICAL_KEYS = ('AND', 'OR')


# =============================================================================
# CONDITION TREE
# =============================================================================

class DynamicValue(BaseModel):
    """Right-hand operand computed from another payload field"""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., min_length=1)
    multiplier: Optional[float] = None
    offset: Optional[float] = None


class LeafCondition(BaseModel):
    """Single field/operator/value comparison"""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., min_length=1)
    operator: Operator
    value: Any = None

    @field_validator('value', mode='before')
    @classmethod
    def _parse_dynamic_value(cls, value: Any) -> Any:
        if isinstance(value, Mapping) and 'field' in value:
            return DynamicValue.model_validate(dict(value))
        return value


class AllOf(BaseModel):
    """AND node: every child must match"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    conditions: List["Condition"] = Field(..., alias="AND", min_length=1)


class AnyOf(BaseModel):
    """OR node: at least one child must match"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    conditions: List["Condition"] = Field(..., alias="OR", min_length=1)


Condition = Union[LeafCondition, AllOf, AnyOf]

AllOf.model_rebuild()
AnyOf.model_rebuild()


def parse_condition(raw: Any) -> Condition:
    """
    Convert an untyped condition tree (e.g. a JSON column) into typed nodes.

    Args:
        raw: Mapping with either field/operator/value, AND, or OR

    Returns:
        LeafCondition, AllOf or AnyOf

    Raises:
        InvalidConditionError: if the node mixes AND and OR, has an empty or
            non-list child array, or is not a valid leaf
    """
    if isinstance(raw, (LeafCondition, AllOf, AnyOf)):
        return raw

    if not isinstance(raw, Mapping):
        raise InvalidConditionError(f"Condition must be an object, got {type(raw).__name__}")

    logical = [key for key in LOGICAL_KEYS if key in raw]

    if len(logical) > 1:
        raise InvalidConditionError("Only one logical operator (AND/OR) allowed per level")

    if logical:
        key = logical[0]
        nested = raw[key]
        if not isinstance(nested, list) or not nested:
            raise InvalidConditionError(f"Empty {key} condition")
        if len(raw) > 1:
            extra = sorted(k for k in raw if k != key)
            raise InvalidConditionError(f"Unexpected keys next to {key}: {extra}")

        children = [parse_condition(child) for child in nested]
        return AllOf(conditions=children) if key == 'AND' else AnyOf(conditions=children)

    try:
        return LeafCondition.model_validate(dict(raw))
    except ValidationError as e:
        first = e.errors()[0]
        location = '.'.join(str(part) for part in first.get('loc', ()))
        raise InvalidConditionError(f"Invalid condition ({location}): {first.get('msg')}") from e


def condition_to_dict(condition: Condition) -> Dict[str, Any]:
    """Serialize typed nodes back to the stored JSON shape."""
    if isinstance(condition, AllOf):
        return {'AND': [condition_to_dict(c) for c in condition.conditions]}
    if isinstance(condition, AnyOf):
        return {'OR': [condition_to_dict(c) for c in condition.conditions]}

    value = condition.value
    if isinstance(value, DynamicValue):
        value = value.model_dump(exclude_none=True)
    return {'field': condition.field, 'operator': condition.operator.value, 'value': value}


# =============================================================================
# RULES
# =============================================================================

class RuleActions(BaseModel):
    """What to do when a rule triggers"""
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None
    title: Optional[str] = None
    notify: List[str] = Field(default_factory=list)
    webhook_url: Optional[str] = None
    recipients: Optional[List[str]] = None
    custom_data: Optional[Dict[str, Any]] = None

    @field_validator('notify', mode='before')
    @classmethod
    def _normalize_notify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @property
    def link(self) -> Optional[str]:
        return (self.custom_data or {}).get('link')


class Rule(BaseModel):
    """Tenant-scoped alert rule as loaded from storage"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    organization_id: str
    module_name: Optional[str] = None
    rule_name: str
    rule_type: str = "threshold"
    conditions: Dict[str, Any]
    actions: RuleActions = Field(default_factory=RuleActions)
    severity: Severity = Severity.WARNING
    enabled: bool = Field(True, validation_alias=AliasChoices('enabled', 'is_active'))
    priority: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    trigger_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('id', 'organization_id', mode='before')
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # UUID columns come back from psycopg2 as uuid.UUID
        if value is not None and not isinstance(value, str):
            return str(value)
        return value

    @field_validator('conditions', mode='before')
    @classmethod
    def _load_conditions(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        if isinstance(value, (LeafCondition, AllOf, AnyOf)):
            return condition_to_dict(value)
        return value

    @field_validator('actions', mode='before')
    @classmethod
    def _load_actions(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, str):
            return json.loads(value)
        return value

    @field_validator('metadata', mode='before')
    @classmethod
    def _load_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


# =============================================================================
# EVALUATION
# =============================================================================

class EvaluationContext(BaseModel):
    """Ephemeral context for one evaluation batch"""
    model_config = ConfigDict(extra="allow")

    organization_id: str
    module_name: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    entity_id: Optional[str] = None

    @field_validator('organization_id', 'user_id', 'entity_id', mode='before')
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # Numeric ids arrive from JSON payloads and stream contexts
        if value is not None and not isinstance(value, (str, bool)):
            return str(value)
        return value


class EvaluationResult(BaseModel):
    """Outcome of evaluating one rule against one payload"""
    rule_id: str
    rule_name: Optional[str] = None
    triggered: bool
    severity: Severity
    matched_condition: Optional[Dict[str, Any]] = None
    alert_title: Optional[str] = None
    message: Optional[str] = None
    actions: Optional[RuleActions] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    evaluated_at: datetime = Field(default_factory=_utcnow)
    context: Optional[EvaluationContext] = None

    @property
    def entity_id(self) -> Optional[str]:
        entity_id = self.metadata.get('entity_id')
        if entity_id in (None, '') and self.context is not None:
            entity_id = self.context.entity_id
        return None if entity_id in (None, '') else str(entity_id)


@dataclass
class EngineStats:
    """Process-lifetime counters for one engine instance"""
    total_rules_evaluated: int = 0
    rules_triggered: int = 0
    evaluation_time_ms: float = 0.0
    errors_encountered: int = 0
    last_evaluation_at: datetime = dataclass_field(default_factory=_utcnow)


# =============================================================================
# ALERTS
# =============================================================================

class AlertRecord(BaseModel):
    """Alert row written to the alert store"""
    organization_id: str
    rule_id: str
    title: str = Field(..., max_length=255)
    description: str
    severity: Severity
    status: AlertStatus = AlertStatus.ACTIVE
    type: str = "rule_alert"
    context: str = "global"
    module_name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    fingerprint: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class AlertNotification(BaseModel):
    """Payload handed to notification channels"""
    alert_id: Optional[str] = None
    rule_id: str
    organization_id: str
    module_name: Optional[str] = None
    title: str
    message: str
    severity: Severity
    fingerprint: str
    recipients: List[str] = Field(default_factory=list)
    webhook_url: Optional[str] = None
    link: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    triggered_at: datetime = Field(default_factory=_utcnow)
