"""
Rule Engine
===========
Evaluates event payloads against an organization's alert rules.

- Loads active rules from the rule source (cached with a TTL)
- Rejects over-complex rules before evaluating them
- Renders alert titles/messages for triggered rules
- Tracks evaluation statistics
- Hands triggered results to the ActionExecutor

Example:
    with RuleEngine(organization_id='org-1', module_name='sales') as engine:
        results = engine.evaluate({'total': 15000, 'status': 'completed'})
        engine.execute_actions(results)
"""
import logging
import threading
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from alert_engine.actions import ActionExecutor
from alert_engine.conditions import evaluate_condition, validate_complexity
from alert_engine.config import RuleEngineConfig
from alert_engine.exceptions import ConfigurationError, RuleEvaluationError
from alert_engine.models import (
    EngineStats,
    EvaluationContext,
    EvaluationResult,
    Rule,
    parse_condition,
)
from alert_engine.operators import OperatorComparator
from alert_engine.repository import AlertRepository, RuleRepository
from alert_engine.templates import interpolate_message

logger = logging.getLogger(__name__)

RuleLike = Union[Rule, Mapping]
ContextLike = Union[EvaluationContext, Mapping, None]


class RuleEngine:
    """
    Evaluates data against tenant alert rules

    Collaborators default to the PostgreSQL repositories when WAREHOUSE_DSN is
    configured; pass rule_source / action_executor to replace them.
    """

    def __init__(
        self,
        config: Optional[RuleEngineConfig] = None,
        rule_source=None,
        action_executor: Optional[ActionExecutor] = None,
        **overrides
    ):
        """
        Initialize the engine

        Args:
            config: Engine configuration (defaults from environment)
            rule_source: Object with fetch_active_rules() and optionally
                increment_trigger_count()
            action_executor: Executor for triggered results
            **overrides: Config fields, e.g. organization_id='org-1'

        Raises:
            ConfigurationError: if no organization_id is configured
        """
        if config is None:
            config = RuleEngineConfig(**overrides)
        elif overrides:
            config = config.model_copy(update=overrides)

        if not config.organization_id:
            raise ConfigurationError("RuleEngine: organization_id is required")

        self.config = config

        if rule_source is None and config.warehouse_dsn:
            rule_source = RuleRepository(config.warehouse_dsn)
        self.rule_source = rule_source

        self._background = ThreadPoolExecutor(
            max_workers=config.background_workers,
            thread_name_prefix='alert-engine'
        )

        if action_executor is None:
            alert_store = AlertRepository(config.warehouse_dsn) if config.warehouse_dsn else None
            action_executor = ActionExecutor(config, alert_store=alert_store, background=self._background)
        self.action_executor = action_executor

        self.comparator = OperatorComparator(in_set_threshold=config.in_set_threshold)

        self._rule_cache: Optional[Tuple[Tuple[Rule, ...], float]] = None
        self._cache_lock = threading.Lock()

        self._stats = EngineStats()
        self._stats_lock = threading.Lock()

        logger.info(
            f"RuleEngine initialized for organization {config.organization_id}"
            f" (module={config.module_name or 'all'})"
        )

    # =========================================================================
    # RULE LOADING
    # =========================================================================

    def load_rules(self) -> List[Rule]:
        """
        Load active rules, served from cache while it is fresh

        Returns:
            Rules ordered by priority; empty on rule source failure
        """
        now = time.monotonic()

        with self._cache_lock:
            cached = self._rule_cache
        if cached is not None and (now - cached[1]) < self.config.rule_cache_ttl_seconds:
            return list(cached[0])

        if self.rule_source is None:
            logger.warning("No rule source configured; nothing to evaluate")
            return []

        try:
            rules = self.rule_source.fetch_active_rules(
                self.config.organization_id,
                self.config.module_name,
                self.config.max_rules_per_batch
            )
        except Exception as e:
            logger.error(f"Error loading rules: {e}", exc_info=True)
            return []

        loaded = tuple(rules or ())
        with self._cache_lock:
            self._rule_cache = (loaded, now)

        if self.config.debug:
            logger.debug(
                f"Loaded {len(loaded)} active rules for organization "
                f"{self.config.organization_id} (module={self.config.module_name})"
            )

        return list(loaded)

    def clear_cache(self) -> None:
        """Force a rule reload on the next evaluation and drop cached 'in' sets"""
        with self._cache_lock:
            self._rule_cache = None
        self.comparator.set_cache.clear()

    # =========================================================================
    # EVALUATION
    # =========================================================================

    def evaluate(self, data: Any, context: ContextLike = None) -> List[EvaluationResult]:
        """
        Evaluate data against all active rules

        Args:
            data: Event payload
            context: Optional context overrides (entity_id, user_id, ...)

        Returns:
            One result per successfully evaluated rule
        """
        try:
            rules = self.load_rules()

            if not rules:
                if self.config.debug:
                    logger.debug("No active rules to evaluate")
                return []

            results = self.evaluate_with_rules(rules, data, context)

            if self.config.debug:
                triggered = sum(1 for r in results if r.triggered)
                logger.debug(
                    f"Rule evaluation complete: {len(rules)} evaluated, {triggered} triggered "
                    f"in {self._stats.evaluation_time_ms:.2f}ms"
                )

            return results

        except Exception as e:
            logger.error(f"Error during rule evaluation: {e}", exc_info=True)
            with self._stats_lock:
                self._stats.errors_encountered += 1
            return []

    def evaluate_with_rules(
        self,
        rules: Sequence[RuleLike],
        data: Any,
        context: ContextLike = None
    ) -> List[EvaluationResult]:
        """
        Evaluate data against the given rules, bypassing the rule source

        A rule that fails (malformed, too complex, evaluation error) is
        logged and counted but does not affect the others; it produces no
        result.

        Args:
            rules: Rule models or raw rule mappings
            data: Event payload
            context: Optional context overrides

        Returns:
            Evaluation results in rule order
        """
        start = time.perf_counter()
        results = []
        triggered_count = 0
        error_count = 0

        eval_context = self._build_context(data, context)

        for raw_rule in rules:
            rule_id = self._rule_id(raw_rule)
            try:
                rule = self._coerce_rule(raw_rule)
                result = self._evaluate_rule(rule, data, eval_context)
                results.append(result)

                if result.triggered:
                    triggered_count += 1
                    self._schedule_trigger_increment(rule.id)

            except Exception as e:
                logger.error(f"Error evaluating rule {rule_id}: {e}")
                error_count += 1

        elapsed_ms = (time.perf_counter() - start) * 1000

        with self._stats_lock:
            self._stats.total_rules_evaluated += len(rules)
            self._stats.rules_triggered += triggered_count
            self._stats.errors_encountered += error_count
            self._stats.evaluation_time_ms = elapsed_ms
            self._stats.last_evaluation_at = datetime.now(UTC)

        return results

    def _evaluate_rule(self, rule: Rule, data: Any, context: EvaluationContext) -> EvaluationResult:
        validate_complexity(
            rule.conditions,
            max_depth=self.config.max_depth,
            max_conditions=self.config.max_conditions_per_level
        )
        condition = parse_condition(rule.conditions)

        triggered = evaluate_condition(condition, data, self.comparator)

        result = EvaluationResult(
            rule_id=rule.id,
            rule_name=rule.rule_name,
            triggered=triggered,
            severity=rule.severity,
            alert_title=rule.rule_name,
            context=context
        )

        if not triggered:
            return result

        actions = rule.actions
        result.matched_condition = rule.conditions
        result.alert_title = interpolate_message(actions.title or rule.rule_name, data)
        result.message = interpolate_message(
            actions.message or f"Rule {rule.rule_name} triggered",
            data
        )
        result.actions = actions
        result.metadata = {
            'rule_name': rule.rule_name,
            'rule_type': rule.rule_type,
            'entity_id': self._entity_id(data),
            'link': actions.link
        }

        return result

    def _build_context(self, data: Any, context: ContextLike) -> EvaluationContext:
        """Merge caller context over the engine defaults"""
        values: Dict[str, Any] = {
            'organization_id': self.config.organization_id,
            'module_name': self.config.module_name,
        }

        if isinstance(context, EvaluationContext):
            values.update(context.model_dump(exclude_unset=True))
        elif isinstance(context, Mapping):
            values.update(context)

        payload = dict(data) if isinstance(data, Mapping) else {'value': data}
        values['data'] = payload
        try:
            return EvaluationContext.model_validate(values)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid evaluation context: {e}")
            return EvaluationContext.model_construct(
                organization_id=self.config.organization_id,
                module_name=self.config.module_name,
                data=payload
            )

    def _entity_id(self, data: Any) -> Optional[str]:
        if not isinstance(data, Mapping):
            return None
        for field in self.config.entity_id_fields:
            value = data.get(field)
            if value:
                return str(value)
        return None

    @staticmethod
    def _coerce_rule(rule: RuleLike) -> Rule:
        if isinstance(rule, Rule):
            return rule
        if isinstance(rule, Mapping):
            return Rule.model_validate(dict(rule))
        raise RuleEvaluationError(f"Unsupported rule type: {type(rule).__name__}")

    @staticmethod
    def _rule_id(rule: Any) -> Any:
        if isinstance(rule, Rule):
            return rule.id
        if isinstance(rule, Mapping):
            return rule.get('id')
        return None

    def _schedule_trigger_increment(self, rule_id: str) -> None:
        increment = getattr(self.rule_source, 'increment_trigger_count', None)
        if increment is None:
            return
        try:
            self._background.submit(self._increment_trigger_count, increment, rule_id)
        except RuntimeError as e:
            # executor already shut down by close()
            logger.warning(f"Skipping trigger count increment for rule {rule_id}: {e}")

    @staticmethod
    def _increment_trigger_count(increment, rule_id: str) -> None:
        try:
            increment(rule_id)
        except Exception as e:
            logger.error(f"Failed to increment trigger count for rule {rule_id}: {e}")

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def execute_actions(self, results: Sequence[EvaluationResult]) -> List[str]:
        """Execute actions for triggered results; returns created alert ids"""
        triggered = [r for r in results if r.triggered]
        if not triggered:
            return []
        return self.action_executor.execute_actions(triggered)

    def process_event(self, data: Any, context: ContextLike = None) -> List[EvaluationResult]:
        """Evaluate an event and act on the triggered rules"""
        results = self.evaluate(data, context)
        self.execute_actions(results)
        return results

    # =========================================================================
    # STATISTICS & LIFECYCLE
    # =========================================================================

    def get_stats(self) -> EngineStats:
        """Snapshot of the engine statistics"""
        with self._stats_lock:
            return replace(self._stats)

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._stats = EngineStats()

    def close(self, wait: bool = True) -> None:
        """Shut down background work (trigger counts, notifications)"""
        self._background.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
