"""
Context enrichment for event payloads

Event sources may derive extra fields before evaluation, e.g. a kitchen
module combining open order counts into a single `weighted_load`:

    enricher = ContextEnricher()
    enricher.register('kitchen', weighted_sum('weighted_load', {
        'pending_orders': 1.0,
        'in_progress_orders': 1.5,
    }))
    data = enricher.enrich('kitchen', event_data)
"""
import logging
from typing import Any, Callable, Dict, List, Mapping

from alert_engine.operators import to_number

logger = logging.getLogger(__name__)

Enricher = Callable[[Dict[str, Any]], Mapping[str, Any]]

ALL_MODULES = '*'


class ContextEnricher:
    """Registry of per-module enrichers"""

    def __init__(self):
        self._enrichers: Dict[str, List[Enricher]] = {}

    def register(self, module_name: str, enricher: Enricher) -> None:
        """
        Register an enricher for a module

        Args:
            module_name: Module whose events it applies to, or '*' for all
            enricher: Callable taking the payload and returning fields to add
        """
        self._enrichers.setdefault(module_name, []).append(enricher)
        logger.info(f"Registered enricher for module: {module_name}")

    def enrich(self, module_name: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Return a copy of data with derived fields merged in.

        A failing enricher is logged and skipped; the caller's payload is
        never modified.
        """
        enriched = dict(data)

        for enricher in self._enrichers.get(ALL_MODULES, []) + self._enrichers.get(module_name, []):
            try:
                derived = enricher(dict(enriched))
            except Exception as e:
                logger.error(f"Enricher failed for module {module_name}: {e}", exc_info=True)
                continue
            if derived:
                enriched.update(derived)

        return enriched


def weighted_sum(target_field: str, weights: Mapping[str, float]) -> Enricher:
    """
    Build an enricher computing sum(data[field] * weight).

    Missing or non-numeric fields contribute nothing. If none of the fields
    is numeric the target field is left unset.
    """
    def enricher(data: Dict[str, Any]) -> Dict[str, Any]:
        total = 0.0
        seen = False
        for field, weight in weights.items():
            value = to_number(data.get(field))
            if value is None:
                continue
            total += value * weight
            seen = True
        return {target_field: total} if seen else {}

    return enricher
