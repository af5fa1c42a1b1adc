"""
Field extraction for event payloads

Resolves dotted paths ("order.customer.name") against nested mappings.
"""
from collections.abc import Mapping
from typing import Any


class _Missing:
    """Sentinel for a field that is absent from the payload (distinct from None)."""

    __slots__ = ()

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def extract_field_value(data: Any, field: str) -> Any:
    """
    Extract a value from a payload using dot notation.

    Only mappings are traversed. Numeric segments are plain keys, so lists
    are never indexed.

    Args:
        data: Event payload
        field: Dotted path, e.g. 'user.name'

    Returns:
        The value, or MISSING if any segment is absent or not traversable

    Example:
        extract_field_value({'user': {'name': 'John'}}, 'user.name')  # 'John'
    """
    if not isinstance(field, str) or not field:
        return MISSING

    value = data
    for part in field.split('.'):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return MISSING

    return value


def is_missing(value: Any) -> bool:
    """True for MISSING and None, the two values no comparison can match."""
    return value is MISSING or value is None
