"""Protected-field merge policy.

WHAT:
    One function every reverse mapper runs its payload through. For each
    protected field the inbound value is applied only when the canonical
    store has no value yet. Mismatches keep the canonical value and are
    reported as MappingConflict records.

WHY:
    Natural keys (ISBN, order number, email, coupon code) identify entities
    across systems. An inbound payload must never rewrite them, and a
    mismatch is worth a warning, not an exception.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from catalog_sync.services.mappers.common import get_field, is_blank
from catalog_sync.services.sync_errors import MappingConflict

logger = logging.getLogger(__name__)


def _identity(value: Any) -> Any:
    return str(value).strip()


def casefold(value: Any) -> Any:
    return str(value).strip().lower()


@dataclass
class MergeResult:
    """Reverse-mapped payload plus the conflicts found while producing it."""

    payload: Dict[str, Any]
    conflicts: List[MappingConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def protected_merge(
    existing: Any,
    incoming: Dict[str, Any],
    protected_keys: Iterable[str],
    comparators: Optional[Mapping[str, Callable[[Any], Any]]] = None,
    context: str = "",
) -> MergeResult:
    """Apply the protected-field policy to an inbound payload.

    Args:
        existing: Current canonical entity (ORM instance, dict or None)
        incoming: Partial canonical payload built from the platform object
        protected_keys: Field names that are never overwritten once set
        comparators: Optional per-field normalizer used to decide equality
            (e.g. casefold for emails)
        context: Label for log lines ("product", "order 123", ...)

    Returns:
        MergeResult whose payload omits protected fields that must not change
    """
    comparators = comparators or {}
    payload = dict(incoming)
    conflicts: List[MappingConflict] = []

    for key in protected_keys:
        if key not in payload:
            continue

        incoming_value = payload[key]
        current_value = get_field(existing, key)

        if is_blank(current_value):
            if is_blank(incoming_value):
                payload.pop(key)
            continue

        # Canonical already holds a value: the inbound one is never applied
        payload.pop(key)
        if is_blank(incoming_value):
            continue

        normalize = comparators.get(key, _identity)
        if normalize(current_value) != normalize(incoming_value):
            conflict = MappingConflict(key, current_value, incoming_value)
            conflicts.append(conflict)
            logger.warning(f"[PROTECTED_MERGE] {context or 'entity'}: {conflict}")

    return MergeResult(payload=payload, conflicts=conflicts)
