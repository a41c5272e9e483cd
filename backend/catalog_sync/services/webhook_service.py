"""Webhook payload handling.

WHAT:
    - is_ping(): platform "ping" deliveries sent when a webhook is created
    - extract_entity(): pull the entity object out of the payload shapes the
      platforms and intermediate relays send, trying an ordered list of
      extractors; the first result carrying an "id" wins
    - ingest(): upsert the extracted entity (no outbound sync)

WHY:
    Webhook bodies arrive in several envelopes depending on plugin version
    and relay. Keeping the extractors as an ordered list makes adding a
    shape a one-line change, and keeps the router free of payload logic.

REFERENCES:
    - catalog_sync/routers/webhooks.py
    - catalog_sync/services/inbound_service.py
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from catalog_sync.models import EntityKindEnum
from catalog_sync.services.inbound_service import UpsertResult, upsert_from_platform
from catalog_sync.services.mappers.common import platform_key
from catalog_sync.services.repository import CanonicalRepository
from catalog_sync.telemetry import capture_message

logger = logging.getLogger(__name__)

WEBHOOK_KINDS = (
    EntityKindEnum.product,
    EntityKindEnum.customer,
    EntityKindEnum.coupon,
    EntityKindEnum.order,
)

Extractor = Callable[[Any, str], Optional[Any]]


def is_ping(body: Any) -> bool:
    """Ping: webhook_id present, neither id nor data."""
    return (
        isinstance(body, dict)
        and "webhook_id" in body
        and "id" not in body
        and "data" not in body
    )


# =============================================================================
# EXTRACTORS (order matters)
# =============================================================================

def _from_array(body: Any, kind: str) -> Optional[Any]:
    if isinstance(body, list) and body:
        first = body[0]
        if isinstance(first, dict) and isinstance(first.get("data"), dict):
            return first["data"]
        return first
    return None


def _from_top_level(body: Any, kind: str) -> Optional[Any]:
    if isinstance(body, dict) and "id" in body:
        return body
    return None


def _from_data_object(body: Any, kind: str) -> Optional[Any]:
    if isinstance(body, dict) and isinstance(body.get("data"), dict) and "id" in body["data"]:
        return body["data"]
    return None


def _from_data_array(body: Any, kind: str) -> Optional[Any]:
    if isinstance(body, dict) and isinstance(body.get("data"), list) and body["data"]:
        return body["data"][0]
    return None


def _from_kind_key(body: Any, kind: str) -> Optional[Any]:
    if isinstance(body, dict) and isinstance(body.get(kind), dict) and "id" in body[kind]:
        return body[kind]
    return None


def _from_action_envelope(body: Any, kind: str) -> Optional[Any]:
    if isinstance(body, dict) and "action" in body and isinstance(body.get("data"), dict):
        return body["data"]
    return None


EXTRACTORS: List[Extractor] = [
    _from_array,
    _from_top_level,
    _from_data_object,
    _from_data_array,
    _from_kind_key,
    _from_action_envelope,
]


def extract_entity(body: Any, kind: str) -> Optional[Dict[str, Any]]:
    """The entity object inside a webhook body, or None when no shape matches."""
    for extractor in EXTRACTORS:
        candidate = extractor(body, kind)
        if isinstance(candidate, dict) and candidate.get("id") is not None:
            return candidate
    return None


def describe_shape(body: Any) -> str:
    """Short description of an unrecognized body for the 400 response."""
    if isinstance(body, dict):
        return f"object with keys: {', '.join(sorted(str(key) for key in body.keys())[:10])}"
    if isinstance(body, list):
        return f"array of {len(body)} elements"
    return type(body).__name__


def ingest(
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    platform: Any,
    entity: Dict[str, Any],
) -> UpsertResult:
    """Upsert one webhook entity into the canonical store.

    Linked customers and line-item links are written in the same
    transaction as the entity, so a failure leaves nothing behind.
    """
    with repo.atomic():
        result = upsert_from_platform(repo, kind, platform, entity)
    for conflict in result.conflicts:
        logger.warning(f"[WEBHOOK] {kind.value} {entity.get('id')}: {conflict}")
        capture_message(
            f"Protected field conflict on {kind.value} webhook",
            level="warning",
            extra={"platform": platform_key(platform), "external_id": entity.get("id"), "conflict": conflict},
        )
    return result
