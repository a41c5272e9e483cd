"""Canonical upsert of platform objects.

WHAT:
    Shared by webhook ingestion and bulk import:
    - find_match(): existing canonical entity by external id, then natural key
    - upsert_from_platform(): reverse map with the protected-field policy,
      then create or update, merging the external id

    Orders additionally link their line items to canonical products and
    link (or create) their customer.

WHY:
    Webhook and import must agree on identity resolution, otherwise an
    entity imported once and then updated by webhook would be duplicated.
    Nothing here triggers outbound sync; platform-originated writes are
    never echoed back.

REFERENCES:
    - catalog_sync/services/webhook_service.py
    - catalog_sync/services/import_service.py
    - catalog_sync/services/mappers/protected.py
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from catalog_sync.models import EntityKindEnum
from catalog_sync.services.mappers import (
    address_mapper,
    coupon_mapper,
    customer_mapper,
    order_mapper,
    product_mapper,
)
from catalog_sync.services.mappers.common import (
    external_id_for,
    is_blank,
    parse_int,
    platform_key,
    read_meta,
)
from catalog_sync.services.mappers.protected import MergeResult
from catalog_sync.services.platform_config import parse_platform
from catalog_sync.services.repository import NATURAL_KEYS, CanonicalRepository
from catalog_sync.services.sync_errors import ValidationError

logger = logging.getLogger(__name__)

REVERSE_MAPPERS: Dict[EntityKindEnum, Callable[..., MergeResult]] = {
    EntityKindEnum.product: product_mapper.to_canonical,
    EntityKindEnum.order: order_mapper.to_canonical,
    EntityKindEnum.customer: customer_mapper.to_canonical,
    EntityKindEnum.coupon: coupon_mapper.to_canonical,
}


@dataclass
class UpsertResult:
    """What one inbound object did to the canonical store."""

    action: str  # created | updated
    kind: str
    entity_id: str
    external_id: Optional[str]
    conflicts: List[str] = field(default_factory=list)


def with_customer_email(external: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a customer payload with a top-level email when one can be found.

    Fallback order: email, billing.email, "email" meta entry, user_email.
    """
    if not is_blank(external.get("email")):
        return external
    candidates = (
        (external.get("billing") or {}).get("email"),
        read_meta(external.get("meta_data"), "email"),
        external.get("user_email"),
    )
    email = next((value for value in candidates if not is_blank(value)), None)
    if email is None:
        return external
    return {**external, "email": str(email).strip()}


def _prepare(kind: EntityKindEnum, external: Dict[str, Any]) -> Dict[str, Any]:
    if kind == EntityKindEnum.customer:
        return with_customer_email(external)
    return external


def natural_key_of(kind: EntityKindEnum, external: Dict[str, Any], platform: Any) -> Optional[str]:
    """Natural key as the reverse mapper would store it."""
    field_name, _ = NATURAL_KEYS[kind]
    value = REVERSE_MAPPERS[kind](_prepare(kind, external), platform).payload.get(field_name)
    return None if is_blank(value) else str(value)


def find_match(
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    platform: Any,
    external: Dict[str, Any],
) -> Optional[Any]:
    """Existing canonical entity for a platform object, or None."""
    kind = EntityKindEnum(kind)
    return repo.find_existing(
        kind,
        platform,
        external.get("id"),
        natural_key_of(kind, external, platform),
    )


# =============================================================================
# ORDER LINKING
# =============================================================================

def _link_line_items(repo: CanonicalRepository, platform: Any, items: List[Dict[str, Any]]) -> None:
    for item in items:
        product = repo.find_by_external_id(EntityKindEnum.product, platform, item.get("external_product_id"))
        if product is None and item.get("sku"):
            product = repo.find_by_natural_key(EntityKindEnum.product, item["sku"])
        if product is not None:
            item["product_id"] = product.id


def _link_customer(repo: CanonicalRepository, platform: Any, external: Dict[str, Any]) -> Optional[Any]:
    """Canonical customer for an order, created from billing when unknown."""
    billing = external.get("billing") or {}
    customer_external_id = parse_int(external.get("customer_id"))
    email = billing.get("email")

    customer = None
    if customer_external_id:
        customer = repo.find_by_external_id(EntityKindEnum.customer, platform, customer_external_id)
    if customer is None and not is_blank(email):
        customer = repo.find_by_natural_key(EntityKindEnum.customer, email)

    if customer is None:
        if is_blank(email):
            return None
        data: Dict[str, Any] = {
            "email": str(email).strip(),
            "first_name": billing.get("first_name") or None,
            "last_name": billing.get("last_name") or None,
            "phone": billing.get("phone") or None,
            "city": billing.get("city") or None,
            "region": billing.get("state") or None,
            "postal_code": billing.get("postcode") or None,
            "country": billing.get("country") or None,
            "billing": address_mapper.to_canonical_address(billing),
            "channels": [platform_key(platform)],
        }
        if customer_external_id:
            data["external_ids"] = {platform_key(platform): str(customer_external_id)}
        customer = repo.create(EntityKindEnum.customer, data)
        logger.info(f"[INBOUND] Created customer {customer.id} ({email}) from order billing")
        return customer

    if customer_external_id and not external_id_for(customer, platform):
        customer = repo.set_external_id(EntityKindEnum.customer, customer.id, platform, customer_external_id)
    return customer


# =============================================================================
# UPSERT
# =============================================================================

def upsert_from_platform(
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    platform: Any,
    external: Dict[str, Any],
    existing: Any = None,
) -> UpsertResult:
    """Create or update the canonical entity for one platform object.

    Args:
        repo: Canonical repository
        kind: Entity kind
        platform: Source platform
        external: Platform object (must carry an id)
        existing: Already matched canonical entity; looked up when None

    Raises:
        ValidationError: Object has no id, or a new book has neither name nor sku
    """
    kind = EntityKindEnum(kind)
    platform = parse_platform(platform)
    if external.get("id") is None:
        raise ValidationError(f"{kind.value} payload has no id", kind=kind.value)

    external = _prepare(kind, external)
    if existing is None:
        existing = find_match(repo, kind, platform, external)

    result = REVERSE_MAPPERS[kind](external, platform, existing)
    payload = result.payload

    if kind == EntityKindEnum.order:
        _link_line_items(repo, platform, payload.get("items") or [])
        customer = _link_customer(repo, platform, external)
        if customer is not None:
            payload["customer_id"] = customer.id

    if existing is not None:
        entity = repo.update(kind, existing.id, payload)
        action = "updated"
    else:
        if kind == EntityKindEnum.product and is_blank(payload.get("name")):
            if is_blank(payload.get("isbn")):
                raise ValidationError("product payload has neither name nor sku", kind=kind.value)
            payload["name"] = payload["isbn"]
        payload["channels"] = [platform.value]
        entity = repo.create(kind, payload)
        action = "created"

    logger.info(
        f"[INBOUND] {action} {kind.value} {entity.id} from {platform.value} (id={external['id']})"
    )
    return UpsertResult(
        action=action,
        kind=kind.value,
        entity_id=str(entity.id),
        external_id=str(external["id"]),
        conflicts=[str(conflict) for conflict in result.conflicts],
    )
