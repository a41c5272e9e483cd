"""Order <-> platform order mapping.

The order number is the protected natural key. Statuses are normalized
through a finite table so free-text values typed by editors never reach the
platform.
"""

from typing import Any, Dict, List, Optional

from catalog_sync.services.mappers import address_mapper, line_item_mapper
from catalog_sync.services.mappers.common import (
    format_datetime,
    format_number,
    get_field,
    is_blank,
    merge_external_ids,
    meta_entry,
    parse_datetime,
    parse_float,
    platform_key,
)
from catalog_sync.services.mappers.protected import MergeResult, protected_merge

PROTECTED_FIELDS = ("number",)

VALID_ORDER_STATUSES = frozenset({
    "auto-draft",
    "pending",
    "processing",
    "on-hold",
    "completed",
    "cancelled",
    "refunded",
    "failed",
    "checkout-draft",
})

ORDER_STATUS_ALIASES = {
    "draft": "auto-draft",
    "canceled": "cancelled",
    "cancel": "cancelled",
    "refund": "refunded",
    "error": "failed",
}

DEFAULT_ORDER_STATUS = "pending"
DEFAULT_ORIGIN = "web"

# Canonical total field -> platform field
TOTAL_FIELDS = (
    ("total", "total"),
    ("discount_total", "discount_total"),
    ("shipping_total", "shipping_total"),
    ("tax_total", "total_tax"),
)


def normalize_order_status(value: Any) -> str:
    """Map any status spelling to a platform order status.

    Case-insensitive; unknown, empty or None values become "pending".
    """
    if value is None:
        return DEFAULT_ORDER_STATUS
    status = str(value).strip().lower()
    if status in VALID_ORDER_STATUSES:
        return status
    return ORDER_STATUS_ALIASES.get(status, DEFAULT_ORDER_STATUS)


def to_external(
    order: Any,
    platform: Any,
    line_items: Optional[List[Dict[str, Any]]] = None,
    customer_external_id: Optional[int] = None,
    default_country: str = address_mapper.DEFAULT_COUNTRY,
) -> Dict[str, Any]:
    """Build the order payload for `platform`.

    Args:
        order: Canonical order
        platform: Target platform
        line_items: Already-resolved platform line items
        customer_external_id: Verified platform customer id, if any
        default_country: Country used when an address has none

    Returns:
        WooCommerce order payload
    """
    payload: Dict[str, Any] = {
        "status": normalize_order_status(get_field(order, "status")),
        "created_via": get_field(order, "origin") or DEFAULT_ORIGIN,
        "line_items": list(line_items or []),
    }

    number = get_field(order, "number")
    if not is_blank(number):
        payload["number"] = str(number)

    for key in ("currency", "payment_method", "payment_method_title", "customer_note"):
        value = get_field(order, key)
        if not is_blank(value):
            payload[key] = value

    for canonical_key, external_key in TOTAL_FIELDS:
        value = format_number(get_field(order, canonical_key))
        if value is not None:
            payload[external_key] = value
    if "total" not in payload:
        payload["total"] = "0"

    placed_at = format_datetime(get_field(order, "placed_at"))
    if placed_at:
        payload["date_created"] = placed_at

    billing = get_field(order, "billing")
    if billing:
        payload["billing"] = address_mapper.to_billing(billing, default_country)
    shipping = get_field(order, "shipping")
    if shipping:
        payload["shipping"] = address_mapper.to_shipping(shipping, default_country)

    if customer_external_id:
        payload["customer_id"] = int(customer_external_id)

    meta_data = []
    if not is_blank(number):
        meta_data.append(meta_entry("numero_pedido", number))
    origin_platform = get_field(order, "origin_platform")
    if origin_platform:
        meta_data.append(meta_entry("origin_platform", platform_key(origin_platform)))
    payload["meta_data"] = meta_data

    return payload


def to_canonical(
    external: Dict[str, Any],
    platform: Any,
    existing: Any = None,
) -> MergeResult:
    """Reverse-map a platform order, protecting the canonical order number.

    Line items come back under "items" as plain dicts; linking them to
    canonical products is the caller's job.
    """
    number = external.get("number") or external.get("id")
    payload: Dict[str, Any] = {
        "status": normalize_order_status(external.get("status")),
        "origin": external.get("created_via") or DEFAULT_ORIGIN,
        "origin_platform": platform_key(platform),
    }
    if not is_blank(number):
        payload["number"] = str(number)

    for key in ("currency", "payment_method", "payment_method_title"):
        if external.get(key):
            payload[key] = external[key]
    if "customer_note" in external:
        payload["customer_note"] = external.get("customer_note") or None

    for canonical_key, external_key in TOTAL_FIELDS:
        if external.get(external_key) is not None:
            payload[canonical_key] = parse_float(external.get(external_key))

    items = [line_item_mapper.to_canonical(item) for item in external.get("line_items") or []]
    if items:
        payload["items"] = items
        payload["subtotal"] = sum(
            parse_float(item.get("subtotal")) or parse_float(item.get("total")) or 0.0
            for item in external.get("line_items") or []
        )

    placed_at = parse_datetime(external.get("date_created_gmt") or external.get("date_created"))
    if placed_at:
        payload["placed_at"] = placed_at

    billing = address_mapper.to_canonical_address(external.get("billing"))
    if billing:
        payload["billing"] = billing
    shipping = address_mapper.to_canonical_address(external.get("shipping"))
    if shipping:
        payload["shipping"] = shipping

    if external.get("id") is not None:
        payload["external_ids"] = merge_external_ids(
            get_field(existing, "external_ids"), platform, external["id"]
        )
    payload["raw_external_snapshot"] = external

    return protected_merge(
        existing,
        payload,
        PROTECTED_FIELDS,
        context=f"order {external.get('id')} from {platform_key(platform)}",
    )
