"""Customer <-> platform customer mapping.

Email is the protected natural key and is compared case-insensitively.
Order aggregates (orders count, total spent, average order value) are
reported by the platform and travel back in meta_data on the way out.
"""

from typing import Any, Dict, Optional, Tuple

from catalog_sync.services.mappers import address_mapper
from catalog_sync.services.mappers.common import (
    format_datetime,
    format_number,
    get_field,
    is_blank,
    merge_external_ids,
    meta_entry,
    parse_datetime,
    parse_float,
    parse_int,
    platform_key,
    read_meta,
)
from catalog_sync.services.mappers.protected import MergeResult, casefold, protected_merge

PROTECTED_FIELDS = ("email",)


def split_full_name(full_name: Optional[str]) -> Tuple[str, str]:
    """'Ana María Pérez' -> ('Ana', 'María Pérez')."""
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _customer_address(
    customer: Any,
    block: str,
    default_country: str,
    first_name: str,
    last_name: str,
) -> Dict[str, Any]:
    """Address block with the customer's own name and location as fallback."""
    raw = dict(get_field(customer, block) or {})
    fallbacks = {
        "first_name": first_name,
        "last_name": last_name,
        "city": get_field(customer, "city"),
        "state": get_field(customer, "region"),
        "postcode": get_field(customer, "postal_code"),
        "country": get_field(customer, "country"),
        "email": get_field(customer, "email"),
        "phone": get_field(customer, "phone"),
    }
    for key, value in fallbacks.items():
        if not is_blank(value) and is_blank(address_mapper.pick_alias(raw, address_mapper.ADDRESS_ALIASES[key])):
            raw[key] = value
    if block == "billing":
        return address_mapper.to_billing(raw, default_country)
    return address_mapper.to_shipping(raw, default_country)


def to_external(
    customer: Any,
    platform: Any,
    default_country: str = address_mapper.DEFAULT_COUNTRY,
) -> Dict[str, Any]:
    """Build the customer payload for `platform`."""
    first_name = get_field(customer, "first_name") or ""
    last_name = get_field(customer, "last_name") or ""
    if first_name and not last_name and " " in first_name.strip():
        first_name, last_name = split_full_name(first_name)

    email = get_field(customer, "email")
    payload: Dict[str, Any] = {
        "email": str(email).strip() if email else "",
        "first_name": first_name,
        "last_name": last_name,
        "billing": _customer_address(customer, "billing", default_country, first_name, last_name),
        "shipping": _customer_address(customer, "shipping", default_country, first_name, last_name),
    }

    meta_data = []
    for field, meta_key in (("orders_count", "pedidos"), ("total_spent", "gasto_total"), ("average_order_value", "aov")):
        value = get_field(customer, field)
        if value is not None:
            meta_data.append(meta_entry(meta_key, format_number(value)))
    for field, meta_key in (("registered_at", "fecha_registro"), ("last_active_at", "ultima_actividad")):
        value = format_datetime(get_field(customer, field))
        if value:
            meta_data.append(meta_entry(meta_key, value))
    payload["meta_data"] = meta_data

    return payload


def to_canonical(
    external: Dict[str, Any],
    platform: Any,
    existing: Any = None,
) -> MergeResult:
    """Reverse-map a platform customer, protecting the canonical email."""
    billing = external.get("billing") or {}
    shipping = external.get("shipping") or {}
    meta_data = external.get("meta_data") or []

    payload: Dict[str, Any] = {}
    email = external.get("email") or billing.get("email")
    if not is_blank(email):
        payload["email"] = str(email).strip()

    first_name = external.get("first_name") or billing.get("first_name")
    last_name = external.get("last_name") or billing.get("last_name")
    if first_name:
        payload["first_name"] = first_name
    if last_name:
        payload["last_name"] = last_name

    phone = billing.get("phone")
    if phone:
        payload["phone"] = phone

    for canonical_key, external_key in (
        ("city", "city"),
        ("region", "state"),
        ("postal_code", "postcode"),
        ("country", "country"),
    ):
        value = billing.get(external_key) or shipping.get(external_key)
        if value:
            payload[canonical_key] = value

    billing_address = address_mapper.to_canonical_address(billing)
    if billing_address:
        payload["billing"] = billing_address
    shipping_address = address_mapper.to_canonical_address(shipping)
    if shipping_address:
        payload["shipping"] = shipping_address

    orders_count = parse_int(external.get("orders_count", read_meta(meta_data, "pedidos")))
    total_spent = parse_float(external.get("total_spent", read_meta(meta_data, "gasto_total")))
    if orders_count is not None:
        payload["orders_count"] = orders_count
    if total_spent is not None:
        payload["total_spent"] = total_spent
    if orders_count and total_spent is not None:
        payload["average_order_value"] = round(total_spent / orders_count, 2)

    registered_at = parse_datetime(external.get("date_created_gmt") or external.get("date_created"))
    if registered_at:
        payload["registered_at"] = registered_at
    last_active_at = parse_datetime(external.get("date_modified_gmt") or external.get("date_modified"))
    if last_active_at:
        payload["last_active_at"] = last_active_at

    if external.get("id") is not None:
        payload["external_ids"] = merge_external_ids(
            get_field(existing, "external_ids"), platform, external["id"]
        )
    payload["raw_external_snapshot"] = external

    return protected_merge(
        existing,
        payload,
        PROTECTED_FIELDS,
        comparators={"email": casefold},
        context=f"customer {external.get('id')} from {platform_key(platform)}",
    )
