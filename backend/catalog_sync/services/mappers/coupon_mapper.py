"""Coupon <-> platform coupon mapping.

The coupon code is the protected natural key. Platforms store codes
lowercased, so codes compare case-insensitively.
"""

from typing import Any, Dict

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
)
from catalog_sync.services.mappers.protected import MergeResult, casefold, protected_merge

PROTECTED_FIELDS = ("code",)

DISCOUNT_TYPE_ALIASES = {
    "percent": "percent",
    "porcentaje": "percent",
    "percentage": "percent",
    "fixed_product": "fixed_product",
    "producto_fijo": "fixed_product",
    "producto": "fixed_product",
}
DEFAULT_DISCOUNT_TYPE = "fixed_cart"


def normalize_discount_type(value: Any) -> str:
    """Map any discount type spelling to percent, fixed_product or fixed_cart."""
    if value is None:
        return DEFAULT_DISCOUNT_TYPE
    return DISCOUNT_TYPE_ALIASES.get(str(value).strip().lower(), DEFAULT_DISCOUNT_TYPE)


def to_external(coupon: Any, platform: Any) -> Dict[str, Any]:
    """Build the coupon payload for `platform`."""
    code = get_field(coupon, "code")
    payload: Dict[str, Any] = {
        "code": str(code).strip() if code else "",
        "discount_type": normalize_discount_type(get_field(coupon, "discount_type")),
        "amount": format_number(get_field(coupon, "amount")) or "0",
    }

    description = get_field(coupon, "description")
    if description:
        payload["description"] = description

    product_ids = [
        parse_int(value) for value in get_field(coupon, "product_ids") or []
        if parse_int(value)
    ]
    if product_ids:
        payload["product_ids"] = product_ids

    usage_limit = parse_int(get_field(coupon, "usage_limit"))
    if usage_limit is not None:
        payload["usage_limit"] = usage_limit

    expires_at = format_datetime(get_field(coupon, "expires_at"))
    if expires_at:
        payload["date_expires"] = expires_at

    meta_data = []
    if not is_blank(code):
        meta_data.append(meta_entry("codigo_cupon", code))
    meta_data.append(meta_entry("origin_platform", platform_key(platform)))
    payload["meta_data"] = meta_data

    return payload


def to_canonical(
    external: Dict[str, Any],
    platform: Any,
    existing: Any = None,
) -> MergeResult:
    """Reverse-map a platform coupon, protecting the canonical code."""
    payload: Dict[str, Any] = {}

    if not is_blank(external.get("code")):
        payload["code"] = str(external["code"]).strip()
    if external.get("discount_type"):
        payload["discount_type"] = normalize_discount_type(external["discount_type"])
    if external.get("amount") is not None:
        payload["amount"] = parse_float(external.get("amount"))
    if "description" in external:
        payload["description"] = external.get("description") or None
    if external.get("product_ids") is not None:
        payload["product_ids"] = [int(value) for value in external.get("product_ids") or []]
    if "usage_limit" in external:
        payload["usage_limit"] = parse_int(external.get("usage_limit"))
    if "date_expires" in external:
        payload["expires_at"] = parse_datetime(external.get("date_expires_gmt") or external.get("date_expires"))

    if external.get("id") is not None:
        payload["external_ids"] = merge_external_ids(
            get_field(existing, "external_ids"), platform, external["id"]
        )
    payload["raw_external_snapshot"] = external

    return protected_merge(
        existing,
        payload,
        PROTECTED_FIELDS,
        comparators={"code": casefold},
        context=f"coupon {external.get('id')} from {platform_key(platform)}",
    )
