"""Order line item mapping.

Resolving which platform product a line points at needs the repository and
the network, so it lives in the order orchestrator. This module only shapes
a line once its platform product id is known, and reads lines back.
"""

from typing import Any, Dict, Optional

from catalog_sync.services.mappers.common import (
    format_number,
    get_field,
    is_blank,
    parse_float,
    parse_int,
)


def explicit_product_id(item: Any) -> Optional[int]:
    """Platform product id set directly on the line, when it is a positive int."""
    value = parse_int(get_field(item, "external_product_id"))
    return value if value and value > 0 else None


def item_sku(item: Any) -> Optional[str]:
    """SKU on the line, falling back to the related product's isbn."""
    sku = get_field(item, "sku")
    if is_blank(sku):
        sku = get_field(get_field(item, "product"), "isbn")
    return None if is_blank(sku) else str(sku).strip()


def to_external(item: Any, product_id: int) -> Dict[str, Any]:
    """Platform line item for a resolved product id."""
    quantity = parse_int(get_field(item, "quantity")) or 1
    line: Dict[str, Any] = {
        "product_id": int(product_id),
        "quantity": quantity,
    }

    name = get_field(item, "name") or get_field(get_field(item, "product"), "name")
    if name:
        line["name"] = name
    sku = item_sku(item)
    if sku:
        line["sku"] = sku

    unit_price = format_number(get_field(item, "unit_price"))
    if unit_price is not None:
        line["price"] = unit_price
    total = get_field(item, "total")
    if total is None and get_field(item, "unit_price") is not None:
        total = parse_float(get_field(item, "unit_price")) * quantity
    if format_number(total) is not None:
        line["subtotal"] = format_number(total)
        line["total"] = format_number(total)
    return line


def to_canonical(external_item: Dict[str, Any]) -> Dict[str, Any]:
    """Platform line item -> canonical line fields (no product link yet)."""
    quantity = parse_int(external_item.get("quantity")) or 1
    product_id = external_item.get("product_id")
    unit_price = parse_float(external_item.get("price"))
    if unit_price is None and parse_float(external_item.get("total")) is not None:
        unit_price = parse_float(external_item.get("total")) / quantity

    return {
        "external_item_id": None if external_item.get("id") is None else str(external_item["id"]),
        "external_product_id": str(product_id) if product_id else None,
        "sku": external_item.get("sku") or None,
        "name": external_item.get("name") or None,
        "quantity": quantity,
        "unit_price": unit_price,
        "total": parse_float(external_item.get("total")),
    }
