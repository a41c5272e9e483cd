"""Entity mappers between canonical records and platform payloads.

Each kind module exposes to_external(entity, platform, ...) and
to_canonical(external, platform, existing) -> MergeResult. All reverse
mappers share protected_merge() for their natural keys.
"""

from catalog_sync.services.mappers import (
    address_mapper,
    coupon_mapper,
    customer_mapper,
    line_item_mapper,
    order_mapper,
    product_mapper,
)
from catalog_sync.services.mappers.coupon_mapper import normalize_discount_type
from catalog_sync.services.mappers.order_mapper import normalize_order_status
from catalog_sync.services.mappers.product_mapper import find_active_price
from catalog_sync.services.mappers.protected import MergeResult, protected_merge

__all__ = [
    "address_mapper",
    "coupon_mapper",
    "customer_mapper",
    "line_item_mapper",
    "order_mapper",
    "product_mapper",
    "normalize_discount_type",
    "normalize_order_status",
    "find_active_price",
    "MergeResult",
    "protected_merge",
]
