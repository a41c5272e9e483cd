"""Order sync to the platforms.

WHAT:
    sync_order() pushes a canonical order to one platform. Every line item
    must point at a product the platform knows, resolved in this order:

    (a) explicit external_product_id on the line
    (b) the related product's external id on the platform; when it has none
        and the product is channeled to the platform, sync the product once
        and retry (cascade depth 1)
    (c) SKU: canonical product by isbn, then the platform's own SKU lookup

    Unresolvable lines are dropped with a warning. An order left with no
    lines is rejected before any create/update call.

WHY:
    A platform order with product_id 0 is accepted but useless: stock,
    reports and emails all break. Rejecting is safer than sending it.

REFERENCES:
    - catalog_sync/services/sync_runner.py
    - catalog_sync/services/mappers/order_mapper.py
    - catalog_sync/services/mappers/line_item_mapper.py
"""

import logging
from typing import Any, Dict, List, Optional

from catalog_sync.models import EntityKindEnum
from catalog_sync.services import sync_runner
from catalog_sync.services.mappers import line_item_mapper, order_mapper
from catalog_sync.services.mappers.common import external_id_for, get_field, parse_int, platform_key
from catalog_sync.services.product_sync_service import sync_product
from catalog_sync.services.repository import CanonicalRepository
from catalog_sync.services.sync_context import SyncContext, SyncResult
from catalog_sync.services.sync_errors import CascadeDepthExceeded, SyncError, ValidationError
from catalog_sync.services.woo_client import WooClient

logger = logging.getLogger(__name__)

MAX_CASCADE_DEPTH = 1


def is_channeled(entity: Any, platform: Any) -> bool:
    return platform_key(platform) in [platform_key(p) for p in get_field(entity, "channels") or []]


async def resolve_line_item(
    ctx: SyncContext,
    repo: CanonicalRepository,
    client: WooClient,
    item: Any,
    platform: Any,
    cascade_depth: int = 0,
) -> Optional[int]:
    """Platform product id for one canonical line item, or None.

    Raises:
        CascadeDepthExceeded: The product still had no platform id after
            the one allowed cascade
    """
    explicit = line_item_mapper.explicit_product_id(item)
    if explicit:
        return explicit

    product = get_field(item, "product")
    if product is not None:
        product_external_id = parse_int(external_id_for(product, platform))
        if product_external_id:
            return product_external_id

        if is_channeled(product, platform):
            if cascade_depth >= MAX_CASCADE_DEPTH:
                raise CascadeDepthExceeded(
                    f"Product {product.id} still unresolved on {platform_key(platform)} "
                    f"after cascade depth {cascade_depth}",
                    depth=cascade_depth + 1,
                )
            try:
                await sync_product(ctx, repo, product, platform)
            except SyncError as e:
                logger.warning(f"[ORDER_SYNC] Cascade sync of product {product.id} failed: {e}")
            else:
                refreshed = repo.get(EntityKindEnum.product, product.id) or product
                return await resolve_line_item(
                    ctx,
                    repo,
                    client,
                    {"product": refreshed, "sku": get_field(item, "sku")},
                    platform,
                    cascade_depth=cascade_depth + 1,
                )

    sku = line_item_mapper.item_sku(item)
    if not sku:
        return None

    canonical = repo.find_by_natural_key(EntityKindEnum.product, sku)
    canonical_external_id = parse_int(external_id_for(canonical, platform)) if canonical else None
    if canonical_external_id:
        return canonical_external_id

    remote = await client.find_product_by_sku(sku)
    if remote and parse_int(remote.get("id")):
        if canonical is not None:
            # Adopt the platform's product so later syncs update it
            repo.set_external_id(EntityKindEnum.product, canonical.id, platform, remote["id"])
        return parse_int(remote["id"])
    return None


async def resolve_customer_id(client: WooClient, order: Any, platform: Any) -> Optional[int]:
    """Platform customer id, only when the platform confirms it exists."""
    customer = get_field(order, "customer")
    customer_external_id = parse_int(external_id_for(customer, platform)) if customer is not None else None
    if not customer_external_id:
        return None
    if await client.customer_exists(customer_external_id):
        return customer_external_id
    logger.warning(
        f"[ORDER_SYNC] Customer {customer_external_id} missing on {platform_key(platform)}; "
        f"sending order {get_field(order, 'number')} as guest"
    )
    return None


async def build_order_payload(
    ctx: SyncContext,
    repo: CanonicalRepository,
    client: WooClient,
    order: Any,
    platform: Any,
) -> Dict[str, Any]:
    """Resolve lines and customer, then map.

    Raises:
        ValidationError: No line item could be resolved
    """
    line_items: List[Dict[str, Any]] = []
    for item in get_field(order, "items") or []:
        product_id = await resolve_line_item(ctx, repo, client, item, platform)
        if product_id is None:
            logger.warning(
                f"[ORDER_SYNC] Dropping line '{get_field(item, 'name') or get_field(item, 'sku')}' "
                f"of order {get_field(order, 'number')}: no product on {platform_key(platform)}"
            )
            continue
        line_items.append(line_item_mapper.to_external(item, product_id))

    if not line_items:
        raise ValidationError(
            f"Order {get_field(order, 'number')} has no line items resolvable on {platform_key(platform)}",
            kind=EntityKindEnum.order.value,
            entity_id=str(get_field(order, "id")),
        )

    customer_id = await resolve_customer_id(client, order, platform)
    return order_mapper.to_external(
        order,
        platform,
        line_items=line_items,
        customer_external_id=customer_id,
        default_country=ctx.default_country,
    )


async def sync_order(
    ctx: SyncContext,
    repo: CanonicalRepository,
    order: Any,
    platform: Any,
) -> SyncResult:
    """Create or update the order on `platform`.

    Raises:
        ConfigurationError: Platform disabled
        ValidationError: No order number, or no resolvable line items
        CascadeDepthExceeded: Product cascade did not converge
        RemoteApiError: Platform call failed
    """
    async def build(current: Any, client: WooClient) -> Dict[str, Any]:
        return await build_order_payload(ctx, repo, client, current, platform)

    return await sync_runner.run_sync(
        ctx,
        repo,
        EntityKindEnum.order,
        order,
        platform,
        build_payload=build,
        create=lambda client, payload: client.create_order(payload),
        update=lambda client, external_id, payload: client.update_order(external_id, payload),
    )


async def delete_order(ctx: SyncContext, order: Any, platform: Any) -> bool:
    return await sync_runner.run_delete(
        ctx,
        EntityKindEnum.order,
        order,
        platform,
        delete=lambda client, external_id: client.delete_order(external_id),
    )
