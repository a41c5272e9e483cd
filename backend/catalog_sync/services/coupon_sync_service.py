"""Coupon sync to the platforms.

The coupon code is the natural key; discount types are normalized by the
mapper before sending.
"""

from typing import Any, Dict

from catalog_sync.models import EntityKindEnum
from catalog_sync.services import sync_runner
from catalog_sync.services.mappers import coupon_mapper
from catalog_sync.services.repository import CanonicalRepository
from catalog_sync.services.sync_context import SyncContext, SyncResult
from catalog_sync.services.woo_client import WooClient


async def sync_coupon(
    ctx: SyncContext,
    repo: CanonicalRepository,
    coupon: Any,
    platform: Any,
) -> SyncResult:
    async def build(current: Any, client: WooClient) -> Dict[str, Any]:
        return coupon_mapper.to_external(current, platform)

    return await sync_runner.run_sync(
        ctx,
        repo,
        EntityKindEnum.coupon,
        coupon,
        platform,
        build_payload=build,
        create=lambda client, payload: client.create_coupon(payload),
        update=lambda client, external_id, payload: client.update_coupon(external_id, payload),
    )


async def delete_coupon(ctx: SyncContext, coupon: Any, platform: Any) -> bool:
    return await sync_runner.run_delete(
        ctx,
        EntityKindEnum.coupon,
        coupon,
        platform,
        delete=lambda client, external_id: client.delete_coupon(external_id),
    )
