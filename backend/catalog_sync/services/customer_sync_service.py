"""Customer sync to the platforms.

Customers need an email (their natural key) before anything is sent.
"""

from typing import Any, Dict

from catalog_sync.models import EntityKindEnum
from catalog_sync.services import sync_runner
from catalog_sync.services.mappers import customer_mapper
from catalog_sync.services.repository import CanonicalRepository
from catalog_sync.services.sync_context import SyncContext, SyncResult
from catalog_sync.services.woo_client import WooClient


async def sync_customer(
    ctx: SyncContext,
    repo: CanonicalRepository,
    customer: Any,
    platform: Any,
) -> SyncResult:
    async def build(current: Any, client: WooClient) -> Dict[str, Any]:
        return customer_mapper.to_external(current, platform, default_country=ctx.default_country)

    return await sync_runner.run_sync(
        ctx,
        repo,
        EntityKindEnum.customer,
        customer,
        platform,
        build_payload=build,
        create=lambda client, payload: client.create_customer(payload),
        update=lambda client, external_id, payload: client.update_customer(external_id, payload),
    )


async def delete_customer(ctx: SyncContext, customer: Any, platform: Any) -> bool:
    return await sync_runner.run_delete(
        ctx,
        EntityKindEnum.customer,
        customer,
        platform,
        delete=lambda client, external_id: client.delete_customer(external_id),
    )
