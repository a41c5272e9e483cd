"""Create-or-update runner shared by the per-kind orchestrators.

WHAT:
    run_sync() implements the outbound sequence once:
    1. Resolve the platform client (ConfigurationError when disabled)
    2. Take the single-flight lock for (kind, entity id, platform)
    3. Re-read the entity, validate its natural key (before any network call)
    4. Map it (kind-specific builder, may resolve dependencies)
    5. Update by external id when known, else create
    6. Merge the returned id into external_ids and mark the state synced

    run_delete() implements the forced downstream delete.

WHY:
    Products, orders, customers and coupons differ only in the payload
    builder and the client helpers; the idempotence and state rules must be
    identical for all of them.

REFERENCES:
    - catalog_sync/services/product_sync_service.py
    - catalog_sync/services/order_sync_service.py
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from catalog_sync.models import EntityKindEnum, SyncStateEnum
from catalog_sync.services.mappers.common import external_id_for, get_field, is_blank, platform_key
from catalog_sync.services.platform_config import parse_platform
from catalog_sync.services.repository import NATURAL_KEYS, CanonicalRepository
from catalog_sync.services.sync_context import SyncContext, SyncResult
from catalog_sync.services.sync_errors import ValidationError
from catalog_sync.services.woo_client import WooClient

logger = logging.getLogger(__name__)

PayloadBuilder = Callable[[Any, WooClient], Awaitable[Dict[str, Any]]]
CreateCall = Callable[[WooClient, Dict[str, Any]], Awaitable[Dict[str, Any]]]
UpdateCall = Callable[[WooClient, str, Dict[str, Any]], Awaitable[Dict[str, Any]]]
DeleteCall = Callable[[WooClient, str], Awaitable[Any]]


def require_natural_key(kind: EntityKindEnum, entity: Any) -> str:
    """Return the entity's natural key or raise ValidationError."""
    field, _ = NATURAL_KEYS[kind]
    value = get_field(entity, field)
    if is_blank(value):
        raise ValidationError(
            f"{kind.value} {get_field(entity, 'id')} has no {field}",
            kind=kind.value,
            entity_id=str(get_field(entity, "id")),
        )
    return str(value).strip()


async def run_sync(
    ctx: SyncContext,
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    entity: Any,
    platform: Any,
    build_payload: PayloadBuilder,
    create: CreateCall,
    update: UpdateCall,
) -> SyncResult:
    """Push one entity to one platform.

    Args:
        ctx: Shared clients and locks
        repo: Canonical repository
        kind: Entity kind
        entity: Canonical entity (or anything with an id)
        platform: Target platform
        build_payload: Async builder (entity, client) -> platform payload
        create: Client call creating the remote object
        update: Client call updating the remote object by id

    Returns:
        SyncResult with the action taken and the platform id

    Raises:
        ConfigurationError: Platform disabled
        ValidationError: Natural key missing or entity not mappable
        RemoteApiError: Platform call failed
    """
    platform = parse_platform(platform)
    client = ctx.client_for(platform)
    entity_id = get_field(entity, "id")
    tag = f"[{kind.value.upper()}_SYNC]"

    async with ctx.locks.hold((kind.value, str(entity_id), platform.value)):
        # Another caller may have synced while we waited for the lock
        current = repo.get(kind, entity_id) or entity
        require_natural_key(kind, current)

        repo.set_sync_state(kind, entity_id, platform, SyncStateEnum.syncing)
        try:
            payload = await build_payload(current, client)
            external_id = external_id_for(current, platform)
            if external_id:
                response = await update(client, external_id, payload)
                action = "updated"
            else:
                response = await create(client, payload)
                action = "created"

            new_id = (response or {}).get("id") or external_id
            if new_id is not None:
                repo.set_external_id(kind, entity_id, platform, new_id)
            repo.set_sync_state(kind, entity_id, platform, SyncStateEnum.synced)
        except Exception:
            repo.set_sync_state(kind, entity_id, platform, SyncStateEnum.sync_failed)
            raise

    logger.info(f"{tag} {action} {kind.value} {entity_id} on {platform.value} (id={new_id})")
    return SyncResult(
        kind=kind.value,
        entity_id=str(entity_id),
        platform=platform.value,
        action=action,
        external_id=None if new_id is None else str(new_id),
        response=response,
    )


async def run_delete(
    ctx: SyncContext,
    kind: EntityKindEnum,
    entity: Any,
    platform: Any,
    delete: DeleteCall,
) -> bool:
    """Force-delete the platform copy of an entity.

    `entity` may be a detached snapshot dict of an already deleted row.

    Returns:
        False when the entity was never synced to the platform (no call
        made), True once the platform copy is gone
    """
    platform = parse_platform(platform)
    tag = f"[{kind.value.upper()}_SYNC]"
    external_id: Optional[str] = external_id_for(entity, platform)
    if not external_id:
        logger.info(
            f"{tag} Skip delete of {kind.value} {get_field(entity, 'id')}: "
            f"no external id on {platform_key(platform)}"
        )
        return False

    client = ctx.client_for(platform)
    await delete(client, external_id)
    logger.info(f"{tag} Deleted {kind.value} {get_field(entity, 'id')} from {platform.value} (id={external_id})")
    return True
