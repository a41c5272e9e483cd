"""Write-triggered sync and guarded downstream delete.

WHAT:
    after_write() runs once the canonical write has committed: it applies
    the publish predicate and pushes the entity to every channeled
    platform. after_delete() removes platform copies of a deleted entity,
    but only when that is safe.

    dispatch_after_write() schedules after_write on its own session so the
    caller returns immediately.

WHY:
    A platform outage must never fail or slow down an editor's save. Every
    failure here is logged, reported to Sentry and swallowed; the periodic
    sweep and later saves converge the platforms.

REFERENCES:
    - catalog_sync/telemetry/sentry.py
    - catalog_sync/services/sync_errors.py
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from catalog_sync.database import SessionLocal
from catalog_sync.models import EntityKindEnum, PlatformEnum, PublicationStatusEnum
from catalog_sync.services.coupon_sync_service import delete_coupon, sync_coupon
from catalog_sync.services.customer_sync_service import delete_customer, sync_customer
from catalog_sync.services.mappers.common import external_id_for, get_field, platform_key
from catalog_sync.services.order_sync_service import delete_order, sync_order
from catalog_sync.services.platform_config import parse_platform
from catalog_sync.services.product_sync_service import delete_product, sync_product
from catalog_sync.services.repository import CanonicalRepository, SqlAlchemyCanonicalRepository
from catalog_sync.services.sync_context import SyncContext
from catalog_sync.services.sync_errors import ConfigurationError
from catalog_sync.services.term_sync_service import sync_term_to_all_platforms
from catalog_sync.telemetry import capture_exception

logger = logging.getLogger(__name__)

SYNC_FUNCTIONS: Dict[EntityKindEnum, Callable[..., Awaitable[Any]]] = {
    EntityKindEnum.product: sync_product,
    EntityKindEnum.order: sync_order,
    EntityKindEnum.customer: sync_customer,
    EntityKindEnum.coupon: sync_coupon,
}

DELETE_FUNCTIONS: Dict[EntityKindEnum, Callable[..., Awaitable[bool]]] = {
    EntityKindEnum.product: delete_product,
    EntityKindEnum.order: delete_order,
    EntityKindEnum.customer: delete_customer,
    EntityKindEnum.coupon: delete_coupon,
}


def is_published(entity: Any) -> bool:
    status = get_field(entity, "publication_status")
    value = status.value if isinstance(status, PublicationStatusEnum) else status
    return value == PublicationStatusEnum.published.value


def should_sync(kind: EntityKindEnum, entity: Any) -> bool:
    """Publish predicate: only published books sync; other kinds always do."""
    if EntityKindEnum(kind) == EntityKindEnum.product:
        return is_published(entity)
    return True


def channels_for(kind: EntityKindEnum, entity: Any) -> List[PlatformEnum]:
    """Platforms the entity is channeled to.

    Orders without explicit channels go back to the platform they came from.
    """
    channels = list(get_field(entity, "channels") or [])
    if not channels and EntityKindEnum(kind) == EntityKindEnum.order:
        origin = get_field(entity, "origin_platform")
        if origin:
            channels = [origin]

    platforms: List[PlatformEnum] = []
    for channel in channels:
        try:
            platform = parse_platform(channel)
        except ConfigurationError:
            logger.warning(f"[LIFECYCLE] Ignoring unknown channel {channel!r}")
            continue
        if platform not in platforms:
            platforms.append(platform)
    return platforms


def snapshot(entity: Any) -> Dict[str, Any]:
    """Detached copy of what after_delete needs, taken before the row goes."""
    return {
        "id": get_field(entity, "id"),
        "external_ids": dict(get_field(entity, "external_ids") or {}),
        "publication_status": get_field(entity, "publication_status"),
        "channels": list(get_field(entity, "channels") or []),
    }


def _report(kind: EntityKindEnum, entity_id: Any, platform: Any, action: str, error: Exception) -> None:
    logger.exception(
        f"[LIFECYCLE] {action} of {kind.value} {entity_id} on {platform_key(platform)} failed: {error}"
    )
    capture_exception(
        error,
        extra={"kind": kind.value, "entity_id": str(entity_id), "platform": platform_key(platform), "action": action},
    )


async def after_write(
    ctx: SyncContext,
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    entity: Any,
) -> Dict[str, str]:
    """Push a freshly written entity to its channels. Never raises.

    Returns:
        {platform: "synced" | "failed"}, empty when nothing was attempted
    """
    kind = EntityKindEnum(kind)
    entity_id = get_field(entity, "id")

    if not ctx.sync_enabled:
        logger.debug(f"[LIFECYCLE] Sync disabled, skipping {kind.value} {entity_id}")
        return {}

    if kind == EntityKindEnum.term:
        try:
            return await sync_term_to_all_platforms(ctx, repo, entity)
        except Exception as e:
            _report(kind, entity_id, "all", "sync", e)
            return {}

    if not should_sync(kind, entity):
        logger.info(f"[LIFECYCLE] {kind.value} {entity_id} not published, skipping sync")
        return {}

    outcome: Dict[str, str] = {}
    for platform in channels_for(kind, entity):
        try:
            await SYNC_FUNCTIONS[kind](ctx, repo, entity, platform)
            outcome[platform.value] = "synced"
        except Exception as e:
            _report(kind, entity_id, platform, "sync", e)
            outcome[platform.value] = "failed"
    return outcome


async def after_delete(
    ctx: SyncContext,
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    deleted: Dict[str, Any],
) -> Dict[str, str]:
    """Delete platform copies of a removed entity. Never raises.

    A platform copy is deleted only when
    - the canonical row is really gone (not just unpublished)
    - the entity was published (books only)
    - no other canonical entity shares the same platform id

    Returns:
        {platform: "deleted" | "skipped" | "failed"}
    """
    kind = EntityKindEnum(kind)
    entity_id = deleted.get("id")
    outcome: Dict[str, str] = {}

    if kind not in DELETE_FUNCTIONS:
        # Platform attribute terms outlive canonical terms
        return outcome
    if repo.get(kind, entity_id) is not None:
        logger.info(f"[LIFECYCLE] {kind.value} {entity_id} still exists, not deleting downstream")
        return outcome
    if kind == EntityKindEnum.product and not is_published(deleted):
        logger.info(f"[LIFECYCLE] product {entity_id} was never published, not deleting downstream")
        return outcome

    for platform in PlatformEnum:
        external_id = external_id_for(deleted, platform)
        if external_id and repo.count_sharing_external_id(kind, platform, external_id, exclude_id=entity_id) > 0:
            logger.warning(
                f"[LIFECYCLE] {platform.value} id {external_id} still used by another {kind.value}; "
                f"keeping the platform copy"
            )
            outcome[platform.value] = "skipped"
            continue
        try:
            deleted_remote = await DELETE_FUNCTIONS[kind](ctx, deleted, platform)
            outcome[platform.value] = "deleted" if deleted_remote else "skipped"
        except Exception as e:
            _report(kind, entity_id, platform, "delete", e)
            outcome[platform.value] = "failed"
    return outcome


def dispatch_after_write(
    ctx: SyncContext,
    kind: EntityKindEnum,
    entity_id: Any,
    session_factory: Optional[Callable[[], Session]] = None,
) -> "asyncio.Task[Dict[str, str]]":
    """Schedule after_write in the background on a dedicated session.

    Must be called from a running event loop.
    """
    session_factory = session_factory or SessionLocal

    async def run() -> Dict[str, str]:
        db = session_factory()
        try:
            repo = SqlAlchemyCanonicalRepository(db)
            entity = repo.get(kind, entity_id)
            if entity is None:
                logger.warning(f"[LIFECYCLE] {EntityKindEnum(kind).value} {entity_id} vanished before sync")
                return {}
            return await after_write(ctx, repo, kind, entity)
        finally:
            db.close()

    return asyncio.create_task(run())
