"""Bulk import from a platform into the canonical store.

WHAT:
    import_entities() pages through a platform listing (products, orders,
    customers or coupons) and reconciles every object:
    - matched (by external id or natural key) -> skipped, or merged when
      update_existing is set
    - unmatched -> created
    dry_run reports the same counters without writing.

WHY:
    Used once when a store is connected and afterwards to repair drift the
    webhooks missed. Rows are independent: one bad object is counted and
    the batch continues.

REFERENCES:
    - catalog_sync/services/inbound_service.py (identity + upsert)
    - catalog_sync/routers/sync.py (POST /import/{platform})
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from catalog_sync.models import EntityKindEnum
from catalog_sync.services.inbound_service import find_match, natural_key_of, upsert_from_platform
from catalog_sync.services.platform_config import parse_platform
from catalog_sync.services.repository import NATURAL_KEYS, CanonicalRepository
from catalog_sync.services.sync_context import SyncContext
from catalog_sync.services.sync_errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

# Listing endpoint per importable kind
RESOURCES: Dict[EntityKindEnum, str] = {
    EntityKindEnum.product: "products",
    EntityKindEnum.order: "orders",
    EntityKindEnum.customer: "customers",
    EntityKindEnum.coupon: "coupons",
}


@dataclass
class ImportReport:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    dry_run: bool = False
    error_messages: List[str] = field(default_factory=list)


def _planned_keys(kind: EntityKindEnum, platform: Any, external: Dict[str, Any]) -> Set[Tuple[str, str]]:
    """Identity keys a dry run records so repeated rows count as matches."""
    keys = {("id", str(external["id"]))}
    natural_key = natural_key_of(kind, external, platform)
    if natural_key:
        case_insensitive = NATURAL_KEYS[kind][1]
        natural_key = natural_key.strip()
        keys.add(("key", natural_key.lower() if case_insensitive else natural_key))
    return keys


def _import_row(
    repo: CanonicalRepository,
    kind: EntityKindEnum,
    platform: Any,
    external: Dict[str, Any],
    report: ImportReport,
    dry_run: bool,
    update_existing: bool,
    planned: Set[Tuple[str, str]],
) -> None:
    if external.get("id") is None:
        raise ValidationError(f"{kind.value} listing row has no id", kind=kind.value)

    existing = find_match(repo, kind, platform, external)
    matched = existing is not None
    if dry_run:
        keys = _planned_keys(kind, platform, external)
        matched = matched or not planned.isdisjoint(keys)
        planned.update(keys)

    if matched:
        if not update_existing:
            report.skipped += 1
            return
        if not dry_run:
            with repo.atomic():
                upsert_from_platform(repo, kind, platform, external, existing=existing)
        report.updated += 1
        return

    if not dry_run:
        with repo.atomic():
            upsert_from_platform(repo, kind, platform, external)
    report.imported += 1


async def import_entities(
    ctx: SyncContext,
    repo: CanonicalRepository,
    platform: Any,
    kind: EntityKindEnum = EntityKindEnum.product,
    limit: Optional[int] = None,
    dry_run: bool = False,
    update_existing: bool = False,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> ImportReport:
    """Pull `kind` from `platform` page by page and reconcile each object.

    The limit is checked per page, so the last page is trimmed to it and
    no further page is requested.

    Raises:
        ConfigurationError: Platform disabled
        ValidationError: Kind cannot be imported
        RemoteApiError: A listing page failed (rows already handled stay)
    """
    kind = EntityKindEnum(kind)
    platform = parse_platform(platform)
    if kind not in RESOURCES:
        raise ValidationError(f"{kind.value} cannot be imported", kind=kind.value)
    client = ctx.client_for(platform)

    report = ImportReport(dry_run=dry_run)
    seen = 0
    planned: Set[Tuple[str, str]] = set()
    logger.info(
        f"[IMPORT] Importing {kind.value} from {platform.value} "
        f"(limit={limit}, dry_run={dry_run}, update_existing={update_existing})"
    )

    async for page in client.iter_pages(RESOURCES[kind], per_page=page_size):
        if limit is not None:
            page = page[: max(limit - seen, 0)]
        for external in page:
            seen += 1
            try:
                _import_row(repo, kind, platform, external, report, dry_run, update_existing, planned)
            except Exception as e:
                report.errors += 1
                report.error_messages.append(f"{kind.value} {external.get('id')}: {e}")
                logger.error(f"[IMPORT] Failed {kind.value} {external.get('id')} from {platform.value}: {e}")
        if limit is not None and seen >= limit:
            break

    logger.info(
        f"[IMPORT] Done {kind.value} from {platform.value}: imported={report.imported} "
        f"updated={report.updated} skipped={report.skipped} errors={report.errors}"
    )
    return report
