"""Taxonomy term sync.

WHAT:
    Pushes canonical taxonomy terms (authors, works, publishers, imprints,
    collections) to the platforms as product attribute terms, sweeps the
    recently modified ones, and pulls a single term back.

WHY:
    Storefront filters ("Autor", "Editorial", ...) are attribute terms on the
    platforms. Products reference them by id, so they have to exist before
    (or while) books are pushed.

REFERENCES:
    - catalog_sync/services/woo_client.py (get_or_create_attribute*, cache)
    - catalog_sync/workers/arq_worker.py (periodic sweep)
    - catalog_sync/routers/sync.py (/sync-all, /sync-term)
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from catalog_sync.models import EntityKindEnum, SyncStateEnum, TaxonomyTerm, TermKindEnum, utcnow
from catalog_sync.services.mappers.common import is_blank, merge_external_ids
from catalog_sync.services.mappers.product_mapper import blocks_to_text
from catalog_sync.services.platform_config import configured_platforms, parse_platform
from catalog_sync.services.repository import CanonicalRepository
from catalog_sync.services.sync_context import SyncContext, SyncResult
from catalog_sync.services.sync_errors import ValidationError
from catalog_sync.services.woo_client import slugify

logger = logging.getLogger(__name__)

# Term kind -> (platform attribute name, attribute slug)
TERM_ATTRIBUTES: Dict[TermKindEnum, Tuple[str, str]] = {
    TermKindEnum.author: ("Autor", "autor"),
    TermKindEnum.work: ("Obra", "obra"),
    TermKindEnum.publisher: ("Editorial", "editorial"),
    TermKindEnum.imprint: ("Sello", "sello"),
    TermKindEnum.collection: ("Colección", "coleccion"),
}

DEFAULT_RECENT_HOURS = 24


@dataclass
class TermSweepReport:
    processed: int = 0
    synced: int = 0
    errors: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    dry_run: bool = False
    error_messages: List[str] = field(default_factory=list)


def kind_for_attribute(attribute_name: str) -> Optional[TermKindEnum]:
    """'Colección', 'coleccion', 'pa_coleccion' or 'collection' -> TermKindEnum.collection."""
    if is_blank(attribute_name):
        return None
    name = str(attribute_name).strip()
    if name.lower().startswith("pa_"):
        name = name[3:]
    wanted = slugify(name)
    for kind, (label, slug) in TERM_ATTRIBUTES.items():
        if wanted in (slug, slugify(label), kind.value):
            return kind
    return None


def parse_attribute_types(value: Optional[str]) -> Optional[List[TermKindEnum]]:
    """Comma-separated attribute names -> term kinds. None/empty means all.

    Raises:
        ValidationError: Unknown attribute name
    """
    if is_blank(value):
        return None
    kinds: List[TermKindEnum] = []
    for raw in str(value).split(","):
        if not raw.strip():
            continue
        kind = kind_for_attribute(raw.strip())
        if kind is None:
            raise ValidationError(f"Unknown attribute type: {raw.strip()}")
        if kind not in kinds:
            kinds.append(kind)
    return kinds or None


def term_description(term: Any) -> Optional[str]:
    return blocks_to_text(getattr(term, "description", None))


# =============================================================================
# PUSH
# =============================================================================

async def sync_term(
    ctx: SyncContext,
    repo: CanonicalRepository,
    term: TaxonomyTerm,
    platform: Any,
) -> SyncResult:
    """Ensure the attribute and the term exist on `platform`.

    Raises:
        ConfigurationError: Platform disabled
        ValidationError: Term has no name
        RemoteApiError: Platform call failed
    """
    platform = parse_platform(platform)
    client = ctx.client_for(platform)
    if is_blank(term.name):
        raise ValidationError(f"term {term.id} has no name", kind=EntityKindEnum.term.value, entity_id=str(term.id))

    attribute_name, attribute_slug = TERM_ATTRIBUTES[TermKindEnum(term.kind)]

    async with ctx.locks.hold((EntityKindEnum.term.value, str(term.id), platform.value)):
        repo.set_sync_state(EntityKindEnum.term, term.id, platform, SyncStateEnum.syncing)
        try:
            attribute = await client.get_or_create_attribute(attribute_name, attribute_slug)
            remote_term = await client.get_or_create_attribute_term(
                attribute["id"], term.name.strip(), description=term_description(term)
            )
            repo.set_external_id(EntityKindEnum.term, term.id, platform, remote_term["id"])
            repo.set_sync_state(EntityKindEnum.term, term.id, platform, SyncStateEnum.synced)
        except Exception:
            repo.set_sync_state(EntityKindEnum.term, term.id, platform, SyncStateEnum.sync_failed)
            raise

    logger.info(
        f"[TERM_SYNC] {attribute_name} '{term.name}' -> {platform.value} "
        f"(attribute={attribute['id']}, term={remote_term['id']})"
    )
    return SyncResult(
        kind=EntityKindEnum.term.value,
        entity_id=str(term.id),
        platform=platform.value,
        action="synced",
        external_id=str(remote_term["id"]),
        response=remote_term,
    )


async def sync_term_to_all_platforms(
    ctx: SyncContext,
    repo: CanonicalRepository,
    term: TaxonomyTerm,
) -> Dict[str, str]:
    """Push a term to every configured platform.

    A failing platform is logged and skipped; the others still run.

    Returns:
        {platform: "synced" | "failed"}
    """
    if is_blank(term.name):
        logger.warning(f"[TERM_SYNC] Skipping term {term.id}: no name")
        return {}

    outcome: Dict[str, str] = {}
    for platform in configured_platforms():
        try:
            await sync_term(ctx, repo, term, platform)
            outcome[platform.value] = "synced"
        except Exception as e:
            logger.error(f"[TERM_SYNC] '{term.name}' failed on {platform.value}: {e}")
            outcome[platform.value] = "failed"
    return outcome


async def sync_all_terms(
    ctx: SyncContext,
    repo: CanonicalRepository,
    platform: Any,
    recent_hours: int = DEFAULT_RECENT_HOURS,
    kinds: Optional[Iterable[TermKindEnum]] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> TermSweepReport:
    """Re-push every term modified within the last `recent_hours`.

    Each term is isolated: one failure is counted and the sweep goes on.
    """
    platform = parse_platform(platform)
    ctx.client_for(platform)

    since = (now or utcnow()) - timedelta(hours=recent_hours)
    terms = repo.list_terms_modified_since(since, kinds)
    report = TermSweepReport(
        processed=len(terms),
        by_kind=dict(Counter(TermKindEnum(term.kind).value for term in terms)),
        dry_run=dry_run,
    )

    logger.info(
        f"[TERM_SYNC] Sweep {platform.value}: {len(terms)} terms modified since "
        f"{since.isoformat()} (dry_run={dry_run})"
    )
    if dry_run or not terms:
        return report

    outcome = await ctx.run_batch(terms, lambda term: sync_term(ctx, repo, term, platform))
    report.synced = outcome.succeeded
    report.errors = outcome.failed
    report.error_messages = [str(error) for error in outcome.errors]
    for error in outcome.errors:
        logger.error(f"[TERM_SYNC] Sweep error on {platform.value}: {error}")

    logger.info(f"[TERM_SYNC] Sweep {platform.value} done: {report.synced} synced, {report.errors} errors")
    return report


# =============================================================================
# PULL
# =============================================================================

async def pull_term(
    ctx: SyncContext,
    repo: CanonicalRepository,
    platform: Any,
    attribute_name: str,
    term_name: str,
) -> Dict[str, Any]:
    """Fetch one attribute term from `platform` and upsert the canonical term.

    Raises:
        ValidationError: Unknown attribute, or attribute/term absent remotely
    """
    platform = parse_platform(platform)
    client = ctx.client_for(platform)

    kind = kind_for_attribute(attribute_name)
    if kind is None:
        raise ValidationError(f"Unknown attribute: {attribute_name}")
    if is_blank(term_name):
        raise ValidationError("termName is required")

    name, slug = TERM_ATTRIBUTES[kind]
    attribute = await client.find_attribute(name, slug)
    if attribute is None:
        raise ValidationError(f"Attribute {name} not found on {platform.value}")

    wanted = term_name.strip().lower()
    remote_term = next(
        (
            term for term in await client.list_attribute_terms(attribute["id"])
            if str(term.get("name", "")).strip().lower() == wanted
        ),
        None,
    )
    if remote_term is None:
        raise ValidationError(f"Term '{term_name}' not found in {name} on {platform.value}")

    existing = repo.find_term(kind, remote_term["name"])
    data: Dict[str, Any] = {
        "kind": kind,
        "name": str(remote_term["name"]).strip(),
        "external_ids": merge_external_ids(
            existing.external_ids if existing else None, platform, remote_term["id"]
        ),
        "raw_external_snapshot": remote_term,
    }
    if remote_term.get("description"):
        data["description"] = remote_term["description"]

    if existing:
        term = repo.update(EntityKindEnum.term, existing.id, data)
        action = "updated"
    else:
        term = repo.create(EntityKindEnum.term, data)
        action = "created"

    logger.info(f"[TERM_SYNC] Pulled {name} '{term.name}' from {platform.value} ({action})")
    return {
        "action": action,
        "term_id": str(term.id),
        "kind": kind.value,
        "name": term.name,
        "external_id": str(remote_term["id"]),
    }
