"""Admin sync endpoints.

WHAT:
    Thin HTTP wrappers for the sync services:
    - POST /import/{platform}             bulk import from a platform
    - POST /sync-all/{platform}           taxonomy sweep
    - POST /sync-term/{platform}          pull one taxonomy term
    - POST /sync/{kind}/{entity_id}/{platform}   manual push of one entity

WHY:
    - Routers handle auth + request parsing only
    - Business logic reused by both HTTP calls and the ARQ worker
    - SyncError subclasses are translated to HTTP statuses by the handlers
      registered in main.py

REFERENCES:
    - catalog_sync/services/import_service.py
    - catalog_sync/services/term_sync_service.py
    - catalog_sync/services/lifecycle.py
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from catalog_sync.database import get_db
from catalog_sync.deps import Settings, get_settings, get_sync_context, require_admin_token
from catalog_sync.models import EntityKindEnum, PlatformEnum
from catalog_sync.schemas import (
    ImportReportResponse,
    SyncResultResponse,
    TermPullRequest,
    TermPullResponse,
    TermSweepResponse,
)
from catalog_sync.services.import_service import import_entities
from catalog_sync.services.lifecycle import SYNC_FUNCTIONS
from catalog_sync.services.platform_config import parse_platform
from catalog_sync.services.repository import SqlAlchemyCanonicalRepository
from catalog_sync.services.sync_context import SyncContext
from catalog_sync.services.sync_errors import ConfigurationError, ValidationError
from catalog_sync.services.term_sync_service import (
    DEFAULT_RECENT_HOURS,
    parse_attribute_types,
    pull_term,
    sync_all_terms,
    sync_term,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sync"], dependencies=[Depends(require_admin_token)])


def _platform(platform: str) -> PlatformEnum:
    try:
        return parse_platform(platform)
    except ConfigurationError:
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")


def _parse_kind(kind: str) -> EntityKindEnum:
    try:
        return EntityKindEnum(kind.strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown entity kind: {kind}")


@router.post("/import/{platform}", response_model=ImportReportResponse)
async def import_from_platform(
    platform: str,
    kind: str = Query(default="product", description="product | order | customer | coupon"),
    limit: Optional[int] = Query(default=None, ge=1, description="Stop after this many objects"),
    dry_run: bool = Query(default=False, alias="dryRun", description="Report without writing"),
    update_existing: bool = Query(
        default=False, alias="updateExisting", description="Merge into already known entities"
    ),
    db: Session = Depends(get_db),
    ctx: SyncContext = Depends(get_sync_context),
    settings: Settings = Depends(get_settings),
) -> ImportReportResponse:
    """Import entities from a platform into the canonical store."""
    report = await import_entities(
        ctx,
        SqlAlchemyCanonicalRepository(db),
        _platform(platform),
        kind=_parse_kind(kind),
        limit=limit,
        dry_run=dry_run,
        update_existing=update_existing,
        page_size=settings.IMPORT_PAGE_SIZE,
    )
    return ImportReportResponse(**asdict(report))


@router.post("/sync-all/{platform}", response_model=TermSweepResponse)
async def sync_all_taxonomy(
    platform: str,
    recent_hours: int = Query(default=DEFAULT_RECENT_HOURS, alias="recentHours", ge=1),
    attribute_types: Optional[str] = Query(
        default=None, alias="attributeTypes", description="Comma-separated, e.g. 'Autor,Editorial'"
    ),
    dry_run: bool = Query(default=False, alias="dryRun"),
    db: Session = Depends(get_db),
    ctx: SyncContext = Depends(get_sync_context),
) -> TermSweepResponse:
    """Re-push taxonomy terms modified within the last recentHours."""
    report = await sync_all_terms(
        ctx,
        SqlAlchemyCanonicalRepository(db),
        _platform(platform),
        recent_hours=recent_hours,
        kinds=parse_attribute_types(attribute_types),
        dry_run=dry_run,
    )
    return TermSweepResponse(**asdict(report))


@router.post("/sync-term/{platform}", response_model=TermPullResponse)
async def pull_taxonomy_term(
    platform: str,
    body: TermPullRequest,
    db: Session = Depends(get_db),
    ctx: SyncContext = Depends(get_sync_context),
) -> TermPullResponse:
    """Fetch one attribute term from a platform into the canonical store."""
    result = await pull_term(
        ctx,
        SqlAlchemyCanonicalRepository(db),
        _platform(platform),
        body.attribute_name,
        body.term_name,
    )
    return TermPullResponse(**result)


@router.post("/sync/{kind}/{entity_id}/{platform}", response_model=SyncResultResponse)
async def push_entity(
    kind: str,
    entity_id: str,
    platform: str,
    db: Session = Depends(get_db),
    ctx: SyncContext = Depends(get_sync_context),
) -> SyncResultResponse:
    """Push one canonical entity to a platform now, ignoring the publish predicate."""
    entity_kind = _parse_kind(kind)
    platform_enum = _platform(platform)
    repo = SqlAlchemyCanonicalRepository(db)

    try:
        entity = repo.get(entity_kind, entity_id)
    except ValueError:
        entity = None
    if entity is None:
        raise HTTPException(status_code=404, detail=f"{entity_kind.value} {entity_id} not found")

    if entity_kind == EntityKindEnum.term:
        result = await sync_term(ctx, repo, entity, platform_enum)
    else:
        result = await SYNC_FUNCTIONS[entity_kind](ctx, repo, entity, platform_enum)

    return SyncResultResponse(
        kind=result.kind,
        entity_id=result.entity_id,
        platform=result.platform,
        action=result.action,
        external_id=result.external_id,
    )
