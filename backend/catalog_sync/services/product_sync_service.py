"""Product (book) sync to the platforms.

WHAT:
    sync_product() pushes a canonical book to one platform, attaching its
    taxonomy relations as product attributes; delete_product() removes the
    platform copy.

REFERENCES:
    - catalog_sync/services/sync_runner.py
    - catalog_sync/services/mappers/product_mapper.py
    - catalog_sync/services/term_sync_service.py (TERM_ATTRIBUTES)
"""

import logging
from typing import Any, Dict, List

from catalog_sync.models import EntityKindEnum, TermKindEnum
from catalog_sync.services import sync_runner
from catalog_sync.services.mappers import product_mapper
from catalog_sync.services.mappers.common import is_blank
from catalog_sync.services.repository import CanonicalRepository
from catalog_sync.services.sync_context import SyncContext, SyncResult
from catalog_sync.services.sync_errors import RemoteApiError
from catalog_sync.services.term_sync_service import TERM_ATTRIBUTES, term_description
from catalog_sync.services.woo_client import WooClient

logger = logging.getLogger(__name__)

# Product relation attribute -> term kind
RELATION_KINDS = (
    ("author", TermKindEnum.author),
    ("work", TermKindEnum.work),
    ("publisher", TermKindEnum.publisher),
    ("imprint", TermKindEnum.imprint),
    ("collection", TermKindEnum.collection),
)


async def resolve_attributes(product: Any, client: WooClient) -> List[Dict[str, Any]]:
    """Platform attributes for the product's taxonomy relations.

    A relation whose attribute cannot be resolved is left off the payload
    with a warning; the book itself still syncs.
    """
    attributes: List[Dict[str, Any]] = []
    for relation, kind in RELATION_KINDS:
        term = getattr(product, relation, None)
        if term is None or is_blank(term.name):
            continue
        name, slug = TERM_ATTRIBUTES[kind]
        try:
            attribute = await client.get_or_create_attribute(name, slug)
            await client.get_or_create_attribute_term(
                attribute["id"], term.name.strip(), description=term_description(term)
            )
        except RemoteApiError as e:
            logger.warning(
                f"[PRODUCT_SYNC] Attribute {name} '{term.name}' unavailable on {client.platform}: {e}"
            )
            continue
        attributes.append({"id": attribute["id"], "name": name, "options": [term.name.strip()]})
    return attributes


async def sync_product(
    ctx: SyncContext,
    repo: CanonicalRepository,
    product: Any,
    platform: Any,
) -> SyncResult:
    """Create or update the book on `platform`.

    Raises:
        ConfigurationError: Platform disabled
        ValidationError: Book has no isbn
        RemoteApiError: Platform call failed
    """
    async def build(current: Any, client: WooClient) -> Dict[str, Any]:
        attributes = await resolve_attributes(current, client)
        return product_mapper.to_external(current, platform, attributes=attributes)

    return await sync_runner.run_sync(
        ctx,
        repo,
        EntityKindEnum.product,
        product,
        platform,
        build_payload=build,
        create=lambda client, payload: client.create_product(payload),
        update=lambda client, external_id, payload: client.update_product(external_id, payload),
    )


async def delete_product(ctx: SyncContext, product: Any, platform: Any) -> bool:
    return await sync_runner.run_delete(
        ctx,
        EntityKindEnum.product,
        product,
        platform,
        delete=lambda client, external_id: client.delete_product(external_id),
    )
