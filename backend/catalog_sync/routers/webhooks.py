"""Platform webhooks.

WHAT:
    POST /webhooks/{kind}/{platform} for kind in product | customer |
    coupon | order. Upserts the delivered entity into the canonical store.

WHY:
    Webhooks are how platform-side changes (orders placed, customers
    registered, stock edited in the store admin) reach the catalog.
    Deliveries are at-least-once, so handling is an idempotent upsert keyed
    by the platform id. Writes made here never trigger outbound sync.

RESPONSES:
    200 {success, message, data}   processed
    200 {success, message, webhook_id}   ping
    400 {error, detail}            invalid JSON or unrecognized shape
    401 {error}                    bad signature
    404 {error}                    unknown kind or platform
    500 {error}                    internal failure (transaction rolled back)

REFERENCES:
    - https://woocommerce.github.io/woocommerce-rest-api-docs/#webhooks
    - catalog_sync/services/webhook_service.py
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from catalog_sync.database import get_db
from catalog_sync.models import EntityKindEnum
from catalog_sync.services import webhook_service
from catalog_sync.services.platform_config import get_webhook_secret, parse_platform
from catalog_sync.services.repository import SqlAlchemyCanonicalRepository
from catalog_sync.services.sync_errors import ConfigurationError, ValidationError
from catalog_sync.telemetry import capture_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_HEADER = "X-WC-Webhook-Signature"


# =============================================================================
# SIGNATURE VERIFICATION
# =============================================================================

def verify_webhook_signature(request_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Verify that a webhook request came from the platform.

    WHAT: base64(HMAC-SHA256(secret, body)) must equal the signature header
    WHY: Prevent forged deliveries from rewriting canonical data

    Args:
        request_body: Raw request body bytes
        signature: X-WC-Webhook-Signature header value
        secret: Webhook secret configured on the platform

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature:
        logger.warning("[WEBHOOK] Missing signature header")
        return False

    computed = base64.b64encode(
        hmac.new(secret.encode("utf-8"), request_body, hashlib.sha256).digest()
    ).decode("utf-8")

    is_valid = hmac.compare_digest(computed, signature.strip())
    if not is_valid:
        logger.warning("[WEBHOOK] Invalid signature")
    return is_valid


def _error(status_code: int, error: str, detail: Optional[str] = None) -> JSONResponse:
    content = {"error": error}
    if detail is not None:
        content["detail"] = detail
    return JSONResponse(status_code=status_code, content=content)


# =============================================================================
# ENDPOINT
# =============================================================================

@router.post("/{kind}/{platform}")
async def receive_webhook(
    kind: str,
    platform: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """Receive one platform event and upsert its entity."""
    try:
        entity_kind = EntityKindEnum(kind)
    except ValueError:
        entity_kind = None
    if entity_kind not in webhook_service.WEBHOOK_KINDS:
        return _error(status.HTTP_404_NOT_FOUND, f"Unknown webhook kind: {kind}")

    try:
        platform_enum = parse_platform(platform)
    except ConfigurationError:
        return _error(status.HTTP_404_NOT_FOUND, f"Unknown platform: {platform}")

    raw_body = await request.body()

    try:
        body = json.loads(raw_body or b"null")
    except ValueError as e:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body", str(e))

    if webhook_service.is_ping(body):
        logger.info(f"[WEBHOOK] Ping for {kind} on {platform_enum.value} (webhook_id={body.get('webhook_id')})")
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "success": True,
                "message": "Webhook ping received",
                "webhook_id": body.get("webhook_id"),
            },
        )

    # WooCommerce sends the registration ping unsigned
    secret = get_webhook_secret(platform_enum)
    if secret and not verify_webhook_signature(raw_body, request.headers.get(SIGNATURE_HEADER), secret):
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    entity = webhook_service.extract_entity(body, kind)
    if entity is None:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            f"Could not find a {kind} in webhook payload",
            webhook_service.describe_shape(body),
        )

    repo = SqlAlchemyCanonicalRepository(db)
    try:
        result = webhook_service.ingest(repo, entity_kind, platform_enum, entity)
    except ValidationError as e:
        db.rollback()
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        db.rollback()
        logger.exception(f"[WEBHOOK] Failed {kind} {entity.get('id')} from {platform_enum.value}: {e}")
        logger.error(f"[WEBHOOK] Raw body: {raw_body[:5000]!r}")
        capture_exception(e, extra={"kind": kind, "platform": platform_enum.value})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error processing webhook")

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "message": f"{kind} {result.action}",
            "data": {
                "id": result.entity_id,
                "external_id": result.external_id,
                "action": result.action,
                "conflicts": result.conflicts,
            },
        },
    )
