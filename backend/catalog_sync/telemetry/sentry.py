"""
Sentry Error Reporting
======================

WHAT:
    Sentry setup for the API and the sweep worker, plus helpers for the
    places where sync failures are logged and swallowed.

WHY:
    Write-triggered syncs never fail the canonical write, so a broken store
    would otherwise only show up in logs. Every swallowed failure is sent
    here tagged with platform and entity kind.

Related files:
- catalog_sync/main.py: init on app startup, unhandled SyncError reporting
- catalog_sync/workers/arq_worker.py: init for the cron worker
- catalog_sync/services/lifecycle.py: swallowed write-triggered sync failures
- catalog_sync/services/webhook_service.py: protected-field conflicts

Environment Variables:
- SENTRY_DSN: project DSN (reporting is off when unset)
- ENVIRONMENT: production, staging, development
- RELEASE_VERSION: optional release tag
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from catalog_sync.utils.env import optional_env

logger = logging.getLogger(__name__)

# Promoted from extra to searchable tags
TAG_KEYS = ("platform", "kind", "action")

# Webhook and customer payloads carry names, emails and addresses
WEBHOOK_PATH_PREFIX = "/webhooks/"


def _strip_webhook_bodies(event: Dict[str, Any], hint: Dict[str, Any]) -> Dict[str, Any]:
    request = event.get("request") or {}
    if WEBHOOK_PATH_PREFIX in (request.get("url") or ""):
        request.pop("data", None)
    return event


def init_sentry() -> bool:
    """Initialize the Sentry SDK once per process.

    Returns:
        True when reporting is enabled.
    """
    dsn = optional_env("SENTRY_DSN")
    if not dsn:
        logger.debug("[SENTRY] SENTRY_DSN not set, reporting disabled")
        return False

    environment = optional_env("ENVIRONMENT") or "development"

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=optional_env("RELEASE_VERSION"),
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
            before_send=_strip_webhook_bodies,
        )
    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False

    logger.info(f"[SENTRY] Reporting enabled for {environment}")
    return True


def _apply_context(scope: Any, extra: Optional[dict]) -> None:
    for key, value in (extra or {}).items():
        if key in TAG_KEYS and value is not None:
            scope.set_tag(key, str(value))
        scope.set_extra(key, value)


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """Report a caught exception.

    `platform`, `kind` and `action` in extra become tags so failures for one
    store can be filtered in the Sentry UI.
    """
    if not sentry_sdk.is_initialized():
        logger.debug(f"[SENTRY] Disabled, not reporting: {exception!r}")
        return

    try:
        with sentry_sdk.new_scope() as scope:
            _apply_context(scope, extra)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture exception: {e}")


def capture_message(message: str, level: str = "info", extra: Optional[dict] = None) -> None:
    """Report a message, e.g. a mapping conflict that kept the canonical value."""
    if not sentry_sdk.is_initialized():
        logger.debug(f"[SENTRY] Disabled, not reporting: {message}")
        return

    try:
        with sentry_sdk.new_scope() as scope:
            _apply_context(scope, extra)
            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture message: {e}")
