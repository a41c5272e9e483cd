"""FastAPI application entrypoint.

Includes the webhook and admin sync routers, translates sync errors to
HTTP statuses, and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from catalog_sync import schemas
from catalog_sync.database import init_db
from catalog_sync.deps import get_settings
from catalog_sync.routers import sync as sync_router
from catalog_sync.routers import webhooks as webhooks_router
from catalog_sync.services.platform_config import configured_platforms
from catalog_sync.services.sync_context import SyncContext
from catalog_sync.services.sync_errors import (
    CascadeDepthExceeded,
    ConfigurationError,
    RemoteApiError,
    SyncError,
    ValidationError,
)
from catalog_sync.telemetry import capture_exception, init_sentry

# Most specific first
ERROR_STATUS = (
    (ConfigurationError, 503),
    (ValidationError, 422),
    (CascadeDepthExceeded, 422),
    (RemoteApiError, 502),
)


def status_for(error: SyncError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    status_code = status_for(exc)
    content = {"error": str(exc)}
    if isinstance(exc, RemoteApiError):
        content["detail"] = f"{exc.endpoint} returned {exc.status}"
    if status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc}")
        if status_code != 503:
            capture_exception(exc, extra={"path": request.url.path})
    return JSONResponse(status_code=status_code, content=content)


def create_app() -> FastAPI:
    settings = get_settings()

    # Before anything can raise
    init_sentry()

    app = FastAPI(
        title="catalog-sync API",
        description="""
        Keeps the canonical book catalog, orders, customers and coupons in
        sync with the WooCommerce stores.

        - **Webhooks**: platform events upserted into the catalog
        - **Import**: bulk pull from a platform
        - **Sync**: taxonomy sweep, term pull and manual pushes

        Admin routes require `Authorization: Bearer <IMPORT_API_TOKEN>`.
        """,
        version="1.0.0",
    )

    # Trust X-Forwarded-Proto from the load balancer
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    app.state.sync_context = SyncContext.from_settings(settings)

    app.add_exception_handler(SyncError, sync_error_handler)

    app.include_router(webhooks_router.router)
    app.include_router(sync_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="""
        Simple health check endpoint to verify the API is running.

        Lists the platforms whose credentials are complete. Does not call
        the platforms and does not require authentication.
        """
    )
    def health():
        return schemas.HealthResponse(
            status="ok",
            platforms=[platform.value for platform in configured_platforms()],
        )

    @app.on_event("startup")
    async def startup_event():
        if settings.AUTO_CREATE_TABLES:
            init_db()
            logging.info("[STARTUP] Database tables ensured")
        platforms = configured_platforms()
        if platforms:
            logging.info(f"[STARTUP] Configured platforms: {', '.join(p.value for p in platforms)}")
        else:
            logging.warning("[STARTUP] No platform configured - outbound sync is disabled")

    return app


app = create_app()
