"""Dependency providers and settings management."""

import hmac
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from pydantic_settings import BaseSettings, SettingsConfigDict

from catalog_sync.services.sync_context import SyncContext


class Settings(BaseSettings):
    """Application settings loaded from environment or .env.

    Platform credentials (WOO_<PLATFORM>_*) are not settings: they are read
    at call time by services/platform_config.py.
    """

    # Shared bearer token for the admin routes (import, sweep, manual push)
    IMPORT_API_TOKEN: Optional[str] = None

    # Write-triggered sync switch
    SYNC_ENABLED: bool = True
    MAX_CONCURRENT_SYNCS: int = 5
    HTTP_TIMEOUT_SECONDS: float = 30.0
    DEFAULT_COUNTRY: str = "CL"

    IMPORT_PAGE_SIZE: int = 50

    # Taxonomy sweep (ARQ cron)
    SWEEP_RECENT_HOURS: int = 3

    # Redis Configuration
    REDIS_URL: str = "redis://localhost:6379/0"

    # Create tables on startup (local development and tests)
    AUTO_CREATE_TABLES: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def require_admin_token(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check the `Authorization: Bearer <IMPORT_API_TOKEN>` header.

    Raises:
        HTTPException: 503 when no token is configured, 401 on mismatch
    """
    if not settings.IMPORT_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="IMPORT_API_TOKEN is not configured",
        )

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    token = authorization[len("Bearer ") :].strip()
    if not hmac.compare_digest(token.encode("utf-8"), settings.IMPORT_API_TOKEN.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_sync_context(request: Request) -> SyncContext:
    """SyncContext created at app startup."""
    return request.app.state.sync_context
