"""Per-platform connection settings.

WHAT:
    Resolves base URL + consumer key/secret for each commerce platform from
    the environment, all-or-nothing.

WHY:
    A platform with incomplete credentials is simply disabled. Callers treat
    None as "platform off", never as an error, so one broken store cannot
    stop the other from syncing.

ENVIRONMENT:
    WOO_MORALEJA_URL, WOO_MORALEJA_CONSUMER_KEY, WOO_MORALEJA_CONSUMER_SECRET
    WOO_ESCOLAR_URL, WOO_ESCOLAR_CONSUMER_KEY, WOO_ESCOLAR_CONSUMER_SECRET
    WOO_<PLATFORM>_WEBHOOK_SECRET (optional, enables signature checks)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from catalog_sync.models import PlatformEnum
from catalog_sync.services.sync_errors import ConfigurationError
from catalog_sync.utils.env import optional_env

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformConfig:
    """Resolved credentials for one platform."""

    platform: PlatformEnum
    url: str
    consumer_key: str
    consumer_secret: str
    webhook_secret: Optional[str] = None


def _env_prefix(platform: PlatformEnum) -> str:
    # woo_moraleja -> WOO_MORALEJA
    return platform.value.upper()


def parse_platform(value: Union[str, PlatformEnum]) -> PlatformEnum:
    """Coerce a routing parameter into a PlatformEnum.

    Raises:
        ConfigurationError: Unknown platform name
    """
    if isinstance(value, PlatformEnum):
        return value
    try:
        return PlatformEnum(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown platform: {value}", platform=str(value))


def get_config(platform: Union[str, PlatformEnum]) -> Optional[PlatformConfig]:
    """Return the platform config, or None when any required value is missing.

    Values are read at call time so rotated credentials apply without a
    restart.
    """
    platform = parse_platform(platform)
    prefix = _env_prefix(platform)

    url = optional_env(f"{prefix}_URL")
    key = optional_env(f"{prefix}_CONSUMER_KEY")
    secret = optional_env(f"{prefix}_CONSUMER_SECRET")

    if not url or not key or not secret:
        missing = [
            name for name, value in (("URL", url), ("CONSUMER_KEY", key), ("CONSUMER_SECRET", secret))
            if not value
        ]
        logger.debug(f"[PLATFORM_CONFIG] {platform.value} disabled, missing: {', '.join(missing)}")
        return None

    return PlatformConfig(
        platform=platform,
        url=url.rstrip("/"),
        consumer_key=key,
        consumer_secret=secret,
        webhook_secret=get_webhook_secret(platform),
    )


def get_webhook_secret(platform: Union[str, PlatformEnum]) -> Optional[str]:
    """Shared secret for webhook signatures; independent of API credentials."""
    platform = parse_platform(platform)
    return optional_env(f"{_env_prefix(platform)}_WEBHOOK_SECRET")


def require_config(platform: Union[str, PlatformEnum]) -> PlatformConfig:
    """Like get_config but raises for a disabled platform.

    Raises:
        ConfigurationError: Platform credentials incomplete
    """
    config = get_config(platform)
    if config is None:
        name = parse_platform(platform).value
        raise ConfigurationError(f"Platform {name} is not configured", platform=name)
    return config


def configured_platforms() -> List[PlatformEnum]:
    """Platforms with complete credentials, in declaration order."""
    return [platform for platform in PlatformEnum if get_config(platform) is not None]
