import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


def optional_env(name: str) -> Optional[str]:
    """Trimmed value of an environment variable, None when unset or blank."""
    value = (os.getenv(name) or "").strip()
    return value or None


def require_env(name: str) -> str:
    """Return a mandatory environment variable or raise RuntimeError.
    WHY: The worker refuses to start without its database instead of failing on the first cron tick.
    """
    value = optional_env(name)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_env_file() -> None:
    """Load backend/.env into os.environ without overriding exported values.

    WHAT:
        Fills in DATABASE_URL, WOO_* credentials and webhook secrets from a
        local .env file for development.
    WHY:
        Deployment-exported credentials must always win over a stale .env.
    """
    from dotenv import load_dotenv

    if load_dotenv(override=False):
        logger.info("[ENV] Loaded local .env file (exported variables kept)")
    else:
        logger.debug("[ENV] No local .env file found")
