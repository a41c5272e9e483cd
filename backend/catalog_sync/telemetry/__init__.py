"""Error reporting for swallowed sync failures and webhook conflicts (see sentry.py)."""

from catalog_sync.telemetry.sentry import capture_exception, capture_message, init_sentry

__all__ = ["init_sentry", "capture_exception", "capture_message"]
