"""Typed errors raised by the sync engine.

WHAT:
    One small hierarchy rooted at SyncError so callers can catch the whole
    family at a boundary (lifecycle hooks, routers, batch runners) while
    still distinguishing the cases that map to different HTTP statuses.

WHY:
    Orchestrators propagate these to their caller. Retry policy, swallowing
    and HTTP translation are the caller's decision, never the core's.

REFERENCES:
    - catalog_sync/services/woo_client.py (raises RemoteApiError)
    - catalog_sync/services/lifecycle.py (swallows at the write boundary)
    - catalog_sync/routers/sync.py (HTTP translation)
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base class for every sync engine failure."""


class ConfigurationError(SyncError):
    """Platform credentials are missing or incomplete.

    Fatal for that platform only; other platforms keep working.
    """

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.platform = platform


class ValidationError(SyncError):
    """Entity cannot be synced as-is (missing natural key, no line items)."""

    def __init__(self, message: str, kind: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.kind = kind
        self.entity_id = entity_id


class RemoteApiError(SyncError):
    """Platform answered with a non-2xx status or could not be reached.

    status is None for transport failures (timeouts, DNS, refused).
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        endpoint: Optional[str] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.endpoint = endpoint
        self.body = body


class NotFoundError(RemoteApiError):
    """404 from the platform. Treated as success on delete."""


class MappingConflict(SyncError):
    """Inbound value disagrees with a protected canonical field.

    Never raised by the mappers; instances are collected and logged so the
    canonical value is kept and processing continues.
    """

    def __init__(self, field: str, canonical_value: Any, incoming_value: Any):
        super().__init__(
            f"Protected field '{field}' conflict: kept {canonical_value!r}, "
            f"discarded {incoming_value!r}"
        )
        self.field = field
        self.canonical_value = canonical_value
        self.incoming_value = incoming_value


class CascadeDepthExceeded(SyncError):
    """A line-item product cascade tried to cascade again."""

    def __init__(self, message: str, depth: int):
        super().__init__(message)
        self.depth = depth
