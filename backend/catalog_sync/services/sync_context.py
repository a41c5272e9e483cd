"""Shared runtime state for the sync engine.

WHAT:
    SyncContext owns what must outlive a single request:
    - one WooClient per platform (each with its own attribute/term cache)
    - keyed locks making sync single-flight per (kind, entity, platform)
    - the semaphore bounding concurrent outbound work in batches

WHY:
    Webhook handlers and routers stay stateless; everything shared lives in
    one explicitly constructed object stored on app.state (API) or in the
    ARQ worker context, never in module globals.

REFERENCES:
    - catalog_sync/main.py (construction)
    - catalog_sync/workers/arq_worker.py (construction for the sweep)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

import httpx

from catalog_sync.models import PlatformEnum
from catalog_sync.services.platform_config import PlatformConfig, parse_platform, require_config
from catalog_sync.services.woo_client import WooClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class KeyedLocks:
    """asyncio locks created on demand per key and dropped when idle."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                self._holders.pop(key, None)
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class SyncResult:
    """Outcome of one outbound sync call."""

    kind: str
    entity_id: str
    platform: str
    action: str  # created | updated
    external_id: Optional[str]
    response: Any = None


@dataclass
class BatchOutcome:
    """Aggregated result of a semaphore-bounded batch."""

    results: List[Any] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)


class SyncContext:
    """Per-process holder of platform clients, locks and the batch semaphore."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_concurrency: int = 5,
        default_country: str = "CL",
        sync_enabled: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self.default_country = default_country
        self.sync_enabled = sync_enabled
        self.locks = KeyedLocks()
        self.semaphore = asyncio.Semaphore(max_concurrency)
        self._transport = transport
        self._clients: Dict[PlatformEnum, WooClient] = {}

    @classmethod
    def from_settings(cls, settings: Any, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SyncContext":
        return cls(
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            max_concurrency=settings.MAX_CONCURRENT_SYNCS,
            default_country=settings.DEFAULT_COUNTRY,
            sync_enabled=settings.SYNC_ENABLED,
            transport=transport,
        )

    def client_for(self, platform: Any) -> WooClient:
        """Client for a configured platform.

        A client is rebuilt when the platform's credentials change so
        rotated keys apply without a restart; its cache starts empty then.

        Raises:
            ConfigurationError: Platform is not configured
        """
        platform = parse_platform(platform)
        config: PlatformConfig = require_config(platform)
        client = self._clients.get(platform)
        if client is None or client.config != config:
            client = WooClient(config, timeout=self.timeout, transport=self._transport)
            self._clients[platform] = client
        return client

    def clear_caches(self) -> None:
        """Empty every client's attribute/term cache."""
        for client in self._clients.values():
            client.cache.clear()

    async def run_batch(
        self,
        items: Iterable[T],
        worker: Callable[[T], Awaitable[R]],
    ) -> BatchOutcome:
        """Run worker over items with bounded parallelism.

        One item's exception is collected and never cancels the others.
        """
        async def guarded(item: T) -> R:
            async with self.semaphore:
                return await worker(item)

        gathered = await asyncio.gather(*(guarded(item) for item in items), return_exceptions=True)

        outcome = BatchOutcome()
        for result in gathered:
            if isinstance(result, BaseException):
                outcome.errors.append(result)
            else:
                outcome.results.append(result)
        return outcome
