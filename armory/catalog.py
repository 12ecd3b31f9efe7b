# armory/catalog.py
"""
Owns the canonical item catalog: fetches it, retries with exponential
backoff, indexes it by category and swaps the live snapshot atomically.
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Iterable, Mapping, Optional, Tuple, TYPE_CHECKING

from .errors import CatalogUnavailable, NetworkError
from .item import ItemRecord, normalize_payload

if TYPE_CHECKING:
    from .client import CatalogClient
    from .events import EventBus
    from .persistence import PersistenceAdapter

log = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], float]


class RefreshStatus(Enum):
    LOADED = "loaded"            # fetched from the remote catalog
    RESTORED = "restored"        # a fresh-enough stored snapshot was used
    UNAVAILABLE = "unavailable"  # every attempt failed


@dataclass(frozen=True)
class Catalog:
    """An immutable, fully built catalog snapshot."""
    by_category: Mapping[str, Tuple[ItemRecord, ...]]
    fetched_at: float
    version: int

    @classmethod
    def build(cls, items: Iterable[ItemRecord], fetched_at: float, version: int) -> "Catalog":
        index: Dict[str, list] = {}
        for item in items:
            index.setdefault(item.category.lower(), []).append(item)
        frozen = {category: tuple(records) for category, records in index.items()}
        return cls(by_category=MappingProxyType(frozen), fetched_at=fetched_at, version=version)

    def category_items(self, category: str) -> Tuple[ItemRecord, ...]:
        return self.by_category.get(category.lower(), ())

    def __len__(self) -> int:
        return sum(len(items) for items in self.by_category.values())


class CatalogCache:
    """
    Holds exactly one live Catalog.

    refresh() coalesces: while one refresh is running, every other caller
    awaits that same attempt. A failed refresh never touches the snapshot
    that was already live.
    """

    def __init__(
        self,
        client: "CatalogClient",
        *,
        persistence: Optional["PersistenceAdapter"] = None,
        events: Optional["EventBus"] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        ttl_seconds: float = 3600.0,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc = time.time,
    ):
        self.client = client
        self.persistence = persistence
        self.events = events
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.ttl_seconds = ttl_seconds
        self._sleep = sleep
        self._clock = clock

        self._catalog: Optional[Catalog] = None
        self._version = 0
        self._inflight: Optional[asyncio.Future] = None
        self.last_status: Optional[RefreshStatus] = None

    # --- Read side ---

    @property
    def catalog(self) -> Optional[Catalog]:
        """The current snapshot, or None before the first successful load."""
        return self._catalog

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def category_items(self, category: str) -> Tuple[ItemRecord, ...]:
        catalog = self._catalog
        if catalog is None:
            return ()
        return catalog.category_items(category)

    async def wait_ready(self) -> Optional[Catalog]:
        """Waits for a refresh already in flight (never starts one) and returns the snapshot."""
        if self.is_refreshing:
            await asyncio.shield(self._inflight)
        return self._catalog

    async def snapshot(self) -> Catalog:
        """Like wait_ready(), but raises CatalogUnavailable when there is no catalog at all."""
        catalog = await self.wait_ready()
        if catalog is None:
            raise CatalogUnavailable(
                "No catalog loaded" if self.last_status is None else f"Last refresh: {self.last_status.value}"
            )
        return catalog

    # --- Refresh ---

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    async def refresh(self, force: bool = False) -> RefreshStatus:
        """
        Loads the catalog, retrying failed fetches.
        Callers arriving while a refresh is running share its outcome.
        """
        if self.is_refreshing:
            log.debug("Catalog refresh already in flight, joining it.")
        else:
            self._inflight = asyncio.ensure_future(self._run_refresh(force))
        # Shielded so a cancelled caller does not abort the shared refresh.
        return await asyncio.shield(self._inflight)

    async def _run_refresh(self, force: bool) -> RefreshStatus:
        if not force and await self._restore_snapshot():
            self.last_status = RefreshStatus.RESTORED
            return self.last_status

        attempts = self.max_retries + 1
        for attempt in range(attempts):
            self._emit("catalog.attempt", attempt=attempt)
            try:
                payload = await self.client.fetch_catalog()
                items = normalize_payload(payload)
            except NetworkError as e:
                self._emit("catalog.attempt_failed", attempt=attempt, error=str(e))
                if attempt < self.max_retries:
                    await self._sleep(self.backoff_delay(attempt))
                continue

            catalog = self._swap(items, self._clock())
            self._emit("catalog.loaded", version=catalog.version, items=len(catalog))
            if self.persistence:
                await self.persistence.save_catalog(catalog.by_category, catalog.fetched_at)
            self.last_status = RefreshStatus.LOADED
            return self.last_status

        self._emit(
            "catalog.unavailable",
            attempts=attempts,
            kept_version=self._catalog.version if self._catalog else None,
        )
        self.last_status = RefreshStatus.UNAVAILABLE
        return self.last_status

    async def _restore_snapshot(self) -> bool:
        if not self.persistence:
            return False
        stored = await self.persistence.load_catalog(self.ttl_seconds, now=self._clock())
        if stored is None:
            return False
        by_category, fetched_at = stored
        if self._catalog is not None and self._catalog.fetched_at >= fetched_at:
            # The live catalog is at least as new as the stored one.
            log.debug("Stored catalog is not newer than version %d, keeping it.", self._catalog.version)
            return True
        items = [item for records in by_category.values() for item in records]
        catalog = self._swap(items, fetched_at)
        self._emit("catalog.restored", version=catalog.version, items=len(catalog))
        return True

    async def close(self):
        """Stops a refresh that is still running (e.g. sleeping between retries)."""
        if not self.is_refreshing:
            return
        self._inflight.cancel()
        try:
            await self._inflight
        except asyncio.CancelledError:
            log.info("Catalog refresh stopped.")

    def _swap(self, items: Iterable[ItemRecord], fetched_at: float) -> Catalog:
        # Build completely first, then publish with one assignment.
        catalog = Catalog.build(items, fetched_at=fetched_at, version=self._version + 1)
        self._version = catalog.version
        self._catalog = catalog
        return catalog

    def _emit(self, event: str, **fields):
        if self.events:
            self.events.emit(event, **fields)
        else:
            log.info("%s %s", event, fields)
