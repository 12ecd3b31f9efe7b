# armory/service.py
"""
Entry point for the armory core.
Wires the catalog cache, search coordinator, build assembler and persistence
together and exposes the operations the UI layer calls.
"""
import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import config
from .build import BuildAssembler, BuildResult
from .catalog import CatalogCache, RefreshStatus
from .client import CatalogClient
from .errors import PersistenceError
from .events import EventBus
from .persistence import BuildSelection, KeyValueStore, PersistenceAdapter, SqliteKeyValueStore
from .search import ResultListener, SearchCoordinator, SearchResult

log = logging.getLogger(__name__)


class ArmoryService:
    """Owns one instance of every core component. No module-level state."""

    def __init__(
        self,
        settings: config.Settings = config.settings,
        *,
        client: Optional[CatalogClient] = None,
        store: Optional[KeyValueStore] = None,
        events: Optional[EventBus] = None,
        listener: Optional[ResultListener] = None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.events = events or EventBus()
        self.client = client or CatalogClient(settings.catalog_url, request_timeout=settings.request_timeout)
        self.store = store if store is not None else SqliteKeyValueStore(settings.store_path)
        self.persistence = PersistenceAdapter(self.store, events=self.events)
        self.cache = CatalogCache(
            self.client,
            persistence=self.persistence,
            events=self.events,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base_seconds,
            ttl_seconds=settings.catalog_ttl_seconds,
            sleep=sleep,
        )
        self.coordinator = SearchCoordinator(
            self.cache,
            persistence=self.persistence,
            events=self.events,
            listener=listener,
            debounce_seconds=settings.debounce_seconds,
            suggestion_limit=settings.suggestion_limit,
        )
        self.assembler = BuildAssembler()
        self.startup_refresh: Optional[asyncio.Task] = None

    # --- Lifecycle ---

    async def start(self) -> BuildSelection:
        """
        Opens the store, restores the saved build and kicks off the first
        catalog refresh in the background. Returns the restored build.
        """
        log.info("Starting armory (catalog: %s)...", self.settings.catalog_url)
        connect = getattr(self.store, "connect", None)
        if connect is not None:
            try:
                await connect()
            except PersistenceError:
                log.exception("Could not open the store, builds will not be saved.")

        selection = await self.load_build()
        self.coordinator.load_selection(selection)
        self.startup_refresh = asyncio.create_task(self.refresh_catalog(), name="CatalogRefresh")
        return selection

    async def close(self):
        log.info("Shutting down armory...")
        await self.coordinator.close()
        if self.startup_refresh and not self.startup_refresh.done():
            self.startup_refresh.cancel()
            try:
                await self.startup_refresh
            except asyncio.CancelledError:
                log.info("Catalog refresh cancelled.")
        await self.cache.close()
        await self.client.close()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            await close_store()
        log.info("Armory shutdown complete.")

    # --- Exposed Operations ---

    async def search_equipment(self, slot_id: str, text: str) -> SearchResult:
        return await self.coordinator.search(slot_id, text)

    async def assemble_build(self, selection: Mapping[str, str]) -> BuildResult:
        catalog = await self.cache.wait_ready()
        result = self.assembler.assemble(catalog, selection)
        self.events.emit(
            "build.assembled",
            items=len(result.items),
            stats=len(result.breakdown),
            warnings=len(result.warnings),
        )
        return result

    async def persist_build(self, selection: Mapping[str, str]) -> bool:
        return await self.persistence.save_build(dict(selection))

    async def load_build(self) -> BuildSelection:
        return await self.persistence.load_build()

    async def refresh_catalog(self, force: bool = False) -> RefreshStatus:
        return await self.cache.refresh(force=force)

    async def diagnostics(self) -> Dict[str, Any]:
        """Reports catalog endpoint reachability, store health and the live catalog."""
        report: Dict[str, Any] = {"endpoint_reachable": await self.client.probe()}

        probe_key = "diagnosticsProbe"
        try:
            await self.store.set(probe_key, "ok")
            report["store_ok"] = (await self.store.get(probe_key)) == "ok"
        except PersistenceError as e:
            log.warning("Store check failed: %s", e)
            report["store_ok"] = False

        catalog = self.cache.catalog
        report["catalog_version"] = catalog.version if catalog else None
        report["catalog_items"] = len(catalog) if catalog else 0
        report["last_refresh"] = self.cache.last_status.value if self.cache.last_status else None
        self.events.emit("diagnostics", **report)
        return report
