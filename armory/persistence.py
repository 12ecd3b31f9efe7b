# armory/persistence.py
"""
Durable load/save of the user's slot selections and the catalog snapshot.
Stores are plain string key/value; PersistenceAdapter handles (de)serializing
and absorbs every store failure so search and build never block on it.
"""
import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple

import aiosqlite

import config
from .errors import PersistenceError
from .item import ItemRecord

log = logging.getLogger(__name__)

BuildSelection = Dict[str, str]
StoredCatalog = Tuple[Dict[str, List[ItemRecord]], float]


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store. Nothing survives a restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SqliteKeyValueStore:
    """A single-table key/value store backed by an aiosqlite connection."""

    def __init__(self, path: str):
        self.path = path
        self.conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Opens the database file and makes sure the table exists."""
        try:
            self.conn = await aiosqlite.connect(self.path)
            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            await self.conn.commit()
            log.info("Opened key/value store at %s.", self.path)
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Could not open store at {self.path}: {e}") from e

    async def close(self):
        if self.conn:
            await self.conn.close()
            self.conn = None
            log.info("Key/value store at %s closed.", self.path)

    async def get(self, key: str) -> Optional[str]:
        if not self.conn:
            raise PersistenceError("Store is not connected.")
        try:
            async with self.conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not read '{key}': {e}") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        if not self.conn:
            raise PersistenceError("Store is not connected.")
        try:
            await self.conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, time.time()),
            )
            await self.conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not write '{key}': {e}") from e


class PersistenceAdapter:
    """Serializes builds and catalog snapshots into a KeyValueStore."""

    def __init__(self, store: KeyValueStore, events=None):
        self.store = store
        self.events = events

    def _failed(self, operation: str, error: Exception):
        log.warning("Persistence %s failed: %s", operation, error)
        if self.events:
            self.events.emit("persistence.failed", operation=operation, error=str(error))

    # --- Builds ---

    async def save_build(self, selection: BuildSelection) -> bool:
        """Overwrites the stored build. Returns False if the store failed."""
        try:
            await self.store.set(config.BUILD_KEY, json.dumps(dict(selection), sort_keys=True))
        except (PersistenceError, TypeError, ValueError) as e:
            self._failed("save_build", e)
            return False
        return True

    async def load_build(self) -> BuildSelection:
        """Reads the stored build; an empty selection if absent, malformed or unreadable."""
        try:
            raw = await self.store.get(config.BUILD_KEY)
        except PersistenceError as e:
            self._failed("load_build", e)
            return {}
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            log.warning("Stored build is not valid JSON, ignoring it.")
            return {}
        if not isinstance(data, dict):
            log.warning("Stored build is not an object, ignoring it.")
            return {}
        return {str(slot): text for slot, text in data.items() if isinstance(text, str)}

    # --- Catalog Snapshot ---

    async def save_catalog(self, by_category: Dict[str, Any], fetched_at: float) -> bool:
        payload = {
            "byCategory": {
                category: [item.to_dict() for item in items]
                for category, items in by_category.items()
            },
            "fetchedAt": fetched_at,
        }
        try:
            await self.store.set(config.CATALOG_KEY, json.dumps(payload))
        except (PersistenceError, TypeError, ValueError) as e:
            self._failed("save_catalog", e)
            return False
        return True

    async def load_catalog(self, max_age: float, now: Optional[float] = None) -> Optional[StoredCatalog]:
        """
        Returns (by_category, fetched_at) for a stored snapshot younger than
        max_age seconds, or None if there is no usable snapshot.
        """
        now = time.time() if now is None else now
        try:
            raw = await self.store.get(config.CATALOG_KEY)
        except PersistenceError as e:
            self._failed("load_catalog", e)
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            fetched_at = float(data["fetchedAt"])
            by_category = {
                str(category): [ItemRecord.from_dict(item) for item in items]
                for category, items in data["byCategory"].items()
            }
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError):
            log.warning("Stored catalog snapshot is malformed, ignoring it.")
            return None

        age = now - fetched_at
        if age > max_age or age < 0:
            log.debug("Stored catalog snapshot is %.0f s old (ttl %.0f s), ignoring it.", age, max_age)
            return None
        return by_category, fetched_at
