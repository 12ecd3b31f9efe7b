# tests/test_catalog_cache.py
import unittest
from unittest.mock import AsyncMock, MagicMock, call
import sys
import os
import asyncio
import json

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config
from armory.catalog import Catalog, CatalogCache, RefreshStatus
from armory.errors import CatalogUnavailable, NetworkError
from armory.events import EventBus
from armory.item import ItemRecord
from armory.persistence import MemoryKeyValueStore, PersistenceAdapter
from recording import RecordingListener

BOW_PAYLOAD = [{"name": "Bow of the Ages", "type": "bow", "damage": 10}]
NOW = 1_700_000_000.0


class TestCatalogCache(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.fetch_catalog = AsyncMock(return_value=BOW_PAYLOAD)
        self.sleep = AsyncMock()
        self.recorder = RecordingListener()
        self.events = EventBus()
        self.events.subscribe(self.recorder)
        self.cache = CatalogCache(self.client, events=self.events, sleep=self.sleep, clock=lambda: NOW)

    async def test_refresh_builds_category_index(self):
        status = await self.cache.refresh()

        self.assertEqual(status, RefreshStatus.LOADED)
        self.assertEqual(self.cache.catalog.version, 1)
        self.assertEqual(self.cache.catalog.fetched_at, NOW)
        bows = self.cache.category_items("BOW")
        self.assertEqual([i.name for i in bows], ["Bow of the Ages"])
        self.assertEqual(dict(bows[0].stats), {"damage": 10})

    async def test_category_items_never_raises(self):
        self.assertEqual(self.cache.category_items("bow"), ())
        await self.cache.refresh()
        self.assertEqual(self.cache.category_items("relik"), ())

    async def test_mapping_payload_is_accepted(self):
        self.client.fetch_catalog.return_value = {"Bow of the Ages": {"type": "Bow", "damage": 10}}
        await self.cache.refresh()
        self.assertEqual(self.cache.category_items("bow")[0].name, "Bow of the Ages")

    async def test_version_increments_and_snapshot_is_replaced(self):
        await self.cache.refresh()
        first = self.cache.catalog
        self.client.fetch_catalog.return_value = BOW_PAYLOAD + [{"name": "Iron Cap", "type": "helmet"}]
        await self.cache.refresh()

        self.assertIsNot(self.cache.catalog, first)
        self.assertEqual(self.cache.catalog.version, 2)
        # The old snapshot is untouched.
        self.assertEqual(first.category_items("helmet"), ())
        self.assertEqual(len(first), 1)

    async def test_retry_backoff_then_unavailable(self):
        """A failing refresh waits 1s, 2s, 4s and gives up after the 4th attempt."""
        self.client.fetch_catalog.side_effect = NetworkError("down")

        status = await self.cache.refresh()

        self.assertEqual(status, RefreshStatus.UNAVAILABLE)
        self.assertEqual(self.client.fetch_catalog.await_count, 4)
        self.assertEqual(self.sleep.await_args_list, [call(1.0), call(2.0), call(4.0)])
        self.assertIsNone(self.cache.catalog)
        self.assertIn("catalog.unavailable", self.recorder.names())
        with self.assertRaises(CatalogUnavailable):
            await self.cache.snapshot()

    async def test_failed_refresh_keeps_last_good_catalog(self):
        await self.cache.refresh()
        good = self.cache.catalog
        self.client.fetch_catalog.side_effect = NetworkError("down")

        status = await self.cache.refresh()

        self.assertEqual(status, RefreshStatus.UNAVAILABLE)
        self.assertIs(self.cache.catalog, good)
        self.assertEqual(len(self.cache.category_items("bow")), 1)
        self.assertIs(await self.cache.snapshot(), good)

    async def test_recovers_on_a_later_attempt(self):
        self.client.fetch_catalog.side_effect = [NetworkError("down"), NetworkError("down"), BOW_PAYLOAD]

        status = await self.cache.refresh()

        self.assertEqual(status, RefreshStatus.LOADED)
        self.assertEqual(self.sleep.await_args_list, [call(1.0), call(2.0)])

    async def test_malformed_payload_is_retried(self):
        self.client.fetch_catalog.side_effect = ["garbage", BOW_PAYLOAD]
        status = await self.cache.refresh()
        self.assertEqual(status, RefreshStatus.LOADED)
        self.assertEqual(self.client.fetch_catalog.await_count, 2)

    async def test_concurrent_refreshes_share_one_fetch(self):
        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            return BOW_PAYLOAD

        self.client.fetch_catalog.side_effect = slow_fetch

        first = asyncio.create_task(self.cache.refresh())
        second = asyncio.create_task(self.cache.refresh())
        await asyncio.sleep(0)
        self.assertTrue(self.cache.is_refreshing)
        gate.set()
        results = await asyncio.gather(first, second)

        self.assertEqual(results, [RefreshStatus.LOADED, RefreshStatus.LOADED])
        self.assertEqual(self.client.fetch_catalog.await_count, 1)
        self.assertFalse(self.cache.is_refreshing)

    async def test_cancelled_caller_does_not_abort_shared_refresh(self):
        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            return BOW_PAYLOAD

        self.client.fetch_catalog.side_effect = slow_fetch
        impatient = asyncio.create_task(self.cache.refresh())
        patient = asyncio.create_task(self.cache.refresh())
        await asyncio.sleep(0)
        impatient.cancel()
        gate.set()

        self.assertEqual(await patient, RefreshStatus.LOADED)
        self.assertIsNotNone(self.cache.catalog)

    async def test_wait_ready_does_not_start_a_refresh(self):
        self.assertIsNone(await self.cache.wait_ready())
        self.client.fetch_catalog.assert_not_awaited()


class TestCatalogSnapshotPersistence(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.fetch_catalog = AsyncMock(return_value=BOW_PAYLOAD)
        self.store = MemoryKeyValueStore()
        self.persistence = PersistenceAdapter(self.store)

    def _cache(self, now: float) -> CatalogCache:
        return CatalogCache(
            self.client, persistence=self.persistence, ttl_seconds=3600,
            sleep=AsyncMock(), clock=lambda: now,
        )

    async def test_successful_fetch_is_stored(self):
        await self._cache(NOW).refresh()
        stored = json.loads(self.store.data[config.CATALOG_KEY])
        self.assertEqual(stored["fetchedAt"], NOW)
        self.assertEqual(stored["byCategory"]["bow"][0]["name"], "Bow of the Ages")

    async def test_fresh_snapshot_skips_the_network(self):
        await self._cache(NOW).refresh()
        self.client.fetch_catalog.reset_mock()

        cache = self._cache(NOW + 60)
        status = await cache.refresh()

        self.assertEqual(status, RefreshStatus.RESTORED)
        self.client.fetch_catalog.assert_not_awaited()
        self.assertEqual(cache.catalog.fetched_at, NOW)
        self.assertEqual(cache.category_items("bow")[0], ItemRecord("Bow of the Ages", "bow", {"damage": 10}))

    async def test_stale_snapshot_is_refetched(self):
        await self._cache(NOW).refresh()
        self.client.fetch_catalog.reset_mock()

        status = await self._cache(NOW + 7200).refresh()

        self.assertEqual(status, RefreshStatus.LOADED)
        self.client.fetch_catalog.assert_awaited_once()

    async def test_forced_refresh_ignores_snapshot(self):
        await self._cache(NOW).refresh()
        self.client.fetch_catalog.reset_mock()

        status = await self._cache(NOW + 60).refresh(force=True)

        self.assertEqual(status, RefreshStatus.LOADED)
        self.client.fetch_catalog.assert_awaited_once()

    async def test_live_catalog_is_not_reloaded_from_its_own_snapshot(self):
        cache = self._cache(NOW)
        await cache.refresh()
        live = cache.catalog

        status = await cache.refresh()

        self.assertEqual(status, RefreshStatus.RESTORED)
        self.assertIs(cache.catalog, live)
        self.assertEqual(cache.catalog.version, 1)
        self.client.fetch_catalog.assert_awaited_once()

    async def test_older_snapshot_never_replaces_newer_live_catalog(self):
        cache = self._cache(NOW)
        await cache.refresh()
        live = cache.catalog
        # A stale save left an older catalog in the store.
        older = {"bow": (ItemRecord("Elder Longbow", "bow", {"damage": 7}),)}
        await self.persistence.save_catalog(older, NOW - 60)

        await cache.refresh()

        self.assertIs(cache.catalog, live)
        self.assertEqual(cache.category_items("bow")[0].name, "Bow of the Ages")


class TestCatalog(unittest.TestCase):

    def test_build_preserves_insertion_order(self):
        items = [ItemRecord("B", "bow"), ItemRecord("Cap", "helmet"), ItemRecord("A", "Bow")]
        catalog = Catalog.build(items, fetched_at=0.0, version=3)
        self.assertEqual([i.name for i in catalog.category_items("bow")], ["B", "A"])
        self.assertEqual(len(catalog), 3)
        with self.assertRaises(TypeError):
            catalog.by_category["bow"] = ()


if __name__ == '__main__':
    unittest.main()
