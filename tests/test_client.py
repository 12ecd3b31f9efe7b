import unittest
from unittest.mock import AsyncMock
import sys
import os

import aiohttp

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from armory.client import CatalogClient
from armory.errors import NetworkError


class FakeResponse:
    def __init__(self, status=200, payload=None, json_error=None):
        self.status = status
        self._payload = payload
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error:
            raise self._json_error
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Answers every request with the same canned response (or error)."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []
        self.close = AsyncMock()

    def _request(self, method, url, **kwargs):
        self.requests.append((method, url))
        if self.error:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._request("GET", url, **kwargs)

    def head(self, url, **kwargs):
        return self._request("HEAD", url, **kwargs)


URL = "https://catalog.example/items"


class TestCatalogClient(unittest.IsolatedAsyncioTestCase):

    async def test_fetch_returns_decoded_payload(self):
        session = FakeSession(FakeResponse(payload=[{"name": "Bow", "type": "bow"}]))
        client = CatalogClient(URL, session=session)

        payload = await client.fetch_catalog()

        self.assertEqual(payload, [{"name": "Bow", "type": "bow"}])
        self.assertEqual(session.requests, [("GET", URL)])

    async def test_http_error_status_raises_network_error(self):
        client = CatalogClient(URL, session=FakeSession(FakeResponse(status=503)))
        with self.assertRaises(NetworkError):
            await client.fetch_catalog()

    async def test_transport_error_raises_network_error(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        client = CatalogClient(URL, session=session)
        with self.assertRaises(NetworkError):
            await client.fetch_catalog()

    async def test_bad_json_raises_network_error(self):
        session = FakeSession(FakeResponse(json_error=ValueError("Expecting value")))
        client = CatalogClient(URL, session=session)
        with self.assertRaises(NetworkError):
            await client.fetch_catalog()

    async def test_probe(self):
        self.assertTrue(await CatalogClient(URL, session=FakeSession(FakeResponse(status=200))).probe())
        self.assertFalse(await CatalogClient(URL, session=FakeSession(FakeResponse(status=404))).probe())
        down = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        self.assertFalse(await CatalogClient(URL, session=down).probe())

    async def test_injected_session_is_not_closed(self):
        session = FakeSession(FakeResponse())
        client = CatalogClient(URL, session=session)
        await client.close()
        session.close.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()
