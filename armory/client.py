# armory/client.py
"""
HTTP client for the remote item catalog.
"""
from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from .errors import NetworkError

log = logging.getLogger(__name__)


class CatalogClient:
    """Fetches the full item catalog with a plain GET and decodes it as JSON."""

    def __init__(
        self,
        catalog_url: str,
        *,
        request_timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.catalog_url = catalog_url
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def fetch_catalog(self) -> Any:
        """
        Returns the decoded catalog body.
        Any transport error, timeout, non-2xx status or undecodable body is
        raised as NetworkError so the caller can retry it.
        """
        started = time.monotonic()
        try:
            async with self._get_session().get(
                self.catalog_url,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                if resp.status >= 300:
                    raise NetworkError(f"Catalog request failed with HTTP {resp.status}.")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Catalog request failed: {e!r}") from e
        except ValueError as e:
            raise NetworkError("Catalog response was not valid JSON.") from e

        log.debug("Fetched catalog from %s in %.2f s.", self.catalog_url, time.monotonic() - started)
        return payload

    async def probe(self) -> bool:
        """Checks whether the catalog endpoint answers a HEAD request."""
        try:
            async with self._get_session().head(
                self.catalog_url,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                log.info("Catalog endpoint %s answered HTTP %d.", self.catalog_url, resp.status)
                return resp.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Catalog endpoint %s is not reachable: %r", self.catalog_url, e)
            return False
