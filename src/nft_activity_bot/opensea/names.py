"""Wallet address to display name resolution via the OpenSea accounts API."""

from __future__ import annotations

import logging
from collections import OrderedDict

import httpx
from web3 import Web3

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.opensea.io"
DEFAULT_CACHE_CAPACITY = 100
DEFAULT_TIMEOUT = 10.0

# 0x38a16…c7eb3
ADDR_PREFIX_LEN = 7
ADDR_SUFFIX_LEN = 5


def short_address(address: str) -> str:
    """Shorten a full address to ``0x38a16…c7eb3``."""
    if len(address) <= ADDR_PREFIX_LEN + ADDR_SUFFIX_LEN:
        return address
    return f"{address[:ADDR_PREFIX_LEN]}…{address[-ADDR_SUFFIX_LEN:]}"


class NameResolver:
    """Resolves addresses to OpenSea usernames with an LRU cache.

    Lookups never raise: any failure degrades to the short address.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = DEFAULT_API_URL,
        cache_capacity: int = DEFAULT_CACHE_CAPACITY,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the resolver.

        Args:
            api_key: OpenSea API key sent as ``X-API-KEY``.
            base_url: OpenSea API base URL.
            cache_capacity: Maximum number of cached usernames.
            timeout: HTTP request timeout in seconds.
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.cache_capacity = cache_capacity
        self.timeout = timeout
        self._cache: OrderedDict[str, str] = OrderedDict()

    def _cache_get(self, address: str) -> str | None:
        username = self._cache.get(address)
        if username is not None:
            self._cache.move_to_end(address)
        return username

    def _cache_put(self, address: str, username: str) -> None:
        self._cache[address] = username
        self._cache.move_to_end(address)
        while len(self._cache) > self.cache_capacity:
            self._cache.popitem(last=False)

    async def _fetch_username(self, address: str) -> str | None:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        url = f"{self.base_url}/api/v2/accounts/{address}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=headers)
                if response.status_code != 200:
                    logger.debug(f"Account lookup for {address} returned {response.status_code}")
                    return None
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Account lookup for {address} failed: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Account lookup for {address} returned invalid JSON: {e}")
            return None
        return str(data.get("username") or "")

    async def resolve(self, address: str) -> str:
        """Return a display name for an address.

        Returns the OpenSea username if one is set, otherwise the short
        address. Values that are not addresses are returned unchanged.
        """
        if not address or not Web3.is_address(address):
            return address
        key = address.lower()

        username = self._cache_get(key)
        if username is None:
            username = await self._fetch_username(address)
            if username is None:
                return short_address(address)
            self._cache_put(key, username)

        return username or short_address(address)
