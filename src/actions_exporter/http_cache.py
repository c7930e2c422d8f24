"""
HTTP response caching for the GitHub client.

This module provides a byte-bounded LRU cache and an httpx transport that
revalidates cached GET responses with ETag / Last-Modified validators.
GitHub does not count 304 responses against the rate limit, so repeated
polls of unchanged lists become cheap. Cached entries are never served
without asking the server first.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

# Headers describing the stored body; a 304 must not overwrite them.
_ENTITY_HEADERS = {"content-length", "content-encoding", "transfer-encoding"}


@dataclass
class CachedResponse:
    """A stored GET response with its validators."""

    status_code: int
    headers: list[tuple[str, str]]
    content: bytes

    @property
    def etag(self) -> str | None:
        return httpx.Headers(self.headers).get("etag")

    @property
    def last_modified(self) -> str | None:
        return httpx.Headers(self.headers).get("last-modified")

    @property
    def size(self) -> int:
        header_bytes = sum(len(k) + len(v) for k, v in self.headers)
        return len(self.content) + header_bytes


class LRUByteCache:
    """
    Least-recently-used cache bounded by the total size of its entries.

    Entries larger than the whole budget are never stored.
    """

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        self._entries: OrderedDict[str, CachedResponse] = OrderedDict()
        self._size = 0
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def size_bytes(self) -> int:
        return self._size

    def get(self, key: str) -> CachedResponse | None:
        """Get an entry and mark it as most recently used."""
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        self._entries.move_to_end(key)
        self._stats["hits"] += 1
        return entry

    def set(self, key: str, entry: CachedResponse) -> bool:
        """
        Store an entry, evicting least recently used ones to stay in budget.

        Returns:
            True if the entry was stored
        """
        self.delete(key)
        if entry.size > self.max_bytes:
            return False

        self._entries[key] = entry
        self._size += entry.size
        while self._size > self.max_bytes:
            _, evicted = self._entries.popitem(last=False)
            self._size -= evicted.size
            self._stats["evictions"] += 1
        return True

    def delete(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._size -= entry.size
        return True

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "entries": len(self._entries),
            "size_bytes": self._size,
            "max_bytes": self.max_bytes,
            **self._stats,
        }


def _is_storable(response: httpx.Response) -> bool:
    if response.status_code != 200:
        return False
    if "no-store" in response.headers.get("cache-control", "").lower():
        return False
    return "etag" in response.headers or "last-modified" in response.headers


class CachingTransport(httpx.AsyncBaseTransport):
    """
    httpx transport that answers 304 revalidations from an LRUByteCache.

    Non-GET requests are passed straight through.
    """

    def __init__(
        self,
        cache: LRUByteCache,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method != "GET" or self.cache.max_bytes <= 0:
            return await self._transport.handle_async_request(request)

        key = str(request.url)
        cached = self.cache.get(key)
        if cached is not None:
            if cached.etag:
                request.headers["If-None-Match"] = cached.etag
            if cached.last_modified:
                request.headers["If-Modified-Since"] = cached.last_modified

        response = await self._transport.handle_async_request(request)

        if response.status_code == 304 and cached is not None:
            await response.aclose()
            headers = httpx.Headers(cached.headers)
            for name, value in response.headers.multi_items():
                if name.lower() not in _ENTITY_HEADERS:
                    headers[name] = value
            logger.debug("Serving revalidated response from cache", url=key)
            return httpx.Response(
                cached.status_code,
                headers=headers,
                stream=httpx.ByteStream(cached.content),
                request=request,
                extensions={"from_cache": True},
            )

        if not _is_storable(response):
            if cached is not None:
                self.cache.delete(key)
            return response

        # The body is stored decoded, so entity headers are dropped with it.
        try:
            content = await response.aread()
        finally:
            await response.aclose()

        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in _ENTITY_HEADERS
        ]
        self.cache.set(
            key,
            CachedResponse(
                status_code=response.status_code,
                headers=headers,
                content=content,
            ),
        )
        return httpx.Response(
            response.status_code,
            headers=headers,
            stream=httpx.ByteStream(content),
            request=request,
        )

    async def aclose(self) -> None:
        await self._transport.aclose()
