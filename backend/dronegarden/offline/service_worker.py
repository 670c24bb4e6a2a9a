"""Fetch interception with versioned cache buckets.

`ServiceWorker.handle_fetch` picks one strategy per request, in this
order (first match wins):

1. non-GET or non-http(s) requests are not intercepted (returns None);
2. URLs containing the API marker (`/api/`) go network-first;
3. images, fonts and the trusted tile/CDN hosts go cache-first;
4. scripts and stylesheets go stale-while-revalidate;
5. remaining navigation requests go network-first;
6. everything else goes stale-while-revalidate.

No strategy raises: when neither the network nor the cache can answer
the caller gets a synthetic `503 Offline` response (navigation requests
first fall back to the cached app shell).

Buckets are named `droneagri-<version>`, `droneagri-static-<version>` and
`droneagri-dynamic-<version>`. `activate()` deletes every other bucket,
so no stale generation survives an upgrade. Bucket contents have no TTL
of their own; they live until the next version bump.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Union
from urllib.parse import urljoin

import httpx

logger = logging.getLogger("dronegarden.offline.sw")

CACHE_VERSION = "v3"
CACHE_BASENAME = "droneagri"

SHELL_ASSETS = (
    "/",
    "/index.html",
    "/manifest.json",
    "/logo.png",
    "/logo-192.png",
    "/apple-touch-icon.png",
)

CACHE_FIRST_PATH_PATTERNS = (
    re.compile(r"\.(?:png|jpg|jpeg|svg|gif|webp)$", re.IGNORECASE),
    re.compile(r"\.(?:woff|woff2|ttf|eot)$", re.IGNORECASE),
)
CACHE_FIRST_HOSTS = ("tile.openstreetmap.org", "cdnjs.cloudflare.com")
ASSET_PATH_PATTERN = re.compile(r"\.(?:js|css)$", re.IGNORECASE)

# headers describing the wire encoding no longer apply to a decoded body
_HOP_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}

Fetcher = Callable[[httpx.Request], Awaitable[httpx.Response]]
RequestOrUrl = Union[httpx.Request, httpx.URL, str]


class Strategy(enum.Enum):
    NETWORK_FIRST = "network-first"
    CACHE_FIRST = "cache-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"


@dataclass(frozen=True)
class StoredResponse:
    status_code: int
    headers: tuple
    content: bytes

    def to_response(self, request: Optional[httpx.Request] = None) -> httpx.Response:
        return httpx.Response(self.status_code, headers=list(self.headers), content=self.content, request=request)


def _key(target: RequestOrUrl) -> str:
    if isinstance(target, httpx.Request):
        return str(target.url)
    return str(target)


class RequestCache:
    """One named bucket: URL -> response snapshot."""

    def __init__(self, name: str):
        self.name = name
        self._entries: dict[str, StoredResponse] = {}

    async def match(self, target: RequestOrUrl) -> Optional[httpx.Response]:
        stored = self._entries.get(_key(target))
        if stored is None:
            return None
        return stored.to_response(target if isinstance(target, httpx.Request) else None)

    async def put(self, target: RequestOrUrl, response: httpx.Response) -> None:
        content = await response.aread()
        headers = tuple((k, v) for k, v in response.headers.multi_items() if k.lower() not in _HOP_HEADERS)
        self._entries[_key(target)] = StoredResponse(response.status_code, headers, content)

    async def add_all(self, urls: Iterable[str], fetch: Fetcher) -> None:
        """Fetch and store every URL; nothing is stored unless all succeed."""
        fetched = []
        for url in urls:
            request = httpx.Request("GET", url)
            response = await fetch(request)
            if not response.is_success:
                raise httpx.HTTPStatusError(f"{url} answered {response.status_code}", request=request, response=response)
            fetched.append((request, response))
        for request, response in fetched:
            await self.put(request, response)

    async def delete(self, target: RequestOrUrl) -> bool:
        return self._entries.pop(_key(target), None) is not None

    async def keys(self) -> list[str]:
        return list(self._entries)


class CacheStorage:
    """All buckets of one origin."""

    def __init__(self):
        self._buckets: dict[str, RequestCache] = {}

    async def open(self, name: str) -> RequestCache:
        if name not in self._buckets:
            self._buckets[name] = RequestCache(name)
        return self._buckets[name]

    async def has(self, name: str) -> bool:
        return name in self._buckets

    async def keys(self) -> list[str]:
        return list(self._buckets)

    async def delete(self, name: str) -> bool:
        return self._buckets.pop(name, None) is not None

    async def match(self, target: RequestOrUrl) -> Optional[httpx.Response]:
        """First hit across buckets, in creation order."""
        for bucket in list(self._buckets.values()):
            hit = await bucket.match(target)
            if hit is not None:
                return hit
        return None


def _default_fetcher(client: httpx.AsyncClient) -> Fetcher:
    async def fetch(request: httpx.Request) -> httpx.Response:
        return await client.send(request)
    return fetch


class ServiceWorker:
    def __init__(
        self,
        origin: str,
        fetch: Optional[Fetcher] = None,
        caches: Optional[CacheStorage] = None,
        version: str = CACHE_VERSION,
        shell_assets: Iterable[str] = SHELL_ASSETS,
        api_marker: str = "/api/",
    ):
        self.origin = origin.rstrip("/") + "/"
        self.caches = caches if caches is not None else CacheStorage()
        self.version = version
        self.shell_assets = tuple(shell_assets)
        self.api_marker = api_marker
        self._own_client: Optional[httpx.AsyncClient] = None
        if fetch is None:
            self._own_client = httpx.AsyncClient(timeout=15.0)
            fetch = _default_fetcher(self._own_client)
        self._fetch = fetch
        self._background: set[asyncio.Task] = set()
        self.state = "parsed"
        self.skip_waiting = False
        self.clients_claimed = False

    @property
    def cache_name(self) -> str:
        return f"{CACHE_BASENAME}-{self.version}"

    @property
    def static_cache(self) -> str:
        return f"{CACHE_BASENAME}-static-{self.version}"

    @property
    def dynamic_cache(self) -> str:
        return f"{CACHE_BASENAME}-dynamic-{self.version}"

    @property
    def current_caches(self) -> tuple[str, str, str]:
        return (self.cache_name, self.static_cache, self.dynamic_cache)

    def resolve(self, path: str) -> str:
        return urljoin(self.origin, path)

    async def aclose(self) -> None:
        await self.wait_until_idle()
        if self._own_client is not None:
            await self._own_client.aclose()

    # -- lifecycle -------------------------------------------------------

    async def install(self) -> bool:
        """Pre-cache the app shell and skip the waiting phase.

        Returns False (and leaves the worker redundant) when any shell
        asset cannot be fetched.
        """
        static = await self.caches.open(self.static_cache)
        try:
            await static.add_all([self.resolve(a) for a in self.shell_assets], self._fetch)
        except httpx.HTTPError as exc:
            logger.error("install failed, shell not cached: %s", exc)
            self.state = "redundant"
            return False
        self.skip_waiting = True
        self.state = "installed"
        logger.info("service worker %s installed (%d shell assets)", self.version, len(self.shell_assets))
        return True

    async def activate(self) -> list[str]:
        """Delete non-current buckets, claim clients, and return the deleted names."""
        current = set(self.current_caches)
        deleted = []
        for name in await self.caches.keys():
            if name not in current:
                await self.caches.delete(name)
                deleted.append(name)
        if deleted:
            logger.info("deleted stale caches: %s", ", ".join(deleted))
        self.clients_claimed = True
        self.state = "activated"
        return deleted

    async def handle_push(self, payload: Optional[dict]) -> None:
        logger.info("push received: %s", payload)

    async def handle_sync(self, tag: str) -> None:
        logger.info("background sync requested: %s", tag)

    # -- routing ---------------------------------------------------------

    def _is_cache_first(self, url: httpx.URL) -> bool:
        if any(p.search(url.path) for p in CACHE_FIRST_PATH_PATTERNS):
            return True
        return url.scheme == "https" and any(
            url.host == host or url.host.endswith("." + host) for host in CACHE_FIRST_HOSTS
        )

    def route(self, request: httpx.Request, mode: str = "cors") -> Optional[Strategy]:
        """Pick the strategy for `request`; None means pass through."""
        if request.method != "GET" or request.url.scheme not in ("http", "https"):
            return None
        url = request.url
        if self.api_marker in url.path:
            return Strategy.NETWORK_FIRST
        if self._is_cache_first(url):
            return Strategy.CACHE_FIRST
        if ASSET_PATH_PATTERN.search(url.path):
            return Strategy.STALE_WHILE_REVALIDATE
        if mode == "navigate":
            return Strategy.NETWORK_FIRST
        return Strategy.STALE_WHILE_REVALIDATE

    async def handle_fetch(self, request: httpx.Request, mode: str = "cors") -> Optional[httpx.Response]:
        strategy = self.route(request, mode)
        if strategy is None:
            return None
        if strategy is Strategy.NETWORK_FIRST:
            return await self.network_first(request, navigate=mode == "navigate")
        if strategy is Strategy.CACHE_FIRST:
            return await self.cache_first(request)
        return await self.stale_while_revalidate(request)

    # -- strategies ------------------------------------------------------

    @staticmethod
    def offline_response(request: Optional[httpx.Request] = None) -> httpx.Response:
        return httpx.Response(503, text="Offline", request=request)

    async def _store(self, request: httpx.Request, response: httpx.Response) -> None:
        if response.is_success:
            dynamic = await self.caches.open(self.dynamic_cache)
            await dynamic.put(request, response)

    async def network_first(self, request: httpx.Request, navigate: bool = False) -> httpx.Response:
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            cached = await self.caches.match(request)
            if cached is not None:
                return cached
            if navigate:
                shell = await self.caches.match(self.resolve("/"))
                if shell is not None:
                    return shell
            return self.offline_response(request)
        await self._store(request, response)
        return response

    async def cache_first(self, request: httpx.Request) -> httpx.Response:
        cached = await self.caches.match(request)
        if cached is not None:
            return cached
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            return self.offline_response(request)
        await self._store(request, response)
        return response

    async def _revalidate(self, request: httpx.Request) -> None:
        try:
            response = await self._fetch(request)
            await self._store(request, response)
        except httpx.HTTPError as exc:
            logger.debug("background refresh of %s failed: %s", request.url, exc)

    async def stale_while_revalidate(self, request: httpx.Request) -> httpx.Response:
        cached = await self.caches.match(request)
        if cached is not None:
            task = asyncio.get_running_loop().create_task(self._revalidate(request))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return cached
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            return self.offline_response(request)
        await self._store(request, response)
        return response

    async def wait_until_idle(self) -> None:
        """Wait for outstanding background refreshes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
