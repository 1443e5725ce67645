"""
Offline-first interception of the application's own static resources.

A controller owns one cache generation named after the deployed version.
Its lifecycle is install -> activate -> (serve requests) -> redundant once a
newer controller takes over.
"""
import asyncio
from collections.abc import Sequence
from enum import Enum

import httpx

from smartspendr.cache.storage import (
    CacheStorage,
    capture_response,
    to_httpx_response,
)
from smartspendr.cache.sync import SyncQueue, SyncResult
from smartspendr.core import settings
from smartspendr.errors import CacheError, InstallError
from smartspendr.integration.store import ExpenseStore
from smartspendr.logger import get_logger
from smartspendr.models import AppDescriptor

logger = get_logger(__name__)

CACHE_PREFIX = "smartspendr"

FALLBACK_DESCRIPTOR = AppDescriptor(
    name=settings.APP_NAME,
    short_name=settings.APP_NAME,
    start_url="/",
    display="standalone",
)


class ControllerState(str, Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"
    REDUNDANT = "redundant"


def cache_name_for(version: str) -> str:
    return f"{CACHE_PREFIX}-{version}"


def descriptor_response(
    descriptor: AppDescriptor = FALLBACK_DESCRIPTOR,
    request: httpx.Request | None = None,
) -> httpx.Response:
    return httpx.Response(
        status_code=200,
        headers={"Content-Type": "application/json"},
        content=descriptor.model_dump_json(exclude_none=True).encode("utf-8"),
        request=request,
    )


class ResourceCacheController:
    def __init__(
        self,
        storage: CacheStorage,
        version: str = settings.DEFAULT_CACHE_VERSION,
        manifest: Sequence[str] = settings.PRECACHE_MANIFEST,
        origin: str = settings.DEFAULT_APP_ORIGIN,
        client: httpx.AsyncClient | None = None,
        sync_queue: SyncQueue | None = None,
        descriptor_path: str = settings.DESCRIPTOR_PATH,
    ):
        self.storage = storage
        self.version = version
        self.cache_name = cache_name_for(version)
        self.manifest = tuple(manifest)
        self.origin = httpx.URL(origin)
        self.descriptor_path = descriptor_path
        self.sync_queue = sync_queue
        self.state = ControllerState.PARSED
        self._client = client
        self._client_lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client

        async with self._client_lock:
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient()
                self._client = client
            return client

    def _resource_url(self, path: str) -> httpx.URL:
        return self.origin.join(path)

    def is_same_origin(self, url: httpx.URL) -> bool:
        origin = self.origin
        return (url.scheme, url.host, url.port) == (origin.scheme, origin.host, origin.port)

    async def _fetch(self, request: httpx.Request) -> httpx.Response:
        client = await self._get_client()
        response = await client.send(request)
        await response.aread()
        return response

    async def install(self) -> None:
        """Pre-cache every manifest resource; any failure aborts the whole install."""
        if self.state not in (ControllerState.PARSED, ControllerState.REDUNDANT):
            raise CacheError(f"Cannot install from state '{self.state.value}'")

        self.state = ControllerState.INSTALLING
        logger.info("[CACHE] Installing %s (%d resources).", self.cache_name, len(self.manifest))

        requests = [httpx.Request("GET", self._resource_url(path)) for path in self.manifest]
        results = await asyncio.gather(
            *(self._fetch(request) for request in requests),
            return_exceptions=True,
        )

        failed: list[str] = []
        entries = []
        for path, request, result in zip(self.manifest, requests, results):
            if isinstance(result, BaseException):
                logger.error("[CACHE] Install fetch failed for %s: %s", path, result)
                failed.append(path)
            elif not result.is_success:
                logger.error("[CACHE] Install fetch for %s returned %s.", path, result.status_code)
                failed.append(path)
            else:
                entries.append((request, capture_response(result)))

        if failed:
            self.state = ControllerState.REDUNDANT
            raise InstallError(f"Install of {self.cache_name} failed for: {', '.join(failed)}", failed)

        cache = await self.storage.open(self.cache_name)
        await cache.put_many(entries)
        self.state = ControllerState.INSTALLED
        logger.info("[CACHE] Installed %s.", self.cache_name)

    async def activate(self, previous: "ResourceCacheController | None" = None) -> list[str]:
        """Delete every other cache generation, then start serving. Returns the deleted names."""
        if self.state != ControllerState.INSTALLED:
            raise CacheError(f"Cannot activate from state '{self.state.value}'")

        self.state = ControllerState.ACTIVATING
        deleted: list[str] = []
        for name in await self.storage.keys():
            if name != self.cache_name and await self.storage.delete(name):
                deleted.append(name)
                logger.info("[CACHE] Deleted stale cache %s.", name)

        if previous is not None and previous is not self:
            previous.retire()

        self.state = ControllerState.ACTIVE
        logger.info("[CACHE] %s active.", self.cache_name)
        return deleted

    def retire(self) -> None:
        self.state = ControllerState.REDUNDANT
        logger.info("[CACHE] %s superseded.", self.cache_name)

    def should_intercept(self, request: httpx.Request) -> bool:
        return (
            self.state == ControllerState.ACTIVE
            and request.method.upper() == "GET"
            and self.is_same_origin(request.url)
        )

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if not self.should_intercept(request):
            return await self._fetch(request)

        cache = await self.storage.open(self.cache_name)
        cached = await cache.match(request)
        if cached is not None:
            logger.debug("[CACHE] Hit %s", request.url)
            return to_httpx_response(cached, request)

        try:
            return await self._fetch(request)
        except httpx.TransportError as exc:
            if request.url.path == self.descriptor_path:
                logger.warning(
                    "[CACHE] Network failed for %s, serving fallback descriptor: %s",
                    request.url,
                    exc,
                )
                return descriptor_response(request=request)
            logger.error("[CACHE] Fetch failed for %s: %s", request.url, exc)
            raise

    async def sync(self, tag: str, store: ExpenseStore) -> SyncResult | None:
        """Run a deferred background task once connectivity is back."""
        if tag != settings.SYNC_TAG:
            logger.debug("[SYNC] Ignoring unknown sync tag '%s'.", tag)
            return None
        if self.sync_queue is None:
            return SyncResult()
        return await self.sync_queue.flush(store)


class CachingTransport(httpx.AsyncBaseTransport):
    """Routes an `httpx.AsyncClient` through a controller."""

    def __init__(self, controller: ResourceCacheController) -> None:
        self.controller = controller

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        response = await self.controller.handle(request)
        # Re-wrap so the outer client does not decode an already decoded body.
        return to_httpx_response(capture_response(response), request)
