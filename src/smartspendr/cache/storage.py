import asyncio
import json
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable

import httpx
from pydantic import ValidationError as ModelValidationError

from smartspendr.errors import CacheError
from smartspendr.logger import get_logger
from smartspendr.models import CachedResponse

logger = get_logger(__name__)

# Headers describing the original transfer, not the cached body.
_SKIPPED_HEADERS = {"content-encoding", "content-length", "transfer-encoding", "connection"}


def request_key(request: httpx.Request) -> str:
    url = request.url.copy_with(fragment=None)
    return f"{request.method.upper()} {url}"


def capture_response(response: httpx.Response) -> CachedResponse:
    headers = {
        name: value
        for name, value in response.headers.items()
        if name.lower() not in _SKIPPED_HEADERS
    }
    return CachedResponse(status_code=response.status_code, headers=headers, body=response.content)


def to_httpx_response(cached: CachedResponse, request: httpx.Request | None = None) -> httpx.Response:
    return httpx.Response(
        status_code=cached.status_code,
        headers=cached.headers,
        content=cached.body,
        request=request,
    )


class ResourceCache(ABC):
    """One named cache generation."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    async def match(self, request: httpx.Request) -> CachedResponse | None:
        pass

    @abstractmethod
    async def put_many(self, entries: Iterable[tuple[httpx.Request, CachedResponse]]) -> None:
        """Store every entry or none of them."""

    @abstractmethod
    async def keys(self) -> list[str]:
        pass

    async def put(self, request: httpx.Request, response: CachedResponse) -> None:
        await self.put_many([(request, response)])


class CacheStorage(ABC):
    @abstractmethod
    async def open(self, name: str) -> ResourceCache:
        """Return the named cache, creating it when missing."""

    @abstractmethod
    async def keys(self) -> list[str]:
        pass

    @abstractmethod
    async def delete(self, name: str) -> bool:
        pass

    async def has(self, name: str) -> bool:
        return name in await self.keys()


class MemoryResourceCache(ResourceCache):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.entries: dict[str, CachedResponse] = {}

    async def match(self, request: httpx.Request) -> CachedResponse | None:
        return self.entries.get(request_key(request))

    async def put_many(self, entries: Iterable[tuple[httpx.Request, CachedResponse]]) -> None:
        staged = {request_key(request): response for request, response in entries}
        self.entries.update(staged)

    async def keys(self) -> list[str]:
        return list(self.entries)


class MemoryCacheStorage(CacheStorage):
    def __init__(self) -> None:
        self._caches: dict[str, MemoryResourceCache] = {}
        self._lock = asyncio.Lock()

    async def open(self, name: str) -> ResourceCache:
        async with self._lock:
            if name not in self._caches:
                self._caches[name] = MemoryResourceCache(name)
            return self._caches[name]

    async def keys(self) -> list[str]:
        return list(self._caches)

    async def delete(self, name: str) -> bool:
        async with self._lock:
            return self._caches.pop(name, None) is not None


_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


class FileResourceCache(MemoryResourceCache):
    """Cache generation persisted as a single JSON document."""

    def __init__(self, name: str, path: str) -> None:
        super().__init__(name)
        self.path = path
        self._lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, encoding="utf-8") as handle:
                data = json.load(handle)
            self.entries = {
                key: CachedResponse.model_validate_json(json.dumps(value))
                for key, value in data.get("entries", {}).items()
            }
        except (json.JSONDecodeError, ModelValidationError) as exc:
            logger.warning("[CACHE] Discarding unreadable cache file %s: %s", self.path, exc)
            self.entries = {}

    def _write(self, entries: dict[str, CachedResponse]) -> None:
        payload = {
            "name": self.name,
            "entries": {key: json.loads(value.model_dump_json()) for key, value in entries.items()},
        }
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise CacheError(f"Could not write cache {self.name}: {exc}") from exc

    async def put_many(self, entries: Iterable[tuple[httpx.Request, CachedResponse]]) -> None:
        async with self._lock:
            merged = dict(self.entries)
            merged.update({request_key(request): response for request, response in entries})
            # The file is replaced in one rename, so readers see old or new entries only.
            await asyncio.to_thread(self._write, merged)
            self.entries = merged


class FileCacheStorage(CacheStorage):
    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)
        self._caches: dict[str, FileResourceCache] = {}
        self._lock = asyncio.Lock()

    def _path_for(self, name: str) -> str:
        return os.path.join(self.directory, f"{_SAFE_NAME.sub('_', name)}.json")

    def _stored_names(self) -> list[str]:
        names: list[str] = []
        for filename in sorted(os.listdir(self.directory)):
            if not filename.endswith(".json"):
                continue
            path = os.path.join(self.directory, filename)
            try:
                with open(path, encoding="utf-8") as handle:
                    names.append(json.load(handle).get("name") or filename[:-5])
            except (OSError, json.JSONDecodeError):
                names.append(filename[:-5])
        return names

    async def open(self, name: str) -> ResourceCache:
        async with self._lock:
            if name not in self._caches:
                cache = FileResourceCache(name, self._path_for(name))
                if not os.path.exists(cache.path):
                    await asyncio.to_thread(cache._write, {})
                self._caches[name] = cache
            return self._caches[name]

    async def keys(self) -> list[str]:
        names = await asyncio.to_thread(self._stored_names)
        return list(dict.fromkeys([*names, *self._caches]))

    async def delete(self, name: str) -> bool:
        async with self._lock:
            self._caches.pop(name, None)
            path = self._path_for(name)
            if not os.path.exists(path):
                return False
            await asyncio.to_thread(os.remove, path)
            return True
