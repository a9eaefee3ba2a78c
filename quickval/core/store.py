import math
import time
from typing import Callable, Dict, Optional, Protocol

from cachetools import TLRUCache
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import Settings
from .errors import StoreError


class KeyValueStore(Protocol):
    """
    Async key/value seam shared by jobs, the suburb sales cache, weights and
    rate limiting. Values are JSON strings. Last writer wins.
    """
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def list_prefix(self, prefix: str) -> Dict[str, str]: ...
    async def close(self) -> None: ...


def _time_to_use(key, item, now):
    # item is (value, ttl_seconds_or_None)
    ttl = item[1]
    return now + ttl if ttl else math.inf


class MemoryStore:
    """
    In-process store for local dev and tests. Per-key expiry is handled by
    cachetools' TLRUCache; `timer` can be swapped for a fake clock.
    """
    def __init__(self, maxsize: int = 10000, timer: Callable[[], float] = time.monotonic):
        self._data = TLRUCache(maxsize=maxsize, ttu=_time_to_use, timer=timer)

    async def get(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        return item[0] if item is not None else None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._data[key] = (value, ttl)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_prefix(self, prefix: str) -> Dict[str, str]:
        self._data.expire()
        out: Dict[str, str] = {}
        for key in list(self._data.keys()):
            if key.startswith(prefix):
                item = self._data.get(key)
                if item is not None:
                    out[key] = item[0]
        return out

    async def close(self) -> None:
        self._data.clear()


class RedisStore:
    """Redis-backed store; redis errors surface as StoreError."""
    def __init__(self, url: str):
        self._client = aioredis.Redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise StoreError(f"redis get failed for {key}") from exc

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl or None)
        except RedisError as exc:
            raise StoreError(f"redis set failed for {key}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise StoreError(f"redis delete failed for {key}") from exc

    async def list_prefix(self, prefix: str) -> Dict[str, str]:
        try:
            keys = [k async for k in self._client.scan_iter(match=f"{prefix}*")]
            if not keys:
                return {}
            values = await self._client.mget(keys)
        except RedisError as exc:
            raise StoreError(f"redis scan failed for {prefix}") from exc
        return {k: v for k, v in zip(keys, values) if v is not None}

    async def close(self) -> None:
        await self._client.aclose()


def build_store(settings: Settings) -> KeyValueStore:
    """
    Factory picks redis or in-memory based on env flags.
    """
    if settings.USE_REDIS:
        return RedisStore(settings.REDIS_URL)
    return MemoryStore(maxsize=settings.STORE_MAX_KEYS)
