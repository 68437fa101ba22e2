"""
Cache backing stores
Key/value stores with TTL and glob-pattern deletion
"""

import asyncio
import fnmatch
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

from ..config import get_config
from ..config.settings import Config, ConfigurationError
from ..utils import get_logger

logger = get_logger(__name__)


class CacheUnavailable(Exception):
    """Raised when the backing store cannot serve a request"""


@dataclass
class StoredValue:
    """A payload with its absolute expiry"""
    payload: Any
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {'payload': self.payload, 'expires_at': self.expires_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoredValue':
        return cls(**data)


class CacheStore(ABC):
    """Contract every backing store implements"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the payload for key, or None when absent/expired"""

    @abstractmethod
    async def set(self, key: str, payload: Any, ttl_seconds: int):
        """Store payload under key for ttl_seconds"""

    @abstractmethod
    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern, returning the count removed"""

    async def ping(self) -> bool:
        """Check the store is reachable"""
        return True

    async def close(self):
        """Release any connections"""


class MemoryCacheStore(CacheStore):
    """In-process store, the default for single-process deployments"""

    def __init__(self):
        self._data: Dict[str, StoredValue] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        if value is None:
            return None
        if value.is_expired:
            del self._data[key]
            return None
        return value.payload

    async def set(self, key: str, payload: Any, ttl_seconds: int):
        self._data[key] = StoredValue(payload=payload, expires_at=time.time() + ttl_seconds)

    async def delete_by_pattern(self, pattern: str) -> int:
        matches = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
        for key in matches:
            del self._data[key]
        return len(matches)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileCacheStore(CacheStore):
    """
    JSON-on-disk store with an in-memory front
    One file per key namespace keeps the cache easy to inspect
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = cache_dir
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheUnavailable(f"Cannot create cache dir {cache_dir}: {e}") from e
        self._lock = asyncio.Lock()
        self._memory: Dict[str, StoredValue] = {}
        logger.info(f"Initialized file cache store at {self.cache_dir}")

    def _namespace_path(self, key: str) -> Path:
        parts = key.split(":")
        namespace = parts[1] if len(parts) > 2 else parts[0]
        return self.cache_dir / f"{namespace}.json"

    def _read(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        with open(path, 'r') as f:
            return json.load(f)

    def _write(self, path: Path, data: Dict[str, Any]):
        if data:
            with open(path, 'w') as f:
                json.dump(data, f, indent=2)
        elif path.exists():
            path.unlink()

    async def get(self, key: str) -> Optional[Any]:
        value = self._memory.get(key)
        if value is not None:
            if not value.is_expired:
                return value.payload
            del self._memory[key]

        path = self._namespace_path(key)
        try:
            async with self._lock:
                data = self._read(path)
        except (OSError, ValueError) as e:
            raise CacheUnavailable(f"Failed to read cache file {path}: {e}") from e

        if key not in data:
            return None

        value = StoredValue.from_dict(data[key])
        if value.is_expired:
            return None
        self._memory[key] = value
        return value.payload

    async def set(self, key: str, payload: Any, ttl_seconds: int):
        value = StoredValue(payload=payload, expires_at=time.time() + ttl_seconds)
        self._memory[key] = value

        path = self._namespace_path(key)
        async with self._lock:
            try:
                data = self._read(path)
                data[key] = value.to_dict()
                self._write(path, data)
            except (OSError, ValueError, TypeError) as e:
                raise CacheUnavailable(f"Failed to write cache file {path}: {e}") from e

    async def delete_by_pattern(self, pattern: str) -> int:
        removed = 0
        for key in [k for k in self._memory if fnmatch.fnmatchcase(k, pattern)]:
            del self._memory[key]

        async with self._lock:
            for path in self.cache_dir.glob("*.json"):
                try:
                    data = self._read(path)
                    kept = {k: v for k, v in data.items() if not fnmatch.fnmatchcase(k, pattern)}
                    if len(kept) < len(data):
                        removed += len(data) - len(kept)
                        self._write(path, kept)
                except (OSError, ValueError) as e:
                    raise CacheUnavailable(f"Failed to purge cache file {path}: {e}") from e

        return removed

    async def ping(self) -> bool:
        return self.cache_dir.is_dir()

    async def cleanup_expired(self) -> int:
        """Remove expired entries from disk and memory"""
        removed = 0
        async with self._lock:
            for path in self.cache_dir.glob("*.json"):
                try:
                    data = self._read(path)
                    active = {
                        k: v for k, v in data.items()
                        if not StoredValue.from_dict(v).is_expired
                    }
                    if len(active) < len(data):
                        removed += len(data) - len(active)
                        self._write(path, active)
                except (OSError, ValueError) as e:
                    logger.error(f"Failed to cleanup cache file {path}: {e}")

        for key in [k for k, v in self._memory.items() if v.is_expired]:
            del self._memory[key]

        logger.info(f"Cleaned up {removed} expired cache entries")
        return removed


class RedisCacheStore(CacheStore):
    """Redis-backed store for multi-instance deployments"""

    def __init__(self, redis_url: str):
        self._client = aioredis.Redis.from_url(redis_url, decode_responses=True)
        self.redis_url = redis_url

    async def get(self, key: str) -> Optional[Any]:
        try:
            data = await self._client.get(key)
        except Exception as e:
            raise CacheUnavailable(f"Redis GET failed for {key}: {e}") from e
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            logger.warning(f"Corrupted cache value for {key}, dropping it")
            await self._client.delete(key)
            return None

    async def set(self, key: str, payload: Any, ttl_seconds: int):
        try:
            await self._client.set(key, json.dumps(payload), ex=max(1, int(ttl_seconds)))
        except Exception as e:
            raise CacheUnavailable(f"Redis SET failed for {key}: {e}") from e

    async def delete_by_pattern(self, pattern: str) -> int:
        removed = 0
        try:
            async for key in self._client.scan_iter(match=pattern):
                removed += await self._client.delete(key)
        except Exception as e:
            raise CacheUnavailable(f"Redis pattern delete failed for {pattern}: {e}") from e
        return removed

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self):
        await self._client.aclose()


def create_cache_store(config: Optional[Config] = None) -> CacheStore:
    """Build the backing store selected by configuration"""
    config = config or get_config()
    backend = config.cache.backend

    if backend == "memory":
        return MemoryCacheStore()
    if backend == "file":
        return JsonFileCacheStore(config.cache.cache_dir or config.system.cache_dir)
    if backend == "redis":
        return RedisCacheStore(config.cache.redis_url)

    raise ConfigurationError(f"Unknown cache backend: {backend}")
