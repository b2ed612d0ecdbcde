"""Caching layers: durable file store, edge response cache and the tiered data cache."""

import asyncio
import hashlib
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Tuple, Union
from urllib.parse import urlencode

import aiofiles

from ..models import RenderedResponse
from .exceptions import CacheError

logger = logging.getLogger(__name__)

MAX_AGE_PATTERN = re.compile(r"max-age=(\d+)")


class CacheKind(str, Enum):
    """Independent data tiers stored per (category, date)."""
    ENTRIES = "entries"
    ARTICLES = "articles"
    AI_SUMMARY = "ai-summary"


def cache_control_header(ttl: int) -> str:
    return f"public, max-age={ttl}"


class FileStore:
    """Namespaced file-based key-value store with TTL support and size limits."""

    def __init__(self, cache_dir: Union[str, Path], default_ttl: int,
                 max_size_mb: int = 200, max_entries: int = 10000, namespace: str = "data"):
        self.cache_dir = Path(cache_dir)
        self.default_ttl = default_ttl
        self.max_size_mb = max_size_mb
        self.max_entries = max_entries
        self.namespace = namespace
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _get_cache_path(self, key: str) -> Path:
        """Get cache file path for key."""
        key_hash = hashlib.md5(f"{self.namespace}:{key}".encode()).hexdigest()
        return self.cache_dir / f"{key_hash}.json"

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    async def get(self, key: str) -> Optional[Any]:
        """Get value from the store, dropping expired or corrupted files."""
        cache_path = self._get_cache_path(key)

        if not cache_path.exists():
            return None

        try:
            async with aiofiles.open(cache_path, 'r', encoding='utf-8') as f:
                content = await f.read()
            data = json.loads(content)

            if time.time() > data.get('expires_at', 0):
                self._unlink(cache_path)
                return None

            return data['value']

        except (json.JSONDecodeError, KeyError, AttributeError, FileNotFoundError):
            logger.warning("Dropping corrupted cache file for key %s", key)
            self._unlink(cache_path)
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value with size and entry limits; replaces any previous value."""
        cache_path = self._get_cache_path(key)
        now = time.time()
        data = {
            'value': value,
            'created_at': now,
            'expires_at': now + (ttl or self.default_ttl),
            'key': key  # For debugging
        }

        async with self._lock:
            await self._check_and_enforce_limits()

            # Write to temporary file first, then rename (atomic operation)
            temp_path = cache_path.with_suffix('.tmp')
            try:
                async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                    await f.write(json.dumps(data, ensure_ascii=False))
                temp_path.replace(cache_path)
            except (OSError, TypeError, ValueError) as e:
                self._unlink(temp_path)
                raise CacheError(f"Failed to write cache key {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        """Delete key from the store."""
        cache_path = self._get_cache_path(key)
        try:
            cache_path.unlink()
            return True
        except FileNotFoundError:
            return False

    async def cleanup_expired(self) -> int:
        """Remove expired or unreadable files."""
        count = 0
        current_time = time.time()

        for cache_file in self.cache_dir.glob("*.json"):
            try:
                async with aiofiles.open(cache_file, 'r', encoding='utf-8') as f:
                    data = json.loads(await f.read())
                if current_time > data.get('expires_at', 0):
                    cache_file.unlink()
                    count += 1
            except (json.JSONDecodeError, AttributeError, FileNotFoundError):
                self._unlink(cache_file)
                count += 1

        return count

    def _scan(self) -> list:
        entries = []
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                stat = cache_file.stat()
            except FileNotFoundError:
                continue
            entries.append((cache_file, stat.st_mtime, stat.st_size))
        # Oldest first
        entries.sort(key=lambda x: x[1])
        return entries

    async def _check_and_enforce_limits(self) -> None:
        """Evict the oldest files when the entry or size limit is exceeded."""
        entries = self._scan()

        if len(entries) >= self.max_entries:
            to_remove = len(entries) - self.max_entries + 1
            for cache_file, _, _ in entries[:to_remove]:
                self._unlink(cache_file)
            entries = entries[to_remove:]
            logger.info("Cache entry limit enforced: removed %d old entries", to_remove)

        limit_bytes = self.max_size_mb * 1024 * 1024
        current_size = sum(size for _, _, size in entries)
        if current_size > limit_bytes:
            await self.cleanup_expired()
            entries = self._scan()
            current_size = sum(size for _, _, size in entries)
            for cache_file, _, file_size in entries:
                if current_size <= limit_bytes:
                    break
                self._unlink(cache_file)
                current_size -= file_size
            logger.info("Cache size limit enforced: now under %dMB", self.max_size_mb)

    async def get_stats(self) -> dict:
        """Get store statistics."""
        total_files = 0
        expired_files = 0
        total_size = 0
        current_time = time.time()

        for cache_file, _, size in self._scan():
            total_files += 1
            total_size += size
            try:
                async with aiofiles.open(cache_file, 'r', encoding='utf-8') as f:
                    data = json.loads(await f.read())
                if current_time > data.get('expires_at', 0):
                    expired_files += 1
            except (json.JSONDecodeError, AttributeError, FileNotFoundError):
                expired_files += 1

        return {
            'total_files': total_files,
            'expired_files': expired_files,
            'active_files': total_files - expired_files,
            'total_size_bytes': total_size,
            'total_size_mb': round(total_size / (1024 * 1024), 2),
            'cache_dir': str(self.cache_dir)
        }


class ResponseCache:
    """In-process HTTP response cache keyed by absolute URL.

    Expiry comes from the stored response's Cache-Control max-age, so a
    response without max-age is never stored.
    """

    def __init__(self, max_entries: int = 2000, clock: Callable[[], float] = time.time):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[RenderedResponse, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def match(self, url: str) -> Optional[RenderedResponse]:
        item = self._entries.get(url)
        if item is None:
            return None
        response, expires_at = item
        if self._clock() >= expires_at:
            del self._entries[url]
            return None
        return response

    async def put(self, url: str, response: RenderedResponse) -> None:
        cache_control = response.headers.get("cache-control", "")
        match = MAX_AGE_PATTERN.search(cache_control)
        if not match or "no-store" in cache_control:
            return
        self._entries.pop(url, None)
        self._entries[url] = (response, self._clock() + int(match.group(1)))
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def delete(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None


class DataCache(ABC):
    """Tiered data cache keyed by (kind, category, date)."""

    def __init__(self, version: str, ttl: int):
        self.version = version
        self.ttl = ttl

    @abstractmethod
    async def get(self, kind: CacheKind, category: str, date: str) -> Optional[Any]:
        """Return the stored payload or None."""

    @abstractmethod
    async def put(self, kind: CacheKind, category: str, date: str, payload: Any,
                  ttl: Optional[int] = None) -> None:
        """Store payload, replacing any previous one."""

    @abstractmethod
    async def delete(self, kind: CacheKind, category: str, date: str) -> None:
        """Remove the payload if present."""


class DurableDataCache(DataCache):
    """Data tiers stored in the durable FileStore."""

    def __init__(self, store: FileStore, version: str, ttl: int):
        super().__init__(version, ttl)
        self.store = store

    def build_key(self, kind: CacheKind, category: str, date: str) -> str:
        return f"v{self.version}:{CacheKind(kind).value}:{category}:{date}"

    async def get(self, kind, category, date):
        return await self.store.get(self.build_key(kind, category, date))

    async def put(self, kind, category, date, payload, ttl=None):
        await self.store.set(self.build_key(kind, category, date), payload, ttl or self.ttl)

    async def delete(self, kind, category, date):
        await self.store.delete(self.build_key(kind, category, date))


class EdgeDataCache(DataCache):
    """Data tiers stored as synthetic JSON responses in the ResponseCache."""

    def __init__(self, cache: ResponseCache, base_url: str, version: str, ttl: int):
        super().__init__(version, ttl)
        self.cache = cache
        self.base_url = base_url.rstrip("/")

    def build_url(self, kind: CacheKind, category: str, date: str) -> str:
        query = urlencode({"category": category, "date": date, "v": self.version})
        return f"{self.base_url}/__cache/{CacheKind(kind).value}?{query}"

    async def get(self, kind, category, date):
        url = self.build_url(kind, category, date)
        response = await self.cache.match(url)
        if response is None:
            return None
        try:
            return json.loads(response.body)
        except ValueError:
            logger.warning("Dropping corrupted edge cache entry %s", url)
            await self.cache.delete(url)
            return None

    async def put(self, kind, category, date, payload, ttl=None):
        response = RenderedResponse(
            body=json.dumps(payload, ensure_ascii=False),
            headers={
                "Content-Type": "application/json; charset=utf-8",
                "Cache-Control": cache_control_header(ttl or self.ttl),
            },
        )
        await self.cache.put(self.build_url(kind, category, date), response)

    async def delete(self, kind, category, date):
        await self.cache.delete(self.build_url(kind, category, date))


class NullDataCache(DataCache):
    """Used when no backend is configured: always a miss."""

    async def get(self, kind, category, date):
        return None

    async def put(self, kind, category, date, payload, ttl=None):
        return None

    async def delete(self, kind, category, date):
        return None


def create_data_cache(store: Optional[FileStore], response_cache: Optional[ResponseCache],
                      base_url: str, version: str, ttl: int) -> DataCache:
    """Pick the backend once: durable store, then edge cache, then nothing."""
    if store is not None:
        return DurableDataCache(store, version, ttl)
    if response_cache is not None:
        return EdgeDataCache(response_cache, base_url, version, ttl)
    return NullDataCache(version, ttl)
