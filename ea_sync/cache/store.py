"""
EA Sync — Durable Key-Value Storage
─────────────────────────────────────
Where the cache mirror, the watchlist and the job state survive restarts.
Values are JSON-serialisable dicts stored under fixed namespaced keys
(see ttl_config.STORAGE_KEYS).

Backends:
  MemoryStore    — process-local, for tests and demo mode
  JsonFileStore  — one JSON file on disk (default)
  RedisStore     — shared Redis; drops to memory if Redis goes away

Every backend swallows its own I/O errors and logs a warning.
A failed write never crashes the caller; in-memory state stays authoritative.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import redis.asyncio as aioredis

log = logging.getLogger("ea_sync.store")


class KeyValueStore(ABC):
    """Async JSON key-value store."""

    name = "store"

    async def get(self, key: str) -> Optional[dict]:
        try:
            return await self._get(key)
        except Exception as e:
            log.warning(f"{self.name}: read of {key} failed: {e}")
            return None

    async def set(self, key: str, value: dict) -> bool:
        try:
            await self._set(key, value)
            return True
        except Exception as e:
            log.warning(f"{self.name}: write of {key} failed: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._delete(key)
            return True
        except Exception as e:
            log.warning(f"{self.name}: delete of {key} failed: {e}")
            return False

    async def size(self, key: str) -> int:
        """Approximate serialised size in bytes."""
        value = await self.get(key)
        return len(json.dumps(value).encode()) if value is not None else 0

    async def close(self):
        pass

    @abstractmethod
    async def _get(self, key: str) -> Optional[dict]: ...

    @abstractmethod
    async def _set(self, key: str, value: dict): ...

    @abstractmethod
    async def _delete(self, key: str): ...


class MemoryStore(KeyValueStore):
    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def _get(self, key: str) -> Optional[dict]:
        raw = self._data.get(key)
        return json.loads(raw) if raw else None

    async def _set(self, key: str, value: dict):
        # stored as JSON text; every get returns a fresh copy
        self._data[key] = json.dumps(value)

    async def _delete(self, key: str):
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """All keys in one JSON document on disk."""

    name = "file"

    def __init__(self, path):
        self.path  = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        text = self.path.read_text()
        return json.loads(text) if text.strip() else {}

    def _write_all(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str))
        tmp.replace(self.path)

    async def _get(self, key: str) -> Optional[dict]:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def _set(self, key: str, value: dict):
        async with self._lock:
            try:
                data = await asyncio.to_thread(self._read_all)
            except json.JSONDecodeError as e:
                log.warning(f"{self.path} is not valid JSON ({e}) - rewriting it")
                data = {}
            data[key] = value
            await asyncio.to_thread(self._write_all, data)

    async def _delete(self, key: str):
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if data.pop(key, None) is not None:
                await asyncio.to_thread(self._write_all, data)


class RedisStore(KeyValueStore):
    """
    Redis-backed store. Reconnects lazily; while Redis is unreachable
    reads and writes go to an in-process MemoryStore.
    """

    name = "redis"

    def __init__(self, url: str):
        self.url       = url
        self._client: Optional[aioredis.Redis] = None
        self._fallback = MemoryStore()

    async def _redis(self) -> Optional[aioredis.Redis]:
        if self._client:
            try:
                await self._client.ping()
                return self._client
            except Exception:
                self._client = None
        try:
            client = aioredis.from_url(self.url, decode_responses=True, socket_timeout=2)
            await client.ping()
            self._client = client
            log.info("Redis connected")
            return client
        except Exception as e:
            log.warning(f"Redis unavailable ({e}) - using in-memory store")
            return None

    async def _get(self, key: str) -> Optional[dict]:
        r = await self._redis()
        if not r:
            return await self._fallback.get(key)
        raw = await r.get(key)
        return json.loads(raw) if raw else None

    async def _set(self, key: str, value: dict):
        r = await self._redis()
        if not r:
            await self._fallback.set(key, value)
            return
        await r.set(key, json.dumps(value, default=str))

    async def _delete(self, key: str):
        r = await self._redis()
        if not r:
            await self._fallback.delete(key)
            return
        await r.delete(key)

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


def build_store(kind: str, state_file: Optional[str] = None,
                redis_url: Optional[str] = None) -> KeyValueStore:
    kind = (kind or "memory").lower()
    if kind == "file":
        return JsonFileStore(state_file or "ea_sync_state.json")
    if kind == "redis":
        return RedisStore(redis_url or "redis://localhost:6379")
    if kind != "memory":
        log.warning(f"Unknown store kind {kind!r} - using memory")
    return MemoryStore()
