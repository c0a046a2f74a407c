from .store import KeyValueStore, MemoryStore, JsonFileStore, RedisStore, build_store
from .ttl_cache import CacheEntry, TTLCache, CacheLayer, normalise_key

__all__ = [
    "KeyValueStore", "MemoryStore", "JsonFileStore", "RedisStore", "build_store",
    "CacheEntry", "TTLCache", "CacheLayer", "normalise_key",
]
