"""
EA Sync — TTL Cache Layer
───────────────────────────
Two persisted cache spaces and one volatile one:

  player      — PlayerRecord by normalised name      (30 min)
  market      — MarketPriceRecord by normalised key  (5 min)
  live_match  — LiveMatchRecord by match id          (1 min, memory only)

An entry is valid iff  now - timestamp < ttl.  Expired entries are evicted
on read and never returned. When a durable store is attached, every write
or eviction in a persisted space mirrors both persisted spaces as one JSON
blob; on load the blob is re-hydrated and expired entries are purged before
the first read.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from ea_sync.cache.store import KeyValueStore
from ea_sync.cache.ttl_config import STORAGE_KEYS, TTL
from ea_sync.models.records import MarketPriceRecord, PlayerRecord, now_iso

log = logging.getLogger("ea_sync.cache")

Clock = Callable[[], float]


def normalise_key(key: str) -> str:
    return re.sub(r"\s+", " ", str(key).strip().lower())


@dataclass(frozen=True)
class CacheEntry:
    data:      Any
    timestamp: float
    ttl:       float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl

    def age(self, now: float) -> float:
        return now - self.timestamp


class TTLCache:
    """One TTL-keyed cache space."""

    def __init__(self, name: str, ttl: float, clock: Clock = time.time):
        self.name   = name
        self.ttl    = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Any]:
        key = normalise_key(key)
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        if not entry.is_valid(now):
            del self._entries[key]
            log.debug(f"{self.name}: {key} expired (age={entry.age(now):.0f}s)")
            return None
        log.debug(f"{self.name}: hit {key} (age={entry.age(now):.0f}s)")
        return entry.data

    def set(self, key: str, data: Any):
        self._entries[normalise_key(key)] = CacheEntry(data=data, timestamp=self._clock(), ttl=self.ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(normalise_key(key), None) is not None

    def clear(self):
        self._entries.clear()

    def cleanup(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def items(self) -> Iterator[Tuple[str, CacheEntry]]:
        return iter(list(self._entries.items()))

    def restore(self, key: str, data: Any, timestamp: float):
        """Put back an entry loaded from storage with its original timestamp."""
        self._entries[normalise_key(key)] = CacheEntry(data=data, timestamp=timestamp, ttl=self.ttl)

    def stats(self) -> dict:
        now = self._clock()
        valid = expired = size = 0
        for entry in self._entries.values():
            if entry.is_valid(now):
                valid += 1
            else:
                expired += 1
            data = entry.data.to_dict() if hasattr(entry.data, "to_dict") else entry.data
            size += len(json.dumps(data, default=str))
        return {
            "total":      len(self._entries),
            "valid":      valid,
            "expired":    expired,
            "size_bytes": size,
            "ttl_s":      self.ttl,
        }


class CacheLayer:
    """
    The player / market / live-match cache spaces plus the durable mirror.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        player_ttl: float = TTL["player"],
        market_ttl: float = TTL["market"],
        live_match_ttl: float = TTL["live_match"],
        clock: Clock = time.time,
    ):
        self.store      = store
        self._clock     = clock
        self.player     = TTLCache("player", player_ttl, clock)
        self.market     = TTLCache("market", market_ttl, clock)
        self.live_match = TTLCache("live_match", live_match_ttl, clock)

    # ── Player space ──────────────────────────────────────────
    async def get_player(self, key: str) -> Optional[PlayerRecord]:
        before = len(self.player)
        record = self.player.get(key)
        if len(self.player) != before:
            await self.persist()
        return record

    async def set_player(self, key: str, record: PlayerRecord):
        self.player.set(key, record)
        await self.persist()

    # ── Market space ──────────────────────────────────────────
    async def get_market(self, key: str) -> Optional[MarketPriceRecord]:
        before = len(self.market)
        record = self.market.get(key)
        if len(self.market) != before:
            await self.persist()
        return record

    async def set_market(self, key: str, record: MarketPriceRecord):
        self.market.set(key, record)
        await self.persist()

    # ── Live match space (never persisted) ────────────────────
    def get_live_match(self, match_id: str):
        return self.live_match.get(match_id)

    def set_live_match(self, match_id: str, record):
        self.live_match.set(match_id, record)

    # ── Maintenance ───────────────────────────────────────────
    async def cleanup(self) -> int:
        removed = self.player.cleanup() + self.market.cleanup() + self.live_match.cleanup()
        if removed:
            log.info(f"Cleaned up {removed} expired cache entries")
            await self.persist()
        return removed

    async def clear(self):
        self.player.clear()
        self.market.clear()
        self.live_match.clear()
        if self.store:
            await self.store.delete(STORAGE_KEYS["cache"])
        log.info("All caches cleared")

    def stats(self) -> dict:
        return {
            "player":     self.player.stats(),
            "market":     self.market.stats(),
            "live_match": self.live_match.stats(),
        }

    def offline_fallback(self, key: str) -> dict:
        """Cached player data flagged as offline, or a generic placeholder."""
        record = self.player.get(key)
        if record:
            return {
                **record.to_dict(),
                "offline":         True,
                "offline_message": "Cached data (offline mode)",
            }
        return {
            "name":            key,
            "overall":         75,
            "position":        "Unknown",
            "club":            "Unknown",
            "offline":         True,
            "offline_message": "Generic data (no cache available)",
            "warning":         "Unable to fetch current data. Reconnect for updated information.",
        }

    # ── Durable mirror ────────────────────────────────────────
    def _snapshot(self) -> dict:
        def dump(cache: TTLCache) -> list:
            return [
                {"key": k, "timestamp": e.timestamp, "data": e.data.to_dict()}
                for k, e in cache.items()
            ]
        return {
            "player_data":  dump(self.player),
            "market_data":  dump(self.market),
            "last_updated": now_iso(),
        }

    async def persist(self):
        if not self.store:
            return
        await self.store.set(STORAGE_KEYS["cache"], self._snapshot())

    async def load(self) -> int:
        """Re-hydrate from the durable mirror. Returns entries kept after cleanup."""
        if not self.store:
            return 0
        blob = await self.store.get(STORAGE_KEYS["cache"])
        if not blob:
            return 0

        loaded = 0
        for cache, section, factory in (
            (self.player, "player_data", PlayerRecord.from_dict),
            (self.market, "market_data", MarketPriceRecord.from_dict),
        ):
            for item in blob.get(section) or []:
                try:
                    cache.restore(item["key"], factory(item["data"]), float(item["timestamp"]))
                    loaded += 1
                except Exception as e:
                    log.warning(f"Skipping unreadable {section} entry: {e}")

        removed = self.player.cleanup() + self.market.cleanup()
        if removed:
            log.info(f"Dropped {removed} expired entries from stored cache")
            await self.persist()
        kept = loaded - removed
        log.info(f"Loaded {kept} cached entries ({len(self.player)} player, {len(self.market)} market)")
        return kept
