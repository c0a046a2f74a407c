"""
EA Sync — Watchlist & Price Alerts
────────────────────────────────────
Players the league is watching on the transfer market, each with zero or
more price alerts.

  below → fires when current price <= threshold
  above → fires when current price >= threshold

Alerts are one-shot: once fired an alert is deactivated, stamped with
triggered_at and persisted, so it will not fire again. Adding the same
threshold again re-arms it.

Prices come from a caller-supplied async lookup (the facade's cached market
path), never from a source directly.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from ea_sync.cache.store import KeyValueStore
from ea_sync.cache.ttl_cache import normalise_key
from ea_sync.cache.ttl_config import STORAGE_KEYS
from ea_sync.models.records import now_iso
from ea_sync.models.watch import (
    CONDITION_BELOW, CONDITIONS, PriceAlert, TriggeredAlert, WatchlistEntry,
)

log = logging.getLogger("ea_sync.watchlist")

PriceLookup = Callable[[str], Awaitable[Optional[float]]]


class Watchlist:

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store
        self.entries: Dict[str, WatchlistEntry] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: str) -> bool:
        return normalise_key(key) in self.entries

    def keys(self) -> List[str]:
        return [e.key for e in self.entries.values()]

    async def add(self, key: str, threshold: Optional[float] = None,
                  condition: str = CONDITION_BELOW) -> WatchlistEntry:
        if condition not in CONDITIONS:
            raise ValueError(f"Unknown alert condition {condition!r} (expected one of {CONDITIONS})")

        norm  = normalise_key(key)
        entry = self.entries.get(norm)
        if entry is None:
            entry = WatchlistEntry(key=key.strip(), added_at=now_iso())
            self.entries[norm] = entry

        if threshold is not None:
            threshold = float(threshold)
            existing = next((a for a in entry.alerts
                             if a.threshold == threshold and a.condition == condition), None)
            if existing:
                existing.active       = True
                existing.triggered_at = None
            else:
                entry.alerts.append(PriceAlert(
                    threshold=threshold, condition=condition, created_at=now_iso(),
                ))
            log.info(f"Watching {entry.key}: alert when {condition} {threshold:,.0f}")
        else:
            log.info(f"Watching {entry.key}")

        await self.save()
        return entry

    async def remove(self, key: str) -> bool:
        entry = self.entries.pop(normalise_key(key), None)
        if entry is None:
            return False
        log.info(f"Removed {entry.key} from watchlist")
        await self.save()
        return True

    async def check(self, price_lookup: PriceLookup) -> List[TriggeredAlert]:
        """Evaluate every active alert. Fired alerts are consumed."""
        triggered: List[TriggeredAlert] = []

        for entry in list(self.entries.values()):
            alerts = entry.active_alerts()
            if not alerts:
                continue
            try:
                price = await price_lookup(entry.key)
            except Exception as e:
                log.warning(f"Price lookup for {entry.key} failed: {e}")
                continue
            if price is None:
                continue

            for alert in alerts:
                if not alert.is_triggered_by(price):
                    continue
                ts = now_iso()
                alert.active       = False
                alert.triggered_at = ts
                triggered.append(TriggeredAlert(
                    key=entry.key,
                    current_price=price,
                    threshold=alert.threshold,
                    condition=alert.condition,
                    timestamp=ts,
                ))

        if triggered:
            log.info(f"{len(triggered)} price alert(s) triggered")
            await self.save()
        return triggered

    def summary(self) -> dict:
        return {
            "total_players": len(self.entries),
            "total_alerts":  sum(len(e.alerts) for e in self.entries.values()),
            "active_alerts": sum(len(e.active_alerts()) for e in self.entries.values()),
            "players":       self.keys(),
        }

    # ── Persistence ───────────────────────────────────────────
    async def save(self):
        if not self.store:
            return
        await self.store.set(STORAGE_KEYS["watchlist"], {
            "entries":      [e.to_dict() for e in self.entries.values()],
            "last_updated": now_iso(),
        })

    async def load(self) -> int:
        if not self.store:
            return 0
        blob = await self.store.get(STORAGE_KEYS["watchlist"])
        if not blob:
            return 0
        for raw in blob.get("entries") or []:
            try:
                entry = WatchlistEntry.from_dict(raw)
            except Exception as e:
                log.warning(f"Skipping unreadable watchlist entry: {e}")
                continue
            if entry.key:
                self.entries[normalise_key(entry.key)] = entry
        log.info(f"Loaded watchlist with {len(self.entries)} players")
        return len(self.entries)
