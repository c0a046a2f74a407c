"""
EA Sync — Integration Facade
══════════════════════════════
The single entry point the league application talks to.

  lookups      get_player_data · get_market_price · get_market_insights
               get_live_match_data · analyze_market
  sync         batch_update_players · sync_player_data · sync_market_prices
               pre_cache_players
  watchlist    add_to_watchlist · remove_from_watchlist
               get_watchlist_summary · check_price_alerts
  jobs         get_background_jobs_status · get_job_history
               set_job_enabled · update_job_interval
  read surface run_diagnostics · get_stats · get_status_report
               get_cache_stats · get_offline_fallback
  upkeep       reset_stats · clear_all_caches · cleanup_expired

Lifecycle: uninitialized → initializing → ready; stop() goes back to
uninitialized. While not ready every operation returns a "not initialized"
result instead of doing anything. The statistics read surface
(get_stats / get_status_report) always answers.

Lookups never raise: they return a LookupResult and callers check
`data` / `error`. The one programmer error that does raise is an unknown
alert condition (ValueError).

Build one with build_integration(settings); nothing here is a module-level
singleton.
"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from ea_sync.cache.store import KeyValueStore, build_store
from ea_sync.cache.ttl_cache import CacheLayer
from ea_sync.config import Settings
from ea_sync.events import (
    BATCH_UPDATE_COMPLETE, INITIALIZED, NOTIFICATION, PRICE_ALERT,
    WATCHLIST_UPDATED, EventBus,
)
from ea_sync.models.records import SOURCE_API, LookupResult, PlayerRecord, now_iso
from ea_sync.models.watch import CONDITION_BELOW
from ea_sync.orchestrator.fetch_queue import FetchQueue
from ea_sync.orchestrator.insights import market_insights, summarise_market
from ea_sync.orchestrator.jobs import register_standing_jobs
from ea_sync.orchestrator.resolver import SourceResolver
from ea_sync.orchestrator.scheduler import JobScheduler
from ea_sync.orchestrator.watchlist import Watchlist
from ea_sync.sources import EAFCSource, PlayerSource, SofifaSource, SyntheticSource

log = logging.getLogger("ea_sync.integration")

VERSION = "1.0.0"

STATE_UNINITIALIZED = "uninitialized"
STATE_INITIALIZING  = "initializing"
STATE_READY         = "ready"

NOT_INITIALIZED = "EA Sports integration not initialized"
SOURCE_ERROR    = "error"

DIAGNOSTIC_PLAYER = "Mbappe"
DIAGNOSTIC_MARKET = "test_player"

ProgressCallback = Callable[[int, dict], Union[None, Awaitable[None]]]
PlayersProvider  = Callable[[], Union[List[dict], Awaitable[List[dict]]]]


def _fresh_stats() -> Dict[str, int]:
    return {
        "total_calls":      0,
        "successful_calls": 0,
        "failed_calls":     0,
        "cache_hits":       0,
    }


def _pct(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def _known_ratings(player: dict) -> tuple:
    """(overall, potential, value) as the league roster last recorded them."""
    def pick(*names):
        for n in names:
            if player.get(n) is not None:
                try:
                    return int(player[n])
                except (TypeError, ValueError):
                    return player[n]
        return None
    return (
        pick("overall_rating", "overall"),
        pick("potential"),
        pick("market_value", "value"),
    )


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class EASportsIntegration:

    def __init__(
        self,
        cache: CacheLayer,
        resolver: SourceResolver,
        scheduler: JobScheduler,
        watchlist: Watchlist,
        events: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        players_provider: Optional[PlayersProvider] = None,
    ):
        self.cache            = cache
        self.resolver         = resolver
        self.scheduler        = scheduler
        self.watchlist        = watchlist
        self.events           = events or EventBus()
        self.settings         = settings or Settings()
        self.store            = store
        self.players_provider = players_provider

        self.state         = STATE_UNINITIALIZED
        self.api_connected = False
        self.connectivity: dict = {}
        self.sync_status = {
            "last_player_sync": None,
            "last_market_sync": None,
            "last_alert_check": None,
        }
        self._stats = _fresh_stats()

    @property
    def ready(self) -> bool:
        return self.state == STATE_READY

    def _not_ready(self) -> LookupResult:
        return LookupResult(data=None, source=SOURCE_ERROR, error=NOT_INITIALIZED)

    def _not_ready_dict(self) -> dict:
        return {"success": False, "error": NOT_INITIALIZED}

    # ── Lifecycle ─────────────────────────────────────────────
    async def initialize(self, enable_background_jobs: Optional[bool] = None) -> dict:
        if self.state == STATE_READY:
            log.info("EA Sports integration already initialized")
            return {"success": True, "already_initialized": True}
        if self.state == STATE_INITIALIZING:
            return {"success": False, "error": "Initialization already in progress"}

        if enable_background_jobs is None:
            enable_background_jobs = self.settings.background_jobs

        self.state = STATE_INITIALIZING
        log.info("Initializing EA Sports integration...")
        try:
            primary = next((s for s in self.resolver.sources if s.tag == SOURCE_API), None)
            if primary is not None:
                self.connectivity = await primary.test_connectivity()
            else:
                self.connectivity = {"connected": False, "mode": "demo", "message": "No primary source"}
            self.api_connected = bool(self.connectivity.get("connected"))
            log.info(f"EA FC API: {self.connectivity.get('message', self.connectivity)}")

            await self.cache.load()
            await self.watchlist.load()
            await self.scheduler.load_state()
            register_standing_jobs(self.scheduler, self)
            if enable_background_jobs:
                self.scheduler.start()
        except Exception as e:
            self.state = STATE_UNINITIALIZED
            log.error(f"Failed to initialize EA Sports integration: {e}")
            return {"success": False, "error": str(e)}

        self.state = STATE_READY
        log.info("EA Sports integration ready")
        await self.events.publish(INITIALIZED, {
            "api_connected":           self.api_connected,
            "background_jobs_enabled": bool(enable_background_jobs),
        })
        return {
            "success":         True,
            "api_connected":   self.api_connected,
            "connectivity":    self.connectivity,
            "background_jobs": bool(enable_background_jobs),
        }

    async def stop(self):
        self.scheduler.stop()
        self.state = STATE_UNINITIALIZED
        log.info("EA Sports integration stopped")

    async def close(self):
        """stop() plus releasing HTTP clients and the store connection."""
        await self.stop()
        self.scheduler.shutdown()
        await self.resolver.close()
        if self.store:
            await self.store.close()

    # ── Lookups ───────────────────────────────────────────────
    async def _lookup(self, key: str, cache_get, cache_set, resolve,
                      force_refresh: bool) -> LookupResult:
        self._stats["total_calls"] += 1

        if not force_refresh:
            cached = await _maybe_await(cache_get(key))
            if cached is not None:
                self._stats["cache_hits"] += 1
                self._stats["successful_calls"] += 1
                return LookupResult(data=cached, source=cached.source, cached=True)

        try:
            result = await resolve(key)
        except Exception as e:
            self._stats["failed_calls"] += 1
            log.error(f"Lookup for {key!r} failed: {e}")
            return LookupResult(data=None, source=SOURCE_ERROR, error=str(e))

        if result.data is None:
            self._stats["failed_calls"] += 1
            return LookupResult(data=None, source=result.source, error=result.error)

        await _maybe_await(cache_set(key, result.data))
        self._stats["successful_calls"] += 1
        return LookupResult(data=result.data, source=result.source)

    async def get_player_data(self, key: str, force_refresh: bool = False) -> LookupResult:
        if not self.ready:
            return self._not_ready()
        return await self._lookup(
            key, self.cache.get_player, self.cache.set_player,
            self.resolver.resolve, force_refresh,
        )

    async def get_market_price(self, key: str, force_refresh: bool = False) -> LookupResult:
        if not self.ready:
            return self._not_ready()
        return await self._lookup(
            key, self.cache.get_market, self.cache.set_market,
            self.resolver.resolve_market, force_refresh,
        )

    async def get_live_match_data(self, match_id: str, force_refresh: bool = False) -> LookupResult:
        if not self.ready:
            return self._not_ready()
        return await self._lookup(
            str(match_id), self.cache.get_live_match, self.cache.set_live_match,
            self.resolver.resolve_live_match, force_refresh,
        )

    async def get_market_insights(self, key: str) -> LookupResult:
        if not self.ready:
            return self._not_ready()
        price = await self.get_market_price(key)
        if not price.ok:
            return LookupResult(data=None, source=price.source,
                                error=price.error or "Failed to fetch market data")
        return LookupResult(data=market_insights(price.data), source=price.source, cached=price.cached)

    async def analyze_market(self, keys: List[str]) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        analyses, players = [], []
        for key in keys:
            insight = await self.get_market_insights(key)
            if not insight.ok:
                log.warning(f"Skipping {key} in market analysis: {insight.error}")
                continue
            a = insight.data
            analyses.append(a)
            players.append({
                "key":               key,
                "current_price":     a["current_market"]["current_price"],
                "trend":             a["trend"],
                "percentage_change": a["percentage_change"],
                "recommendation":    a["recommendation"],
            })
        return {"players": players, "summary": summarise_market(analyses)}

    # ── Sync ──────────────────────────────────────────────────
    async def batch_update_players(self, players: List[dict],
                                   progress_callback: Optional[ProgressCallback] = None) -> dict:
        """
        Re-resolve each player in order, bypassing the cache.

        updated:   resolved ratings differ from what the player dict carries
        unchanged: resolved ratings are identical
        failed:    nothing resolved, or the lookup raised
        """
        if not self.ready:
            return self._not_ready_dict()

        log.info(f"Starting batch update for {len(players)} players")
        results: Dict[str, Any] = {"updated": [], "unchanged": [], "failed": [], "progress": 0}
        total = len(players)

        for i, player in enumerate(players, 1):
            name = player.get("name", "")
            try:
                lookup = await self.get_player_data(name, force_refresh=True)
                record: Optional[PlayerRecord] = lookup.data
                if record is None:
                    results["failed"].append({**player, "error": lookup.error or f"No data found for {name}"})
                elif _known_ratings(player) == record.ratings():
                    results["unchanged"].append(player)
                else:
                    results["updated"].append({
                        **player,
                        "updated_data": record.to_dict(),
                        "source":       lookup.source,
                    })
            except Exception as e:
                log.warning(f"Batch update for {name!r} failed: {e}")
                results["failed"].append({**player, "error": str(e)})

            results["progress"] = int(i / total * 100)
            if progress_callback:
                try:
                    await _maybe_await(progress_callback(results["progress"], results))
                except Exception as e:
                    log.warning(f"Progress callback failed: {e}")

        log.info(f"Batch update done - {len(results['updated'])} updated  "
                 f"{len(results['unchanged'])} unchanged  {len(results['failed'])} failed")
        await self.events.publish(BATCH_UPDATE_COMPLETE, {
            "updated":   len(results["updated"]),
            "unchanged": len(results["unchanged"]),
            "failed":    len(results["failed"]),
        })
        return results

    async def _roster(self) -> List[dict]:
        if self.players_provider:
            return list(await _maybe_await(self.players_provider()) or [])
        return [{"name": n} for n in self.settings.sync_players]

    async def sync_player_data(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        roster = await self._roster()
        if not roster:
            log.info("No players to sync - skipping player update")
            self.sync_status["last_player_sync"] = now_iso()
            return {"updated": 0, "unchanged": 0, "failed": 0}

        results = await self.batch_update_players(roster)
        self.sync_status["last_player_sync"] = now_iso()
        return {
            "updated":   len(results["updated"]),
            "unchanged": len(results["unchanged"]),
            "failed":    len(results["failed"]),
        }

    async def sync_market_prices(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        keys = self.watchlist.keys()
        if not keys:
            log.info("Watchlist empty - skipping market sync")
            self.sync_status["last_market_sync"] = now_iso()
            return {"updated": 0, "failed": 0}

        updated = failed = 0
        for key in keys:
            result = await self.get_market_price(key, force_refresh=True)
            if result.ok:
                updated += 1
            else:
                failed += 1
                log.warning(f"Price refresh for {key} failed: {result.error}")
        self.sync_status["last_market_sync"] = now_iso()
        log.info(f"Market sync done - {updated} prices updated, {failed} failed")
        return {"updated": updated, "failed": failed}

    async def pre_cache_players(self, names: List[str]) -> dict:
        """Warm the player cache, e.g. before going offline."""
        if not self.ready:
            return self._not_ready_dict()
        cached, failed = 0, []
        for name in names:
            result = await self.get_player_data(name)
            if result.ok:
                cached += 1
            else:
                failed.append(name)
        log.info(f"Pre-cached {cached}/{len(names)} players")
        return {"cached": cached, "failed": failed}

    # ── Watchlist ─────────────────────────────────────────────
    async def add_to_watchlist(self, key: str, threshold: Optional[float] = None,
                               condition: str = CONDITION_BELOW) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        entry = await self.watchlist.add(key, threshold, condition)
        await self.events.publish(WATCHLIST_UPDATED, {"action": "added", "key": entry.key})
        return {"success": True, "entry": entry.to_dict()}

    async def remove_from_watchlist(self, key: str) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        removed = await self.watchlist.remove(key)
        if removed:
            await self.events.publish(WATCHLIST_UPDATED, {"action": "removed", "key": key})
        return {"success": removed}

    def get_watchlist_summary(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return self.watchlist.summary()

    async def _current_price(self, key: str) -> Optional[float]:
        result = await self.get_market_price(key)
        return result.data.current_price if result.ok else None

    async def check_price_alerts(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        alerts = await self.watchlist.check(self._current_price)
        self.sync_status["last_alert_check"] = now_iso()

        for alert in alerts:
            message = alert.message()
            await self.events.publish(PRICE_ALERT, {**alert.to_dict(), "message": message})
            await self.events.publish(NOTIFICATION, {
                "title": "Price alert",
                "body":  message,
                "key":   alert.key,
            })
        return {"success": True, "alerts": [a.to_dict() for a in alerts]}

    # ── Jobs ──────────────────────────────────────────────────
    def get_background_jobs_status(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return {"running": self.scheduler.running, "jobs": self.scheduler.get_all_jobs_status()}

    def get_job_history(self, name: Optional[str] = None, limit: int = 20) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return {"history": self.scheduler.get_job_history(name, limit)}

    async def set_job_enabled(self, name: str, enabled: bool) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return {"success": await self.scheduler.set_job_enabled(name, enabled)}

    async def update_job_interval(self, name: str, interval_s: float) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return {"success": await self.scheduler.update_job_interval(name, interval_s)}

    # ── Read surface ──────────────────────────────────────────
    async def run_diagnostics(self) -> dict:
        """Exercise every layer once. Failures are reported, never raised."""
        if not self.ready:
            return self._not_ready_dict()
        log.info("Running EA Sports diagnostics...")
        report: Dict[str, Any] = {
            "timestamp":       now_iso(),
            "connectivity":    None,
            "sample_player":   None,
            "market_price":    None,
            "background_jobs": None,
        }

        try:
            report["connectivity"] = await self.resolver.test_connectivity()
        except Exception as e:
            report["connectivity"] = {"error": str(e)}

        try:
            player = await self.get_player_data(DIAGNOSTIC_PLAYER)
            report["sample_player"] = {"success": player.ok, "source": player.source, "error": player.error}
        except Exception as e:
            report["sample_player"] = {"success": False, "error": str(e)}

        try:
            price = await self.get_market_price(DIAGNOSTIC_MARKET)
            report["market_price"] = {"success": price.ok, "source": price.source, "error": price.error}
        except Exception as e:
            report["market_price"] = {"success": False, "error": str(e)}

        try:
            report["background_jobs"] = self.get_background_jobs_status()
        except Exception as e:
            report["background_jobs"] = {"error": str(e)}

        log.info("Diagnostics completed")
        return report

    def get_stats(self) -> dict:
        total = self._stats["total_calls"]
        return {
            **self._stats,
            "success_rate":   _pct(self._stats["successful_calls"], total),
            "cache_hit_rate": _pct(self._stats["cache_hits"], total),
            "sync_status":    dict(self.sync_status),
            "initialized":    self.ready,
            "api_connected":  self.api_connected,
            "queue":          self.resolver.queue.stats(),
        }

    def get_status_report(self) -> dict:
        return {
            "integration": {
                "state":         self.state,
                "initialized":   self.ready,
                "api_connected": self.api_connected,
                "version":       VERSION,
            },
            "stats":           self.get_stats(),
            "background_jobs": self.get_background_jobs_status(),
            "watchlist":       self.get_watchlist_summary(),
            "last_sync":       dict(self.sync_status),
        }

    def get_cache_stats(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return self.cache.stats()

    def get_offline_fallback(self, key: str) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return self.cache.offline_fallback(key)

    # ── Upkeep ────────────────────────────────────────────────
    def reset_stats(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        self._stats = _fresh_stats()
        return {"success": True}

    async def clear_all_caches(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        await self.cache.clear()
        return {"success": True}

    async def cleanup_expired(self) -> dict:
        if not self.ready:
            return self._not_ready_dict()
        return {"removed": await self.cache.cleanup()}


# ═════════════════════════════════════════════════════════════
# COMPOSITION ROOT
# ═════════════════════════════════════════════════════════════

def build_integration(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    sources: Optional[List[PlayerSource]] = None,
    client: Optional[httpx.AsyncClient] = None,
    players_provider: Optional[PlayersProvider] = None,
    clock: Callable[[], float] = time.time,
    scheduler: Optional[JobScheduler] = None,
) -> EASportsIntegration:
    """Wire every collaborator from settings. Tests override pieces by keyword."""
    settings = settings or Settings.from_env()
    store    = store or build_store(settings.store, settings.state_file, settings.redis_url)
    events   = EventBus()

    if sources is None:
        sources = [
            EAFCSource(settings.ea_fc_api_key, settings.ea_fc_base_url,
                       client=client, timeout=settings.request_timeout_s),
            SofifaSource(settings.sofifa_proxy_url, id_index=settings.sofifa_ids,
                         client=client, timeout=settings.request_timeout_s),
            SyntheticSource(),
        ]

    cache = CacheLayer(
        store,
        player_ttl=settings.player_cache_ttl,
        market_ttl=settings.market_cache_ttl,
        live_match_ttl=settings.live_match_ttl,
        clock=clock,
    )
    queue    = FetchQueue(settings.rate_limit_s, settings.request_timeout_s)
    resolver = SourceResolver(sources, queue)
    if scheduler is None:
        scheduler = JobScheduler(store, events, clock=clock)
    elif scheduler.events is None:
        scheduler.events = events

    return EASportsIntegration(
        cache=cache,
        resolver=resolver,
        scheduler=scheduler,
        watchlist=Watchlist(store),
        events=events,
        settings=settings,
        store=store,
        players_provider=players_provider,
    )
