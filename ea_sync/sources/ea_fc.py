"""
EA Sync — EA FC API Source (primary)
──────────────────────────────────────
Bearer-token JSON API. Without a token the source reports itself as not
configured and the resolver skips it; that is normal demo mode.

Endpoints used:
  POST {base}/players/search                         {name, limit: 1, exact_match: false}
  GET  {base}/transfermarket/player/{id}
  GET  {base}/transfermarket/player/{id}/trend?days=30
  GET  {base}/matches/{id}/live
  GET  {base}/health
"""

import logging
from typing import Optional

import httpx

from ea_sync.cache.ttl_config import INSIGHT_HISTORY_DAYS, REQUEST_TIMEOUT_S
from ea_sync.models.records import (
    SOURCE_API, LiveMatchRecord, MarketPriceRecord, PlayerRecord, PlayerStats,
    PricePoint, now_iso,
)
from ea_sync.sources.base import HttpSource, SourceUnavailable, clamp_rating

log = logging.getLogger("ea_sync.sources.ea_fc")

_STAT_FIELDS = ("pace", "shooting", "passing", "dribbling", "defending", "physical")


# ── Adapters ──────────────────────────────────────────────────
def adapt_ea_fc_player(p: dict) -> PlayerRecord:
    """One entry of `players` from /players/search."""
    positions = p.get("preferred_positions") or []
    attrs     = p.get("attributes") or {}
    rating    = clamp_rating(p.get("rating"))
    return PlayerRecord(
        name=p.get("name") or "Unknown",
        overall=rating,
        potential=clamp_rating(p.get("potential"), default=rating),
        position=positions[0] if positions else "ST",
        age=int(p.get("age") or 25),
        club=p.get("team") or "Unknown",
        nationality=p.get("country") or "Unknown",
        value=int(p.get("market_value") or 0),
        wage=int(p.get("salary") or 0),
        stats=PlayerStats(**{f: int(attrs.get(f, 70)) for f in _STAT_FIELDS}),
        source=SOURCE_API,
        last_updated=now_iso(),
        external_id=str(p["id"]) if p.get("id") is not None else None,
    )


def adapt_ea_fc_market(key: str, quote: dict, trend: Optional[dict]) -> MarketPriceRecord:
    history = [
        PricePoint(date=str(pt.get("date", "")), price=int(pt.get("price", 0)))
        for pt in ((trend or {}).get("price_history") or [])
    ]
    return MarketPriceRecord(
        key=key,
        current_price=int(quote.get("price") or 0),
        lowest_price=int(quote.get("lowest_price") or 0),
        highest_price=int(quote.get("highest_price") or 0),
        average_price=int(quote.get("average_price") or 0),
        volume=int(quote.get("volume") or 0),
        price_history=history,
        source=SOURCE_API,
        last_updated=quote.get("last_updated") or now_iso(),
    )


def adapt_ea_fc_live_match(m: dict) -> LiveMatchRecord:
    return LiveMatchRecord(
        match_id=str(m.get("id", "")),
        home_team=m.get("home_team") or "",
        away_team=m.get("away_team") or "",
        home_score=int(m.get("home_score") or 0),
        away_score=int(m.get("away_score") or 0),
        minute=int(m.get("minute") or 0),
        status=m.get("status") or "live",
        events=list(m.get("events") or []),
        stats=dict(m.get("stats") or {}),
        source=SOURCE_API,
        last_updated=now_iso(),
    )


# ── Source ────────────────────────────────────────────────────
class EAFCSource(HttpSource):

    tag = SOURCE_API

    def __init__(self, api_key: str, base_url: str,
                 client: Optional[httpx.AsyncClient] = None,
                 timeout: float = REQUEST_TIMEOUT_S):
        super().__init__(client, timeout)
        self.api_key  = api_key or ""
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "EA FC API"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type":  "application/json",
            "Accept":        "application/json",
        }

    async def fetch_player(self, key: str) -> Optional[PlayerRecord]:
        data = await self._request_json(
            "POST", f"{self.base_url}/players/search",
            json={"name": key, "limit": 1, "exact_match": False},
        )
        players = data.get("players") or []
        if not players:
            return None
        return adapt_ea_fc_player(players[0])

    async def fetch_market(self, key: str) -> Optional[MarketPriceRecord]:
        quote = await self._request_json("GET", f"{self.base_url}/transfermarket/player/{key}")
        if not quote:
            return None
        try:
            trend = await self._request_json(
                "GET", f"{self.base_url}/transfermarket/player/{key}/trend",
                params={"days": INSIGHT_HISTORY_DAYS},
            )
        except Exception as e:
            log.warning(f"Price trend for {key} unavailable: {e}")
            trend = None
        return adapt_ea_fc_market(key, quote, trend)

    async def fetch_live_match(self, match_id: str) -> Optional[LiveMatchRecord]:
        data = await self._request_json("GET", f"{self.base_url}/matches/{match_id}/live")
        if not data:
            return None
        if not data.get("id"):
            data = {**data, "id": match_id}
        return adapt_ea_fc_live_match(data)

    async def test_connectivity(self) -> dict:
        if not self.configured:
            return {
                "connected":          False,
                "mode":               "demo",
                "message":            "EA FC API key not configured - SoFIFA and mock data active",
                "fallback_available": True,
            }
        try:
            await self._request("GET", f"{self.base_url}/health")
            return {"connected": True, "message": "EA FC API connected", "fallback_available": True}
        except SourceUnavailable as e:
            return {"connected": False, "message": str(e), "fallback_available": True}
        except Exception as e:
            return {
                "connected":          False,
                "message":            "EA FC API unreachable - using fallback sources",
                "fallback_available": True,
                "error":              str(e),
            }

