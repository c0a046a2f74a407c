"""
EA Sync — SoFIFA Source (secondary)
─────────────────────────────────────
Goes through the SoFIFA proxy function, which takes a numeric SoFIFA id:

  POST {proxy_url}   {"sofifaId": 231747, "useCache": true}
  ->   {"data": {...player...}, "source": "cache" | "sofifa_api"}

Lookups by name need an id first: a numeric key is used as-is, anything
else is looked up in `id_index` (normalised name -> SoFIFA id). Unknown
names are declined, not guessed.

When the proxy hands back a player page instead of JSON, the HTML is
scraped best-effort for the headline fields.

SoFIFA has no transfer market feed; fetch_market always declines.
"""

import logging
import re
from typing import Dict, Optional

import httpx

from ea_sync.cache.ttl_cache import normalise_key
from ea_sync.cache.ttl_config import REQUEST_TIMEOUT_S
from ea_sync.models.records import SOURCE_SECONDARY, PlayerRecord, PlayerStats, now_iso
from ea_sync.sources.base import HttpSource, SourceUnavailable, clamp_rating

log = logging.getLogger("ea_sync.sources.sofifa")

SOFIFA_PLAYER_URL = "https://sofifa.com/player/{id}"

_STAT_FIELDS = ("pace", "shooting", "passing", "dribbling", "defending", "physical")

# ── HTML scraping (player page) ───────────────────────────────
_HTML_PATTERNS = {
    "overall":     re.compile(r'class="[^"]*bp-overall[^"]*"[^>]*>\s*(\d+)'),
    "potential":   re.compile(r'class="[^"]*bp-potential[^"]*"[^>]*>\s*(\d+)'),
    "age":         re.compile(r'class="[^"]*bp-age[^"]*"[^>]*>\s*(\d+)'),
    "name":        re.compile(r'<h1[^>]*data-title[^>]*>\s*([^<]+?)\s*<'),
    "club":        re.compile(r'class="[^"]*bp-club[^"]*"[^>]*>.*?<a[^>]*>\s*([^<]+?)\s*<', re.S),
    "nationality": re.compile(r'class="[^"]*bp-nationality[^"]*"[^>]*>.*?<a[^>]*>\s*([^<]+?)\s*<', re.S),
}
_HTML_POSITIONS = re.compile(r'class="[^"]*bp-positions[^"]*"[^>]*>(.*?)</div>', re.S)
_HTML_BADGE     = re.compile(r'class="[^"]*badge[^"]*"[^>]*>\s*([A-Z]{1,3})\s*<')


def parse_player_html(html: str) -> Optional[dict]:
    """Pull the headline fields out of a SoFIFA player page. None if nothing usable."""
    found: dict = {}
    for field_name, pattern in _HTML_PATTERNS.items():
        m = pattern.search(html)
        if m:
            value = m.group(1).strip()
            found[field_name] = int(value) if value.isdigit() else value

    block = _HTML_POSITIONS.search(html)
    if block:
        found["positions"] = _HTML_BADGE.findall(block.group(1))

    if not found.get("overall") and not found.get("name"):
        return None
    return found


# ── Adapter ───────────────────────────────────────────────────
def adapt_sofifa_player(p: dict, sofifa_id: Optional[int] = None) -> PlayerRecord:
    """
    One SoFIFA player payload:
      {id, name, overall, potential, age, positions: [...], club, nationality,
       value, wage, main_attributes: {pace, shooting, ...}}
    """
    positions = p.get("positions") or []
    if isinstance(positions, str):
        positions = [s.strip() for s in positions.split(",") if s.strip()]
    attrs   = p.get("main_attributes") or {}
    overall = clamp_rating(p.get("overall"))
    sid     = p.get("id") or sofifa_id
    return PlayerRecord(
        name=p.get("name") or "Unknown",
        overall=overall,
        potential=clamp_rating(p.get("potential"), default=overall),
        position=positions[0] if positions else "ST",
        age=int(p.get("age") or 25),
        club=p.get("club") or "Unknown",
        nationality=p.get("nationality") or "Unknown",
        value=int(p.get("value") or 0),
        wage=int(p.get("wage") or 0),
        stats=PlayerStats(**{f: int(attrs.get(f) or 70) for f in _STAT_FIELDS}),
        source=SOURCE_SECONDARY,
        last_updated=now_iso(),
        external_id=str(sid) if sid else None,
        sofifa_url=SOFIFA_PLAYER_URL.format(id=sid) if sid else None,
    )


# ── Source ────────────────────────────────────────────────────
class SofifaSource(HttpSource):

    tag = SOURCE_SECONDARY

    def __init__(self, proxy_url: str, id_index: Optional[Dict[str, int]] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 timeout: float = REQUEST_TIMEOUT_S):
        super().__init__(client, timeout)
        self.proxy_url = (proxy_url or "").rstrip("/")
        self.id_index: Dict[str, int] = {
            normalise_key(k): int(v) for k, v in (id_index or {}).items()
        }

    @property
    def name(self) -> str:
        return "SoFIFA"

    @property
    def configured(self) -> bool:
        return bool(self.proxy_url)

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "Accept": "application/json, text/html"}

    def sofifa_id(self, key: str) -> Optional[int]:
        key = normalise_key(key)
        if key.isdigit():
            return int(key)
        return self.id_index.get(key)

    def register_id(self, name: str, sofifa_id: int):
        self.id_index[normalise_key(name)] = int(sofifa_id)

    async def fetch_player(self, key: str) -> Optional[PlayerRecord]:
        if not self.configured:
            return None
        sid = self.sofifa_id(key)
        if sid is None:
            log.debug(f"No SoFIFA id known for {key!r}")
            return None

        r = await self._request("POST", self.proxy_url, json={"sofifaId": sid, "useCache": True})
        if "html" in r.headers.get("content-type", ""):
            payload = parse_player_html(r.text)
        else:
            body = r.json()
            if body.get("error"):
                raise SourceUnavailable(f"SoFIFA proxy: {body['error']}")
            payload = body.get("data")

        if not payload or not payload.get("overall"):
            return None
        return adapt_sofifa_player(payload, sofifa_id=sid)
