"""
EA Sync — Data Source Base
────────────────────────────
Every ratings source inherits from PlayerSource.

A source answers three questions for one lookup key:
  - fetch_player(key)          -> PlayerRecord | None
  - fetch_market(key)          -> MarketPriceRecord | None
  - fetch_live_match(match_id) -> LiveMatchRecord | None

Returning None means "I have nothing for this key" and the resolver moves
on to the next source. Raising (HTTP error, timeout, bad payload) means the
same thing, but it also gets logged.

Each source turns its own payload shape into a record through one explicit
adapter function (see adapt_* in each module).
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ea_sync.cache.ttl_config import REQUEST_TIMEOUT_S
from ea_sync.models.records import LiveMatchRecord, MarketPriceRecord, PlayerRecord

log = logging.getLogger("ea_sync.sources")


class SourceUnavailable(Exception):
    """The source answered, but not with anything usable."""


def clamp_rating(value, default: int = 75) -> int:
    try:
        return max(0, min(99, int(value)))
    except (TypeError, ValueError):
        return default


class PlayerSource(ABC):
    """
    Base class for all ratings sources.

    Subclasses must implement:
      - name: str property
      - tag: provenance written on every record ("api" | "secondary" | "mock")
      - fetch_player(key)

    rate_limited=True routes calls through the shared fetch queue.
    """

    tag: str = ""
    rate_limited: bool = True

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def fetch_player(self, key: str) -> Optional[PlayerRecord]: ...

    async def fetch_market(self, key: str) -> Optional[MarketPriceRecord]:
        return None

    async def fetch_live_match(self, match_id: str) -> Optional[LiveMatchRecord]:
        return None

    async def test_connectivity(self) -> dict:
        return {"connected": self.configured, "source": self.name}

    async def close(self):
        pass


class HttpSource(PlayerSource):
    """PlayerSource talking JSON over httpx. Pass `client` to share or mock it."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = REQUEST_TIMEOUT_S):
        self.timeout       = timeout
        self._client       = client
        self._owns_client  = client is None

    def _headers(self) -> dict:
        return {"Accept": "application/json"}

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        r = await self._http().request(method, url, headers=self._headers(), **kwargs)
        if r.status_code != 200:
            raise SourceUnavailable(f"{self.name}: HTTP {r.status_code} from {url[:60]}")
        return r

    async def _request_json(self, method: str, url: str, **kwargs) -> dict:
        r = await self._request(method, url, **kwargs)
        return r.json()

    async def close(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
