"""
Shared fixtures: a controllable clock, an in-memory store, and stub sources
that answer from a dict (or fail on demand) without touching the network.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

import pytest

from ea_sync.cache.store import MemoryStore
from ea_sync.cache.ttl_cache import normalise_key
from ea_sync.config import Settings
from ea_sync.models.records import (
    SOURCE_MOCK, MarketPriceRecord, PlayerRecord, PlayerStats, PricePoint,
)
from ea_sync.sources.base import PlayerSource, SourceUnavailable


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StubSource(PlayerSource):
    """Answers from dicts keyed by normalised name. Keys in `fail` raise."""

    def __init__(self, name: str, tag: str,
                 players: Optional[Dict[str, PlayerRecord]] = None,
                 markets: Optional[Dict[str, MarketPriceRecord]] = None,
                 fail: Iterable[str] = (),
                 configured: bool = True,
                 rate_limited: bool = False):
        self._name        = name
        self.tag          = tag
        self.players      = {normalise_key(k): v for k, v in (players or {}).items()}
        self.markets      = {normalise_key(k): v for k, v in (markets or {}).items()}
        self.fail         = {normalise_key(k) for k in fail}
        self._configured  = configured
        self.rate_limited = rate_limited
        self.calls: List[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def configured(self) -> bool:
        return self._configured

    async def fetch_player(self, key):
        self.calls.append(key)
        if normalise_key(key) in self.fail:
            raise SourceUnavailable(f"{self._name} down for {key}")
        return self.players.get(normalise_key(key))

    async def fetch_market(self, key):
        self.calls.append(key)
        if normalise_key(key) in self.fail:
            raise SourceUnavailable(f"{self._name} down for {key}")
        return self.markets.get(normalise_key(key))


def make_player(name: str, overall: int = 80, potential: int = 85,
                value: int = 1_000_000, source: str = SOURCE_MOCK) -> PlayerRecord:
    return PlayerRecord(
        name=name, overall=overall, potential=potential, position="ST", age=25,
        club="Test FC", nationality="Testland", value=value, wage=10_000,
        stats=PlayerStats(), source=source, last_updated="2024-01-01T00:00:00+00:00",
    )


def make_market(key: str, prices: List[int], source: str = SOURCE_MOCK,
                end: date = date(2024, 6, 30)) -> MarketPriceRecord:
    n = len(prices)
    history = [
        PricePoint(date=(end - timedelta(days=n - 1 - i)).isoformat(), price=p)
        for i, p in enumerate(prices)
    ]
    return MarketPriceRecord(
        key=key,
        current_price=prices[-1],
        lowest_price=min(prices),
        highest_price=max(prices),
        average_price=int(sum(prices) / n),
        volume=500,
        price_history=history,
        source=source,
        last_updated="2024-06-30T00:00:00+00:00",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings():
    return Settings(rate_limit_s=0.0, request_timeout_s=2.0, background_jobs=False)


@pytest.fixture
def stub_source():
    return StubSource


@pytest.fixture
def player_factory():
    return make_player


@pytest.fixture
def market_factory():
    return make_market
