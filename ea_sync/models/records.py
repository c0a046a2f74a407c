"""
EA Sync — Record Models
─────────────────────────
Canonical shapes produced by the resolver and stored in the cache.
Every source adapter returns one of these; nothing downstream ever
sees a raw source payload.

Records are frozen. A refresh replaces the cached record wholesale.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Provenance tags
SOURCE_API       = "api"
SOURCE_SECONDARY = "secondary"
SOURCE_MOCK      = "mock"
SOURCE_NOT_FOUND = "not_found"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def iso_from_ts(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class PlayerStats:
    pace:      int = 70
    shooting:  int = 70
    passing:   int = 70
    dribbling: int = 70
    defending: int = 70
    physical:  int = 70


@dataclass(frozen=True)
class PlayerRecord:
    name:         str
    overall:      int
    potential:    int
    position:     str
    age:          int
    club:         str
    nationality:  str
    value:        int
    wage:         int
    stats:        PlayerStats
    source:       str            # "api" | "secondary" | "mock"
    last_updated: str            # ISO timestamp
    external_id:  Optional[str] = None
    sofifa_url:   Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "PlayerRecord":
        stats_d = d.get("stats") or {}
        stats = PlayerStats(**{
            k: v for k, v in stats_d.items()
            if k in PlayerStats.__dataclass_fields__
        })
        return cls(
            name=d.get("name", "Unknown"),
            overall=int(d.get("overall", 0)),
            potential=int(d.get("potential", 0)),
            position=d.get("position", "Unknown"),
            age=int(d.get("age", 0)),
            club=d.get("club", "Unknown"),
            nationality=d.get("nationality", "Unknown"),
            value=int(d.get("value", 0)),
            wage=int(d.get("wage", 0)),
            stats=stats,
            source=d.get("source", SOURCE_MOCK),
            last_updated=d.get("last_updated", ""),
            external_id=d.get("external_id"),
            sofifa_url=d.get("sofifa_url"),
        )

    def ratings(self) -> tuple:
        """The fields a league roster actually tracks."""
        return (self.overall, self.potential, self.value)


@dataclass(frozen=True)
class PricePoint:
    date:  str     # YYYY-MM-DD
    price: int


@dataclass(frozen=True)
class MarketPriceRecord:
    key:           str
    current_price: int
    lowest_price:  int
    highest_price: int
    average_price: int
    volume:        int
    price_history: List[PricePoint] = field(default_factory=list)
    source:        str = SOURCE_MOCK
    last_updated:  str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "MarketPriceRecord":
        history = [
            PricePoint(date=str(p.get("date", "")), price=int(p.get("price", 0)))
            for p in (d.get("price_history") or [])
        ]
        return cls(
            key=d.get("key", ""),
            current_price=int(d.get("current_price", 0)),
            lowest_price=int(d.get("lowest_price", 0)),
            highest_price=int(d.get("highest_price", 0)),
            average_price=int(d.get("average_price", 0)),
            volume=int(d.get("volume", 0)),
            price_history=history,
            source=d.get("source", SOURCE_MOCK),
            last_updated=d.get("last_updated", ""),
        )


@dataclass(frozen=True)
class LiveMatchRecord:
    match_id:     str
    home_team:    str
    away_team:    str
    home_score:   int
    away_score:   int
    minute:       int
    status:       str
    events:       List[Dict[str, Any]] = field(default_factory=list)
    stats:        Dict[str, Any]       = field(default_factory=dict)
    source:       str = SOURCE_MOCK
    last_updated: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LookupResult:
    """
    What the facade hands back for every lookup.
    Callers check `data` / `error` instead of catching exceptions.
    """
    data:   Optional[Any]
    source: str
    cached: bool = False
    error:  Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None and self.error is None

    def to_dict(self) -> dict:
        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        return {
            "data":   data,
            "source": self.source,
            "cached": self.cached,
            "error":  self.error,
        }
