"""
EA Sync — Watchlist Models
"""

from dataclasses import dataclass, field, asdict
from typing import List, Optional

CONDITION_BELOW = "below"
CONDITION_ABOVE = "above"
CONDITIONS      = (CONDITION_BELOW, CONDITION_ABOVE)


@dataclass
class PriceAlert:
    threshold:    float
    condition:    str           # "below" | "above"
    active:       bool = True
    created_at:   str = ""
    triggered_at: Optional[str] = None

    def is_triggered_by(self, current_price: float) -> bool:
        if self.condition == CONDITION_BELOW:
            return current_price <= self.threshold
        return current_price >= self.threshold


@dataclass
class WatchlistEntry:
    key:      str
    alerts:   List[PriceAlert] = field(default_factory=list)
    added_at: str = ""

    def active_alerts(self) -> List[PriceAlert]:
        return [a for a in self.alerts if a.active]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "WatchlistEntry":
        alerts = []
        for a in d.get("alerts") or []:
            if a.get("condition") not in CONDITIONS:
                continue
            alerts.append(PriceAlert(
                threshold=float(a.get("threshold", 0)),
                condition=a["condition"],
                active=bool(a.get("active", True)),
                created_at=a.get("created_at", ""),
                triggered_at=a.get("triggered_at"),
            ))
        return cls(key=d.get("key", ""), alerts=alerts, added_at=d.get("added_at", ""))


@dataclass(frozen=True)
class TriggeredAlert:
    key:           str
    current_price: float
    threshold:     float
    condition:     str
    timestamp:     str

    def to_dict(self) -> dict:
        return asdict(self)

    def message(self) -> str:
        return (f"{self.key} is now {self.condition} {self.threshold:,.0f} "
                f"(current: {self.current_price:,.0f})")
