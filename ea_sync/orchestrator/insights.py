"""
EA Sync — Market Insights
───────────────────────────
Pure functions over a MarketPriceRecord's price history:
  - percentage change (first → last)
  - trend            rising > 2% · falling < -2% · else stable
  - volatility       coefficient of variation, %
  - recommendation   sell > 10% · hold > 5% · buy < -10% · buy < -5% · hold
  - best buy time    lowest point in the window
  - projection       7-day least-squares linear extrapolation

Nothing here does I/O; the facade feeds in records from the cache.
"""

import math
from datetime import date
from typing import Dict, List, Optional, Sequence

from ea_sync.cache.ttl_config import PROJECTION_DAYS
from ea_sync.models.records import MarketPriceRecord, PricePoint

TREND_THRESHOLD = 2.0


# ── CALCULATIONS ─────────────────────────────────────────────
def percentage_change(history: Sequence[PricePoint]) -> float:
    if len(history) < 2 or not history[0].price:
        return 0.0
    first, last = history[0].price, history[-1].price
    return round((last - first) / first * 100, 2)


def trend_of(change_pct: float) -> str:
    if change_pct > TREND_THRESHOLD:
        return "rising"
    if change_pct < -TREND_THRESHOLD:
        return "falling"
    return "stable"


def volatility(history: Sequence[PricePoint]) -> float:
    if len(history) < 2:
        return 0.0
    prices = [p.price for p in history]
    mean = sum(prices) / len(prices)
    if not mean:
        return 0.0
    variance = sum((p - mean) ** 2 for p in prices) / len(prices)
    return round(math.sqrt(variance) / mean * 100, 2)


def recommendation(change_pct: float) -> Dict[str, str]:
    if change_pct > 10:
        return {"action": "sell", "reason": "Price is rising significantly", "confidence": "high"}
    if change_pct > 5:
        return {"action": "hold", "reason": "Price trending upward",         "confidence": "medium"}
    if change_pct < -10:
        return {"action": "buy",  "reason": "Price has dropped significantly", "confidence": "high"}
    if change_pct < -5:
        return {"action": "buy",  "reason": "Good buying opportunity",       "confidence": "medium"}
    return {"action": "hold", "reason": "Price is stable", "confidence": "low"}


def best_buy_time(history: Sequence[PricePoint], today: Optional[date] = None) -> Optional[dict]:
    if not history:
        return None
    lowest = min(history, key=lambda p: p.price)
    today = today or date.today()
    try:
        days_ago = (today - date.fromisoformat(lowest.date[:10])).days
    except ValueError:
        days_ago = None
    return {"date": lowest.date, "price": lowest.price, "days_ago": days_ago}


def _slope(prices: List[float]) -> float:
    n = len(prices)
    x_mean = (n - 1) / 2
    y_mean = sum(prices) / n
    num = sum((i - x_mean) * (y - y_mean) for i, y in enumerate(prices))
    den = sum((i - x_mean) ** 2 for i in range(n))
    return num / den if den else 0.0


def project_price(history: Sequence[PricePoint], days: int = PROJECTION_DAYS) -> dict:
    """Extend the least-squares line `days` steps past the last point."""
    if not history:
        return {"price": 0, "days": days, "confidence": "low", "method": "linear_projection"}
    prices  = [float(p.price) for p in history]
    current = prices[-1]
    if len(prices) < 2:
        projected = current
    else:
        projected = current + _slope(prices) * days
    change = percentage_change(history)
    return {
        "price":      max(0, int(projected)),
        "days":       days,
        "confidence": "low" if abs(change) > 5 else "medium",
        "method":     "linear_projection",
    }


# ── ASSEMBLY ─────────────────────────────────────────────────
def market_insights(record: MarketPriceRecord, today: Optional[date] = None) -> dict:
    history = record.price_history
    change  = percentage_change(history)
    return {
        "key":               record.key,
        "current_market":    record.to_dict(),
        "percentage_change": change,
        "trend":             trend_of(change),
        "recommendation":    recommendation(change),
        "volatility":        volatility(history),
        "best_buy_time":     best_buy_time(history, today),
        "projected_price":   project_price(history),
    }


def summarise_market(analyses: List[dict]) -> dict:
    """Portfolio roll-up over several market_insights() results."""
    summary = {
        "total_value":     0,
        "average_change":  0.0,
        "rising_players":  0,
        "falling_players": 0,
        "stable_players":  0,
    }
    for a in analyses:
        summary["total_value"] += a["current_market"]["current_price"]
        summary[f"{a['trend']}_players"] += 1
    if analyses:
        summary["average_change"] = round(
            sum(a["percentage_change"] for a in analyses) / len(analyses), 2
        )
    return summary
