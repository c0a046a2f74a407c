from .records import (
    PlayerStats, PlayerRecord, PricePoint, MarketPriceRecord, LiveMatchRecord,
    LookupResult, SOURCE_API, SOURCE_SECONDARY, SOURCE_MOCK, SOURCE_NOT_FOUND,
)
from .watch import PriceAlert, WatchlistEntry, TriggeredAlert
from .jobs import Job, JobHistoryEntry

__all__ = [
    "PlayerStats", "PlayerRecord", "PricePoint", "MarketPriceRecord",
    "LiveMatchRecord", "LookupResult", "PriceAlert", "WatchlistEntry",
    "TriggeredAlert", "Job", "JobHistoryEntry",
    "SOURCE_API", "SOURCE_SECONDARY", "SOURCE_MOCK", "SOURCE_NOT_FOUND",
]
