"""
EA Sync — TTL Configuration
─────────────────────────────
Single source of truth for all cache durations and job cadences.
Organised by data type — how fast the real world changes.
"""

# ── Per cache-space TTL (seconds) ─────────────────────────────

TTL = {
    # Ratings move with weekly content drops
    "player":     30 * 60,     # 30 minutes
    # Transfer market moves constantly
    "market":     5 * 60,      # 5 minutes
    # Live match state is only useful while it is live; never persisted
    "live_match": 60,          # 1 minute
}

# ── Durable storage keys ──────────────────────────────────────
STORAGE_KEYS = {
    "cache":     "ea_sports:cache",
    "watchlist": "ea_sports:watchlist",
    "jobs":      "ea_sports:jobs",
}

# ── Standing job intervals (seconds) ─────────────────────────
JOB_INTERVALS = {
    "player_updates": 24 * 3600,       # daily
    "market_prices":  3600,            # hourly
    "price_alerts":   15 * 60,         # every 15 minutes
    "data_cleanup":   7 * 24 * 3600,   # weekly
}

# ── Scheduler behaviour ──────────────────────────────────────
JOB_MAX_RETRIES      = 3
JOB_RETRY_BASE_S     = 5.0     # retry n fires after n × 5s
JOB_FIRST_RUN_DELAY  = 1.0     # never-run jobs start after 1s
JOB_HISTORY_SIZE     = 100

# ── Fetch queue ──────────────────────────────────────────────
RATE_LIMIT_INTERVAL_S = 1.0    # one outbound request per second
REQUEST_TIMEOUT_S     = 12.0

# ── Insights ─────────────────────────────────────────────────
INSIGHT_HISTORY_DAYS = 30
PROJECTION_DAYS      = 7
