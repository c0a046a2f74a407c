"""
EA Sync — Configuration
─────────────────────────
Everything tunable comes from the environment (.env supported).

Environment variables:
    EA_FC_API_KEY            = <bearer token>     # empty → demo mode (SoFIFA + mock)
    EA_FC_BASE_URL           = https://api.ea.com/fc
    SOFIFA_PROXY_URL         = https://<project>.supabase.co/functions/v1/sofifa-proxy
    SOFIFA_ID_INDEX          = Erling Haaland=239085,Kylian Mbappe=231747
    EA_SYNC_STORE            = file               # memory | file | redis
    EA_SYNC_STATE_FILE       = ea_sync_state.json
    REDIS_URL                = redis://localhost:6379
    EA_SYNC_RATE_LIMIT_S     = 1.0
    EA_SYNC_REQUEST_TIMEOUT  = 12
    PLAYER_CACHE_TTL         = 1800
    MARKET_CACHE_TTL         = 300
    LIVE_MATCH_CACHE_TTL     = 60
    EA_SYNC_PLAYERS          = Haaland,Mbappe     # roster for the daily player sync
    EA_SYNC_BACKGROUND_JOBS  = true
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List

from dotenv import load_dotenv

from ea_sync.cache.ttl_config import RATE_LIMIT_INTERVAL_S, REQUEST_TIMEOUT_S, TTL

DEFAULT_EA_FC_BASE_URL = "https://api.ea.com/fc"


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    return [p.strip() for p in os.getenv(name, "").split(",") if p.strip()]


def _env_id_index(name: str) -> Dict[str, int]:
    """Parse `name=id,name=id` into {name: id}. Malformed pairs are ignored."""
    index = {}
    for pair in _env_list(name):
        player, _, sid = pair.rpartition("=")
        if player.strip() and sid.strip().isdigit():
            index[player.strip()] = int(sid)
    return index


@dataclass
class Settings:
    ea_fc_api_key:       str = ""
    ea_fc_base_url:      str = DEFAULT_EA_FC_BASE_URL
    sofifa_proxy_url:    str = ""
    sofifa_ids:          Dict[str, int] = field(default_factory=dict)
    store:               str = "memory"
    state_file:          str = "ea_sync_state.json"
    redis_url:           str = "redis://localhost:6379"
    rate_limit_s:        float = RATE_LIMIT_INTERVAL_S
    request_timeout_s:   float = REQUEST_TIMEOUT_S
    player_cache_ttl:    float = TTL["player"]
    market_cache_ttl:    float = TTL["market"]
    live_match_ttl:      float = TTL["live_match"]
    sync_players:        List[str] = field(default_factory=list)
    background_jobs:     bool = True

    @property
    def has_api_key(self) -> bool:
        return bool(self.ea_fc_api_key)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            ea_fc_api_key=os.getenv("EA_FC_API_KEY", ""),
            ea_fc_base_url=os.getenv("EA_FC_BASE_URL", DEFAULT_EA_FC_BASE_URL).rstrip("/"),
            sofifa_proxy_url=os.getenv("SOFIFA_PROXY_URL", "").rstrip("/"),
            sofifa_ids=_env_id_index("SOFIFA_ID_INDEX"),
            store=os.getenv("EA_SYNC_STORE", "file"),
            state_file=os.getenv("EA_SYNC_STATE_FILE", "ea_sync_state.json"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            rate_limit_s=float(os.getenv("EA_SYNC_RATE_LIMIT_S", str(RATE_LIMIT_INTERVAL_S))),
            request_timeout_s=float(os.getenv("EA_SYNC_REQUEST_TIMEOUT", str(REQUEST_TIMEOUT_S))),
            player_cache_ttl=float(os.getenv("PLAYER_CACHE_TTL", str(TTL["player"]))),
            market_cache_ttl=float(os.getenv("MARKET_CACHE_TTL", str(TTL["market"]))),
            live_match_ttl=float(os.getenv("LIVE_MATCH_CACHE_TTL", str(TTL["live_match"]))),
            sync_players=_env_list("EA_SYNC_PLAYERS"),
            background_jobs=_env_bool("EA_SYNC_BACKGROUND_JOBS"),
        )
