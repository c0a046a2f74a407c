"""
EA Sync — Standing Jobs
─────────────────────────
The four background jobs every integration runs. Job bodies only call
facade operations; they never touch a source or the store directly.

  player_updates   daily     re-resolve the league roster
  market_prices    hourly    refresh prices for every watched player
  price_alerts     15 min    evaluate watchlist alerts, announce hits
  data_cleanup     weekly    purge expired cache entries
"""

import logging
from functools import partial

from ea_sync.cache.ttl_config import JOB_INTERVALS

log = logging.getLogger("ea_sync.jobs")


async def job_player_updates(integration) -> dict:
    result = await integration.sync_player_data()
    _raise_on_error("player_updates", result)
    return result


async def job_market_prices(integration) -> dict:
    result = await integration.sync_market_prices()
    _raise_on_error("market_prices", result)
    return result


async def job_price_alerts(integration) -> dict:
    result = await integration.check_price_alerts()
    _raise_on_error("price_alerts", result)
    return {"alerts": len(result.get("alerts", []))}


async def job_data_cleanup(integration) -> dict:
    result = await integration.cleanup_expired()
    _raise_on_error("data_cleanup", result)
    return result


def _raise_on_error(job: str, result: dict):
    if isinstance(result, dict) and result.get("error"):
        raise RuntimeError(f"{job}: {result['error']}")


# ═════════════════════════════════════════════════════════════
# JOB REGISTRY
# (job_id, func, interval_s, display_name)
# ═════════════════════════════════════════════════════════════

STANDING_JOBS = [
    ("player_updates", job_player_updates, JOB_INTERVALS["player_updates"], "Daily player ratings sync"),
    ("market_prices",  job_market_prices,  JOB_INTERVALS["market_prices"],  "Hourly watchlist price refresh"),
    ("price_alerts",   job_price_alerts,   JOB_INTERVALS["price_alerts"],   "Price alert check"),
    ("data_cleanup",   job_data_cleanup,   JOB_INTERVALS["data_cleanup"],   "Weekly cache cleanup"),
]


def register_standing_jobs(scheduler, integration) -> int:
    log.info("Registering standing jobs:")
    for (job_id, func, interval_s, name) in STANDING_JOBS:
        scheduler.register_job(job_id, partial(func, integration), interval_s)
        log.info(f"  {job_id:<15} {name}")
    return len(STANDING_JOBS)
