"""
EA Sync — player ratings & transfer market sync for the league app.

    from ea_sync import build_integration
    ea = build_integration()
    await ea.initialize()
    result = await ea.get_player_data("Haaland")
"""

import logging

from ea_sync.config import Settings
from ea_sync.events import EventBus
from ea_sync.integration import EASportsIntegration, build_integration
from ea_sync.models.records import LookupResult, MarketPriceRecord, PlayerRecord

__version__ = "1.0.0"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: int = logging.INFO):
    """Opt-in logging setup for host applications. The library itself never calls this."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


__all__ = [
    "EASportsIntegration", "build_integration", "Settings", "EventBus",
    "LookupResult", "PlayerRecord", "MarketPriceRecord", "configure_logging",
]
