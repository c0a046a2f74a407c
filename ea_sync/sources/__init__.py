from .base import PlayerSource, HttpSource, SourceUnavailable
from .ea_fc import EAFCSource, adapt_ea_fc_player
from .sofifa import SofifaSource, adapt_sofifa_player
from .synthetic import SyntheticSource, adapt_synthetic_player

__all__ = [
    "PlayerSource", "HttpSource", "SourceUnavailable",
    "EAFCSource", "SofifaSource", "SyntheticSource",
    "adapt_ea_fc_player", "adapt_sofifa_player", "adapt_synthetic_player",
]
