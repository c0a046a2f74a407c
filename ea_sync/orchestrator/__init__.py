from .fetch_queue import FetchQueue
from .resolver import ResolveResult, SourceResolver
from .scheduler import JobScheduler
from .watchlist import Watchlist
from .jobs import STANDING_JOBS, register_standing_jobs

__all__ = [
    "FetchQueue", "ResolveResult", "SourceResolver", "JobScheduler",
    "Watchlist", "STANDING_JOBS", "register_standing_jobs",
]
