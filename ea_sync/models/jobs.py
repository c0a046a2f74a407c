"""
EA Sync — Job Models
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ea_sync.models.records import iso_from_ts

STATUS_SCHEDULED = "scheduled"
STATUS_RUNNING   = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED    = "failed"

RUN_SUCCESS = "success"
RUN_FAILED  = "failed"

JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class Job:
    name:        str
    func:        JobFunc = field(repr=False)
    interval_s:  float
    last_run:    Optional[float] = None    # epoch seconds
    next_run:    Optional[float] = None
    status:      str = STATUS_SCHEDULED
    enabled:     bool = True
    retry_count: int = 0
    max_retries: int = 3

    def to_status(self) -> dict:
        return {
            "name":        self.name,
            "status":      self.status,
            "enabled":     self.enabled,
            "last_run":    iso_from_ts(self.last_run),
            "next_run":    iso_from_ts(self.next_run) if self.enabled else None,
            "interval":    format_interval(self.interval_s),
            "interval_s":  self.interval_s,
            "retry_count": self.retry_count,
        }

    def to_state(self) -> dict:
        return {
            "name":       self.name,
            "enabled":    self.enabled,
            "last_run":   self.last_run,
            "interval_s": self.interval_s,
        }


@dataclass
class JobHistoryEntry:
    job_name:   str
    status:     str            # "success" | "failed"
    duration_s: float
    timestamp:  str
    error:      Optional[str] = None
    result:     Any = field(default=None, repr=False)

    def to_dict(self) -> dict:
        d = {
            "job_name":   self.job_name,
            "status":     self.status,
            "duration_s": round(self.duration_s, 3),
            "timestamp":  self.timestamp,
        }
        if self.error:
            d["error"] = self.error
        return d


def format_interval(seconds: float) -> str:
    seconds = int(seconds)
    if seconds >= 86400:
        return f"{seconds // 86400} day(s)"
    if seconds >= 3600:
        return f"{seconds // 3600} hour(s)"
    if seconds >= 60:
        return f"{seconds // 60} minute(s)"
    return f"{seconds} second(s)"
