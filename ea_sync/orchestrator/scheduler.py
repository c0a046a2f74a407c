"""
EA Sync — Background Job Scheduler
════════════════════════════════════

Each standing job owns exactly one single-shot APScheduler `date` job whose
id is the job name. Re-arming replaces it (replace_existing=True), so a job
can never have two pending timers, however often it is registered,
re-enabled or re-timed.

Timing
──────
  never run            → now + 1s
  last_run + interval  → that instant, or now if already overdue
  after success        → last_run + interval
  after failure n      → now + 5s × n          (n = 1 … max_retries)
  retries exhausted    → retry count resets, now + interval

stop() pauses APScheduler and drops its timers; start() resumes it and re-arms
every enabled job, so a stopped scheduler can always be started again.

A failing job is never disabled by failure alone. A run that fires while
the same job is still running is skipped.

State
─────
{name, enabled, last_run, interval_s} per job, saved under ea_sports:jobs
after every run and every mutation. Saved state is loaded before the jobs
register, so a restored job picks its next fire time from its restored
last_run instead of starting over.

The clock is injectable; APScheduler is only ever handed absolute UTC
datetimes computed from it.
"""

import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ea_sync.cache.store import KeyValueStore
from ea_sync.cache.ttl_config import (
    JOB_FIRST_RUN_DELAY, JOB_HISTORY_SIZE, JOB_MAX_RETRIES, JOB_RETRY_BASE_S,
    STORAGE_KEYS,
)
from ea_sync.events import JOB_FAILED, EventBus
from ea_sync.models.jobs import (
    RUN_FAILED, RUN_SUCCESS, STATUS_COMPLETED, STATUS_FAILED, STATUS_RUNNING,
    Job, JobFunc, JobHistoryEntry, format_interval,
)
from ea_sync.models.records import now_iso

log = logging.getLogger("ea_sync.scheduler")


class JobScheduler:

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        aps: Optional[AsyncIOScheduler] = None,
        max_retries: int = JOB_MAX_RETRIES,
        retry_base_s: float = JOB_RETRY_BASE_S,
        first_run_delay: float = JOB_FIRST_RUN_DELAY,
        history_size: int = JOB_HISTORY_SIZE,
    ):
        self.store           = store
        self.events          = events
        self.max_retries     = max_retries
        self.retry_base_s    = retry_base_s
        self.first_run_delay = first_run_delay
        self.aps             = aps or AsyncIOScheduler(timezone="UTC")
        self.jobs: Dict[str, Job] = {}
        self.history: Deque[JobHistoryEntry] = deque(maxlen=history_size)
        self._clock       = clock
        self._running     = False
        self._in_flight   = set()
        self._saved_state: Dict[str, dict] = {}

    @property
    def running(self) -> bool:
        return self._running

    # ── Registration ──────────────────────────────────────────
    def register_job(self, name: str, func: JobFunc, interval_s: float,
                     run_immediately: bool = False) -> Job:
        """
        Add a job, or update the function/interval of an existing one.
        Registering the same name twice never creates a second timer.
        """
        if interval_s <= 0:
            raise ValueError(f"Job {name}: interval must be positive, got {interval_s}")

        job = self.jobs.get(name)
        if job:
            job.func       = func
            job.interval_s = interval_s
        else:
            job = Job(name=name, func=func, interval_s=interval_s, max_retries=self.max_retries)
            self.jobs[name] = job
            self._apply_saved(job)

        log.info(f"Registered job {name} (every {format_interval(job.interval_s)})")
        if job.enabled:
            self._arm(job, self._clock() if run_immediately else self.next_fire_time(job))
        return job

    def unregister_job(self, name: str) -> bool:
        job = self.jobs.pop(name, None)
        if not job:
            return False
        self._disarm(name)
        log.info(f"Unregistered job {name}")
        return True

    def _apply_saved(self, job: Job):
        saved = self._saved_state.get(job.name)
        if not saved:
            return
        job.enabled  = bool(saved.get("enabled", True))
        job.last_run = saved.get("last_run")
        if saved.get("interval_s"):
            job.interval_s = float(saved["interval_s"])

    # ── Timing ────────────────────────────────────────────────
    def next_fire_time(self, job: Job) -> float:
        now = self._clock()
        if job.last_run is None:
            return now + self.first_run_delay
        return max(job.last_run + job.interval_s, now)

    def _start_time(self, job: Job) -> float:
        # a run_immediately arm made before start() is kept
        ts = self.next_fire_time(job)
        if job.next_run is not None and job.next_run < ts:
            return job.next_run
        return ts

    def _arm(self, job: Job, ts: float):
        job.next_run = ts
        if not self._running or not job.enabled:
            return
        self.aps.add_job(
            self._fire,
            trigger            = "date",
            run_date           = datetime.fromtimestamp(ts, tz=timezone.utc),
            args               = [job.name],
            id                 = job.name,
            name               = job.name,
            replace_existing   = True,
            misfire_grace_time = None,
            max_instances      = 1,
        )
        log.debug(f"{job.name}: next run at {datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()}")

    def _disarm(self, name: str):
        job = self.jobs.get(name)
        if job:
            job.next_run = None
        if not self._running:
            return
        try:
            self.aps.remove_job(name)
        except JobLookupError:
            pass

    async def _fire(self, name: str):
        await self.run_job(name)

    # ── Execution ─────────────────────────────────────────────
    async def run_job(self, name: str) -> Optional[JobHistoryEntry]:
        """
        Run one job now. Returns its history entry, or None when the job is
        unknown, disabled, or already running.
        """
        job = self.jobs.get(name)
        if not job:
            log.warning(f"Job {name} not found")
            return None
        if not job.enabled:
            log.info(f"Job {name} is disabled - not running")
            return None
        if name in self._in_flight:
            log.info(f"Job {name} already running - skipped")
            return None

        self._in_flight.add(name)
        job.status = STATUS_RUNNING
        log.info(f"Running job {name}")
        t0 = time.monotonic()

        try:
            result = await job.func()
        except Exception as e:
            duration = time.monotonic() - t0
            job.status = STATUS_FAILED
            job.retry_count += 1
            entry = JobHistoryEntry(
                job_name=name, status=RUN_FAILED, duration_s=duration,
                timestamp=now_iso(), error=str(e) or type(e).__name__,
            )
            self.history.append(entry)

            if job.retry_count <= job.max_retries:
                delay = self.retry_base_s * job.retry_count
                log.warning(f"Job {name} failed: {e} - retry {job.retry_count}/{job.max_retries} in {delay:.0f}s")
                self._arm(job, self._clock() + delay)
            else:
                log.error(f"Job {name} failed: {e} - retries exhausted, next run in "
                          f"{format_interval(job.interval_s)}")
                job.retry_count = 0
                self._arm(job, self._clock() + job.interval_s)

            if self.events:
                await self.events.publish(JOB_FAILED, {
                    "job":         name,
                    "error":       entry.error,
                    "retry_count": job.retry_count,
                })
        else:
            duration = time.monotonic() - t0
            job.status      = STATUS_COMPLETED
            job.last_run    = self._clock()
            job.retry_count = 0
            entry = JobHistoryEntry(
                job_name=name, status=RUN_SUCCESS, duration_s=duration,
                timestamp=now_iso(), result=result,
            )
            self.history.append(entry)
            log.info(f"Job {name} completed in {duration:.2f}s")
            self._arm(job, self.next_fire_time(job))
        finally:
            self._in_flight.discard(name)
            await self.save_state()

        return entry

    # ── Control ───────────────────────────────────────────────
    def start(self, paused: bool = False):
        if self._running:
            log.warning("Scheduler already running - ignoring start call")
            return
        if not self.aps.running:
            self.aps.start(paused=paused)
        elif not paused:
            self.aps.resume()
        self._running = True
        for job in self.jobs.values():
            if job.enabled:
                self._arm(job, self._start_time(job))
        log.info(f"Scheduler live - {len(self.jobs)} jobs registered")

    def stop(self):
        """
        Cancel every pending timer. Bodies already running finish but do not
        reschedule. APScheduler is only paused, so start() can bring it back.
        """
        if not self._running:
            return
        self._running = False
        if self.aps.running:
            self.aps.remove_all_jobs()
            self.aps.pause()
        for job in self.jobs.values():
            job.next_run = None
        log.info("Scheduler stopped")

    def shutdown(self):
        """stop() and release APScheduler. A later start() gets a fresh one."""
        self.stop()
        if self.aps.running:
            self.aps.shutdown(wait=False)
        self.aps = AsyncIOScheduler(timezone="UTC")

    async def set_job_enabled(self, name: str, enabled: bool) -> bool:
        job = self.jobs.get(name)
        if not job:
            log.warning(f"Job {name} not found")
            return False
        job.enabled = enabled
        if enabled:
            self._arm(job, self.next_fire_time(job))
            log.info(f"Job {name} enabled")
        else:
            self._disarm(name)
            log.info(f"Job {name} disabled")
        await self.save_state()
        return True

    async def update_job_interval(self, name: str, interval_s: float) -> bool:
        if interval_s <= 0:
            raise ValueError(f"Job {name}: interval must be positive, got {interval_s}")
        job = self.jobs.get(name)
        if not job:
            log.warning(f"Job {name} not found")
            return False
        job.interval_s = interval_s
        if job.enabled:
            self._arm(job, self.next_fire_time(job))
        await self.save_state()
        log.info(f"Job {name} interval updated to {format_interval(interval_s)}")
        return True

    # ── Status ────────────────────────────────────────────────
    def get_job_status(self, name: str) -> Optional[dict]:
        job = self.jobs.get(name)
        return job.to_status() if job else None

    def get_all_jobs_status(self) -> List[dict]:
        return [job.to_status() for job in self.jobs.values()]

    def get_job_history(self, name: Optional[str] = None, limit: int = 20) -> List[dict]:
        """Most recent first."""
        entries = [e for e in self.history if name is None or e.job_name == name]
        return [e.to_dict() for e in reversed(entries[-limit:])] if limit > 0 else []

    def pending_timers(self) -> List[str]:
        if not self._running:
            return []
        return [j.id for j in self.aps.get_jobs()]

    # ── Persistence ───────────────────────────────────────────
    async def save_state(self):
        if not self.store:
            return
        await self.store.set(STORAGE_KEYS["jobs"], {
            "jobs":       [job.to_state() for job in self.jobs.values()],
            "last_saved": now_iso(),
        })

    async def load_state(self) -> int:
        """Read saved job state. Applies to jobs registered now or later."""
        if not self.store:
            return 0
        blob = await self.store.get(STORAGE_KEYS["jobs"])
        if not blob:
            return 0
        self._saved_state = {
            s["name"]: s for s in (blob.get("jobs") or []) if s.get("name")
        }
        for job in self.jobs.values():
            self._apply_saved(job)
        log.info(f"Loaded state for {len(self._saved_state)} jobs (saved {blob.get('last_saved', '?')})")
        return len(self._saved_state)
