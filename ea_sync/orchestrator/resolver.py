"""
EA Sync — Multi-Source Resolver
─────────────────────────────────
Turns a lookup key into a record by walking the sources in fixed priority:

  1. EA FC API    (primary; skipped when no API key is configured)
  2. SoFIFA       (secondary)
  3. Synthetic    (deterministic generator, always answers)

Each external attempt goes through the shared FetchQueue. An exception,
non-200 response or empty payload is logged and the next source is tried.
The record carries the provenance tag of the source that produced it.
Only total exhaustion yields ResolveResult(data=None, source="not_found").

This is the only place source calls are made. The cache layer and the
facade read; this fetches.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from ea_sync.models.records import SOURCE_NOT_FOUND
from ea_sync.orchestrator.fetch_queue import FetchQueue
from ea_sync.sources.base import PlayerSource

log = logging.getLogger("ea_sync.resolver")

KIND_PLAYER     = "player"
KIND_MARKET     = "market"
KIND_LIVE_MATCH = "live_match"

_FETCHERS = {
    KIND_PLAYER:     "fetch_player",
    KIND_MARKET:     "fetch_market",
    KIND_LIVE_MATCH: "fetch_live_match",
}


@dataclass
class ResolveResult:
    data:   Optional[Any]
    source: str
    error:  Optional[str] = None

    @property
    def found(self) -> bool:
        return self.data is not None


class SourceResolver:

    def __init__(self, sources: List[PlayerSource], queue: Optional[FetchQueue] = None):
        self.sources = list(sources)
        self.queue   = queue or FetchQueue()

    async def _attempt(self, source: PlayerSource, kind: str, key: str) -> Optional[Any]:
        fetch = getattr(source, _FETCHERS[kind])
        if source.rate_limited:
            return await self.queue.enqueue(lambda: fetch(key))
        return await fetch(key)

    async def _resolve(self, kind: str, key: str) -> ResolveResult:
        errors = []
        for source in self.sources:
            if not source.configured:
                log.info(f"{source.name} not configured - skipping for {kind} {key!r}")
                continue
            try:
                record = await self._attempt(source, kind, key)
            except Exception as e:
                log.warning(f"{source.name} failed for {kind} {key!r}: {e or type(e).__name__}")
                errors.append(f"{source.name}: {e or type(e).__name__}")
                continue
            if record is None:
                log.debug(f"{source.name} had nothing for {kind} {key!r}")
                continue
            log.debug(f"{kind} {key!r} resolved by {source.name} ({source.tag})")
            return ResolveResult(data=record, source=source.tag)

        log.warning(f"No source could resolve {kind} {key!r}")
        return ResolveResult(
            data=None,
            source=SOURCE_NOT_FOUND,
            error="; ".join(errors) or f"No data found for {key}",
        )

    async def resolve(self, key: str) -> ResolveResult:
        return await self._resolve(KIND_PLAYER, key)

    async def resolve_market(self, key: str) -> ResolveResult:
        return await self._resolve(KIND_MARKET, key)

    async def resolve_live_match(self, match_id: str) -> ResolveResult:
        return await self._resolve(KIND_LIVE_MATCH, match_id)

    async def test_connectivity(self) -> dict:
        report = {}
        for source in self.sources:
            try:
                report[source.name] = await source.test_connectivity()
            except Exception as e:
                report[source.name] = {"connected": False, "error": str(e)}
        return report

    async def close(self):
        await self.queue.close()
        for source in self.sources:
            try:
                await source.close()
            except Exception as e:
                log.warning(f"Closing {source.name} failed: {e}")
