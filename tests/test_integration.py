import asyncio
import json

import httpx
import pytest

from ea_sync.cache.store import MemoryStore
from ea_sync.config import Settings
from ea_sync.events import BATCH_UPDATE_COMPLETE, INITIALIZED, NOTIFICATION, PRICE_ALERT, WATCHLIST_UPDATED
from ea_sync.integration import NOT_INITIALIZED, build_integration
from ea_sync.models.records import SOURCE_API, SOURCE_MOCK, SOURCE_NOT_FOUND, SOURCE_SECONDARY
from ea_sync.orchestrator.jobs import STANDING_JOBS
from ea_sync.orchestrator.scheduler import JobScheduler


@pytest.fixture
def offline(settings):
    """No API key, no proxy: every lookup ends at the synthetic source."""
    return build_integration(settings, store=MemoryStore())


@pytest.fixture
def stubbed(settings, stub_source, player_factory, market_factory):
    primary = stub_source(
        "EA FC (stub)", SOURCE_API,
        players={
            "Haaland": player_factory("Haaland", overall=80, potential=85, value=1_000_000, source=SOURCE_API),
            "Mbappe":  player_factory("Mbappe", overall=91, potential=94, source=SOURCE_API),
        },
        markets={"Haaland": market_factory("Haaland", [100, 95, 90], SOURCE_API)},
        fail=["Broken"],
    )
    return build_integration(settings, store=MemoryStore(), sources=[primary])


# ── Lifecycle ─────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_everything_refuses_before_initialize(offline):
    lookup = await offline.get_player_data("Haaland")
    assert lookup.data is None
    assert lookup.error == NOT_INITIALIZED

    assert (await offline.get_market_price("Haaland")).error == NOT_INITIALIZED
    assert (await offline.batch_update_players([{"name": "x"}]))["error"] == NOT_INITIALIZED
    assert (await offline.add_to_watchlist("Haaland", 100))["success"] is False
    assert offline.get_background_jobs_status()["error"] == NOT_INITIALIZED

    stats = offline.get_stats()
    assert stats["initialized"] is False
    assert stats["total_calls"] == 0
    assert offline.get_status_report()["integration"]["state"] == "uninitialized"


@pytest.mark.asyncio
async def test_initialize_registers_jobs_without_starting_them(offline):
    seen = []
    offline.events.subscribe(INITIALIZED, seen.append)

    result = await offline.initialize()

    assert result["success"] is True
    assert result["api_connected"] is False
    assert result["background_jobs"] is False
    assert seen and seen[0]["api_connected"] is False

    jobs = offline.get_background_jobs_status()
    assert jobs["running"] is False
    assert sorted(j["name"] for j in jobs["jobs"]) == sorted(j[0] for j in STANDING_JOBS)

    again = await offline.initialize()
    assert again["already_initialized"] is True
    await offline.close()


@pytest.mark.asyncio
async def test_stop_returns_to_uninitialized(offline):
    await offline.initialize()
    await offline.stop()
    assert (await offline.get_player_data("Haaland")).error == NOT_INITIALIZED


@pytest.mark.asyncio
async def test_background_jobs_fire_again_after_stop_and_reinitialize(settings):
    integration = build_integration(
        settings, store=MemoryStore(), scheduler=JobScheduler(first_run_delay=0.05),
    )
    await integration.initialize(enable_background_jobs=True)
    await integration.stop()
    assert integration.get_stats()["initialized"] is False

    result = await integration.initialize(enable_background_jobs=True)
    await asyncio.sleep(0.5)

    try:
        assert result["success"] is True
        assert integration.get_background_jobs_status()["running"] is True
        ran = {e["job_name"] for e in integration.get_job_history(limit=50)["history"]}
        assert ran == {j[0] for j in STANDING_JOBS}
    finally:
        await integration.close()


# ── Lookups ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_offline_lookup_is_synthetic_and_then_cached(offline):
    await offline.initialize()

    first = await offline.get_player_data("Jan Becker")
    assert first.ok
    assert first.source in (SOURCE_SECONDARY, SOURCE_MOCK)
    assert 0 <= first.data.overall <= 99
    assert first.cached is False

    second = await offline.get_player_data("jan becker")
    assert second.cached is True
    assert second.data.overall == first.data.overall

    stats = offline.get_stats()
    assert stats["total_calls"] == 2
    assert stats["cache_hits"] == 1
    assert stats["cache_hit_rate"] == 50.0
    assert stats["success_rate"] == 100.0
    await offline.close()


@pytest.mark.asyncio
async def test_force_refresh_skips_the_cache(offline):
    await offline.initialize()
    await offline.get_player_data("Haaland")
    refreshed = await offline.get_player_data("Haaland", force_refresh=True)
    assert refreshed.cached is False
    assert offline.get_stats()["cache_hits"] == 0


@pytest.mark.asyncio
async def test_name_lookup_reaches_sofifa_through_configured_id_index():
    seen = []

    def handler(request: httpx.Request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {
            "name": "E. Haaland", "overall": 91, "potential": 94, "positions": ["ST"],
        }})

    settings = Settings(
        sofifa_proxy_url="https://proxy.example.test/sofifa-proxy",
        sofifa_ids={"Erling Haaland": 239085},
        rate_limit_s=0.0, background_jobs=False,
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    integration = build_integration(settings, store=MemoryStore(), client=client)
    await integration.initialize()

    result = await integration.get_player_data("erling haaland")

    assert seen == [{"sofifaId": 239085, "useCache": True}]
    assert result.source == SOURCE_SECONDARY
    assert result.data.overall == 91
    await integration.close()
    await client.aclose()


@pytest.mark.asyncio
async def test_not_found_is_a_result_not_an_exception(stubbed):
    await stubbed.initialize()
    result = await stubbed.get_player_data("Broken")
    assert result.data is None
    assert result.source == SOURCE_NOT_FOUND
    assert "Broken" in result.error
    assert stubbed.get_stats()["failed_calls"] == 1


@pytest.mark.asyncio
async def test_live_match_and_insights(offline):
    await offline.initialize()

    match = await offline.get_live_match_data("m-1")
    assert match.source == SOURCE_MOCK
    assert (await offline.get_live_match_data("m-1")).cached is True

    insight = await offline.get_market_insights("Jan Becker")
    assert insight.ok
    assert insight.data["trend"] in ("rising", "falling", "stable")
    assert insight.data["projected_price"]["method"] == "linear_projection"

    analysis = await offline.analyze_market(["Jan Becker", "Ana Silva"])
    assert len(analysis["players"]) == 2
    assert analysis["summary"]["total_value"] > 0


# ── Sync ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_batch_update_partitions_players(stubbed):
    await stubbed.initialize()
    progress, done = [], []
    stubbed.events.subscribe(BATCH_UPDATE_COMPLETE, done.append)

    results = await stubbed.batch_update_players(
        [
            {"name": "Haaland", "overall_rating": 80, "potential": 85, "market_value": 1_000_000},
            {"name": "Mbappe", "overall": 70},
            {"name": "Broken"},
        ],
        progress_callback=lambda pct, _: progress.append(pct),
    )

    assert [p["name"] for p in results["unchanged"]] == ["Haaland"]
    assert [p["name"] for p in results["updated"]] == ["Mbappe"]
    assert results["updated"][0]["updated_data"]["overall"] == 91
    assert results["updated"][0]["source"] == SOURCE_API
    assert [p["name"] for p in results["failed"]] == ["Broken"]
    assert "error" in results["failed"][0]
    assert progress == [33, 66, 100]
    assert done[0]["updated"] == 1


@pytest.mark.asyncio
async def test_player_sync_job_uses_roster(settings, stub_source, player_factory):
    primary = stub_source("primary", SOURCE_API, players={"Haaland": player_factory("Haaland")})
    integration = build_integration(
        settings, store=MemoryStore(), sources=[primary],
        players_provider=lambda: [{"name": "Haaland", "overall": 1}],
    )
    await integration.initialize()

    entry = await integration.scheduler.run_job("player_updates")

    assert entry.status == "success"
    assert entry.result == {"updated": 1, "unchanged": 0, "failed": 0}
    assert integration.get_stats()["sync_status"]["last_player_sync"] is not None


@pytest.mark.asyncio
async def test_market_sync_refreshes_watched_players(stubbed):
    await stubbed.initialize()
    await stubbed.add_to_watchlist("Haaland")
    assert await stubbed.sync_market_prices() == {"updated": 1, "failed": 0}


# ── Watchlist & alerts ────────────────────────────────────────
@pytest.mark.asyncio
async def test_price_alert_announced_once(stubbed):
    await stubbed.initialize()
    alerts, notes, updates = [], [], []
    stubbed.events.subscribe(PRICE_ALERT, alerts.append)
    stubbed.events.subscribe(NOTIFICATION, notes.append)
    stubbed.events.subscribe(WATCHLIST_UPDATED, updates.append)

    await stubbed.add_to_watchlist("Haaland", 95, "below")
    first = await stubbed.check_price_alerts()
    second = await stubbed.check_price_alerts()

    assert len(first["alerts"]) == 1
    assert first["alerts"][0]["current_price"] == 90
    assert second["alerts"] == []
    assert len(alerts) == 1
    assert "Haaland" in alerts[0]["message"]
    assert notes[0]["key"] == "Haaland"
    assert updates[0]["action"] == "added"

    summary = stubbed.get_watchlist_summary()
    assert summary["total_alerts"] == 1
    assert summary["active_alerts"] == 0


@pytest.mark.asyncio
async def test_alert_job_reports_count(stubbed):
    await stubbed.initialize()
    await stubbed.add_to_watchlist("Haaland", 95)
    entry = await stubbed.scheduler.run_job("price_alerts")
    assert entry.result == {"alerts": 1}
    assert stubbed.get_job_history("price_alerts")["history"][0]["status"] == "success"


@pytest.mark.asyncio
async def test_bad_condition_raises(stubbed):
    await stubbed.initialize()
    with pytest.raises(ValueError):
        await stubbed.add_to_watchlist("Haaland", 95, "sideways")


# ── Read surface ──────────────────────────────────────────────
@pytest.mark.asyncio
async def test_diagnostics_report_every_layer(offline):
    await offline.initialize()
    report = await offline.run_diagnostics()

    assert set(report["connectivity"]) == {"EA FC API", "SoFIFA", "Synthetic"}
    assert report["sample_player"]["success"] is True
    assert report["sample_player"]["source"] == SOURCE_MOCK
    assert report["market_price"]["success"] is True
    assert len(report["background_jobs"]["jobs"]) == len(STANDING_JOBS)


@pytest.mark.asyncio
async def test_upkeep_operations(offline):
    await offline.initialize()
    await offline.get_player_data("Haaland")

    assert offline.get_cache_stats()["player"]["valid"] == 1
    assert offline.get_offline_fallback("Haaland")["offline_message"] == "Cached data (offline mode)"

    assert (await offline.cleanup_expired())["removed"] == 0
    assert (await offline.clear_all_caches())["success"] is True
    assert offline.get_cache_stats()["player"]["total"] == 0

    offline.reset_stats()
    assert offline.get_stats()["total_calls"] == 0

    report = offline.get_status_report()
    assert report["integration"]["initialized"] is True
    assert report["integration"]["version"] == "1.0.0"
