import pytest

from ea_sync.cache.ttl_config import STORAGE_KEYS
from ea_sync.orchestrator.watchlist import Watchlist


def prices(table):
    async def lookup(key):
        return table.get(key)
    return lookup


@pytest.mark.asyncio
async def test_below_alert_fires_at_or_under_threshold():
    wl = Watchlist()
    await wl.add("Haaland", 100, "below")

    assert await wl.check(prices({"Haaland": 110})) == []
    fired = await wl.check(prices({"Haaland": 90}))

    assert len(fired) == 1
    assert fired[0].key == "Haaland"
    assert fired[0].current_price == 90
    assert fired[0].threshold == 100
    assert fired[0].condition == "below"


@pytest.mark.asyncio
async def test_above_alert_fires_on_equal_price():
    wl = Watchlist()
    await wl.add("Mbappe", 500, "above")
    assert len(await wl.check(prices({"Mbappe": 500}))) == 1


@pytest.mark.asyncio
async def test_alert_is_one_shot_until_re_added():
    wl = Watchlist()
    await wl.add("Haaland", 100)

    assert len(await wl.check(prices({"Haaland": 50}))) == 1
    assert await wl.check(prices({"Haaland": 40})) == []

    alert = wl.entries["haaland"].alerts[0]
    assert alert.active is False
    assert alert.triggered_at is not None

    await wl.add("haaland", 100)       # same threshold re-arms, no duplicate
    assert len(wl.entries["haaland"].alerts) == 1
    assert len(await wl.check(prices({"Haaland": 40}))) == 1


@pytest.mark.asyncio
async def test_unknown_condition_is_rejected():
    with pytest.raises(ValueError):
        await Watchlist().add("Haaland", 100, "sideways")


@pytest.mark.asyncio
async def test_entry_without_alerts_is_not_looked_up():
    looked_up = []

    async def lookup(key):
        looked_up.append(key)
        return 1

    wl = Watchlist()
    await wl.add("Haaland")
    assert await wl.check(lookup) == []
    assert looked_up == []
    assert "HAALAND" in wl


@pytest.mark.asyncio
async def test_failed_or_missing_price_skips_only_that_player():
    async def lookup(key):
        if key == "Broken":
            raise RuntimeError("market feed down")
        return {"Cheap": 10}.get(key)

    wl = Watchlist()
    await wl.add("Broken", 100)
    await wl.add("Unknown", 100)
    await wl.add("Cheap", 100)

    fired = await wl.check(lookup)
    assert [a.key for a in fired] == ["Cheap"]


@pytest.mark.asyncio
async def test_persistence_round_trip(store):
    wl = Watchlist(store)
    await wl.add("Haaland", 100, "below")
    await wl.add("Mbappe", 500, "above")
    await wl.check(prices({"Haaland": 90}))

    restored = Watchlist(store)
    assert await restored.load() == 2

    summary = restored.summary()
    assert summary["total_players"] == 2
    assert summary["total_alerts"] == 2
    assert summary["active_alerts"] == 1
    assert sorted(summary["players"]) == ["Haaland", "Mbappe"]


@pytest.mark.asyncio
async def test_load_skips_unreadable_entries(store):
    await store.set(STORAGE_KEYS["watchlist"], {"entries": [
        {"key": "Haaland", "alerts": [{"threshold": 100, "condition": "below"}]},
        {"key": "Bad", "alerts": [{"threshold": "lots", "condition": "below"}]},
    ]})
    wl = Watchlist(store)
    assert await wl.load() == 1
    assert "Haaland" in wl


@pytest.mark.asyncio
async def test_remove(store):
    wl = Watchlist(store)
    await wl.add("Haaland", 100)
    assert await wl.remove("  haaland ") is True
    assert await wl.remove("Haaland") is False
    assert len(wl) == 0
