import pytest

from ea_sync.cache.ttl_cache import CacheLayer, TTLCache, normalise_key
from ea_sync.cache.ttl_config import STORAGE_KEYS
from ea_sync.models.records import LiveMatchRecord, PlayerRecord


def test_normalise_key_strips_lowercases_and_collapses():
    assert normalise_key("  Erling   HAALAND ") == "erling haaland"


class TestTTLCache:

    def test_entry_valid_until_ttl(self, clock):
        cache = TTLCache("player", ttl=60, clock=clock)
        cache.set("Haaland", {"overall": 88})
        clock.advance(59.9)
        assert cache.get("haaland") == {"overall": 88}

    def test_entry_expires_at_exactly_ttl_and_is_evicted(self, clock):
        cache = TTLCache("player", ttl=60, clock=clock)
        cache.set("Haaland", {"overall": 88})
        clock.advance(60)
        assert cache.get("Haaland") is None
        assert len(cache) == 0

    def test_cleanup_counts_only_expired(self, clock):
        cache = TTLCache("market", ttl=300, clock=clock)
        cache.set("old", 1)
        clock.advance(200)
        cache.set("new", 2)
        clock.advance(150)
        assert cache.cleanup() == 1
        assert "new" in cache
        assert "old" not in cache

    def test_stats_reports_valid_and_expired(self, clock):
        cache = TTLCache("market", ttl=10, clock=clock)
        cache.set("a", {"x": 1})
        clock.advance(11)
        cache.set("b", {"x": 2})
        stats = cache.stats()
        assert stats["total"] == 2
        assert stats["valid"] == 1
        assert stats["expired"] == 1
        assert stats["size_bytes"] > 0


class TestCacheLayer:

    @pytest.mark.asyncio
    async def test_set_player_mirrors_to_store(self, clock, store, player_factory):
        layer = CacheLayer(store, clock=clock)
        await layer.set_player("Haaland", player_factory("Erling Haaland", overall=88))

        blob = await store.get(STORAGE_KEYS["cache"])
        assert [e["key"] for e in blob["player_data"]] == ["haaland"]
        assert blob["player_data"][0]["data"]["overall"] == 88
        assert blob["player_data"][0]["timestamp"] == clock()

    @pytest.mark.asyncio
    async def test_load_rehydrates_and_purges_expired(self, clock, store, player_factory, market_factory):
        first = CacheLayer(store, clock=clock)
        await first.set_player("Old Player", player_factory("Old Player"))
        clock.advance(1700)
        await first.set_player("Fresh Player", player_factory("Fresh Player"))
        await first.set_market("Fresh Player", market_factory("Fresh Player", [100, 110]))
        clock.advance(200)   # old player now 1900s old (> 1800), market 200s old (< 300)

        second = CacheLayer(store, clock=clock)
        kept = await second.load()

        assert kept == 2
        assert await second.get_player("Old Player") is None
        record = await second.get_player("fresh player")
        assert isinstance(record, PlayerRecord)
        assert record.name == "Fresh Player"
        assert (await second.get_market("Fresh Player")).current_price == 110

        blob = await store.get(STORAGE_KEYS["cache"])
        assert [e["key"] for e in blob["player_data"]] == ["fresh player"]

    @pytest.mark.asyncio
    async def test_live_match_space_is_never_persisted(self, clock, store):
        layer = CacheLayer(store, clock=clock)
        match = LiveMatchRecord(match_id="m1", home_team="A", away_team="B",
                                home_score=1, away_score=0, minute=10, status="live")
        layer.set_live_match("m1", match)
        assert layer.get_live_match("m1") == match
        assert await store.get(STORAGE_KEYS["cache"]) is None

        clock.advance(60)
        assert layer.get_live_match("m1") is None

    @pytest.mark.asyncio
    async def test_clear_drops_memory_and_store(self, clock, store, player_factory):
        layer = CacheLayer(store, clock=clock)
        await layer.set_player("Haaland", player_factory("Haaland"))
        await layer.clear()
        assert len(layer.player) == 0
        assert await store.get(STORAGE_KEYS["cache"]) is None

    @pytest.mark.asyncio
    async def test_offline_fallback(self, clock, player_factory):
        layer = CacheLayer(None, clock=clock)
        await layer.set_player("Haaland", player_factory("Erling Haaland", overall=88))

        cached = layer.offline_fallback("Haaland")
        assert cached["offline"] is True
        assert cached["overall"] == 88

        generic = layer.offline_fallback("Nobody")
        assert generic["offline"] is True
        assert generic["name"] == "Nobody"
        assert "warning" in generic

    @pytest.mark.asyncio
    async def test_works_without_store(self, clock, player_factory):
        layer = CacheLayer(None, clock=clock)
        await layer.set_player("x", player_factory("x"))
        assert await layer.load() == 0
        assert (await layer.get_player("x")).name == "x"

