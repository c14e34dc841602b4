from astro_portal.services.ttl_cache import TTLCache


class TestTTLCache:

    def test_value_is_served_until_ttl(self, clock):
        cache = TTLCache(300, clock=clock)
        cache.set("sidebar-5", ["ad"])

        clock.advance(299)
        assert cache.get("sidebar-5") == ["ad"]

        clock.advance(1)
        assert cache.get("sidebar-5") is None
        assert len(cache) == 0

    def test_clear_drops_entries_and_bumps_generation(self, clock):
        cache = TTLCache(300, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        generation = cache.generation

        cache.clear()

        assert len(cache) == 0
        assert cache.generation == generation + 1

    def test_set_refuses_value_computed_before_clear(self, clock):
        cache = TTLCache(300, clock=clock)
        generation = cache.generation
        cache.clear()

        assert cache.set("sidebar-5", ["stale"], generation=generation) is False
        assert "sidebar-5" not in cache

        assert cache.set("sidebar-5", ["fresh"], generation=cache.generation) is True
        assert cache.get("sidebar-5") == ["fresh"]

    def test_len_purges_expired_entries(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("old", 1)
        clock.advance(5)
        cache.set("new", 2)
        clock.advance(6)

        assert len(cache) == 1
        assert "new" in cache

    def test_delete_missing_key_is_noop(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.delete("missing")
        assert cache.get("missing", default="x") == "x"
