"""
Tests for the section caches: row mapping, wholesale replace, enrichment.
"""
from catalogcache.models import FeaturedApp, WeeklyPick
from catalogcache.sections import CategoriesCache, FeaturedAppCache, WeeklyPicksCache


def make_picks():
    return [
        WeeklyPick(
            app_id=f"org.pick.App{position}",
            position=position,
            is_fullscreen=position == 1,
            name=f"App {position}",
            icon=f"app{position}.png",
            summary=f"Summary {position}",
            detail={"id": f"org.pick.App{position}", "screenshots": [{"src": "s.png", "caption": "Ünïcode"}]},
        )
        for position in (3, 1, 2)
    ]


class TestWeeklyPicksCache:
    """Tests for the ordered weekly picks list."""

    def test_write_then_read_is_ordered_and_identical(self, store, catalog, runner):
        cache = WeeklyPicksCache(store, catalog)
        picks = make_picks()

        async def scenario():
            await cache.save(picks)
            return await cache.load()

        loaded = runner(scenario, store)
        assert len(loaded) == 3
        assert [pick.position for pick in loaded] == [1, 2, 3]
        by_id = {pick.app_id: pick for pick in picks}
        for pick in loaded:
            assert pick.to_dict() == by_id[pick.app_id].to_dict()

    def test_save_replaces_wholesale(self, store, catalog, runner):
        cache = WeeklyPicksCache(store, catalog)

        async def scenario():
            await cache.save(make_picks())
            await cache.save([WeeklyPick(app_id="org.only.One", position=0, detail={"id": "x"})])
            return await cache.load()

        loaded = runner(scenario, store)
        assert [pick.app_id for pick in loaded] == ["org.only.One"]

    def test_fetch_enriches_and_orders(self, store, catalog, clock, runner):
        cache = WeeklyPicksCache(store, catalog, today=clock)
        picks = runner(cache.fetch, store)

        assert [pick.app_id for pick in picks] == ["org.pick.One", "org.pick.Two"]
        assert picks[0].is_fullscreen is True
        assert picks[0].icon == "one.png"
        assert picks[1].summary == "Second"

    def test_fetch_drops_repeated_picks(self, store, catalog, runner):
        catalog.picks.append({"app_id": "org.pick.Two", "position": 0, "isFullscreen": False})
        cache = WeeklyPicksCache(store, catalog)

        async def scenario():
            picks = await cache.fetch()
            await cache.save(picks)
            return picks, await cache.load()

        picks, loaded = runner(scenario, store)
        assert [(pick.app_id, pick.position) for pick in picks] == [("org.pick.Two", 0), ("org.pick.One", 1)]
        assert [pick.app_id for pick in loaded] == ["org.pick.Two", "org.pick.One"]

    def test_fetch_keeps_pick_when_detail_fails(self, store, catalog, runner):
        del catalog.details["org.pick.Two"]
        cache = WeeklyPicksCache(store, catalog)
        picks = runner(cache.fetch, store)

        broken = [pick for pick in picks if pick.app_id == "org.pick.Two"][0]
        assert broken.name == "org.pick.Two"
        assert broken.detail is None
        assert cache.rules[0].applies(picks)


class TestFeaturedAppCache:
    """Tests for the singleton featured app."""

    def test_save_replaces_previous_row(self, store, catalog, runner):
        cache = FeaturedAppCache(store, catalog)

        async def scenario():
            await cache.save(FeaturedApp(app_id="org.first.App", day="2024-01-01", detail={"id": "a"}))
            await cache.save(FeaturedApp(app_id="org.second.App", day="2024-01-02", name="Second"))
            rows = await store.select("SELECT COUNT(*) AS n FROM featured_app")
            return rows[0]["n"], await cache.load()

        count, loaded = runner(scenario, store)
        assert count == 1
        assert loaded.app_id == "org.second.App"
        assert loaded.detail is None

    def test_unreadable_payload_is_a_miss(self, store, catalog, runner):
        cache = FeaturedAppCache(store, catalog)

        async def scenario():
            await store.execute(
                "INSERT INTO featured_app (app_id, data) VALUES (?, ?)",
                ("org.foo.Bar", "{broken"),
            )
            return await cache.load()

        assert runner(scenario, store) is None

    def test_fetch_prefers_catalog_listing(self, store, catalog, runner):
        cache = FeaturedAppCache(store, catalog)
        app = runner(cache.fetch, store)

        assert app.app_id == "org.foo.Bar"
        assert app.extended_detail["project_license"] == "GPL-3.0"
        assert app.detail["description"] == "Serves drinks"
        assert catalog.calls["detail:org.foo.Bar"] == 0

    def test_fetch_falls_back_to_appstream(self, store, catalog, runner):
        catalog.extended.clear()
        cache = FeaturedAppCache(store, catalog)
        app = runner(cache.fetch, store)

        assert app.extended_detail is None
        assert app.detail["name"] == "Bar"
        assert app.icon == "bar.png"
        assert cache.rules[0].applies(app)


class TestCategoriesCache:
    """Tests for the category name set."""

    def test_read_is_lexicographic_and_deduplicated(self, store, catalog, runner):
        cache = CategoriesCache(store, catalog)

        async def scenario():
            await cache.save(["Tools", "Games", "Audio", "Games"])
            return await cache.load()

        assert runner(scenario, store) == ["Audio", "Games", "Tools"]

    def test_empty_when_nothing_cached(self, store, catalog, runner):
        cache = CategoriesCache(store, catalog)
        loaded = runner(cache.load, store)
        assert loaded == []
        assert cache.is_empty(loaded)

    def test_fetch_is_sorted_and_deduplicated(self, store, catalog, runner):
        catalog.categories = ["Tools", "Games", "Games", "Audio"]
        cache = CategoriesCache(store, catalog)
        assert runner(cache.fetch, store) == ["Audio", "Games", "Tools"]
