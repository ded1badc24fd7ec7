"""
Tests for notification viewed state.
"""
import json

from catalogcache.models import Notification
from catalogcache.notifications import NotificationCenter, load_notifications


NOTIFICATIONS = [
    Notification(id="welcome", title="Welcome", content="Hello", date="2024-01-01"),
    Notification(id="release", title="New release", content="v2 is out", date="2024-02-01", priority="high"),
]


class TestNotificationCenter:
    """Tests for viewed tracking."""

    def test_all_unread_initially(self, store, runner):
        center = NotificationCenter(store, NOTIFICATIONS)

        async def scenario():
            return await center.unread_count(), await center.list_all()

        unread, items = runner(scenario, store)
        assert unread == 2
        assert [item["viewed"] for item in items] == [False, False]
        assert items[1]["priority"] == "high"

    def test_mark_as_viewed_is_idempotent(self, store, runner):
        center = NotificationCenter(store, NOTIFICATIONS)

        async def scenario():
            await center.mark_as_viewed("welcome")
            await center.mark_as_viewed("welcome")
            assert await center.is_viewed("welcome")
            assert not await center.is_viewed("release")
            rows = await store.select("SELECT COUNT(*) AS n FROM viewed_notifications")
            return rows[0]["n"], await center.unread_count()

        assert runner(scenario, store) == (1, 1)

    def test_mark_all_as_viewed(self, store, runner):
        center = NotificationCenter(store, NOTIFICATIONS)

        async def scenario():
            await center.mark_as_viewed("welcome")
            await center.mark_all_as_viewed()
            return await center.unread_count()

        assert runner(scenario, store) == 0

    def test_viewed_state_survives_restart(self, db_path, runner):
        from catalogcache.storage import CacheStore

        first = CacheStore(db_path)

        async def mark():
            await NotificationCenter(first, NOTIFICATIONS).mark_as_viewed("release")

        runner(mark, first)

        second = CacheStore(db_path)
        center = NotificationCenter(second, NOTIFICATIONS)
        assert runner(center.get_viewed, second) == {"release"}


class TestLoadNotifications:
    """Tests for reading the bundled feed."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "notifications.json"
        path.write_text(json.dumps([
            {"id": 1, "title": "Hi", "content": "There", "date": "2024-01-01"},
        ]))
        loaded = load_notifications(path)
        assert loaded == [Notification(id="1", title="Hi", content="There", date="2024-01-01")]

    def test_missing_file_yields_nothing(self, tmp_path):
        assert load_notifications(tmp_path / "missing.json") == []
        assert load_notifications(None) == []
