from __future__ import annotations

import unittest
from datetime import UTC, datetime, timedelta

from fakes import InMemorySql

from nextinbox.services.notification_feed import Notification, NotificationFeed
from nextinbox.services.pages.notifications import NotificationsPageService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _row(log_id: str, status: str, age_hours: float, user_id: str = "u1") -> dict:
    return {
        "log_id": log_id,
        "user_id": user_id,
        "status": status,
        "message": f"{log_id} message",
        "created_at": NOW - timedelta(hours=age_hours),
        "template_id": "t1",
    }


class InitialLoadTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sql = InMemorySql(
            templates=[{"template_id": "t1", "user_id": "u1", "name": "Welcome"}],
            logs=[
                _row("f10", "failed", 10),
                _row("f47", "failed", 47),
                _row("f50", "failed", 50),
                _row("s5", "success", 5),
                _row("other", "failed", 1, user_id="u2"),
            ],
        )
        self.service = NotificationsPageService(self.sql, clock=lambda: NOW)

    def test_initial_load_keeps_failures_inside_window_newest_first(self) -> None:
        feed = NotificationFeed()
        feed.load(self.service.fetch_recent_failures("u1"))
        self.assertEqual([item.log_id for item in feed.items], ["f10", "f47"])
        self.assertEqual(feed.unread_count, 2)

    def test_initial_load_queries_with_cutoff_computed_from_now(self) -> None:
        self.service.fetch_recent_failures("u1")
        _, params = self.sql.queries[-1]
        self.assertEqual(params, ("u1", NOW - timedelta(hours=48)))

    def test_loaded_items_carry_template_name(self) -> None:
        items = self.service.fetch_recent_failures("u1")
        self.assertEqual(items[0].template_name, "Welcome")

    def test_widget_payload_reports_count(self) -> None:
        payload = self.service.get_widget_payload("notification-list", {"user_id": "u1"})
        self.assertEqual(payload["unread_count"], 2)
        self.assertEqual([item["log_id"] for item in payload["notifications"]], ["f10", "f47"])


class LiveUpdateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.feed = NotificationFeed()
        self.feed.load([Notification("old", "failed", "earlier", NOW - timedelta(hours=3))])

    def test_event_created_now_is_prepended(self) -> None:
        accepted = self.feed.receive({"log_id": "new", "status": "failed", "created_at": NOW.isoformat()}, now=NOW)
        self.assertTrue(accepted)
        self.assertEqual([item.log_id for item in self.feed.items], ["new", "old"])
        self.assertEqual(self.feed.unread_count, 2)

    def test_event_older_than_window_is_discarded(self) -> None:
        stale = NOW - timedelta(hours=49)
        accepted = self.feed.receive({"log_id": "stale", "created_at": stale.isoformat()}, now=NOW)
        self.assertFalse(accepted)
        self.assertEqual([item.log_id for item in self.feed.items], ["old"])

    def test_cutoff_is_recomputed_at_receipt_time(self) -> None:
        created = NOW - timedelta(hours=47)
        self.assertTrue(self.feed.receive({"log_id": "a", "created_at": created}, now=NOW))
        later = NOW + timedelta(hours=2)
        self.assertFalse(self.feed.receive({"log_id": "b", "created_at": created}, now=later))

    def test_duplicates_are_not_reconciled(self) -> None:
        event = {"log_id": "old", "status": "failed", "created_at": (NOW - timedelta(hours=3)).isoformat()}
        self.feed.receive(event, now=NOW)
        self.assertEqual([item.log_id for item in self.feed.items], ["old", "old"])

    def test_listed_items_are_not_evicted_as_they_age(self) -> None:
        self.feed.receive({"log_id": "x", "created_at": NOW}, now=NOW + timedelta(days=10))
        self.assertIn("old", [item.log_id for item in self.feed.items])

    def test_pushed_event_without_template_gets_placeholder_name(self) -> None:
        self.feed.receive({"log_id": "n", "created_at": NOW}, now=NOW)
        self.assertEqual(self.feed.items[0].template_name, "Unknown Template")

    def test_closed_feed_ignores_late_events_and_loads(self) -> None:
        self.feed.close()
        self.assertFalse(self.feed.receive({"log_id": "late", "created_at": NOW}, now=NOW))
        self.feed.load([])
        self.assertEqual([item.log_id for item in self.feed.items], ["old"])
        self.assertTrue(self.feed.closed)

    def test_naive_timestamp_is_treated_as_utc(self) -> None:
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        self.assertTrue(self.feed.receive({"log_id": "n1", "created_at": naive.isoformat()}, now=NOW))
        self.assertTrue(self.feed.receive({"log_id": "n2", "created_at": naive}, now=NOW))
        self.assertEqual(self.feed.items[0].created_at, NOW - timedelta(hours=1))
        stale = (NOW - timedelta(hours=49)).replace(tzinfo=None)
        self.assertFalse(self.feed.receive({"log_id": "n3", "created_at": stale.isoformat()}, now=NOW))

    def test_custom_window(self) -> None:
        feed = NotificationFeed(window=timedelta(hours=1))
        self.assertFalse(feed.receive({"log_id": "a", "created_at": NOW - timedelta(hours=2)}, now=NOW))


if __name__ == "__main__":
    unittest.main()
