from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any

from nextinbox.services.notification_feed import DEFAULT_WINDOW, Notification, cutoff_for
from nextinbox.services.pages.base import BasePageService


class NotificationsPageService(BasePageService):
    page_id = "notifications"

    def __init__(self, *args, window: timedelta = DEFAULT_WINDOW, **kwargs):
        super().__init__(*args, **kwargs)
        self.window = window
        self._handlers = {
            "notification-list": self._notification_list,
        }
        self._fallbacks = {
            "notification-list": lambda _: {"kind": "list", "notifications": [], "unread_count": 0},
        }

    def fetch_recent_failures(self, user_id: str, now: datetime | None = None) -> list[Notification]:
        cutoff = cutoff_for(now or self.now(), self.window)
        query = """
            SELECT
                l.log_id,
                l.status,
                l.message,
                l.created_at,
                t.name AS template_name
            FROM public.logs l
            LEFT JOIN public.templates t ON t.template_id = l.template_id
            WHERE l.user_id = %s
              AND l.status = 'failed'
              AND l.created_at >= %s
            ORDER BY l.created_at DESC
        """
        return [Notification.from_row(row) for row in self.sql.fetch_rows(query, (user_id, cutoff))]

    def _notification_list(self, params: dict[str, Any]) -> dict[str, Any]:
        items = self.fetch_recent_failures(self._user_id(params))
        return {"kind": "list", "notifications": [asdict(item) for item in items], "unread_count": len(items)}
