from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from nextinbox.services.log_pipeline import UNKNOWN_TEMPLATE, parse_timestamp

DEFAULT_WINDOW = timedelta(hours=48)


@dataclass(frozen=True)
class Notification:
    log_id: str
    status: str
    message: str
    created_at: datetime
    template_name: str = UNKNOWN_TEMPLATE

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Notification":
        return cls(
            log_id=str(row.get("log_id", "")),
            status=str(row.get("status") or "failed"),
            message=str(row.get("message") or ""),
            created_at=parse_timestamp(row.get("created_at")),
            template_name=row.get("template_name") or UNKNOWN_TEMPLATE,
        )


def cutoff_for(now: datetime, window: timedelta = DEFAULT_WINDOW) -> datetime:
    return now - window


class NotificationFeed:
    """Newest-first list of recent failed sends.

    Seeded once from a query already limited to the window, then extended by
    pushed insert events. Entries are never evicted or de-duplicated once
    listed, so the unread count is simply the list length.
    """

    def __init__(self, window: timedelta = DEFAULT_WINDOW) -> None:
        self.window = window
        self._items: list[Notification] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def items(self) -> list[Notification]:
        with self._lock:
            return list(self._items)

    @property
    def unread_count(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def load(self, rows: Iterable[dict[str, Any] | Notification]) -> None:
        items = [row if isinstance(row, Notification) else Notification.from_row(row) for row in rows]
        with self._lock:
            if self._closed:
                return
            self._items = items

    def receive(self, event: dict[str, Any] | Notification, now: datetime) -> bool:
        """Prepend a pushed failure if it is inside the window at ``now``."""
        notification = event if isinstance(event, Notification) else Notification.from_row(event)
        if notification.created_at < cutoff_for(now, self.window):
            return False
        with self._lock:
            if self._closed:
                return False
            self._items.insert(0, notification)
        return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
