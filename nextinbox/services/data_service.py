from __future__ import annotations

import logging
import os
import time
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any, Callable

from nextinbox.services.notification_feed import Notification
from nextinbox.services.pages.base import BasePageService
from nextinbox.services.pages.dashboard import DashboardPageService
from nextinbox.services.pages.logs import LogsPageService
from nextinbox.services.pages.notifications import NotificationsPageService
from nextinbox.services.pages.test_mail import TestMailPageService
from nextinbox.services.realtime import FailedLogSubscription

logger = logging.getLogger(__name__)


class DataService:
    """Coordinator for page-specific data services."""

    def __init__(
        self,
        sql_adapter: Any,
        tz: tzinfo | None = None,
        notification_window: timedelta = timedelta(hours=48),
        recipient_name: str = "",
        clock: Callable[[], datetime] | None = None,
    ):
        self.sql = sql_adapter
        self.notification_window = notification_window
        dashboard = DashboardPageService(sql_adapter, tz=tz, clock=clock)
        logs = LogsPageService(sql_adapter, tz=tz, clock=clock)
        notifications = NotificationsPageService(sql_adapter, tz=tz, clock=clock, window=notification_window)
        test_mail = TestMailPageService(sql_adapter, tz=tz, clock=clock, recipient_name=recipient_name)
        self._pages: dict[str, BasePageService] = {
            dashboard.page_id: dashboard,
            logs.page_id: logs,
            notifications.page_id: notifications,
            test_mail.page_id: test_mail,
        }
        self._log_slow_widgets = os.getenv("API_LOG_SLOW_WIDGETS", "0") == "1"
        self._slow_widget_threshold_ms = float(os.getenv("API_SLOW_WIDGET_THRESHOLD_MS", "150"))

    def close(self) -> None:
        self.sql.close()

    def page(self, page: str) -> BasePageService:
        page_service = self._pages.get(page)
        if page_service is None:
            raise ValueError(f"Unsupported page: {page}")
        return page_service

    def list_widgets(self, page: str) -> list[str]:
        return self.page(page).list_widgets()

    def has_widget(self, page: str, widget_id: str) -> bool:
        page_service = self._pages.get(page)
        return page_service is not None and widget_id in page_service.list_widgets()

    def _envelope(self, page: str, widget_id: str, payload: dict[str, Any], status: str = "success") -> dict[str, Any]:
        return {
            "metadata": {
                "page_id": page,
                "widget_id": widget_id,
                "generated_at": datetime.now(UTC),
            },
            "data": payload,
            "status": status,
        }

    def get_widget_data(self, page: str, widget_id: str, params: dict[str, Any]) -> dict[str, Any]:
        started = time.perf_counter()
        payload = self.page(page).get_widget_payload(widget_id, params)
        if self._log_slow_widgets:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            if elapsed_ms >= self._slow_widget_threshold_ms:
                logger.warning("Slow widget %.2fms page=%s widget=%s", elapsed_ms, page, widget_id)
        return self._envelope(page, widget_id, payload)

    def get_widget_fallback(self, page: str, widget_id: str, params: dict[str, Any]) -> dict[str, Any]:
        return self._envelope(page, widget_id, self.page(page).fallback_payload(widget_id, params), status="error")

    def get_recent_failures(self, user_id: str) -> list[Notification]:
        notifications = self._pages["notifications"]
        return notifications.fetch_recent_failures(user_id)  # type: ignore[attr-defined]

    def get_user_key(self, user_id: str) -> str:
        test_mail = self._pages["test-mail"]
        return test_mail.fetch_user_key(user_id)  # type: ignore[attr-defined]

    def failed_log_subscription(self, user_id: str) -> FailedLogSubscription:
        """Unopened subscription for ``user_id``; the caller opens and closes it."""
        return FailedLogSubscription(self.sql.open_listener, user_id=user_id)
