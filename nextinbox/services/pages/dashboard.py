from __future__ import annotations

from datetime import datetime
from typing import Any

from nextinbox.services.pages.base import BasePageService

PERIOD_LABELS = {
    "success": {"today": "Sent in last 24h", "total": "All time sent"},
    "failed": {"today": "Failed in last 24h", "total": "All time failed"},
}


def _period(params: dict[str, Any]) -> str:
    return "total" if str(params.get("period", "today")).lower() == "total" else "today"


class DashboardPageService(BasePageService):
    page_id = "dashboard"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._handlers = {
            "kpi-services": self._kpi_services,
            "kpi-templates": self._kpi_templates,
            "kpi-sent": self._kpi_sent,
            "kpi-rate-limit": self._kpi_rate_limit,
            "kpi-failed": self._kpi_failed,
        }
        self._fallbacks = {
            "kpi-services": lambda _: {"kind": "kpi", "primary": 0, "secondary": "Active services"},
            "kpi-templates": lambda _: {"kind": "kpi", "primary": 0, "secondary": "Available templates"},
            "kpi-sent": lambda params: self._period_payload("success", _period(params), 0),
            "kpi-rate-limit": lambda _: {"kind": "kpi", "primary": 0, "secondary": "Emails remaining"},
            "kpi-failed": lambda params: self._period_payload("failed", _period(params), 0),
        }

    def start_of_today(self) -> datetime:
        return self.now().replace(hour=0, minute=0, second=0, microsecond=0)

    def _count(self, query: str, params: tuple[Any, ...]) -> int:
        value = self.sql.fetch_value(query, params)
        return int(value or 0)

    def _kpi_services(self, params: dict[str, Any]) -> dict[str, Any]:
        count = self._count("SELECT count(*) AS n FROM public.services WHERE user_id = %s", (self._user_id(params),))
        return {"kind": "kpi", "primary": count, "secondary": "Active services"}

    def _kpi_templates(self, params: dict[str, Any]) -> dict[str, Any]:
        count = self._count("SELECT count(*) AS n FROM public.templates WHERE user_id = %s", (self._user_id(params),))
        return {"kind": "kpi", "primary": count, "secondary": "Available templates"}

    def _kpi_rate_limit(self, params: dict[str, Any]) -> dict[str, Any]:
        query = "SELECT rate_limit FROM public.profile WHERE user_id = %s LIMIT 1"
        value = self.sql.fetch_value(query, (self._user_id(params),))
        return {"kind": "kpi", "primary": int(value or 0), "secondary": "Emails remaining"}

    def count_logs(self, user_id: str, status: str, since: datetime | None = None) -> int:
        if since is None:
            query = "SELECT count(*) AS n FROM public.logs WHERE user_id = %s AND status = %s"
            return self._count(query, (user_id, status))
        query = """
            SELECT count(*) AS n
            FROM public.logs
            WHERE user_id = %s AND status = %s AND created_at >= %s
        """
        return self._count(query, (user_id, status, since))

    def _period_payload(self, status: str, period: str, count: int) -> dict[str, Any]:
        return {
            "kind": "kpi",
            "primary": count,
            "secondary": PERIOD_LABELS[status][period],
            "period": period,
            "toggle_period": "total" if period == "today" else "today",
        }

    def _log_count_kpi(self, status: str, params: dict[str, Any]) -> dict[str, Any]:
        period = _period(params)
        since = self.start_of_today() if period == "today" else None
        count = self.count_logs(self._user_id(params), status, since)
        return self._period_payload(status, period, count)

    def _kpi_sent(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._log_count_kpi("success", params)

    def _kpi_failed(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._log_count_kpi("failed", params)
