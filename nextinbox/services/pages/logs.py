from __future__ import annotations

from dataclasses import asdict
from typing import Any

from nextinbox.services.log_pipeline import LogEntry, LogView, apply_view
from nextinbox.services.pages.base import BasePageService


class LogsPageService(BasePageService):
    page_id = "logs"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._handlers = {
            "log-table": self._log_table,
        }
        self._fallbacks = {
            "log-table": lambda params: self._table_payload([], [], LogView.from_params(params)),
        }

    def fetch_logs(self, user_id: str) -> list[LogEntry]:
        query = """
            SELECT
                l.log_id,
                l.status,
                l.message,
                l.created_at,
                t.name AS template_name,
                s.host_address,
                s.email_id
            FROM public.logs l
            LEFT JOIN public.templates t ON t.template_id = l.template_id
            LEFT JOIN public.services s ON s.service_id = l.service_id
            WHERE l.user_id = %s
            ORDER BY l.created_at DESC
        """
        return [LogEntry.from_row(row) for row in self.sql.fetch_rows(query, (user_id,))]

    @staticmethod
    def _table_payload(logs: list[LogEntry], visible: list[LogEntry], view: LogView) -> dict[str, Any]:
        return {
            "kind": "table",
            "total": len(logs),
            "rows": [asdict(entry) for entry in visible],
            "view": view.as_params(),
        }

    def _log_table(self, params: dict[str, Any]) -> dict[str, Any]:
        view = LogView.from_params(params)
        logs = self.fetch_logs(self._user_id(params))
        return self._table_payload(logs, apply_view(logs, view, self.tz), view)
