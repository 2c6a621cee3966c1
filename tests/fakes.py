from __future__ import annotations

from datetime import datetime
from typing import Any


class InMemorySql:
    """Stands in for SqlAdapter by answering the dashboard's queries from lists of rows."""

    def __init__(
        self,
        services: list[dict[str, Any]] | None = None,
        templates: list[dict[str, Any]] | None = None,
        profile: list[dict[str, Any]] | None = None,
        logs: list[dict[str, Any]] | None = None,
    ) -> None:
        self.services = services or []
        self.templates = templates or []
        self.profile = profile or []
        self.logs = logs or []
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_with: Exception | None = None
        self.listeners: list[str] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def fetch_value(self, query: str, params: tuple[Any, ...] = ()) -> Any:
        rows = self.fetch_rows(query, params)
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    def open_listener(self, channel: str) -> Any:
        self.listeners.append(channel)
        raise RuntimeError("listener not available in tests")

    def fetch_rows(self, query: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        sql = " ".join(query.split())
        self.queries.append((sql, params))
        if self.fail_with is not None:
            raise self.fail_with

        user_id = params[0] if params else None
        if sql.startswith("SELECT count(*) AS n FROM public.services"):
            return [{"n": len(self._owned(self.services, user_id))}]
        if sql.startswith("SELECT count(*) AS n FROM public.templates"):
            return [{"n": len(self._owned(self.templates, user_id))}]
        if sql.startswith("SELECT count(*) AS n FROM public.logs"):
            status = params[1]
            since: datetime | None = params[2] if len(params) > 2 else None
            rows = [
                row
                for row in self._owned(self.logs, user_id)
                if row["status"] == status and (since is None or row["created_at"] >= since)
            ]
            return [{"n": len(rows)}]
        if "FROM public.profile" in sql:
            column = sql.split()[1]
            return [{column: row.get(column)} for row in self._owned(self.profile, user_id)[:1]]
        if sql.startswith("SELECT service_id, email_id FROM public.services"):
            rows = self._owned(self.services, user_id)
            return [{"service_id": r["service_id"], "email_id": r["email_id"]} for r in rows]
        if sql.startswith("SELECT template_id, name FROM public.templates"):
            rows = self._owned(self.templates, user_id)
            return [{"template_id": r["template_id"], "name": r["name"]} for r in rows]
        if sql.startswith("SELECT template_id, name, subject, from_name, content"):
            return [dict(r) for r in self._owned(self.templates, user_id) if r["template_id"] == params[1]][:1]
        if "FROM public.logs l" in sql:
            return self._log_rows(sql, params)
        raise AssertionError(f"Unexpected query: {sql}")

    @staticmethod
    def _owned(rows: list[dict[str, Any]], user_id: Any) -> list[dict[str, Any]]:
        return [row for row in rows if row.get("user_id") == user_id]

    def _log_rows(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        rows = self._owned(self.logs, params[0])
        if "l.status = 'failed'" in sql:
            cutoff = params[1]
            rows = [row for row in rows if row["status"] == "failed" and row["created_at"] >= cutoff]
        templates = {t["template_id"]: t for t in self.templates}
        services = {s["service_id"]: s for s in self.services}
        joined = []
        for row in sorted(rows, key=lambda r: r["created_at"], reverse=True):
            template = templates.get(row.get("template_id"), {})
            service = services.get(row.get("service_id"), {})
            joined.append(
                {
                    "log_id": row["log_id"],
                    "status": row["status"],
                    "message": row.get("message", ""),
                    "created_at": row["created_at"],
                    "template_name": template.get("name"),
                    "host_address": service.get("host_address"),
                    "email_id": service.get("email_id"),
                }
            )
        return joined
