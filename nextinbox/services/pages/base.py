from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Callable


class BasePageService:
    page_id = ""

    def __init__(self, sql: Any, tz: tzinfo | None = None, clock: Callable[[], datetime] | None = None):
        self.sql = sql
        self.tz = tz
        self._clock = clock
        self._handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {}
        self._fallbacks: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {}

    def now(self) -> datetime:
        """Current time as an aware datetime in the dashboard timezone."""
        if self._clock is not None:
            return self._clock()
        return datetime.now(self.tz) if self.tz is not None else datetime.now().astimezone()

    @staticmethod
    def _user_id(params: dict[str, Any]) -> str:
        user_id = params.get("user_id")
        if not user_id:
            raise ValueError("user_id is required for identity-scoped queries")
        return str(user_id)

    def list_widgets(self) -> list[str]:
        return list(self._handlers.keys())

    def get_widget_payload(self, widget_id: str, params: dict[str, Any]) -> dict[str, Any]:
        handler = self._handlers.get(widget_id)
        if handler is None:
            raise KeyError(f"Unsupported widget id '{widget_id}' for page '{self.page_id}'")
        return handler(params)

    def fallback_payload(self, widget_id: str, params: dict[str, Any]) -> dict[str, Any]:
        """Zero/empty payload rendered when the widget query fails."""
        fallback = self._fallbacks.get(widget_id)
        if fallback is not None:
            return fallback(params)
        return {"kind": "empty"}
