from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, tzinfo
from typing import Any, Iterable, Literal

SortBy = Literal["date", "status"]
SortOrder = Literal["asc", "desc"]

SORT_KEYS: tuple[str, ...] = ("date", "status")
SORT_ORDERS: tuple[str, ...] = ("asc", "desc")

UNKNOWN_TEMPLATE = "Unknown Template"
UNKNOWN_HOST = "Unknown Host"
UNKNOWN_EMAIL = "Unknown Email"

# Ascending status order; descending therefore lists failures first.
_STATUS_RANK = {"success": 0, "failed": 1}


@dataclass(frozen=True)
class LogEntry:
    log_id: str
    status: str
    message: str
    created_at: datetime
    template_name: str = UNKNOWN_TEMPLATE
    host_address: str = UNKNOWN_HOST
    email_id: str = UNKNOWN_EMAIL

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LogEntry":
        return cls(
            log_id=str(row.get("log_id", "")),
            status=str(row.get("status") or ""),
            message=str(row.get("message") or ""),
            created_at=parse_timestamp(row.get("created_at")),
            template_name=row.get("template_name") or UNKNOWN_TEMPLATE,
            host_address=row.get("host_address") or UNKNOWN_HOST,
            email_id=row.get("email_id") or UNKNOWN_EMAIL,
        )


@dataclass(frozen=True)
class LogView:
    """Sort and filter state of the log viewer."""

    sort_by: SortBy = "date"
    sort_order: SortOrder = "desc"
    selected_date: date | None = None
    show_all: bool = False

    def toggle_sort(self, clicked: SortBy) -> "LogView":
        if clicked == self.sort_by:
            order: SortOrder = "desc" if self.sort_order == "asc" else "asc"
            return LogView(self.sort_by, order, self.selected_date, self.show_all)
        return LogView(clicked, "desc", self.selected_date, self.show_all)

    def select_date(self, selected: date | None) -> "LogView":
        return LogView(self.sort_by, self.sort_order, selected, self.show_all)

    def set_show_all(self, show_all: bool) -> "LogView":
        # Showing everything always discards the picked day.
        return LogView(self.sort_by, self.sort_order, None, show_all)

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "LogView":
        sort_by = str(params.get("sort_by") or "date")
        sort_order = str(params.get("sort_order") or "desc")
        if sort_by not in SORT_KEYS:
            sort_by = "date"
        if sort_order not in SORT_ORDERS:
            sort_order = "desc"
        show_all = _as_bool(params.get("show_all"))
        selected = None if show_all else parse_date(params.get("date"))
        return cls(sort_by, sort_order, selected, show_all)  # type: ignore[arg-type]

    def as_params(self) -> dict[str, str]:
        params = {"sort_by": self.sort_by, "sort_order": self.sort_order}
        if self.show_all:
            params["show_all"] = "1"
        if self.selected_date is not None:
            params["date"] = self.selected_date.isoformat()
        return params


def parse_timestamp(value: Any) -> datetime:
    """Aware datetime for a stored or pushed timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Missing created_at timestamp")
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def local_day(moment: datetime, tz: tzinfo | None = None) -> date:
    """Calendar day of ``moment`` as seen in ``tz`` (process local zone when None)."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def filter_and_sort_logs(
    logs: Iterable[LogEntry],
    sort_by: SortBy,
    sort_order: SortOrder,
    selected_date: date | None,
    show_all: bool,
    tz: tzinfo | None = None,
) -> list[LogEntry]:
    entries = list(logs)
    if not show_all and selected_date is not None:
        entries = [log for log in entries if local_day(log.created_at, tz) == selected_date]

    reverse = sort_order == "desc"
    if sort_by == "status":
        return sorted(entries, key=lambda log: _STATUS_RANK.get(log.status, len(_STATUS_RANK)), reverse=reverse)
    return sorted(entries, key=lambda log: log.created_at, reverse=reverse)


def apply_view(logs: Iterable[LogEntry], view: LogView, tz: tzinfo | None = None) -> list[LogEntry]:
    return filter_and_sort_logs(logs, view.sort_by, view.sort_order, view.selected_date, view.show_all, tz)
