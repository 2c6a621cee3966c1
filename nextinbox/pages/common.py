from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class WidgetConfig:
    id: str
    title: str
    kind: str
    css_class: str
    icon: str = ""
    toggleable: bool = False
    tooltip: str = ""


@dataclass(frozen=True)
class PageConfig:
    slug: str
    label: str
    api_page_id: str
    widgets: list[WidgetConfig]
    icon: str = ""
    layout: str = "grid"


def build_widget_endpoint(page_id: str, widget_id: str, prefix: str = "/widgets") -> str:
    base = prefix.rstrip("/")
    return f"{base}/{page_id}/{widget_id}"
