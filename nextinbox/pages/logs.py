from __future__ import annotations

from nextinbox.pages.common import PageConfig, WidgetConfig


PAGE_CONFIG = PageConfig(
    slug="logs",
    label="Logs",
    api_page_id="logs",
    icon="file-clock",
    layout="stack",
    widgets=[
        WidgetConfig("log-table", "Email Logs", "table", "panel panel-wide-table"),
    ],
)
