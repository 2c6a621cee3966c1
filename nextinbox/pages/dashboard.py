from __future__ import annotations

from nextinbox.pages.common import PageConfig, WidgetConfig


PAGE_CONFIG = PageConfig(
    slug="dashboard",
    label="Dashboard",
    api_page_id="dashboard",
    icon="layout-grid",
    widgets=[
        WidgetConfig("kpi-services", "Services", "kpi", "panel panel-kpi", icon="mail"),
        WidgetConfig("kpi-templates", "Templates", "kpi", "panel panel-kpi", icon="file-text"),
        WidgetConfig(
            "kpi-sent",
            "Emails Sent",
            "kpi",
            "panel panel-kpi panel-toggle",
            icon="send",
            toggleable=True,
            tooltip="Click to switch between today and all time.",
        ),
        WidgetConfig("kpi-rate-limit", "Rate Limit", "kpi", "panel panel-kpi", icon="zap"),
        WidgetConfig(
            "kpi-failed",
            "Failed Emails",
            "kpi",
            "panel panel-kpi panel-toggle",
            icon="alert-circle",
            toggleable=True,
            tooltip="Click to switch between today and all time.",
        ),
    ],
)
