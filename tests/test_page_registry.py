from __future__ import annotations

import unittest

from fakes import InMemorySql

from nextinbox.pages.common import build_widget_endpoint
from nextinbox.services.data_service import DataService
from nextinbox.views import PAGES, WIDGET_TEMPLATES


class PageRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.svc = DataService(InMemorySql())

    def test_every_configured_widget_has_a_handler(self) -> None:
        for page in PAGES:
            for widget in page.widgets:
                self.assertTrue(self.svc.has_widget(page.api_page_id, widget.id), f"{page.slug}/{widget.id}")

    def test_every_widget_kind_has_a_partial(self) -> None:
        for page in PAGES:
            for widget in page.widgets:
                self.assertIn(widget.kind, WIDGET_TEMPLATES)

    def test_slugs_are_unique(self) -> None:
        slugs = [page.slug for page in PAGES]
        self.assertEqual(len(slugs), len(set(slugs)))

    def test_unknown_page_is_not_a_widget(self) -> None:
        self.assertFalse(self.svc.has_widget("nowhere", "kpi-sent"))
        with self.assertRaises(ValueError):
            self.svc.list_widgets("nowhere")

    def test_widget_endpoint(self) -> None:
        self.assertEqual(build_widget_endpoint("dashboard", "kpi-sent"), "/widgets/dashboard/kpi-sent")
        self.assertEqual(build_widget_endpoint("dashboard", "kpi-sent", prefix="/api/v1/"), "/api/v1/dashboard/kpi-sent")


if __name__ == "__main__":
    unittest.main()
