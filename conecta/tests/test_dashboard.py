import unittest
from datetime import timedelta

from conecta.db import utcnow
from conecta.tests.helpers import ApiTestCase


class DashboardTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.token, self.user = self.register(path="FREELANCER")
        self.headers = self.auth(self.token)

    def _entry(self, type, amount, category="Other"):
        response = self.client.post(
            "/api/budget",
            json={"type": type, "category": category, "amount": amount},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201)

    def _overview(self):
        response = self.client.get("/api/dashboard/overview", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_overview(self):
        self._entry("INCOME", 3000)
        self._entry("EXPENSE", 294, "Cuota de Autónomo")
        self.client.put(
            "/api/checklist/OBTAIN_NIE", json={"isCompleted": True}, headers=self.headers
        )
        self.db.create_event(
            organizer_id=self.user["id"],
            title="Networking night",
            description="Drinks at the harbour",
            date=utcnow() + timedelta(days=2),
            time="20:00",
            location={"name": "Marina"},
        )

        overview = self._overview()
        self.assertEqual(overview["budget"]["monthlyIncome"], 3000)
        self.assertEqual(overview["budget"]["monthlyExpenses"], 294)
        self.assertEqual(overview["budget"]["balance"], 2706)
        self.assertEqual(len(overview["budget"]["recentEntries"]), 2)
        self.assertEqual(
            overview["checklist"],
            {"completedItems": 1, "totalItems": 4, "progressPercentage": 25},
        )
        self.assertEqual(overview["upcomingEvents"][0]["title"], "Networking night")
        self.assertTrue(overview["upcomingEvents"][0]["isOrganizer"])
        self.assertEqual(overview["stats"]["eventsOrganizing"], 1)

    def test_budget_changes_refresh_cached_overview(self):
        self.assertEqual(self._overview()["budget"]["monthlyIncome"], 0)
        self.assertIn(f"dashboard:{self.user['id']}", self.app.state.cache.entries)
        self._entry("INCOME", 100)
        self.assertEqual(self._overview()["budget"]["monthlyIncome"], 100)

    def test_requires_auth(self):
        self.assertEqual(self.client.get("/api/dashboard/overview").status_code, 401)


if __name__ == "__main__":
    unittest.main()
