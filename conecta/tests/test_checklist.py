import unittest

from conecta.tests.helpers import ApiTestCase


class ChecklistTests(ApiTestCase):
    def test_repeated_reads_return_same_items(self):
        token, _ = self.register(path="FREELANCER")
        first = self.client.get("/api/checklist", headers=self.auth(token)).json()
        second = self.client.get("/api/checklist", headers=self.auth(token)).json()
        self.assertEqual(
            [item["itemKey"] for item in first],
            ["OBTAIN_NIE", "OPEN_BANK_ACCOUNT", "REGISTER_AUTONOMO", "UNDERSTAND_TAXES"],
        )
        self.assertEqual(
            [item["id"] for item in first], [item["id"] for item in second]
        )
        self.assertEqual(first[0]["title"], "Obtain your NIE")

    def test_users_without_path_get_entrepreneur_items(self):
        token, user = self.register()
        items = self.client.get("/api/checklist", headers=self.auth(token)).json()
        keys = {item["itemKey"] for item in items}
        self.assertIn("FORM_SL_COMPANY", keys)
        self.assertEqual(len(self.db.list_checklist_items(user["id"])), 4)

    def test_toggle_item(self):
        token, user = self.register(path="FREELANCER")
        response = self.client.put(
            "/api/checklist/OBTAIN_NIE",
            json={"isCompleted": True},
            headers=self.auth(token),
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["isCompleted"])
        self.assertTrue(self.db.get_checklist_item(user["id"], "OBTAIN_NIE").is_completed)

        response = self.client.patch(
            "/api/checklist/OBTAIN_NIE",
            json={"completed": False},
            headers=self.auth(token),
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["isCompleted"])

    def test_unknown_item(self):
        token, _ = self.register(path="FREELANCER")
        response = self.client.put(
            "/api/checklist/FORM_SL_COMPANY",
            json={"isCompleted": True},
            headers=self.auth(token),
        )
        self.assertEqual(response.status_code, 404)

    def test_missing_flag(self):
        token, _ = self.register(path="FREELANCER")
        response = self.client.put(
            "/api/checklist/OBTAIN_NIE", json={}, headers=self.auth(token)
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "isCompleted is required")

    def test_requires_auth(self):
        self.assertEqual(self.client.get("/api/checklist").status_code, 401)


if __name__ == "__main__":
    unittest.main()
