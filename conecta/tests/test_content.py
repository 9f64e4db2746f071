import unittest

from conecta.tests.helpers import ApiTestCase

GUIDE = {
    "title": "How to get your NIE",
    "slug": "how-to-get-your-nie",
    "content": "Book an appointment at the police station...",
    "path": "GENERAL",
}


class GuideTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.admin_token, _ = self.register_admin()
        self.admin = self.auth(self.admin_token)

    def test_only_admins_publish(self):
        token, _ = self.register()
        response = self.client.post("/api/content/guides", json=GUIDE, headers=self.auth(token))
        self.assertEqual(response.status_code, 403)
        response = self.client.post("/api/content/guides", json=GUIDE)
        self.assertEqual(response.status_code, 401)
        response = self.client.post("/api/content/guides", json=GUIDE, headers=self.admin)
        self.assertEqual(response.status_code, 201)

    def test_duplicate_slug(self):
        self.client.post("/api/content/guides", json=GUIDE, headers=self.admin)
        response = self.client.post(
            "/api/content/guides", json=dict(GUIDE, title="Other"), headers=self.admin
        )
        self.assertEqual(response.status_code, 400)

    def test_invalid_slug(self):
        response = self.client.post(
            "/api/content/guides", json=dict(GUIDE, slug="Not A Slug"), headers=self.admin
        )
        self.assertEqual(response.status_code, 400)

    def test_list_by_path(self):
        self.assertEqual(self.client.get("/api/content/guides").json(), [])
        self.client.post("/api/content/guides", json=GUIDE, headers=self.admin)
        self.client.post(
            "/api/content/guides",
            json=dict(GUIDE, slug="autonomo-basics", title="Autónomo basics", path="FREELANCER"),
            headers=self.admin,
        )
        everything = self.client.get("/api/content/guides").json()
        self.assertEqual(len(everything), 2)
        self.assertNotIn("content", everything[0])

        freelancer = self.client.get("/api/content/guides", params={"path": "FREELANCER"}).json()
        self.assertEqual([guide["slug"] for guide in freelancer], ["autonomo-basics"])

    def test_get_by_slug(self):
        self.client.post("/api/content/guides", json=GUIDE, headers=self.admin)
        guide = self.client.get(f"/api/content/guides/{GUIDE['slug']}").json()
        self.assertEqual(guide["content"], GUIDE["content"])
        self.assertEqual(self.client.get("/api/content/guides/missing").status_code, 404)


class DirectoryTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        admin_token, _ = self.register_admin()
        self.admin = self.auth(admin_token)
        for name, category, recommended in (
            ("Gestoría Martínez", "GESTOR", True),
            ("Abogados Costa Blanca", "LAWYER", False),
            ("Gestoría Luceros", "GESTOR", False),
        ):
            response = self.client.post(
                "/api/content/directory",
                json={
                    "name": name,
                    "category": category,
                    "description": "Professional services in Alicante",
                    "contactInfo": {"phone": "+34 965 000 000"},
                    "isRecommended": recommended,
                },
                headers=self.admin,
            )
            self.assertEqual(response.status_code, 201, response.text)

    def test_filters(self):
        self.assertEqual(len(self.client.get("/api/content/directory").json()), 3)
        gestors = self.client.get("/api/content/directory", params={"category": "GESTOR"}).json()
        self.assertEqual(len(gestors), 2)
        recommended = self.client.get(
            "/api/content/directory", params={"isRecommended": "true"}
        ).json()
        self.assertEqual([entry["name"] for entry in recommended], ["Gestoría Martínez"])
        self.assertEqual(recommended[0]["contactInfo"]["phone"], "+34 965 000 000")
        by_name = self.client.get("/api/content/directory", params={"name": "costa"}).json()
        self.assertEqual([entry["category"] for entry in by_name], ["LAWYER"])

    def test_unknown_category(self):
        response = self.client.get("/api/content/directory", params={"category": "PLUMBER"})
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
