import unittest

import pydantic

from conecta.config import DEV_JWT_SECRET, Settings
from conecta.ratelimit import FixedWindowLimiter
from conecta.tests.helpers import ApiTestCase, make_settings


class HealthAndErrorTests(ApiTestCase):
    def test_health_reports_database(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["database"], "connected")

        root = self.client.get("/")
        self.assertEqual(root.status_code, 200)
        self.assertEqual(root.json()["service"], payload["service"])

    def test_unknown_route_uses_message_body(self):
        response = self.client.get("/api/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"message": "Not Found - /api/does-not-exist"})

    def test_body_validation_is_bad_request(self):
        response = self.client.post("/api/users/login", json={"email": "not-an-email"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("message", response.json())

    def test_public_constants(self):
        response = self.client.get("/api/config/constants")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["professionalPaths"], ["FREELANCER", "ENTREPRENEUR"]
        )

    def test_path_specific_config_requires_path(self):
        token, _ = self.register()
        response = self.client.get("/api/config/categories", headers=self.auth(token))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "User professional path not set")

        token, _ = self.register(path="FREELANCER")
        categories = self.client.get("/api/config/categories", headers=self.auth(token)).json()
        self.assertIn("Cuota de Autónomo", categories["expense"])
        items = self.client.get("/api/config/checklist-items", headers=self.auth(token)).json()
        self.assertEqual(items[1]["key"], "REGISTER_AUTONOMO")


class RateLimitTests(ApiTestCase):
    settings_overrides = {"rate_limit_max_requests": 2, "rate_limit_window_ms": 60_000}

    def test_requests_over_limit_are_rejected(self):
        self.assertEqual(self.client.get("/api/health").status_code, 200)
        self.assertEqual(self.client.get("/api/health").status_code, 200)
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 429)
        self.assertEqual(
            response.json()["message"], "Too many requests, please try again later."
        )
        self.assertGreater(int(response.headers["Retry-After"]), 0)

    def test_paths_outside_prefix_are_not_limited(self):
        for _ in range(4):
            self.assertEqual(self.client.get("/").status_code, 200)


class FixedWindowLimiterTests(unittest.TestCase):
    def test_window_resets(self):
        now = [0.0]
        limiter = FixedWindowLimiter(1, 10.0, clock=lambda: now[0])
        self.assertTrue(limiter.hit("a")[0])
        allowed, retry_after = limiter.hit("a")
        self.assertFalse(allowed)
        self.assertEqual(retry_after, 10.0)
        self.assertTrue(limiter.hit("b")[0])
        now[0] = 10.0
        self.assertTrue(limiter.hit("a")[0])


class SettingsTests(unittest.TestCase):
    def test_origins_from_comma_list(self):
        settings = make_settings(
            allowed_origins="http://a.test, http://b.test",
            frontend_url="http://c.test",
        )
        self.assertEqual(
            settings.cors_origins, ["http://a.test", "http://b.test", "http://c.test"]
        )

    def test_mongodb_uri_is_rejected(self):
        with self.assertRaises(pydantic.ValidationError) as ctx:
            make_settings(database_url="mongodb+srv://cluster.example.net/conecta")
        self.assertIn("SQLAlchemy URL", str(ctx.exception))
        settings = make_settings(database_url="sqlite:///conecta.db")
        self.assertEqual(settings.database_url, "sqlite:///conecta.db")

    def test_production_requires_database_and_secret(self):
        with self.assertRaises(pydantic.ValidationError):
            Settings(
                _env_file=None,
                environment="production",
                database_url=None,
                use_in_memory_backends=False,
            )
        with self.assertRaises(pydantic.ValidationError):
            Settings(
                _env_file=None,
                environment="production",
                database_url="postgresql://db/conecta",
                jwt_secret=DEV_JWT_SECRET,
            )
        settings = Settings(
            _env_file=None,
            environment="production",
            database_url="postgresql://db/conecta",
            jwt_secret="a-real-secret",
        )
        self.assertTrue(settings.is_production)


if __name__ == "__main__":
    unittest.main()
