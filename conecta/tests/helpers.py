import itertools
import unittest

from fastapi.testclient import TestClient

from conecta.app import create_app
from conecta.config import Settings
from conecta.constants import Role

_emails = itertools.count(1)


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "database_url": None,
        "use_in_memory_backends": True,
        "jwt_secret": "test-secret",
        "bcrypt_rounds": 4,
        "rate_limit_max_requests": 0,
        "redis_url": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class ApiTestCase(unittest.TestCase):
    """Fresh app with an in-memory database for every test."""

    settings_overrides: dict = {}

    def setUp(self):
        self.app = create_app(make_settings(**self.settings_overrides))
        self.client = TestClient(self.app)
        self.db = self.app.state.db

    def register(self, name="Ana", email=None, password="secret123", path=None):
        """Register a user and return (token, user payload)."""
        payload = {
            "name": name,
            "email": email or f"user{next(_emails)}@example.com",
            "password": password,
        }
        if path:
            payload["professionalPath"] = path
        response = self.client.post("/api/users/register", json=payload)
        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        return body["token"], body["user"]

    def register_admin(self):
        token, user = self.register(name="Admin")
        self.db.update_user(user["id"], role=Role.ADMIN.value)
        return token, user

    @staticmethod
    def auth(token):
        return {"Authorization": f"Bearer {token}"}
