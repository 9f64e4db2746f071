import unittest
from unittest import mock

import requests

from conecta.client import ApiClientError, ConectaClient


def fake_response(status_code, body=None):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "reason"
    response.text = ""
    response.json.return_value = body
    return response


class ConectaClientTests(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.sleeps = []
        self.client = ConectaClient(
            "http://api.local/",
            token="abc",
            session=self.session,
            sleep=self.sleeps.append,
        )

    def test_get_retries_with_backoff(self):
        self.session.request.side_effect = [
            requests.ConnectionError("refused"),
            fake_response(503, {"message": "busy"}),
            fake_response(200, {"status": "ok"}),
        ]
        self.assertEqual(self.client.get("/api/health"), {"status": "ok"})
        self.assertEqual(self.sleeps, [1.0, 2.0])
        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("GET", "http://api.local/api/health"))
        headers = self.session.request.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer abc")

    def test_gives_up_after_max_retries(self):
        self.session.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(requests.Timeout):
            self.client.get("/api/forums")
        self.assertEqual(self.session.request.call_count, 4)
        self.assertEqual(self.sleeps, [1.0, 2.0, 4.0])

    def test_post_is_not_retried(self):
        self.session.request.return_value = fake_response(503, {"message": "busy"})
        with self.assertRaises(ApiClientError) as ctx:
            self.client.post("/api/budget", {"type": "INCOME"})
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.message, "busy")
        self.assertEqual(self.sleeps, [])

    def test_login_stores_token(self):
        self.session.request.return_value = fake_response(200, {"token": "new", "user": {}})
        self.client.login("ana@example.com", "secret123")
        self.assertEqual(self.client.token, "new")


if __name__ == "__main__":
    unittest.main()
