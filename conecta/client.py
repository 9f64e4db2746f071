"""
HTTP client for the Conecta API.

Attaches the bearer token to every request and retries idempotent GETs on
connection failures and transient statuses with exponential backoff.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class ApiClientError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class ConectaClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request and return the decoded JSON body.

        Only GET is retried; other methods fail on the first error.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        retries = self.max_retries if method.upper() == "GET" else 0
        attempt = 0
        while True:
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=self._headers(),
                    timeout=self.timeout,
                    **kwargs,
                )
            except (requests.ConnectionError, requests.Timeout):
                if attempt >= retries:
                    raise
                delay = self._delay(attempt)
                logger.warning("%s %s failed to connect; retrying in %.1fs", method, url, delay)
            else:
                if response.status_code in RETRYABLE_STATUSES and attempt < retries:
                    delay = self._delay(attempt)
                    logger.warning(
                        "%s %s returned %d; retrying in %.1fs",
                        method,
                        url,
                        response.status_code,
                        delay,
                    )
                else:
                    return self._decode(response)
            self.sleep(delay)
            attempt += 1

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.ok:
            message = body.get("message") if isinstance(body, dict) else response.text
            raise ApiClientError(response.status_code, message or response.reason)
        return body

    def get(self, path: str, **params: Any) -> Any:
        return self.request("GET", path, params=params or None)

    def post(self, path: str, payload: Optional[dict] = None) -> Any:
        return self.request("POST", path, json=payload or {})

    def put(self, path: str, payload: Optional[dict] = None) -> Any:
        return self.request("PUT", path, json=payload or {})

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    # ----- convenience -----

    def register(self, name: str, email: str, password: str, professional_path: Optional[str] = None) -> dict:
        payload = {"name": name, "email": email, "password": password}
        if professional_path:
            payload["professionalPath"] = professional_path
        result = self.post("/api/users/register", payload)
        self.token = result["token"]
        return result

    def login(self, email: str, password: str) -> dict:
        result = self.post("/api/users/login", {"email": email, "password": password})
        self.token = result["token"]
        return result

    def health(self) -> dict:
        return self.get("/api/health")
