"""
Password hashing and bearer token helpers.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Optional

import bcrypt
import jwt

from conecta.errors import AuthenticationError

JWT_ALGORITHM = "HS256"

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_duration(value: str | int) -> int:
    """Convert values such as ``"30d"``, ``"12h"`` or ``3600`` to seconds."""
    if isinstance(value, int):
        return value
    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit.lower()]


def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


@dataclass
class TokenService:
    """Issues and verifies signed, expiring bearer tokens."""

    secret: str
    expires_in: int
    algorithm: str = JWT_ALGORITHM

    def create_access_token(self, user_id: str, *, now: Optional[float] = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + self.expires_in,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> str:
        """Return the subject of a valid token or raise AuthenticationError."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Not authorized, token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Not authorized, token failed") from exc
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Not authorized, token failed")
        return subject


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
