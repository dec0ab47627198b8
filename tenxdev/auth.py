"""
Bearer-token verification against Supabase Auth, plus an in-memory verifier
for local runs and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10  # seconds


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AuthVerifier(Protocol):
    def verify_token(self, token: str) -> AuthUser:
        ...


def user_from_supabase(payload: dict) -> AuthUser:
    """Build an AuthUser from a Supabase `/auth/v1/user` response body."""
    app_meta = payload.get("app_metadata") or {}
    user_meta = payload.get("user_metadata") or {}
    role = app_meta.get("role") or user_meta.get("role") or "user"
    return AuthUser(id=payload["id"], email=payload.get("email"), role=role)


@dataclass
class SupabaseAuthVerifier:
    """Validates access tokens by asking Supabase Auth who they belong to."""

    supabase_url: str
    anon_key: str

    def verify_token(self, token: str) -> AuthUser:
        try:
            response = requests.get(
                f"{self.supabase_url.rstrip('/')}/auth/v1/user",
                headers={"Authorization": f"Bearer {token}", "apikey": self.anon_key},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.error("Supabase auth request failed: %s", exc)
            raise AuthError("Authentication service unavailable", 503) from exc
        if response.status_code != 200:
            raise AuthError("Invalid or expired token")
        return user_from_supabase(response.json())


@dataclass
class InMemoryAuthVerifier:
    """Token -> user table for development and tests."""

    users: Dict[str, AuthUser] = field(default_factory=dict)

    def register(self, token: str, user: AuthUser) -> None:
        self.users[token] = user

    def reset(self) -> None:
        self.users.clear()

    def verify_token(self, token: str) -> AuthUser:
        user = self.users.get(token)
        if user is None:
            raise AuthError("Invalid or expired token")
        return user
