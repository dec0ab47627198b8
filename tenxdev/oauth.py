"""
GitHub OAuth flow: authorization URL with signed state, code exchange and
per-user token storage.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from urllib.parse import urlencode

from tenxdev.errors import ApiError
from tenxdev.github import GitHubApi, GitHubApiError
from tenxdev.models.gitsync import GitSyncModel

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
OAUTH_SCOPE = "repo,user:email"


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class GitHubOAuthService:
    def __init__(
        self,
        model: GitSyncModel,
        github: GitHubApi,
        *,
        client_id: str,
        redirect_uri: str,
        state_secret: str,
    ):
        self.model = model
        self.github = github
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.state_secret = state_secret.encode("utf-8")

    def _sign(self, payload: str) -> str:
        digest = hmac.new(self.state_secret, payload.encode("ascii"), hashlib.sha256)
        return _b64encode(digest.digest())

    def encode_state(self, project_id: str, user_id: str) -> str:
        payload = _b64encode(
            json.dumps({"projectId": project_id, "userId": user_id}).encode("utf-8")
        )
        return f"{payload}.{self._sign(payload)}"

    def decode_state(self, state: str) -> tuple[str, str]:
        """Return (project_id, user_id); raises ApiError(400) on bad state."""
        payload, _, signature = (state or "").partition(".")
        if not payload or not signature:
            raise ApiError(400, "Invalid OAuth state")
        if not hmac.compare_digest(signature, self._sign(payload)):
            logger.warning("Rejected OAuth state with a bad signature")
            raise ApiError(400, "Invalid OAuth state")
        try:
            data = json.loads(_b64decode(payload))
            return data["projectId"], data["userId"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ApiError(400, "Invalid OAuth state") from exc

    def authorization_url(self, project_id: str, user_id: str) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": OAUTH_SCOPE,
                "state": self.encode_state(project_id, user_id),
            }
        )
        return f"{AUTHORIZE_URL}?{query}"

    def complete(self, code: str, state: str) -> str:
        """Exchange the callback code for a token and store it; returns the project id."""
        if not code:
            raise ApiError(400, "Missing OAuth code")
        project_id, user_id = self.decode_state(state)
        try:
            access_token, scope = self.github.exchange_code(code)
        except GitHubApiError as exc:
            logger.warning("OAuth code exchange failed for user %s: %s", user_id, exc.message)
            raise ApiError(exc.status_code, exc.message) from exc
        self.model.upsert_token(user_id, access_token, scope)
        logger.info("Stored GitHub token for user %s", user_id)
        return project_id

    def access_token_for(self, user_id: str) -> str:
        token = self.model.find_token(user_id).data
        if not token:
            raise ApiError(401, "GitHub account not connected")
        return token.access_token

    def disconnect(self, user_id: str) -> None:
        self.model.delete_token(user_id)
        logger.info("Removed GitHub token for user %s", user_id)
