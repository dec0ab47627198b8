"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tenxdev.auth import (
    AuthError,
    AuthUser,
    AuthVerifier,
    InMemoryAuthVerifier,
    SupabaseAuthVerifier,
)
from tenxdev.config import get_settings
from tenxdev.db import DbClient, InMemoryDbClient, SqlDbClient
from tenxdev.errors import ApiError
from tenxdev.github import GitHubApi, InMemoryGitHubApi, RequestsGitHubApi
from tenxdev.models.gitsync import GitSyncModel
from tenxdev.oauth import GitHubOAuthService
from tenxdev.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from tenxdev.sync import GitSyncService
from tenxdev.webhooks import GitHubWebhookService

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_auth_verifier: AuthVerifier | None = None
_github_api: GitHubApi | None = None

_bearer = HTTPBearer(auto_error=False)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.storage_access_key_id or "",
            secret_access_key=settings.storage_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )
    return _storage_client


def get_auth_verifier() -> AuthVerifier:
    global _auth_verifier
    if _auth_verifier:
        return _auth_verifier

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.supabase_url:
        _auth_verifier = InMemoryAuthVerifier()
    else:
        _auth_verifier = SupabaseAuthVerifier(
            supabase_url=settings.supabase_url,
            anon_key=settings.supabase_anon_key or "",
        )
    return _auth_verifier


def get_github_api() -> GitHubApi:
    global _github_api
    if _github_api:
        return _github_api

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.github_client_id:
        _github_api = InMemoryGitHubApi()
    else:
        _github_api = RequestsGitHubApi(
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
        )
    return _github_api


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    verifier: AuthVerifier = Depends(get_auth_verifier),
) -> Optional[AuthUser]:
    """Resolve the bearer token to a user; None when no token was sent."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return verifier.verify_token(credentials.credentials)
    except AuthError as exc:
        raise ApiError(exc.status_code, exc.message) from exc


def require_user(user: Optional[AuthUser] = Depends(get_current_user)) -> AuthUser:
    if user is None:
        raise ApiError(401, "Authentication required")
    return user


def require_admin(user: AuthUser = Depends(require_user)) -> AuthUser:
    settings = get_settings()
    email = (user.email or "").lower()
    if user.is_admin or (email and email in settings.admin_email_list):
        return user
    logger.warning("User %s denied admin access", user.id)
    raise ApiError(403, "Admin access required")


def get_oauth_service(
    db: DbClient = Depends(get_db_client),
    github: GitHubApi = Depends(get_github_api),
) -> GitHubOAuthService:
    settings = get_settings()
    return GitHubOAuthService(
        GitSyncModel(db),
        github,
        client_id=settings.github_client_id,
        redirect_uri=settings.github_redirect_uri,
        state_secret=settings.oauth_state_secret,
    )


def get_webhook_service(db: DbClient = Depends(get_db_client)) -> GitHubWebhookService:
    return GitHubWebhookService(GitSyncModel(db), get_settings().github_webhook_secret)


def get_sync_service(
    db: DbClient = Depends(get_db_client),
    github: GitHubApi = Depends(get_github_api),
    oauth: GitHubOAuthService = Depends(get_oauth_service),
) -> GitSyncService:
    return GitSyncService(db, GitSyncModel(db), github, oauth)
