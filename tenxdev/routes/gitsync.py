"""
Git sync routes: GitHub OAuth, repository connections, card/file mappings,
card -> GitHub sync, pull requests, sync logs and the GitHub webhook.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import RedirectResponse

from tenxdev.auth import AuthUser
from tenxdev.config import get_settings
from tenxdev.db import DbClient
from tenxdev.dependencies import (
    get_db_client,
    get_github_api,
    get_oauth_service,
    get_sync_service,
    get_webhook_service,
    require_user,
)
from tenxdev.errors import ApiError, unwrap
from tenxdev.github import GitHubApi, GitHubApiError
from tenxdev.models.gitsync import GitSyncModel
from tenxdev.oauth import GitHubOAuthService
from tenxdev.schemas import (
    ConnectionCreate,
    LinkFileRequest,
    SyncToGitHubRequest,
    success_body,
)
from tenxdev.sync import GitSyncService
from tenxdev.webhooks import GitHubWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gitsync", tags=["gitsync"])


def _model(db: DbClient = Depends(get_db_client)) -> GitSyncModel:
    return GitSyncModel(db)


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ApiError(400, f"{name} is required")
    return value


# oauth


@router.get("/oauth/authorize")
def oauth_authorize(
    project_id: Optional[str] = None,
    oauth: GitHubOAuthService = Depends(get_oauth_service),
    user: AuthUser = Depends(require_user),
):
    auth_url = oauth.authorization_url(_require(project_id, "project_id"), user.id)
    return success_body({"authUrl": auth_url})


@router.get("/oauth/callback")
def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    oauth: GitHubOAuthService = Depends(get_oauth_service),
):
    if error:
        raise ApiError(400, error_description or error)
    project_id = oauth.complete(_require(code, "code"), _require(state, "state"))
    frontend = get_settings().frontend_url.rstrip("/")
    return RedirectResponse(
        f"{frontend}/projects/{project_id}?gitsync=connected", status_code=302
    )


@router.post("/oauth/disconnect")
def oauth_disconnect(
    oauth: GitHubOAuthService = Depends(get_oauth_service),
    user: AuthUser = Depends(require_user),
):
    oauth.disconnect(user.id)
    return success_body({"message": "Disconnected"})


# connections


@router.get("/connections")
def list_connections(
    project_id: Optional[str] = None,
    model: GitSyncModel = Depends(_model),
):
    result = unwrap(model.find_by_project(_require(project_id, "project_id")))
    return success_body(result.data, count=result.count)


@router.post("/connections", status_code=201)
def create_connection(
    payload: ConnectionCreate,
    model: GitSyncModel = Depends(_model),
    github: GitHubApi = Depends(get_github_api),
    user: AuthUser = Depends(require_user),
):
    default_branch = payload.default_branch
    token = model.find_token(user.id).data
    if not default_branch and token:
        try:
            repo = github.get_repo(
                token.access_token, payload.github_owner, payload.github_repo
            )
        except GitHubApiError as exc:
            logger.error(
                "Looking up %s/%s failed: %s",
                payload.github_owner,
                payload.github_repo,
                exc.message,
            )
            raise ApiError(502, f"GitHub error: {exc.message}") from exc
        default_branch = repo.default_branch

    result = unwrap(
        model.create(
            user.id,
            payload.project_id,
            payload.github_owner,
            payload.github_repo,
            default_branch,
        )
    )
    return success_body(result.data, message="Connection created")


@router.delete("/connections/{connection_id}")
def delete_connection(
    connection_id: str,
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    connection = unwrap(model.find_by_id(connection_id)).data
    if connection.user_id != user.id:
        raise ApiError(403, "Only the connection owner can remove it")
    unwrap(model.delete(connection_id))
    return success_body(message="Connection removed")


@router.get("/connections/{connection_id}/pull-requests")
def list_pull_requests(
    connection_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    unwrap(model.find_by_id(connection_id))
    result = unwrap(model.find_pull_requests(connection_id, limit))
    return success_body(result.data, count=result.count)


@router.get("/connections/{connection_id}/sync-logs")
def list_sync_logs(
    connection_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    unwrap(model.find_by_id(connection_id))
    result = unwrap(model.find_logs(connection_id, limit))
    return success_body(result.data, count=result.count)


# repositories


@router.get("/repos")
def list_repos(
    oauth: GitHubOAuthService = Depends(get_oauth_service),
    github: GitHubApi = Depends(get_github_api),
    user: AuthUser = Depends(require_user),
):
    token = oauth.access_token_for(user.id)
    try:
        repos = github.list_repos(token)
    except GitHubApiError as exc:
        logger.error("Listing repositories for user %s failed: %s", user.id, exc.message)
        raise ApiError(502, f"GitHub error: {exc.message}") from exc
    return success_body([repo.as_dict() for repo in repos], count=len(repos))


@router.get("/repos/{owner}/{repo}/branches")
def list_branches(
    owner: str,
    repo: str,
    oauth: GitHubOAuthService = Depends(get_oauth_service),
    github: GitHubApi = Depends(get_github_api),
    user: AuthUser = Depends(require_user),
):
    token = oauth.access_token_for(user.id)
    try:
        branches = github.list_branches(token, owner, repo)
    except GitHubApiError as exc:
        logger.error("Listing branches of %s/%s failed: %s", owner, repo, exc.message)
        raise ApiError(502, f"GitHub error: {exc.message}") from exc
    return success_body(
        [{"name": b.name, "sha": b.sha} for b in branches], count=len(branches)
    )


# file mappings


@router.post("/card/{card_id}/link-file", status_code=201)
def link_file(
    card_id: str,
    payload: LinkFileRequest,
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    file_path = _require(payload.file_path.strip().strip("/"), "filePath")
    connection = unwrap(model.find_by_id(payload.connection_id)).data
    result = unwrap(
        model.create_mapping(
            {
                "connection_id": connection.id,
                "project_id": connection.project_id,
                "card_feature_id": card_id,
                "file_path": file_path,
                "branch_name": payload.branch_name or connection.default_branch,
            }
        )
    )
    return success_body(result.data, message="File linked")


@router.delete("/card/{card_id}/link-file/{mapping_id}")
def unlink_file(
    card_id: str,
    mapping_id: str,
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    mapping = unwrap(model.get_mapping(mapping_id)).data
    if mapping.card_feature_id != card_id:
        raise ApiError(404, "Mapping not found")
    unwrap(model.delete_mapping(mapping_id))
    return success_body(message="File unlinked")


@router.get("/card/{card_id}/mappings")
def list_card_mappings(
    card_id: str,
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    result = unwrap(model.get_mappings_by_card(card_id))
    return success_body(result.data, count=result.count)


@router.post("/card/{card_id}/sync-to-github")
def sync_to_github(
    card_id: str,
    payload: SyncToGitHubRequest,
    service: GitSyncService = Depends(get_sync_service),
    user: AuthUser = Depends(require_user),
):
    data = service.sync_card(user.id, card_id, payload.new_content, payload.commit_message)
    return success_body(data)


@router.get("/projects/{project_id}/conflicts")
def list_conflicts(
    project_id: str,
    model: GitSyncModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    result = unwrap(model.get_conflicts(project_id))
    return success_body(result.data, count=result.count)


# webhooks


@router.post("/webhooks/github")
async def github_webhook(
    request: Request,
    x_github_event: Optional[str] = Header(default=None),
    x_github_delivery: Optional[str] = Header(default=None),
    x_hub_signature_256: Optional[str] = Header(default=None),
    service: GitHubWebhookService = Depends(get_webhook_service),
):
    body = await request.body()
    if not service.verify_signature(body, x_hub_signature_256):
        if get_settings().is_production:
            logger.warning("Rejected webhook delivery %s: bad signature", x_github_delivery)
            raise ApiError(401, "Invalid webhook signature")
        logger.warning("Webhook delivery %s has no valid signature", x_github_delivery)

    try:
        payload = json.loads(body or b"{}")
    except ValueError as exc:
        raise ApiError(400, "Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ApiError(400, "Webhook body must be a JSON object")

    data = service.handle(_require(x_github_event, "X-GitHub-Event"), x_github_delivery, payload)
    return success_body(data)
