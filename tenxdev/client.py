"""
Typed Python clients for the content backend's REST API.

`ApiClient` handles URLs, bearer tokens and the JSON envelope; the service
classes wrap one route group each:

    api = ApiClient("http://localhost:3001/api", token=access_token)
    contents = ContentService(api).list(content_type="post", page=1, limit=10)

Any session object with a requests-compatible `request()` works, including
FastAPI's `TestClient`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


class ApiClientError(Exception):
    def __init__(self, status_code: int, error: str, details: Any = None):
        super().__init__(f"{status_code}: {error}")
        self.status_code = status_code
        self.error = error
        self.details = details


@dataclass
class ApiResponse:
    success: bool
    data: Any = None
    count: Optional[int] = None
    message: Optional[str] = None


def _clean_params(params: Optional[dict]) -> Optional[dict]:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None and v != ""}


class ApiClient:
    def __init__(self, base_url: str, token: Optional[str] = None, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session if session is not None else requests.Session()

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        files: Optional[dict] = None,
    ) -> ApiResponse:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(
                method,
                url,
                params=_clean_params(params),
                json=json,
                files=files,
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise ApiClientError(0, str(exc)) from exc

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text}

        if response.status_code >= 400:
            error = None
            if isinstance(body, dict):
                error = body.get("error") or body.get("message")
            raise ApiClientError(
                response.status_code, error or f"HTTP {response.status_code}", body
            )
        return ApiResponse(
            success=body.get("success", True),
            data=body.get("data"),
            count=body.get("count"),
            message=body.get("message"),
        )

    def get(self, path: str, params: Optional[dict] = None) -> ApiResponse:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, files: Optional[dict] = None) -> ApiResponse:
        return self.request("POST", path, json=json, files=files)

    def put(self, path: str, json: Any = None) -> ApiResponse:
        return self.request("PUT", path, json=json)

    def patch(self, path: str, json: Any = None) -> ApiResponse:
        return self.request("PATCH", path, json=json)

    def delete(self, path: str) -> ApiResponse:
        return self.request("DELETE", path)


class ContentService:
    def __init__(self, api: ApiClient):
        self.api = api

    def list(
        self,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        content_type: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> ApiResponse:
        return self.api.get(
            "/contents",
            {
                "page": page,
                "limit": limit,
                "type": content_type,
                "category": category,
                "search": search,
                "sortBy": sort_by,
                "sortOrder": sort_order,
            },
        )

    def get(self, content_id: str) -> ApiResponse:
        return self.api.get(f"/contents/{content_id}")

    def list_post_tags(self) -> ApiResponse:
        return self.api.get("/contents/post-tags")

    def create(self, payload: dict) -> ApiResponse:
        return self.api.post("/contents", payload)

    def update(self, content_id: str, payload: dict) -> ApiResponse:
        return self.api.put(f"/contents/{content_id}", payload)

    def delete(self, content_id: str) -> ApiResponse:
        return self.api.delete(f"/contents/{content_id}")

    def select_card_feature(
        self, content_id: str, card_feature_id: Optional[str]
    ) -> ApiResponse:
        return self.api.patch(
            f"/contents/{content_id}/card-feature", {"cardFeatureId": card_feature_id}
        )

    def upload_pdf(self, filename: str, body: bytes) -> ApiResponse:
        return self.api.post(
            "/contents/upload", files={"file": (filename, body, "application/pdf")}
        )


class SavedItemService:
    def __init__(self, api: ApiClient):
        self.api = api

    def list(self, item_type: Optional[str] = None) -> ApiResponse:
        return self.api.get("/saved-items", {"type": item_type})

    def is_saved(self, item_type: str, item_id: str) -> bool:
        return bool(self.api.get(f"/saved-items/check/{item_type}/{item_id}").data["isSaved"])

    def check_multiple(self, item_type: str, item_ids: Iterable[str]) -> list[str]:
        response = self.api.post(
            "/saved-items/check-multiple",
            {"itemType": item_type, "itemIds": list(item_ids)},
        )
        return response.data or []

    def save(self, item_type: str, item_id: str) -> ApiResponse:
        return self.api.post("/saved-items", {"itemType": item_type, "itemId": item_id})

    def unsave(self, item_type: str, item_id: str) -> ApiResponse:
        return self.api.delete(f"/saved-items/{item_type}/{item_id}")


class GitSyncService:
    def __init__(self, api: ApiClient):
        self.api = api

    def authorization_url(self, project_id: str) -> str:
        return self.api.get("/gitsync/oauth/authorize", {"project_id": project_id}).data[
            "authUrl"
        ]

    def disconnect(self) -> ApiResponse:
        return self.api.post("/gitsync/oauth/disconnect")

    def list_connections(self, project_id: str) -> ApiResponse:
        return self.api.get("/gitsync/connections", {"project_id": project_id})

    def create_connection(
        self,
        project_id: str,
        github_owner: str,
        github_repo: str,
        default_branch: Optional[str] = None,
    ) -> ApiResponse:
        return self.api.post(
            "/gitsync/connections",
            {
                "projectId": project_id,
                "githubOwner": github_owner,
                "githubRepo": github_repo,
                "defaultBranch": default_branch,
            },
        )

    def delete_connection(self, connection_id: str) -> ApiResponse:
        return self.api.delete(f"/gitsync/connections/{connection_id}")

    def list_repos(self) -> ApiResponse:
        return self.api.get("/gitsync/repos")

    def list_branches(self, owner: str, repo: str) -> ApiResponse:
        return self.api.get(f"/gitsync/repos/{owner}/{repo}/branches")

    def link_file(
        self,
        card_id: str,
        connection_id: str,
        file_path: str,
        branch_name: Optional[str] = None,
    ) -> ApiResponse:
        return self.api.post(
            f"/gitsync/card/{card_id}/link-file",
            {
                "connectionId": connection_id,
                "filePath": file_path,
                "branchName": branch_name,
            },
        )

    def unlink_file(self, card_id: str, mapping_id: str) -> ApiResponse:
        return self.api.delete(f"/gitsync/card/{card_id}/link-file/{mapping_id}")

    def card_mappings(self, card_id: str) -> ApiResponse:
        return self.api.get(f"/gitsync/card/{card_id}/mappings")

    def sync_to_github(
        self, card_id: str, new_content: str, commit_message: Optional[str] = None
    ) -> ApiResponse:
        return self.api.post(
            f"/gitsync/card/{card_id}/sync-to-github",
            {"newContent": new_content, "commitMessage": commit_message},
        )

    def pull_requests(self, connection_id: str) -> ApiResponse:
        return self.api.get(f"/gitsync/connections/{connection_id}/pull-requests")

    def sync_logs(self, connection_id: str) -> ApiResponse:
        return self.api.get(f"/gitsync/connections/{connection_id}/sync-logs")

    def conflicts(self, project_id: str) -> ApiResponse:
        return self.api.get(f"/gitsync/projects/{project_id}/conflicts")
