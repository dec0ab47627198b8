"""
GitHub REST API access for the git sync feature.

`RequestsGitHubApi` talks to api.github.com on behalf of a user's OAuth token;
`InMemoryGitHubApi` keeps repositories in memory for local runs and tests.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
API_BASE = "https://api.github.com"
OAUTH_BASE = "https://github.com/login/oauth"


class GitHubApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class GitHubRepo:
    id: int
    name: str
    full_name: str
    owner: str
    default_branch: str
    private: bool
    html_url: str
    clone_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "GitHubRepo":
        return cls(
            id=data["id"],
            name=data["name"],
            full_name=data["full_name"],
            owner=data["owner"]["login"],
            default_branch=data.get("default_branch") or "main",
            private=bool(data.get("private")),
            html_url=data["html_url"],
            clone_url=data.get("clone_url"),
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "owner": self.owner,
            "defaultBranch": self.default_branch,
            "private": self.private,
            "htmlUrl": self.html_url,
            "cloneUrl": self.clone_url,
        }


@dataclass
class GitHubBranch:
    name: str
    sha: str


@dataclass
class GitHubFile:
    path: str
    sha: str
    size: int
    content: str


class GitHubApi(Protocol):
    """Operations the git sync feature needs from GitHub."""

    def exchange_code(self, code: str) -> tuple[str, Optional[str]]:
        ...

    def list_repos(self, token: str) -> list[GitHubRepo]:
        ...

    def get_repo(self, token: str, owner: str, repo: str) -> GitHubRepo:
        ...

    def list_branches(self, token: str, owner: str, repo: str) -> list[GitHubBranch]:
        ...

    def get_file(
        self, token: str, owner: str, repo: str, path: str, ref: str = "main"
    ) -> Optional[GitHubFile]:
        ...

    def create_branch(
        self, token: str, owner: str, repo: str, name: str, base: str = "main"
    ) -> str:
        ...

    def put_file(
        self,
        token: str,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> tuple[str, str]:
        ...

    def create_pull_request(
        self,
        token: str,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str = "main",
    ) -> tuple[int, str]:
        ...


class RequestsGitHubApi:
    """GitHub REST v3 client built on requests."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, token: str, **kwargs) -> requests.Response:
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        try:
            response = self.session.request(
                method,
                f"{API_BASE}{path}",
                headers=headers,
                timeout=REQUEST_TIMEOUT,
                **kwargs,
            )
        except requests.RequestException as exc:
            logger.error("GitHub request %s %s failed: %s", method, path, exc)
            raise GitHubApiError(502, "GitHub is unreachable") from exc
        return response

    def _json(self, method: str, path: str, token: str, **kwargs):
        response = self._request(method, path, token, **kwargs)
        if response.status_code >= 400:
            raise GitHubApiError(response.status_code, _error_message(response))
        return response.json()

    def exchange_code(self, code: str) -> tuple[str, Optional[str]]:
        try:
            response = self.session.post(
                f"{OAUTH_BASE}/access_token",
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                },
                headers={"Accept": "application/json"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("GitHub token exchange failed: %s", exc)
            raise GitHubApiError(502, "Could not exchange code for token") from exc
        data = response.json()
        if data.get("error"):
            raise GitHubApiError(400, data.get("error_description") or data["error"])
        return data["access_token"], data.get("scope")

    def list_repos(self, token: str) -> list[GitHubRepo]:
        data = self._json(
            "GET", "/user/repos", token, params={"sort": "updated", "per_page": 100}
        )
        return [GitHubRepo.from_api(item) for item in data]

    def get_repo(self, token: str, owner: str, repo: str) -> GitHubRepo:
        return GitHubRepo.from_api(self._json("GET", f"/repos/{owner}/{repo}", token))

    def list_branches(self, token: str, owner: str, repo: str) -> list[GitHubBranch]:
        data = self._json(
            "GET", f"/repos/{owner}/{repo}/branches", token, params={"per_page": 100}
        )
        return [GitHubBranch(name=b["name"], sha=b["commit"]["sha"]) for b in data]

    def get_file(
        self, token: str, owner: str, repo: str, path: str, ref: str = "main"
    ) -> Optional[GitHubFile]:
        response = self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{path}", token, params={"ref": ref}
        )
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise GitHubApiError(response.status_code, _error_message(response))
        data = response.json()
        if isinstance(data, list) or data.get("type") != "file":
            raise GitHubApiError(400, "Path is a directory, not a file")
        raw = data.get("content") or ""
        content = (
            base64.b64decode(raw).decode("utf-8", errors="replace")
            if data.get("encoding") == "base64"
            else raw
        )
        return GitHubFile(
            path=data["path"], sha=data["sha"], size=data.get("size", 0), content=content
        )

    def create_branch(
        self, token: str, owner: str, repo: str, name: str, base: str = "main"
    ) -> str:
        base_branch = self._json("GET", f"/repos/{owner}/{repo}/branches/{base}", token)
        sha = base_branch["commit"]["sha"]
        self._json(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            token,
            json={"ref": f"refs/heads/{name}", "sha": sha},
        )
        return sha

    def put_file(
        self,
        token: str,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> tuple[str, str]:
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        data = self._json("PUT", f"/repos/{owner}/{repo}/contents/{path}", token, json=body)
        return data["content"]["sha"], data["commit"]["sha"]

    def create_pull_request(
        self,
        token: str,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str = "main",
    ) -> tuple[int, str]:
        data = self._json(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            token,
            json={"title": title, "body": body, "head": head, "base": base},
        )
        return data["number"], data["html_url"]


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("message") or f"GitHub error {response.status_code}"
    except ValueError:
        return f"GitHub error {response.status_code}"


def _fake_sha(*parts: str) -> str:
    return hashlib.sha1("\0".join(parts).encode("utf-8")).hexdigest()


@dataclass
class InMemoryRepo:
    owner: str
    name: str
    default_branch: str = "main"
    private: bool = False
    # branch -> path -> content
    branches: Dict[str, Dict[str, str]] = field(default_factory=dict)


@dataclass
class InMemoryGitHubApi:
    """Test double holding repositories, OAuth codes and opened pull requests."""

    repos: Dict[str, InMemoryRepo] = field(default_factory=dict)
    codes: Dict[str, tuple[str, Optional[str]]] = field(default_factory=dict)
    pull_requests: list[dict] = field(default_factory=list)

    def reset(self) -> None:
        self.repos.clear()
        self.codes.clear()
        self.pull_requests.clear()

    def add_repo(
        self,
        owner: str,
        name: str,
        files: Optional[Dict[str, str]] = None,
        default_branch: str = "main",
    ) -> InMemoryRepo:
        repo = InMemoryRepo(
            owner=owner,
            name=name,
            default_branch=default_branch,
            branches={default_branch: dict(files or {})},
        )
        self.repos[f"{owner}/{name}".lower()] = repo
        return repo

    def _repo(self, owner: str, repo: str) -> InMemoryRepo:
        found = self.repos.get(f"{owner}/{repo}".lower())
        if not found:
            raise GitHubApiError(404, "Not Found")
        return found

    def exchange_code(self, code: str) -> tuple[str, Optional[str]]:
        if code not in self.codes:
            raise GitHubApiError(400, "The code passed is incorrect or expired.")
        return self.codes.pop(code)

    def list_repos(self, token: str) -> list[GitHubRepo]:
        return [self.get_repo(token, r.owner, r.name) for r in self.repos.values()]

    def get_repo(self, token: str, owner: str, repo: str) -> GitHubRepo:
        found = self._repo(owner, repo)
        full_name = f"{found.owner}/{found.name}"
        return GitHubRepo(
            id=int(_fake_sha(full_name)[:8], 16),
            name=found.name,
            full_name=full_name,
            owner=found.owner,
            default_branch=found.default_branch,
            private=found.private,
            html_url=f"https://github.com/{full_name}",
            clone_url=f"https://github.com/{full_name}.git",
        )

    def list_branches(self, token: str, owner: str, repo: str) -> list[GitHubBranch]:
        found = self._repo(owner, repo)
        return [
            GitHubBranch(name=name, sha=_fake_sha(name, *sorted(files)))
            for name, files in found.branches.items()
        ]

    def get_file(
        self, token: str, owner: str, repo: str, path: str, ref: str = "main"
    ) -> Optional[GitHubFile]:
        files = self._repo(owner, repo).branches.get(ref)
        if files is None or path not in files:
            return None
        content = files[path]
        return GitHubFile(
            path=path, sha=_fake_sha(path, content), size=len(content), content=content
        )

    def create_branch(
        self, token: str, owner: str, repo: str, name: str, base: str = "main"
    ) -> str:
        found = self._repo(owner, repo)
        if base not in found.branches:
            raise GitHubApiError(404, "Branch not found")
        if name in found.branches:
            raise GitHubApiError(422, "Reference already exists")
        found.branches[name] = dict(found.branches[base])
        return _fake_sha(base, name)

    def put_file(
        self,
        token: str,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> tuple[str, str]:
        files = self._repo(owner, repo).branches.get(branch)
        if files is None:
            raise GitHubApiError(404, "Branch not found")
        if path in files and sha != _fake_sha(path, files[path]):
            raise GitHubApiError(409, f"{path} does not match {sha}")
        files[path] = content
        return _fake_sha(path, content), _fake_sha(branch, path, content, message)

    def create_pull_request(
        self,
        token: str,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str = "main",
    ) -> tuple[int, str]:
        found = self._repo(owner, repo)
        number = len(self.pull_requests) + 1
        url = f"https://github.com/{found.owner}/{found.name}/pull/{number}"
        self.pull_requests.append(
            {
                "number": number,
                "title": title,
                "body": body,
                "head": head,
                "base": base,
                "url": url,
            }
        )
        return number, url
