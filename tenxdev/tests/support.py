"""
Shared setup for API tests: resets the in-memory backends and registers
bearer tokens for a regular user and an admin.
"""

import io

from pypdf import PdfWriter

from tenxdev.auth import AuthUser, InMemoryAuthVerifier
from tenxdev.db import InMemoryDbClient
from tenxdev.dependencies import (
    get_auth_verifier,
    get_db_client,
    get_github_api,
    get_storage_client,
)
from tenxdev.github import InMemoryGitHubApi
from tenxdev.storage import InMemoryStorageClient

USER = AuthUser(id="user-1", email="dev@example.com")
OTHER_USER = AuthUser(id="user-2", email="other@example.com")
ADMIN = AuthUser(id="admin-1", email="admin@example.com", role="admin")

USER_HEADERS = {"Authorization": "Bearer user-token"}
OTHER_HEADERS = {"Authorization": "Bearer other-token"}
ADMIN_HEADERS = {"Authorization": "Bearer admin-token"}


def reset_backends():
    db = get_db_client()
    if isinstance(db, InMemoryDbClient):
        db.reset()
    storage = get_storage_client()
    if isinstance(storage, InMemoryStorageClient):
        storage.stored_objects.clear()
    github = get_github_api()
    if isinstance(github, InMemoryGitHubApi):
        github.reset()
    verifier = get_auth_verifier()
    if isinstance(verifier, InMemoryAuthVerifier):
        verifier.reset()
        verifier.register("user-token", USER)
        verifier.register("other-token", OTHER_USER)
        verifier.register("admin-token", ADMIN)
    return db


def make_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()
