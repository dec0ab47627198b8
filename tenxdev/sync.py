"""
Pushes card edits to GitHub as a branch, commit and pull request.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from tenxdev.db import DbClient
from tenxdev.errors import ApiError
from tenxdev.github import GitHubApi, GitHubApiError
from tenxdev.models.gitsync import GitSyncModel
from tenxdev.oauth import GitHubOAuthService
from tenxdev.types import SyncDirection, SyncStatus

logger = logging.getLogger(__name__)

PR_BODY_TEMPLATE = (
    'Automatic update of card "{title}" edited on 10xDev.\n\n'
    "This pull request was opened by the 10xDev platform."
)


def branch_name_for(card_id: str, millis: Optional[int] = None) -> str:
    if millis is None:
        millis = int(time.time() * 1000)
    return f"feature/10xdev-{card_id[:8]}-{millis}"


class GitSyncService:
    def __init__(
        self,
        db: DbClient,
        model: GitSyncModel,
        github: GitHubApi,
        oauth: GitHubOAuthService,
    ):
        self.db = db
        self.model = model
        self.github = github
        self.oauth = oauth

    def sync_card(
        self,
        user_id: str,
        card_id: str,
        new_content: str,
        commit_message: Optional[str] = None,
    ) -> dict:
        """
        Commit `new_content` to the card's mapped file on a fresh branch and
        open a pull request against the connection's default branch.

        Returns `prUrl`, `prNumber`, `branchName` and a message.
        """
        card = self.db.get_card_feature(card_id)
        if not card:
            raise ApiError(404, "Card not found")

        mappings = self.model.get_mappings_by_card(card_id).data
        if not mappings:
            raise ApiError(400, "Card is not linked to any file")
        mapping = mappings[0]

        connection_result = self.model.find_by_id(mapping.connection_id)
        if not connection_result.success:
            raise ApiError.from_result(connection_result)
        connection = connection_result.data

        token = self.oauth.access_token_for(user_id)
        owner, repo = connection.github_owner, connection.github_repo
        branch = branch_name_for(card_id)
        title = f"[10xDev] {card.title}"

        try:
            self.github.create_branch(
                token, owner, repo, branch, base=connection.default_branch
            )
            current = self.github.get_file(
                token, owner, repo, mapping.file_path, ref=mapping.branch_name
            )
            _, commit_sha = self.github.put_file(
                token,
                owner,
                repo,
                mapping.file_path,
                new_content,
                commit_message or f"[10xDev] Update {card.title}",
                branch,
                sha=current.sha if current else None,
            )
            pr_number, pr_url = self.github.create_pull_request(
                token,
                owner,
                repo,
                title,
                PR_BODY_TEMPLATE.format(title=card.title),
                head=branch,
                base=connection.default_branch,
            )
        except GitHubApiError as exc:
            logger.error(
                "Sync of card %s to %s failed: %s", card_id, connection.full_name, exc.message
            )
            self.model.create_log(
                connection.id,
                SyncDirection.OUTBOUND,
                SyncStatus.ERROR,
                event_type="sync",
                error_message=exc.message,
            )
            raise ApiError(502, f"GitHub error: {exc.message}") from exc

        self.model.create_pull_request(
            connection.id,
            pr_number,
            title,
            source_branch=branch,
            target_branch=connection.default_branch,
            card_feature_id=card_id,
            pr_url=pr_url,
        )
        self.model.update_last_synced(mapping.id, commit_sha)
        self.model.create_log(
            connection.id, SyncDirection.OUTBOUND, SyncStatus.SUCCESS, event_type="sync"
        )
        logger.info("Opened PR #%s on %s for card %s", pr_number, connection.full_name, card_id)
        return {
            "prUrl": pr_url,
            "prNumber": pr_number,
            "branchName": branch,
            "message": "Pull request created",
        }
