"""
GitHub webhook handling: signature verification, delivery de-duplication and
push / pull_request processing.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from tenxdev.errors import ApiError
from tenxdev.models.gitsync import GitSyncModel, is_conflicted
from tenxdev.types import PullRequestState, SyncDirection, SyncStatus, utc_now

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def _repository(payload: dict) -> tuple[str, str]:
    repo = payload.get("repository") or {}
    owner = repo.get("owner") or {}
    owner_login = owner.get("login") or owner.get("name")
    if not owner_login or not repo.get("name"):
        raise ApiError(400, "Payload has no repository")
    return owner_login, repo["name"]


class GitHubWebhookService:
    def __init__(self, model: GitSyncModel, secret: str):
        self.model = model
        self.secret = secret

    def verify_signature(self, body: bytes, header: Optional[str]) -> bool:
        if not self.secret or not header or not header.startswith(SIGNATURE_PREFIX):
            return False
        expected = hmac.new(
            self.secret.encode("utf-8"), body, hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(header[len(SIGNATURE_PREFIX):], expected)

    def handle(self, event: str, delivery_id: Optional[str], payload: dict) -> dict:
        if delivery_id and not self.model.record_delivery(delivery_id, event):
            logger.info("Skipping duplicate webhook delivery %s", delivery_id)
            return {"duplicate": True}

        logger.info("Received GitHub %s event (delivery %s)", event, delivery_id)
        try:
            return self._dispatch(event, payload)
        except Exception:
            # a failed delivery must stay redeliverable
            if delivery_id:
                self.model.forget_delivery(delivery_id)
            raise

    def _dispatch(self, event: str, payload: dict) -> dict:
        if event == "ping":
            return {"message": "Webhook configured"}
        if event == "push":
            return self._handle_push(payload)
        if event == "pull_request":
            return self._handle_pull_request(payload)
        return {"message": f"Event {event} ignored"}

    def _connections(self, payload: dict):
        owner, repo = _repository(payload)
        connections = self.model.find_by_owner_and_repo(owner, repo).data
        if not connections:
            raise ApiError(404, "No connection found for this repository")
        return connections

    def _handle_push(self, payload: dict) -> dict:
        active = [c for c in self._connections(payload) if c.is_active]
        if not active:
            raise ApiError(400, "Connection is inactive")

        branch = (payload.get("ref") or "").removeprefix("refs/heads/")
        commits = payload.get("commits") or []
        cards_updated = 0
        conflicts = 0

        for connection in active:
            by_path = {}
            for mapping in self.model.get_mappings_by_connection(connection.id).data:
                if mapping.branch_name in (branch, "main"):
                    by_path.setdefault(mapping.file_path, mapping)

            conflicted = set()
            for commit in commits:
                sha = commit.get("id")
                changed = (commit.get("added") or []) + (commit.get("modified") or [])
                for path in changed:
                    mapping = by_path.get(path)
                    if mapping is None:
                        continue
                    if path in conflicted or is_conflicted(mapping):
                        # keep the card's pending edit visible as a conflict
                        self.model.update_mapping(mapping.id, {"last_commit_sha": sha})
                        if path not in conflicted:
                            conflicted.add(path)
                            conflicts += 1
                            logger.warning(
                                "Conflict on %s: card %s changed since last sync",
                                path,
                                mapping.card_feature_id,
                            )
                            self.model.create_log(
                                connection.id,
                                SyncDirection.INBOUND,
                                SyncStatus.CONFLICT,
                                event_type="push",
                                error_message=f"{path} changed on GitHub and in card {mapping.card_feature_id}",
                            )
                        continue
                    by_path[path] = self.model.update_last_synced(mapping.id, sha).data
                    cards_updated += 1

            self.model.create_log(
                connection.id, SyncDirection.INBOUND, SyncStatus.SUCCESS, event_type="push"
            )
            self.model.update_last_sync(connection.id)

        return {"processed": True, "cardsUpdated": cards_updated, "conflicts": conflicts}

    def _handle_pull_request(self, payload: dict) -> dict:
        connections = self._connections(payload)
        action = payload.get("action")
        pull_request = payload.get("pull_request") or {}
        number = pull_request.get("number")

        for connection in connections:
            if action == "opened":
                self.model.create_log(
                    connection.id,
                    SyncDirection.OUTBOUND,
                    SyncStatus.SUCCESS,
                    event_type="pull_request",
                )
            elif action == "closed" and pull_request.get("merged"):
                self.model.update_pull_request_state(
                    connection.id,
                    number,
                    PullRequestState.MERGED,
                    merged_at=pull_request.get("merged_at") or utc_now(),
                )
                self.model.create_log(
                    connection.id,
                    SyncDirection.OUTBOUND,
                    SyncStatus.SUCCESS,
                    event_type="merge",
                )
            elif action == "closed":
                self.model.update_pull_request_state(
                    connection.id, number, PullRequestState.CLOSED
                )

        return {"processed": True, "action": action}
