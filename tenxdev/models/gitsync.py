"""
Data access for GitHub sync: OAuth tokens, project/repository connections,
card/file mappings, pull requests, sync logs and webhook deliveries.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from tenxdev.db import (
    ConnectionRecord,
    DbClient,
    DuplicateRecordError,
    FileMappingRecord,
    OAuthTokenRecord,
    PullRequestRecord,
    SyncLogRecord,
)
from tenxdev.types import (
    ModelListResult,
    ModelResult,
    PullRequestState,
    SyncDirection,
    SyncStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

# Fields a mapping update may touch.
MAPPING_UPDATE_FIELDS = (
    "last_commit_sha",
    "last_synced_at",
    "card_modified_at",
    "branch_name",
    "card_feature_id",
)


def new_mapping(values: dict) -> FileMappingRecord:
    """Build a mapping from an insert payload, applying defaults."""
    return FileMappingRecord(
        connection_id=values["connection_id"],
        project_id=values["project_id"],
        card_feature_id=values["card_feature_id"],
        file_path=values["file_path"],
        branch_name=values.get("branch_name") or "main",
        last_commit_sha=values.get("last_commit_sha"),
        last_synced_at=values.get("last_synced_at") or utc_now(),
        card_modified_at=values.get("card_modified_at"),
    )


def is_conflicted(mapping: FileMappingRecord) -> bool:
    """A card edited after its file was last synced."""
    if not mapping.card_modified_at:
        return False
    if not mapping.last_synced_at:
        return True
    return mapping.card_modified_at > mapping.last_synced_at


class GitSyncModel:
    def __init__(self, db: DbClient):
        self.db = db

    # oauth tokens

    def find_token(self, user_id: str) -> ModelResult[Optional[OAuthTokenRecord]]:
        return ModelResult.ok(self.db.get_oauth_token(user_id))

    def upsert_token(
        self, user_id: str, access_token: str, scope: Optional[str] = None
    ) -> ModelResult[OAuthTokenRecord]:
        return ModelResult.ok(self.db.upsert_oauth_token(user_id, access_token, scope))

    def delete_token(self, user_id: str) -> ModelResult[None]:
        self.db.delete_oauth_token(user_id)
        return ModelResult.ok(None)

    # connections

    def find_by_id(self, connection_id: str) -> ModelResult[ConnectionRecord]:
        record = self.db.get_connection(connection_id)
        if not record:
            return ModelResult.fail("Connection not found", 404)
        return ModelResult.ok(record)

    def find_by_project(self, project_id: str) -> ModelListResult[ConnectionRecord]:
        return ModelListResult.ok(self.db.list_connections(project_id=project_id))

    def find_by_owner_and_repo(
        self, owner: str, repo: str
    ) -> ModelListResult[ConnectionRecord]:
        return ModelListResult.ok(self.db.list_connections(owner=owner, repo=repo))

    def create(
        self,
        user_id: str,
        project_id: str,
        github_owner: str,
        github_repo: str,
        default_branch: Optional[str] = None,
    ) -> ModelResult[ConnectionRecord]:
        try:
            record = self.db.insert_connection(
                ConnectionRecord(
                    project_id=project_id,
                    user_id=user_id,
                    github_owner=github_owner,
                    github_repo=github_repo,
                    default_branch=default_branch or "main",
                )
            )
        except DuplicateRecordError:
            return ModelResult.fail("Repository already connected to this project", 409)
        logger.info(
            "Connected project %s to %s", project_id, record.full_name
        )
        return ModelResult.ok(record, status_code=201)

    def update_last_sync(self, connection_id: str) -> ModelResult[None]:
        if not self.db.update_connection(connection_id, {"last_sync_at": utc_now()}):
            return ModelResult.fail("Connection not found", 404)
        return ModelResult.ok(None)

    def deactivate(self, connection_id: str) -> ModelResult[None]:
        if not self.db.update_connection(connection_id, {"is_active": False}):
            return ModelResult.fail("Connection not found", 404)
        return ModelResult.ok(None)

    def delete(self, connection_id: str) -> ModelResult[None]:
        if not self.db.delete_connection(connection_id):
            return ModelResult.fail("Connection not found", 404)
        return ModelResult.ok(None)

    # file mappings

    def create_mapping(self, values: dict) -> ModelResult[FileMappingRecord]:
        try:
            (record,) = self.db.insert_mappings([new_mapping(values)])
        except DuplicateRecordError:
            return ModelResult.fail("File already mapped in this project", 409)
        return ModelResult.ok(record, status_code=201)

    def create_mappings_bulk(
        self, values: Iterable[dict]
    ) -> ModelListResult[FileMappingRecord]:
        records = [new_mapping(v) for v in values]
        if not records:
            return ModelListResult.ok([])
        try:
            return ModelListResult.ok(self.db.insert_mappings(records))
        except DuplicateRecordError:
            return ModelListResult.fail("File already mapped in this project", 409)

    def upsert_mappings_bulk(
        self, values: Iterable[dict]
    ) -> ModelListResult[FileMappingRecord]:
        records = [new_mapping(v) for v in values]
        if not records:
            return ModelListResult.ok([])
        return ModelListResult.ok(self.db.upsert_mappings(records))

    def get_mapping(self, mapping_id: str) -> ModelResult[FileMappingRecord]:
        record = self.db.get_mapping(mapping_id)
        if not record:
            return ModelResult.fail("Mapping not found", 404)
        return ModelResult.ok(record)

    def get_mappings_by_project(
        self, project_id: str
    ) -> ModelListResult[FileMappingRecord]:
        return ModelListResult.ok(self.db.list_mappings(project_id=project_id))

    def get_mappings_by_card(
        self, card_feature_id: str
    ) -> ModelListResult[FileMappingRecord]:
        return ModelListResult.ok(self.db.list_mappings(card_feature_id=card_feature_id))

    def get_mappings_by_connection(
        self, connection_id: str
    ) -> ModelListResult[FileMappingRecord]:
        return ModelListResult.ok(self.db.list_mappings(connection_id=connection_id))

    def get_mapping_by_file_path(
        self, project_id: str, file_path: str
    ) -> ModelResult[FileMappingRecord]:
        found = self.db.list_mappings(project_id=project_id, file_path=file_path)
        if not found:
            return ModelResult.fail("Mapping not found", 404)
        return ModelResult.ok(found[0])

    def update_mapping(
        self, mapping_id: str, values: dict
    ) -> ModelResult[FileMappingRecord]:
        unknown = set(values) - set(MAPPING_UPDATE_FIELDS)
        if unknown:
            return ModelResult.fail(
                f"Cannot update mapping fields: {', '.join(sorted(unknown))}", 400
            )
        updated = self.db.update_mappings(values, id=mapping_id)
        if not updated:
            return ModelResult.fail("Mapping not found", 404)
        return ModelResult.ok(updated[0])

    def update_last_synced(
        self, mapping_id: str, commit_sha: Optional[str]
    ) -> ModelResult[FileMappingRecord]:
        return self.update_mapping(
            mapping_id, {"last_commit_sha": commit_sha, "last_synced_at": utc_now()}
        )

    def mark_card_modified(self, card_feature_id: str) -> ModelResult[int]:
        """Stamp every mapping of a card as edited now; returns how many."""
        updated = self.db.update_mappings(
            {"card_modified_at": utc_now()}, card_feature_id=card_feature_id
        )
        return ModelResult.ok(len(updated))

    def get_conflicts(self, project_id: str) -> ModelListResult[FileMappingRecord]:
        mappings = self.db.list_mappings(project_id=project_id)
        return ModelListResult.ok([m for m in mappings if is_conflicted(m)])

    def count_conflicts(self, project_id: str) -> int:
        return self.get_conflicts(project_id).count

    def delete_mapping(self, mapping_id: str) -> ModelResult[None]:
        if not self.db.delete_mappings(id=mapping_id):
            return ModelResult.fail("Mapping not found", 404)
        return ModelResult.ok(None)

    def delete_by_project(self, project_id: str) -> ModelResult[int]:
        return ModelResult.ok(self.db.delete_mappings(project_id=project_id))

    def delete_by_card(self, card_feature_id: str) -> ModelResult[int]:
        return ModelResult.ok(self.db.delete_mappings(card_feature_id=card_feature_id))

    # pull requests

    def create_pull_request(
        self,
        connection_id: str,
        pr_number: int,
        pr_title: str,
        source_branch: str,
        target_branch: str,
        card_feature_id: Optional[str] = None,
        pr_url: Optional[str] = None,
    ) -> ModelResult[PullRequestRecord]:
        record = self.db.insert_pull_request(
            PullRequestRecord(
                connection_id=connection_id,
                pr_number=pr_number,
                pr_title=pr_title,
                source_branch=source_branch,
                target_branch=target_branch,
                card_feature_id=card_feature_id,
                pr_url=pr_url,
                pr_state=PullRequestState.OPEN.value,
            )
        )
        return ModelResult.ok(record, status_code=201)

    def find_pull_requests(
        self, connection_id: str, limit: int = 20
    ) -> ModelListResult[PullRequestRecord]:
        return ModelListResult.ok(self.db.list_pull_requests(connection_id, limit))

    def update_pull_request_state(
        self,
        connection_id: str,
        pr_number: int,
        state: PullRequestState,
        merged_at: Optional[str] = None,
    ) -> ModelResult[PullRequestRecord]:
        values = {"pr_state": state.value}
        if merged_at:
            values["merged_at"] = merged_at
        record = self.db.update_pull_request(connection_id, pr_number, values)
        if not record:
            return ModelResult.fail("Pull request not found", 404)
        return ModelResult.ok(record)

    # sync logs

    def create_log(
        self,
        connection_id: str,
        direction: SyncDirection,
        status: SyncStatus,
        event_type: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> ModelResult[SyncLogRecord]:
        record = self.db.insert_sync_log(
            SyncLogRecord(
                connection_id=connection_id,
                direction=direction.value,
                status=status.value,
                event_type=event_type,
                error_message=error_message,
            )
        )
        return ModelResult.ok(record, status_code=201)

    def find_logs(
        self, connection_id: str, limit: int = 50
    ) -> ModelListResult[SyncLogRecord]:
        return ModelListResult.ok(self.db.list_sync_logs(connection_id, limit))

    # webhook deliveries

    def record_delivery(self, delivery_id: str, event_type: str) -> bool:
        return self.db.record_delivery(delivery_id, event_type)

    def forget_delivery(self, delivery_id: str) -> None:
        self.db.forget_delivery(delivery_id)
