import unittest

from tenxdev.db import (
    CardFeatureRecord,
    ConnectionRecord,
    ContentRecord,
    DuplicateRecordError,
    PullRequestRecord,
    SavedItemRecord,
    SqlDbClient,
    SyncLogRecord,
    VideoRecord,
)
from tenxdev.models.content import ContentModel
from tenxdev.models.gitsync import GitSyncModel, new_mapping


class SqlDbClientTests(unittest.TestCase):
    """
    Runs the SQLAlchemy client against in-memory SQLite.
    """

    def setUp(self):
        self.db = SqlDbClient("sqlite+pysqlite:///:memory:")

    def _connection(self, project_id="proj-1", owner="acme", repo="docs"):
        return self.db.insert_connection(
            ConnectionRecord(
                project_id=project_id,
                user_id="user-1",
                github_owner=owner,
                github_repo=repo,
            )
        )

    def _mapping(self, connection, file_path, card="card-1", **extra):
        return new_mapping(
            {
                "connection_id": connection.id,
                "project_id": connection.project_id,
                "card_feature_id": card,
                "file_path": file_path,
                **extra,
            }
        )

    def test_content_crud_and_listing(self):
        first = self.db.insert_content(
            ContentRecord(title="Alpha", content_type="post", tags=["api", "sql"])
        )
        self.db.insert_content(ContentRecord(title="beta", description="alpha inside"))
        self.db.insert_content(ContentRecord(title="Gamma", category="ops"))

        fetched = self.db.get_content(first.id)
        self.assertEqual(fetched.tags, ["api", "sql"])

        items, total = self.db.list_contents(search="ALPHA")
        self.assertEqual(total, 2)
        self.assertEqual(len(items), 2)

        items, total = self.db.list_contents(
            sort_by="title", descending=False, offset=1, limit=1
        )
        self.assertEqual(total, 3)
        self.assertEqual(len(items), 1)

        posts, _ = self.db.list_contents(content_type="post")
        self.assertEqual([p.title for p in posts], ["Alpha"])

        updated = self.db.update_content(first.id, {"title": "Alpha 2"})
        self.assertEqual(updated.title, "Alpha 2")
        self.assertIsNone(self.db.update_content("missing", {"title": "x"}))

        self.assertTrue(self.db.delete_content(first.id))
        self.assertFalse(self.db.delete_content(first.id))

    def test_saved_items_unique_per_user(self):
        self.db.insert_saved_item(SavedItemRecord("user-1", "video", "v1"))
        with self.assertRaises(DuplicateRecordError):
            self.db.insert_saved_item(SavedItemRecord("user-1", "video", "v1"))
        self.db.insert_saved_item(SavedItemRecord("user-2", "video", "v1"))
        self.db.insert_saved_item(SavedItemRecord("user-1", "card", "c1"))

        self.assertEqual(len(self.db.list_saved_items("user-1")), 2)
        self.assertEqual(len(self.db.list_saved_items("user-1", "card")), 1)
        self.assertEqual(
            self.db.find_saved_item_ids("user-1", "video", ["v1", "v2"]), ["v1"]
        )
        self.assertEqual(self.db.find_saved_item_ids("user-1", "video", []), [])
        self.assertEqual(self.db.delete_saved_item("user-1", "video", "v1"), 1)
        self.assertEqual(self.db.delete_saved_item("user-1", "video", "v1"), 0)

    def test_cards_and_videos(self):
        self.db.save_card_feature(CardFeatureRecord(id="c1", title="Card", screens=[{"name": "a"}]))
        self.db.save_card_feature(CardFeatureRecord(id="c1", title="Card v2"))
        self.db.save_video(VideoRecord(id="v1", title="Video"))

        self.assertEqual(self.db.get_card_feature("c1").title, "Card v2")
        self.assertEqual([c.id for c in self.db.get_card_features(["c1", "zz"])], ["c1"])
        self.assertEqual([v.id for v in self.db.get_videos(["v1"])], ["v1"])

    def test_oauth_token_upsert(self):
        created = self.db.upsert_oauth_token("user-1", "t1", "repo")
        updated = self.db.upsert_oauth_token("user-1", "t2", None)
        self.assertEqual(created.id, updated.id)
        self.assertEqual(self.db.get_oauth_token("user-1").access_token, "t2")
        self.assertTrue(self.db.delete_oauth_token("user-1"))
        self.assertIsNone(self.db.get_oauth_token("user-1"))

    def test_connections_are_unique_per_project_ignoring_case(self):
        connection = self._connection()
        with self.assertRaises(DuplicateRecordError):
            self._connection(owner="Acme", repo="DOCS")
        self._connection(project_id="proj-2")

        self.assertEqual(len(self.db.list_connections(owner="ACME", repo="docs")), 2)
        self.assertEqual(len(self.db.list_connections(project_id="proj-1")), 1)
        self.db.update_connection(connection.id, {"is_active": False})
        self.assertFalse(self.db.get_connection(connection.id).is_active)

    def test_mappings_unique_per_project_path(self):
        connection = self._connection()
        self.db.insert_mappings([self._mapping(connection, "b.md")])
        with self.assertRaises(DuplicateRecordError):
            self.db.insert_mappings([self._mapping(connection, "b.md", card="card-2")])

        stored = self.db.upsert_mappings(
            [
                self._mapping(connection, "b.md", card="card-2", last_commit_sha="abc"),
                self._mapping(connection, "a.md"),
            ]
        )
        self.assertEqual(len(stored), 2)
        mappings = self.db.list_mappings(project_id="proj-1")
        self.assertEqual([m.file_path for m in mappings], ["a.md", "b.md"])
        self.assertEqual(mappings[1].card_feature_id, "card-2")
        self.assertEqual(mappings[1].last_commit_sha, "abc")

    def test_mapping_updates_and_deletes_need_filters(self):
        connection = self._connection()
        self.db.insert_mappings(
            [self._mapping(connection, "a.md"), self._mapping(connection, "b.md")]
        )
        with self.assertRaises(ValueError):
            self.db.update_mappings({"branch_name": "dev"})
        with self.assertRaises(ValueError):
            self.db.delete_mappings(project_id=None)

        updated = self.db.update_mappings({"branch_name": "dev"}, card_feature_id="card-1")
        self.assertEqual(len(updated), 2)
        self.assertEqual(self.db.delete_mappings(file_path="a.md"), 1)

        self.assertTrue(self.db.delete_connection(connection.id))
        self.assertEqual(self.db.list_mappings(project_id="proj-1"), [])

    def test_pull_requests_and_logs(self):
        connection = self._connection()
        self.db.insert_pull_request(
            PullRequestRecord(
                connection_id=connection.id,
                pr_number=1,
                pr_title="t",
                source_branch="b",
                target_branch="main",
            )
        )
        merged = self.db.update_pull_request(
            connection.id, 1, {"pr_state": "merged", "merged_at": "2024-01-01T00:00:00Z"}
        )
        self.assertEqual(merged.pr_state, "merged")
        self.assertIsNone(self.db.update_pull_request(connection.id, 99, {"pr_state": "closed"}))
        self.assertEqual(len(self.db.list_pull_requests(connection.id)), 1)

        for _ in range(3):
            self.db.insert_sync_log(
                SyncLogRecord(connection_id=connection.id, direction="inbound", status="success")
            )
        self.assertEqual(len(self.db.list_sync_logs(connection.id, limit=2)), 2)

    def test_record_delivery_only_once(self):
        self.assertTrue(self.db.record_delivery("d-1", "push"))
        self.assertFalse(self.db.record_delivery("d-1", "push"))

    def test_content_update_with_null_type_on_sql_backend(self):
        model = ContentModel(self.db)
        created = model.create({"title": "Guide", "content_type": "manual"}).data

        result = model.update(created.id, {"content_type": None, "category": "ops"})
        self.assertTrue(result.success)
        self.assertEqual(result.data.content_type, "manual")
        self.assertEqual(self.db.get_content(created.id).category, "ops")

    def test_model_conflicts_on_sql_backend(self):
        model = GitSyncModel(self.db)
        connection = self._connection()
        created = model.create_mapping(
            {
                "connection_id": connection.id,
                "project_id": connection.project_id,
                "card_feature_id": "card-1",
                "file_path": "a.md",
                "last_synced_at": "2024-01-01T00:00:00+00:00",
            }
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(model.create_mapping({
            "connection_id": connection.id,
            "project_id": connection.project_id,
            "card_feature_id": "card-2",
            "file_path": "a.md",
        }).status_code, 409)

        self.assertEqual(model.count_conflicts("proj-1"), 0)
        self.assertEqual(model.mark_card_modified("card-1").data, 1)
        self.assertEqual(model.count_conflicts("proj-1"), 1)
        model.update_last_synced(created.data.id, "sha-1")
        self.assertEqual(model.count_conflicts("proj-1"), 0)


if __name__ == "__main__":
    unittest.main()
