import unittest

from tenxdev.db import ConnectionRecord, InMemoryDbClient, SqlDbClient
from tenxdev.models.gitsync import GitSyncModel


class GitSyncModelTests(unittest.TestCase):
    """
    File mapping operations of GitSyncModel on the in-memory backend.
    """

    def make_db(self):
        return InMemoryDbClient()

    def setUp(self):
        self.db = self.make_db()
        self.model = GitSyncModel(self.db)
        self.connection = self.db.insert_connection(
            ConnectionRecord(
                project_id="proj-1", user_id="user-1", github_owner="acme", github_repo="docs"
            )
        )
        self.other = self.db.insert_connection(
            ConnectionRecord(
                project_id="proj-2", user_id="user-1", github_owner="acme", github_repo="site"
            )
        )

    def _values(self, file_path, card="card-1", connection=None, **extra):
        connection = connection or self.connection
        return {
            "connection_id": connection.id,
            "project_id": connection.project_id,
            "card_feature_id": card,
            "file_path": file_path,
            **extra,
        }

    def test_bulk_create_applies_defaults(self):
        result = self.model.create_mappings_bulk(
            [self._values("b.md"), self._values("a.md", branch_name="dev")]
        )
        self.assertTrue(result.success)
        self.assertEqual(result.count, 2)
        self.assertEqual(result.data[0].branch_name, "main")
        self.assertIsNotNone(result.data[0].last_synced_at)

        paths = [m.file_path for m in self.model.get_mappings_by_project("proj-1").data]
        self.assertEqual(paths, ["a.md", "b.md"])

    def test_bulk_create_rejects_duplicate_paths(self):
        self.model.create_mappings_bulk([self._values("a.md")])

        result = self.model.create_mappings_bulk(
            [self._values("c.md"), self._values("a.md", card="card-2")]
        )
        self.assertFalse(result.success)
        self.assertEqual(result.status_code, 409)
        self.assertEqual(result.error, "File already mapped in this project")
        # nothing from the failed batch is stored
        self.assertEqual(self.model.get_mappings_by_project("proj-1").count, 1)

        repeated = self.model.create_mappings_bulk(
            [self._values("d.md"), self._values("d.md")]
        )
        self.assertEqual(repeated.status_code, 409)

    def test_bulk_create_with_nothing(self):
        self.assertEqual(self.model.create_mappings_bulk([]).data, [])
        self.assertEqual(self.model.upsert_mappings_bulk([]).data, [])

    def test_upsert_keeps_id_and_created_at(self):
        (original,) = self.model.create_mappings_bulk([self._values("a.md")]).data

        result = self.model.upsert_mappings_bulk(
            [
                self._values("a.md", card="card-2", last_commit_sha="abc"),
                self._values("b.md"),
            ]
        )
        self.assertEqual(result.count, 2)

        updated = self.model.get_mapping_by_file_path("proj-1", "a.md").data
        self.assertEqual(updated.id, original.id)
        self.assertEqual(updated.created_at, original.created_at)
        self.assertEqual(updated.card_feature_id, "card-2")
        self.assertEqual(updated.last_commit_sha, "abc")
        self.assertEqual(self.model.get_mappings_by_project("proj-1").count, 2)

    def test_get_mapping_by_file_path(self):
        self.model.create_mapping(self._values("docs/a.md"))
        self.model.create_mapping(self._values("docs/a.md", connection=self.other))

        found = self.model.get_mapping_by_file_path("proj-2", "docs/a.md")
        self.assertTrue(found.success)
        self.assertEqual(found.data.connection_id, self.other.id)

        missing = self.model.get_mapping_by_file_path("proj-1", "docs/b.md")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.error, "Mapping not found")

    def test_delete_by_project_and_card(self):
        self.model.create_mappings_bulk(
            [
                self._values("a.md"),
                self._values("b.md", card="card-2"),
                self._values("c.md", card="card-2"),
            ]
        )
        self.model.create_mapping(self._values("a.md", card="card-2", connection=self.other))

        self.assertEqual(self.model.delete_by_card("card-2").data, 3)
        self.assertEqual(self.model.delete_by_card("card-2").data, 0)
        self.assertEqual(self.model.get_mappings_by_project("proj-2").data, [])

        self.assertEqual(self.model.delete_by_project("proj-1").data, 1)
        self.assertEqual(self.model.get_mappings_by_project("proj-1").count, 0)

    def test_update_mapping_rejects_unknown_fields(self):
        mapping = self.model.create_mapping(self._values("a.md")).data
        result = self.model.update_mapping(mapping.id, {"file_path": "b.md"})
        self.assertEqual(result.status_code, 400)
        self.assertEqual(self.model.update_mapping("missing", {"branch_name": "x"}).status_code, 404)

    def test_forgotten_delivery_can_be_recorded_again(self):
        self.assertTrue(self.model.record_delivery("d-1", "push"))
        self.assertFalse(self.model.record_delivery("d-1", "push"))
        self.model.forget_delivery("d-1")
        self.assertTrue(self.model.record_delivery("d-1", "push"))


class SqlGitSyncModelTests(GitSyncModelTests):
    """The same operations on SqlDbClient over in-memory SQLite."""

    def make_db(self):
        return SqlDbClient("sqlite+pysqlite:///:memory:")


if __name__ == "__main__":
    unittest.main()
