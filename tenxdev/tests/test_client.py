import unittest

from fastapi.testclient import TestClient

from tenxdev.app import create_app
from tenxdev.client import (
    ApiClient,
    ApiClientError,
    ContentService,
    GitSyncService,
    SavedItemService,
)
from tenxdev.db import CardFeatureRecord
from tenxdev.dependencies import get_github_api
from tenxdev.tests.support import USER, make_pdf, reset_backends


class ApiClientTests(unittest.TestCase):
    """
    Drives the Python client against the app through FastAPI's TestClient.
    """

    def setUp(self):
        self.session = TestClient(create_app())
        self.db = reset_backends()
        self.admin = ApiClient("/api", token="admin-token", session=self.session)
        self.user = ApiClient("/api", token="user-token", session=self.session)
        self.anonymous = ApiClient("/api", session=self.session)

    def test_content_service(self):
        admin = ContentService(self.admin)
        created = admin.create(
            {"title": "Post", "contentType": "post", "tags": ["python"]}
        ).data
        admin.update(created["id"], {"description": "Updated"})

        public = ContentService(self.anonymous)
        listing = public.list(content_type="post", search="post", page=1, limit=10)
        self.assertEqual(listing.count, 1)
        self.assertEqual(listing.data[0]["description"], "Updated")
        self.assertEqual(public.list_post_tags().data, ["python"])

        selected = admin.select_card_feature(created["id"], "card-1")
        self.assertEqual(selected.message, "Card feature selected")
        self.assertEqual(public.get(created["id"]).data["selectedCardFeatureId"], "card-1")

        upload = admin.upload_pdf("guide.pdf", make_pdf())
        self.assertEqual(upload.data["pageCount"], 1)

        admin.delete(created["id"])
        with self.assertRaises(ApiClientError) as ctx:
            public.get(created["id"])
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.error, "Content not found")
        self.assertFalse(ctx.exception.details["success"])

    def test_errors_carry_status_and_message(self):
        with self.assertRaises(ApiClientError) as ctx:
            ContentService(self.user).create({"title": "x"})
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.error, "Admin access required")

    def test_saved_item_service(self):
        self.db.save_card_feature(CardFeatureRecord(id="card-1", title="JWT auth"))
        saved = SavedItemService(self.user)

        saved.save("card", "card-1")
        self.assertTrue(saved.is_saved("card", "card-1"))
        self.assertEqual(saved.check_multiple("card", ["card-1", "card-2"]), ["card-1"])
        self.assertEqual(saved.list("card").data[0]["item"]["title"], "JWT auth")

        saved.unsave("card", "card-1")
        self.assertFalse(saved.is_saved("card", "card-1"))
        with self.assertRaises(ApiClientError):
            SavedItemService(self.anonymous).list()

    def test_gitsync_service(self):
        github = get_github_api()
        github.add_repo("acme", "docs", files={"docs/auth.md": "# old"})
        self.db.upsert_oauth_token(USER.id, "gho_secret", "repo")
        self.db.save_card_feature(CardFeatureRecord(id="card-1", title="JWT auth"))
        gitsync = GitSyncService(self.user)

        self.assertIn("github.com", gitsync.authorization_url("proj-1"))
        self.assertEqual(gitsync.list_repos().data[0]["fullName"], "acme/docs")
        self.assertEqual(gitsync.list_branches("acme", "docs").data[0]["name"], "main")

        connection = gitsync.create_connection("proj-1", "acme", "docs").data
        self.assertEqual(gitsync.list_connections("proj-1").count, 1)

        mapping = gitsync.link_file("card-1", connection["id"], "docs/auth.md").data
        self.assertEqual(gitsync.card_mappings("card-1").count, 1)

        result = gitsync.sync_to_github("card-1", "# new").data
        self.assertEqual(result["prNumber"], 1)
        self.assertEqual(gitsync.pull_requests(connection["id"]).count, 1)
        self.assertEqual(gitsync.sync_logs(connection["id"]).count, 1)
        self.assertEqual(gitsync.conflicts("proj-1").count, 0)

        gitsync.unlink_file("card-1", mapping["id"])
        self.assertEqual(gitsync.card_mappings("card-1").count, 0)
        gitsync.delete_connection(connection["id"])
        self.assertEqual(gitsync.list_connections("proj-1").count, 0)

        gitsync.disconnect()
        with self.assertRaises(ApiClientError) as ctx:
            gitsync.list_repos()
        self.assertEqual(ctx.exception.status_code, 401)


if __name__ == "__main__":
    unittest.main()
