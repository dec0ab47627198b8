import hashlib
import hmac
import json
import unittest
from unittest import mock

from fastapi.testclient import TestClient

from tenxdev.app import create_app
from tenxdev.config import get_settings
from tenxdev.db import ConnectionRecord, PullRequestRecord
from tenxdev.models.gitsync import GitSyncModel, new_mapping
from tenxdev.tests.support import reset_backends
from tenxdev.webhooks import GitHubWebhookService

SECRET = "hook-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _push(ref="refs/heads/main", commits=None, owner="acme", repo="docs"):
    return {
        "ref": ref,
        "repository": {"name": repo, "owner": {"login": owner}},
        "commits": commits or [],
    }


class WebhookSignatureTests(unittest.TestCase):
    def test_verify_signature(self):
        service = GitHubWebhookService(model=None, secret=SECRET)
        body = b'{"zen": "Keep it logically awesome."}'
        self.assertTrue(service.verify_signature(body, _sign(body)))
        self.assertFalse(service.verify_signature(body, _sign(body, "other")))
        self.assertFalse(service.verify_signature(body, _sign(body)[len("sha256="):]))
        self.assertFalse(service.verify_signature(body, None))
        self.assertFalse(
            GitHubWebhookService(model=None, secret="").verify_signature(body, _sign(body))
        )


class WebhookRouteTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app())
        self.db = reset_backends()
        self.model = GitSyncModel(self.db)
        self.settings = get_settings()
        patcher = mock.patch.object(self.settings, "github_webhook_secret", SECRET)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.connection = self.db.insert_connection(
            ConnectionRecord(
                project_id="proj-1", user_id="user-1", github_owner="Acme", github_repo="docs"
            )
        )
        self.mapping, self.dev_mapping = self.db.insert_mappings(
            [
                new_mapping(
                    {
                        "connection_id": self.connection.id,
                        "project_id": "proj-1",
                        "card_feature_id": "card-1",
                        "file_path": "docs/auth.md",
                        "last_synced_at": "2024-01-01T00:00:00+00:00",
                    }
                ),
                new_mapping(
                    {
                        "connection_id": self.connection.id,
                        "project_id": "proj-1",
                        "card_feature_id": "card-2",
                        "file_path": "docs/dev.md",
                        "branch_name": "dev",
                        "last_synced_at": "2024-01-01T00:00:00+00:00",
                    }
                ),
            ]
        )

    def _send(self, event, payload, delivery="d-1", signed=True):
        body = json.dumps(payload).encode()
        headers = {"X-GitHub-Event": event, "X-GitHub-Delivery": delivery}
        if signed:
            headers["X-Hub-Signature-256"] = _sign(body)
        return self.client.post("/api/gitsync/webhooks/github", content=body, headers=headers)

    def test_ping(self):
        response = self._send("ping", {"zen": "hi"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"message": "Webhook configured"})

    def test_unhandled_event_is_ignored(self):
        response = self._send("issues", {"action": "opened"})
        self.assertEqual(response.json()["data"], {"message": "Event issues ignored"})

    def test_push_updates_matching_mappings(self):
        payload = _push(
            commits=[
                {"id": "sha-1", "added": [], "modified": ["docs/auth.md", "README.md"]},
                {"id": "sha-2", "added": ["docs/dev.md"], "modified": []},
            ],
            owner="acme",
        )
        response = self._send("push", payload)
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(
            response.json()["data"], {"processed": True, "cardsUpdated": 1, "conflicts": 0}
        )

        mapping = self.db.get_mapping(self.mapping.id)
        self.assertEqual(mapping.last_commit_sha, "sha-1")
        self.assertGreater(mapping.last_synced_at, "2024-01-01T00:00:00+00:00")
        # a mapping on another branch is left alone
        self.assertIsNone(self.db.get_mapping(self.dev_mapping.id).last_commit_sha)

        (log,) = self.db.list_sync_logs(self.connection.id)
        self.assertEqual((log.direction, log.event_type, log.status), ("inbound", "push", "success"))
        self.assertIsNotNone(self.db.get_connection(self.connection.id).last_sync_at)

    def test_push_on_mapping_branch(self):
        payload = _push(
            ref="refs/heads/dev",
            commits=[{"id": "sha-3", "added": [], "modified": ["docs/dev.md"]}],
        )
        body = self._send("push", payload).json()
        self.assertEqual(body["data"]["cardsUpdated"], 1)
        self.assertEqual(self.db.get_mapping(self.dev_mapping.id).last_commit_sha, "sha-3")

    def test_push_reports_conflicts(self):
        self.model.update_mapping(
            self.mapping.id, {"card_modified_at": "2024-06-01T00:00:00+00:00"}
        )
        payload = _push(
            commits=[
                {"id": "sha-1", "added": [], "modified": ["docs/auth.md"]},
                {"id": "sha-2", "added": [], "modified": ["docs/auth.md"]},
            ]
        )
        body = self._send("push", payload).json()
        self.assertEqual(body["data"], {"processed": True, "cardsUpdated": 0, "conflicts": 1})

        mapping = self.db.get_mapping(self.mapping.id)
        self.assertEqual(mapping.last_commit_sha, "sha-2")
        self.assertEqual(self.model.count_conflicts("proj-1"), 1)
        statuses = sorted(log.status for log in self.db.list_sync_logs(self.connection.id))
        self.assertEqual(statuses, ["conflict", "success"])

    def test_duplicate_delivery_is_skipped(self):
        payload = _push(commits=[{"id": "sha-1", "added": [], "modified": ["docs/auth.md"]}])
        self._send("push", payload, delivery="same")
        again = self._send("push", payload, delivery="same")
        self.assertEqual(again.json()["data"], {"duplicate": True})
        self.assertEqual(len(self.db.list_sync_logs(self.connection.id)), 1)

    def test_failed_delivery_can_be_redelivered(self):
        payload = _push(
            repo="site", commits=[{"id": "sha-9", "added": [], "modified": ["index.md"]}]
        )
        self.assertEqual(self._send("push", payload, delivery="d-9").status_code, 404)

        site = self.db.insert_connection(
            ConnectionRecord(
                project_id="proj-2", user_id="user-1", github_owner="acme", github_repo="site"
            )
        )
        (mapping,) = self.db.insert_mappings(
            [
                new_mapping(
                    {
                        "connection_id": site.id,
                        "project_id": "proj-2",
                        "card_feature_id": "card-9",
                        "file_path": "index.md",
                    }
                )
            ]
        )

        again = self._send("push", payload, delivery="d-9")
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.json()["data"]["cardsUpdated"], 1)
        self.assertEqual(self.db.get_mapping(mapping.id).last_commit_sha, "sha-9")

    def test_push_with_null_file_lists(self):
        payload = _push(
            commits=[{"id": "sha-1", "added": None, "modified": ["docs/auth.md"], "removed": None}]
        )
        response = self._send("push", payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["cardsUpdated"], 1)

    def test_push_for_unknown_repository(self):
        response = self._send("push", _push(repo="other"))
        self.assertEqual(response.status_code, 404)

    def test_push_for_inactive_connection(self):
        self.model.deactivate(self.connection.id)
        response = self._send("push", _push())
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Connection is inactive")

    def test_unsigned_delivery_outside_production_is_accepted(self):
        response = self._send("ping", {}, signed=False)
        self.assertEqual(response.status_code, 200)

    def test_unsigned_delivery_in_production_is_rejected(self):
        with mock.patch.object(self.settings, "environment", "production"):
            response = self._send("ping", {}, signed=False)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "Invalid webhook signature")

    def test_merged_pull_request_updates_state(self):
        self.db.insert_pull_request(
            PullRequestRecord(
                connection_id=self.connection.id,
                pr_number=7,
                pr_title="[10xDev] JWT auth",
                source_branch="feature/10xdev-card-1-1",
                target_branch="main",
            )
        )
        payload = {
            "action": "closed",
            "repository": {"name": "docs", "owner": {"login": "acme"}},
            "pull_request": {
                "number": 7,
                "merged": True,
                "merged_at": "2024-07-01T12:00:00Z",
            },
        }
        response = self._send("pull_request", payload)
        self.assertEqual(response.status_code, 200)

        (pr,) = self.db.list_pull_requests(self.connection.id)
        self.assertEqual(pr.pr_state, "merged")
        self.assertEqual(pr.merged_at, "2024-07-01T12:00:00Z")
        (log,) = self.db.list_sync_logs(self.connection.id)
        self.assertEqual((log.direction, log.event_type), ("outbound", "merge"))

    def test_closed_pull_request_without_merge(self):
        self.db.insert_pull_request(
            PullRequestRecord(
                connection_id=self.connection.id,
                pr_number=8,
                pr_title="t",
                source_branch="b",
                target_branch="main",
            )
        )
        payload = {
            "action": "closed",
            "repository": {"name": "docs", "owner": {"login": "acme"}},
            "pull_request": {"number": 8, "merged": False},
        }
        self._send("pull_request", payload)
        (pr,) = self.db.list_pull_requests(self.connection.id)
        self.assertEqual(pr.pr_state, "closed")
        self.assertEqual(self.db.list_sync_logs(self.connection.id), [])

    def test_invalid_json_body(self):
        body = b"not json"
        response = self.client.post(
            "/api/gitsync/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": _sign(body)},
        )
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
