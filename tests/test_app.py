"""
Tests for the HTTP endpoints.
"""

import hashlib
import hmac
import json
from unittest.mock import patch

import pytest

import app as app_module
from alert_ledger import AlertKind
from app import validate_push_payload, verify_github_signature

PUSH = {
    "ref": "refs/heads/main",
    "repository": {"name": "notifier"},
    "pusher": {"name": "alice"},
    "commits": [{"id": "0123456789", "message": "Initial commit", "url": "https://x", "author": {"name": "Alice"}}],
}


def post_push(client, payload=PUSH, event="push", headers=None):
    return client.post(
        "/webhook",
        data=json.dumps(payload),
        content_type="application/json",
        headers={"X-GitHub-Event": event, **(headers or {})},
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "GitHub to Discord webhook server is running"
        assert data["deadline_check_running"] is False


class TestWebhook:
    def test_ignores_non_push(self, client):
        with patch.object(app_module, "send_discord_message") as send:
            response = post_push(client, event="pull_request")
        assert response.status_code == 200
        assert "ignored" in response.get_json()["message"]
        send.assert_not_called()

    def test_relays_push(self, client):
        with patch.object(app_module, "send_discord_message", return_value=True) as send:
            response = post_push(client)
        assert response.status_code == 200
        message, url = send.call_args.args
        assert url == app_module.config.DISCORD_WEBHOOK_URL
        assert message["embeds"][0]["title"] == "📦 New Push to notifier"

    def test_no_commits(self, client):
        with patch.object(app_module, "send_discord_message") as send:
            response = post_push(client, {**PUSH, "commits": []})
        assert response.get_json()["message"] == "No commits to report"
        send.assert_not_called()

    def test_discord_failure(self, client):
        with patch.object(app_module, "send_discord_message", return_value=False):
            response = post_push(client)
        assert response.status_code == 500

    def test_invalid_payload(self, client):
        response = post_push(client, {"ref": "refs/heads/main"})
        assert response.status_code == 400

    def test_null_commit_fields(self, client):
        commit = {**PUSH["commits"][0], "author": None, "message": None}
        with patch.object(app_module, "send_discord_message", return_value=True):
            response = post_push(client, {**PUSH, "pusher": None, "commits": [commit]})
        assert response.status_code == 200

    def test_multi_commit_push_is_summarized(self, client):
        payload = {**PUSH, "commits": PUSH["commits"] * 2}
        with patch.object(app_module, "send_discord_message", return_value=True) as send, \
                patch.object(app_module.gemini_service, "summarize_push", return_value="Two commits.") as summarize:
            post_push(client, payload)
        summarize.assert_called_once()
        assert send.call_args.args[0]["embeds"][0]["fields"][0]["value"] == "Two commits."

    def test_signature_required_when_secret_set(self, client):
        with patch.object(app_module.config, "GITHUB_WEBHOOK_SECRET", "s3cret"):
            assert post_push(client).status_code == 400

            body = json.dumps(PUSH).encode()
            signature = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
            with patch.object(app_module, "send_discord_message", return_value=True):
                response = client.post(
                    "/webhook",
                    data=body,
                    content_type="application/json",
                    headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": signature},
                )
        assert response.status_code == 200


class TestSignatureHelpers:
    def test_rejects_bad_prefix(self):
        assert verify_github_signature(b"{}", "sha1=abc", b"key") is False

    def test_rejects_mismatch(self):
        assert verify_github_signature(b"{}", "sha256=" + "0" * 64, b"key") is False

    @pytest.mark.parametrize("payload", [None, [], {"repository": {}}, {**PUSH, "commits": [{"id": 1}]}])
    def test_invalid_push_payloads(self, payload):
        assert validate_push_payload(payload) is False

    def test_valid_push_payload(self):
        assert validate_push_payload(PUSH) is True


class TestProjects:
    def test_list_before_sync(self, client):
        assert client.get("/projects").get_json() == {"projects": [], "synced": False}

    def test_sync_and_list(self, client, launch_project):
        response = client.post("/projects/sync", json={"projects": [launch_project]})
        assert response.status_code == 200
        assert response.get_json()["synced"] == 1

        data = client.get("/projects").get_json()
        assert data == {"projects": [launch_project], "synced": True}

    def test_sync_rejects_bad_body(self, client):
        assert client.post("/projects/sync", json=[1, 2]).status_code == 400

    def test_sync_rejects_invalid_project(self, client):
        response = client.post("/projects/sync", json={"projects": [{"id": "p1"}]})
        assert response.status_code == 400
        assert "missing" in response.get_json()["error"]

    def test_delete(self, client, ledger, launch_project):
        client.post("/projects/sync", json={"projects": [launch_project]})
        ledger.record("p1", AlertKind.THREE_DAY)

        assert client.delete("/projects/p1").status_code == 200
        assert client.delete("/projects/p1").status_code == 404
        assert ledger.all() == {}


class TestDeadlineEndpoints:
    def test_manual_check(self, client, sender, launch_project):
        client.post("/projects/sync", json={"projects": [launch_project]})

        response = client.post("/deadlines/check")

        assert response.status_code == 200
        data = response.get_json()
        assert data["trigger"] == "manual"
        assert data["alerts_sent"] == 1
        assert client.get("/alerts").get_json()["p1"].keys() == {"3-day"}

    def test_manual_check_while_running(self, client, coordinator):
        coordinator._run_lock.acquire()
        try:
            response = client.post("/deadlines/check")
        finally:
            coordinator._run_lock.release()
        assert response.status_code == 409
        assert response.get_json()["status"] == "already_running"

    def test_clear_alerts(self, client, ledger):
        ledger.record("p1", AlertKind.ONE_DAY)
        assert client.delete("/alerts/p1").status_code == 200
        assert client.get("/alerts").get_json() == {}
