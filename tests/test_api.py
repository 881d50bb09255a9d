"""Tests for the staging REST API."""
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from tests.conftest import RecordingAdapter


@pytest.fixture
def client(test_settings):
    app = create_app(test_settings, adapter=RecordingAdapter())
    with TestClient(app) as c:
        yield c


def _approve(client, **overrides):
    body = {"content": "Hello", "conversation_id": "conv-1", "patient_name": "Jane Doe"}
    body.update(overrides)
    resp = client.post("/api/v1/staging/drafts", json=body)
    assert resp.status_code == 201
    return resp.json()


class TestHealth:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["driver_running"] is True
        assert data["adapter"]["channel"] == "recording"
        assert data["queue"]["total"] == 0

    def test_degraded_without_spruce_token(self, test_settings):
        test_settings.dispatch.provider = "spruce"
        with TestClient(create_app(test_settings)) as c:
            data = c.get("/health").json()
        assert data["status"] == "degraded"
        assert data["adapter"]["configured"] is False


class TestApproval:
    def test_approve_draft(self, client):
        entry = _approve(client, draft_id="d-1")
        assert entry["status"] == "pending"
        assert entry["countdown"] == 60
        assert entry["source"] == "ai_draft"
        assert entry["is_urgent"] is False

        listed = client.get("/api/v1/staging").json()
        assert [e["id"] for e in listed] == [entry["id"]]

    def test_blank_content_is_422(self, client):
        resp = client.post("/api/v1/staging/drafts", json={
            "content": " ", "conversation_id": "conv-1", "patient_name": "Jane Doe",
        })
        assert resp.status_code == 422
        assert "empty" in resp.json()["detail"]

    def test_quick_reply(self, client):
        resp = client.post("/api/v1/staging/quick-replies", json={
            "template_id": "confirm_appointment",
            "conversation_id": "conv-2",
            "patient_name": "John Smith",
        })
        assert resp.status_code == 201
        entry = resp.json()
        assert entry["source"] == "quick_reply"
        assert entry["countdown"] == 30
        assert entry["content"].startswith("Dear John Smith,")

    def test_unknown_quick_reply_is_422(self, client):
        resp = client.post("/api/v1/staging/quick-replies", json={
            "template_id": "nope", "conversation_id": "conv-2", "patient_name": "John Smith",
        })
        assert resp.status_code == 422

    def test_templates(self, client):
        assert len(client.get("/api/v1/staging/templates").json()) == 6
        urgent = client.get("/api/v1/staging/templates", params={"category": "urgent"}).json()
        assert [t["id"] for t in urgent] == ["urgent_callback"]
        assert client.get("/api/v1/staging/templates", params={"category": "spam"}).status_code == 400


class TestActions:
    def test_cancel(self, client):
        entry = _approve(client)
        first = client.post(f"/api/v1/staging/{entry['id']}/cancel").json()
        second = client.post(f"/api/v1/staging/{entry['id']}/cancel").json()
        assert first == {"entry_id": entry["id"], "cancelled": True}
        assert second["cancelled"] is False
        assert client.get(f"/api/v1/staging/{entry['id']}").status_code == 404

    def test_pause_resume(self, client):
        entry = _approve(client)
        paused = client.post(f"/api/v1/staging/{entry['id']}/pause").json()
        assert paused["status"] == "paused"
        assert client.post(f"/api/v1/staging/{entry['id']}/pause").status_code == 409
        resumed = client.post(f"/api/v1/staging/{entry['id']}/resume").json()
        assert resumed["status"] == "pending"

    def test_send_now(self, client):
        entry = _approve(client)
        sent = client.post(f"/api/v1/staging/{entry['id']}/send-now").json()
        assert sent["status"] in ("sending", "sent")
        assert client.post(f"/api/v1/staging/{entry['id']}/send-now").status_code == 409

    def test_resend_requires_error(self, client):
        entry = _approve(client)
        assert client.post(f"/api/v1/staging/{entry['id']}/resend").status_code == 409

    def test_revise(self, client):
        entry = _approve(client)
        resp = client.post(f"/api/v1/staging/{entry['id']}/revise", json={"content": "Updated text"})
        assert resp.status_code == 200
        revised = resp.json()
        assert revised["id"] != entry["id"]
        assert revised["content"] == "Updated text"
        assert client.get(f"/api/v1/staging/{entry['id']}").status_code == 404

    def test_unknown_entry_is_404(self, client):
        assert client.post("/api/v1/staging/staged_missing/pause").status_code == 404

    def test_status_filter(self, client):
        a = _approve(client)
        _approve(client)
        client.post(f"/api/v1/staging/{a['id']}/pause")
        paused = client.get("/api/v1/staging", params={"status": "paused"}).json()
        assert [e["id"] for e in paused] == [a["id"]]
        assert client.get("/api/v1/staging", params={"status": "lost"}).status_code == 400

    def test_stats_and_clear(self, client):
        _approve(client)
        stats = client.get("/api/v1/staging/stats").json()
        assert stats["by_status"]["pending"] == 1
        assert client.delete("/api/v1/staging/finished").json() == {"cleared": 0}
