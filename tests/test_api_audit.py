"""Tests for the audit log, diff and restore endpoints."""

from __future__ import annotations

import pytest


@pytest.fixture
def prompt(client):
    project = client.post("/api/v1/projects", json={"name": "Launch"}).json()
    prompt = client.post(
        "/api/v1/prompts", json={"project_id": project["id"], "title": "A"}
    ).json()
    client.patch(f"/api/v1/prompts/{prompt['id']}", json={"title": "B"})
    return prompt


def _latest_event(client, prompt_id: str) -> dict:
    resp = client.get("/api/v1/logs", params={"entity_type": "prompt", "entity_id": prompt_id})
    return resp.json()["logs"][0]


class TestLogs:
    def test_list(self, client, prompt):
        resp = client.get("/api/v1/logs")
        assert resp.status_code == 200
        data = resp.json()
        assert [e["action_type"] for e in data["logs"]] == ["update", "create", "create"]
        assert data["has_more"] is False
        assert data["next_cursor"] is None

    def test_paging(self, client, prompt):
        first = client.get("/api/v1/logs", params={"limit": 2}).json()
        assert len(first["logs"]) == 2
        assert first["has_more"] is True
        second = client.get(
            "/api/v1/logs", params={"limit": 2, "cursor": first["next_cursor"]}
        ).json()
        assert len(second["logs"]) == 1
        assert second["has_more"] is False

    def test_forged_cursor(self, client, prompt):
        resp = client.get("/api/v1/logs", params={"cursor": "forged.cursor"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_cursor"

    def test_entity_id_without_type(self, client):
        resp = client.get("/api/v1/logs", params={"entity_id": "p1"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_state"

    def test_limit_too_large(self, client):
        resp = client.get("/api/v1/logs", params={"limit": 500})
        assert resp.status_code == 400

    def test_project_timeline(self, client, prompt):
        resp = client.get("/api/v1/logs", params={"project_id": prompt["project_id"]})
        assert len(resp.json()["logs"]) == 3

    def test_get_and_delete(self, client, prompt):
        event = _latest_event(client, prompt["id"])
        assert client.get(f"/api/v1/logs/{event['id']}").json()["id"] == event["id"]

        resp = client.delete(f"/api/v1/logs/{event['id']}")
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True}
        assert client.get(f"/api/v1/logs/{event['id']}").status_code == 404
        assert client.delete(f"/api/v1/logs/{event['id']}").status_code == 404
        # entity untouched
        assert client.get(f"/api/v1/prompts/{prompt['id']}").json()["title"] == "B"


class TestDiff:
    def test_update_diff(self, client, prompt):
        event = _latest_event(client, prompt["id"])
        resp = client.get(f"/api/v1/diff/{event['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["event_id"] == event["id"]
        assert data["action_type"] == "update"
        assert "computed_at" in data
        fields = {d["field"]: d for d in data["diffs"]}
        assert fields["title"] == {"field": "title", "change": "modified", "before": "A", "after": "B"}

    def test_create_diff_omits_before(self, client, prompt):
        resp = client.get("/api/v1/logs", params={"entity_type": "prompt", "entity_id": prompt["id"]})
        create_event = resp.json()["logs"][-1]
        data = client.get(f"/api/v1/diff/{create_event['id']}").json()
        assert data["diffs"]
        assert all("before" not in d for d in data["diffs"])
        assert all(d["change"] == "added" for d in data["diffs"])

    def test_missing_event(self, client):
        resp = client.get("/api/v1/diff/missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"


class TestRestore:
    def test_restore(self, client, prompt):
        event = _latest_event(client, prompt["id"])
        resp = client.post(f"/api/v1/restore/{event['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["restored"] is True
        assert data["forced"] is False
        assert data["restored_from_event"] == event["id"]
        assert data["entity"]["title"] == "A"

    def test_conflict_then_force(self, client, prompt):
        event = _latest_event(client, prompt["id"])
        client.patch(f"/api/v1/prompts/{prompt['id']}", json={"status": "ready"})

        resp = client.post(f"/api/v1/restore/{event['id']}", json={"force": False})
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "conflict"
        assert body["entity_id"] == prompt["id"]
        assert "status" in {c["field"] for c in body["conflicts"]}

        resp = client.post(f"/api/v1/restore/{event['id']}", json={"force": True})
        assert resp.status_code == 200
        assert resp.json()["forced"] is True
        assert resp.json()["entity"]["status"] == "draft"

    def test_create_event_is_invalid(self, client, prompt):
        resp = client.get("/api/v1/logs", params={"entity_type": "prompt", "entity_id": prompt["id"]})
        create_event = resp.json()["logs"][-1]
        resp = client.post(f"/api/v1/restore/{create_event['id']}")
        assert resp.status_code == 400

    def test_missing_event(self, client):
        assert client.post("/api/v1/restore/missing").status_code == 404

    def test_permanently_deleted_entity(self, client, prompt):
        event = _latest_event(client, prompt["id"])
        client.delete(f"/api/v1/prompts/{prompt['id']}")
        client.post(f"/api/v1/prompts/{prompt['id']}/permanent-delete")
        resp = client.post(f"/api/v1/restore/{event['id']}")
        assert resp.status_code == 404


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_request_id_header(client):
    resp = client.get("/", headers={"x-request-id": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"
