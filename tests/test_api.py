"""
Tests for API endpoints.
"""
import json

import pytest

from conftest import USER_ID
from services.frame_splitter import PROCESSING_START_MARKER
from services.generation_service import COULD_NOT_CONNECT_MESSAGE


def ndjson(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


class TestHealthEndpoint:

    def test_health_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_lists_endpoints(self, client):
        data = client.get("/").json()
        assert data["min_credits_to_generate"] == 5
        assert "chat" in data["endpoints"]


class TestInsufficientCredits:
    """A balance below the minimum is rejected before the model is called."""

    def test_project_generation_rejected(self, client, supabase, project, generator):
        supabase.profile()["credits"] = 3
        response = client.post(f"/api/projects/{project['id']}/generate", json={"message": "A login flow"})

        assert response.status_code == 402
        assert generator.calls == []
        assert supabase.rows("frames") == []
        assert supabase.rows("messages") == []

    def test_chat_rejected(self, client, supabase, generator):
        supabase.profile()["credits"] = 4
        response = client.post("/api/chat", json={"message": "A login flow"})

        assert response.status_code == 402
        assert response.json()["detail"] == "Insufficient credits"
        assert generator.calls == []


class TestChatEndpoint:

    def test_streams_markup_with_markers(self, client, supabase):
        response = client.post("/api/chat", json={"message": "A login flow", "deviceMode": "desktop"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text.startswith(PROCESSING_START_MARKER)
        assert "<div>Login</div>" in response.text
        assert response.text.endswith("<!-- CREDITS_DEDUCTED: 2 -->")
        assert supabase.profile()["credits"] == 98

    def test_edit_request_is_forwarded(self, client, generator):
        client.post("/api/chat", json={"message": "Darker", "currentDesign": "<div>A</div>"})
        request = generator.calls[0]["request"]
        assert request.is_edit
        assert request.current_design == "<div>A</div>"

    def test_empty_message(self, client):
        response = client.post("/api/chat", json={"message": "   "})
        assert response.status_code == 400

    def test_upstream_unreachable(self, client, supabase, generator):
        generator.open_error = ConnectionError("dns failure")
        response = client.post("/api/chat", json={"message": "A login flow"})

        assert response.status_code == 502
        assert response.json()["detail"] == COULD_NOT_CONNECT_MESSAGE
        assert supabase.profile()["credits"] == 100


class TestProjectGeneration:

    def test_streams_ndjson_events(self, client, supabase, project):
        response = client.post(f"/api/projects/{project['id']}/generate", json={"message": "A login flow"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = ndjson(response)
        assert events[0]["type"] == "frames"
        assert events[-1]["type"] == "done"
        assert {"type": "credits", "amount": 2} in events

        final_frames = [e for e in events if e["type"] == "frames"][-1]["frames"]
        assert [f["content"] for f in final_frames] == ["<div>Login</div>", "<div>Home</div>"]
        assert len(supabase.rows("frames")) == 2

    def test_frame_id_loads_the_stored_design(self, client, supabase, project, generator):
        supabase.tables["frames"] = [{
            "id": "frame-a", "project_id": project["id"], "content": "<div>A</div>",
            "type": "mobile", "created_at": "2025-01-01T00:00:00",
        }]
        generator.chunks = ["```html\n<div>B</div>\n```"]
        response = client.post(
            f"/api/projects/{project['id']}/generate",
            json={"message": "Make it say B", "frameId": "frame-a", "currentDesign": "stale"},
        )

        assert response.status_code == 200
        assert generator.calls[0]["request"].current_design == "<div>A</div>"
        assert supabase.rows("frames")[0]["content"] == "<div>B</div>"
        assert len(supabase.rows("frames")) == 1

    def test_history_excludes_system_messages(self, client, supabase, project, generator):
        supabase.tables["messages"] = [
            {"id": "m1", "project_id": project["id"], "role": "user", "content": "first", "created_at": "2025-01-01T00:00:01"},
            {"id": "m2", "project_id": project["id"], "role": "system", "content": "status", "created_at": "2025-01-01T00:00:02"},
        ]
        client.post(f"/api/projects/{project['id']}/generate", json={"message": "again"})
        history = generator.calls[0]["history"]
        assert [m.content for m in history] == ["first"]

    def test_unknown_project(self, client, project):
        response = client.post("/api/projects/nope/generate", json={"message": "A login flow"})
        assert response.status_code == 404

    def test_unknown_frame(self, client, project):
        response = client.post(f"/api/projects/{project['id']}/generate", json={"message": "x", "frameId": "nope"})
        assert response.status_code == 404


class TestProjects:

    def test_first_project_default_name(self, client):
        response = client.post("/api/projects", json={})
        assert response.status_code == 201
        assert response.json()["name"] == "My First App"

    def test_next_project_is_numbered(self, client, project):
        response = client.post("/api/projects", json={})
        assert response.json()["name"] == "App 2"

    def test_list_and_rename(self, client, project):
        assert [p["id"] for p in client.get("/api/projects").json()] == [project["id"]]

        response = client.patch(f"/api/projects/{project['id']}", json={"name": "Banking"})
        assert response.status_code == 200
        assert response.json()["name"] == "Banking"

    def test_delete_removes_children(self, client, supabase, project):
        supabase.tables["messages"] = [{"id": "m1", "project_id": project["id"], "role": "user", "content": "hi"}]
        supabase.tables["frames"] = [{"id": "f1", "project_id": project["id"], "content": "", "type": "mobile"}]

        response = client.delete(f"/api/projects/{project['id']}")
        assert response.status_code == 204
        assert supabase.rows("projects") == []
        assert supabase.rows("messages") == []
        assert supabase.rows("frames") == []

    def test_other_users_project_is_hidden(self, client, supabase):
        supabase.tables["projects"] = [{"id": "p2", "user_id": "someone-else", "name": "Theirs"}]
        assert client.get("/api/projects/p2/messages").status_code == 404

    def test_sync_frames_replaces_the_set(self, client, supabase, project):
        supabase.tables["frames"] = [
            {"id": "f1", "project_id": project["id"], "content": "one", "type": "mobile", "created_at": "2025-01-01T00:00:00"},
            {"id": "f2", "project_id": project["id"], "content": "two", "type": "mobile", "created_at": "2025-01-01T00:00:01"},
        ]
        response = client.put(f"/api/projects/{project['id']}/frames", json={"frames": [
            {"id": "f2", "content": "two again", "type": "mobile", "created_at": "2025-01-01T00:00:01"},
            {"id": "f3", "content": "three", "type": "desktop", "created_at": "2025-01-01T00:00:02"},
        ]})

        assert response.status_code == 200
        stored = {row["id"]: row["content"] for row in supabase.rows("frames")}
        assert stored == {"f2": "two again", "f3": "three"}

        listed = client.get(f"/api/projects/{project['id']}/frames").json()["frames"]
        assert [f["id"] for f in listed] == ["f2", "f3"]

    def test_sync_cannot_take_over_another_projects_frame(self, client, supabase, project):
        theirs = {"id": "1700000000000", "project_id": "other-project", "content": "<div>Theirs</div>",
                  "type": "mobile", "created_at": "2025-01-01T00:00:00"}
        supabase.tables["projects"].append({"id": "other-project", "user_id": "someone-else", "name": "Theirs"})
        supabase.tables["frames"] = [dict(theirs)]

        response = client.put(f"/api/projects/{project['id']}/frames", json={"frames": [
            {"id": "1700000000000", "content": "replaced", "type": "mobile", "created_at": "2025-01-01T00:00:00"},
        ]})

        assert response.status_code == 409
        assert supabase.rows("frames") == [theirs]
        assert all(name != "sync_project_frames" for name, _ in supabase.rpc_calls)

    def test_sync_failure(self, client, supabase, project):
        supabase.failing_rpcs.add("sync_project_frames")
        response = client.put(f"/api/projects/{project['id']}/frames", json={"frames": []})
        assert response.status_code == 500


class TestUsers:

    def test_profile(self, client):
        data = client.get("/users/me").json()
        assert data["id"] == USER_ID
        assert data["tier"] == "free"

    @pytest.mark.parametrize("credits, can_generate", [(5, True), (4, False)])
    def test_credit_balance(self, client, supabase, credits, can_generate):
        supabase.profile()["credits"] = credits
        data = client.get("/users/credits").json()
        assert data == {"credits": credits, "min_credits_to_generate": 5, "can_generate": can_generate}

    def test_delete_account(self, client, supabase, project):
        supabase.tables["frames"] = [{"id": "f1", "project_id": project["id"], "content": ""}]
        response = client.delete("/users/me")

        assert response.status_code == 200
        assert supabase.auth.admin.deleted_users == [USER_ID]
        assert supabase.rows("frames") == []
        assert supabase.rows("projects") == []
        assert supabase.rows("profiles") == []
