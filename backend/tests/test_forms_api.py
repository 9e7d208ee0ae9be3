"""
API Tests for the Reference Forms Router

Covers:
- Create / fetch / partial update
- Publish cut: version bump, stable share slug, version history
- Visual upload validation and storage

Usage:
    cd backend && pytest tests/test_forms_api.py -v
"""

import pytest
import sys
import os
import tempfile

from fastapi.testclient import TestClient

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from convoform.deps import get_form_store, get_visual_storage
from convoform.form_store import InMemoryFormStore
from convoform.main import app
from convoform.storage import VisualStorage


@pytest.fixture
def store():
    return InMemoryFormStore()


@pytest.fixture
def storage_root():
    with tempfile.TemporaryDirectory() as root:
        yield root


@pytest.fixture
def client(store, storage_root):
    storage = VisualStorage(root=storage_root, base_url="http://cdn.test/visuals", max_size_bytes=1024)
    app.dependency_overrides[get_form_store] = lambda: store
    app.dependency_overrides[get_visual_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_form_store, None)
        app.dependency_overrides.pop(get_visual_storage, None)


def create_form(client, name="Customer Survey"):
    response = client.post("/api/forms", json={"name": name})
    assert response.status_code == 201
    return response.json()


# ============================================================================
# CRUD
# ============================================================================

class TestFormsCrud:

    def test_create_has_default_document(self, client):
        form = create_form(client)

        assert form["status"] == "draft"
        assert form["version"] == 0
        assert form["slug"] is None
        assert form["current_config"]["questions"] == []
        assert form["current_config"]["welcomeEnabled"] is True

    def test_blank_name_rejected(self, client):
        assert client.post("/api/forms", json={"name": "   "}).status_code == 422

    def test_get(self, client):
        form = create_form(client)
        response = client.get(f"/api/forms/{form['id']}")

        assert response.status_code == 200
        assert response.json()["name"] == "Customer Survey"

    def test_get_unknown(self, client):
        response = client.get("/api/forms/missing")

        assert response.status_code == 404
        assert response.json()["detail"] == "Form not found"

    def test_patch_name_and_config(self, client):
        form = create_form(client)
        config = {"questions": [{"id": "q_1", "label": "Email", "type": "email"}]}

        response = client.patch(f"/api/forms/{form['id']}", json={"name": "Renamed", "current_config": config})

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["current_config"] == config

    def test_patch_without_fields(self, client):
        form = create_form(client)
        response = client.patch(f"/api/forms/{form['id']}", json={"unknown": 1})

        assert response.status_code == 400
        assert response.json()["detail"] == "No valid fields to update"

    def test_patch_invalid_status(self, client):
        form = create_form(client)
        assert client.patch(f"/api/forms/{form['id']}", json={"status": "archived"}).status_code == 422

    def test_patch_unknown(self, client):
        assert client.patch("/api/forms/missing", json={"name": "x"}).status_code == 404


# ============================================================================
# PUBLISH
# ============================================================================

class TestPublish:

    def test_first_publish(self, client):
        form = create_form(client)
        client.patch(f"/api/forms/{form['id']}", json={"current_config": {"questions": [], "endMessage": "Bye"}})

        response = client.post(f"/api/forms/{form['id']}/publish")
        published = response.json()

        assert response.status_code == 200
        assert published["status"] == "live"
        assert published["version"] == 1
        assert published["is_published"] is True
        assert published["published_config"] == {"questions": [], "endMessage": "Bye"}
        assert published["slug"].startswith("customer-survey-")

    def test_republish_keeps_slug(self, client):
        form = create_form(client)
        first = client.post(f"/api/forms/{form['id']}/publish").json()
        second = client.post(f"/api/forms/{form['id']}/publish").json()

        assert second["version"] == 2
        assert second["slug"] == first["slug"]

    def test_published_snapshot_is_independent_of_later_drafts(self, client):
        form = create_form(client)
        client.post(f"/api/forms/{form['id']}/publish")
        client.patch(f"/api/forms/{form['id']}", json={"current_config": {"questions": [{"id": "x"}]}})

        record = client.get(f"/api/forms/{form['id']}").json()
        assert record["published_config"]["questions"] == []

    def test_versions(self, client):
        form = create_form(client)
        client.post(f"/api/forms/{form['id']}/publish")
        client.post(f"/api/forms/{form['id']}/publish")

        history = client.get(f"/api/forms/{form['id']}/versions").json()

        assert history["total"] == 2
        assert [v["version_number"] for v in history["versions"]] == [1, 2]

    def test_publish_unknown(self, client):
        assert client.post("/api/forms/missing/publish").status_code == 404


# ============================================================================
# VISUAL UPLOAD
# ============================================================================

class TestVisualUpload:

    def test_upload_image(self, client, storage_root):
        form = create_form(client)
        response = client.post(
            f"/api/forms/{form['id']}/visual",
            files={"file": ("beach.PNG", b"\x89PNG data", "image/png")},
            data={"kind": "image"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["kind"] == "image"
        assert body["storagePath"].startswith(f"{form['id']}/")
        assert body["storagePath"].endswith(".png")
        assert body["url"] == f"http://cdn.test/visuals/{body['storagePath']}"
        with open(os.path.join(storage_root, body["storagePath"]), "rb") as f:
            assert f.read() == b"\x89PNG data"

    def test_wrong_type_for_kind(self, client):
        form = create_form(client)
        response = client.post(
            f"/api/forms/{form['id']}/visual",
            files={"file": ("clip.mp4", b"data", "video/mp4")},
            data={"kind": "image"},
        )

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["detail"]

    def test_unknown_kind(self, client):
        form = create_form(client)
        response = client.post(
            f"/api/forms/{form['id']}/visual",
            files={"file": ("a.png", b"data", "image/png")},
            data={"kind": "audio"},
        )
        assert response.status_code == 400

    def test_oversize(self, client):
        form = create_form(client)
        response = client.post(
            f"/api/forms/{form['id']}/visual",
            files={"file": ("big.jpg", b"x" * 2048, "image/jpeg")},
            data={"kind": "image"},
        )

        assert response.status_code == 400
        assert "exceeds maximum" in response.json()["detail"]

    def test_unknown_form(self, client):
        response = client.post(
            "/api/forms/missing/visual",
            files={"file": ("a.png", b"data", "image/png")},
            data={"kind": "image"},
        )
        assert response.status_code == 404


# ============================================================================
# HEALTH
# ============================================================================

class TestHealth:

    def test_reports_missing_ai_credentials(self, client):
        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert "ai_wording" in body["degraded"]
        assert "forms" in body["capabilities"]
