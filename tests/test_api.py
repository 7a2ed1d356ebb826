"""
Tests for the HTTP API.
"""
import os
import shutil
import tempfile
from unittest.mock import Mock

from fastapi.testclient import TestClient

from memorybook.api.app import create_app
from memorybook.config.loader import AppConfig, StorageConfig
from memorybook.core.errors import ProviderError, RenderError, StorageReadError
from memorybook.core.pipeline import StoryArtifact
from memorybook.core.quota import current_period_start
from memorybook.storage.repository import SQLiteStore, initialize_schema


class TestGenerateEndpoint:
    """Test POST /generate."""

    def setup_method(self):
        """Create an app over a temporary database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.store = SQLiteStore(self.db_path)
        self.config = AppConfig(storage=StorageConfig(db_path=self.db_path))
        self.app = create_app(self.config, store=self.store)
        self.client = TestClient(self.app)
        self.token = self.store.issue_token("user-1")
        self.headers = {"Authorization": f"Bearer {self.token}"}

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_credential_is_401(self):
        """Requests without a bearer token are rejected."""
        response = self.client.post("/generate?childId=7")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "details": "no_token"}

    def test_invalid_credential_is_401(self):
        """Unknown tokens are rejected."""
        response = self.client.post("/generate?childId=7",
                                    headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["details"] == "invalid_token"

    def test_missing_child_id_is_400(self):
        """childId is required."""
        response = self.client.post("/generate", headers=self.headers)

        assert response.status_code == 400
        assert response.json() == {"error": "childId required"}

    def test_non_numeric_child_id_is_400(self):
        """A non-numeric childId counts as missing."""
        response = self.client.post("/generate?childId=abc", headers=self.headers)

        assert response.status_code == 400

    def test_fairy_scenario_without_memories(self):
        """childId=7, no memories, fairy theme, no pdf."""
        response = self.client.post(
            "/generate?childId=7&theme=fairy&pdf=false", headers=self.headers)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"storyHtml", "generatedAt"}
        assert "✨ The Adventures of Your child ✨" in body["storyHtml"]
        assert "Sample content for Your child." in body["storyHtml"]

    def test_unknown_theme_renders_classic(self):
        """Unknown theme names fall back to classic."""
        response = self.client.post("/generate?childId=7&theme=space&interval=weekly",
                                    headers=self.headers)

        assert response.status_code == 200
        assert "Your child's weekly Story" in response.json()["storyHtml"]

    def test_quota_exceeded_is_429(self):
        """A user at quota gets the quota message."""
        period = current_period_start()
        for _ in range(5):
            self.store.reserve_usage("user-1", period, quota=5)

        response = self.client.post("/generate?childId=7", headers=self.headers)

        assert response.status_code == 429
        assert response.json() == {
            "error": "quota_exceeded",
            "message": "Monthly quota of 5 reached",
        }

    def test_successful_calls_are_counted(self):
        """Each successful generation is visible on /usage."""
        for _ in range(2):
            assert self.client.post("/generate?childId=7", headers=self.headers).status_code == 200

        response = self.client.get("/usage", headers=self.headers)

        assert response.json()["calls"] == 2
        assert response.json()["quota"] == 5

    def test_pdf_true_without_worker_has_no_pdf_url(self):
        """No delegate configured means no pdfUrl even with pdf=true."""
        response = self.client.post("/generate?childId=7&pdf=true", headers=self.headers)

        assert response.status_code == 200
        assert "pdfUrl" not in response.json()


class TestGenerateErrors:
    """Test error payloads from pipeline failures."""

    def setup_method(self):
        """Create an app with a mocked pipeline."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.store = SQLiteStore(self.db_path)
        self.pipeline = Mock()
        self.app = create_app(AppConfig(storage=StorageConfig(db_path=self.db_path)),
                              store=self.store, pipeline=self.pipeline)
        self.client = TestClient(self.app)
        self.headers = {"Authorization": f"Bearer {self.store.issue_token('user-1')}"}

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_pdf_url_included(self):
        """Delegated generations return pdfUrl."""
        self.pipeline.generate.return_value = StoryArtifact(
            story_html="<html></html>", generated_at="2026-10-19T12:00:00.000Z",
            pdf_url="https://files/mia.pdf")

        response = self.client.post("/generate?childId=1&pdf=true&theme=adventure",
                                    headers=self.headers)

        assert response.status_code == 200
        assert response.json() == {
            "storyHtml": "<html></html>",
            "pdfUrl": "https://files/mia.pdf",
            "generatedAt": "2026-10-19T12:00:00.000Z",
        }
        user_id, request = self.pipeline.generate.call_args[0]
        assert user_id == "user-1"
        assert request.child_id == 1
        assert request.pdf is True
        assert request.theme == "adventure"
        assert request.interval == "monthly"

    def test_shutdown_closes_pipeline(self):
        """Stopping the app releases the pipeline's HTTP client."""
        with TestClient(self.app) as client:
            assert client.get("/health").status_code == 200

        self.pipeline.close.assert_called_once_with()

    def test_only_literal_true_enables_pdf(self):
        """pdf=1 or pdf=yes do not request a PDF."""
        self.pipeline.generate.return_value = StoryArtifact(
            story_html="<html></html>", generated_at="2026-10-19T12:00:00.000Z")

        self.client.post("/generate?childId=1&pdf=1", headers=self.headers)

        assert self.pipeline.generate.call_args[0][1].pdf is False

    def test_usage_read_failed_is_500(self):
        """Ledger read failures map to usage_read_failed."""
        self.pipeline.generate.side_effect = StorageReadError(
            "down", code="usage_read_failed", details="locked")

        response = self.client.post("/generate?childId=1", headers=self.headers)

        assert response.status_code == 500
        assert response.json() == {"error": "usage_read_failed", "details": "locked"}

    def test_ai_failed_is_500(self):
        """Provider failures map to ai_failed with upstream details."""
        self.pipeline.generate.side_effect = ProviderError(
            "failed", details={"error": {"message": "invalid key"}})

        response = self.client.post("/generate?childId=1", headers=self.headers)

        assert response.status_code == 500
        assert response.json() == {"error": "ai_failed",
                                   "details": {"error": {"message": "invalid key"}}}

    def test_worker_failed_is_500(self):
        """Delegate failures map to worker_failed."""
        self.pipeline.generate.side_effect = RenderError(
            "failed", details={"error": "render_failed"})

        response = self.client.post("/generate?childId=1&pdf=true", headers=self.headers)

        assert response.status_code == 500
        assert response.json()["error"] == "worker_failed"


class TestMemoryEndpoints:
    """Test children and memories endpoints."""

    def setup_method(self):
        """Create an app over a temporary database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.store = SQLiteStore(self.db_path)
        self.client = TestClient(create_app(AppConfig(storage=StorageConfig(db_path=self.db_path)),
                                            store=self.store))
        self.headers = {"Authorization": f"Bearer {self.store.issue_token('user-1')}"}
        self.other_headers = {"Authorization": f"Bearer {self.store.issue_token('user-2')}"}

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _create_child(self, name="Mia"):
        response = self.client.post("/children", json={"name": name}, headers=self.headers)
        assert response.status_code == 201
        return response.json()

    def test_create_child(self):
        """Children are created for the caller."""
        child = self._create_child()
        assert child == {"id": 1, "name": "Mia", "user_id": "user-1"}

    def test_create_child_requires_name(self):
        """A blank name is rejected."""
        response = self.client.post("/children", json={"name": "  "}, headers=self.headers)
        assert response.status_code == 400

    def test_create_and_list_memories(self):
        """Memories are created and listed chronologically."""
        child = self._create_child()
        for note, taken_at in (("second", "2026-02-01"), ("first", "2026-01-01")):
            response = self.client.post(
                "/memories",
                json={"childId": child["id"], "note": note, "takenAt": taken_at},
                headers=self.headers,
            )
            assert response.status_code == 201

        response = self.client.get(f"/memories?childId={child['id']}", headers=self.headers)

        assert response.status_code == 200
        assert [m["note"] for m in response.json()] == ["first", "second"]
        assert response.json()[0]["taken_at"] == "2026-01-01"

    def test_memories_require_child_id(self):
        """childId is required for both create and list."""
        assert self.client.post("/memories", json={"note": "x"},
                                headers=self.headers).status_code == 400
        assert self.client.get("/memories", headers=self.headers).status_code == 400

    def test_non_numeric_child_id_in_body_is_400(self):
        """A non-numeric childId in the body gets the same 400 as the query path."""
        response = self.client.post("/memories", json={"childId": "abc", "note": "x"},
                                    headers=self.headers)

        assert response.status_code == 400
        assert response.json() == {"error": "childId required"}

    def test_numeric_string_child_id_in_body_accepted(self):
        """A numeric string childId is read as the number."""
        child = self._create_child()

        response = self.client.post("/memories", json={"childId": str(child["id"]), "note": "x"},
                                    headers=self.headers)

        assert response.status_code == 201
        assert response.json()["child_id"] == child["id"]

    def test_memories_of_other_users_hidden(self):
        """Another user's child is not found."""
        child = self._create_child()

        response = self.client.get(f"/memories?childId={child['id']}", headers=self.other_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "child_not_found"}

    def test_memories_require_auth(self):
        """Memory endpoints need a bearer token."""
        assert self.client.get("/memories?childId=1").status_code == 401

    def test_health(self):
        """Health endpoint needs no auth."""
        assert self.client.get("/health").json() == {"status": "ok"}
