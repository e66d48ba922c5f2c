"""
Tests for the compiler REST API.

Validation and compilation failures are ordinary 200 responses with
``status: FAIL``; only a malformed request is an HTTP error.
"""

from conftest import BLUEPRINT_TEMPLATE, FULL_DEFINITION, MINIMAL_DEFINITION, definition_text, load_workflow

BROKEN = definition_text("name: Broken\non: {}")
EMPTY_BODY = definition_text("name: Quiet\non:\n  issues:", "")


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert data["outputs"] == 24
        assert data["providers"] == ["claude-code", "opencode"]
        assert data["timestamp"]


# =============================================================================
# /api/validate
# =============================================================================


class TestValidate:
    def test_valid(self, client):
        response = client.post("/api/validate", json={"content": MINIMAL_DEFINITION})
        assert response.status_code == 200
        assert response.json() == {
            "status": "PASS",
            "errors": [],
            "warnings": [],
            "error_count": 0,
            "warning_count": 0,
        }

    def test_invalid_is_not_an_http_error(self, client):
        response = client.post("/api/validate", json={"content": BROKEN})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "FAIL"
        assert data["errors"][0] == {
            "field": "on",
            "message": "At least one trigger must be specified",
            "severity": "error",
            "stage": "business-rule",
        }

    def test_strict(self, client):
        relaxed = client.post("/api/validate", json={"content": EMPTY_BODY}).json()
        assert relaxed["status"] == "PASS"
        assert relaxed["warning_count"] == 1
        strict = client.post("/api/validate", json={"content": EMPTY_BODY, "strict": True}).json()
        assert strict["status"] == "FAIL"
        assert strict["error_count"] == 1

    def test_missing_content(self, client):
        assert client.post("/api/validate", json={}).status_code == 422


# =============================================================================
# /api/compile
# =============================================================================


class TestCompile:
    def test_compile(self, client):
        response = client.post("/api/compile", json={"content": FULL_DEFINITION, "source": "issue-triage.md"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PASS"
        assert data["agent"] == "Issue Triage"
        assert data["workflow_file"] == "agent-issue-triage.yml"
        assert "execute-outputs" in load_workflow(data["yaml"])["jobs"]

    def test_compile_failure(self, client):
        data = client.post("/api/compile", json={"content": BROKEN}).json()
        assert data["status"] == "FAIL"
        assert data["yaml"] is None
        assert data["agent"] is None

    def test_blueprint_is_skipped(self, client):
        data = client.post("/api/compile", json={"content": BLUEPRINT_TEMPLATE}).json()
        assert data["status"] == "SKIPPED"
        assert data["yaml"] is None


# =============================================================================
# /api/compile/dispatcher
# =============================================================================


class TestCompileDispatcher:
    """Tests for compiling a definition set with its dispatcher."""

    def test_dispatcher(self, client):
        nightly = definition_text("name: Nightly Report\non:\n  schedule:\n    - cron: '0 2 * * *'")
        response = client.post(
            "/api/compile/dispatcher",
            json={"definitions": [{"content": FULL_DEFINITION, "source": "issue-triage.md"}, {"content": nightly}]},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PASS"
        assert data["dispatcher_file"] == "agent-dispatcher.yml"
        assert set(data["workflows"]) == {"agent-issue-triage.yml", "agent-nightly-report.yml"}
        assert data["results"][1]["source"] == "definition-2.md"
        dispatcher = load_workflow(data["yaml"])
        assert set(dispatcher["on"]) == {"issues", "schedule", "workflow_dispatch"}

    def test_duplicate_names(self, client):
        response = client.post(
            "/api/compile/dispatcher",
            json={"definitions": [{"content": MINIMAL_DEFINITION}, {"content": MINIMAL_DEFINITION}]},
        )
        data = response.json()
        assert data["status"] == "FAIL"
        assert data["results"][1]["errors"][0]["field"] == "name"
        assert list(data["workflows"]) == ["agent-issue-triage.yml"]

    def test_empty_definition_list(self, client):
        response = client.post("/api/compile/dispatcher", json={"definitions": []})
        assert response.status_code == 400
        assert response.json()["detail"] == "At least one definition is required"
