"""
Tests for self-validation of generated workflows against the bundled schema.
"""

import pytest

from repo_agents.errors import Severity, Stage
from repo_agents.generator.schema_check import validate_workflow_data, validate_workflow_yaml


@pytest.fixture
def workflow():
    return {
        "name": "agent-issue-triage",
        "on": {"issues": {"types": ["opened"]}, "workflow_dispatch": None},
        "permissions": {"contents": "read"},
        "jobs": {
            "run-agent": {
                "runs-on": "ubuntu-latest",
                "steps": [
                    {"name": "Checkout repository", "uses": "actions/checkout@v4"},
                    {"name": "Run", "run": "echo hello\n"},
                ],
            }
        },
    }


class TestValidateWorkflowData:
    def test_valid_document(self, workflow):
        assert validate_workflow_data(workflow) == []

    def test_missing_jobs(self, workflow):
        del workflow["jobs"]
        errors = validate_workflow_data(workflow)
        assert [e.field for e in errors] == ["workflow"]
        assert "'jobs' is a required property" in errors[0].message

    def test_step_with_uses_and_run(self, workflow):
        workflow["jobs"]["run-agent"]["steps"][0]["run"] = "echo both"
        errors = validate_workflow_data(workflow)
        assert [e.field for e in errors] == ["jobs.run-agent.steps.0"]

    def test_unknown_permission_level(self, workflow):
        workflow["permissions"]["contents"] = "admin"
        assert [e.field for e in validate_workflow_data(workflow)] == ["permissions"]

    def test_findings_are_generation_errors(self, workflow):
        workflow["jobs"]["run-agent"]["needs"] = "not a job id"
        errors = validate_workflow_data(workflow)
        assert errors
        assert all(e.stage == Stage.GENERATION for e in errors)
        assert all(e.severity == Severity.ERROR for e in errors)


class TestValidateWorkflowYaml:
    def test_on_key_is_not_a_boolean(self):
        text = (
            "name: x\n"
            "on:\n"
            "  workflow_dispatch:\n"
            "jobs:\n"
            "  a:\n"
            "    runs-on: ubuntu-latest\n"
            "    steps:\n"
            "      - run: echo hi\n"
        )
        assert validate_workflow_yaml(text) == []

    def test_unparseable_yaml(self):
        errors = validate_workflow_yaml("name: [unclosed\n")
        assert len(errors) == 1
        assert errors[0].field == "workflow"
        assert errors[0].message.startswith("Generated YAML does not parse")
