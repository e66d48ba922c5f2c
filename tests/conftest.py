"""
Test fixtures and utilities for the agent definition compiler tests.

This module provides reusable fixtures for testing the compiler, including
definition texts, temporary agent directories, a resolved compiler config and
an API test client, plus helpers shared by the test modules.
"""

# Filter gherkin deprecation warning before any imports trigger it
import warnings
warnings.filterwarnings(
    "ignore",
    message="'maxsplit' is passed as positional argument",
    category=DeprecationWarning,
)

import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from repo_agents.config import CompilerConfig, reset_config
from repo_agents.errors import ValidationError
from repo_agents.parser import AgentDefinition, load_yaml, parse_content

# ============================================================================
# Definition Texts
# ============================================================================

MINIMAL_DEFINITION = """---
name: Issue Triage
on:
  issues:
    types: [opened]
---

Triage new issues.
"""

FULL_DEFINITION = """---
name: Issue Triage
on:
  issues:
    types: [opened, reopened]
  schedule:
    - cron: "0 9 * * 1"
permissions:
  issues: write
  contents: read
outputs:
  add-comment: { max: 1 }
  add-label: true
trigger-labels: [triage]
allowed-users: [octocat]
rate-limit-minutes: 10
---

You are an issue triage agent. Label the issue and leave a short comment.
"""

BLUEPRINT_TEMPLATE = """---
blueprint:
  name: labeler
  version: 1.2.0
  description: Labels issues by area
  parameters:
    - name: area
      type: string
      required: true
    - name: max_labels
      type: number
      default: 3
name: "{{ parameters.area }} Labeler"
on:
  issues:
    types: [opened]
permissions:
  issues: write
outputs:
  add-label: { max: 1 }
---

Label issues about {{ parameters.area }}. Use at most {{ parameters.max_labels }} labels.
"""


def definition_text(header: str, body: str = "Do the work.") -> str:
    """Wrap a YAML header block into a definition file."""
    return f"---\n{header.strip()}\n---\n\n{body}\n"


def parse_definition(content: str, source: Optional[str] = None) -> AgentDefinition:
    """Parse a definition and fail the test if it does not validate."""
    result = parse_content(content, source=source)
    assert result.ok, [e.format() for e in result.errors]
    return result.definition


def write_agent(agents_dir: Path, filename: str, content: str) -> Path:
    agents_dir.mkdir(parents=True, exist_ok=True)
    path = agents_dir / filename
    path.write_text(content, encoding="utf-8")
    return path


def load_workflow(text: str) -> Dict[str, Any]:
    """Parse generated workflow YAML the way the CI platform reads it."""
    return load_yaml(text)


# ============================================================================
# Assertion Helpers
# ============================================================================


def fields_of(errors: List[ValidationError]) -> List[str]:
    return [e.field for e in errors]


def assert_has_error(errors: List[ValidationError], field: str, fragment: str = "") -> ValidationError:
    """Assert an error-severity finding exists for ``field`` whose message contains ``fragment``."""
    for finding in errors:
        if finding.field == field and finding.is_error and fragment in finding.message:
            return finding
    raise AssertionError(
        f"No error for field '{field}' containing '{fragment}' in: {[e.format() for e in errors]}"
    )


def step_by_name(job: Dict[str, Any], name: str) -> Dict[str, Any]:
    for step in job["steps"]:
        if step.get("name") == name:
            return step
    raise AssertionError(f"No step named '{name}' in {[s.get('name') for s in job['steps']]}")


requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")


def assert_bash_syntax(script: str) -> None:
    """Assert bash parses ``script`` without executing it (``bash -n``)."""
    result = subprocess.run(["bash", "-n"], input=script, capture_output=True, text=True)
    assert result.returncode == 0, result.stderr


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Every test starts from packaged defaults with no REPO_AGENTS_* overrides."""
    for name in (
        "REPO_AGENTS_RUNNER",
        "REPO_AGENTS_AGENTS_DIR",
        "REPO_AGENTS_WORKFLOWS_DIR",
        "REPO_AGENTS_CATALOG_DIR",
        "REPO_AGENTS_STRICT",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> CompilerConfig:
    return CompilerConfig()


@pytest.fixture
def minimal_definition() -> AgentDefinition:
    return parse_definition(MINIMAL_DEFINITION, source="issue-triage.md")


@pytest.fixture
def full_definition() -> AgentDefinition:
    return parse_definition(FULL_DEFINITION, source="issue-triage.md")


@pytest.fixture
def agents_dir(tmp_path) -> Path:
    """
    Create a temporary agents directory with two valid definitions.

    Returns a Path to .github/agents under a temporary repository root.
    """
    directory = tmp_path / ".github" / "agents"
    write_agent(directory, "issue-triage.md", FULL_DEFINITION)
    write_agent(
        directory,
        "nightly-report.md",
        definition_text(
            """
name: Nightly Report
on:
  schedule:
    - cron: "0 2 * * *"
""",
            "Summarize yesterday's activity.",
        ),
    )
    return directory


@pytest.fixture
def client():
    """FastAPI test client for the compiler API."""
    from repo_agents.api.server import create_app

    return TestClient(create_app(enable_cors=False))
