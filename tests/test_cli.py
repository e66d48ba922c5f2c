"""
Tests for the repo-agents command line.

These tests verify:
1. compile writes every workflow and reports per-file results
2. --dry-run prints instead of writing; --json emits a summary
3. validate reports findings and exit codes (0 ok, 1 invalid, 2 fatal)
"""

import json

import pytest

from conftest import definition_text, write_agent
from repo_agents.tools.compile_agents import (
    EXIT_FATAL_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILED,
    build_parser,
    main,
)

EMPTY_BODY = definition_text("name: Quiet\non:\n  issues:", "")


def run(argv):
    """Run the CLI and return its exit code."""
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# =============================================================================
# compile
# =============================================================================


class TestCompileCommand:
    """Tests for `repo-agents compile`."""

    def test_writes_workflows(self, agents_dir, tmp_path, capsys):
        output = tmp_path / "workflows"
        code = run(["compile", "--agents-dir", str(agents_dir), "--output-dir", str(output)])
        out = capsys.readouterr().out
        assert code == EXIT_SUCCESS
        assert sorted(p.name for p in output.iterdir()) == [
            "agent-dispatcher.yml",
            "agent-issue-triage.yml",
            "agent-nightly-report.yml",
        ]
        assert "-> agent-issue-triage.yml" in out
        assert "Wrote 3 workflow file(s)" in out

    def test_dry_run_writes_nothing(self, agents_dir, tmp_path, capsys):
        output = tmp_path / "workflows"
        code = run(["compile", "--agents-dir", str(agents_dir), "--output-dir", str(output), "--dry-run"])
        out = capsys.readouterr().out
        assert code == EXIT_SUCCESS
        assert not output.exists()
        assert "name: agent-issue-triage" in out
        assert "# --- agent-dispatcher.yml ---" in out

    def test_json_summary(self, agents_dir, tmp_path, capsys):
        code = run(["compile", "--agents-dir", str(agents_dir), "--output-dir", str(tmp_path / "w"), "--json"])
        data = json.loads(capsys.readouterr().out)
        assert code == EXIT_SUCCESS
        assert data["status"] == "PASS"
        assert data["compiled"] == 2

    def test_invalid_definition_fails(self, agents_dir, tmp_path, capsys):
        write_agent(agents_dir, "broken.md", definition_text("name: Broken\non: {}"))
        code = run(["compile", "--agents-dir", str(agents_dir), "--output-dir", str(tmp_path / "w")])
        out = capsys.readouterr().out
        assert code == EXIT_VALIDATION_FAILED
        assert "[FAIL] business-rule: on At least one trigger must be specified" in out

    def test_strict(self, tmp_path, capsys):
        agents = tmp_path / "agents"
        write_agent(agents, "quiet.md", EMPTY_BODY)
        args = ["compile", "--agents-dir", str(agents), "--output-dir", str(tmp_path / "w"), "--dry-run"]
        assert run(args) == EXIT_SUCCESS
        assert run(args + ["--strict"]) == EXIT_VALIDATION_FAILED

    def test_no_definitions(self, tmp_path, capsys):
        code = run(["compile", "--agents-dir", str(tmp_path / "empty")])
        assert code == EXIT_FATAL_ERROR
        assert "ERROR: No agent definitions found" in capsys.readouterr().err


# =============================================================================
# validate
# =============================================================================


class TestValidateCommand:
    def test_valid_file(self, agents_dir, capsys):
        code = run(["validate", str(agents_dir / "issue-triage.md")])
        assert code == EXIT_SUCCESS
        assert "✓" in capsys.readouterr().out

    def test_defaults_to_agents_dir(self, agents_dir, monkeypatch, capsys):
        monkeypatch.chdir(agents_dir.parent.parent)
        assert run(["validate"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "issue-triage.md" in out
        assert "nightly-report.md" in out

    def test_json_report(self, tmp_path, capsys):
        path = write_agent(tmp_path, "quiet.md", EMPTY_BODY)
        code = run(["validate", str(path), "--json"])
        data = json.loads(capsys.readouterr().out)
        assert code == EXIT_SUCCESS
        assert data["status"] == "PASS"
        assert data["files"][str(path)]["warning_count"] == 1

    def test_strict_json_report(self, tmp_path, capsys):
        path = write_agent(tmp_path, "quiet.md", EMPTY_BODY)
        code = run(["validate", str(path), "--json", "--strict"])
        data = json.loads(capsys.readouterr().out)
        assert code == EXIT_VALIDATION_FAILED
        assert data["files"][str(path)]["errors"][0]["field"] == "markdown"

    def test_strict_from_environment(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("REPO_AGENTS_STRICT", "true")
        path = write_agent(tmp_path, "quiet.md", EMPTY_BODY)
        assert run(["validate", str(path)]) == EXIT_VALIDATION_FAILED

    def test_missing_file(self, tmp_path, capsys):
        code = run(["validate", str(tmp_path / "absent.md")])
        assert code == EXIT_VALIDATION_FAILED
        assert "Failed to read file" in capsys.readouterr().out


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
