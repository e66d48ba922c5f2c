"""
Tests for the audit-report job.

The audit job always runs, summarizes every upstream result and, only on a
genuine failure, diagnoses it and files or updates a tracking issue.
"""

from conftest import assert_bash_syntax, definition_text, parse_definition, requires_bash
from repo_agents.config import CompilerConfig
from repo_agents.generator.audit import DIAGNOSIS_OUTPUT, audit_job, issue_script, summary_script

UPSTREAM = ["pre-flight", "run-agent"]


def agent(audit: str = ""):
    header = "name: Triage\non:\n  issues:\n"
    if audit:
        header += f"audit:\n{audit}"
    return parse_definition(definition_text(header))


def step_names(job):
    return [step.name for step in job.steps]


# =============================================================================
# Scripts
# =============================================================================


class TestSummaryScript:
    def test_each_upstream_job_is_reported(self):
        script = summary_script(UPSTREAM)
        assert 'echo "| pre-flight | $PRE_FLIGHT_RESULT |"' in script
        assert 'echo "| run-agent | $RUN_AGENT_RESULT |"' in script

    def test_failure_and_cancelled_count_as_failed(self):
        script = summary_script(["run-agent"])
        assert '[ "$RUN_AGENT_RESULT" = "failure" ] || [ "$RUN_AGENT_RESULT" = "cancelled" ]' in script

    def test_rate_limit_is_not_a_failure(self):
        assert "Skipped: rate limited (not a failure)" in summary_script(UPSTREAM)

    def test_outputs(self):
        script = summary_script(UPSTREAM)
        assert 'echo "has-failures=true" >> "$GITHUB_OUTPUT"' in script
        assert "failed-jobs=" in script


class TestIssueScript:
    """Tests for filing or updating the tracking issue."""

    def test_title(self):
        assert 'TITLE="$AGENT_NAME: Agent Execution Failed"' in issue_script(["agent-failure"], [])

    def test_labels_and_assignees(self):
        script = issue_script(["agent-failure", "bot"], ["octocat"])
        assert "--label agent-failure --label bot --assignee octocat" in script
        assert "--state open --label agent-failure \\" in script

    def test_values_are_shell_quoted(self):
        script = issue_script(['a"b`', "$(touch /tmp/pwned)"], ["o'hara"])
        assert "--label 'a\"b`'" in script
        assert "--label '$(touch /tmp/pwned)'" in script
        assert "--assignee 'o'\"'\"'hara'" in script
        assert "--state open --label 'a\"b`' \\" in script

    @requires_bash
    def test_hostile_values_parse(self):
        assert_bash_syntax(issue_script(['a"b`', "$(touch /tmp/pwned)"], ["o'hara"]))

    def test_existing_issue_gets_a_comment(self):
        assert 'gh issue comment "$EXISTING"' in issue_script(["agent-failure"], [])

    def test_diagnosis_is_attached(self):
        assert f"jq -r '.result // empty' {DIAGNOSIS_OUTPUT}" in issue_script([], [])


# =============================================================================
# Job
# =============================================================================


class TestAuditJob:
    def test_runs_always_after_every_job(self, config):
        job = audit_job(agent(), config, UPSTREAM)
        assert job.if_ == "always()"
        assert job.needs == UPSTREAM
        assert job.permissions == {"issues": "write", "contents": "read", "actions": "read"}

    def test_default_steps(self, config):
        names = step_names(audit_job(agent(), config, UPSTREAM))
        assert names[0] == "Summarize job results"
        assert names[-2:] == ["Diagnose failure", "Create or update failure issue"]
        assert "Download agent metrics" in names
        assert "Checkout repository" in names

    def test_failure_steps_are_gated(self, config):
        job = audit_job(agent(), config, UPSTREAM)
        for step in job.steps[1:]:
            assert step.if_ == "steps.summary.outputs.has-failures == 'true'"

    def test_diagnosis_never_fails_the_job(self, config):
        job = audit_job(agent(), config, UPSTREAM)
        diagnose = next(step for step in job.steps if step.id == "diagnose")
        assert diagnose.continue_on_error is True

    def test_upstream_results_in_env(self, config):
        summary = audit_job(agent(), config, UPSTREAM).steps[0]
        assert summary.env["RUN_AGENT_RESULT"] == "${{ needs.run-agent.result }}"

    def test_diagnosis_disabled(self, config):
        names = step_names(audit_job(agent("  diagnose: false"), config, UPSTREAM))
        assert names == ["Summarize job results", "Create or update failure issue"]

    def test_issue_creation_disabled(self, config):
        names = step_names(audit_job(agent("  create-issues: false"), config, UPSTREAM))
        assert "Create or update failure issue" not in names

    def test_labels_default_to_config(self):
        config = CompilerConfig(audit_labels=("bot-failure",))
        job = audit_job(agent(), config, UPSTREAM)
        assert "--label bot-failure" in job.steps[-1].run

    def test_agent_labels_override(self, config):
        job = audit_job(agent("  labels: [triage-failure]\n  assignees: [octocat]"), config, UPSTREAM)
        assert "--label triage-failure" in job.steps[-1].run
        assert "--label agent-failure" not in job.steps[-1].run
        assert "--assignee octocat" in job.steps[-1].run
