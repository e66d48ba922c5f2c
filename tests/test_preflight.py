"""
Tests for the per-agent pre-flight job.

The pre-flight job gates every agent run: secrets, authorization, trigger
labels and rate limiting. Authorization failures fail the job; a missing
label or an active rate limit only skips the agent.
"""

import pytest

from conftest import assert_bash_syntax, definition_text, parse_definition, requires_bash
from repo_agents.generator.preflight import (
    app_token_step,
    authorization_step,
    preflight_job,
    rate_limit_step,
    result_step,
    trigger_labels_step,
)


def agent(extra: str = ""):
    return parse_definition(definition_text(f"name: Triage\non:\n  issues:\n{extra}"))


# =============================================================================
# Authorization
# =============================================================================


class TestAuthorization:
    """Tests for the actor authorization step."""

    def test_default_mode_checks_role_and_org(self):
        step = authorization_step(agent())
        assert '"$ROLE" = "admin"' in step.run
        assert '"$ROLE" = "maintain"' in step.run
        assert "orgs/$OWNER/members/$ACTOR" in step.run
        assert "exit 1" in step.run

    def test_allow_list_mode(self):
        step = authorization_step(agent("allowed-users: [octocat, hubot]\nallowed-teams: [maintainers]"))
        assert "ALLOWED_USERS=(octocat hubot)" in step.run
        assert "ALLOWED_TEAMS=(maintainers)" in step.run
        assert "collaborators/$ACTOR/permission" not in step.run

    def test_allow_list_quotes_values(self):
        step = authorization_step(agent("allowed-users: [\"name with space\"]"))
        assert "ALLOWED_USERS=('name with space')" in step.run

    def test_actor_comes_from_resolved_event(self):
        step = authorization_step(agent())
        assert step.env["ACTOR"] == "${{ steps.event.outputs.actor }}"


# =============================================================================
# Labels and Rate Limit
# =============================================================================


class TestTriggerLabels:
    def test_omitted_without_labels(self):
        assert trigger_labels_step(agent()) is None

    def test_missing_label_is_a_skip(self):
        step = trigger_labels_step(agent("trigger-labels: [triage, needs-review]"))
        assert "REQUIRED_LABELS=(triage needs-review)" in step.run
        assert "labels-ok=false" in step.run
        assert "Need one of: triage, needs-review" in step.run
        assert "exit 1" not in step.run

    def test_skip_reason_is_shell_quoted(self):
        step = trigger_labels_step(agent("trigger-labels: ['a\"b`', '$(touch /tmp/pwned)']"))
        reason = "'Required label not found. Need one of: a\"b`, $(touch /tmp/pwned)'"
        assert f"echo {reason}\n" in step.run
        assert f'echo skip-reason={reason} >> "$GITHUB_OUTPUT"' in step.run

    @requires_bash
    def test_hostile_labels_parse(self):
        step = trigger_labels_step(agent("trigger-labels: ['a\"b`', '$(touch /tmp/pwned)']"))
        assert_bash_syntax(step.run)


class TestRateLimit:
    def test_default_interval(self):
        step = rate_limit_step(agent())
        assert step.env["RATE_LIMIT_MINUTES"] == "5"
        assert step.env["WORKFLOW_FILE"] == "agent-triage.yml"

    def test_custom_interval(self):
        assert rate_limit_step(agent("rate-limit-minutes: 60")).env["RATE_LIMIT_MINUTES"] == "60"

    def test_zero_disables_the_check(self):
        assert rate_limit_step(agent("rate-limit-minutes: 0")) is None

    def test_manual_runs_bypass(self):
        step = rate_limit_step(agent())
        assert '"$EVENT_NAME" = "workflow_dispatch"' in step.run

    def test_only_successful_runs_count(self):
        assert "status=success" in rate_limit_step(agent()).run


def test_result_step_wires_optional_checks():
    step = result_step(has_labels=True, has_rate_limit=False)
    assert "LABELS_OK" in step.env
    assert "RATE_LIMITED" not in step.env
    assert result_step(False, False).env is None


def test_app_token_step_exports_token():
    step = app_token_step()
    assert 'echo "GH_TOKEN=$TOKEN" >> "$GITHUB_ENV"' in step.run
    assert step.env["FALLBACK_TOKEN"] == "${{ github.token }}"


# =============================================================================
# Job
# =============================================================================


class TestPreflightJob:
    """Tests for the assembled job."""

    def test_step_order(self, config):
        job = preflight_job(agent("trigger-labels: [triage]"), config)
        ids = job.step_ids()
        assert ids == ["event", "app-token", "auth", "labels", "rate-limit", "result"]

    def test_without_optional_checks(self, config):
        job = preflight_job(agent("rate-limit-minutes: 0"), config)
        assert "labels" not in job.step_ids()
        assert "rate-limit" not in job.step_ids()

    @pytest.mark.parametrize(
        "output",
        ["should-run", "rate-limited", "skip-reason", "actor", "issue-number", "pr-number", "issue-or-pr-number"],
    )
    def test_outputs(self, config, output):
        assert output in preflight_job(agent(), config).outputs
