"""
Tests for the shared dispatcher workflow.

These tests verify:
1. Trigger aggregation across agents (type unions, schedule dedup)
2. The routing table and event matching
3. Permission aggregation never narrows a grant
4. The generated dispatcher workflow shape
"""

import json

import pytest

from conftest import definition_text, load_workflow, parse_definition, step_by_name
from repo_agents.generator.dispatcher import (
    AGENT_INPUT_DESCRIPTION,
    BASELINE_PERMISSIONS,
    RouteTrigger,
    aggregate_permissions,
    aggregate_triggers,
    build_routing_table,
    generate_dispatcher,
    match_event,
    merge_trigger_sets,
    routing_rule,
    trigger_set,
)
from repo_agents.generator.ir import render_workflow
from repo_agents.generator.schema_check import validate_workflow_yaml


def agent(name: str, on: str, extra: str = ""):
    header = f"name: {name}\non:\n{on}\n{extra}"
    return parse_definition(definition_text(header))


@pytest.fixture
def triage():
    return agent("Issue Triage", "  issues:\n    types: [opened]", "permissions:\n  issues: write")


@pytest.fixture
def closer():
    return agent(
        "Stale Closer",
        "  issues:\n    types: [closed, opened]\n  schedule:\n    - cron: '0 * * * *'",
        "permissions:\n  issues: write\n  pull-requests: read",
    )


@pytest.fixture
def watcher():
    return agent("Issue Watcher", "  issues:")


@pytest.fixture
def nightly():
    return agent(
        "Nightly Report",
        "  schedule:\n    - cron: '0 2 * * *'\n    - cron: '0 */1 * * *'",
        "permissions:\n  contents: write",
    )


@pytest.fixture
def deployer():
    return agent("Deploy Hook", "  repository_dispatch:\n    types: [deploy]")


# =============================================================================
# Trigger Aggregation
# =============================================================================


class TestTriggerAggregation:
    """Tests for merging trigger sets."""

    def test_trigger_set_plain_data(self, closer):
        assert trigger_set(closer.triggers) == {
            "issues": {"types": ["closed", "opened"]},
            "schedule": [{"cron": "0 * * * *"}],
        }

    def test_types_are_unioned_and_sorted(self, triage, closer):
        merged = aggregate_triggers([triage, closer])
        assert merged["issues"] == {"types": ["closed", "opened"]}

    def test_overlapping_types_are_deduplicated(self):
        merged = merge_trigger_sets(
            [{"issues": {"types": ["opened"]}}, {"issues": {"types": ["opened", "edited"]}}]
        )
        assert merged["issues"] == {"types": ["edited", "opened"]}

    def test_category_without_types_absorbs_others(self, triage, watcher):
        merged = aggregate_triggers([triage, watcher])
        assert merged["issues"] == {}

    def test_empty_types_list_means_any_action(self):
        merged = merge_trigger_sets([{"issues": {"types": []}}, {"issues": {"types": ["opened"]}}])
        assert merged["issues"] == {}

    def test_schedules_dedup_by_exact_text(self, closer, nightly):
        merged = aggregate_triggers([closer, nightly])
        assert merged["schedule"] == [
            {"cron": "0 * * * *"},
            {"cron": "0 2 * * *"},
            {"cron": "0 */1 * * *"},
        ]

    def test_workflow_dispatch_always_present(self, triage):
        merged = aggregate_triggers([triage])
        agent_input = merged["workflow_dispatch"]["inputs"]["agent"]
        assert agent_input["description"] == AGENT_INPUT_DESCRIPTION
        assert agent_input["required"] is False

    def test_repository_dispatch_types(self, deployer):
        assert aggregate_triggers([deployer])["repository_dispatch"] == {"types": ["deploy"]}

    def test_merge_is_commutative(self, triage, closer, watcher):
        sets = [trigger_set(d.triggers) for d in (triage, closer, watcher)]
        forward = merge_trigger_sets(sets)
        backward = merge_trigger_sets(list(reversed(sets)))
        assert forward["issues"] == backward["issues"]
        assert forward["workflow_dispatch"] == backward["workflow_dispatch"]

    def test_merge_is_associative(self, triage, closer, nightly):
        a, b, c = (trigger_set(d.triggers) for d in (triage, closer, nightly))
        left = merge_trigger_sets([merge_trigger_sets([a, b]), c])
        right = merge_trigger_sets([a, merge_trigger_sets([b, c])])
        assert left == right


# =============================================================================
# Routing
# =============================================================================


class TestRouting:
    """Tests for the routing table and event matching."""

    def test_routing_rule(self, triage, config):
        rule = routing_rule(triage, config)
        assert rule.agent_name == "Issue Triage"
        assert rule.workflow_file == "agent-issue-triage.yml"
        assert rule.agent_path == ".github/agents/issue-triage.md"
        assert rule.triggers[0] == RouteTrigger("issues", actions=("opened",))
        assert rule.triggers[-1] == RouteTrigger("workflow_dispatch")

    def test_rule_serialization(self, deployer, config):
        data = routing_rule(deployer, config).to_dict()
        assert data["agentName"] == "Deploy Hook"
        assert data["triggers"][0] == {"eventType": "repository_dispatch", "dispatchTypes": ["deploy"]}

    def test_match_by_action(self, triage, closer, watcher, config):
        table = build_routing_table([triage, closer, watcher], config)
        names = [r.agent_name for r in match_event(table, "issues", "opened")]
        assert names == ["Issue Triage", "Stale Closer", "Issue Watcher"]
        names = [r.agent_name for r in match_event(table, "issues", "edited")]
        assert names == ["Issue Watcher"]

    def test_match_schedule_by_exact_cron(self, closer, nightly, config):
        table = build_routing_table([closer, nightly], config)
        assert [r.agent_name for r in match_event(table, "schedule", schedule="0 2 * * *")] == ["Nightly Report"]
        assert match_event(table, "schedule", schedule="0 3 * * *") == []

    def test_manual_dispatch_without_agent_matches_all(self, triage, nightly, config):
        table = build_routing_table([triage, nightly], config)
        assert len(match_event(table, "workflow_dispatch")) == 2

    def test_manual_dispatch_narrows_to_named_agent(self, triage, nightly, config):
        table = build_routing_table([triage, nightly], config)
        matched = match_event(table, "workflow_dispatch", agent="Nightly Report")
        assert [r.agent_name for r in matched] == ["Nightly Report"]
        assert match_event(table, "workflow_dispatch", agent="Unknown") == []

    def test_repository_dispatch_types(self, deployer, config):
        table = build_routing_table([deployer], config)
        assert len(match_event(table, "repository_dispatch", "deploy")) == 1
        assert match_event(table, "repository_dispatch", "rollback") == []

    def test_unrelated_event(self, triage, config):
        table = build_routing_table([triage], config)
        assert match_event(table, "pull_request", "opened") == []


# =============================================================================
# Permissions
# =============================================================================


class TestPermissions:
    def test_baseline(self, watcher):
        assert aggregate_permissions([watcher]) == BASELINE_PERMISSIONS

    def test_grants_are_widened(self, closer, nightly):
        permissions = aggregate_permissions([closer, nightly])
        assert permissions["contents"] == "write"
        assert permissions["pull-requests"] == "read"

    def test_write_is_never_narrowed(self, nightly):
        reader = agent("Reader", "  issues:", "permissions:\n  contents: read")
        assert aggregate_permissions([nightly, reader])["contents"] == "write"


# =============================================================================
# Generated Workflow
# =============================================================================


class TestGenerateDispatcher:
    """Tests for the rendered dispatcher."""

    @pytest.fixture
    def dispatcher(self, triage, nightly, config):
        return load_workflow(render_workflow(generate_dispatcher([triage, nightly], config)))

    def test_job_graph(self, dispatcher):
        assert list(dispatcher["jobs"]) == ["pre-flight", "prepare-context", "route-event", "dispatch-agents"]
        assert dispatcher["jobs"]["dispatch-agents"]["needs"] == ["pre-flight", "prepare-context", "route-event"]

    def test_name_and_triggers(self, dispatcher):
        assert dispatcher["name"] == "Agent Dispatcher"
        assert set(dispatcher["on"]) == {"issues", "schedule", "workflow_dispatch"}

    def test_routing_table_is_embedded(self, dispatcher, triage, nightly, config):
        route = step_by_name(dispatcher["jobs"]["route-event"], "Route event to agents")
        table = json.loads(route["env"]["ROUTING_TABLE"])
        assert table == [r.to_dict() for r in build_routing_table([triage, nightly], config)]

    def test_unknown_agent_fails_routing(self, dispatcher):
        route = step_by_name(dispatcher["jobs"]["route-event"], "Route event to agents")
        assert "Unknown agent" in route["run"]

    def test_dispatch_matrix(self, dispatcher):
        job = dispatcher["jobs"]["dispatch-agents"]
        assert job["strategy"]["fail-fast"] is False
        assert "fromJson(needs.route-event.outputs.matching-agents)" in job["strategy"]["matrix"]["agent"]

    def test_context_artifact_upload(self, dispatcher):
        upload = step_by_name(dispatcher["jobs"]["prepare-context"], "Upload context artifact")
        assert upload["with"]["name"] == "dispatch-context-${{ github.run_id }}"

    def test_preflight_disables_dispatcher_without_secrets(self, dispatcher):
        check = step_by_name(dispatcher["jobs"]["pre-flight"], "Check configuration")
        assert 'gh workflow disable "agent-dispatcher.yml"' in check["run"]

    def test_passes_schema_validation(self, triage, nightly, deployer, config):
        text = render_workflow(generate_dispatcher([triage, nightly, deployer], config))
        assert validate_workflow_yaml(text) == []
