"""
Step definitions for features/dispatcher_routing.feature.
"""

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from conftest import definition_text, parse_definition
from repo_agents.generator.dispatcher import build_routing_table, match_event

scenarios("dispatcher_routing.feature")


@pytest.fixture
def agents():
    return []


# =============================================================================
# Given
# =============================================================================


@given(parsers.parse('an agent "{name}" triggered by "{event}" with types "{types}"'))
def event_agent(agents, name, event, types):
    header = f"name: {name}\non:\n  {event}:\n    types: [{types}]"
    agents.append(parse_definition(definition_text(header)))


@given(parsers.parse('an agent "{name}" on schedule "{cron}"'))
def scheduled_agent(agents, name, cron):
    header = f"name: {name}\non:\n  schedule:\n    - cron: '{cron}'"
    agents.append(parse_definition(definition_text(header)))


# =============================================================================
# When
# =============================================================================


@when(parsers.parse('an "{event}" event with action "{action}" is routed'), target_fixture="matched")
def route_event(agents, config, event, action):
    return match_event(build_routing_table(agents, config), event, action=action)


@when(parsers.parse('the schedule "{cron}" fires'), target_fixture="matched")
def fire_schedule(agents, config, cron):
    return match_event(build_routing_table(agents, config), "schedule", schedule=cron)


@when("a manual dispatch without an agent is routed", target_fixture="matched")
def manual_dispatch(agents, config):
    return match_event(build_routing_table(agents, config), "workflow_dispatch")


@when(parsers.parse('a manual dispatch for "{agent}" is routed'), target_fixture="matched")
def manual_dispatch_for(agents, config, agent):
    return match_event(build_routing_table(agents, config), "workflow_dispatch", agent=agent)


# =============================================================================
# Then
# =============================================================================


@then(parsers.parse('the matched agents are "{names}"'))
def matched_agents(matched, names):
    assert [rule.agent_name for rule in matched] == [n.strip() for n in names.split(",")]


@then("no agent is matched")
def nothing_matched(matched):
    assert matched == []
