"""
dispatcher.py - The shared dispatcher workflow.

Every repository event enters through one dispatcher workflow. It listens on
the union of all agents' triggers, snapshots the event into a context
artifact, matches the event against a routing table and dispatches each
matching agent's workflow.

Trigger aggregation:
- action-subtype lists are unioned and sorted; a category declared without
  types (or with an empty list) means "any action" and absorbs the others
- schedules are deduplicated by exact cron text, first occurrence wins
  (``0 * * * *`` and ``0 */1 * * *`` stay distinct)
- workflow_dispatch is always present, with an optional ``agent`` input

Usage:
    from repo_agents.generator.dispatcher import generate_dispatcher

    workflow = generate_dispatcher(definitions, config)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from repo_agents.config import CompilerConfig
from repo_agents.naming import agent_file_path, agent_workflow_file
from repo_agents.parser.definition import AgentDefinition
from repo_agents.parser.schema import TriggerConfig

from .ir import Job, Step, Workflow, expr
from .preflight import app_token_step
from .providers import AUTH_ENV

logger = logging.getLogger(__name__)

FILTERED_CATEGORIES = ("issues", "pull_request", "discussion")
DISPATCH_CATEGORY = "repository_dispatch"

AGENT_INPUT_DESCRIPTION = "Specific agent to run (leave empty to auto-route based on event)"

BASELINE_PERMISSIONS: Dict[str, str] = {
    "actions": "write",
    "contents": "read",
    "issues": "write",
}

CONFIG_ISSUE_LABEL = "repo-agents-config"


# =============================================================================
# Trigger aggregation
# =============================================================================


def trigger_set(triggers: TriggerConfig) -> Dict[str, Any]:
    """Plain-data form of one definition's triggers, as the workflow ``on`` key spells them."""
    result: Dict[str, Any] = {}
    for category in FILTERED_CATEGORIES + (DISPATCH_CATEGORY,):
        event_filter = getattr(triggers, category)
        if event_filter is None:
            continue
        result[category] = {"types": list(event_filter.types)} if event_filter.types else {}
    if triggers.schedule:
        result["schedule"] = [{"cron": entry.cron} for entry in triggers.schedule]
    return result


def merge_trigger_sets(sets: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Union trigger sets. Merging is associative and commutative up to schedule order."""
    sets = list(sets)
    merged: Dict[str, Any] = {}

    for category in FILTERED_CATEGORIES:
        filters = [s[category] for s in sets if category in s]
        if filters:
            merged[category] = _union_filters(filters)

    crons: List[str] = []
    for s in sets:
        for entry in s.get("schedule") or []:
            if entry["cron"] not in crons:
                crons.append(entry["cron"])
    if crons:
        merged["schedule"] = [{"cron": cron} for cron in crons]

    filters = [s[DISPATCH_CATEGORY] for s in sets if DISPATCH_CATEGORY in s]
    if filters:
        merged[DISPATCH_CATEGORY] = _union_filters(filters)

    merged["workflow_dispatch"] = {
        "inputs": {
            "agent": {
                "description": AGENT_INPUT_DESCRIPTION,
                "required": False,
                "type": "string",
            }
        }
    }
    return merged


def _union_filters(filters: Sequence[Optional[Mapping[str, Any]]]) -> Dict[str, Any]:
    types = set()
    for event_filter in filters:
        declared = (event_filter or {}).get("types")
        if not declared:
            return {}
        types.update(declared)
    return {"types": sorted(types)}


def aggregate_triggers(definitions: Iterable[AgentDefinition]) -> Dict[str, Any]:
    return merge_trigger_sets(trigger_set(d.triggers) for d in definitions)


# =============================================================================
# Routing table
# =============================================================================


@dataclass(frozen=True)
class RouteTrigger:
    """One (event category, actions-or-schedule) pair an agent answers to.

    ``actions=None`` matches any action of the category.
    """

    event_type: str
    actions: Optional[Tuple[str, ...]] = None
    schedule: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"eventType": self.event_type}
        if self.actions is not None:
            key = "dispatchTypes" if self.event_type == DISPATCH_CATEGORY else "eventActions"
            data[key] = list(self.actions)
        if self.schedule is not None:
            data["schedule"] = self.schedule
        return data


@dataclass(frozen=True)
class RoutingRule:
    agent_name: str
    agent_path: str
    workflow_file: str
    triggers: Tuple[RouteTrigger, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentName": self.agent_name,
            "agentPath": self.agent_path,
            "workflowFile": self.workflow_file,
            "triggers": [t.to_dict() for t in self.triggers],
        }


def routing_rule(definition: AgentDefinition, config: CompilerConfig) -> RoutingRule:
    triggers: List[RouteTrigger] = []
    on = definition.triggers
    for category in FILTERED_CATEGORIES:
        event_filter = getattr(on, category)
        if event_filter is not None:
            actions = tuple(event_filter.types) if event_filter.types else None
            triggers.append(RouteTrigger(category, actions=actions))

    seen: List[str] = []
    for entry in on.schedule or []:
        if entry.cron not in seen:
            seen.append(entry.cron)
            triggers.append(RouteTrigger("schedule", schedule=entry.cron))

    if on.repository_dispatch is not None:
        types = on.repository_dispatch.types
        triggers.append(RouteTrigger(DISPATCH_CATEGORY, actions=tuple(types) if types else None))

    # Every agent can be invoked by hand.
    triggers.append(RouteTrigger("workflow_dispatch"))

    return RoutingRule(
        agent_name=definition.name,
        agent_path=agent_file_path(definition.name, config.agents_dir),
        workflow_file=agent_workflow_file(definition.name),
        triggers=tuple(triggers),
    )


def build_routing_table(
    definitions: Iterable[AgentDefinition], config: CompilerConfig
) -> List[RoutingRule]:
    return [routing_rule(d, config) for d in definitions]


def match_event(
    table: Sequence[RoutingRule],
    event_name: str,
    action: str = "",
    schedule: str = "",
    agent: str = "",
) -> List[RoutingRule]:
    """Select the rules an event routes to; mirrors the route-event job's jq program.

    A manual dispatch naming an agent narrows to exactly that agent.
    """
    if event_name == "workflow_dispatch" and agent:
        candidates = [rule for rule in table if rule.agent_name == agent]
    else:
        candidates = [rule for rule in table if any(_trigger_matches(t, event_name, action, schedule) for t in rule.triggers)]

    matched: List[RoutingRule] = []
    names = set()
    for rule in candidates:
        if rule.agent_name not in names:
            names.add(rule.agent_name)
            matched.append(rule)
    return matched


def _trigger_matches(trigger: RouteTrigger, event_name: str, action: str, schedule: str) -> bool:
    if trigger.event_type != event_name:
        return False
    if event_name == "schedule":
        return trigger.schedule == schedule
    return trigger.actions is None or action in trigger.actions


ROUTE_PROGRAM = """
if $event == "workflow_dispatch" and $agent != "" then
  [.[] | select(.agentName == $agent)]
else
  [.[] | select(any(.triggers[];
    .eventType == $event and (
      if $event == "schedule" then .schedule == $schedule
      elif $event == "repository_dispatch" then (.dispatchTypes == null or (.dispatchTypes | index($action) != null))
      else (.eventActions == null or (.eventActions | index($action) != null))
      end)))]
end
| unique_by(.agentName)
""".strip()


# =============================================================================
# Permissions
# =============================================================================


def aggregate_permissions(definitions: Iterable[AgentDefinition]) -> Dict[str, str]:
    """Baseline grants widened by every agent's grants; a grant is never narrowed."""
    permissions = dict(BASELINE_PERMISSIONS)
    for definition in definitions:
        if definition.permissions is None:
            continue
        for key, level in definition.permissions.model_dump(exclude_none=True).items():
            key = key.replace("_", "-")
            if permissions.get(key) != "write":
                permissions[key] = level
    return permissions


# =============================================================================
# Jobs
# =============================================================================


def _preflight_job(config: CompilerConfig) -> Job:
    script = f"""
if [ -n "$ANTHROPIC_API_KEY" ] || [ -n "$CLAUDE_CODE_OAUTH_TOKEN" ]; then
  echo "✓ Claude authentication is configured"
  echo "should-continue=true" >> "$GITHUB_OUTPUT"
  exit 0
fi

echo "::error::No Claude authentication found. Set ANTHROPIC_API_KEY or CLAUDE_CODE_OAUTH_TOKEN."
echo "should-continue=false" >> "$GITHUB_OUTPUT"

TITLE="Agent configuration required"
BODY="The agent dispatcher could not find ANTHROPIC_API_KEY or CLAUDE_CODE_OAUTH_TOKEN in repository secrets, so it has been disabled. Add a secret, then re-enable the {config.dispatcher_file} workflow. Run: $GITHUB_SERVER_URL/$GITHUB_REPOSITORY/actions/runs/$GITHUB_RUN_ID"

EXISTING=$(gh issue list --repo "$GITHUB_REPOSITORY" --label "{CONFIG_ISSUE_LABEL}" --state open --json number --jq '.[0].number // empty' 2>/dev/null || echo "")
if [ -n "$EXISTING" ]; then
  gh issue comment "$EXISTING" --repo "$GITHUB_REPOSITORY" --body "$BODY" || true
else
  gh label create "{CONFIG_ISSUE_LABEL}" --repo "$GITHUB_REPOSITORY" --color d73a4a --force >/dev/null 2>&1 || true
  gh issue create --repo "$GITHUB_REPOSITORY" --title "$TITLE" --body "$BODY" --label "{CONFIG_ISSUE_LABEL}" || true
fi

gh workflow disable "{config.dispatcher_file}" --repo "$GITHUB_REPOSITORY" || true
"""
    return Job(
        runs_on=config.runner,
        outputs={"should-continue": expr("steps.config-check.outputs.should-continue")},
        steps=[
            Step(
                name="Check configuration",
                id="config-check",
                env={**AUTH_ENV, "GH_TOKEN": expr("github.token")},
                run=script,
            )
        ],
    )


def _prepare_context_job(config: CompilerConfig) -> Job:
    script = """
mkdir -p /tmp/dispatch-context
EVENT_ACTION=$(jq -r '.action // ""' "$GITHUB_EVENT_PATH")

jq -n --slurpfile event "$GITHUB_EVENT_PATH" \\
  --arg dispatchId "$GITHUB_RUN_ID-$GITHUB_RUN_ATTEMPT" \\
  --arg dispatchedAt "$(date -u +%Y-%m-%dT%H:%M:%SZ)" \\
  --arg runId "$GITHUB_RUN_ID" \\
  --arg runUrl "$GITHUB_SERVER_URL/$GITHUB_REPOSITORY/actions/runs/$GITHUB_RUN_ID" \\
  --arg eventName "$GITHUB_EVENT_NAME" \\
  --arg eventAction "$EVENT_ACTION" \\
  --arg repository "$GITHUB_REPOSITORY" \\
  --arg ref "$GITHUB_REF" \\
  --arg sha "$GITHUB_SHA" \\
  --arg actor "$GITHUB_ACTOR" '
  $event[0] as $e
  | {
      dispatchId: $dispatchId,
      dispatchedAt: $dispatchedAt,
      dispatcherRunId: $runId,
      dispatcherRunUrl: $runUrl,
      eventName: $eventName,
      eventAction: $eventAction,
      repository: $repository,
      ref: $ref,
      sha: $sha,
      actor: $actor
    }
  + if $eventName == "issues" then
      {issue: {number: $e.issue.number, title: $e.issue.title, body: ($e.issue.body // ""),
               author: $e.issue.user.login, labels: [$e.issue.labels[]?.name],
               state: $e.issue.state, url: $e.issue.html_url}}
    elif $eventName == "pull_request" then
      {pullRequest: {number: $e.pull_request.number, title: $e.pull_request.title,
                     body: ($e.pull_request.body // ""), author: $e.pull_request.user.login,
                     labels: [$e.pull_request.labels[]?.name], baseBranch: $e.pull_request.base.ref,
                     headBranch: $e.pull_request.head.ref, state: $e.pull_request.state,
                     url: $e.pull_request.html_url}}
    elif $eventName == "discussion" then
      {discussion: {number: $e.discussion.number, title: $e.discussion.title,
                    body: ($e.discussion.body // ""), author: $e.discussion.user.login,
                    category: $e.discussion.category.name, url: $e.discussion.html_url}}
    elif $eventName == "schedule" then
      {schedule: {cron: $e.schedule}}
    elif $eventName == "repository_dispatch" then
      {repositoryDispatch: {eventType: $e.action, clientPayload: ($e.client_payload // {})}}
    else {} end
  ' > /tmp/dispatch-context/context.json

echo "Context prepared:"
cat /tmp/dispatch-context/context.json
echo "run-id=$GITHUB_RUN_ID" >> "$GITHUB_OUTPUT"
"""
    return Job(
        runs_on=config.runner,
        needs="pre-flight",
        if_="needs.pre-flight.outputs.should-continue == 'true'",
        outputs={"run-id": expr("steps.prepare-context.outputs.run-id")},
        steps=[
            Step(name="Prepare dispatch context", id="prepare-context", run=script),
            Step(
                name="Upload context artifact",
                uses=config.actions.upload_artifact,
                with_={
                    "name": f"dispatch-context-{expr('github.run_id')}",
                    "path": "/tmp/dispatch-context/",
                    "retention-days": 1,
                },
            ),
        ],
    )


def _route_job(table: Sequence[RoutingRule], config: CompilerConfig) -> Job:
    routing_json = json.dumps([rule.to_dict() for rule in table], separators=(",", ":"))
    script = f"""
echo "Routing $EVENT_NAME ($EVENT_ACTION) across $(echo "$ROUTING_TABLE" | jq length) agent(s)"

if [ "$EVENT_NAME" = "workflow_dispatch" ] && [ -n "$REQUESTED_AGENT" ]; then
  if ! echo "$ROUTING_TABLE" | jq -e --arg agent "$REQUESTED_AGENT" 'any(.[]; .agentName == $agent)' >/dev/null; then
    echo "::error::Unknown agent: $REQUESTED_AGENT"
    exit 1
  fi
fi

MATCHES=$(echo "$ROUTING_TABLE" | jq -c \\
  --arg event "$EVENT_NAME" \\
  --arg action "$EVENT_ACTION" \\
  --arg schedule "$EVENT_SCHEDULE" \\
  --arg agent "$REQUESTED_AGENT" '
{ROUTE_PROGRAM}
')

echo "Matched $(echo "$MATCHES" | jq length) agent(s)"
echo "$MATCHES" | jq -r '.[] | "  - \\(.agentName) (\\(.workflowFile))"'
echo "matching-agents=$MATCHES" >> "$GITHUB_OUTPUT"
"""
    return Job(
        runs_on=config.runner,
        needs="pre-flight",
        if_="needs.pre-flight.outputs.should-continue == 'true'",
        outputs={"matching-agents": expr("steps.route.outputs.matching-agents")},
        steps=[
            Step(
                name="Route event to agents",
                id="route",
                env={
                    "ROUTING_TABLE": routing_json,
                    "EVENT_NAME": expr("github.event_name"),
                    "EVENT_ACTION": expr("github.event.action"),
                    "EVENT_SCHEDULE": expr("github.event.schedule"),
                    "REQUESTED_AGENT": expr("github.event.inputs.agent"),
                },
                run=script,
            )
        ],
    )


def _dispatch_job(config: CompilerConfig) -> Job:
    script = """
echo "Dispatching $AGENT_NAME via $WORKFLOW_FILE"
gh workflow run "$WORKFLOW_FILE" --repo "$GITHUB_REPOSITORY" \\
  -f context-run-id="$CONTEXT_RUN_ID"
echo "✓ Dispatched $AGENT_NAME"
"""
    return Job(
        runs_on=config.runner,
        needs=["pre-flight", "prepare-context", "route-event"],
        if_="needs.route-event.outputs.matching-agents != '[]' && needs.route-event.outputs.matching-agents != ''",
        strategy={
            "matrix": {"agent": expr("fromJson(needs.route-event.outputs.matching-agents)")},
            "fail-fast": False,
        },
        steps=[
            app_token_step(),
            Step(
                name=f"Dispatch to {expr('matrix.agent.agentName')}",
                env={
                    "AGENT_NAME": expr("matrix.agent.agentName"),
                    "WORKFLOW_FILE": expr("matrix.agent.workflowFile"),
                    "CONTEXT_RUN_ID": expr("needs.prepare-context.outputs.run-id"),
                },
                run=script,
            ),
        ],
    )


def generate_dispatcher(definitions: Sequence[AgentDefinition], config: CompilerConfig) -> Workflow:
    """Build the dispatcher workflow for every agent in the repository."""
    table = build_routing_table(definitions, config)
    workflow = Workflow(
        name=config.dispatcher_name,
        on=aggregate_triggers(definitions),
        permissions=aggregate_permissions(definitions),
        jobs={
            "pre-flight": _preflight_job(config),
            "prepare-context": _prepare_context_job(config),
            "route-event": _route_job(table, config),
            "dispatch-agents": _dispatch_job(config),
        },
    )
    logger.debug("Dispatcher routes %d agent(s) on %s", len(table), ", ".join(workflow.on))
    return workflow
