"""
preflight.py - Pre-flight job for per-agent workflows.

The pre-flight job decides whether an agent may run at all. It resolves the
originating event (from the dispatcher's context artifact, or the live event
for ad hoc runs), then checks, in order:
- provider secrets are configured
- the actor is authorized
- the issue/PR carries a trigger label (only when the agent declares any)
- the agent has not run successfully within its rate-limit interval

Authorization failures fail the job. A missing trigger label or an active
rate limit is a skip: the job succeeds with ``should-run=false``.

Usage:
    from repo_agents.generator.preflight import preflight_job

    job = preflight_job(definition, config)
"""

from __future__ import annotations

import logging
import shlex
from typing import Dict, List, Optional

from repo_agents.config import CompilerConfig
from repo_agents.naming import agent_workflow_file
from repo_agents.parser.definition import AgentDefinition

from .ir import Job, Step, expr
from .providers import AUTH_ENV

logger = logging.getLogger(__name__)

DISPATCH_CONTEXT_DIR = "/tmp/dispatch-context"
CONTEXT_RUN_ID = "context-run-id"

BOT_USER = "github-actions[bot]"
BOT_EMAIL = "41898282+github-actions[bot]@users.noreply.github.com"


def _bash_array(name: str, values: List[str]) -> str:
    return f"{name}=({' '.join(shlex.quote(v) for v in values)})"


# =============================================================================
# Shared steps
# =============================================================================


def app_token_step(step_id: str = "app-token") -> Step:
    """Exchange GitHub App credentials for an installation token.

    Exports GH_TOKEN to later steps of the same job and sets the ``git-user``
    and ``git-email`` step outputs. Without App credentials it falls back to
    the workflow's own token and the github-actions identity.
    """
    script = f"""
GIT_USER="{BOT_USER}"
GIT_EMAIL="{BOT_EMAIL}"
TOKEN="$FALLBACK_TOKEN"

if [ -n "$GH_APP_ID" ] && [ -n "$GH_APP_PRIVATE_KEY" ]; then
  b64url() {{ openssl base64 -A | tr '+/' '-_' | tr -d '='; }}
  NOW=$(date +%s)
  HEADER=$(printf '{{"alg":"RS256","typ":"JWT"}}' | b64url)
  PAYLOAD=$(printf '{{"iat":%d,"exp":%d,"iss":"%s"}}' "$((NOW - 60))" "$((NOW + 540))" "$GH_APP_ID" | b64url)
  SIGNATURE=$(printf '%s.%s' "$HEADER" "$PAYLOAD" | openssl dgst -sha256 -sign <(printf '%s\\n' "$GH_APP_PRIVATE_KEY") | b64url)
  JWT="$HEADER.$PAYLOAD.$SIGNATURE"

  API="https://api.github.com"
  INSTALLATION_ID=$(curl -sf -H "Authorization: Bearer $JWT" -H "Accept: application/vnd.github+json" \\
    "$API/repos/$GITHUB_REPOSITORY/installation" | jq -r '.id // empty')
  if [ -n "$INSTALLATION_ID" ]; then
    APP_TOKEN=$(curl -sf -X POST -H "Authorization: Bearer $JWT" -H "Accept: application/vnd.github+json" \\
      "$API/app/installations/$INSTALLATION_ID/access_tokens" | jq -r '.token // empty')
    APP_SLUG=$(curl -sf -H "Authorization: Bearer $JWT" "$API/app" | jq -r '.slug // empty')
  fi

  if [ -n "$APP_TOKEN" ]; then
    TOKEN="$APP_TOKEN"
    if [ -n "$APP_SLUG" ]; then
      GIT_USER="$APP_SLUG[bot]"
      GIT_EMAIL="$GH_APP_ID+$APP_SLUG[bot]@users.noreply.github.com"
    fi
    echo "✓ Using GitHub App installation token"
  else
    echo "::warning::GitHub App token exchange failed; falling back to GITHUB_TOKEN"
  fi
else
  echo "No GitHub App configured; using GITHUB_TOKEN"
fi

echo "::add-mask::$TOKEN"
echo "GH_TOKEN=$TOKEN" >> "$GITHUB_ENV"
echo "git-user=$GIT_USER" >> "$GITHUB_OUTPUT"
echo "git-email=$GIT_EMAIL" >> "$GITHUB_OUTPUT"
"""
    return Step(
        name="Generate GitHub token",
        id=step_id,
        env={
            "GH_APP_ID": expr("secrets.GH_APP_ID"),
            "GH_APP_PRIVATE_KEY": expr("secrets.GH_APP_PRIVATE_KEY"),
            "FALLBACK_TOKEN": expr("github.token"),
        },
        run=script,
    )


def secrets_check_script() -> str:
    return """
if [ -z "$ANTHROPIC_API_KEY" ] && [ -z "$CLAUDE_CODE_OAUTH_TOKEN" ]; then
  echo "::error::No Claude authentication found. Please set either ANTHROPIC_API_KEY or CLAUDE_CODE_OAUTH_TOKEN."
  exit 1
fi
if [ -n "$ANTHROPIC_API_KEY" ]; then
  echo "✓ ANTHROPIC_API_KEY is configured"
fi
if [ -n "$CLAUDE_CODE_OAUTH_TOKEN" ]; then
  echo "✓ CLAUDE_CODE_OAUTH_TOKEN is configured"
fi
"""


def download_dispatch_context_step(config: CompilerConfig) -> Step:
    """Fetch the dispatcher's context artifact when the run came from the dispatcher."""
    run_id = expr(f"inputs.{CONTEXT_RUN_ID}")
    return Step(
        name="Download dispatch context",
        if_=f"inputs.{CONTEXT_RUN_ID} != ''",
        uses=config.actions.download_artifact,
        with_={
            "name": f"dispatch-context-{run_id}",
            "path": DISPATCH_CONTEXT_DIR,
            "run-id": run_id,
            "github-token": expr("github.token"),
        },
    )


# =============================================================================
# Pre-flight checks
# =============================================================================


def resolve_event_step() -> Step:
    script = f"""
CONTEXT_FILE={DISPATCH_CONTEXT_DIR}/context.json
if [ -f "$CONTEXT_FILE" ]; then
  echo "Using dispatch context from the dispatcher run"
  EVENT_NAME=$(jq -r '.eventName' "$CONTEXT_FILE")
  EVENT_ACTION=$(jq -r '.eventAction // ""' "$CONTEXT_FILE")
  ACTOR=$(jq -r '.actor' "$CONTEXT_FILE")
  ISSUE_NUMBER=$(jq -r '.issue.number // .discussion.number // ""' "$CONTEXT_FILE")
  PR_NUMBER=$(jq -r '.pullRequest.number // ""' "$CONTEXT_FILE")
else
  echo "No dispatch context; using the live event"
  EVENT_NAME="$GITHUB_EVENT_NAME"
  EVENT_ACTION=$(jq -r '.action // ""' "$GITHUB_EVENT_PATH")
  ACTOR="$GITHUB_ACTOR"
  ISSUE_NUMBER=$(jq -r '.issue.number // ""' "$GITHUB_EVENT_PATH")
  PR_NUMBER=$(jq -r '.pull_request.number // ""' "$GITHUB_EVENT_PATH")
fi

echo "Event: $EVENT_NAME ($EVENT_ACTION) by @$ACTOR"
{{
  echo "event-name=$EVENT_NAME"
  echo "event-action=$EVENT_ACTION"
  echo "actor=$ACTOR"
  echo "issue-number=$ISSUE_NUMBER"
  echo "pr-number=$PR_NUMBER"
  echo "issue-or-pr-number=${{ISSUE_NUMBER:-$PR_NUMBER}}"
}} >> "$GITHUB_OUTPUT"
"""
    return Step(name="Resolve triggering event", id="event", run=script)


def authorization_step(definition: AgentDefinition) -> Step:
    """Default mode: admin/maintain collaborators or org members. Allow-list mode: exact match or team membership.

    The two modes are exclusive; declaring any allow-list disables the default.
    """
    users = definition.allowed_users
    teams = definition.allowed_teams

    if not users and not teams:
        script = """
ROLE=$(gh api "repos/$GITHUB_REPOSITORY/collaborators/$ACTOR/permission" --jq '.role_name' 2>/dev/null || echo "none")
if [ "$ROLE" = "admin" ] || [ "$ROLE" = "maintain" ]; then
  echo "✓ @$ACTOR has $ROLE permission"
  exit 0
fi

OWNER="${GITHUB_REPOSITORY%%/*}"
if gh api "orgs/$OWNER/members/$ACTOR" >/dev/null 2>&1; then
  echo "✓ @$ACTOR is an organization member"
  exit 0
fi

echo "::error::User @$ACTOR does not have sufficient permissions (has: $ROLE)"
exit 1
"""
    else:
        script = f"""
{_bash_array("ALLOWED_USERS", users)}
{_bash_array("ALLOWED_TEAMS", teams)}
OWNER="${{GITHUB_REPOSITORY%%/*}}"

for USER in "${{ALLOWED_USERS[@]}}"; do
  if [ "$ACTOR" = "$USER" ]; then
    echo "✓ @$ACTOR is in the allowed users list"
    exit 0
  fi
done

for TEAM in "${{ALLOWED_TEAMS[@]}}"; do
  STATE=$(gh api "orgs/$OWNER/teams/$TEAM/memberships/$ACTOR" --jq '.state' 2>/dev/null || echo "")
  if [ "$STATE" = "active" ]; then
    echo "✓ @$ACTOR is a member of team $TEAM"
    exit 0
  fi
done

echo "::error::User @$ACTOR is not in allowed users or teams"
exit 1
"""
    return Step(
        name="Check user authorization",
        id="auth",
        env={"ACTOR": expr("steps.event.outputs.actor")},
        run=script,
    )


def trigger_labels_step(definition: AgentDefinition) -> Optional[Step]:
    """Label gate; omitted entirely when the agent declares no trigger labels."""
    labels = definition.trigger_labels
    if not labels:
        return None
    reason = shlex.quote(f"Required label not found. Need one of: {', '.join(labels)}")
    script = f"""
{_bash_array("REQUIRED_LABELS", labels)}
if [ -z "$TARGET_NUMBER" ]; then
  echo "No issue or PR number found, skipping label check"
  echo "labels-ok=true" >> "$GITHUB_OUTPUT"
  exit 0
fi

CURRENT_LABELS=$(gh api "repos/$GITHUB_REPOSITORY/issues/$TARGET_NUMBER" --jq '.labels[].name' 2>/dev/null || echo "")
for LABEL in "${{REQUIRED_LABELS[@]}}"; do
  if printf '%s\\n' "$CURRENT_LABELS" | grep -qxF "$LABEL"; then
    echo "✓ Found trigger label: $LABEL"
    echo "labels-ok=true" >> "$GITHUB_OUTPUT"
    exit 0
  fi
done

echo {reason}
echo "labels-ok=false" >> "$GITHUB_OUTPUT"
echo skip-reason={reason} >> "$GITHUB_OUTPUT"
"""
    return Step(
        name="Check trigger labels",
        id="labels",
        env={"TARGET_NUMBER": expr("steps.event.outputs.issue-or-pr-number")},
        run=script,
    )


def rate_limit_step(definition: AgentDefinition) -> Optional[Step]:
    """Skip when the agent last succeeded within its interval; manual runs bypass the check."""
    minutes = definition.rate_limit_minutes
    if minutes <= 0:
        return None
    script = """
if [ "$EVENT_NAME" = "workflow_dispatch" ]; then
  echo "Manual run - bypassing rate limit check"
  echo "rate-limited=false" >> "$GITHUB_OUTPUT"
  exit 0
fi

LAST_RUN=$(gh api "repos/$GITHUB_REPOSITORY/actions/workflows/$WORKFLOW_FILE/runs?status=success&per_page=5" \\
  --jq "[.workflow_runs[] | select(.id != $CURRENT_RUN_ID)][0].created_at // empty" 2>/dev/null || echo "")

if [ -n "$LAST_RUN" ]; then
  ELAPSED=$(( ($(date +%s) - $(date -d "$LAST_RUN" +%s)) / 60 ))
  if [ "$ELAPSED" -lt "$RATE_LIMIT_MINUTES" ]; then
    echo "Rate limited: last successful run was $ELAPSED minute(s) ago (limit: $RATE_LIMIT_MINUTES)"
    echo "rate-limited=true" >> "$GITHUB_OUTPUT"
    echo "skip-reason=Rate limit: last run $ELAPSED minute(s) ago, minimum interval $RATE_LIMIT_MINUTES" >> "$GITHUB_OUTPUT"
    exit 0
  fi
fi

echo "✓ Rate limit check passed"
echo "rate-limited=false" >> "$GITHUB_OUTPUT"
"""
    return Step(
        name="Check rate limit",
        id="rate-limit",
        env={
            "EVENT_NAME": expr("steps.event.outputs.event-name"),
            "WORKFLOW_FILE": agent_workflow_file(definition.name),
            "CURRENT_RUN_ID": expr("github.run_id"),
            "RATE_LIMIT_MINUTES": str(minutes),
        },
        run=script,
    )


def result_step(has_labels: bool, has_rate_limit: bool) -> Step:
    env: Dict[str, str] = {}
    if has_labels:
        env["LABELS_OK"] = expr("steps.labels.outputs.labels-ok")
        env["LABELS_REASON"] = expr("steps.labels.outputs.skip-reason")
    if has_rate_limit:
        env["RATE_LIMITED"] = expr("steps.rate-limit.outputs.rate-limited")
        env["RATE_REASON"] = expr("steps.rate-limit.outputs.skip-reason")
    script = """
SHOULD_RUN=true
RATE_LIMITED_OUT=false
SKIP_REASON=""
if [ "${LABELS_OK:-true}" = "false" ]; then
  SHOULD_RUN=false
  SKIP_REASON="$LABELS_REASON"
elif [ "${RATE_LIMITED:-false}" = "true" ]; then
  SHOULD_RUN=false
  RATE_LIMITED_OUT=true
  SKIP_REASON="$RATE_REASON"
fi

echo "should-run=$SHOULD_RUN" >> "$GITHUB_OUTPUT"
echo "rate-limited=$RATE_LIMITED_OUT" >> "$GITHUB_OUTPUT"
echo "skip-reason=$SKIP_REASON" >> "$GITHUB_OUTPUT"
if [ "$SHOULD_RUN" = true ]; then
  echo "✓ All pre-flight checks passed"
else
  echo "Skipping agent: $SKIP_REASON"
fi
"""
    return Step(name="Pre-flight result", id="result", env=env or None, run=script)


def preflight_job(definition: AgentDefinition, config: CompilerConfig) -> Job:
    labels = trigger_labels_step(definition)
    rate_limit = rate_limit_step(definition)

    steps: List[Step] = [
        download_dispatch_context_step(config),
        resolve_event_step(),
        Step(name="Check secrets", env=dict(AUTH_ENV), run=secrets_check_script()),
        app_token_step(),
        authorization_step(definition),
    ]
    if labels is not None:
        steps.append(labels)
    if rate_limit is not None:
        steps.append(rate_limit)
    steps.append(result_step(labels is not None, rate_limit is not None))

    logger.debug(
        "Pre-flight for %s: label gate=%s, rate limit=%s",
        definition.name,
        labels is not None,
        rate_limit is not None,
    )

    outputs = {
        "should-run": expr("steps.result.outputs.should-run"),
        "rate-limited": expr("steps.result.outputs.rate-limited"),
        "skip-reason": expr("steps.result.outputs.skip-reason"),
    }
    for key in ("event-name", "event-action", "actor", "issue-number", "pr-number", "issue-or-pr-number"):
        outputs[key] = expr(f"steps.event.outputs.{key}")

    return Job(runs_on=config.runner, outputs=outputs, steps=steps)
