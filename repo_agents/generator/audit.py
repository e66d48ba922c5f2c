"""
audit.py - The audit-report job that closes every per-agent workflow.

The job runs with ``if: always()``. It records the result of every upstream
job in the step summary, treats a rate-limit or label skip as a success and,
only when a job genuinely failed:

1. optionally runs the agent's provider read-only to diagnose the failure, and
2. files a tracking issue for the agent, or comments on the open one.

Usage:
    from repo_agents.generator.audit import audit_job

    job = audit_job(definition, config, upstream=["pre-flight", "run-agent"])
"""

from __future__ import annotations

import logging
import shlex
from typing import List, Sequence

from repo_agents.config import CompilerConfig
from repo_agents.parser.definition import AgentDefinition

from .ir import Job, Step, expr
from .providers import AUTH_ENV, READ_ONLY_TOOLS, get_provider

logger = logging.getLogger(__name__)

REPORT_FILE = "/tmp/audit-report.md"
DIAGNOSIS_FILE = "/tmp/diagnosis.md"
DIAGNOSIS_OUTPUT = "/tmp/diagnosis.json"


def _env_key(job_id: str) -> str:
    return job_id.upper().replace("-", "_") + "_RESULT"


def summary_script(upstream: Sequence[str]) -> str:
    """Bash that classifies upstream results and writes the audit report."""
    lines = [
        'FAILED_JOBS=""',
        "{",
        '  echo "## Agent Audit: $AGENT_NAME"',
        '  echo ""',
        '  echo "| Job | Result |"',
        '  echo "| --- | --- |"',
        '} > "$REPORT_FILE"',
        "",
    ]
    for job_id in upstream:
        var = _env_key(job_id)
        lines.extend(
            [
                f'echo "| {job_id} | ${var} |" >> "$REPORT_FILE"',
                f'if [ "${var}" = "failure" ] || [ "${var}" = "cancelled" ]; then',
                f'  FAILED_JOBS="$FAILED_JOBS {job_id}"',
                "fi",
            ]
        )
    lines.extend(
        [
            "",
            "{",
            '  echo ""',
            '  echo "- Run: $GITHUB_SERVER_URL/$GITHUB_REPOSITORY/actions/runs/$GITHUB_RUN_ID"',
            '  echo "- Actor: $ACTOR"',
            '} >> "$REPORT_FILE"',
            "",
            'if [ "$RATE_LIMITED" = "true" ]; then',
            '  echo "- Skipped: rate limited (not a failure)" >> "$REPORT_FILE"',
            'elif [ "$SHOULD_RUN" != "true" ] && [ -n "$SKIP_REASON" ]; then',
            '  echo "- Skipped: $SKIP_REASON" >> "$REPORT_FILE"',
            "fi",
            "",
            'if [ -n "$FAILED_JOBS" ]; then',
            '  echo "- Failed jobs:$FAILED_JOBS" >> "$REPORT_FILE"',
            '  echo "has-failures=true" >> "$GITHUB_OUTPUT"',
            "else",
            '  echo "has-failures=false" >> "$GITHUB_OUTPUT"',
            "fi",
            'echo "failed-jobs=${FAILED_JOBS# }" >> "$GITHUB_OUTPUT"',
            "",
            'cat "$REPORT_FILE" >> "$GITHUB_STEP_SUMMARY"',
        ]
    )
    return "\n".join(lines) + "\n"


def diagnosis_prompt_script() -> str:
    return f"""mkdir -p /tmp/claude
{{
  echo "A GitHub Actions run of the agent '$AGENT_NAME' failed."
  echo "Diagnose the most likely cause using the audit report below and the repository contents."
  echo "Do not modify anything. Answer in markdown with a short 'Cause' and 'Suggested fix' section."
  echo ""
  cat "$REPORT_FILE"
  if [ -d /tmp/agent-metrics ]; then
    echo ""
    echo "## Agent output"
    echo ""
    find /tmp/agent-metrics -type f -name '*.json' -exec cat {{}} \\; | head -c 20000
  fi
}} > {DIAGNOSIS_FILE}
"""


def issue_script(labels: Sequence[str], assignees: Sequence[str]) -> str:
    """Bash that comments on the open tracking issue for the agent or opens one."""
    label_args = " ".join(f"--label {shlex.quote(label)}" for label in labels)
    assignee_args = " ".join(f"--assignee {shlex.quote(user)}" for user in assignees)
    search_label = shlex.quote(labels[0] if labels else "agent-failure")
    create = f'gh issue create --repo "$GITHUB_REPOSITORY" --title "$TITLE" --body-file /tmp/audit-issue.md'
    if label_args:
        create += f" {label_args}"
    if assignee_args:
        create += f" {assignee_args}"
    return f"""TITLE="$AGENT_NAME: Agent Execution Failed"
cp "$REPORT_FILE" /tmp/audit-issue.md
if [ -s {DIAGNOSIS_OUTPUT} ]; then
  {{
    echo ""
    echo "## Diagnosis"
    echo ""
    jq -r '.result // empty' {DIAGNOSIS_OUTPUT} 2>/dev/null || cat {DIAGNOSIS_OUTPUT}
  }} >> /tmp/audit-issue.md
fi

EXISTING=$(gh issue list --repo "$GITHUB_REPOSITORY" --state open --label {search_label} \\
  --search "$AGENT_NAME in:title" --json number,title 2>/dev/null | \\
  jq -r --arg title "$TITLE" '[.[] | select(.title == $title)][0].number // empty' 2>/dev/null || echo "")

if [ -n "$EXISTING" ]; then
  echo "Adding comment to existing issue #$EXISTING"
  gh issue comment "$EXISTING" --repo "$GITHUB_REPOSITORY" --body-file /tmp/audit-issue.md
else
  echo "Creating failure issue"
  {create}
fi
"""


def audit_job(definition: AgentDefinition, config: CompilerConfig, upstream: List[str]) -> Job:
    """The unconditional audit-report job over ``upstream`` job ids."""
    audit = definition.audit
    create_issues = audit.create_issues is not False
    diagnose = audit.diagnose is not False
    labels = list(audit.labels) if audit.labels else list(config.audit_labels)
    assignees = list(audit.assignees or [])
    failed = "steps.summary.outputs.has-failures == 'true'"

    env = {
        "AGENT_NAME": definition.name,
        "REPORT_FILE": REPORT_FILE,
        "ACTOR": expr("needs.pre-flight.outputs.actor"),
        "SHOULD_RUN": expr("needs.pre-flight.outputs.should-run"),
        "RATE_LIMITED": expr("needs.pre-flight.outputs.rate-limited"),
        "SKIP_REASON": expr("needs.pre-flight.outputs.skip-reason"),
    }
    for job_id in upstream:
        env[_env_key(job_id)] = expr(f"needs.{job_id}.result")

    steps: List[Step] = [
        Step(name="Summarize job results", id="summary", env=env, run=summary_script(upstream)),
    ]

    if diagnose:
        provider = get_provider(definition.provider)
        steps.append(
            Step(
                name="Download agent metrics",
                if_=failed,
                uses=config.actions.download_artifact,
                continue_on_error=True,
                with_={"name": "agent-metrics", "path": "/tmp/agent-metrics"},
            )
        )
        steps.append(Step(name="Checkout repository", if_=failed, uses=config.actions.checkout))
        for step in provider.install_steps(config):
            step.if_ = failed
            steps.append(step)
        steps.append(
            Step(
                name="Diagnose failure",
                id="diagnose",
                if_=failed,
                continue_on_error=True,
                env={**AUTH_ENV, "AGENT_NAME": definition.name, "REPORT_FILE": REPORT_FILE},
                run=diagnosis_prompt_script()
                + provider.command(DIAGNOSIS_FILE, READ_ONLY_TOOLS, output_file=DIAGNOSIS_OUTPUT, bypass_permissions=False),
            )
        )

    if create_issues:
        steps.append(
            Step(
                name="Create or update failure issue",
                if_=failed,
                env={"GH_TOKEN": expr("github.token"), "AGENT_NAME": definition.name, "REPORT_FILE": REPORT_FILE},
                run=issue_script(labels, assignees),
            )
        )

    logger.debug(
        "Audit for %s: diagnose=%s, create_issues=%s, labels=%s", definition.name, diagnose, create_issues, labels
    )

    return Job(
        runs_on=config.runner,
        needs=list(upstream),
        if_="always()",
        permissions={"issues": "write", "contents": "read", "actions": "read"},
        steps=steps,
    )
