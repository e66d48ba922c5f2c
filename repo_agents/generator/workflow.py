"""
workflow.py - The per-agent workflow.

Job graph, in order:

    pre-flight -> [collect-inputs] -> run-agent -> [execute-outputs]
               -> [report-results] -> audit-report

Bracketed jobs exist only when the agent declares a ``context`` spec or
outputs. The workflow is started by the dispatcher with ``workflow_dispatch``
and a ``context-run-id`` naming the dispatcher run whose context artifact
describes the originating event.

Usage:
    from repo_agents.generator.workflow import generate_workflow

    workflow = generate_workflow(definition, config)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from repo_agents.config import CompilerConfig
from repo_agents.naming import agent_workflow_name
from repo_agents.parser.definition import AgentDefinition

from .audit import audit_job
from .context_collector import collect_inputs_job
from .ir import Job, Step, Workflow, expr
from .outputs import RuntimeContext, get_output_handler
from .outputs.base import ERRORS_DIR, OUTPUTS_DIR
from .preflight import (
    CONTEXT_RUN_ID,
    DISPATCH_CONTEXT_DIR,
    app_token_step,
    download_dispatch_context_step,
    preflight_job,
)
from .providers import OUTPUT_FILE, get_provider, run_agent_step

logger = logging.getLogger(__name__)

CONTEXT_FILE = "/tmp/context.txt"
SKILLS_FILE = "/tmp/claude/CLAUDE.md"
COLLECTED_DIR = "/tmp/collected-inputs"
HEREDOC_DELIMITER = "AGENT_INSTRUCTIONS_EOF"


# =============================================================================
# Triggers and permissions
# =============================================================================


def workflow_triggers(definition: AgentDefinition) -> Dict[str, Any]:
    """``workflow_dispatch`` with the context-run-id input plus the agent's declared inputs."""
    inputs: Dict[str, Any] = {
        CONTEXT_RUN_ID: {
            "description": "Dispatcher run ID holding the event context artifact",
            "required": False,
            "type": "string",
            "default": "",
        }
    }
    dispatch = definition.triggers.workflow_dispatch
    if dispatch is not None and dispatch.inputs:
        for name, spec in dispatch.inputs.items():
            inputs[name] = spec.model_dump(exclude_none=True)
    return {"workflow_dispatch": {"inputs": inputs}}


def workflow_permissions(definition: AgentDefinition) -> Dict[str, str]:
    permissions: Dict[str, str] = {}
    if definition.permissions is not None:
        for key, level in definition.permissions.model_dump(exclude_none=True).items():
            permissions[key.replace("_", "-")] = level
    permissions.setdefault("contents", "read")
    permissions["actions"] = "read"
    return permissions


# =============================================================================
# Instructions
# =============================================================================


def escape_expressions(text: str) -> str:
    """Neutralise ``${{`` so the runner does not evaluate expressions in agent text."""
    return text.replace("${{", "${{ '${{' }}")


def heredoc_delimiter(text: str, base: str = HEREDOC_DELIMITER) -> str:
    """A heredoc terminator that does not occur as a line of ``text``."""
    lines = {line.strip() for line in text.split("\n")}
    delimiter = base
    counter = 0
    while delimiter in lines:
        counter += 1
        delimiter = f"{base}_{counter}"
    return delimiter


def heredoc(text: str, target: str, append: bool = False) -> str:
    delimiter = heredoc_delimiter(text)
    redirect = ">>" if append else ">"
    return f"cat {redirect} {target} <<'{delimiter}'\n{escape_expressions(text)}\n{delimiter}\n"


def skills_document(definition: AgentDefinition) -> str:
    sections = [
        "# Available Output Skills",
        "",
        f"Write each operation as a JSON file under `{OUTPUTS_DIR}/`. Files are validated after you finish;",
        "an invalid file prevents every operation of its type from running.",
    ]
    for name, config in definition.outputs.items():
        sections.extend(["", get_output_handler(name).skill(config)])
    return "\n".join(sections) + "\n"


def context_script(definition: AgentDefinition, runtime: RuntimeContext) -> str:
    lines = [
        f"mkdir -p /tmp/claude {OUTPUTS_DIR}",
        "{",
        '  echo "# Event Context"',
        '  echo ""',
        f'  if [ -f {DISPATCH_CONTEXT_DIR}/context.json ]; then',
        "    echo '```json'",
        f"    cat {DISPATCH_CONTEXT_DIR}/context.json",
        "    echo '```'",
        "  else",
        '    echo "- Repository: $GITHUB_REPOSITORY"',
        '    echo "- Event: $GITHUB_EVENT_NAME"',
        '    echo "- Actor: $GITHUB_ACTOR"',
        "  fi",
        '  echo ""',
        f"}} > {CONTEXT_FILE}",
    ]
    if definition.context is not None:
        lines.extend(
            [
                "",
                f"if [ -f {COLLECTED_DIR}/inputs.md ]; then",
                f"  cat {COLLECTED_DIR}/inputs.md >> {CONTEXT_FILE}",
                f'  echo "" >> {CONTEXT_FILE}',
                "fi",
            ]
        )
    for name in definition.outputs:
        script = get_output_handler(name).context_script(runtime)
        if script:
            lines.extend(["", script.rstrip("\n")])
    if definition.outputs:
        lines.extend(["", heredoc(skills_document(definition), SKILLS_FILE).rstrip("\n")])
    lines.extend(
        [
            "",
            "{",
            '  echo ""',
            '  echo "---"',
            '  echo ""',
            '  echo "# Instructions"',
            '  echo ""',
            f"}} >> {CONTEXT_FILE}",
            heredoc(definition.body, CONTEXT_FILE, append=True).rstrip("\n"),
        ]
    )
    return "\n".join(lines) + "\n"


# =============================================================================
# Jobs
# =============================================================================


def runtime_context(definition: AgentDefinition) -> RuntimeContext:
    return RuntimeContext(allowed_paths=tuple(definition.allowed_paths))


def run_agent_job(definition: AgentDefinition, config: CompilerConfig) -> Job:
    provider = get_provider(definition.provider)
    has_outputs = bool(definition.outputs)
    model = definition.header.claude.model if definition.header.claude else None

    needs: List[str] = ["pre-flight"]
    condition = "needs.pre-flight.outputs.should-run == 'true'"
    if definition.context is not None:
        needs.append("collect-inputs")
        condition += " && needs.collect-inputs.outputs.has-inputs == 'true'"

    steps: List[Step] = [
        Step(name="Checkout repository", uses=config.actions.checkout),
        download_dispatch_context_step(config),
    ]
    if definition.context is not None:
        steps.append(
            Step(
                name="Download collected inputs",
                uses=config.actions.download_artifact,
                with_={"name": "collected-inputs", "path": COLLECTED_DIR},
            )
        )
    steps.extend(provider.install_steps(config))
    steps.append(
        Step(
            name="Prepare agent context",
            env={"GH_TOKEN": expr("github.token")},
            run=context_script(definition, runtime_context(definition)),
        )
    )
    steps.append(run_agent_step(provider, has_outputs, model=model))
    if has_outputs:
        steps.append(
            Step(
                name="Upload agent outputs",
                uses=config.actions.upload_artifact,
                with_={"name": "agent-outputs", "path": f"{OUTPUTS_DIR}/", "if-no-files-found": "ignore"},
            )
        )
    steps.append(
        Step(
            name="Upload agent metrics",
            if_="always()",
            uses=config.actions.upload_artifact,
            with_={"name": "agent-metrics", "path": OUTPUT_FILE, "if-no-files-found": "ignore"},
        )
    )
    return Job(runs_on=config.runner, needs=needs, if_=condition, steps=steps)


def execute_outputs_job(definition: AgentDefinition, config: CompilerConfig) -> Optional[Job]:
    """One matrix unit per declared output; siblings keep running when one fails."""
    if not definition.outputs:
        return None
    runtime = runtime_context(definition)
    steps: List[Step] = [
        Step(name="Checkout repository", uses=config.actions.checkout, with_={"fetch-depth": 0}),
        app_token_step(),
        Step(
            name="Download agent outputs",
            uses=config.actions.download_artifact,
            continue_on_error=True,
            with_={"name": "agent-outputs", "path": OUTPUTS_DIR},
        ),
        Step(name="Prepare error directory", run=f"mkdir -p {OUTPUTS_DIR} {ERRORS_DIR}"),
    ]
    for name, output_config in definition.outputs.items():
        handler = get_output_handler(name)
        steps.append(
            Step(
                name=f"Execute {name}",
                if_=f"matrix.output == '{name}'",
                run=handler.validation_script(output_config, runtime),
            )
        )
    steps.append(
        Step(
            name="Fail on validation errors",
            run=(
                f'ERRORS_FILE={ERRORS_DIR}/{expr("matrix.output")}.txt\n'
                'if [ -s "$ERRORS_FILE" ]; then\n'
                '  cat "$ERRORS_FILE"\n'
                "  exit 1\n"
                "fi\n"
            ),
        )
    )
    steps.append(
        Step(
            name="Upload validation errors",
            if_="always()",
            uses=config.actions.upload_artifact,
            with_={
                "name": f"validation-errors-{expr('matrix.output')}",
                "path": f"{ERRORS_DIR}/",
                "if-no-files-found": "ignore",
            },
        )
    )
    return Job(
        runs_on=config.runner,
        needs=["pre-flight", "run-agent"],
        if_="needs.run-agent.result == 'success'",
        strategy={"matrix": {"output": list(definition.outputs)}, "fail-fast": False},
        steps=steps,
    )


def report_results_script() -> str:
    return f"""ERRORS=$(find {ERRORS_DIR} -type f -name '*.txt' -size +0 2>/dev/null | sort)
if [ -z "$ERRORS" ]; then
  echo "✓ All outputs executed successfully"
  exit 0
fi

{{
  echo "## ⚠️ Agent output errors: $AGENT_NAME"
  echo ""
  echo "Some outputs failed validation or execution:"
  echo ""
  for FILE in $ERRORS; do
    cat "$FILE"
  done
  echo ""
  echo "Run: $GITHUB_SERVER_URL/$GITHUB_REPOSITORY/actions/runs/$GITHUB_RUN_ID"
}} > /tmp/output-errors.md

cat /tmp/output-errors.md >> "$GITHUB_STEP_SUMMARY"
if [ -n "$TARGET_NUMBER" ]; then
  gh issue comment "$TARGET_NUMBER" --repo "$GITHUB_REPOSITORY" --body-file /tmp/output-errors.md || true
fi
exit 1
"""


def report_results_job(definition: AgentDefinition, config: CompilerConfig) -> Optional[Job]:
    """Collects every unit's error file and reports them once."""
    if not definition.outputs:
        return None
    return Job(
        runs_on=config.runner,
        needs=["pre-flight", "execute-outputs"],
        if_="always() && needs.execute-outputs.result != 'skipped'",
        steps=[
            app_token_step(),
            Step(
                name="Download validation errors",
                uses=config.actions.download_artifact,
                continue_on_error=True,
                with_={"pattern": "validation-errors-*", "path": ERRORS_DIR, "merge-multiple": True},
            ),
            Step(
                name="Report output errors",
                env={
                    "AGENT_NAME": definition.name,
                    "TARGET_NUMBER": expr("needs.pre-flight.outputs.issue-or-pr-number"),
                },
                run=report_results_script(),
            ),
        ],
    )


def generate_workflow(definition: AgentDefinition, config: CompilerConfig) -> Workflow:
    """Build the complete per-agent workflow."""
    jobs: Dict[str, Job] = {"pre-flight": preflight_job(definition, config)}

    collect = collect_inputs_job(definition, config)
    if collect is not None:
        jobs["collect-inputs"] = collect

    jobs["run-agent"] = run_agent_job(definition, config)

    execute = execute_outputs_job(definition, config)
    if execute is not None:
        jobs["execute-outputs"] = execute
        report = report_results_job(definition, config)
        if report is not None:
            jobs["report-results"] = report

    jobs["audit-report"] = audit_job(definition, config, upstream=list(jobs))

    logger.debug("Workflow for %s: %s", definition.name, " -> ".join(jobs))
    return Workflow(
        name=agent_workflow_name(definition.name),
        on=workflow_triggers(definition),
        permissions=workflow_permissions(definition),
        jobs=jobs,
    )
