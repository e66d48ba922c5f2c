"""
ir.py - Structured intermediate representation for generated workflows.

Generators build Workflow/Job/Step objects; render_workflow serializes the
whole tree once. Nothing in the generator package concatenates YAML text.

Usage:
    from repo_agents.generator.ir import Job, Step, Workflow, render_workflow

    workflow = Workflow(name="agent-triage", on={...}, jobs={"pre-flight": Job(...)})
    text = render_workflow(workflow)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from repo_agents.parser.frontmatter import dump_yaml

_JOB_KEY = re.compile(r"^  [A-Za-z0-9_-]+:$")
_STEPS_KEY = re.compile(r"^(\s*)steps:$")
_HEREDOC_START = re.compile(r"""(?<!<)<<-?\s*['"]?(\w+)['"]?$""")


def expr(expression: str) -> str:
    """Wrap an expression in workflow interpolation syntax."""
    return f"${{{{ {expression} }}}}"


def clean_script(script: str) -> str:
    """Normalize a shell script so it serializes as a literal block.

    Trailing whitespace and tabs would force quoted scalars. Heredoc bodies are
    data (agent instructions, skills) and are kept byte for byte; a body that
    carries tabs or trailing spaces serializes as a quoted scalar instead.
    """
    lines: List[str] = []
    terminator: Optional[str] = None
    for line in script.strip("\n").split("\n"):
        if terminator is not None:
            lines.append(line)
            if line == terminator:
                terminator = None
            continue
        line = line.rstrip().replace("\t", "  ")
        lines.append(line)
        opened = _HEREDOC_START.search(line)
        if opened:
            terminator = opened.group(1)
    return "\n".join(lines) + "\n"


def _compact(pairs: List[tuple]) -> Dict[str, Any]:
    return {key: value for key, value in pairs if value is not None}


@dataclass
class Step:
    """One workflow step: either ``uses`` an action or ``run``s a script."""

    name: Optional[str] = None
    id: Optional[str] = None
    if_: Optional[str] = None
    uses: Optional[str] = None
    with_: Optional[Dict[str, Any]] = None
    env: Optional[Dict[str, str]] = None
    continue_on_error: Optional[bool] = None
    run: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            [
                ("name", self.name),
                ("id", self.id),
                ("if", self.if_),
                ("uses", self.uses),
                ("with", self.with_),
                ("env", self.env),
                ("continue-on-error", self.continue_on_error),
                ("run", clean_script(self.run) if self.run is not None else None),
            ]
        )


@dataclass
class Job:
    steps: List[Step] = field(default_factory=list)
    runs_on: str = "ubuntu-latest"
    needs: Optional[Union[str, List[str]]] = None
    if_: Optional[str] = None
    permissions: Optional[Dict[str, str]] = None
    outputs: Optional[Dict[str, str]] = None
    strategy: Optional[Dict[str, Any]] = None
    env: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            [
                ("runs-on", self.runs_on),
                ("needs", self.needs),
                ("if", self.if_),
                ("permissions", self.permissions),
                ("outputs", self.outputs),
                ("strategy", self.strategy),
                ("env", self.env),
                ("steps", [step.to_dict() for step in self.steps]),
            ]
        )

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps if step.id]


@dataclass
class Workflow:
    name: str
    on: Dict[str, Any]
    jobs: Dict[str, Job] = field(default_factory=dict)
    permissions: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            [
                ("name", self.name),
                ("on", self.on),
                ("permissions", self.permissions),
                ("jobs", {job_id: job.to_dict() for job_id, job in self.jobs.items()}),
            ]
        )


# =============================================================================
# Serialization
# =============================================================================


def format_workflow_yaml(text: str) -> str:
    """Insert a blank line between jobs and between the steps of each job."""
    formatted: List[str] = []
    in_jobs = False
    first_job = True
    steps_indent: Optional[int] = None
    first_step = True

    for line in text.split("\n"):
        if line == "jobs:":
            in_jobs = True
            formatted.append(line)
            continue

        if steps_indent is not None and line.strip():
            indent = len(line) - len(line.lstrip(" "))
            if indent <= steps_indent:
                steps_indent = None

        if in_jobs and _JOB_KEY.match(line):
            if not first_job:
                formatted.append("")
            first_job = False
            formatted.append(line)
            continue

        steps = _STEPS_KEY.match(line)
        if in_jobs and steps:
            steps_indent = len(steps.group(1))
            first_step = True
            formatted.append(line)
            continue

        if steps_indent is not None and line.startswith(" " * (steps_indent + 2) + "- "):
            if not first_step:
                formatted.append("")
            first_step = False

        formatted.append(line)

    return "\n".join(formatted)


def render_workflow(workflow: Workflow) -> str:
    """Serialize a workflow IR to YAML text."""
    return format_workflow_yaml(dump_yaml(workflow.to_dict()))
