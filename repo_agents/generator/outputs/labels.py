"""Label outputs. Both handlers only work with labels that already exist."""

from __future__ import annotations

import json
import shlex
from typing import List, Optional

from repo_agents.parser.schema import OutputConfig

from .base import (
    JsonField,
    JsonOutputHandler,
    RuntimeContext,
    fail,
    indent,
    labels_context_script,
    run_or_record,
    target_number,
)

_LABEL_FIELDS = (
    JsonField("labels", "[string]", True, "Label names"),
    JsonField("issue_number", "number", False, "Target issue or PR; defaults to the triggering one"),
)


def _blocked(config: OutputConfig) -> List[str]:
    return list(config.setting("blocked-labels", []) or [])


class _LabelHandler(JsonOutputHandler):
    fields = _LABEL_FIELDS

    def context_script(self, runtime: RuntimeContext) -> Optional[str]:
        return labels_context_script(runtime.repository)

    def extra_constraints(self, config: OutputConfig) -> List[str]:
        blocked = _blocked(config)
        if not blocked:
            return []
        return [f"Cannot use blocked labels: {', '.join(blocked)}"]

    def setup(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            f"BLOCKED_LABELS={shlex.quote(json.dumps(_blocked(config)))}",
            f'EXISTING_LABELS=$(gh api "repos/{runtime.repository}/labels" --paginate --jq \'.[].name\' 2>/dev/null | jq -R . | jq -s . || echo \'[]\')',
        ]

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return super().checks(config, runtime) + [
            "BLOCKED=$(jq -r --argjson blocked \"$BLOCKED_LABELS\" "
            "'[.labels[] | select(. as $l | $blocked | index($l))] | join(\", \")' \"$OUTPUT_FILE\")",
            'if [ -n "$BLOCKED" ]; then',
            *indent(fail(self.name, "The following labels are blocked: $BLOCKED"), 2),
            "fi",
            "MISSING=$(jq -r --argjson existing \"$EXISTING_LABELS\" "
            "'[.labels[] | select(. as $l | $existing | index($l) | not)] | join(\", \")' \"$OUTPUT_FILE\")",
            'if [ -n "$MISSING" ]; then',
            *indent(fail(self.name, "The following labels do not exist in the repository: $MISSING"), 2),
            "fi",
            *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
            'if [ -z "$ISSUE_NUMBER" ]; then',
            *indent(fail(self.name, "No issue or PR number available"), 2),
            "fi",
        ]


class AddLabelHandler(_LabelHandler):
    name = "add-label"
    title = "Add Labels"
    summary = "Add one or more existing labels to an issue or pull request."
    constraints = (
        "Labels must already exist in the repository (see available labels above)",
        "This operation adds to existing labels; it does not replace them",
    )
    example = {"issue_number": 42, "labels": ["bug", "priority: high"]}

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
            *run_or_record(
                self.name,
                [
                    "jq '{labels: .labels}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api "repos/{runtime.repository}/issues/$ISSUE_NUMBER/labels" --input - >/dev/null',
                ],
                "add labels to #$ISSUE_NUMBER",
            ),
        ]


class RemoveLabelHandler(_LabelHandler):
    name = "remove-label"
    title = "Remove Labels"
    summary = "Remove one or more labels from an issue or pull request."
    constraints = ("Removing a label that is not applied is a no-op",)
    example = {"issue_number": 42, "labels": ["needs-triage"]}

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
            "for LABEL in $(jq -r '.labels[] | @uri' \"$OUTPUT_FILE\"); do",
            f'  gh api -X DELETE "repos/{runtime.repository}/issues/$ISSUE_NUMBER/labels/$LABEL" >/dev/null 2>&1 || true',
            "done",
        ]
