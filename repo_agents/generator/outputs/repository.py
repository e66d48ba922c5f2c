"""Repository outputs: files, branches, releases and workflow dispatches."""

from __future__ import annotations

import shlex
from typing import List, Optional, Sequence

from repo_agents.parser.schema import OutputConfig

from .base import (
    JsonField,
    JsonOutputHandler,
    RuntimeContext,
    fail,
    indent,
    read_field,
    require_branch_name,
    require_files,
    require_text,
    run_or_record,
)


def _allowed_paths_section(patterns: Sequence[str]) -> List[str]:
    return [
        "## Allowed File Paths",
        "",
        "You may only modify files matching these patterns:",
        *[f"- `{p}`" for p in patterns],
        "",
        "Attempts to modify files outside these patterns will fail.",
    ]


class UpdateFileHandler(JsonOutputHandler):
    name = "update-file"
    title = "Update Files"
    summary = "Commit file changes directly to a branch."
    fields = (
        JsonField("files", '[{"path": "string", "content": "string"}]', True, "Files with their complete file content"),
        JsonField("message", "string", True, "Commit message"),
        JsonField("branch", "string", False, "Target branch. Defaults to repository's default branch"),
    )
    constraints = ("File paths must match allowed patterns (see Allowed File Paths in the context)",)
    example = {
        "files": [{"path": "src/config.ts", "content": "export const retries = 3;\n"}],
        "message": "Raise default retry count",
        "branch": "main",
    }

    def context_script(self, runtime: RuntimeContext) -> Optional[str]:
        if not runtime.allowed_paths:
            return None
        section = ["", *_allowed_paths_section(runtime.allowed_paths)]
        lines = ["{", *[f"  echo {shlex.quote(line)}" if line else '  echo ""' for line in section], "} >> /tmp/context.txt"]
        return "# Allowed file paths for update-file\n" + "\n".join(lines) + "\n"

    def extra_constraints(self, config: OutputConfig) -> List[str]:
        return ["Commits must be signed"] if self.signed(config) else []

    def setup(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        patterns = " ".join(shlex.quote(p) for p in runtime.allowed_paths)
        return [f"ALLOWED_PATTERNS=({patterns})"]

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *require_files(self.name),
            *require_text(self.name, "message", "MESSAGE"),
            "PATH_FAILED=false",
            "while IFS= read -r FILE_PATH; do",
            "  MATCHED=false",
            '  for PATTERN in "${ALLOWED_PATTERNS[@]}"; do',
            "    # Unquoted pattern: glob match, where * also spans '/'",
            '    if [[ "$FILE_PATH" == $PATTERN ]]; then',
            "      MATCHED=true",
            "      break",
            "    fi",
            "  done",
            '  if [ "$MATCHED" = false ]; then',
            '    echo "- **update-file**: $FILE_PATH does not match allowed patterns" >> "$ERRORS_FILE"',
            "    PATH_FAILED=true",
            "  fi",
            "done < <(jq -r '.files[].path' \"$OUTPUT_FILE\")",
            'if [ "$PATH_FAILED" = true ]; then',
            "  VALIDATION_FAILED=true",
            "  continue",
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("MESSAGE", "message"),
            "BRANCH=$(jq -r '.branch // \"main\"' \"$OUTPUT_FILE\")",
            "FILE_TOTAL=$(jq '.files | length' \"$OUTPUT_FILE\")",
            'for i in $(seq 0 $((FILE_TOTAL - 1))); do',
            '  FILE_PATH=$(jq -r ".files[$i].path" "$OUTPUT_FILE")',
            '  CONTENT_B64=$(jq -r ".files[$i].content" "$OUTPUT_FILE" | base64 -w 0)',
            f'  FILE_SHA=$(gh api "repos/{repo}/contents/$FILE_PATH?ref=$BRANCH" --jq \'.sha\' 2>/dev/null || echo "")',
            '  if [ -n "$FILE_SHA" ]; then',
            "    # File exists - update it",
            '    PAYLOAD=$(jq -n --arg m "$MESSAGE" --arg c "$CONTENT_B64" --arg b "$BRANCH" --arg s "$FILE_SHA" \\',
            "      '{message: $m, content: $c, branch: $b, sha: $s}')",
            "  else",
            "    # File doesn't exist - create it",
            '    PAYLOAD=$(jq -n --arg m "$MESSAGE" --arg c "$CONTENT_B64" --arg b "$BRANCH" \\',
            "      '{message: $m, content: $c, branch: $b}')",
            "  fi",
            *indent(
                run_or_record(
                    self.name,
                    [f'echo "$PAYLOAD" | gh api -X PUT "repos/{repo}/contents/$FILE_PATH" --input - >/dev/null'],
                    "update $FILE_PATH",
                ),
                2,
            ),
            "done",
        ]


class CreateBranchHandler(JsonOutputHandler):
    name = "create-branch"
    title = "Create Branch"
    summary = "Create a new branch from an existing ref or commit."
    fields = (
        JsonField("branch", "string", True, "Name of the branch to create"),
        JsonField("from_ref", "string", False, "Branch to start from (default main)"),
        JsonField("from_sha", "string", False, "Commit SHA to start from; overrides from_ref"),
    )
    constraints = ("Branch name must be valid (letters, digits, '/', '_', '.', '-')", "Branch must not already exist")
    example = {"branch": "feature/new-feature", "from_ref": "main"}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *super().checks(config, runtime),
            *require_branch_name(self.name),
            'if git ls-remote --exit-code --heads origin "$BRANCH" >/dev/null 2>&1; then',
            *indent(fail(self.name, "Branch '$BRANCH' already exists"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("BRANCH", "branch"),
            "FROM_REF=$(jq -r '.from_ref // \"main\"' \"$OUTPUT_FILE\")",
            read_field("TARGET_SHA", "from_sha"),
            'if [ -z "$TARGET_SHA" ]; then',
            f'  TARGET_SHA=$(gh api "repos/{repo}/git/refs/heads/$FROM_REF" --jq \'.object.sha\')',
            "fi",
            *run_or_record(
                self.name,
                [f'gh api "repos/{repo}/git/refs" -f ref="refs/heads/$BRANCH" -f sha="$TARGET_SHA" >/dev/null'],
                "create branch $BRANCH",
            ),
        ]


class DeleteBranchHandler(JsonOutputHandler):
    name = "delete-branch"
    title = "Delete Branch"
    summary = "Delete a branch that is no longer needed."
    fields = (JsonField("branch", "string", True, "Name of the branch to delete"),)
    constraints = ("The default branch cannot be deleted", "Protected branches cannot be deleted")
    example = {"branch": "feature/merged-work"}

    def setup(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [f"DEFAULT_BRANCH=$(gh api \"repos/{runtime.repository}\" --jq '.default_branch')"]

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *super().checks(config, runtime),
            'if [ "$BRANCH" = "$DEFAULT_BRANCH" ]; then',
            *indent(fail(self.name, "Cannot delete the default branch '$BRANCH'"), 2),
            "fi",
            f'if [ "$(gh api "repos/{runtime.repository}/branches/$BRANCH" --jq \'.protected\' 2>/dev/null)" = "true" ]; then',
            *indent(fail(self.name, "Cannot delete protected branch '$BRANCH'"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("BRANCH", "branch"),
            *run_or_record(
                self.name,
                [f'gh api -X DELETE "repos/{runtime.repository}/git/refs/heads/$BRANCH"'],
                "delete branch $BRANCH",
            ),
        ]


class CreateReleaseHandler(JsonOutputHandler):
    name = "create-release"
    title = "Create Release"
    summary = "Publish a release (and its tag) in this repository."
    fields = (
        JsonField("tag_name", "string", True, "Tag to create, e.g. v1.2.3"),
        JsonField("name", "string", False, "Release title (defaults to the tag)"),
        JsonField("body", "string", False, "Release notes (markdown)"),
        JsonField("draft", "boolean", False, "Create as a draft"),
        JsonField("prerelease", "boolean", False, "Mark as a pre-release"),
        JsonField("generate_release_notes", "boolean", False, "Let GitHub generate notes from merged PRs"),
        JsonField("target_commitish", "string", False, "Branch or commit to tag (default main)"),
    )
    constraints = ("Tag must not already exist",)
    example = {
        "tag_name": "v1.2.3",
        "name": "Release v1.2.3",
        "body": "Bug fixes and performance improvements.",
        "draft": False,
        "prerelease": False,
        "generate_release_notes": True,
    }

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *super().checks(config, runtime),
            f'if gh release view "$TAG_NAME" --repo "{runtime.repository}" >/dev/null 2>&1; then',
            *indent(fail(self.name, "Release '$TAG_NAME' already exists"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("TAG_NAME", "tag_name"),
            "NAME=$(jq -r '.name // .tag_name' \"$OUTPUT_FILE\")",
            "BODY=$(jq -r '.body // \"\"' \"$OUTPUT_FILE\")",
            "DRAFT=$(jq -r '.draft // false' \"$OUTPUT_FILE\")",
            "PRERELEASE=$(jq -r '.prerelease // false' \"$OUTPUT_FILE\")",
            "GENERATE_NOTES=$(jq -r '.generate_release_notes // false' \"$OUTPUT_FILE\")",
            "TARGET=$(jq -r '.target_commitish // \"main\"' \"$OUTPUT_FILE\")",
            f'RELEASE_ARGS=(--repo "{runtime.repository}" --title "$NAME" --target "$TARGET" --notes "$BODY")',
            'if [ "$DRAFT" = "true" ]; then RELEASE_ARGS+=(--draft); fi',
            'if [ "$PRERELEASE" = "true" ]; then RELEASE_ARGS+=(--prerelease); fi',
            'if [ "$GENERATE_NOTES" = "true" ]; then RELEASE_ARGS+=(--generate-notes); fi',
            *run_or_record(
                self.name,
                ['gh release create "$TAG_NAME" "${RELEASE_ARGS[@]}"'],
                "create release $TAG_NAME",
            ),
        ]


class TriggerWorkflowHandler(JsonOutputHandler):
    name = "trigger-workflow"
    title = "Trigger Workflow"
    summary = "Dispatch a GitHub Actions workflow."
    fields = (
        JsonField("workflow", "string", True, 'Workflow filename (e.g., "deploy.yml") or workflow ID'),
        JsonField("ref", "string", False, 'Git ref to run the workflow on (default "main")'),
        JsonField("inputs", "object", False, "Input key-value pairs for the workflow"),
    )
    constraints = (
        "Workflow must have a `workflow_dispatch` trigger",
        "Inputs must match the workflow's input schema",
    )
    example = {"workflow": "deploy.yml", "ref": "main", "inputs": {"environment": "staging"}}

    def context_script(self, runtime: RuntimeContext) -> Optional[str]:
        return f"""# Fetch available workflows for context
WORKFLOWS_LIST=$(gh api "repos/{runtime.repository}/actions/workflows" --jq '[.workflows[] | "\\(.name) (\\(.path))"] | join(", ")' 2>/dev/null || echo "No workflows available")
{{
  echo ""
  echo "## Available Workflows"
  echo ""
  echo "$WORKFLOWS_LIST"
  echo ""
  echo "**Important**: Use the workflow filename (e.g., \\"deploy.yml\\") when triggering workflows."
}} >> /tmp/context.txt
"""

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *super().checks(config, runtime),
            "if ! jq -e '(.inputs // {}) | type == \"object\"' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
            *indent(fail(self.name, "inputs must be an object in $OUTPUT_FILE"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("WORKFLOW", "workflow"),
            *run_or_record(
                self.name,
                [
                    "jq '{ref: (.ref // \"main\"), inputs: (.inputs // {})}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api -X POST "repos/{runtime.repository}/actions/workflows/$WORKFLOW/dispatches" --input -',
                ],
                "trigger workflow '$WORKFLOW'",
            ),
        ]
