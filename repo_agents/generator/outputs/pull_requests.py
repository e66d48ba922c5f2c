"""Pull request outputs."""

from __future__ import annotations

from typing import List

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

MERGE_METHODS = ("merge", "squash", "rebase")

BOT_NAME = "github-actions[bot]"
BOT_EMAIL = "41898282+github-actions[bot]@users.noreply.github.com"

_PR_NUMBER = JsonField("pr_number", "number", True, "Pull request number")


def _require_pr_number(name: str) -> List[str]:
    return [
        read_field("PR_NUMBER", "pr_number"),
        'if [ -z "$PR_NUMBER" ]; then',
        *indent(fail(name, "pr_number is required in $OUTPUT_FILE"), 2),
        "fi",
        'if ! echo "$PR_NUMBER" | grep -qE \'^[0-9]+$\'; then',
        *indent(fail(name, "pr_number must be a number in $OUTPUT_FILE"), 2),
        "fi",
    ]


def _require_open_pr(name: str, repository: str) -> List[str]:
    return [
        f'PR_STATE=$(gh api "repos/{repository}/pulls/$PR_NUMBER" --jq \'.state\' 2>/dev/null || echo "missing")',
        'if [ "$PR_STATE" != "open" ]; then',
        '  echo "- **' + name + '**: PR #$PR_NUMBER is not open (state: $PR_STATE)" >> "$ERRORS_FILE"',
        "  continue",
        "fi",
    ]


class CreatePrHandler(JsonOutputHandler):
    name = "create-pr"
    title = "Create Pull Request"
    summary = "Create a pull request with code changes on a new branch."
    fields = (
        JsonField("branch", "string", True, "New branch name for the changes"),
        JsonField("title", "string", True, "Pull request title"),
        JsonField("body", "string", True, "Pull request description (markdown)"),
        JsonField("base", "string", False, "Target branch. Defaults to repository's default branch"),
        JsonField("files", '[{"path": "string", "content": "string"}]', True, "Files to write, with their complete file content"),
    )
    constraints = (
        "Branch names may only use [a-zA-Z0-9/_.-]",
        "The branch must not already have an open pull request",
    )
    example = {
        "branch": "fix/validator-null-check",
        "title": "Fix null check in validator",
        "body": "Guards against an undefined config object.",
        "files": [{"path": "src/validator.ts", "content": "export function validate() {}\n"}],
    }
    default_max = 10

    def extra_constraints(self, config: OutputConfig) -> List[str]:
        return ["Commits must be signed"] if self.signed(config) else []

    def setup(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            f'git config user.name "{BOT_NAME}"',
            f'git config user.email "{BOT_EMAIL}"',
        ]

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *require_text(self.name, "branch", "BRANCH"),
            *require_text(self.name, "title", "TITLE"),
            *require_text(self.name, "body", "BODY"),
            *require_files(self.name),
            *require_branch_name(self.name),
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        commit = 'git commit -S -m "$TITLE"' if self.signed(config) else 'git commit -m "$TITLE"'
        return [
            read_field("BRANCH", "branch"),
            read_field("TITLE", "title"),
            read_field("BODY", "body"),
            read_field("BASE", "base"),
            'if [ -z "$BASE" ]; then',
            f"  BASE=$(gh api \"repos/{repo}\" --jq '.default_branch')",
            "fi",
            f'if gh pr view "$BRANCH" --repo "{repo}" --json state --jq \'.state\' 2>/dev/null | grep -q OPEN; then',
            '  echo "- **create-pr**: PR already exists for branch $BRANCH" >> "$ERRORS_FILE"',
            "  continue",
            "fi",
            'git fetch origin "$BASE"',
            'git checkout -b "$BRANCH" "origin/$BASE"',
            "FILE_TOTAL=$(jq '.files | length' \"$OUTPUT_FILE\")",
            'for i in $(seq 0 $((FILE_TOTAL - 1))); do',
            '  FILE_PATH=$(jq -r ".files[$i].path" "$OUTPUT_FILE")',
            '  mkdir -p "$(dirname "$FILE_PATH")"',
            '  jq -r ".files[$i].content" "$OUTPUT_FILE" > "$FILE_PATH"',
            '  git add "$FILE_PATH"',
            "done",
            *run_or_record(self.name, [commit, 'git push origin "$BRANCH"'], "push branch $BRANCH"),
            *run_or_record(
                self.name,
                [
                    f'gh pr create --repo "{repo}" --title "$TITLE" --body "$BODY" \\',
                    '  --base "$BASE" --head "$BRANCH"',
                ],
                "create PR for $BRANCH",
            ),
            'git checkout "$BASE"',
        ]


class ClosePrHandler(JsonOutputHandler):
    name = "close-pr"
    title = "Close Pull Request"
    summary = "Close a pull request without merging it."
    fields = (
        _PR_NUMBER,
        JsonField("comment", "string", False, "Comment explaining why the PR is closed"),
    )
    example = {"pr_number": 17, "comment": "Superseded by #21."}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return _require_pr_number(self.name)

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("PR_NUMBER", "pr_number"),
            'if jq -e \'.comment // empty\' "$OUTPUT_FILE" >/dev/null 2>&1; then',
            "  jq '{body: .comment}' \"$OUTPUT_FILE\" | \\",
            f'    gh api "repos/{repo}/issues/$PR_NUMBER/comments" --input - >/dev/null || true',
            "fi",
            *run_or_record(
                self.name,
                [f'gh api -X PATCH "repos/{repo}/pulls/$PR_NUMBER" -f state=closed >/dev/null'],
                "close PR #$PR_NUMBER",
            ),
        ]


class MergePrHandler(JsonOutputHandler):
    name = "merge-pr"
    title = "Merge Pull Request"
    summary = "Merge an open pull request. The PR is merged immediately; there is no review step."
    fields = (
        _PR_NUMBER,
        JsonField("merge_method", '"merge" | "squash" | "rebase"', False, "Merge strategy (default merge)"),
        JsonField("commit_title", "string", False, "Title of the merge commit"),
        JsonField("commit_message", "string", False, "Body of the merge commit"),
        JsonField("delete_branch", "boolean", False, "Delete the head branch after merging (default true)"),
    )
    constraints = (
        "PR must be mergeable (checks passing, no conflicts)",
        "Merge method must be allowed by the repository settings",
    )
    example = {
        "pr_number": 123,
        "merge_method": "squash",
        "commit_title": "Add retry to webhook client",
        "commit_message": "Retries transient 5xx responses.",
        "delete_branch": True,
    }

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return _require_pr_number(self.name) + [
            read_field("MERGE_METHOD", "merge_method", '"merge"'),
            f"if ! echo \"$MERGE_METHOD\" | grep -qE '^({'|'.join(MERGE_METHODS)})$'; then",
            *indent(fail(self.name, f"merge_method must be one of: {'|'.join(MERGE_METHODS)}"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("PR_NUMBER", "pr_number"),
            read_field("MERGE_METHOD", "merge_method", '"merge"'),
            read_field("COMMIT_TITLE", "commit_title", '""'),
            read_field("COMMIT_MESSAGE", "commit_message", '""'),
            "DELETE_BRANCH=$(jq -r 'if .delete_branch == false then \"false\" else \"true\" end' \"$OUTPUT_FILE\")",
            *_require_open_pr(self.name, repo),
            f'MERGE_ARGS=(--repo "{repo}" "--$MERGE_METHOD")',
            'if [ -n "$COMMIT_TITLE" ]; then MERGE_ARGS+=(--subject "$COMMIT_TITLE"); fi',
            'if [ -n "$COMMIT_MESSAGE" ]; then MERGE_ARGS+=(--body "$COMMIT_MESSAGE"); fi',
            'if [ "$DELETE_BRANCH" = "true" ]; then MERGE_ARGS+=(--delete-branch); fi',
            *run_or_record(
                self.name,
                ['gh pr merge "$PR_NUMBER" "${MERGE_ARGS[@]}"'],
                "merge PR #$PR_NUMBER",
            ),
        ]


class ApprovePrHandler(JsonOutputHandler):
    name = "approve-pr"
    title = "Approve Pull Request"
    summary = "Submit an approving review on a pull request."
    fields = (
        _PR_NUMBER,
        JsonField("body", "string", False, "Review comment"),
    )
    constraints = ("The workflow's own pull requests cannot be approved by it",)
    example = {"pr_number": 123, "body": "LGTM: tests cover the new branch."}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return _require_pr_number(self.name)

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("PR_NUMBER", "pr_number"),
            *_require_open_pr(self.name, repo),
            *run_or_record(
                self.name,
                [
                    "jq '{event: \"APPROVE\"} + (if .body then {body} else {} end)' \"$OUTPUT_FILE\" | \\",
                    f'  gh api "repos/{repo}/pulls/$PR_NUMBER/reviews" --input - >/dev/null',
                ],
                "approve PR #$PR_NUMBER",
            ),
        ]


class RequestReviewHandler(JsonOutputHandler):
    name = "request-review"
    title = "Request Review"
    summary = "Request reviews on a pull request from users or teams."
    fields = (
        _PR_NUMBER,
        JsonField("reviewers", "[string]", False, "Usernames to request"),
        JsonField("team_reviewers", "[string]", False, "Team slugs to request"),
    )
    constraints = (
        "At least one of reviewers or team_reviewers is required",
        "The PR author cannot be requested as a reviewer",
    )
    example = {"pr_number": 123, "reviewers": ["octocat"], "team_reviewers": ["backend"]}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return _require_pr_number(self.name) + [
            "if ! jq -e '((.reviewers // []) + (.team_reviewers // [])) | length > 0' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
            *indent(fail(self.name, "At least one reviewer or team_reviewer is required in $OUTPUT_FILE"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("PR_NUMBER", "pr_number"),
            *run_or_record(
                self.name,
                [
                    "jq '{reviewers: (.reviewers // []), team_reviewers: (.team_reviewers // [])}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api "repos/{repo}/pulls/$PR_NUMBER/requested_reviewers" --input - >/dev/null',
                ],
                "request review on PR #$PR_NUMBER",
            ),
        ]
