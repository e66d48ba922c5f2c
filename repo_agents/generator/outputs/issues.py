"""Issue outputs: create, edit, close/reopen, assign, pin, milestone, convert."""

from __future__ import annotations

from typing import List, Optional

from repo_agents.parser.schema import OutputConfig

from .base import (
    JsonField,
    JsonOutputHandler,
    RuntimeContext,
    fail,
    indent,
    read_field,
    run_or_record,
    target_number,
)

_ISSUE_NUMBER_OPTIONAL = JsonField(
    "issue_number", "number", False, "Target issue; defaults to the triggering one"
)
_ISSUE_NUMBER_REQUIRED = JsonField("issue_number", "number", True, "Target issue number")

CLOSE_REASONS = ("completed", "not_planned")


def _require_issue_number(name: str) -> List[str]:
    return [
        read_field("ISSUE_NUMBER", "issue_number"),
        'if [ -z "$ISSUE_NUMBER" ]; then',
        *indent(fail(name, "issue_number is required in $OUTPUT_FILE"), 2),
        "fi",
        'if ! echo "$ISSUE_NUMBER" | grep -qE \'^[0-9]+$\'; then',
        *indent(fail(name, "issue_number must be a number in $OUTPUT_FILE"), 2),
        "fi",
    ]


def _owner_and_repo(repository: str) -> List[str]:
    return [
        f'OWNER=$(echo "{repository}" | cut -d/ -f1)',
        f'REPO_NAME=$(echo "{repository}" | cut -d/ -f2)',
    ]


def _optional_comment(repository: str) -> List[str]:
    return [
        'if jq -e \'.comment // empty\' "$OUTPUT_FILE" >/dev/null 2>&1; then',
        "  jq '{body: .comment}' \"$OUTPUT_FILE\" | \\",
        f'    gh api "repos/{repository}/issues/$ISSUE_NUMBER/comments" --input - >/dev/null || true',
        "fi",
    ]


class CreateIssueHandler(JsonOutputHandler):
    name = "create-issue"
    title = "Create Issue"
    summary = "Open a new issue in this repository."
    fields = (
        JsonField("title", "string", True, "Issue title"),
        JsonField("body", "string", True, "Markdown issue body"),
        JsonField("labels", "[string]", False, "Existing labels to apply"),
        JsonField("assignees", "[string]", False, "Usernames to assign"),
    )
    constraints = ("Title must be non-empty",)
    example = {"title": "Flaky test in parser suite", "body": "Observed intermittently...", "labels": ["bug"]}

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return run_or_record(
            self.name,
            [
                "jq '{title, body} + (if .labels then {labels} else {} end)"
                " + (if .assignees then {assignees} else {} end)' \"$OUTPUT_FILE\" | \\",
                f'  gh api "repos/{runtime.repository}/issues" --input - --jq \'.html_url\'',
            ],
            "create issue",
        )


class EditIssueHandler(JsonOutputHandler):
    name = "edit-issue"
    title = "Edit Issue"
    summary = "Update the title, body, labels, or assignees of an issue."
    fields = (
        _ISSUE_NUMBER_OPTIONAL,
        JsonField("title", "string", False, "New title"),
        JsonField("body", "string", False, "New body (replaces the existing body)"),
        JsonField("labels", "[string]", False, "Replacement label set"),
        JsonField("assignees", "[string]", False, "Replacement assignee set"),
    )
    constraints = ("At least one of title, body, labels, assignees must be present",)
    example = {"issue_number": 42, "title": "Parser: handle CRLF line endings"}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            "if ! jq -e '[.title, .body, .labels, .assignees] | any(. != null)' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
            *indent(fail(self.name, "At least one of title, body, labels, assignees is required in $OUTPUT_FILE"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_number),
            *run_or_record(
                self.name,
                [
                    "jq 'del(.issue_number)' \"$OUTPUT_FILE\" | \\",
                    f'  gh api -X PATCH "repos/{runtime.repository}/issues/$ISSUE_NUMBER" --input - >/dev/null',
                ],
                "edit issue #$ISSUE_NUMBER",
            ),
        ]


class CloseIssueHandler(JsonOutputHandler):
    name = "close-issue"
    title = "Close Issue"
    summary = "Close an issue, optionally leaving a closing comment."
    fields = (
        _ISSUE_NUMBER_OPTIONAL,
        JsonField("reason", "string", False, f"One of: {', '.join(CLOSE_REASONS)} (default completed)"),
        JsonField("comment", "string", False, "Comment posted before closing"),
    )
    example = {"issue_number": 42, "reason": "not_planned", "comment": "Closing as a duplicate of #12."}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("REASON", "reason", '"completed"'),
            f"if ! echo \"$REASON\" | grep -qE '^({'|'.join(CLOSE_REASONS)})$'; then",
            *indent(fail(self.name, f"reason must be one of: {', '.join(CLOSE_REASONS)}"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_number),
            *_optional_comment(runtime.repository),
            *run_or_record(
                self.name,
                [
                    "jq '{state: \"closed\", state_reason: (.reason // \"completed\")}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api -X PATCH "repos/{runtime.repository}/issues/$ISSUE_NUMBER" --input - >/dev/null',
                ],
                "close issue #$ISSUE_NUMBER",
            ),
        ]


class ReopenIssueHandler(JsonOutputHandler):
    name = "reopen-issue"
    title = "Reopen Issue"
    summary = "Reopen a closed issue, optionally with a comment explaining why."
    fields = (
        _ISSUE_NUMBER_OPTIONAL,
        JsonField("comment", "string", False, "Comment posted after reopening"),
    )
    example = {"issue_number": 42, "comment": "Reopening: the fix was reverted."}

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_number),
            *run_or_record(
                self.name,
                [f'gh api -X PATCH "repos/{runtime.repository}/issues/$ISSUE_NUMBER" -f state=open >/dev/null'],
                "reopen issue #$ISSUE_NUMBER",
            ),
            *_optional_comment(runtime.repository),
        ]


class AssignIssueHandler(JsonOutputHandler):
    name = "assign-issue"
    title = "Assign Issue"
    summary = "Assign users to an issue or pull request."
    fields = (
        JsonField("assignees", "[string]", True, "Usernames to assign"),
        _ISSUE_NUMBER_OPTIONAL,
    )
    constraints = ("Assignees must have access to the repository",)
    example = {"issue_number": 42, "assignees": ["octocat"]}

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
            *run_or_record(
                self.name,
                [
                    "jq '{assignees: .assignees}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api "repos/{runtime.repository}/issues/$ISSUE_NUMBER/assignees" --input - >/dev/null',
                ],
                "assign #$ISSUE_NUMBER",
            ),
        ]


class PinIssueHandler(JsonOutputHandler):
    name = "pin-issue"
    title = "Pin Issue"
    summary = "Pin an issue to the top of the repository's issue list (uses the GraphQL API)."
    fields = (_ISSUE_NUMBER_REQUIRED,)
    constraints = (
        "GitHub allows max 3 pinned issues per repository",
        "Only works on issues, not pull requests",
    )
    example = {"issue_number": 123}
    default_max = 3

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return _require_issue_number(self.name)

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("ISSUE_NUMBER", "issue_number"),
            f'ISSUE_NODE_ID=$(gh api "repos/{runtime.repository}/issues/$ISSUE_NUMBER" --jq \'.node_id\')',
            *run_or_record(
                self.name,
                [
                    "gh api graphql -f query='mutation($issueId: ID!) { pinIssue(input: {issueId: $issueId}) { issue { number } } }' \\",
                    '  -f issueId="$ISSUE_NODE_ID" >/dev/null',
                ],
                "pin issue #$ISSUE_NUMBER",
            ),
        ]


class SetMilestoneHandler(JsonOutputHandler):
    name = "set-milestone"
    title = "Set Milestone"
    summary = "Assign a milestone to an issue or pull request."
    fields = (
        JsonField("milestone", "string", True, "Title of an existing open milestone"),
        _ISSUE_NUMBER_OPTIONAL,
    )
    constraints = ("The milestone must already exist and be open",)
    example = {"issue_number": 42, "milestone": "v1.2.0"}

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
            read_field("MILESTONE", "milestone"),
            f'MILESTONE_NUMBER=$(gh api "repos/{repo}/milestones?state=open&per_page=100" | \\',
            '  jq -r --arg title "$MILESTONE" \'.[] | select(.title == $title) | .number\' | head -n 1)',
            'if [ -z "$MILESTONE_NUMBER" ]; then',
            '  echo "- **set-milestone**: Milestone \'$MILESTONE\' not found" >> "$ERRORS_FILE"',
            "  continue",
            "fi",
            *run_or_record(
                self.name,
                [f'gh api -X PATCH "repos/{repo}/issues/$ISSUE_NUMBER" -F milestone="$MILESTONE_NUMBER" >/dev/null'],
                "set milestone on #$ISSUE_NUMBER",
            ),
        ]


class ConvertToDiscussionHandler(JsonOutputHandler):
    name = "convert-to-discussion"
    title = "Convert to Discussion"
    summary = "Convert an issue into a discussion in the given category."
    fields = (
        _ISSUE_NUMBER_REQUIRED,
        JsonField("category", "string", True, "Discussion category name"),
    )
    constraints = (
        "Only works on issues, not pull requests",
        "Original issue will be closed and locked",
        "All comments are preserved",
    )
    example = {"issue_number": 123, "category": "Q&A"}

    def context_script(self, runtime: RuntimeContext) -> Optional[str]:
        lines = [
            "# Fetch discussion categories for context",
            *_owner_and_repo(runtime.repository),
            "CATEGORIES=$(gh api graphql -f query='query($owner: String!, $repo: String!) "
            "{ repository(owner: $owner, name: $repo) { discussionCategories(first: 25) { nodes { name } } } }' \\",
            '  -f owner="$OWNER" -f repo="$REPO_NAME" --jq \'[.data.repository.discussionCategories.nodes[].name] | join(", ")\' 2>/dev/null || echo "none")',
            "{",
            '  echo ""',
            '  echo "## Available Discussion Categories"',
            '  echo ""',
            '  echo "$CATEGORIES"',
            "} >> /tmp/context.txt",
        ]
        return "\n".join(lines) + "\n"

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return _require_issue_number(self.name) + [
            read_field("CATEGORY", "category"),
            'if [ -z "$CATEGORY" ]; then',
            *indent(fail(self.name, "category is required in $OUTPUT_FILE"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("ISSUE_NUMBER", "issue_number"),
            read_field("CATEGORY", "category"),
            *_owner_and_repo(runtime.repository),
            f'ISSUE_NODE_ID=$(gh api "repos/{runtime.repository}/issues/$ISSUE_NUMBER" --jq \'.node_id\')',
            "CATEGORY_ID=$(gh api graphql -f query='query($owner: String!, $repo: String!) "
            "{ repository(owner: $owner, name: $repo) { discussionCategories(first: 25) { nodes { id name } } } }' \\",
            '  -f owner="$OWNER" -f repo="$REPO_NAME" | \\',
            '  jq -r --arg name "$CATEGORY" \'.data.repository.discussionCategories.nodes[] | select(.name == $name) | .id\')',
            'if [ -z "$CATEGORY_ID" ]; then',
            '  echo "- **convert-to-discussion**: Discussion category \'$CATEGORY\' not found" >> "$ERRORS_FILE"',
            "  continue",
            "fi",
            *run_or_record(
                self.name,
                [
                    "gh api graphql -f query='mutation($issueId: ID!, $categoryId: ID!) "
                    "{ convertIssueToDiscussion(input: {issueId: $issueId, categoryId: $categoryId}) { discussion { url } } }' \\",
                    '  -f issueId="$ISSUE_NODE_ID" -f categoryId="$CATEGORY_ID" >/dev/null',
                ],
                "convert issue #$ISSUE_NUMBER",
            ),
        ]
