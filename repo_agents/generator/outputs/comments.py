"""Conversation outputs: comments, reactions, locking."""

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
    run_or_record,
    target_number,
)

MAX_COMMENT_LENGTH = 65536

REACTIONS = ("+1", "-1", "laugh", "confused", "heart", "hooray", "rocket", "eyes")
LOCK_REASONS = ("off-topic", "too heated", "resolved", "spam")


def _require_target(name: str, runtime: RuntimeContext) -> List[str]:
    return [
        *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
        'if ! echo "$ISSUE_NUMBER" | grep -qE \'^[0-9]+$\'; then',
        *indent(fail(name, "No issue or PR number available for $OUTPUT_FILE"), 2),
        "fi",
    ]


class AddCommentHandler(JsonOutputHandler):
    name = "add-comment"
    title = "Add Comment"
    summary = "Post a comment on the issue or pull request that triggered this run."
    fields = (
        JsonField("body", "string", True, "Markdown comment body"),
        JsonField("issue_number", "number", False, "Target issue or PR; defaults to the triggering one"),
    )
    constraints = (f"Body must be non-empty and at most {MAX_COMMENT_LENGTH} characters",)
    example = {"body": "Thanks for the report! I've labeled this as a bug."}
    default_max = 1

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return super().checks(config, runtime) + [
            'BODY_LENGTH=$(jq -r \'.body | length\' "$OUTPUT_FILE")',
            f'if [ "$BODY_LENGTH" -gt {MAX_COMMENT_LENGTH} ]; then',
            *indent(fail(self.name, f"body exceeds {MAX_COMMENT_LENGTH} characters ($BODY_LENGTH)"), 2),
            "fi",
            *_require_target(self.name, runtime),
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            *target_number("ISSUE_NUMBER", runtime.issue_or_pr_number),
            *run_or_record(
                self.name,
                [
                    "jq '{body: .body}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api "repos/{runtime.repository}/issues/$ISSUE_NUMBER/comments" --input - >/dev/null',
                ],
                "post comment on #$ISSUE_NUMBER",
            ),
        ]


class AddReactionHandler(JsonOutputHandler):
    name = "add-reaction"
    title = "Add Reaction"
    summary = "React to the triggering issue, pull request, or one of its comments."
    fields = (
        JsonField("content", "string", True, f"One of: {', '.join(REACTIONS)}"),
        JsonField("comment_id", "number", False, "React to this comment instead of the issue itself"),
        JsonField("issue_number", "number", False, "Target issue or PR; defaults to the triggering one"),
    )
    constraints = ("Only the eight standard reactions are supported",)
    example = {"content": "rocket"}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        allowed = "|".join(r.replace("+", "\\+") for r in REACTIONS)
        return super().checks(config, runtime) + [
            f"if ! echo \"$CONTENT\" | grep -qE '^({allowed})$'; then",
            *indent(fail(self.name, f"content must be one of: {', '.join(REACTIONS)}"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        repo = runtime.repository
        return [
            read_field("CONTENT", "content"),
            read_field("COMMENT_ID", "comment_id"),
            'if [ -n "$COMMENT_ID" ]; then',
            f'  REACTION_URL="repos/{repo}/issues/comments/$COMMENT_ID/reactions"',
            "else",
            *indent(target_number("ISSUE_NUMBER", runtime.issue_or_pr_number), 2),
            f'  REACTION_URL="repos/{repo}/issues/$ISSUE_NUMBER/reactions"',
            "fi",
            *run_or_record(
                self.name,
                ['gh api "$REACTION_URL" -f content="$CONTENT" >/dev/null'],
                "add reaction $CONTENT",
            ),
        ]


class LockConversationHandler(JsonOutputHandler):
    name = "lock-conversation"
    title = "Lock Conversation"
    summary = "Lock an issue or pull request conversation; this prevents new comments from non-collaborators."
    fields = (
        JsonField("issue_number", "number", True, "Issue or PR to lock"),
        JsonField("lock_reason", "string", False, f"One of: {', '.join(LOCK_REASONS)}"),
    )
    constraints = ("Only these lock reasons are supported: " + ", ".join(LOCK_REASONS),)
    example = {"issue_number": 123, "lock_reason": "resolved"}

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return super().checks(config, runtime) + [
            read_field("LOCK_REASON", "lock_reason", '"resolved"'),
            f"if ! echo \"$LOCK_REASON\" | grep -qE '^({'|'.join(LOCK_REASONS)})$'; then",
            *indent(fail(self.name, f"lock_reason must be one of: {', '.join(LOCK_REASONS)}"), 2),
            "fi",
        ]

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("ISSUE_NUMBER", "issue_number"),
            *run_or_record(
                self.name,
                [
                    "jq '{lock_reason: (.lock_reason // \"resolved\")}' \"$OUTPUT_FILE\" | \\",
                    f'  gh api -X PUT "repos/{runtime.repository}/issues/$ISSUE_NUMBER/lock" --input - >/dev/null',
                ],
                "lock #$ISSUE_NUMBER",
            ),
        ]
