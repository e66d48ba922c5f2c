"""Discussion outputs (GraphQL only; the REST API cannot create discussions)."""

from __future__ import annotations

from typing import List, Optional

from repo_agents.parser.schema import OutputConfig

from .base import JsonField, JsonOutputHandler, RuntimeContext, read_field, run_or_record

CATEGORIES_QUERY = (
    "query($owner: String!, $repo: String!) { repository(owner: $owner, name: $repo) "
    "{ id discussionCategories(first: 25) { nodes { id name } } } }"
)


class CreateDiscussionHandler(JsonOutputHandler):
    name = "create-discussion"
    title = "Create Discussion"
    summary = "Start a new discussion in one of the repository's discussion categories."
    fields = (
        JsonField("title", "string", True, "Discussion title"),
        JsonField("body", "string", True, "Markdown discussion body"),
        JsonField("category", "string", True, "Name of an existing discussion category"),
    )
    constraints = ("Discussions must be enabled for the repository",)
    example = {"title": "Weekly triage summary", "body": "## Highlights\n...", "category": "General"}

    def context_script(self, runtime: RuntimeContext) -> Optional[str]:
        return f"""# Fetch discussion categories for context
OWNER=$(echo "{runtime.repository}" | cut -d/ -f1)
REPO_NAME=$(echo "{runtime.repository}" | cut -d/ -f2)
CATEGORIES=$(gh api graphql -f query='{CATEGORIES_QUERY}' \\
  -f owner="$OWNER" -f repo="$REPO_NAME" --jq '[.data.repository.discussionCategories.nodes[].name] | join(", ")' 2>/dev/null || echo "none")
{{
  echo ""
  echo "## Available Discussion Categories"
  echo ""
  echo "$CATEGORIES"
}} >> /tmp/context.txt
"""

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        return [
            read_field("CATEGORY", "category"),
            f'OWNER=$(echo "{runtime.repository}" | cut -d/ -f1)',
            f'REPO_NAME=$(echo "{runtime.repository}" | cut -d/ -f2)',
            f"REPO_DATA=$(gh api graphql -f query='{CATEGORIES_QUERY}' -f owner=\"$OWNER\" -f repo=\"$REPO_NAME\")",
            "REPO_ID=$(echo \"$REPO_DATA\" | jq -r '.data.repository.id')",
            'CATEGORY_ID=$(echo "$REPO_DATA" | jq -r --arg name "$CATEGORY" '
            "'.data.repository.discussionCategories.nodes[] | select(.name == $name) | .id')",
            'if [ -z "$CATEGORY_ID" ]; then',
            '  echo "- **create-discussion**: Discussion category \'$CATEGORY\' not found" >> "$ERRORS_FILE"',
            "  continue",
            "fi",
            *run_or_record(
                self.name,
                [
                    "gh api graphql -f query='mutation($repositoryId: ID!, $categoryId: ID!, $title: String!, $body: String!) "
                    "{ createDiscussion(input: {repositoryId: $repositoryId, categoryId: $categoryId, title: $title, body: $body}) "
                    "{ discussion { url } } }' \\",
                    '  -f repositoryId="$REPO_ID" -f categoryId="$CATEGORY_ID" \\',
                    "  -f title=\"$(jq -r '.title' \"$OUTPUT_FILE\")\" -f body=\"$(jq -r '.body' \"$OUTPUT_FILE\")\" >/dev/null",
                ],
                "create discussion",
            ),
        ]
