"""
Pydantic schema models for agent definition headers.

The header is a closed schema: unknown top-level keys are rejected so a typo
never silently disables a setting. Nested sections follow the platform's own
leniency (unknown keys inside a trigger filter or a context source are ignored)
except where a closed enumeration is the point, such as permissions.

Usage:
    from repo_agents.parser.schema import AgentFrontmatter

    header = AgentFrontmatter.model_validate(raw_mapping)
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repo_agents.naming import to_kebab_case


# =============================================================================
# Closed vocabularies
# =============================================================================

OutputName = Literal[
    "add-comment",
    "add-label",
    "remove-label",
    "create-issue",
    "create-discussion",
    "create-pr",
    "update-file",
    "close-issue",
    "close-pr",
    "assign-issue",
    "request-review",
    "merge-pr",
    "approve-pr",
    "create-release",
    "delete-branch",
    "lock-conversation",
    "pin-issue",
    "convert-to-discussion",
    "edit-issue",
    "reopen-issue",
    "set-milestone",
    "trigger-workflow",
    "add-reaction",
    "create-branch",
]

OUTPUT_NAMES: Tuple[str, ...] = get_args(OutputName)

ProviderName = Literal["claude-code", "opencode"]
PROVIDER_NAMES: Tuple[str, ...] = get_args(ProviderName)

PermissionLevel = Literal["read", "write"]

DEFAULT_RATE_LIMIT_MINUTES = 5
DEFAULT_MIN_ITEMS = 1
DEFAULT_SINCE = "last-run"

# Header keys that may be spelled with hyphens or underscores on disk.
# The canonical (internal) spelling uses underscores.
TOP_LEVEL_KEYS: Tuple[str, ...] = (
    "name",
    "on",
    "permissions",
    "provider",
    "claude",
    "outputs",
    "tools",
    "allowed_actors",
    "allowed_users",
    "allowed_teams",
    "allowed_paths",
    "trigger_labels",
    "max_open_prs",
    "rate_limit_minutes",
    "context",
    "audit",
    "extends",
    "parameters",
    "blueprint",
)

# Preferred on-disk spelling when a definition is rendered back to text.
DISK_KEYS: Dict[str, str] = {
    "allowed_actors": "allowed-actors",
    "allowed_users": "allowed-users",
    "allowed_teams": "allowed-teams",
    "allowed_paths": "allowed-paths",
}


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class _Closed(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# =============================================================================
# Triggers
# =============================================================================


class EventFilter(_Lenient):
    """Action-subtype filter for an event category; ``types=None`` matches any action."""

    types: Optional[List[str]] = None


class ScheduleEntry(_Lenient):
    cron: str


class WorkflowInput(_Lenient):
    description: str
    required: Optional[bool] = None
    default: Optional[str] = None
    type: Optional[Literal["string", "boolean", "choice"]] = None
    options: Optional[List[str]] = None


class WorkflowDispatch(_Lenient):
    inputs: Optional[Dict[str, WorkflowInput]] = None


class TriggerConfig(_Lenient):
    """Trigger set: event category -> event-specific filter."""

    issues: Optional[EventFilter] = None
    pull_request: Optional[EventFilter] = None
    discussion: Optional[EventFilter] = None
    schedule: Optional[List[ScheduleEntry]] = None
    workflow_dispatch: Optional[WorkflowDispatch] = None
    repository_dispatch: Optional[EventFilter] = None

    @field_validator(
        "issues", "pull_request", "discussion", "workflow_dispatch", "repository_dispatch", mode="before"
    )
    @classmethod
    def _bare_key_means_all(cls, value: Any) -> Any:
        # `issues:` with no value declares the category without a filter
        return {} if value is None else value

    def has_any(self) -> bool:
        return any(getattr(self, name) is not None for name in type(self).model_fields)


# =============================================================================
# Permissions, provider, outputs, tools
# =============================================================================


class Permissions(_Closed):
    contents: Optional[PermissionLevel] = None
    issues: Optional[PermissionLevel] = None
    pull_requests: Optional[PermissionLevel] = None
    discussions: Optional[PermissionLevel] = None


class ClaudeConfig(_Lenient):
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=1)


class OutputConfig(BaseModel):
    """Per-output settings; unknown keys are kept for the handler to read."""

    model_config = ConfigDict(extra="allow", frozen=True)

    max: Optional[int] = None
    sign: Optional[bool] = None

    def setting(self, key: str, default: Any = None) -> Any:
        if key in type(self).model_fields:
            value = getattr(self, key)
            return default if value is None else value
        return (self.model_extra or {}).get(key, default)


class ToolDefinition(_Lenient):
    name: str
    description: str
    parameters: Optional[Dict[str, Any]] = None


# =============================================================================
# Context (input collection)
# =============================================================================

Limit = Annotated[int, Field(ge=1, le=1000)]


class IssuesContext(_Lenient):
    states: Optional[List[Literal["open", "closed", "all"]]] = None
    labels: Optional[List[str]] = None
    assignees: Optional[List[str]] = None
    creators: Optional[List[str]] = None
    mentions: Optional[List[str]] = None
    milestones: Optional[List[str]] = None
    exclude_labels: Optional[List[str]] = None
    limit: Optional[Limit] = None


class PullRequestsContext(_Lenient):
    states: Optional[List[Literal["open", "closed", "merged", "all"]]] = None
    labels: Optional[List[str]] = None
    assignees: Optional[List[str]] = None
    creators: Optional[List[str]] = None
    reviewers: Optional[List[str]] = None
    base_branch: Optional[str] = None
    head_branch: Optional[str] = None
    exclude_labels: Optional[List[str]] = None
    limit: Optional[Limit] = None


class DiscussionsContext(_Lenient):
    categories: Optional[List[str]] = None
    answered: Optional[bool] = None
    unanswered: Optional[bool] = None
    labels: Optional[List[str]] = None
    limit: Optional[Limit] = None


class CommitsContext(_Lenient):
    branches: Optional[List[str]] = None
    authors: Optional[List[str]] = None
    exclude_authors: Optional[List[str]] = None
    limit: Optional[Limit] = None


class ReleasesContext(_Lenient):
    prerelease: Optional[bool] = None
    draft: Optional[bool] = None
    limit: Optional[int] = Field(default=None, ge=1, le=100)


class WorkflowRunsContext(_Lenient):
    workflows: Optional[List[str]] = None
    status: Optional[List[Literal["success", "failure", "cancelled", "skipped"]]] = None
    branches: Optional[List[str]] = None
    limit: Optional[Limit] = None


class SecurityAlertsContext(_Lenient):
    severity: Optional[List[Literal["critical", "high", "medium", "low"]]] = None
    state: Optional[List[Literal["open", "fixed", "dismissed"]]] = None
    ecosystem: Optional[List[str]] = None
    limit: Optional[Limit] = None


class DependabotPRsContext(_Lenient):
    states: Optional[List[Literal["open", "closed", "merged"]]] = None
    limit: Optional[Limit] = None


class CodeScanningAlertsContext(_Lenient):
    severity: Optional[
        List[Literal["critical", "high", "medium", "low", "warning", "note", "error"]]
    ] = None
    state: Optional[List[Literal["open", "fixed", "dismissed"]]] = None
    tool: Optional[List[str]] = None
    limit: Optional[Limit] = None


class DeploymentsContext(_Lenient):
    environments: Optional[List[str]] = None
    states: Optional[List[Literal["success", "failure", "error", "pending", "in_progress"]]] = None
    limit: Optional[Limit] = None


class MilestonesContext(_Lenient):
    states: Optional[List[Literal["open", "closed", "all"]]] = None
    sort: Optional[Literal["due_on", "completeness"]] = None
    limit: Optional[Limit] = None


class ContributorsContext(_Lenient):
    limit: Optional[Limit] = None
    since: Optional[str] = None


class CommentsContext(_Lenient):
    issue_comments: Optional[bool] = None
    pr_comments: Optional[bool] = None
    pr_review_comments: Optional[bool] = None
    discussion_comments: Optional[bool] = None
    limit: Optional[Limit] = None


class RepositoryTrafficContext(_Lenient):
    views: Optional[bool] = None
    clones: Optional[bool] = None
    referrers: Optional[bool] = None
    paths: Optional[bool] = None


class BranchesContext(_Lenient):
    protected: Optional[bool] = None
    stale_days: Optional[int] = Field(default=None, ge=1)
    limit: Optional[Limit] = None


class CheckRunsContext(_Lenient):
    workflows: Optional[List[str]] = None
    status: Optional[
        List[Literal["success", "failure", "neutral", "cancelled", "skipped", "timed_out"]]
    ] = None
    limit: Optional[Limit] = None


class ContextConfig(_Lenient):
    """Repository data to collect before the agent runs."""

    issues: Optional[IssuesContext] = None
    pull_requests: Optional[PullRequestsContext] = None
    discussions: Optional[DiscussionsContext] = None
    commits: Optional[CommitsContext] = None
    releases: Optional[ReleasesContext] = None
    workflow_runs: Optional[WorkflowRunsContext] = None
    security_alerts: Optional[SecurityAlertsContext] = None
    dependabot_prs: Optional[DependabotPRsContext] = None
    code_scanning_alerts: Optional[CodeScanningAlertsContext] = None
    deployments: Optional[DeploymentsContext] = None
    milestones: Optional[MilestonesContext] = None
    contributors: Optional[ContributorsContext] = None
    comments: Optional[CommentsContext] = None
    repository_traffic: Optional[RepositoryTrafficContext] = None
    branches: Optional[BranchesContext] = None
    check_runs: Optional[CheckRunsContext] = None
    stars: Optional[bool] = None
    forks: Optional[bool] = None
    since: Optional[str] = None
    min_items: Optional[int] = Field(default=None, ge=0)


# =============================================================================
# Audit
# =============================================================================


class AuditConfig(_Lenient):
    create_issues: Optional[bool] = None
    labels: Optional[List[str]] = None
    assignees: Optional[List[str]] = None
    diagnose: Optional[bool] = None


# =============================================================================
# Blueprints
# =============================================================================

ParameterType = Literal["string", "number", "boolean", "array", "enum"]

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


class BlueprintParameter(_Lenient):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    type: ParameterType
    default: Optional[Any] = None
    required: Optional[bool] = None
    values: Optional[List[str]] = None


class BlueprintMetadata(_Lenient):
    """Identity and declared parameters of a reusable template."""

    name: str = Field(min_length=1)
    version: str
    description: Optional[str] = None
    author: Optional[str] = None
    extends: Optional[str] = None
    parameters: List[BlueprintParameter] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _semver(cls, value: Any) -> Any:
        if not isinstance(value, str) or not SEMVER_PATTERN.match(value):
            raise ValueError("Version must be semver format (e.g., 1.0.0)")
        return value

    def parameter(self, name: str) -> Optional[BlueprintParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


# =============================================================================
# Header
# =============================================================================


class AgentFrontmatter(_Closed):
    """The complete, closed header schema of a definition file."""

    name: str
    on: TriggerConfig
    permissions: Optional[Permissions] = None
    provider: Optional[ProviderName] = None
    claude: Optional[ClaudeConfig] = None
    outputs: Optional[Dict[OutputName, OutputConfig]] = None
    tools: Optional[List[ToolDefinition]] = None
    allowed_actors: Optional[List[str]] = None
    allowed_users: Optional[List[str]] = None
    allowed_teams: Optional[List[str]] = None
    allowed_paths: Optional[List[str]] = None
    trigger_labels: Optional[List[str]] = None
    max_open_prs: Optional[int] = Field(default=None, ge=1)
    rate_limit_minutes: Optional[int] = Field(default=None, ge=0)
    context: Optional[ContextConfig] = None
    audit: Optional[AuditConfig] = None
    extends: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    blueprint: Optional[BlueprintMetadata] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Agent name is required")
        if not to_kebab_case(value).strip("-"):
            raise ValueError("Agent name must contain at least one letter or digit")
        return value

    @field_validator("outputs", mode="before")
    @classmethod
    def _expand_output_flags(cls, value: Any) -> Any:
        # `add-comment: true` enables with defaults, `false` disables the entry
        if not isinstance(value, dict):
            return value
        expanded = {}
        for key, config in value.items():
            if config is False:
                continue
            expanded[key] = {} if config is True or config is None else config
        return expanded
