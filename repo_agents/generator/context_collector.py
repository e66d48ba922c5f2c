"""
context_collector.py - The collect-inputs job.

Turns an agent's ``context`` spec into one bash script that queries the
GitHub API for each requested source, filters and truncates the results with
jq and renders them as markdown sections in /tmp/inputs.md. The job reports
how many items it found; the agent only runs when that count reaches
``min_items``.

Each source is described declaratively by a Section: how to fetch a JSON
array, which jq conditions select items and how one item renders.
"""

from __future__ import annotations

import json
import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from repo_agents.config import CompilerConfig
from repo_agents.naming import agent_workflow_file
from repo_agents.parser.definition import AgentDefinition
from repo_agents.parser.schema import DEFAULT_MIN_ITEMS, DEFAULT_SINCE, ContextConfig

from .ir import Job, Step, expr
from .preflight import app_token_step

logger = logging.getLogger(__name__)

INPUTS_FILE = "/tmp/inputs.md"
DEFAULT_LIMIT = 100


def _rest(path: str, unwrap: Optional[str] = None) -> str:
    """Fetch every page of a repository endpoint as one JSON array (``[]`` on any error)."""
    pick = f"(.{unwrap} // [])" if unwrap else 'if type == "array" then . else [] end'
    return f"gh api \"repos/$GITHUB_REPOSITORY/{path}\" --paginate 2>/dev/null | jq -s 'map({pick}) | add // []'"


def _any_of(field_expr: str, var: str) -> str:
    return f"any({field_expr}; IN(${var}[]))"


@dataclass(frozen=True)
class Section:
    title: str
    fetch: str
    fmt: str
    conditions: Tuple[str, ...] = ()
    limit: int = DEFAULT_LIMIT
    args: Dict[str, Any] = field(default_factory=dict)
    shell_args: Dict[str, str] = field(default_factory=dict)

    def script(self) -> List[str]:
        selector = " and ".join(self.conditions) or "true"
        jq_args = " ".join(
            [f"--arg {name} \"${{{var}}}\"" for name, var in self.shell_args.items()]
            + [f"--argjson {name} {shlex.quote(json.dumps(value))}" for name, value in self.args.items()]
        )
        jq_args = f"{jq_args} " if jq_args else ""
        return [
            f"# {self.title}",
            f"ITEMS=$({self.fetch} | \\",
            f"  jq -c --arg since \"$SINCE\" {jq_args}'[.[] | select({selector})] | .[:{self.limit}]' 2>/dev/null || echo '[]')",
            f"append_section {shlex.quote(self.title)} \"$ITEMS\" {shlex.quote(self.fmt)}",
            "",
        ]


# =============================================================================
# Sources
# =============================================================================


def _states(states: Optional[List[str]], default: str = "open") -> Tuple[str, Optional[List[str]]]:
    """API ``state`` parameter plus the states left for jq to filter."""
    if not states:
        return default, None
    if "all" in states:
        return "all", None
    if len(states) == 1 and states[0] in ("open", "closed"):
        return states[0], None
    return "all", states


def _issues(spec) -> Section:
    state, keep = _states(spec.states)
    conditions = ["(.pull_request == null)", "(.updated_at >= $since)"]
    args: Dict[str, Any] = {}
    if keep:
        conditions.append("(.state | IN($states[]))")
        args["states"] = keep
    for key, expression in (
        ("labels", ".labels[]?.name"),
        ("assignees", ".assignees[]?.login"),
        ("creators", ".user.login"),
        ("milestones", ".milestone.title"),
    ):
        values = getattr(spec, key)
        if values:
            conditions.append(_any_of(expression, key))
            args[key] = values
    if spec.exclude_labels:
        conditions.append(f"({_any_of('.labels[]?.name', 'exclude_labels')} | not)")
        args["exclude_labels"] = spec.exclude_labels
    query = f"issues?state={state}&since=$SINCE&per_page=100"
    if spec.mentions:
        query += f"&mentioned={spec.mentions[0]}"
    return Section(
        title="Issues",
        fetch=_rest(query),
        fmt=r'"- #\(.number): \(.title) [\(.state)] by @\(.user.login) - \(.html_url)"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        args=args,
    )


def _pr_states(states: List[str]) -> str:
    """Closed means closed without merging; merged is its own state."""
    parts = []
    if "open" in states:
        parts.append('.state == "open"')
    if "merged" in states:
        parts.append(".merged_at != null")
    if "closed" in states:
        parts.append('(.state == "closed" and .merged_at == null)')
    return f"({' or '.join(parts)})"


def _pull_requests(spec) -> Section:
    conditions = ["(.updated_at >= $since)"]
    args: Dict[str, Any] = {}
    states = spec.states or ["open"]
    if "all" not in states:
        conditions.append(_pr_states(states))
    for key, expression in (
        ("labels", ".labels[]?.name"),
        ("assignees", ".assignees[]?.login"),
        ("creators", ".user.login"),
        ("reviewers", ".requested_reviewers[]?.login"),
    ):
        values = getattr(spec, key)
        if values:
            conditions.append(_any_of(expression, key))
            args[key] = values
    if spec.exclude_labels:
        conditions.append(f"({_any_of('.labels[]?.name', 'exclude_labels')} | not)")
        args["exclude_labels"] = spec.exclude_labels
    if spec.base_branch:
        conditions.append(f".base.ref == {json.dumps(spec.base_branch)}")
    if spec.head_branch:
        conditions.append(f".head.ref == {json.dumps(spec.head_branch)}")
    return Section(
        title="Pull Requests",
        fetch=_rest("pulls?state=all&sort=updated&direction=desc&per_page=100"),
        fmt=r'"- #\(.number): \(.title) [\(if .merged_at then "merged" else .state end)] \(.head.ref) -> \(.base.ref) by @\(.user.login)"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        args=args,
    )


def _discussions(spec) -> Section:
    limit = min(spec.limit or 50, 100)
    fetch = (
        "gh api graphql -f query='query($owner: String!, $repo: String!) { repository(owner: $owner, name: $repo) "
        f"{{ discussions(first: {limit}, orderBy: {{field: UPDATED_AT, direction: DESC}}) {{ nodes "
        "{ number title url updatedAt isAnswered author { login } category { name } labels(first: 10) { nodes { name } } } } } }' "
        "-f owner=\"${GITHUB_REPOSITORY%%/*}\" -f repo=\"${GITHUB_REPOSITORY#*/}\" 2>/dev/null | "
        "jq '.data.repository.discussions.nodes // []'"
    )
    conditions = ["(.updatedAt >= $since)"]
    args: Dict[str, Any] = {}
    if spec.categories:
        conditions.append("(.category.name | IN($categories[]))")
        args["categories"] = spec.categories
    if spec.labels:
        conditions.append(_any_of(".labels.nodes[]?.name", "labels"))
        args["labels"] = spec.labels
    if spec.answered and not spec.unanswered:
        conditions.append(".isAnswered == true")
    if spec.unanswered and not spec.answered:
        conditions.append(".isAnswered != true")
    return Section(
        title="Discussions",
        fetch=fetch,
        fmt=r'"- #\(.number): \(.title) [\(.category.name)] by @\(.author.login // "ghost") - \(.url)"',
        conditions=tuple(conditions),
        limit=limit,
        args=args,
    )


def _commits(spec) -> Section:
    branches = spec.branches or [""]
    fetches = [
        _rest(f"commits?since=$SINCE&per_page=100" + (f"&sha={b}" if b else "")) for b in branches
    ]
    fetch = fetches[0] if len(fetches) == 1 else "{ " + "; ".join(fetches) + "; } | jq -s 'add | unique_by(.sha)'"
    conditions: List[str] = []
    args: Dict[str, Any] = {}
    author = "(.author.login // .commit.author.name)"
    if spec.authors:
        conditions.append(f"({author} | IN($authors[]))")
        args["authors"] = spec.authors
    if spec.exclude_authors:
        conditions.append(f"({author} | IN($exclude_authors[]) | not)")
        args["exclude_authors"] = spec.exclude_authors
    return Section(
        title="Commits",
        fetch=fetch,
        fmt=r'"- \(.sha[:7]) \(.commit.message | split("\n")[0]) by \(.author.login // .commit.author.name)"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        args=args,
    )


def _releases(spec) -> Section:
    conditions = ["((.published_at // .created_at) >= $since)"]
    if spec.prerelease is False:
        conditions.append(".prerelease == false")
    if spec.draft is False:
        conditions.append(".draft == false")
    return Section(
        title="Releases",
        fetch=_rest("releases?per_page=100"),
        fmt=r'"- \(.tag_name): \(.name // .tag_name)\(if .prerelease then " (pre-release)" else "" end) - \(.html_url)"',
        conditions=tuple(conditions),
        limit=spec.limit or 20,
    )


def _workflow_runs(spec) -> Section:
    conditions = ["(.created_at >= $since)"]
    args: Dict[str, Any] = {}
    if spec.workflows:
        conditions.append("((.name | IN($workflows[])) or (.path | split(\"/\") | last | IN($workflows[])))")
        args["workflows"] = spec.workflows
    if spec.status:
        conditions.append("(.conclusion | IN($status[]))")
        args["status"] = spec.status
    if spec.branches:
        conditions.append("(.head_branch | IN($branches[]))")
        args["branches"] = spec.branches
    return Section(
        title="Workflow Runs",
        fetch=_rest("actions/runs?created=>=$SINCE&per_page=100", unwrap="workflow_runs"),
        fmt=r'"- \(.name) #\(.run_number): \(.conclusion // .status) on \(.head_branch) - \(.html_url)"',
        conditions=tuple(conditions),
        limit=spec.limit or 50,
        args=args,
    )


def _security_alerts(spec) -> Section:
    conditions: List[str] = []
    args: Dict[str, Any] = {}
    for key, expression in (
        ("severity", ".security_advisory.severity"),
        ("state", ".state"),
        ("ecosystem", ".dependency.package.ecosystem"),
    ):
        values = getattr(spec, key)
        if values:
            conditions.append(f"({expression} | IN(${key}[]))")
            args[key] = values
    return Section(
        title="Security Alerts",
        fetch=_rest("dependabot/alerts?per_page=100"),
        fmt=r'"- [\(.security_advisory.severity)] \(.security_advisory.summary) in \(.dependency.package.name) (\(.state))"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        args=args,
    )


def _dependabot_prs(spec) -> Section:
    conditions = ['(.user.login == "dependabot[bot]")', "(.updated_at >= $since)"]
    conditions.append(_pr_states(spec.states or ["open"]))
    return Section(
        title="Dependabot PRs",
        fetch=_rest("pulls?state=all&sort=updated&direction=desc&per_page=100"),
        fmt=r'"- #\(.number): \(.title) [\(if .merged_at then "merged" else .state end)]"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
    )


def _code_scanning_alerts(spec) -> Section:
    conditions: List[str] = []
    args: Dict[str, Any] = {}
    for key, expression in (
        ("severity", "(.rule.security_severity_level // .rule.severity)"),
        ("state", ".state"),
        ("tool", ".tool.name"),
    ):
        values = getattr(spec, key)
        if values:
            conditions.append(f"({expression} | IN(${key}[]))")
            args[key] = values
    return Section(
        title="Code Scanning Alerts",
        fetch=_rest("code-scanning/alerts?per_page=100"),
        fmt=r'"- [\(.rule.security_severity_level // .rule.severity)] \(.rule.description) at \(.most_recent_instance.location.path) (\(.tool.name))"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        args=args,
    )


def _deployments(spec) -> Section:
    # Deployment objects carry no state; the latest status is attached first.
    fetch = (
        _rest("deployments?per_page=100")
        + " | jq -c '.[]' | while read -r DEPLOYMENT; do "
        "ID=$(echo \"$DEPLOYMENT\" | jq -r '.id'); "
        "STATE=$(gh api \"repos/$GITHUB_REPOSITORY/deployments/$ID/statuses?per_page=1\" --jq '.[0].state // \"pending\"' 2>/dev/null || echo pending); "
        "echo \"$DEPLOYMENT\" | jq -c --arg state \"$STATE\" '. + {state: $state}'; "
        "done | jq -s '.'"
    )
    conditions = ["(.created_at >= $since)"]
    args: Dict[str, Any] = {}
    if spec.environments:
        conditions.append("(.environment | IN($environments[]))")
        args["environments"] = spec.environments
    if spec.states:
        conditions.append("(.state | IN($states[]))")
        args["states"] = spec.states
    return Section(
        title="Deployments",
        fetch=fetch,
        fmt=r'"- \(.environment): \(.ref) (\(.sha[:7])) [\(.state)] at \(.created_at)"',
        conditions=tuple(conditions),
        limit=spec.limit or 20,
        args=args,
    )


def _milestones(spec) -> Section:
    state, _ = _states(spec.states)
    sort = spec.sort or "due_on"
    return Section(
        title="Milestones",
        fetch=_rest(f"milestones?state={state}&sort={sort}&per_page=100"),
        fmt=r'"- \(.title) [\(.state)]: \(.closed_issues)/\(.open_issues + .closed_issues) closed\(if .due_on then ", due \(.due_on[:10])" else "" end)"',
        limit=spec.limit or DEFAULT_LIMIT,
    )


def _contributors(spec) -> Section:
    since_param = "&since=$SINCE" if spec.since else ""
    fetch = (
        _rest(f"commits?per_page=100{since_param}")
        + " | jq '[.[] | select(.author.login != null) | .author.login] | group_by(.) "
        "| map({login: .[0], contributions: length}) | sort_by(-.contributions)'"
    )
    return Section(
        title="Contributors",
        fetch=fetch,
        fmt=r'"- @\(.login): \(.contributions) commit(s)"',
        limit=spec.limit or 20,
    )


def _comments(spec) -> List[Section]:
    limit = spec.limit or DEFAULT_LIMIT
    sections: List[Section] = []
    want_issue = spec.issue_comments is not False
    want_pr = bool(spec.pr_comments)
    if want_issue or want_pr:
        kinds = []
        if want_issue:
            kinds.append('(.html_url | contains("/issues/"))')
        if want_pr:
            kinds.append('(.html_url | contains("/pull/"))')
        sections.append(
            Section(
                title="Comments",
                fetch=_rest("issues/comments?since=$SINCE&sort=updated&direction=desc&per_page=100"),
                fmt=r'"- @\(.user.login) on \(.html_url): \(.body | split("\n")[0] | .[:200])"',
                conditions=(f"({' or '.join(kinds)})",),
                limit=limit,
            )
        )
    if spec.pr_review_comments:
        sections.append(
            Section(
                title="Review Comments",
                fetch=_rest("pulls/comments?since=$SINCE&per_page=100"),
                fmt=r'"- @\(.user.login) on \(.path): \(.body | split("\n")[0] | .[:200])"',
                limit=limit,
            )
        )
    if spec.discussion_comments:
        fetch = (
            "gh api graphql -f query='query($owner: String!, $repo: String!) { repository(owner: $owner, name: $repo) "
            "{ discussions(first: 25, orderBy: {field: UPDATED_AT, direction: DESC}) { nodes { number "
            "comments(last: 20) { nodes { url body createdAt author { login } } } } } } }' "
            "-f owner=\"${GITHUB_REPOSITORY%%/*}\" -f repo=\"${GITHUB_REPOSITORY#*/}\" 2>/dev/null | "
            "jq '[.data.repository.discussions.nodes[]? | .comments.nodes[]]'"
        )
        sections.append(
            Section(
                title="Discussion Comments",
                fetch=fetch,
                fmt=r'"- @\(.author.login // "ghost") on \(.url): \(.body | split("\n")[0] | .[:200])"',
                conditions=("(.createdAt >= $since)",),
                limit=limit,
            )
        )
    return sections


def _traffic(spec) -> List[Section]:
    wanted = [
        ("views", "Traffic: Views", "traffic/views", "views", r'"- \(.timestamp[:10]): \(.count) views (\(.uniques) unique)"'),
        ("clones", "Traffic: Clones", "traffic/clones", "clones", r'"- \(.timestamp[:10]): \(.count) clones (\(.uniques) unique)"'),
        ("referrers", "Traffic: Referrers", "traffic/popular/referrers", None, r'"- \(.referrer): \(.count) (\(.uniques) unique)"'),
        ("paths", "Traffic: Popular Paths", "traffic/popular/paths", None, r'"- \(.path): \(.count) (\(.uniques) unique)"'),
    ]
    explicit = any(getattr(spec, key) is not None for key, *_ in wanted)
    sections = []
    for key, title, path, unwrap, fmt in wanted:
        enabled = getattr(spec, key) if explicit else key in ("views", "clones")
        if enabled:
            sections.append(Section(title=title, fetch=_rest(path, unwrap=unwrap), fmt=fmt))
    return sections


def _branches(spec) -> Section:
    query = "branches?per_page=100" + ("&protected=true" if spec.protected else "")
    fetch = _rest(query)
    conditions: List[str] = []
    if spec.stale_days:
        fetch += (
            " | jq -c '.[]' | while read -r BRANCH_JSON; do "
            "SHA=$(echo \"$BRANCH_JSON\" | jq -r '.commit.sha'); "
            "DATE=$(gh api \"repos/$GITHUB_REPOSITORY/commits/$SHA\" --jq '.commit.committer.date' 2>/dev/null || echo ''); "
            "echo \"$BRANCH_JSON\" | jq -c --arg date \"$DATE\" '. + {last_commit: $date}'; "
            "done | jq -s '.'"
        )
        conditions.append('(.last_commit != "" and .last_commit < $stale_before)')
    return Section(
        title="Branches",
        fetch=fetch,
        fmt=r'"- \(.name)\(if .protected then " (protected)" else "" end)\(if .last_commit then ", last commit \(.last_commit[:10])" else "" end)"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        shell_args={"stale_before": "STALE_BEFORE"} if spec.stale_days else {},
    )


def _check_runs(spec) -> Section:
    conditions: List[str] = []
    args: Dict[str, Any] = {}
    if spec.workflows:
        conditions.append("(.name | IN($workflows[]))")
        args["workflows"] = spec.workflows
    if spec.status:
        conditions.append("(.conclusion | IN($status[]))")
        args["status"] = spec.status
    return Section(
        title="Check Runs",
        fetch=_rest("commits/$GITHUB_SHA/check-runs?per_page=100", unwrap="check_runs"),
        fmt=r'"- \(.name): \(.conclusion // .status) - \(.html_url)"',
        conditions=tuple(conditions),
        limit=spec.limit or DEFAULT_LIMIT,
        args=args,
    )


def _stars(_) -> Section:
    return Section(
        title="New Stargazers",
        fetch=(
            "gh api \"repos/$GITHUB_REPOSITORY/stargazers?per_page=100\" --paginate "
            "-H 'Accept: application/vnd.github.star+json' 2>/dev/null | jq -s 'map(if type == \"array\" then . else [] end) | add // []'"
        ),
        fmt=r'"- @\(.user.login) at \(.starred_at)"',
        conditions=("(.starred_at >= $since)",),
    )


def _forks(_) -> Section:
    return Section(
        title="New Forks",
        fetch=_rest("forks?sort=newest&per_page=100"),
        fmt=r'"- \(.full_name) by @\(.owner.login) at \(.created_at)"',
        conditions=("(.created_at >= $since)",),
    )


SectionBuilder = Callable[[Any], Any]

SOURCES: Dict[str, SectionBuilder] = {
    "issues": _issues,
    "pull_requests": _pull_requests,
    "discussions": _discussions,
    "commits": _commits,
    "releases": _releases,
    "workflow_runs": _workflow_runs,
    "security_alerts": _security_alerts,
    "dependabot_prs": _dependabot_prs,
    "code_scanning_alerts": _code_scanning_alerts,
    "deployments": _deployments,
    "milestones": _milestones,
    "contributors": _contributors,
    "comments": _comments,
    "repository_traffic": _traffic,
    "branches": _branches,
    "check_runs": _check_runs,
}


def build_sections(context: ContextConfig) -> List[Section]:
    sections: List[Section] = []
    for key, builder in SOURCES.items():
        spec = getattr(context, key)
        if spec is None:
            continue
        built = builder(spec)
        sections.extend(built if isinstance(built, list) else [built])
    if context.stars:
        sections.append(_stars(None))
    if context.forks:
        sections.append(_forks(None))
    return sections


# =============================================================================
# Script and job
# =============================================================================


def since_script(since: str) -> str:
    """Bash that sets SINCE (ISO-8601, UTC) from ``last-run``, ``<N>h`` or ``<N>d``."""
    if since.endswith("h") and since[:-1].isdigit():
        return f'SINCE=$(date -u -d "{since[:-1]} hours ago" +%Y-%m-%dT%H:%M:%SZ)'
    if since.endswith("d") and since[:-1].isdigit():
        return f'SINCE=$(date -u -d "{since[:-1]} days ago" +%Y-%m-%dT%H:%M:%SZ)'
    return "\n".join(
        [
            'SINCE=$(gh api "repos/$GITHUB_REPOSITORY/actions/workflows/$WORKFLOW_FILE/runs?status=success&per_page=1" \\',
            "  --jq '.workflow_runs[0].created_at // empty' 2>/dev/null || echo \"\")",
            'if [ -z "$SINCE" ]; then',
            '  SINCE=$(date -u -d "24 hours ago" +%Y-%m-%dT%H:%M:%SZ)',
            "fi",
        ]
    )


def collect_script(context: ContextConfig) -> str:
    since = context.since or DEFAULT_SINCE
    min_items = DEFAULT_MIN_ITEMS if context.min_items is None else context.min_items
    stale_days = context.branches.stale_days if context.branches and context.branches.stale_days else None

    lines = [
        f"INPUTS_FILE={INPUTS_FILE}",
        "TOTAL_ITEMS=0",
        since_script(since),
        'echo "Collecting repository data since $SINCE"',
    ]
    if stale_days:
        lines.append(f'STALE_BEFORE=$(date -u -d "{stale_days} days ago" +%Y-%m-%dT%H:%M:%SZ)')
    lines.extend(
        [
            "",
            "{",
            '  echo "# Collected Repository Data"',
            '  echo ""',
            '  echo "Since: $SINCE"',
            '  echo ""',
            '} > "$INPUTS_FILE"',
            "",
            "append_section() {",
            '  local title="$1" items="$2" format="$3" count',
            "  count=$(echo \"$items\" | jq 'length' 2>/dev/null || echo 0)",
            '  if [ "$count" -gt 0 ]; then',
            "    {",
            '      echo "## $title ($count)"',
            '      echo ""',
            '      echo "$items" | jq -r ".[] | $format"',
            '      echo ""',
            '    } >> "$INPUTS_FILE"',
            "    TOTAL_ITEMS=$((TOTAL_ITEMS + count))",
            "  fi",
            '  echo "$title: $count item(s)"',
            "}",
            "",
        ]
    )

    for section in build_sections(context):
        lines.extend(section.script())

    lines.extend(
        [
            f"MIN_ITEMS={min_items}",
            'echo "Collected $TOTAL_ITEMS item(s) (minimum: $MIN_ITEMS)"',
            'echo "item-count=$TOTAL_ITEMS" >> "$GITHUB_OUTPUT"',
            'if [ "$TOTAL_ITEMS" -ge "$MIN_ITEMS" ]; then',
            '  echo "has-inputs=true" >> "$GITHUB_OUTPUT"',
            "else",
            '  echo "Not enough data to run the agent"',
            '  echo "has-inputs=false" >> "$GITHUB_OUTPUT"',
            "fi",
        ]
    )
    return "\n".join(lines) + "\n"


def collect_inputs_job(definition: AgentDefinition, config: CompilerConfig) -> Optional[Job]:
    """The collect-inputs job, or None when the agent declares no context."""
    context = definition.context
    if context is None:
        return None
    logger.debug("Collecting %d context section(s) for %s", len(build_sections(context)), definition.name)
    return Job(
        runs_on=config.runner,
        needs="pre-flight",
        if_="needs.pre-flight.outputs.should-run == 'true'",
        outputs={
            "has-inputs": expr("steps.collect.outputs.has-inputs"),
            "item-count": expr("steps.collect.outputs.item-count"),
        },
        steps=[
            app_token_step(),
            Step(
                name="Collect repository data",
                id="collect",
                env={"WORKFLOW_FILE": agent_workflow_file(definition.name)},
                run=collect_script(context),
            ),
            Step(
                name="Upload collected inputs",
                uses=config.actions.upload_artifact,
                with_={"name": "collected-inputs", "path": INPUTS_FILE, "retention-days": 7},
            ),
        ],
    )
