"""Naming conventions shared by the dispatcher and the per-agent workflows."""

from __future__ import annotations

import re

WORKFLOW_PREFIX = "agent-"


def to_kebab_case(value: str) -> str:
    """Lowercase, collapse whitespace to hyphens, drop everything else non-alphanumeric.

    >>> to_kebab_case("My Agent Name")
    'my-agent-name'
    >>> to_kebab_case("Test!!!Agent???")
    'testagent'
    """
    lowered = re.sub(r"\s+", "-", value.lower())
    return re.sub(r"[^a-z0-9-]", "", lowered)


def agent_slug(value: str) -> str:
    """Slug used for agent file names: runs of non-alphanumerics become one hyphen."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def agent_workflow_name(agent_name: str) -> str:
    return f"{WORKFLOW_PREFIX}{to_kebab_case(agent_name)}"


def agent_workflow_file(agent_name: str) -> str:
    return f"{agent_workflow_name(agent_name)}.yml"


def agent_file_path(agent_name: str, agents_dir: str = ".github/agents") -> str:
    return f"{agents_dir.rstrip('/')}/{agent_slug(agent_name)}.md"
