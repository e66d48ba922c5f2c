"""
definition.py - The immutable, validated agent definition.

An AgentDefinition is produced once by the parser and never mutated. The
generators read it through the convenience accessors below rather than
reaching into the header model directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .frontmatter import render_frontmatter
from .schema import (
    DEFAULT_RATE_LIMIT_MINUTES,
    DISK_KEYS,
    AgentFrontmatter,
    AuditConfig,
    ContextConfig,
    OutputConfig,
    Permissions,
    TriggerConfig,
)


@dataclass(frozen=True)
class AgentDefinition:
    """A validated agent: header model, instruction body, and where it came from.

    Attributes:
        header: The validated header.
        body: Markdown instructions, stripped of surrounding whitespace.
        source: Path (or label) the definition was read from, if any.
    """

    header: AgentFrontmatter
    body: str
    source: Optional[str] = None

    @property
    def name(self) -> str:
        return self.header.name

    @property
    def triggers(self) -> TriggerConfig:
        return self.header.on

    @property
    def permissions(self) -> Optional[Permissions]:
        return self.header.permissions

    @property
    def outputs(self) -> Dict[str, OutputConfig]:
        return dict(self.header.outputs or {})

    @property
    def provider(self) -> str:
        return self.header.provider or "claude-code"

    @property
    def context(self) -> Optional[ContextConfig]:
        return self.header.context

    @property
    def audit(self) -> AuditConfig:
        return self.header.audit or AuditConfig()

    @property
    def allowed_paths(self) -> List[str]:
        return list(self.header.allowed_paths or [])

    @property
    def trigger_labels(self) -> List[str]:
        return list(self.header.trigger_labels or [])

    @property
    def rate_limit_minutes(self) -> int:
        value = self.header.rate_limit_minutes
        return DEFAULT_RATE_LIMIT_MINUTES if value is None else value

    @property
    def allowed_users(self) -> List[str]:
        """Union of ``allowed-actors`` and ``allowed-users``, in declaration order."""
        users: List[str] = []
        for user in (self.header.allowed_actors or []) + (self.header.allowed_users or []):
            if user not in users:
                users.append(user)
        return users

    @property
    def allowed_teams(self) -> List[str]:
        return list(self.header.allowed_teams or [])

    def has_output(self, name: str) -> bool:
        return name in (self.header.outputs or {})


def header_to_dict(header: AgentFrontmatter) -> Dict[str, Any]:
    """Serialize a header model to plain data using on-disk key spelling."""
    data = header.model_dump(mode="json", exclude_none=True)
    return {DISK_KEYS.get(key, key): value for key, value in data.items()}


def render_definition(definition: AgentDefinition) -> str:
    """Render a definition back to file text; parsing the result yields an equal header."""
    return render_frontmatter(header_to_dict(definition.header), definition.body)
