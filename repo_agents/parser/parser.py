"""
parser.py - Parse and validate agent definition files.

Validation is layered and every layer collects exhaustively:

1. Structural: header/body split (a single fatal ``frontmatter`` or ``file`` error).
2. Schema: the closed pydantic header model, one error per violating field.
3. Body: an empty instruction body is a warning, never an error.
4. Business rules: cross-field invariants over an already-parsed definition.

Usage:
    from repo_agents.parser import parse_content, validate_business_rules

    result = parse_content(text, source="issue-triage.md")
    if result.ok:
        errors = validate_business_rules(result.definition)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from repo_agents.errors import Stage, ValidationError, error, has_errors, warning

from .definition import AgentDefinition
from .frontmatter import FrontmatterError, parse_frontmatter
from .schema import AgentFrontmatter

logger = logging.getLogger(__name__)

# Sections whose keys are normalized from kebab-case to snake_case.
_NORMALIZED_SECTIONS = ("permissions", "context", "audit", "claude")

# Outputs that need the agent to be able to push to the repository.
CONTENT_WRITE_OUTPUTS = ("create-pr", "update-file")

_MESSAGE_OVERRIDES = {
    (("name",), "missing"): "Agent name is required",
    (("name",), "string_type"): "Agent name is required",
}

_VALUE_ERROR_PREFIX = "Value error, "

# Maps a canonical location (tuple of keys) to the spelling found on disk.
KeyMap = Dict[Tuple[str, ...], str]


@dataclass
class ParseResult:
    """Outcome of parsing one definition.

    ``definition`` is set only when no error-severity finding was produced.
    """

    definition: Optional[AgentDefinition] = None
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.definition is not None and not has_errors(self.errors)


# =============================================================================
# Structural layer
# =============================================================================


def read_frontmatter(content: str) -> Tuple[Optional[Dict[str, Any]], str, List[ValidationError]]:
    """Split file text into (raw header, body, errors).

    On a structural failure the header is None and errors holds exactly one entry.
    """
    try:
        header, body = parse_frontmatter(content)
    except FrontmatterError as e:
        return None, "", [error("frontmatter", str(e), Stage.STRUCTURAL)]
    return header, body, []


def read_file(path: Path) -> Tuple[Optional[str], List[ValidationError]]:
    try:
        return Path(path).read_text(encoding="utf-8"), []
    except (OSError, UnicodeDecodeError) as e:
        return None, [error("file", f"Failed to read file: {e}", Stage.STRUCTURAL)]


# =============================================================================
# Key normalization
# =============================================================================


def _normalize_keys(
    data: Dict[str, Any], prefix: Tuple[str, ...], key_map: KeyMap
) -> Tuple[Dict[str, Any], List[ValidationError]]:
    normalized: Dict[str, Any] = {}
    errors: List[ValidationError] = []
    for key, value in data.items():
        raw = str(key)
        canonical = raw.replace("-", "_")
        location = prefix + (canonical,)
        if canonical in normalized:
            first = key_map.get(location, canonical)
            dotted = ".".join(prefix + (raw,))
            errors.append(
                error(dotted, f"Duplicate field: '{first}' and '{raw}' refer to the same setting")
            )
            continue
        normalized[canonical] = value
        if canonical != raw:
            key_map[location] = raw
    return normalized, errors


def normalize_header(raw: Dict[str, Any]) -> Tuple[Dict[str, Any], KeyMap, List[ValidationError]]:
    """Normalize kebab/snake spellings at the top level and in keyed sections.

    Event categories under ``on`` and output names under ``outputs`` are left
    untouched: their spelling is part of their identity.
    """
    key_map: KeyMap = {}
    header, errors = _normalize_keys(raw, (), key_map)
    for section in _NORMALIZED_SECTIONS:
        value = header.get(section)
        if isinstance(value, dict):
            header[section], nested_errors = _normalize_keys(value, (section,), key_map)
            errors.extend(nested_errors)
    context = header.get("context")
    if isinstance(context, dict):
        for source, spec in list(context.items()):
            if isinstance(spec, dict):
                context[source], nested_errors = _normalize_keys(spec, ("context", source), key_map)
                errors.extend(nested_errors)
    return header, key_map, errors


def _disk_path(location: Tuple[str, ...], key_map: KeyMap) -> str:
    parts = []
    for index, part in enumerate(location):
        parts.append(key_map.get(location[: index + 1], part))
    return ".".join(parts) or "root"


# =============================================================================
# Schema layer
# =============================================================================


def flatten_pydantic_errors(exc: PydanticValidationError, key_map: Optional[KeyMap] = None) -> List[ValidationError]:
    """One ValidationError per violating field path; the first message per path wins."""
    key_map = key_map or {}
    seen: Dict[str, ValidationError] = {}
    for err in exc.errors():
        location = tuple(str(p) for p in err["loc"] if p != "[key]")
        message = _MESSAGE_OVERRIDES.get((location, err["type"]), err["msg"])
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX) :]
        if err["type"] == "extra_forbidden":
            message = "Unknown field"
        path = _disk_path(location, key_map)
        if path not in seen:
            seen[path] = error(path, message, Stage.SCHEMA)
    return list(seen.values())


def validate_schema(raw: Dict[str, Any]) -> Tuple[Optional[AgentFrontmatter], List[ValidationError]]:
    """Validate a raw header mapping against the closed header schema.

    Returns:
        (header model, []) on success, (None, errors) otherwise.
    """
    header, key_map, errors = normalize_header(raw)

    if "extends" in header and "blueprint" in header:
        errors.append(
            error(
                key_map.get(("extends",), "extends"),
                "Cannot use both 'extends' and 'blueprint' in the same file",
            )
        )

    try:
        model = AgentFrontmatter.model_validate(header)
    except PydanticValidationError as e:
        errors.extend(flatten_pydantic_errors(e, key_map))
        return None, errors

    if errors:
        return None, errors
    return model, []


def validate_body(body: str) -> List[ValidationError]:
    if not body.strip():
        return [warning("markdown", "Agent instructions (markdown body) are required", Stage.SCHEMA)]
    return []


# =============================================================================
# Business rules
# =============================================================================


def validate_business_rules(definition: AgentDefinition) -> List[ValidationError]:
    """Cross-field invariants over an already-parsed definition."""
    errors: List[ValidationError] = []
    outputs = definition.outputs

    if "update-file" in outputs and not definition.allowed_paths:
        errors.append(
            error("outputs", "update-file requires allowed-paths to be specified", Stage.BUSINESS_RULE)
        )

    contents = definition.permissions.contents if definition.permissions else None
    for name in CONTENT_WRITE_OUTPUTS:
        if name in outputs and contents != "write":
            errors.append(
                error("permissions", f"{name} requires contents: write permission", Stage.BUSINESS_RULE)
            )

    if not definition.triggers.has_any():
        errors.append(error("on", "At least one trigger must be specified", Stage.BUSINESS_RULE))

    return errors


# =============================================================================
# Entry points
# =============================================================================


def build_definition(raw: Dict[str, Any], body: str, source: Optional[str] = None) -> ParseResult:
    """Validate a raw header and body into a definition (schema, body, business rules)."""
    header, errors = validate_schema(raw)
    if header is None:
        return ParseResult(None, errors)

    definition = AgentDefinition(header=header, body=body.strip(), source=source)
    errors = validate_body(body) + validate_business_rules(definition)
    if has_errors(errors):
        return ParseResult(None, errors)

    logger.debug("Parsed agent %r from %s", definition.name, source or "<memory>")
    return ParseResult(definition, errors)


def parse_content(content: str, source: Optional[str] = None) -> ParseResult:
    """Parse definition text through every validation layer."""
    raw, body, errors = read_frontmatter(content)
    if raw is None:
        return ParseResult(None, errors)
    return build_definition(raw, body, source)


def parse_file(path: Path) -> ParseResult:
    content, errors = read_file(path)
    if content is None:
        return ParseResult(None, errors)
    return parse_content(content, source=str(path))
