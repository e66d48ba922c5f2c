"""
blueprint.py - Reusable, parameterized definition templates.

A blueprint is a definition file whose header carries a ``blueprint:``
metadata block; the remaining header fields and the body are the template.
An instance is a definition that ``extends`` a blueprint and supplies
``parameters``:

    ---
    extends: catalog:issue-triage@1.0.0
    parameters:
      severity: high
    ---

Resolution (see resolve_instance):
    classify locator -> load source -> parse blueprint -> validate parameters
    -> merge with defaults -> substitute placeholders -> overlay instance fields

Placeholders use ``{{ parameters.<name> }}``. A placeholder whose parameter is
not in the merged map is left verbatim so the gap shows in the output.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from repo_agents.errors import BlueprintResolutionError, Stage, ValidationError, error, warning
from repo_agents.parser.frontmatter import FrontmatterError, parse_frontmatter
from repo_agents.parser.parser import flatten_pydantic_errors
from repo_agents.parser.schema import BlueprintMetadata

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*parameters\.(\w+)\s*\}\}")
_GITHUB_PATTERN = re.compile(r"github\.com/([^@]+)(?:@(.+))?")

CATALOG_PREFIX = "catalog:"
LATEST = "latest"

# Instance fields that configure the resolution itself and never reach the result.
INSTANCE_FIELDS = ("extends", "parameters")


class SourceKind(str, Enum):
    LOCAL = "local"
    CATALOG = "catalog"
    REMOTE = "remote"


@dataclass(frozen=True)
class BlueprintSource:
    """A classified ``extends`` locator."""

    kind: SourceKind
    path: str
    version: Optional[str] = None


@dataclass(frozen=True)
class Blueprint:
    """A parsed blueprint: metadata, header template and body template."""

    metadata: BlueprintMetadata
    template: Dict[str, Any]
    body: str


@dataclass
class Resolution:
    """Result of resolving a blueprint instance.

    ``header`` and ``body`` are the rendered definition, ready for schema
    validation. ``header`` is None when resolution failed with errors.
    """

    header: Optional[Dict[str, Any]] = None
    body: str = ""
    blueprint: Optional[Blueprint] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    errors: List[ValidationError] = field(default_factory=list)


# A fetcher returns blueprint file text for a remote source.
Fetcher = Callable[[BlueprintSource], str]


# =============================================================================
# Detection
# =============================================================================


def is_blueprint(header: Dict[str, Any]) -> bool:
    return isinstance(header.get("blueprint"), dict)


# =============================================================================
# Parsing
# =============================================================================


def parse_blueprint_content(content: str) -> Tuple[Optional[Blueprint], List[ValidationError]]:
    """Parse blueprint file text into metadata plus templates."""
    try:
        header, body = parse_frontmatter(content)
    except FrontmatterError as e:
        return None, [error("frontmatter", str(e), Stage.STRUCTURAL)]

    if not is_blueprint(header):
        return None, [
            error(
                "blueprint",
                "Blueprint metadata is required (blueprint: { name, version, ... })",
                Stage.BLUEPRINT,
            )
        ]

    try:
        metadata = BlueprintMetadata.model_validate(header["blueprint"])
    except PydanticValidationError as e:
        return None, [
            error(f"blueprint.{err.field}", err.message, Stage.BLUEPRINT)
            for err in flatten_pydantic_errors(e)
        ]

    template = {key: value for key, value in header.items() if key != "blueprint"}
    return Blueprint(metadata=metadata, template=template, body=body.strip()), []


def parse_blueprint_file(path: Path) -> Tuple[Optional[Blueprint], List[ValidationError]]:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        return None, [error("file", f"Failed to read blueprint file: {e}", Stage.STRUCTURAL)]
    return parse_blueprint_content(content)


# =============================================================================
# Source resolution
# =============================================================================


def classify_source(locator: str, base_dir: Optional[Path] = None) -> BlueprintSource:
    """Classify an ``extends`` locator by its prefix or pattern.

    Examples:
        catalog:issue-triage@1.0.0          -> catalog, "issue-triage", "1.0.0"
        catalog:issue-triage                -> catalog, "issue-triage", "latest"
        github.com/org/repo/bp.md@v2        -> remote, "org/repo/bp.md", "v2"
        ./blueprints/triage.md              -> local, <base_dir>/blueprints/triage.md
    """
    if locator.startswith(CATALOG_PREFIX):
        name, _, version = locator[len(CATALOG_PREFIX) :].partition("@")
        return BlueprintSource(SourceKind.CATALOG, name, version or LATEST)

    if "github.com/" in locator:
        match = _GITHUB_PATTERN.search(locator)
        if match:
            return BlueprintSource(SourceKind.REMOTE, match.group(1), match.group(2))

    if base_dir is not None:
        return BlueprintSource(SourceKind.LOCAL, str(Path(base_dir) / locator))
    return BlueprintSource(SourceKind.LOCAL, locator)


def _version_matches(requested: str, actual: str) -> bool:
    if requested == LATEST:
        return True
    wanted = requested.lstrip("v").split(".")
    return actual.split(".")[: len(wanted)] == wanted


def load_source(
    source: BlueprintSource,
    catalog_dir: Optional[Path] = None,
    fetcher: Optional[Fetcher] = None,
) -> str:
    """Return blueprint file text for a classified source.

    Raises:
        BlueprintResolutionError: The source cannot be located or read.
    """
    if source.kind == SourceKind.REMOTE:
        if fetcher is None:
            raise BlueprintResolutionError(
                f"Remote blueprint 'github.com/{source.path}' requires a fetcher; "
                "the compiler performs no network access"
            )
        return fetcher(source)

    if source.kind == SourceKind.CATALOG:
        if catalog_dir is None:
            raise BlueprintResolutionError(
                f"Catalog blueprint '{source.path}' requested but no catalog directory is configured"
            )
        path = Path(catalog_dir) / f"{source.path}.md"
    else:
        path = Path(source.path)

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise BlueprintResolutionError(f"Failed to read blueprint '{path}': {e}") from e


# =============================================================================
# Parameters
# =============================================================================


def _type_error(name: str, kind: str, value: Any, values: Optional[List[str]]) -> Optional[str]:
    if kind == "string" and not isinstance(value, str):
        return f"Parameter '{name}' must be a string"
    if kind == "number" and (isinstance(value, bool) or not isinstance(value, (int, float))):
        return f"Parameter '{name}' must be a number"
    if kind == "boolean" and not isinstance(value, bool):
        return f"Parameter '{name}' must be a boolean"
    if kind == "array" and not isinstance(value, list):
        return f"Parameter '{name}' must be an array"
    if kind == "enum" and value not in (values or []):
        return f"Parameter '{name}' must be one of: {', '.join(values or [])}"
    return None


def validate_parameters(metadata: BlueprintMetadata, supplied: Dict[str, Any]) -> List[ValidationError]:
    """Type-check supplied values against declared parameters.

    Produces one error per offending parameter, and a warning for each
    supplied name the blueprint does not declare.
    """
    errors: List[ValidationError] = []

    for param in metadata.parameters:
        value = supplied.get(param.name)
        if value is None:
            if param.required and param.default is None:
                errors.append(
                    error(
                        f"parameters.{param.name}",
                        f"Required parameter '{param.name}' is missing",
                        Stage.BLUEPRINT,
                    )
                )
            continue

        message = _type_error(param.name, param.type, value, param.values)
        if message:
            errors.append(error(f"parameters.{param.name}", message, Stage.BLUEPRINT))

    declared = {param.name for param in metadata.parameters}
    for name in supplied:
        if name not in declared:
            logger.warning("Blueprint %s does not declare parameter %r", metadata.name, name)
            errors.append(
                warning(
                    f"parameters.{name}",
                    f"Parameter '{name}' is not declared by blueprint '{metadata.name}'",
                    Stage.BLUEPRINT,
                )
            )

    return errors


def merge_with_defaults(metadata: BlueprintMetadata, supplied: Dict[str, Any]) -> Dict[str, Any]:
    """Supplied values win over defaults; parameters with neither are absent."""
    merged: Dict[str, Any] = {}
    for param in metadata.parameters:
        if supplied.get(param.name) is not None:
            merged[param.name] = supplied[param.name]
        elif param.default is not None:
            merged[param.name] = param.default
    return merged


# =============================================================================
# Substitution
# =============================================================================


def _render_value(value: Any) -> str:
    if isinstance(value, list):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def apply_template(template: str, parameters: Dict[str, Any]) -> str:
    """Replace ``{{ parameters.<name> }}`` placeholders in one string."""

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in parameters:
            return f"{{{{ parameters.{name} }}}}"
        return _render_value(parameters[name])

    return PLACEHOLDER_PATTERN.sub(replace, template)


def apply_template_to_object(value: Any, parameters: Dict[str, Any]) -> Any:
    """Substitute placeholders in every string leaf of a nested structure."""
    if isinstance(value, str):
        return apply_template(value, parameters)
    if isinstance(value, dict):
        return {key: apply_template_to_object(item, parameters) for key, item in value.items()}
    if isinstance(value, list):
        return [apply_template_to_object(item, parameters) for item in value]
    return value


# =============================================================================
# Instance resolution
# =============================================================================


def _canonical(key: str) -> str:
    return str(key).replace("-", "_")


def _overlay(template: Dict[str, Any], instance: Dict[str, Any]) -> Dict[str, Any]:
    overrides = {key: value for key, value in instance.items() if key not in INSTANCE_FIELDS}
    replaced = {_canonical(key) for key in overrides}
    merged = {key: value for key, value in template.items() if _canonical(key) not in replaced}
    merged.update(overrides)
    return merged


def resolve_instance(
    header: Dict[str, Any],
    body: str,
    base_dir: Optional[Path] = None,
    catalog_dir: Optional[Path] = None,
    fetcher: Optional[Fetcher] = None,
) -> Resolution:
    """Resolve a definition that ``extends`` a blueprint into a rendered header and body."""
    locator = header.get("extends")
    if not isinstance(locator, str) or not locator.strip():
        return Resolution(
            errors=[error("extends", "Blueprint source (extends) is required", Stage.BLUEPRINT)]
        )

    supplied = header.get("parameters")
    if supplied is None:
        supplied = {}
    if not isinstance(supplied, dict):
        return Resolution(
            errors=[
                error("parameters", "Parameters must be a mapping of name to value", Stage.BLUEPRINT)
            ]
        )

    source = classify_source(locator, base_dir)
    try:
        content = load_source(source, catalog_dir=catalog_dir, fetcher=fetcher)
    except BlueprintResolutionError as e:
        return Resolution(errors=[error("extends", str(e), Stage.BLUEPRINT)])

    blueprint, errors = parse_blueprint_content(content)
    if blueprint is None:
        return Resolution(errors=errors)

    metadata = blueprint.metadata
    if source.kind == SourceKind.CATALOG and not _version_matches(source.version or LATEST, metadata.version):
        errors.append(
            error(
                "extends",
                f"Blueprint '{source.path}' is version {metadata.version}, "
                f"but version {source.version} was requested",
                Stage.BLUEPRINT,
            )
        )
    if metadata.extends:
        errors.append(
            warning(
                "blueprint.extends",
                f"Blueprint '{metadata.name}' extends '{metadata.extends}'; chained blueprints are not resolved",
                Stage.BLUEPRINT,
            )
        )

    errors.extend(validate_parameters(metadata, supplied))
    if any(e.is_error for e in errors):
        return Resolution(blueprint=blueprint, errors=errors)

    parameters = merge_with_defaults(metadata, supplied)
    rendered = apply_template_to_object(blueprint.template, parameters)
    rendered_body = apply_template(blueprint.body, parameters)

    instance_body = apply_template(body.strip(), parameters)
    if instance_body:
        rendered_body = f"{rendered_body}\n\n{instance_body}" if rendered_body else instance_body

    logger.debug(
        "Resolved blueprint %s@%s with parameters %s", metadata.name, metadata.version, sorted(parameters)
    )
    return Resolution(
        header=_overlay(rendered, header),
        body=rendered_body,
        blueprint=blueprint,
        parameters=parameters,
        errors=errors,
    )
