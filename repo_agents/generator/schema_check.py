"""
schema_check.py - Self-validation of generated workflow YAML.

Every artifact the compiler emits is parsed back and checked against the
bundled GitHub Actions workflow schema (JSON Schema draft 7). A mismatch is a
compiler bug, so findings carry the ``generation`` stage and are never
downgraded to warnings.

Usage:
    from repo_agents.generator.schema_check import validate_workflow_yaml

    errors = validate_workflow_yaml(text)
    if errors:
        raise GenerationError("Generated workflow is invalid", errors)
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from jsonschema import Draft7Validator

from repo_agents.errors import Stage, ValidationError, error
from repo_agents.parser.frontmatter import load_yaml

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schemas" / "github-workflow.schema.json"


@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
        schema = json.load(f)
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)


def validate_workflow_data(data: Any) -> List[ValidationError]:
    """Validate an already-parsed workflow document."""
    errors: List[ValidationError] = []
    for finding in sorted(_validator().iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        path = ".".join(str(p) for p in finding.absolute_path) or "workflow"
        errors.append(error(path, finding.message, Stage.GENERATION))
    if errors:
        logger.warning("Generated workflow failed schema validation with %d error(s)", len(errors))
    return errors


def validate_workflow_yaml(text: str) -> List[ValidationError]:
    """Parse generated YAML and validate it; unparseable YAML is itself a finding."""
    try:
        data: Dict[str, Any] = load_yaml(text)
    except yaml.YAMLError as e:
        return [error("workflow", f"Generated YAML does not parse: {e}", Stage.GENERATION)]
    return validate_workflow_data(data)
