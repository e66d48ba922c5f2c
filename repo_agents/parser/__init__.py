"""Definition parser: header/body split, closed header schema, business rules."""

from .definition import AgentDefinition, header_to_dict, render_definition
from .frontmatter import FrontmatterError, dump_yaml, load_yaml, parse_frontmatter, render_frontmatter
from .parser import (
    ParseResult,
    build_definition,
    flatten_pydantic_errors,
    normalize_header,
    parse_content,
    parse_file,
    read_file,
    read_frontmatter,
    validate_body,
    validate_business_rules,
    validate_schema,
)
from .schema import OUTPUT_NAMES, PROVIDER_NAMES, AgentFrontmatter

__all__ = [
    "AgentDefinition",
    "AgentFrontmatter",
    "FrontmatterError",
    "OUTPUT_NAMES",
    "PROVIDER_NAMES",
    "ParseResult",
    "build_definition",
    "dump_yaml",
    "flatten_pydantic_errors",
    "header_to_dict",
    "load_yaml",
    "normalize_header",
    "parse_content",
    "parse_file",
    "parse_frontmatter",
    "read_file",
    "read_frontmatter",
    "render_definition",
    "render_frontmatter",
    "validate_body",
    "validate_business_rules",
    "validate_schema",
]
