"""
frontmatter.py - Split definition files into a YAML header and a markdown body.

Definition files look like:

    ---
    name: Issue Triage
    on:
      issues:
        types: [opened]
    ---
    Instructions for the agent...

The loader resolves booleans the YAML 1.2 way (only true/false), so the
``on:`` key and values like ``yes``/``no`` stay strings, matching how the
CI platform itself reads workflow files.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Tuple

import yaml

DELIMITER = "---"

_BOOL_TAG = "tag:yaml.org,2002:bool"
_YAML12_BOOL = re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$")


class FrontmatterError(ValueError):
    """Header block is missing, unterminated, or not valid YAML."""

    def __init__(self, message: str, missing: bool = False):
        super().__init__(message)
        self.missing = missing


def _yaml12_resolvers(base: type) -> Dict[Any, Any]:
    resolvers = {}
    for first_char, entries in base.yaml_implicit_resolvers.items():
        kept = [(tag, regexp) for tag, regexp in entries if tag != _BOOL_TAG]
        if kept:
            resolvers[first_char] = kept
    return resolvers


class FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader with YAML 1.2 boolean resolution."""


class WorkflowDumper(yaml.SafeDumper):
    """SafeDumper that leaves ``on`` unquoted and writes scripts as literal blocks."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        # indent sequences under their parent key, as workflow files are usually written
        return super().increase_indent(flow, False)


for _cls in (FrontmatterLoader, WorkflowDumper):
    _cls.yaml_implicit_resolvers = _yaml12_resolvers(yaml.SafeLoader)
    _cls.add_implicit_resolver(_BOOL_TAG, _YAML12_BOOL, list("tTfF"))


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


WorkflowDumper.add_representer(str, _represent_str)


def load_yaml(text: str) -> Any:
    """Parse YAML text with the definition loader."""
    return yaml.load(text, Loader=FrontmatterLoader)


def dump_yaml(data: Any) -> str:
    """Serialize data with stable key order and no line wrapping."""
    return yaml.dump(
        data,
        Dumper=WorkflowDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=float("inf"),
    )


def split_frontmatter(content: str) -> Tuple[str, str]:
    """Split raw file text into (header_text, body_text).

    Raises:
        FrontmatterError: If the opening delimiter is absent or never closed.
    """
    text = content.lstrip("\ufeff").replace("\r\n", "\n")
    lines = text.split("\n")

    if not lines or lines[0].strip() != DELIMITER:
        raise FrontmatterError("Frontmatter is required", missing=True)

    for index in range(1, len(lines)):
        if lines[index].strip() == DELIMITER:
            header = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1 :])
            return header, body

    raise FrontmatterError("Failed to parse frontmatter: missing closing '---' delimiter")


def parse_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Split and parse the header block.

    Returns:
        (header mapping, body text). The body is returned untrimmed.

    Raises:
        FrontmatterError: Missing/unterminated delimiter, YAML syntax error,
            a non-mapping header, or an empty header.
    """
    header_text, body = split_frontmatter(content)

    try:
        data = load_yaml(header_text)
    except yaml.YAMLError as e:
        raise FrontmatterError(f"Failed to parse frontmatter: {e}") from e

    if data is None or data == {}:
        raise FrontmatterError("Frontmatter is required", missing=True)
    if not isinstance(data, dict):
        raise FrontmatterError(
            f"Failed to parse frontmatter: expected a mapping, got {type(data).__name__}"
        )

    return data, body


def render_frontmatter(header: Dict[str, Any], body: str) -> str:
    """Inverse of parse_frontmatter: produce definition file text."""
    rendered = dump_yaml(header).rstrip("\n")
    text = f"{DELIMITER}\n{rendered}\n{DELIMITER}\n"
    if body:
        text += f"\n{body.strip()}\n"
    return text
