"""
base.py - Capability interface shared by every output handler.

An output handler contributes three things to a generated workflow:

- context_script(runtime): bash appended to /tmp/context.txt before the agent
  runs (e.g. the repository's labels), or None.
- skill(config): markdown telling the agent which file to write under
  /tmp/outputs/ and what JSON shape it must have.
- validation_script(config, runtime): bash that validates the files the agent
  wrote, records failures in /tmp/validation-errors/<name>.txt and performs
  the operation with ``gh``. Validation is atomic: nothing executes unless
  every file of that output type is valid.

Most handlers are declarative subclasses of JsonOutputHandler.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from repo_agents.generator.ir import expr
from repo_agents.parser.schema import OutputConfig

OUTPUTS_DIR = "/tmp/outputs"
ERRORS_DIR = "/tmp/validation-errors"


@dataclass(frozen=True)
class RuntimeContext:
    """Workflow expressions handlers interpolate into their scripts."""

    repository: str = expr("github.repository")
    issue_number: str = expr("needs.pre-flight.outputs.issue-number")
    pr_number: str = expr("needs.pre-flight.outputs.pr-number")
    issue_or_pr_number: str = expr("needs.pre-flight.outputs.issue-or-pr-number")
    allowed_paths: Tuple[str, ...] = field(default_factory=tuple)


class JsonField(NamedTuple):
    name: str
    type: str
    required: bool
    description: str


def indent(lines: List[str], spaces: int) -> List[str]:
    pad = " " * spaces
    return [f"{pad}{line}" if line else line for line in lines]


def fail(name: str, message: str, skip: bool = True) -> List[str]:
    """Bash lines that record a validation failure for the current file."""
    lines = [f'echo "- **{name}**: {message}" >> "$ERRORS_FILE"', "VALIDATION_FAILED=true"]
    if skip:
        lines.append("continue")
    return lines


def read_field(var: str, key: str, default: str = "empty") -> str:
    return f"{var}=$(jq -r '.{key} // {default}' \"$OUTPUT_FILE\")"


def require_text(name: str, key: str, var: str) -> List[str]:
    return [
        read_field(var, key),
        f'if [ -z "${var}" ]; then',
        *indent(fail(name, f"{key} is required in $OUTPUT_FILE"), 2),
        "fi",
    ]


def require_array(name: str, key: str) -> List[str]:
    return [
        f"if ! jq -e '.{key} | type == \"array\" and length > 0' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
        *indent(fail(name, f"{key} must be a non-empty array in $OUTPUT_FILE"), 2),
        "fi",
    ]


def require_number(name: str, key: str) -> List[str]:
    return [
        f"if ! jq -e '.{key} | type == \"number\"' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
        *indent(fail(name, f"{key} must be a number in $OUTPUT_FILE"), 2),
        "fi",
    ]


BRANCH_NAME_PATTERN = "^[a-zA-Z0-9][a-zA-Z0-9/_.-]*$"


def require_branch_name(name: str, var: str = "BRANCH") -> List[str]:
    return [
        f"if ! echo \"${var}\" | grep -qE '{BRANCH_NAME_PATTERN}' || echo \"${var}\" | grep -q '\\.\\.'; then",
        *indent(fail(name, f"Invalid branch name '${var}' (allowed: [a-zA-Z0-9][a-zA-Z0-9/_.-]*)"), 2),
        "fi",
    ]


def require_files(name: str) -> List[str]:
    """Checks for a non-empty ``files: [{path, content}]`` array."""
    return [
        "if ! jq -e '.files | type == \"array\"' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
        *indent(fail(name, "files field must be an array in $OUTPUT_FILE"), 2),
        "fi",
        "if [ \"$(jq '.files | length' \"$OUTPUT_FILE\")\" -eq 0 ]; then",
        *indent(fail(name, "files array cannot be empty in $OUTPUT_FILE"), 2),
        "fi",
        "if ! jq -e '.files | all(.path and (.content | type == \"string\"))' \"$OUTPUT_FILE\" >/dev/null 2>&1; then",
        *indent(fail(name, "every entry in files needs a path and string content"), 2),
        "fi",
        "if jq -r '.files[].path' \"$OUTPUT_FILE\" | grep -qE '(^/|\\.\\.)'; then",
        *indent(fail(name, "file paths must be relative and must not contain '..'"), 2),
        "fi",
    ]


def target_number(var: str, fallback: str) -> List[str]:
    """Resolve the issue/PR number from the file, falling back to the triggering event."""
    return [
        read_field(var, "issue_number"),
        f'if [ -z "${var}" ]; then',
        f'  {var}="{fallback}"',
        "fi",
    ]


def labels_context_script(repository: str) -> str:
    """Append the repository's labels to the agent context (add/remove label)."""
    return f"""# Fetch available labels for context
LABELS_JSON=$(gh api "repos/{repository}/labels" --paginate --jq '[.[].name]' 2>/dev/null || echo '[]')
LABELS_LIST=$(echo "$LABELS_JSON" | jq -r 'join(", ")' 2>/dev/null || echo "No labels available")

{{
  echo ""
  echo "## Available Repository Labels"
  echo ""
  echo "The following labels are available in this repository:"
  echo "$LABELS_LIST"
  echo ""
  echo "**Important**: You can only use labels that already exist."
}} >> /tmp/context.txt
"""


# =============================================================================
# Handler interface
# =============================================================================


class OutputHandler:
    """Base interface; concrete handlers override all three capabilities."""

    name: str = ""

    def context_script(self, runtime: RuntimeContext) -> Optional[str]:
        return None

    def skill(self, config: OutputConfig) -> str:
        raise NotImplementedError

    def validation_script(self, config: OutputConfig, runtime: RuntimeContext) -> str:
        raise NotImplementedError


class JsonOutputHandler(OutputHandler):
    """Handler driven by a declared JSON shape.

    Subclasses set the class attributes and implement ``execute``; they may
    extend ``checks`` with rules beyond required-field presence.
    """

    title: str = ""
    summary: str = ""
    fields: Tuple[JsonField, ...] = ()
    constraints: Tuple[str, ...] = ()
    example: Dict[str, Any] = {}
    default_max: Optional[int] = None

    def max_files(self, config: OutputConfig) -> Optional[int]:
        return config.setting("max", self.default_max)

    # -------------------------------------------------------------------------
    # Skill
    # -------------------------------------------------------------------------

    def extra_constraints(self, config: OutputConfig) -> List[str]:
        return []

    def skill(self, config: OutputConfig) -> str:
        entries = [f'  "{f.name}": {f.type}' for f in self.fields]
        schema = "{\n" + ",\n".join(entries) + "\n}"
        lines = [
            f"## Skill: {self.title}",
            "",
            self.summary,
            "",
            f"**File to create**: `{OUTPUTS_DIR}/{self.name}.json`",
            "",
            f"For multiple operations, use numbered suffixes: `{self.name}-1.json`, `{self.name}-2.json`, etc.",
            "",
            "**JSON Schema**:",
            "```json",
            schema,
            "```",
            "",
            "**Fields**:",
        ]
        for f in self.fields:
            requirement = "required" if f.required else "optional"
            lines.append(f"- `{f.name}` ({requirement}): {f.description}")

        constraints = list(self.constraints) + self.extra_constraints(config)
        limit = self.max_files(config)
        constraints.append(f"Maximum files: {limit}" if limit else "Maximum files: unlimited")
        lines.extend(["", "**Constraints**:"])
        lines.extend(f"- {c}" for c in constraints)

        lines.extend(
            [
                "",
                "**Example**:",
                "```json",
                json.dumps(self.example, indent=2),
                "```",
                "",
                "**Important**: Use the Write tool to create this file.",
            ]
        )
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Validation script
    # -------------------------------------------------------------------------

    def checks(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        lines: List[str] = []
        for f in self.fields:
            if not f.required:
                continue
            if f.type == "string":
                lines.extend(require_text(self.name, f.name, f.name.upper()))
            elif f.type.startswith("["):
                lines.extend(require_array(self.name, f.name))
            elif f.type == "number":
                lines.extend(require_number(self.name, f.name))
        return lines

    def setup(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        """Lines run once before validation (e.g. fetching the repository's labels)."""
        return []

    def execute(self, config: OutputConfig, runtime: RuntimeContext) -> List[str]:
        raise NotImplementedError

    def signed(self, config: OutputConfig) -> bool:
        return bool(config.setting("sign", False))

    def validation_script(self, config: OutputConfig, runtime: RuntimeContext) -> str:
        name = self.name
        lines = [
            f"# Validate and execute {name} output(s)",
            f'OUTPUT_FILES=$(find {OUTPUTS_DIR} -maxdepth 1 \\( -name "{name}.json" -o -name "{name}-*.json" \\) 2>/dev/null | sort)',
            'if [ -n "$OUTPUT_FILES" ]; then',
            f"  ERRORS_FILE={ERRORS_DIR}/{name}.txt",
            '  FILE_COUNT=$(echo "$OUTPUT_FILES" | wc -l)',
            f'  echo "Found $FILE_COUNT {name} output file(s)"',
            "  VALIDATION_FAILED=false",
            *indent(self.setup(config, runtime), 2),
        ]

        limit = self.max_files(config)
        if limit:
            lines.extend(
                [
                    f'  if [ "$FILE_COUNT" -gt {limit} ]; then',
                    *indent(fail(name, f"Too many output files ($FILE_COUNT). Maximum allowed: {limit}", skip=False), 4),
                    "  fi",
                ]
            )

        lines.extend(
            [
                "",
                "  # Phase 1: validate every file",
                "  for OUTPUT_FILE in $OUTPUT_FILES; do",
                '    if ! jq empty "$OUTPUT_FILE" 2>/dev/null; then',
                *indent(fail(name, "Invalid JSON format in $OUTPUT_FILE"), 6),
                "    fi",
                *indent(self.checks(config, runtime), 4),
                '    echo "✓ Validation passed for $OUTPUT_FILE"',
                "  done",
                "",
                "  # Phase 2: execute only if every file is valid",
                '  if [ "$VALIDATION_FAILED" = false ]; then',
                f'    echo "✓ All {name} validations passed - executing..."',
                "    for OUTPUT_FILE in $OUTPUT_FILES; do",
                *indent(self.execute(config, runtime), 6),
                "    done",
                "  else",
                f'    echo "✗ {name} validation failed - skipping execution (atomic operation)"',
                "  fi",
                "fi",
            ]
        )
        return "\n".join(lines) + "\n"


def run_or_record(name: str, command: List[str], action: str) -> List[str]:
    """Run a (possibly multi-line) command, recording a failure instead of aborting."""
    lines = list(command)
    lines[-1] = f"{lines[-1]} || {{"
    lines.append(f'  echo "- **{name}**: Failed to {action}" >> "$ERRORS_FILE"')
    lines.append("}")
    return lines
