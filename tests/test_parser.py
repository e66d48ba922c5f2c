"""
Tests for definition parsing and validation.

These tests verify:
1. Header/body splitting and structural failures
2. The closed header schema (unknown fields, types, kebab/snake spellings)
3. Output flag expansion and lenient trigger parsing
4. Business rules over parsed definitions
5. Rendering a definition back to text
"""

import pytest

from conftest import (
    FULL_DEFINITION,
    MINIMAL_DEFINITION,
    assert_has_error,
    definition_text,
    fields_of,
    parse_definition,
)
from repo_agents.errors import Severity, Stage
from repo_agents.parser import (
    FrontmatterError,
    load_yaml,
    parse_content,
    parse_file,
    parse_frontmatter,
    render_definition,
    validate_business_rules,
)


# =============================================================================
# Structural Layer
# =============================================================================


class TestFrontmatter:
    """Tests for splitting a file into header and body."""

    def test_split_header_and_body(self):
        header, body = parse_frontmatter(MINIMAL_DEFINITION)
        assert header["name"] == "Issue Triage"
        assert body.strip() == "Triage new issues."

    def test_on_key_stays_a_string(self):
        header, _ = parse_frontmatter(MINIMAL_DEFINITION)
        assert "on" in header
        assert True not in header

    def test_yes_is_not_a_boolean(self):
        assert load_yaml("value: yes") == {"value": "yes"}
        assert load_yaml("value: true") == {"value": True}

    def test_crlf_and_bom_are_accepted(self):
        content = "\ufeff" + MINIMAL_DEFINITION.replace("\n", "\r\n")
        header, body = parse_frontmatter(content)
        assert header["name"] == "Issue Triage"
        assert "Triage new issues." in body

    def test_missing_frontmatter(self):
        with pytest.raises(FrontmatterError) as exc_info:
            parse_frontmatter("Just instructions, no header.\n")
        assert str(exc_info.value) == "Frontmatter is required"
        assert exc_info.value.missing

    def test_unterminated_frontmatter(self):
        with pytest.raises(FrontmatterError, match="missing closing '---' delimiter"):
            parse_frontmatter("---\nname: x\n")

    def test_empty_header_is_missing(self):
        with pytest.raises(FrontmatterError, match="Frontmatter is required"):
            parse_frontmatter("---\n---\nbody\n")

    def test_invalid_yaml(self):
        with pytest.raises(FrontmatterError, match="Failed to parse frontmatter"):
            parse_frontmatter('---\nname: "unclosed\n---\nbody\n')

    def test_non_mapping_header(self):
        with pytest.raises(FrontmatterError, match="expected a mapping"):
            parse_frontmatter("---\n- a\n- b\n---\nbody\n")

    def test_structural_failure_is_single_finding(self):
        result = parse_content("no header here")
        assert not result.ok
        assert len(result.errors) == 1
        assert result.errors[0].field == "frontmatter"
        assert result.errors[0].stage == Stage.STRUCTURAL


# =============================================================================
# Schema Layer
# =============================================================================


class TestSchema:
    """Tests for the closed header schema."""

    def test_minimal_definition_parses(self):
        definition = parse_definition(MINIMAL_DEFINITION)
        assert definition.name == "Issue Triage"
        assert definition.triggers.issues.types == ["opened"]
        assert definition.body == "Triage new issues."
        assert definition.provider == "claude-code"
        assert definition.rate_limit_minutes == 5

    def test_full_definition_accessors(self, full_definition):
        assert full_definition.trigger_labels == ["triage"]
        assert full_definition.allowed_users == ["octocat"]
        assert full_definition.rate_limit_minutes == 10
        assert set(full_definition.outputs) == {"add-comment", "add-label"}
        assert full_definition.outputs["add-comment"].setting("max") == 1
        assert full_definition.has_output("add-label")

    def test_unknown_top_level_field(self):
        result = parse_content(definition_text("name: x\non:\n  issues: {}\ndescripton: typo"))
        assert_has_error(result.errors, "descripton", "Unknown field")
        assert result.definition is None

    def test_missing_name(self):
        result = parse_content(definition_text("on:\n  issues: {}"))
        assert_has_error(result.errors, "name", "Agent name is required")

    def test_blank_name(self):
        result = parse_content(definition_text('name: "  "\non:\n  issues: {}'))
        assert_has_error(result.errors, "name", "Agent name is required")

    def test_missing_on(self):
        result = parse_content(definition_text("name: x"))
        assert "on" in fields_of(result.errors)

    def test_errors_are_exhaustive(self):
        result = parse_content(definition_text("name: x\non:\n  issues: {}\nprovider: gpt\nbogus: 1"))
        fields = fields_of(result.errors)
        assert "provider" in fields
        assert "bogus" in fields

    def test_unknown_output_name(self):
        result = parse_content(definition_text("name: x\non:\n  issues: {}\noutputs:\n  send-email: true"))
        assert any(f.startswith("outputs") for f in fields_of(result.errors))

    def test_permissions_are_closed(self):
        result = parse_content(
            definition_text("name: x\non:\n  issues: {}\npermissions:\n  admin: write")
        )
        assert_has_error(result.errors, "permissions.admin", "Unknown field")

    def test_permission_error_keeps_disk_spelling(self):
        result = parse_content(
            definition_text("name: x\non:\n  issues: {}\npermissions:\n  pull-requests: admin")
        )
        assert "permissions.pull-requests" in fields_of(result.errors)

    def test_kebab_and_snake_spellings(self):
        kebab = parse_definition(definition_text("name: x\non:\n  issues: {}\ntrigger-labels: [a]"))
        snake = parse_definition(definition_text("name: x\non:\n  issues: {}\ntrigger_labels: [a]"))
        assert kebab.trigger_labels == snake.trigger_labels == ["a"]

    def test_duplicate_spelling_is_an_error(self):
        result = parse_content(
            definition_text("name: x\non:\n  issues: {}\nrate-limit-minutes: 1\nrate_limit_minutes: 2")
        )
        finding = assert_has_error(result.errors, "rate_limit_minutes", "Duplicate field")
        assert "'rate-limit-minutes'" in finding.message

    def test_negative_rate_limit_rejected(self):
        result = parse_content(definition_text("name: x\non:\n  issues: {}\nrate-limit-minutes: -1"))
        assert "rate-limit-minutes" in fields_of(result.errors)

    def test_zero_rate_limit_allowed(self):
        definition = parse_definition(definition_text("name: x\non:\n  issues: {}\nrate-limit-minutes: 0"))
        assert definition.rate_limit_minutes == 0

    def test_extends_and_blueprint_are_exclusive(self):
        header = """
name: x
on:
  issues: {}
extends: ./base.md
blueprint:
  name: base
  version: 1.0.0
"""
        result = parse_content(definition_text(header))
        assert_has_error(result.errors, "extends", "Cannot use both 'extends' and 'blueprint'")

    def test_allowed_users_union(self):
        definition = parse_definition(
            definition_text("name: x\non:\n  issues: {}\nallowed-actors: [a, b]\nallowed-users: [b, c]")
        )
        assert definition.allowed_users == ["a", "b", "c"]


class TestOutputFlags:
    """Tests for boolean output entries."""

    def test_true_enables_with_defaults(self):
        definition = parse_definition(definition_text("name: x\non:\n  issues: {}\noutputs:\n  add-comment: true"))
        assert definition.has_output("add-comment")
        assert definition.outputs["add-comment"].setting("max") is None

    def test_false_drops_the_entry(self):
        definition = parse_definition(
            definition_text("name: x\non:\n  issues: {}\noutputs:\n  add-comment: true\n  add-label: false")
        )
        assert list(definition.outputs) == ["add-comment"]

    def test_handler_settings_are_kept(self):
        definition = parse_definition(
            definition_text(
                "name: x\non:\n  issues: {}\noutputs:\n  add-label:\n    blocked-labels: [security]"
            )
        )
        assert definition.outputs["add-label"].setting("blocked-labels") == ["security"]


class TestTriggers:
    """Tests for lenient trigger parsing."""

    def test_bare_category_means_any_action(self):
        definition = parse_definition(definition_text("name: x\non:\n  issues:"))
        assert definition.triggers.issues is not None
        assert definition.triggers.issues.types is None

    def test_unknown_category_is_ignored(self):
        definition = parse_definition(definition_text("name: x\non:\n  issues: {}\n  push: {}"))
        assert definition.triggers.has_any()

    def test_schedule_entries(self):
        definition = parse_definition(definition_text('name: x\non:\n  schedule:\n    - cron: "0 * * * *"'))
        assert definition.triggers.schedule[0].cron == "0 * * * *"


# =============================================================================
# Body and Business Rules
# =============================================================================


class TestBody:
    def test_empty_body_is_a_warning(self):
        result = parse_content("---\nname: x\non:\n  issues: {}\n---\n")
        assert result.ok
        assert len(result.errors) == 1
        assert result.errors[0].field == "markdown"
        assert result.errors[0].severity == Severity.WARNING


class TestBusinessRules:
    """Tests for cross-field invariants."""

    def test_update_file_requires_allowed_paths(self):
        header = "name: x\non:\n  issues: {}\npermissions:\n  contents: write\noutputs:\n  update-file: true"
        result = parse_content(definition_text(header))
        finding = assert_has_error(result.errors, "outputs", "update-file requires allowed-paths")
        assert finding.stage == Stage.BUSINESS_RULE

    def test_update_file_with_allowed_paths(self):
        header = (
            "name: x\non:\n  issues: {}\npermissions:\n  contents: write\n"
            "outputs:\n  update-file: true\nallowed-paths: ['docs/**']"
        )
        assert parse_content(definition_text(header)).ok

    @pytest.mark.parametrize("output", ["create-pr", "update-file"])
    def test_content_writing_outputs_need_contents_write(self, output):
        header = f"name: x\non:\n  issues: {{}}\nallowed-paths: ['docs/**']\noutputs:\n  {output}: true"
        result = parse_content(definition_text(header))
        assert_has_error(result.errors, "permissions", f"{output} requires contents: write permission")

    def test_at_least_one_trigger(self):
        result = parse_content(definition_text("name: x\non:\n  push: {}"))
        assert_has_error(result.errors, "on", "At least one trigger must be specified")

    def test_rules_run_on_parsed_definition(self, minimal_definition):
        assert validate_business_rules(minimal_definition) == []


# =============================================================================
# Files and Rendering
# =============================================================================


def test_parse_file_records_source(tmp_path):
    path = tmp_path / "triage.md"
    path.write_text(MINIMAL_DEFINITION, encoding="utf-8")
    result = parse_file(path)
    assert result.ok
    assert result.definition.source == str(path)


def test_parse_missing_file(tmp_path):
    result = parse_file(tmp_path / "absent.md")
    assert not result.ok
    assert result.errors[0].field == "file"
    assert result.errors[0].stage == Stage.STRUCTURAL


def test_render_definition_reparses_to_equal_header(full_definition):
    text = render_definition(full_definition)
    reparsed = parse_definition(text)
    assert reparsed.header == full_definition.header
    assert reparsed.body == full_definition.body


def test_render_uses_disk_spelling(full_definition):
    text = render_definition(full_definition)
    assert "allowed-users:" in text
    assert text.startswith("---\n")


def test_full_definition_fixture_text_is_valid():
    assert parse_content(FULL_DEFINITION).ok
