"""
Tests for output handlers.

Each handler contributes a skill document, an optional context script and a
validation script that validates every file of its type before executing any.
"""

import pytest

from repo_agents.generator.outputs import HANDLERS, RuntimeContext, get_output_handler
from repo_agents.generator.outputs.base import ERRORS_DIR, OUTPUTS_DIR
from repo_agents.parser.schema import OUTPUT_NAMES, OutputConfig


def output_config(**settings) -> OutputConfig:
    return OutputConfig.model_validate(settings)


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_one_handler_per_output_name(self):
        assert set(HANDLERS) == set(OUTPUT_NAMES)

    def test_unknown_output(self):
        with pytest.raises(ValueError, match="Unknown output type: send-email"):
            get_output_handler("send-email")


@pytest.mark.parametrize("name", OUTPUT_NAMES)
class TestEveryHandler:
    """Capabilities every handler must provide."""

    def test_skill_names_the_output_file(self, name):
        skill = get_output_handler(name).skill(OutputConfig())
        assert f"`{OUTPUTS_DIR}/{name}.json`" in skill
        assert "**Example**:" in skill

    def test_validation_script_is_atomic(self, name):
        script = get_output_handler(name).validation_script(OutputConfig(), RuntimeContext())
        assert f"ERRORS_FILE={ERRORS_DIR}/{name}.txt" in script
        assert "# Phase 1: validate every file" in script
        assert '  if [ "$VALIDATION_FAILED" = false ]; then' in script
        assert f"{name} validation failed - skipping execution (atomic operation)" in script


# =============================================================================
# Limits and Settings
# =============================================================================


class TestLimits:
    def test_default_limit(self):
        handler = get_output_handler("add-comment")
        assert "Maximum files: 1" in handler.skill(OutputConfig())
        assert '"$FILE_COUNT" -gt 1' in handler.validation_script(OutputConfig(), RuntimeContext())

    def test_configured_limit(self):
        handler = get_output_handler("create-issue")
        config = output_config(max=3)
        assert "Maximum files: 3" in handler.skill(config)
        assert '"$FILE_COUNT" -gt 3' in handler.validation_script(config, RuntimeContext())

    def test_unlimited(self):
        handler = get_output_handler("add-label")
        assert "Maximum files: unlimited" in handler.skill(OutputConfig())
        assert "FILE_COUNT\" -gt" not in handler.validation_script(OutputConfig(), RuntimeContext())


class TestLabels:
    """Tests for the label handlers."""

    def test_blocked_labels(self):
        handler = get_output_handler("add-label")
        config = output_config(**{"blocked-labels": ["security", "wontfix"]})
        assert "Cannot use blocked labels: security, wontfix" in handler.skill(config)
        assert "BLOCKED_LABELS='[\"security\", \"wontfix\"]'" in handler.validation_script(config, RuntimeContext())

    def test_labels_must_exist(self):
        script = get_output_handler("add-label").validation_script(OutputConfig(), RuntimeContext())
        assert "do not exist in the repository" in script

    def test_context_lists_repository_labels(self):
        script = get_output_handler("remove-label").context_script(RuntimeContext())
        assert "## Available Repository Labels" in script


class TestRepositoryOutputs:
    def test_update_file_patterns(self):
        runtime = RuntimeContext(allowed_paths=("docs/**", "*.md"))
        script = get_output_handler("update-file").validation_script(OutputConfig(), runtime)
        assert "ALLOWED_PATTERNS=('docs/**' '*.md')" in script
        assert "does not match allowed patterns" in script

    def test_update_file_context(self):
        handler = get_output_handler("update-file")
        assert handler.context_script(RuntimeContext()) is None
        context = handler.context_script(RuntimeContext(allowed_paths=("docs/**",)))
        assert "Allowed File Paths" in context
        assert "docs/**" in context

    def test_signed_commits(self):
        handler = get_output_handler("create-pr")
        config = output_config(sign=True)
        assert "Commits must be signed" in handler.skill(config)
        assert 'git commit -S -m "$TITLE"' in handler.validation_script(config, RuntimeContext())
        assert 'git commit -S' not in handler.validation_script(OutputConfig(), RuntimeContext())

    def test_create_pr_rejects_bad_branch_names(self):
        script = get_output_handler("create-pr").validation_script(OutputConfig(), RuntimeContext())
        assert "Invalid branch name" in script
        assert "file paths must be relative" in script


def test_runtime_expressions_are_interpolated():
    runtime = RuntimeContext(repository="octo/repo")
    script = get_output_handler("add-label").validation_script(OutputConfig(), runtime)
    assert "repos/octo/repo/labels" in script
