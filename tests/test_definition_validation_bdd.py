"""
Step definitions for features/definition_validation.feature.
"""

from pytest_bdd import given, parsers, scenarios, then, when

from conftest import assert_has_error, definition_text
from repo_agents.blueprint import apply_template, merge_with_defaults
from repo_agents.compiler import validate_content
from repo_agents.parser.schema import BlueprintMetadata

scenarios("definition_validation.feature")


# =============================================================================
# Definitions
# =============================================================================


@given(parsers.parse('a definition with header "{header}"'), target_fixture="content")
def definition_content(header):
    return definition_text(header)


@when("the definition is validated", target_fixture="findings")
def validate(content, config):
    return validate_content(content, config=config)


@then(parsers.parse("exactly {count:d} error is reported"))
@then(parsers.parse("exactly {count:d} errors are reported"))
def error_count(findings, count):
    errors = [f for f in findings if f.is_error]
    assert len(errors) == count, [e.format() for e in errors]


@then(parsers.parse('an error is reported for "{field}" containing "{fragment}"'))
def error_for_field(findings, field, fragment):
    assert_has_error(findings, field, fragment)


# =============================================================================
# Blueprint parameters
# =============================================================================


@given(
    parsers.parse('a blueprint parameter "{name}" of type enum with values "{values}" and default "{default}"'),
    target_fixture="metadata",
)
def enum_parameter(name, values, default):
    return BlueprintMetadata.model_validate(
        {
            "name": "severity-labeler",
            "version": "1.0.0",
            "parameters": [
                {"name": name, "type": "enum", "values": [v.strip() for v in values.split(",")], "default": default}
            ],
        }
    )


@when("parameters are merged with no supplied values", target_fixture="merged")
def merge_nothing(metadata):
    return merge_with_defaults(metadata, {})


@then(parsers.parse('the merged parameter "{name}" is "{value}"'))
def merged_value(merged, name, value):
    assert merged[name] == value


# =============================================================================
# Substitution
# =============================================================================


@given(parsers.parse('the template text "{text}"'), target_fixture="template")
def template_text(text):
    return text


@when(parsers.parse('it is rendered with "{name}" set to "{value}"'), target_fixture="rendered")
def render_with(template, name, value):
    return apply_template(template, {name: value})


@when("it is rendered without parameters", target_fixture="rendered")
def render_without(template):
    return apply_template(template, {})


@then(parsers.parse('the rendered text is "{expected}"'))
def rendered_text(rendered, expected):
    assert rendered == expected


@then("rendering the result again leaves it unchanged")
def idempotent(rendered):
    assert apply_template(rendered, {"area": "other"}) == rendered
