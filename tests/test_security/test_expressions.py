"""
Tests for expression parsing, templates and evaluation faults.
"""
from __future__ import annotations

import pytest

from exprsec.security.errors import ConfigurationError, ExpressionEvaluationError
from exprsec.security.expressions import (
    EvaluationContext,
    ExpressionParser,
    ExpressionTemplates,
    template,
)
from exprsec.security.handler import SecurityExpressionHandler


def test_parse_collects_free_names():
    compiled = ExpressionParser().parse("hasRole('A') and owner == authentication.name", "test")

    assert compiled.names == frozenset({"hasRole", "owner", "authentication"})
    assert compiled.label == "test"


def test_comprehension_variables_are_not_free_names():
    compiled = ExpressionParser().parse("[x for x in items if x] != []")

    assert compiled.names == frozenset({"items"})


@pytest.mark.parametrize("source", ["", "   "])
def test_empty_expression_is_configuration_error(source):
    with pytest.raises(ConfigurationError, match="Empty"):
        ExpressionParser().parse(source, "empty")


def test_syntax_error_is_configuration_error():
    with pytest.raises(ConfigurationError, match="Invalid security expression"):
        ExpressionParser().parse("hasRole('A' and", "broken")


def test_statement_is_rejected():
    with pytest.raises(ConfigurationError, match="single expression"):
        ExpressionParser().parse("x = 1", "assign")


def test_template_expands_placeholders():
    templates = ExpressionTemplates({"hasRoleOf": "hasRole('{role}')"})

    assert templates.expand(template("hasRoleOf", role="ADMIN")) == "hasRole('ADMIN')"
    assert "hasRoleOf" in templates
    assert templates.names() == frozenset({"hasRoleOf"})


def test_template_leaves_dict_literals_alone():
    templates = ExpressionTemplates({"lookup": "{'k': {n}}['k'] == 1"})

    assert templates.expand(template("lookup", n=1)) == "{'k': 1}['k'] == 1"


def test_doubled_braces_keep_a_set_literal(bob):
    handler = SecurityExpressionHandler(templates={"inSet": "{value} in {{allowed}}"})
    compiled = handler.parse(template("inSet", value="'bob'"), "templated")

    assert compiled.source == "'bob' in {allowed}"
    assert compiled.evaluate_bool(handler.create_context(bob).with_variables(allowed="bob")) is True


def test_plain_strings_pass_through_templates():
    assert ExpressionTemplates().expand("permitAll") == "permitAll"


def test_unknown_template_is_configuration_error():
    with pytest.raises(ConfigurationError, match="Unknown expression template"):
        ExpressionTemplates().expand(template("missing"))


def test_template_missing_parameter_is_configuration_error():
    templates = ExpressionTemplates({"hasRoleOf": "hasRole('{role}')"})

    with pytest.raises(ConfigurationError, match="requires parameter 'role'"):
        templates.expand(template("hasRoleOf"))


def test_template_and_inline_expression_behave_the_same(bob):
    handler = SecurityExpressionHandler(templates={"isUser": "hasRole('USER') and isFullyAuthenticated()"})
    context = handler.create_context(bob)

    via_template = handler.parse(template("isUser"), "templated")
    inline = handler.parse("hasRole('USER') and isFullyAuthenticated()", "inline")

    assert via_template.source == inline.source
    assert via_template.evaluate(context) is inline.evaluate(context) is True


def test_evaluate_bool_requires_exactly_true():
    parser = ExpressionParser()
    context = EvaluationContext(variables={"value": 1, "text": "yes"}, functions={})

    assert parser.parse("value").evaluate_bool(context) is False
    assert parser.parse("text").evaluate_bool(context) is False
    assert parser.parse("value == 1").evaluate_bool(context) is True


def test_missing_variable_is_evaluation_fault_not_denial():
    compiled = ExpressionParser().parse("owner == 'bob'", "routes[0] /x")
    context = EvaluationContext(variables={}, functions={})

    with pytest.raises(ExpressionEvaluationError) as exc_info:
        compiled.evaluate_bool(context)

    assert exc_info.value.label == "routes[0] /x"
    assert exc_info.value.expression == "owner == 'bob'"


def test_missing_attribute_is_evaluation_fault(handler, bob):
    compiled = handler.parse("authentication.no_such_field == 1", "attr")

    with pytest.raises(ExpressionEvaluationError):
        compiled.evaluate(handler.create_context(bob))


def test_context_with_variables_returns_new_context():
    context = EvaluationContext(variables={"a": 1}, functions={})

    extended = context.with_variables(b=2)

    assert dict(extended.variables) == {"a": 1, "b": 2}
    assert dict(context.variables) == {"a": 1}


def test_literal_call_arguments():
    compiled = ExpressionParser().parse("hasIpAddress('10.0.0.0/8') or hasIpAddress(range) or hasRole('A')")

    assert compiled.literal_call_arguments("hasIpAddress") == [("10.0.0.0/8",)]
