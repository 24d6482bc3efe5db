"""Tests for the condition expression engine."""

import pytest

from agenticci.errors import ContractError
from agenticci.expressions import (
    PropertyAccess,
    RawExpression,
    build_and,
    build_comparison,
    build_disjunction,
    build_equals,
    build_function_call,
    build_not,
    build_or,
    build_property_access,
    build_safe_output_type,
    build_string_literal,
    build_user_condition,
    build_workflow_run_repo_safety,
    fold_and,
    render,
    strip_expression_markers,
)


# ============================================================================
# Rendering
# ============================================================================


class TestRendering:
    def test_property_access_renders_path(self):
        assert render(build_property_access("github.event_name")) == "github.event_name"

    def test_string_literal_is_single_quoted(self):
        assert render(build_string_literal("true")) == "'true'"

    def test_string_literal_doubles_embedded_quotes(self):
        assert render(build_string_literal("it's")) == "'it''s'"

    def test_comparison(self):
        node = build_equals("steps.check.outputs.ok", "true")
        assert render(node) == "steps.check.outputs.ok == 'true'"

    def test_and_wraps_each_operand(self):
        node = build_and(build_equals("a", "1"), build_equals("b", "2"))
        assert render(node) == "(a == '1') && (b == '2')"

    def test_or_wraps_each_operand(self):
        node = build_or(build_equals("a", "1"), build_equals("b", "2"))
        assert render(node) == "(a == '1') || (b == '2')"

    def test_not(self):
        assert render(build_not(build_function_call("cancelled"))) == "!(cancelled())"

    def test_function_call_with_arguments(self):
        node = build_function_call(
            "contains",
            build_property_access("needs.agent.outputs.output_types"),
            build_string_literal("create_issue"),
        )
        assert render(node) == "contains(needs.agent.outputs.output_types, 'create_issue')"

    def test_comparison_between_two_properties(self):
        node = build_comparison(
            build_property_access("github.event.workflow_run.repository.id"),
            "==",
            build_property_access("github.repository_id"),
        )
        assert render(node) == "github.event.workflow_run.repository.id == github.repository_id"

    def test_equal_trees_render_identically(self):
        first = build_and(build_equals("a", "x"), build_not(build_equals("b", "y")))
        second = build_and(build_equals("a", "x"), build_not(build_equals("b", "y")))
        assert first == second
        assert render(first) == render(second)


# ============================================================================
# Contract errors
# ============================================================================


class TestContracts:
    @pytest.mark.parametrize("operator", ["!=", "<", ">=", "&&"])
    def test_only_equality_is_supported(self, operator):
        with pytest.raises(ContractError, match="unsupported comparison operator"):
            build_comparison(PropertyAccess("a"), operator, build_string_literal("b"))

    @pytest.mark.parametrize("left", [PropertyAccess(""), PropertyAccess("   "), RawExpression("")])
    def test_empty_left_side_is_rejected(self, left):
        with pytest.raises(ContractError):
            build_comparison(left, "==", build_string_literal("true"))

    def test_fold_and_rejects_empty(self):
        with pytest.raises(ContractError):
            fold_and([])

    def test_disjunction_rejects_empty(self):
        with pytest.raises(ContractError):
            build_disjunction([])


# ============================================================================
# Folding
# ============================================================================


class TestFolding:
    def test_fold_single_condition_has_no_operator(self):
        node = build_equals("steps.a.outputs.ok", "true")
        assert fold_and([node]) is node
        assert "&&" not in render(fold_and([node]))

    def test_fold_is_left_to_right(self):
        nodes = [build_equals(name, "true") for name in ("a", "b", "c")]
        assert render(fold_and(nodes)) == "((a == 'true') && (b == 'true')) && (c == 'true')"

    def test_fold_accepts_generators(self):
        node = fold_and(build_equals(name, "true") for name in ("a", "b"))
        assert render(node) == "(a == 'true') && (b == 'true')"

    def test_disjunction_is_flat(self):
        node = build_disjunction(build_equals("github.event_name", e) for e in ("issues", "discussion"))
        assert render(node) == "github.event_name == 'issues' || github.event_name == 'discussion'"

    def test_disjunction_of_one_is_the_term(self):
        term = build_equals("github.event_name", "issues")
        assert build_disjunction([term]) is term


# ============================================================================
# Reusable conditions
# ============================================================================


class TestReusableConditions:
    def test_safe_output_type_condition(self):
        assert render(build_safe_output_type("create_issue")) == (
            "((!(cancelled())) && (!(needs.agent.result == 'skipped'))) && "
            "(contains(needs.agent.outputs.output_types, 'create_issue'))"
        )

    def test_workflow_run_repo_safety(self):
        assert render(build_workflow_run_repo_safety()) == (
            "(!(github.event_name == 'workflow_run')) || "
            "((github.event.workflow_run.repository.id == github.repository_id) && "
            "(!(github.event.workflow_run.repository.fork)))"
        )

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("${{ github.actor == 'bot' }}", "github.actor == 'bot'"),
            ("  github.actor == 'bot'  ", "github.actor == 'bot'"),
            ("${{github.ref}}", "github.ref"),
        ],
    )
    def test_strip_expression_markers(self, text, expected):
        assert strip_expression_markers(text) == expected

    def test_user_condition(self):
        user = build_user_condition("${{ github.actor != 'bot' }}")
        assert user == RawExpression("github.actor != 'bot'")

        gate = build_equals("needs.pre_activation.outputs.activated", "true")
        assert render(build_and(gate, user)) == (
            "(needs.pre_activation.outputs.activated == 'true') && (github.actor != 'bot')"
        )

    @pytest.mark.parametrize("user_if", [None, "", "   "])
    def test_blank_user_condition(self, user_if):
        assert build_user_condition(user_if) is None
