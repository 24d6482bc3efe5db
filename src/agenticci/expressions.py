# expressions.py
"""
Condition expressions for job `if:` fields and gating outputs.

Nodes are immutable and built only through the ``build_*`` helpers. Every node
renders to one deterministic string, so equal trees always produce identical,
diffable output. Combinators wrap each operand in parentheses and never splice
partial strings, which keeps every sub-condition greppable on its own:

    >>> render(build_and(build_equals("steps.a.outputs.ok", "true"),
    ...                  build_equals("steps.b.outputs.ok", "true")))
    "(steps.a.outputs.ok == 'true') && (steps.b.outputs.ok == 'true')"
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Optional, Union

from .constants import AGENT_JOB, DETECTION_JOB, OUTPUT_TYPES_OUTPUT
from .errors import ContractError

SUPPORTED_OPERATORS = ("==",)


# ---------------------------------------------------------------------
# Node types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class PropertyAccess:
    path: str

    def render(self) -> str:
        return self.path


@dataclass(frozen=True)
class StringLiteral:
    value: str

    def render(self) -> str:
        # single quotes are escaped by doubling inside expression literals
        return "'" + self.value.replace("'", "''") + "'"


@dataclass(frozen=True)
class Comparison:
    left: "ConditionNode"
    operator: str
    right: "ConditionNode"

    def render(self) -> str:
        return f"{self.left.render()} {self.operator} {self.right.render()}"


@dataclass(frozen=True)
class And:
    left: "ConditionNode"
    right: "ConditionNode"

    def render(self) -> str:
        return f"({self.left.render()}) && ({self.right.render()})"


@dataclass(frozen=True)
class Or:
    left: "ConditionNode"
    right: "ConditionNode"

    def render(self) -> str:
        return f"({self.left.render()}) || ({self.right.render()})"


@dataclass(frozen=True)
class Not:
    child: "ConditionNode"

    def render(self) -> str:
        return f"!({self.child.render()})"


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple["ConditionNode", ...] = ()

    def render(self) -> str:
        return f"{self.name}({', '.join(a.render() for a in self.args)})"


@dataclass(frozen=True)
class Disjunction:
    """Flat ``a || b || c`` chain, used for event-name style alternatives."""
    terms: tuple["ConditionNode", ...]

    def render(self) -> str:
        return " || ".join(t.render() for t in self.terms)


@dataclass(frozen=True)
class RawExpression:
    """An already-rendered condition, e.g. a user-written `if:`."""
    text: str

    def render(self) -> str:
        return self.text


ConditionNode = Union[
    PropertyAccess,
    StringLiteral,
    Comparison,
    And,
    Or,
    Not,
    FunctionCall,
    Disjunction,
    RawExpression,
]


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------

def build_property_access(path: str) -> PropertyAccess:
    return PropertyAccess(path)


def build_string_literal(value: str) -> StringLiteral:
    return StringLiteral(value)


def build_comparison(left: ConditionNode, operator: str, right: ConditionNode) -> Comparison:
    """
    Build ``left <operator> right``.

    Raises:
        ContractError: if the operator is not supported or the left-hand side is
            an empty property path. An empty path would render a condition that
            can never be false, which must not reach a gate.
    """
    if operator not in SUPPORTED_OPERATORS:
        raise ContractError(
            f"unsupported comparison operator {operator!r}; supported: {list(SUPPORTED_OPERATORS)}"
        )
    if isinstance(left, PropertyAccess) and not left.path.strip():
        raise ContractError("comparison requires a non-empty left-hand property path")
    if isinstance(left, RawExpression) and not left.text.strip():
        raise ContractError("comparison requires a non-empty left-hand expression")
    return Comparison(left, operator, right)


def build_equals(path: str, literal: str) -> Comparison:
    """Shorthand for ``<path> == '<literal>'``."""
    return build_comparison(build_property_access(path), "==", build_string_literal(literal))


def build_and(left: ConditionNode, right: ConditionNode) -> And:
    return And(left, right)


def build_or(left: ConditionNode, right: ConditionNode) -> Or:
    return Or(left, right)


def build_not(child: ConditionNode) -> Not:
    return Not(child)


def build_function_call(name: str, *args: ConditionNode) -> FunctionCall:
    return FunctionCall(name, tuple(args))


def build_disjunction(terms: Iterable[ConditionNode]) -> ConditionNode:
    terms = tuple(terms)
    if not terms:
        raise ContractError("cannot build a disjunction of zero terms")
    if len(terms) == 1:
        return terms[0]
    return Disjunction(terms)


def fold_and(conditions: Iterable[ConditionNode]) -> ConditionNode:
    """
    Fold conditions left-to-right with AND.

    A single condition is returned as-is, so no ``&&`` appears when only one
    check is enabled.

    Raises:
        ContractError: if ``conditions`` is empty.
    """
    conditions = list(conditions)
    if not conditions:
        raise ContractError("cannot fold zero conditions; the caller must check enablement first")
    return reduce(build_and, conditions)


def build_user_condition(user_if: str | None) -> Optional[RawExpression]:
    """The workflow's own `if:` as a node, or None when it is blank."""
    if user_if and user_if.strip():
        return RawExpression(strip_expression_markers(user_if))
    return None


def strip_expression_markers(text: str) -> str:
    text = text.strip()
    if text.startswith("${{") and text.endswith("}}"):
        return text[3:-2].strip()
    return text


def render(node: ConditionNode) -> str:
    return node.render()


# ---------------------------------------------------------------------
# Reusable conditions
# ---------------------------------------------------------------------

def build_step_output_true(step_id: str, output: str) -> Comparison:
    """``steps.<step_id>.outputs.<output> == 'true'``"""
    return build_equals(f"steps.{step_id}.outputs.{output}", "true")


def build_job_output_true(job: str, output: str) -> Comparison:
    """``needs.<job>.outputs.<output> == 'true'``"""
    return build_equals(f"needs.{job}.outputs.{output}", "true")


def build_safe_output_type(output_type: str) -> ConditionNode:
    """
    Gate a safe-output job on the agent having produced ``output_type``.

    ``!cancelled()`` still lets the job report after a failed agent run, while
    the skipped check stops it when the whole run was cancelled upstream.
    """
    not_cancelled = build_not(build_function_call("cancelled"))
    agent_not_skipped = build_not(build_equals(f"needs.{AGENT_JOB}.result", "skipped"))
    produced = build_function_call(
        "contains",
        build_property_access(f"needs.{AGENT_JOB}.outputs.{OUTPUT_TYPES_OUTPUT}"),
        build_string_literal(output_type),
    )
    return fold_and([not_cancelled, agent_not_skipped, produced])


def build_detection_success() -> Comparison:
    return build_job_output_true(DETECTION_JOB, "success")


def build_workflow_run_repo_safety() -> ConditionNode:
    """
    Only let `workflow_run` events through when the triggering run belongs to
    this repository and not to a fork of it.
    """
    not_workflow_run = build_not(build_equals("github.event_name", "workflow_run"))
    same_repo = build_comparison(
        build_property_access("github.event.workflow_run.repository.id"),
        "==",
        build_property_access("github.repository_id"),
    )
    not_fork = build_not(build_property_access("github.event.workflow_run.repository.fork"))
    return build_or(not_workflow_run, build_and(same_repo, not_fork))
