# gating.py
"""
Builds the pre-activation job.

Every enabled precondition (role membership, stop-time, skip-if-match,
skip-if-no-match, command position) becomes one step with a boolean output.
The job folds those outputs into a single ``activated`` output so downstream
jobs depend on one value instead of re-deriving the checks.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import CompilerConfig
from .constants import (
    ACTIVATED_OUTPUT,
    CHECK_COMMAND_POSITION_STEP,
    CHECK_MEMBERSHIP_STEP,
    CHECK_SKIP_IF_MATCH_STEP,
    CHECK_SKIP_IF_NO_MATCH_STEP,
    CHECK_STOP_TIME_STEP,
    COMMAND_POSITION_OK_OUTPUT,
    IS_TEAM_MEMBER_OUTPUT,
    MATCHED_COMMAND_OUTPUT,
    PRE_ACTIVATION_JOB,
    REACTION_STEP,
    SAFE_EVENTS,
    SKIP_CHECK_OK_OUTPUT,
    SKIP_NO_MATCH_CHECK_OK_OUTPUT,
    STOP_TIME_OK_OUTPUT,
)
from .expressions import (
    ConditionNode,
    build_disjunction,
    build_equals,
    build_step_output_true,
    build_user_condition,
    fold_and,
    render,
)
from .ir import WorkflowIR
from .model import Job, Step
from .permissions import Permissions, writes

log = logging.getLogger(__name__)

GITHUB_SCRIPT = "actions/github-script@v8"
REACTION_EVENTS = (
    "issues",
    "issue_comment",
    "pull_request",
    "pull_request_review_comment",
    "discussion",
    "discussion_comment",
)


@dataclass(frozen=True)
class GatingCheck:
    """One enabled precondition: its step and the output it sets to 'true'."""
    step_id: str
    output: str
    step: Step

    @property
    def condition(self) -> ConditionNode:
        return build_step_output_true(self.step_id, self.output)


# ---------------------------------------------------------------------
# Enablement
# ---------------------------------------------------------------------

def needs_role_check(ir: WorkflowIR) -> bool:
    """
    Role membership is only checked when roles are restricted and at least one
    trigger can be fired by an arbitrary actor.
    """
    if list(ir.roles) == ["all"]:
        return False
    return any(event not in SAFE_EVENTS for event in ir.events)


def is_gating_needed(ir: WorkflowIR) -> bool:
    return bool(
        needs_role_check(ir)
        or ir.stop_time
        or ir.skip_if_match
        or ir.skip_if_no_match
        or ir.has_command_trigger
    )


def _script_step(name: str, step_id: str, script: str, env: Dict[str, str]) -> Step:
    return Step(
        name=name,
        id=step_id,
        uses=GITHUB_SCRIPT,
        env=env,
        with_={"script": f"const {{ main }} = require('/tmp/gh-aw/actions/{script}.cjs');\nawait main();"},
    )


def enabled_checks(ir: WorkflowIR) -> List[GatingCheck]:
    """Checks in their fixed evaluation order; disabled ones are omitted."""
    checks: List[GatingCheck] = []

    if needs_role_check(ir):
        checks.append(GatingCheck(
            CHECK_MEMBERSHIP_STEP,
            IS_TEAM_MEMBER_OUTPUT,
            _script_step(
                "Check team membership for workflow",
                CHECK_MEMBERSHIP_STEP,
                "check_membership",
                {"GH_AW_REQUIRED_ROLES": ",".join(ir.roles)},
            ),
        ))

    if ir.stop_time:
        checks.append(GatingCheck(
            CHECK_STOP_TIME_STEP,
            STOP_TIME_OK_OUTPUT,
            _script_step(
                "Check stop-time limit",
                CHECK_STOP_TIME_STEP,
                "check_stop_time",
                {"GH_AW_STOP_TIME": ir.stop_time, "GH_AW_WORKFLOW_NAME": ir.name},
            ),
        ))

    if ir.skip_if_match:
        checks.append(GatingCheck(
            CHECK_SKIP_IF_MATCH_STEP,
            SKIP_CHECK_OK_OUTPUT,
            _script_step(
                "Check skip-if-match query",
                CHECK_SKIP_IF_MATCH_STEP,
                "check_skip_if_match",
                {
                    "GH_AW_SKIP_QUERY": ir.skip_if_match.query,
                    "GH_AW_WORKFLOW_NAME": ir.name,
                    "GH_AW_SKIP_MAX_MATCHES": "%d" % ir.skip_if_match.threshold,
                },
            ),
        ))

    if ir.skip_if_no_match:
        checks.append(GatingCheck(
            CHECK_SKIP_IF_NO_MATCH_STEP,
            SKIP_NO_MATCH_CHECK_OK_OUTPUT,
            _script_step(
                "Check skip-if-no-match query",
                CHECK_SKIP_IF_NO_MATCH_STEP,
                "check_skip_if_no_match",
                {
                    "GH_AW_SKIP_QUERY": ir.skip_if_no_match.query,
                    "GH_AW_WORKFLOW_NAME": ir.name,
                    "GH_AW_SKIP_MIN_MATCHES": "%d" % ir.skip_if_no_match.threshold,
                },
            ),
        ))

    if ir.has_command_trigger:
        checks.append(GatingCheck(
            CHECK_COMMAND_POSITION_STEP,
            COMMAND_POSITION_OK_OUTPUT,
            _script_step(
                "Check command position",
                CHECK_COMMAND_POSITION_STEP,
                "check_command_position",
                {"GH_AW_COMMANDS": json.dumps(list(ir.commands))},
            ),
        ))

    return checks


# ---------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------

def build_activated_condition(checks: List[GatingCheck]) -> ConditionNode:
    """
    Raises:
        ContractError: if ``checks`` is empty.
    """
    return fold_and(check.condition for check in checks)


def _reaction_step(reaction: str) -> Step:
    return Step(
        name=f"Add {reaction} reaction for immediate feedback",
        id=REACTION_STEP,
        if_=render(build_disjunction(build_equals("github.event_name", e) for e in REACTION_EVENTS)),
        uses=GITHUB_SCRIPT,
        env={"GH_AW_REACTION": json.dumps(reaction)},
        with_={"script": "const { main } = require('/tmp/gh-aw/actions/add_reaction.cjs');\nawait main();"},
    )


def build_pre_activation_job(ir: WorkflowIR, config: CompilerConfig) -> Optional[Job]:
    """
    Build the gating job, or return None when no check is enabled.

    Step order: setup, reaction (user feedback before any check), the checks
    in fixed order, then user-declared steps. User-declared outputs override
    generated ones of the same name.

    The workflow's own `if:` guards the whole job, so neither the reaction nor
    any check API call runs when it is false.
    """
    checks = enabled_checks(ir)
    if not checks:
        if ir.pre_activation is not None:
            log.debug("Custom pre-activation fields ignored: no gating checks are enabled")
        return None

    log.debug("Building pre-activation job with checks: %s", [c.step_id for c in checks])

    steps: List[Step] = [Step(name="Setup Scripts", uses=config.setup_action, with_={"destination": "/tmp/gh-aw/actions"})]
    permissions: Permissions | None = None
    if ir.reaction:
        steps.append(_reaction_step(ir.reaction))
        permissions = writes("discussions", "issues", "pull-requests")
    steps.extend(check.step for check in checks)

    outputs: Dict[str, str] = {
        ACTIVATED_OUTPUT: "${{ " + render(build_activated_condition(checks)) + " }}",
    }
    if ir.has_command_trigger:
        outputs[MATCHED_COMMAND_OUTPUT] = (
            "${{ steps." + CHECK_COMMAND_POSITION_STEP + ".outputs." + MATCHED_COMMAND_OUTPUT + " }}"
        )

    if ir.pre_activation is not None:
        steps.extend(Step.from_mapping(s) for s in ir.pre_activation.steps)
        for key, value in ir.pre_activation.outputs:
            if key in outputs:
                log.debug("Custom pre-activation output '%s' overrides generated value", key)
            outputs[key] = value

    user_condition = build_user_condition(ir.if_)
    return Job(
        name=PRE_ACTIVATION_JOB,
        if_=render(user_condition) if user_condition is not None else "",
        runs_on=config.gating_runner,
        permissions=permissions,
        steps=steps,
        outputs=outputs,
    )

