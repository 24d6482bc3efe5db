# core_jobs.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .config import CompilerConfig
from .custom_jobs import cache_memory_key
from .constants import (
    ACTIVATED_OUTPUT,
    ACTIVATION_JOB,
    AGENT_JOB,
    AGENT_OUTPUT_ARTIFACT,
    AGENT_PATCH_ARTIFACT,
    COLLECT_OUTPUT_STEP,
    CONCLUSION_JOB,
    DETECTION_JOB,
    MATCHED_COMMAND_OUTPUT,
    OUTPUT_TYPES_OUTPUT,
    PRE_ACTIVATION_JOB,
)
from .expressions import (
    ConditionNode,
    build_and,
    build_equals,
    build_function_call,
    build_job_output_true,
    build_not,
    build_user_condition,
    build_workflow_run_repo_safety,
    fold_and,
    render,
)
from .ir import SafeOutputsConfig, WorkflowIR
from .model import Job, Quoted, Step
from .permissions import READ, Permissions, contents_read, with_contents_read

log = logging.getLogger(__name__)

GITHUB_SCRIPT = "actions/github-script@v8"
UPLOAD_ARTIFACT = "actions/upload-artifact@v5"
DOWNLOAD_ARTIFACT = "actions/download-artifact@v6"
DEFAULT_AGENT_TIMEOUT_MINUTES = 20

# scopes the reaction comment needs on whichever kind of thread triggered the run
REACTION_SCOPES = ("discussions", "issues", "pull-requests")


def _setup_step(config: CompilerConfig) -> Step:
    return Step(name="Setup Scripts", uses=config.setup_action, with_={"destination": "/tmp/gh-aw/actions"})


def _script(name: str) -> str:
    return f"const {{ main }} = require('/tmp/gh-aw/actions/{name}.cjs');\nawait main();"


# ---------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------

def build_activation_condition(ir: WorkflowIR, has_gating_job: bool) -> str:
    """
    activated gate (when the gating job exists), then the user's `if:`, then
    the workflow_run same-repository guard. Empty when nothing applies.
    """
    parts: List[ConditionNode] = []
    if has_gating_job:
        parts.append(build_job_output_true(PRE_ACTIVATION_JOB, ACTIVATED_OUTPUT))
    user_condition = build_user_condition(ir.if_)
    if user_condition is not None:
        parts.append(user_condition)
    if ir.has_workflow_run_trigger:
        parts.append(build_workflow_run_repo_safety())
    if not parts:
        return ""
    return render(fold_and(parts))


def build_activation_job(ir: WorkflowIR, config: CompilerConfig, has_gating_job: bool) -> Job:
    """
    The activation job always exists. It turns the gating result into the
    single dependency every later job hangs off.
    """
    permissions = contents_read()
    steps: List[Step] = [
        _setup_step(config),
        Step(
            name="Check workflow file timestamps",
            uses=GITHUB_SCRIPT,
            env={"GH_AW_WORKFLOW_FILE": Quoted(f"{ir.workflow_id or ir.name}.lock.yml")},
            with_={"script": _script("check_workflow_timestamp_api")},
        ),
    ]

    outputs: Dict[str, str] = {}
    if ir.reaction:
        permissions = with_contents_read(REACTION_SCOPES)
        steps.append(Step(
            name="Add comment with workflow run link",
            id="add_comment",
            uses=GITHUB_SCRIPT,
            env={"GH_AW_WORKFLOW_NAME": Quoted(ir.name)},
            with_={"script": _script("add_workflow_run_comment")},
        ))
        outputs["comment_id"] = "${{ steps.add_comment.outputs.comment-id }}"
        outputs["comment_repo"] = "${{ steps.add_comment.outputs.comment-repo }}"

    if has_gating_job and ir.has_command_trigger:
        outputs["slash_command"] = "${{ needs." + PRE_ACTIVATION_JOB + ".outputs." + MATCHED_COMMAND_OUTPUT + " }}"

    return Job(
        name=ACTIVATION_JOB,
        needs=[PRE_ACTIVATION_JOB] if has_gating_job else [],
        if_=build_activation_condition(ir, has_gating_job),
        runs_on=config.gating_runner,
        permissions=permissions,
        steps=steps,
        outputs=outputs,
    )


# ---------------------------------------------------------------------
# Main (agent) job
# ---------------------------------------------------------------------

def _cache_memory_restore_steps(ir: WorkflowIR) -> List[Step]:
    steps = []
    for entry in ir.cache_memory:
        steps.append(Step(
            name=f"Restore cache-memory ({entry.id})",
            uses="actions/cache/restore@v4",
            with_={
                "key": cache_memory_key(entry),
                "path": f"/tmp/gh-aw/cache-memory-{entry.id}",
                "restore-keys": f"memory-{entry.id}-${{{{ github.workflow }}}}-",
            },
        ))
    return steps


def _memory_upload_steps(ir: WorkflowIR, threat_detection: bool) -> List[Step]:
    """
    Hand memory to the persistence jobs. Writable caches are saved here
    directly unless threat detection has to clear them first.
    """
    steps = []
    for entry in ir.repo_memory:
        steps.append(Step(
            name=f"Upload repo-memory artifact ({entry.id})",
            if_="always()",
            uses=UPLOAD_ARTIFACT,
            with_={"name": f"repo-memory-{entry.id}", "path": f"/tmp/gh-aw/repo-memory/{entry.id}", "if-no-files-found": "ignore"},
        ))
    for entry in ir.cache_memory:
        if entry.read_only:
            continue
        path = f"/tmp/gh-aw/cache-memory-{entry.id}"
        if threat_detection:
            upload = {"name": f"cache-memory-{entry.id}", "path": path, "if-no-files-found": "ignore"}
            if entry.retention_days is not None:
                upload["retention-days"] = entry.retention_days
            steps.append(Step(
                name=f"Upload cache-memory artifact ({entry.id})",
                if_="always()",
                uses=UPLOAD_ARTIFACT,
                with_=upload,
            ))
        else:
            steps.append(Step(
                name=f"Save cache-memory ({entry.id})",
                if_="always()",
                uses="actions/cache/save@v4",
                with_={"key": cache_memory_key(entry), "path": path},
            ))
    return steps


def build_main_job(
    ir: WorkflowIR,
    config: CompilerConfig,
    safe_outputs: Optional[SafeOutputsConfig],
    threat_detection: bool = False,
) -> Job:
    has_safe_outputs = safe_outputs is not None and safe_outputs.any_enabled()
    permissions = ir.permissions.with_at_least("contents", READ)

    env: Dict[str, str] = ir.env_dict()
    if has_safe_outputs:
        env["GH_AW_SAFE_OUTPUTS"] = Quoted("/tmp/gh-aw/safeoutputs/outputs.jsonl")

    steps: List[Step] = [
        _setup_step(config),
        Step(name="Checkout repository", uses="actions/checkout@v5", with_={"persist-credentials": False}),
        Step(
            name=f"Execute {ir.engine} agent",
            id="agentic_execution",
            env={"GH_AW_ENGINE": Quoted(ir.engine), "GH_AW_MODEL": Quoted(ir.model or "")},
            run="/tmp/gh-aw/actions/run_agent.sh",
        ),
    ]
    outputs: Dict[str, str] = {"model": "${{ steps.agentic_execution.outputs.model }}"}

    steps[2:2] = _cache_memory_restore_steps(ir)
    steps.extend(_memory_upload_steps(ir, threat_detection))

    if has_safe_outputs:
        steps.append(Step(
            name="Ingest agent output",
            id=COLLECT_OUTPUT_STEP,
            uses=GITHUB_SCRIPT,
            with_={"script": _script("collect_ndjson_output")},
        ))
        steps.append(Step(
            name="Upload agent output",
            if_="always()",
            uses=UPLOAD_ARTIFACT,
            with_={"name": AGENT_OUTPUT_ARTIFACT, "path": "/tmp/gh-aw/safeoutputs/agent_output.json", "if-no-files-found": "ignore"},
        ))
        if safe_outputs.create_pull_request is not None:
            steps.append(Step(
                name="Upload patch",
                if_="always()",
                uses=UPLOAD_ARTIFACT,
                with_={"name": AGENT_PATCH_ARTIFACT, "path": "/tmp/gh-aw/aw.patch", "if-no-files-found": "ignore"},
            ))
        outputs["output"] = "${{ steps." + COLLECT_OUTPUT_STEP + ".outputs.output }}"
        outputs[OUTPUT_TYPES_OUTPUT] = "${{ steps." + COLLECT_OUTPUT_STEP + ".outputs.output_types }}"
        outputs["has_patch"] = "${{ steps." + COLLECT_OUTPUT_STEP + ".outputs.has_patch }}"

    return Job(
        name=AGENT_JOB,
        needs=[ACTIVATION_JOB],
        runs_on=ir.runs_on or config.default_runner,
        permissions=permissions,
        steps=steps,
        outputs=outputs,
        env=env,
        timeout_minutes=ir.timeout_minutes or DEFAULT_AGENT_TIMEOUT_MINUTES,
    )


# ---------------------------------------------------------------------
# Threat detection
# ---------------------------------------------------------------------

def build_detection_job(config: CompilerConfig) -> Job:
    """Scans the agent's output and patch before any safe output acts on them."""
    condition = build_and(
        build_function_call("always"),
        build_not(build_equals(f"needs.{AGENT_JOB}.result", "skipped")),
    )
    return Job(
        name=DETECTION_JOB,
        needs=[AGENT_JOB],
        if_=render(condition),
        runs_on=config.default_runner,
        permissions=Permissions(),
        steps=[
            _setup_step(config),
            Step(
                name="Download agent output artifact",
                uses=DOWNLOAD_ARTIFACT,
                with_={"name": AGENT_OUTPUT_ARTIFACT, "path": "/tmp/gh-aw/threat-detection/"},
            ),
            Step(
                name="Run threat detection",
                id="detection",
                run="/tmp/gh-aw/actions/run_threat_detection.sh",
            ),
            Step(
                name="Parse threat detection results",
                id="parse_results",
                uses=GITHUB_SCRIPT,
                with_={"script": _script("parse_threat_detection_results")},
            ),
        ],
        outputs={"success": "${{ steps.parse_results.outputs.success }}"},
        timeout_minutes=10,
    )


# ---------------------------------------------------------------------
# Conclusion
# ---------------------------------------------------------------------

def build_conclusion_job(ir: WorkflowIR, config: CompilerConfig, needs: List[str]) -> Job:
    """
    Terminal job: runs whatever happened upstream and reports the outcome.
    Persistence jobs join its ``needs`` later through deferred wiring.
    """
    permissions = with_contents_read(REACTION_SCOPES) if ir.reaction else contents_read()

    steps: List[Step] = [
        _setup_step(config),
        Step(
            name="Download agent output artifact",
            uses=DOWNLOAD_ARTIFACT,
            with_={"name": AGENT_OUTPUT_ARTIFACT, "path": "/tmp/gh-aw/safeoutputs/"},
        ),
        Step(
            name="Process no-op messages",
            id="noop",
            uses=GITHUB_SCRIPT,
            env={"GH_AW_WORKFLOW_NAME": Quoted(ir.name)},
            with_={"script": _script("noop")},
        ),
        Step(
            name="Record missing tools",
            id="missing_tool",
            uses=GITHUB_SCRIPT,
            with_={"script": _script("missing_tool")},
        ),
    ]
    if ir.reaction:
        steps.append(Step(
            name="Update reaction comment with completion status",
            id="conclusion",
            uses=GITHUB_SCRIPT,
            env={
                "GH_AW_COMMENT_ID": Quoted("${{ needs." + ACTIVATION_JOB + ".outputs.comment_id }}"),
                "GH_AW_COMMENT_REPO": Quoted("${{ needs." + ACTIVATION_JOB + ".outputs.comment_repo }}"),
                "GH_AW_AGENT_CONCLUSION": Quoted("${{ needs." + AGENT_JOB + ".result }}"),
            },
            with_={"script": _script("notify_comment_error")},
        ))

    log.debug("Building conclusion job with needs: %s", needs)
    return Job(
        name=CONCLUSION_JOB,
        needs=list(needs),
        if_=render(build_function_call("always")),
        runs_on=config.gating_runner,
        permissions=permissions,
        steps=steps,
        outputs={
            "noop_message": "${{ steps.noop.outputs.noop_message }}",
            "tools_reported": "${{ steps.missing_tool.outputs.tools_reported }}",
        },
    )
