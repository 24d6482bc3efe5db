# loader.py
"""
Reads a workflow file and produces a WorkflowIR.

This is the only place that looks at raw frontmatter. Shapes are validated
with the pydantic models in ``schema``; everything after the loader
(validators, builders) works on the typed IR.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from .constants import DEFAULT_ROLES, PRE_ACTIVATION_ALIASES
from .errors import CompileError, LoadError
from .ir import (
    AddCommentConfig,
    AddLabelsConfig,
    CacheMemoryEntry,
    CreateDiscussionConfig,
    CreateIssueConfig,
    CreatePullRequestConfig,
    CustomJobDecl,
    NetworkPolicy,
    PreActivationExtension,
    ProjectRef,
    ProjectStatusUpdateConfig,
    RepoMemoryEntry,
    SafeOutputsConfig,
    SandboxPolicy,
    SkipQuery,
    UpdateProjectConfig,
    WorkflowIR,
)
from .permissions import Permissions
from .safe_outputs.pull_requests import IF_NO_CHANGES_VALUES
from .schema import (
    CustomJobModel,
    GatingModel,
    PreActivationModel,
    SafeOutputsModel,
    SandboxModel,
    SkipQueryModel,
    ToolsModel,
    WorkflowFrontmatter,
)

log = logging.getLogger(__name__)

FRONTMATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)

COMMAND_EVENTS: Dict[str, Dict[str, List[str]]] = {
    "issues": {"types": ["opened", "edited", "reopened"]},
    "issue_comment": {"types": ["created", "edited"]},
    "pull_request": {"types": ["opened", "edited", "reopened"]},
    "pull_request_review_comment": {"types": ["created", "edited"]},
    "discussion": {"types": ["created", "edited"]},
    "discussion_comment": {"types": ["created", "edited"]},
}

# keys under `on:` that configure gating instead of naming events
GATING_TRIGGER_KEYS = ("command", "slash_command", "stop-after", "skip-if-match", "skip-if-no-match", "reaction", "roles")

SANDBOX_ALIASES = {"default": "awf", "awf": "awf", "srt": "srt", "sandbox-runtime": "srt"}
GITHUB_MODES = ("local", "remote")
MOUNT_MODES = ("ro", "rw")

CUSTOM_PRE_ACTIVATION_FIELDS = ("steps", "outputs")

KIND_CONFIGS = {
    "create_issue": CreateIssueConfig,
    "add_comment": AddCommentConfig,
    "add_labels": AddLabelsConfig,
    "create_pull_request": CreatePullRequestConfig,
    "create_discussion": CreateDiscussionConfig,
    "update_project": UpdateProjectConfig,
    "create_project_status_update": ProjectStatusUpdateConfig,
}

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------

def load_workflow(path: str | Path) -> WorkflowIR:
    """
    Load a `.md` workflow (YAML frontmatter + instructions) or a plain YAML
    file.

    Raises:
        LoadError: the file cannot be read, is not valid YAML, or a value has
            the wrong shape.
        CompileError: a value has the right shape but an invalid setting.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LoadError(f"cannot read workflow file: {e.strerror or e}", str(path)) from e

    match = FRONTMATTER.match(text)
    source = match.group(1) if match else text
    try:
        frontmatter = yaml.safe_load(source) or {}
    except yaml.YAMLError as e:
        raise LoadError(f"invalid YAML frontmatter: {e}", str(path)) from e
    if not isinstance(frontmatter, dict):
        raise LoadError("frontmatter must be a mapping", str(path))

    workflow_id = path.name
    for suffix in (".lock.yml", ".md", ".yml", ".yaml"):
        if workflow_id.endswith(suffix):
            workflow_id = workflow_id[: -len(suffix)]
            break
    try:
        return parse_frontmatter(frontmatter, workflow_id=workflow_id)
    except LoadError as e:
        e.path = str(path)
        raise


def parse_frontmatter(fm: Mapping[Any, Any], workflow_id: str = "workflow") -> WorkflowIR:
    # YAML 1.1 reads a bare `on` key as boolean True
    raw_on = fm.get("on", fm.get(True))
    on_block, events, raw_gating = _split_triggers(raw_on)
    gating = validate(GatingModel, raw_gating, "on")

    commands = gating.commands()
    if commands:
        for event, spec in COMMAND_EVENTS.items():
            on_block.setdefault(event, spec)
            if event not in events:
                events.append(event)

    doc = validate(WorkflowFrontmatter, {k: v for k, v in fm.items() if isinstance(k, str)})
    roles = doc.roles if doc.roles is not None else gating.roles
    custom_jobs, pre_activation = _parse_jobs(fm.get("jobs"))

    ir = WorkflowIR(
        name=doc.name or workflow_id,
        workflow_id=workflow_id,
        events=tuple(events),
        on=on_block,
        commands=tuple(commands),
        roles=DEFAULT_ROLES if roles is None else tuple(roles),
        stop_time=gating.stop_after,
        skip_if_match=_skip_query(gating.skip_if_match, "max"),
        skip_if_no_match=_skip_query(gating.skip_if_no_match, "min"),
        reaction=None if gating.reaction in (None, "none") else gating.reaction,
        pre_activation=pre_activation,
        if_=doc.if_,
        runs_on=doc.runs_on,
        permissions=_parse_permissions(fm.get("permissions"), "permissions"),
        engine=doc.engine.id if doc.engine else "copilot",
        model=doc.engine.model if doc.engine else None,
        github_token=doc.github_token,
        timeout_minutes=doc.timeout_minutes,
        env=tuple((k, _env_value(v)) for k, v in (doc.env or {}).items()),
        github_mode=_github_mode(doc.tools),
        strict=doc.strict,
        features=frozenset(k for k, v in (doc.features or {}).items() if v),
        network=NetworkPolicy(
            allowed=None if doc.network.allowed is None else tuple(doc.network.allowed),
            firewall_enabled=doc.network.firewall_enabled,
        ),
        sandbox=normalize_sandbox(fm.get("sandbox")),
        safe_outputs=_safe_outputs(doc.safe_outputs),
        project=_parse_project(fm),
        custom_jobs=custom_jobs,
        repo_memory=tuple(
            RepoMemoryEntry(
                id=m.id,
                branch_name=m.branch_name,
                campaign_id=m.campaign_id,
                file_glob=tuple(m.file_glob),
                max_file_size=m.max_file_size,
            )
            for m in doc.tools.repo_memory
        ),
        cache_memory=tuple(
            CacheMemoryEntry(id=m.id, key=m.key, read_only=m.read_only, retention_days=m.retention_days)
            for m in doc.tools.cache_memory
        ),
    )
    log.debug("Loaded workflow '%s' with events %s", ir.name, list(ir.events))
    return ir


def validate(model: Type[M], data: Any, where: str = "") -> M:
    """
    Validate ``data`` against ``model``.

    Raises:
        LoadError: naming the first offending field, e.g.
            ``'safe-outputs.add-comment.hide-older-comments': Input should be a valid boolean``.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in (where, *first["loc"]) if part != "")
        raise LoadError(f"'{loc or model.__name__}': {first['msg']}") from e


# ---------------------------------------------------------------------
# Triggers and gating
# ---------------------------------------------------------------------

def _split_triggers(raw_on: Any) -> Tuple[Dict[str, Any], List[str], Dict[str, Any]]:
    """Split `on:` into the emitted trigger block, event names and gating keys."""
    if raw_on is None:
        return {}, [], {}
    if isinstance(raw_on, str):
        return {raw_on: None}, [raw_on], {}
    if isinstance(raw_on, list):
        events = [str(e) for e in raw_on]
        return {e: None for e in events}, events, {}
    if not isinstance(raw_on, dict):
        raise LoadError("'on' must be a string, list or mapping")

    on_block: Dict[str, Any] = {}
    gating: Dict[str, Any] = {}
    for key, value in raw_on.items():
        if key in GATING_TRIGGER_KEYS:
            gating[key] = value
        else:
            on_block[str(key)] = value
    return on_block, list(on_block), gating


def _skip_query(model: Optional[SkipQueryModel], threshold_key: str) -> Optional[SkipQuery]:
    if model is None:
        return None
    threshold = getattr(model, threshold_key)
    return SkipQuery(query=model.query, threshold=1 if threshold is None else threshold)


def _parse_jobs(value: Any) -> Tuple[Tuple[CustomJobDecl, ...], Optional[PreActivationExtension]]:
    if value is None:
        return (), None
    if not isinstance(value, dict):
        raise LoadError(f"'jobs' must be a mapping, got {type(value).__name__}")

    decls: List[CustomJobDecl] = []
    ext_steps: List[Mapping[str, Any]] = []
    ext_outputs: Dict[str, str] = {}
    has_extension = False

    # `pre_activation` is merged after `pre-activation`; real jobs keep declaration order
    ordered = sorted(value.items(), key=lambda kv: kv[0] == "pre_activation")
    for name, raw in ordered:
        name = str(name)
        if name not in PRE_ACTIVATION_ALIASES:
            continue
        unknown = sorted(set(raw or {}) - set(CUSTOM_PRE_ACTIVATION_FIELDS)) if isinstance(raw, dict) else []
        if unknown:
            raise CompileError(
                kind="invalid_config",
                message=(
                    f"jobs.{name} only supports {list(CUSTOM_PRE_ACTIVATION_FIELDS)}; "
                    f"unsupported fields: {unknown}"
                ),
                field=f"jobs.{name}",
            )
        ext = validate(PreActivationModel, raw or {}, f"jobs.{name}")
        has_extension = True
        ext_steps.extend(ext.steps or [])
        ext_outputs.update(ext.outputs or {})

    for name, raw in value.items():
        if str(name) not in PRE_ACTIVATION_ALIASES:
            decls.append(_parse_custom_job(str(name), raw))

    extension = None
    if has_extension:
        extension = PreActivationExtension(steps=tuple(ext_steps), outputs=tuple(ext_outputs.items()))
    return tuple(decls), extension


def _parse_custom_job(name: str, raw: Any) -> CustomJobDecl:
    job = validate(CustomJobModel, raw or {}, f"jobs.{name}")
    needs = None
    if "needs" in job.model_fields_set:
        # an explicit `needs: []` opts out of the activation dependency
        needs = tuple(job.needs or ())
    return CustomJobDecl(
        name=name,
        needs=needs,
        runs_on=job.runs_on,
        if_=job.if_,
        permissions=(
            _parse_permissions(job.permissions, f"jobs.{name}.permissions")
            if "permissions" in job.model_fields_set
            else None
        ),
        outputs=tuple((job.outputs or {}).items()),
        steps=tuple(job.steps or ()),
        uses=job.uses,
        with_=tuple((job.with_ or {}).items()),
        secrets=tuple((job.secrets or {}).items()),
    )


# ---------------------------------------------------------------------
# Agent / policy
# ---------------------------------------------------------------------

def _env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _parse_permissions(value: Any, where: str) -> Permissions:
    try:
        return Permissions.parse(value)
    except (TypeError, ValueError) as e:
        raise LoadError(f"'{where}': {e}") from e


def _github_mode(tools: ToolsModel) -> Optional[str]:
    if tools.github is None or tools.github.mode is None:
        return None
    mode = tools.github.mode
    if mode not in GITHUB_MODES:
        raise CompileError(
            kind="invalid_config",
            message=f"invalid github mode {mode!r}; must be one of {list(GITHUB_MODES)}",
            field="tools.github.mode",
        )
    return mode


def _validate_mount(mount: str) -> str:
    parts = mount.split(":")
    if len(parts) != 3 or not parts[0] or not parts[1] or parts[2] not in MOUNT_MODES:
        raise CompileError(
            kind="invalid_config",
            message=f"invalid mount {mount!r}; expected 'source:destination:mode' with mode 'ro' or 'rw'",
            field="sandbox.agent.mounts",
        )
    return mount


def _sandbox_type(value: str, where: str) -> str:
    canonical = SANDBOX_ALIASES.get(value)
    if canonical is None:
        raise CompileError(
            kind="invalid_config",
            message=f"unsupported sandbox type {value!r}; must be one of {sorted(SANDBOX_ALIASES)}",
            field=where,
        )
    return canonical


def normalize_sandbox(value: Any) -> SandboxPolicy:
    """
    Fold every accepted sandbox shape into one SandboxPolicy.

    Accepted shapes, most specific first:
      sandbox: {agent: false}
      sandbox: {agent: {id: awf|srt, mounts: [...]}}   (``type`` as a legacy alias of ``id``)
      sandbox: {agent: awf|srt}
      sandbox: {type: default|sandbox-runtime}          (legacy)
      sandbox: default|sandbox-runtime|awf|srt          (legacy)
    The new ``agent`` field wins when both it and a legacy field are set.
    """
    if value is None:
        return SandboxPolicy()
    if isinstance(value, str):
        return SandboxPolicy(agent=_sandbox_type(value, "sandbox"))
    sandbox = validate(SandboxModel, value, "sandbox")

    agent = sandbox.agent
    if agent is False:
        return SandboxPolicy(agent=None, agent_disabled=True)
    if isinstance(agent, str):
        return SandboxPolicy(agent=_sandbox_type(agent, "sandbox.agent"))
    if agent is not None:
        mounts = tuple(_validate_mount(m) for m in agent.mounts)
        return SandboxPolicy(agent=_sandbox_type(agent.id or agent.type or "awf", "sandbox.agent.id"), mounts=mounts)

    if sandbox.type is not None:
        log.debug("Legacy sandbox.type used; normalizing to sandbox.agent")
        return SandboxPolicy(agent=_sandbox_type(sandbox.type, "sandbox.type"))
    return SandboxPolicy()


# ---------------------------------------------------------------------
# Safe outputs / project
# ---------------------------------------------------------------------

def _freeze(value: Any) -> Any:
    return tuple(value) if isinstance(value, list) else value


def _safe_outputs(model: Optional[SafeOutputsModel]) -> Optional[SafeOutputsConfig]:
    if model is None:
        return None

    pr = model.create_pull_request
    if pr is not None and pr.if_no_changes is not None and pr.if_no_changes not in IF_NO_CHANGES_VALUES:
        raise CompileError(
            kind="invalid_config",
            message=f"invalid if-no-changes value {pr.if_no_changes!r}; must be one of {list(IF_NO_CHANGES_VALUES)}",
            field="safe-outputs.create-pull-request.if-no-changes",
        )

    kinds: Dict[str, Any] = {}
    for attr, config_type in KIND_CONFIGS.items():
        entry = getattr(model, attr)
        if entry is None:
            continue
        kinds[attr] = config_type(**{k: _freeze(v) for k, v in entry.model_dump().items()})

    return SafeOutputsConfig(
        github_token=model.github_token,
        threat_detection=model.threat_detection_enabled,
        max_patch_size=model.max_patch_size,
        **kinds,
    )


def _parse_project(fm: Mapping[Any, Any]) -> Optional[ProjectRef]:
    """
    ``project: <url>`` or the object form ``project: {url: <url>, ...}``. The
    object form is tracked so a missing URL is reported against ``project.url``.
    """
    if "project" not in fm:
        return None
    value = fm["project"]
    if value is None:
        return ProjectRef(url="")
    if isinstance(value, str):
        return ProjectRef(url=value)
    if isinstance(value, dict):
        url = value.get("url")
        return ProjectRef(url=None if url is None else str(url), is_object=True)
    raise CompileError(
        kind="invalid_config",
        message="'project' field must be a string URL or configuration object",
        field="project",
    )
