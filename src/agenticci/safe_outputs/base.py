# safe_outputs/base.py
"""
Contract shared by every safe-output job builder.

A builder receives a ``SafeOutputContext`` and returns exactly one Job that:
  - needs the main job (and the detection job when threat detection is on),
  - runs only when the agent actually produced that output kind,
  - carries its parameters as quoted ``GH_AW_*`` env vars,
  - resolves its token as kind > safe-outputs > workflow > default.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..config import CompilerConfig
from ..constants import (
    AGENT_OUTPUT_ARTIFACT,
    DEFAULT_GITHUB_TOKEN,
    DETECTION_JOB,
    ENV_PREFIX,
)
from ..errors import ContractError
from ..expressions import build_and, build_detection_success, build_safe_output_type, render
from ..ir import SafeOutputKindConfig, SafeOutputsConfig, WorkflowIR
from ..model import Job, Quoted, Step
from ..permissions import Permissions

GITHUB_SCRIPT = "actions/github-script@v8"
DOWNLOAD_ARTIFACT = "actions/download-artifact@v6"
AGENT_OUTPUT_DIR = "/tmp/gh-aw/safeoutputs/"
AGENT_OUTPUT_FILE = AGENT_OUTPUT_DIR + "agent_output.json"
SAFE_OUTPUT_TIMEOUT_MINUTES = 15

DEFAULT_MAX = {
    "create_issue": 1,
    "create_discussion": 1,
    "add_comment": 1,
    "create_pull_request": 1,
    "add_labels": 3,
    "update_project": 10,
    "create_project_status_update": 10,
}

# kinds that can only ever produce one result per run
SINGLE_RESULT_KINDS = frozenset({"create_pull_request"})


@dataclass(frozen=True)
class SafeOutputContext:
    ir: WorkflowIR
    safe_outputs: SafeOutputsConfig
    main_job: str
    config: CompilerConfig

    @property
    def threat_detection(self) -> bool:
        return self.safe_outputs.threat_detection


# ---------------------------------------------------------------------
# Shared rules
# ---------------------------------------------------------------------

def resolve_token(
    kind_token: Optional[str],
    shared_token: Optional[str],
    workflow_token: Optional[str],
) -> str:
    """Most specific non-empty token wins; falls back to the default secret chain."""
    for token in (kind_token, shared_token, workflow_token):
        if token:
            return token
    return DEFAULT_GITHUB_TOKEN


def effective_max(kind: str, cfg: SafeOutputKindConfig) -> int:
    """
    The cap a job enforces. Single-result kinds are clamped to 1 whatever the
    user asked for.
    """
    if kind in SINGLE_RESULT_KINDS:
        return 1
    if cfg.max is not None and cfg.max > 0:
        return cfg.max
    return DEFAULT_MAX[kind]


def require_config(kind: str, cfg: Optional[SafeOutputKindConfig]) -> SafeOutputKindConfig:
    if cfg is None:
        raise ContractError(
            f"cannot build '{kind}' job: safe-outputs.{kind.replace('_', '-')} is not configured; "
            "check enablement before calling the builder"
        )
    return cfg


# ---------------------------------------------------------------------
# Env helpers (every value is emitted quoted)
# ---------------------------------------------------------------------

def env_name(suffix: str) -> str:
    return ENV_PREFIX + suffix


class EnvBuilder:
    """Collects GH_AW_* env vars in insertion order, skipping empty values."""

    def __init__(self) -> None:
        self._env: Dict[str, Quoted] = {}

    def add_str(self, suffix: str, value: Optional[str]) -> "EnvBuilder":
        if value is not None and value != "":
            self._env[env_name(suffix)] = Quoted(value)
        return self

    def add_list(self, suffix: str, values: Iterable[str]) -> "EnvBuilder":
        values = [v for v in values if v]
        if values:
            self._env[env_name(suffix)] = Quoted(",".join(values))
        return self

    def add_bool(self, suffix: str, value: Optional[bool], default: Optional[bool] = None) -> "EnvBuilder":
        if value is None:
            value = default
        if value is not None:
            self._env[env_name(suffix)] = Quoted("true" if value else "false")
        return self

    def add_int(self, suffix: str, value: Optional[int]) -> "EnvBuilder":
        if value is not None:
            self._env[env_name(suffix)] = Quoted("%d" % value)
        return self

    def add_json(self, suffix: str, value: object) -> "EnvBuilder":
        if value:
            self._env[env_name(suffix)] = Quoted(json.dumps(value, sort_keys=True))
        return self

    def build(self) -> Dict[str, Quoted]:
        return dict(self._env)


# ---------------------------------------------------------------------
# Job assembly
# ---------------------------------------------------------------------

@dataclass
class SafeOutputJobParts:
    """Kind-specific pieces handed to ``assemble_job``."""
    kind: str
    cfg: SafeOutputKindConfig
    permissions: Permissions
    env: Dict[str, Quoted] = field(default_factory=dict)
    pre_steps: List[Step] = field(default_factory=list)
    post_steps: List[Step] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    script: str | None = None


def build_condition(kind: str, threat_detection: bool) -> str:
    condition = build_safe_output_type(kind)
    if threat_detection:
        condition = build_and(condition, build_detection_success())
    return render(condition)


def assemble_job(ctx: SafeOutputContext, parts: SafeOutputJobParts) -> Job:
    kind = parts.kind
    token = resolve_token(parts.cfg.github_token, ctx.safe_outputs.github_token, ctx.ir.github_token)

    needs = [ctx.main_job]
    if ctx.threat_detection:
        needs.append(DETECTION_JOB)

    env: Dict[str, Quoted] = {
        env_name("AGENT_OUTPUT"): Quoted(AGENT_OUTPUT_FILE),
        env_name("WORKFLOW_NAME"): Quoted(ctx.ir.name),
        env_name(f"{kind.upper()}_MAX"): Quoted("%d" % effective_max(kind, parts.cfg)),
    }
    env.update(parts.env)

    steps: List[Step] = [
        Step(name="Setup Scripts", uses=ctx.config.setup_action, with_={"destination": "/tmp/gh-aw/actions"}),
        Step(
            name="Download agent output artifact",
            uses=DOWNLOAD_ARTIFACT,
            with_={"name": AGENT_OUTPUT_ARTIFACT, "path": AGENT_OUTPUT_DIR},
        ),
    ]
    steps.extend(parts.pre_steps)
    script = parts.script or kind
    steps.append(Step(
        name=kind.replace("_", " ").capitalize(),
        id=kind,
        uses=GITHUB_SCRIPT,
        env=env,
        with_={
            "github-token": token,
            "script": f"const {{ main }} = require('/tmp/gh-aw/actions/{script}.cjs');\nawait main();",
        },
    ))
    steps.extend(parts.post_steps)

    return Job(
        name=kind,
        needs=needs,
        if_=build_condition(kind, ctx.threat_detection),
        runs_on=ctx.config.gating_runner,
        permissions=parts.permissions,
        steps=steps,
        outputs=dict(parts.outputs),
        timeout_minutes=SAFE_OUTPUT_TIMEOUT_MINUTES,
    )


def step_outputs(kind: str, names: Iterable[str]) -> Dict[str, str]:
    return {name: "${{ steps." + kind + ".outputs." + name + " }}" for name in names}
