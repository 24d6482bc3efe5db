# safe_outputs/projects.py
"""
Project tracking outputs (update-project, create-project-status-update) and
the auto-configuration applied when a workflow names a tracking project.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from ..ir import (
    ProjectStatusUpdateConfig,
    SafeOutputsConfig,
    UpdateProjectConfig,
    WorkflowIR,
)
from ..model import Job
from ..permissions import contents_read
from .base import EnvBuilder, SafeOutputContext, SafeOutputJobParts, assemble_job, require_config, step_outputs

log = logging.getLogger(__name__)

# caps used when the kinds are enabled implicitly by a top-level `project`
AUTO_UPDATE_PROJECT_MAX = 100
AUTO_STATUS_UPDATE_MAX = 1


def project_url(ir: WorkflowIR) -> Optional[str]:
    if ir.project is None or not ir.project.url or not ir.project.url.strip():
        return None
    return ir.project.url.strip()


def apply_project_defaults(ir: WorkflowIR) -> Optional[SafeOutputsConfig]:
    """
    Return the safe-outputs config with project kinds switched on when the
    workflow names a tracking project. Kinds the user configured are kept
    as-is. The IR itself is never modified.
    """
    url = project_url(ir)
    safe = ir.safe_outputs
    if url is None:
        return safe
    if safe is None:
        safe = SafeOutputsConfig()

    changes = {}
    if safe.update_project is None:
        log.debug("Project URL configured, enabling update-project (max %d)", AUTO_UPDATE_PROJECT_MAX)
        changes["update_project"] = UpdateProjectConfig(max=AUTO_UPDATE_PROJECT_MAX, project=url)
    if safe.create_project_status_update is None:
        log.debug("Project URL configured, enabling create-project-status-update (max %d)", AUTO_STATUS_UPDATE_MAX)
        changes["create_project_status_update"] = ProjectStatusUpdateConfig(max=AUTO_STATUS_UPDATE_MAX, project=url)
    if not changes:
        return safe
    return dataclasses.replace(safe, **changes)


def build_update_project_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config("update_project", ctx.safe_outputs.update_project)

    env = (
        EnvBuilder()
        .add_str("PROJECT_URL", cfg.project or project_url(ctx.ir))
        .add_json("PROJECT_VIEWS", [dict(v) for v in cfg.views])
    )

    return assemble_job(ctx, SafeOutputJobParts(
        kind="update_project",
        cfg=cfg,
        permissions=contents_read(),
        env=env.build(),
        outputs=step_outputs("update_project", ("project_url", "items_updated")),
    ))


def build_create_project_status_update_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config("create_project_status_update", ctx.safe_outputs.create_project_status_update)

    env = EnvBuilder().add_str("PROJECT_URL", cfg.project or project_url(ctx.ir))

    return assemble_job(ctx, SafeOutputJobParts(
        kind="create_project_status_update",
        cfg=cfg,
        permissions=contents_read(),
        env=env.build(),
        outputs=step_outputs("create_project_status_update", ("status_update_id",)),
    ))
