# safe_outputs/__init__.py
"""One job builder per safe-output kind, all sharing the contract in ``base``."""
from __future__ import annotations

import logging
from typing import Callable, Dict, List

from ..ir import SAFE_OUTPUT_KINDS
from ..model import Job
from .base import (
    DEFAULT_MAX,
    SINGLE_RESULT_KINDS,
    SafeOutputContext,
    effective_max,
    resolve_token,
)
from .discussions import build_create_discussion_job
from .issues import build_add_comment_job, build_add_labels_job, build_create_issue_job
from .projects import apply_project_defaults, build_create_project_status_update_job, build_update_project_job
from .pull_requests import build_create_pull_request_job

log = logging.getLogger(__name__)

BUILDERS: Dict[str, Callable[[SafeOutputContext], Job]] = {
    "create_issue": build_create_issue_job,
    "create_discussion": build_create_discussion_job,
    "add_comment": build_add_comment_job,
    "create_pull_request": build_create_pull_request_job,
    "add_labels": build_add_labels_job,
    "update_project": build_update_project_job,
    "create_project_status_update": build_create_project_status_update_job,
}


def build_safe_output_jobs(ctx: SafeOutputContext) -> List[Job]:
    """Build a job for every enabled kind, in the fixed kind order."""
    jobs = []
    for kind in SAFE_OUTPUT_KINDS:
        if getattr(ctx.safe_outputs, kind) is None:
            continue
        log.debug("Building safe-output job '%s'", kind)
        jobs.append(BUILDERS[kind](ctx))
    return jobs


__all__ = [
    "BUILDERS",
    "DEFAULT_MAX",
    "SINGLE_RESULT_KINDS",
    "SafeOutputContext",
    "apply_project_defaults",
    "build_safe_output_jobs",
    "effective_max",
    "resolve_token",
]
