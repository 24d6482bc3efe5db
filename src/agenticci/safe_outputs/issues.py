# safe_outputs/issues.py
from __future__ import annotations

from ..model import Job
from ..permissions import READ, Permissions, writes
from .base import EnvBuilder, SafeOutputContext, SafeOutputJobParts, assemble_job, require_config, step_outputs


# ---------------------------------------------------------------------
# create-issue
# ---------------------------------------------------------------------

def build_create_issue_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config("create_issue", ctx.safe_outputs.create_issue)

    env = (
        EnvBuilder()
        .add_str("ISSUE_TITLE_PREFIX", cfg.title_prefix)
        .add_list("ISSUE_LABELS", cfg.labels)
        .add_list("ISSUE_ALLOWED_LABELS", cfg.allowed_labels)
        .add_list("ISSUE_ASSIGNEES", cfg.assignees)
        .add_str("TARGET_REPO_SLUG", cfg.target_repo)
    )
    # expiry only applies to issues created in this repository
    if not cfg.target_repo:
        env.add_int("ISSUE_EXPIRES", cfg.expires)

    return assemble_job(ctx, SafeOutputJobParts(
        kind="create_issue",
        cfg=cfg,
        permissions=writes("issues").with_at_least("contents", READ),
        env=env.build(),
        outputs=step_outputs("create_issue", ("issue_number", "issue_url", "temporary_id_map")),
    ))


# ---------------------------------------------------------------------
# add-comment
# ---------------------------------------------------------------------

def build_add_comment_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config("add_comment", ctx.safe_outputs.add_comment)

    permissions: Permissions = writes("issues", "pull-requests").with_at_least("contents", READ)
    if cfg.discussion:
        permissions = permissions.with_at_least("discussions", "write")

    env = (
        EnvBuilder()
        .add_str("COMMENT_TARGET", cfg.target)
        .add_str("TARGET_REPO_SLUG", cfg.target_repo)
        .add_bool("HIDE_OLDER_COMMENTS", cfg.hide_older_comments or None)
        .add_bool("COMMENT_DISCUSSION", cfg.discussion or None)
    )

    return assemble_job(ctx, SafeOutputJobParts(
        kind="add_comment",
        cfg=cfg,
        permissions=permissions,
        env=env.build(),
        outputs=step_outputs("add_comment", ("comment_id", "comment_url")),
    ))


# ---------------------------------------------------------------------
# add-labels
# ---------------------------------------------------------------------

def build_add_labels_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config("add_labels", ctx.safe_outputs.add_labels)

    env = (
        EnvBuilder()
        .add_list("LABELS_ALLOWED", cfg.allowed)
        .add_str("LABELS_TARGET", cfg.target)
        .add_str("TARGET_REPO_SLUG", cfg.target_repo)
    )

    return assemble_job(ctx, SafeOutputJobParts(
        kind="add_labels",
        cfg=cfg,
        permissions=writes("issues", "pull-requests").with_at_least("contents", READ),
        env=env.build(),
        outputs=step_outputs("add_labels", ("labels_added",)),
    ))
