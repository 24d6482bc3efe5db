# safe_outputs/discussions.py
from __future__ import annotations

from ..model import Job
from ..permissions import READ, writes
from .base import EnvBuilder, SafeOutputContext, SafeOutputJobParts, assemble_job, require_config, step_outputs


def build_create_discussion_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config("create_discussion", ctx.safe_outputs.create_discussion)

    env = (
        EnvBuilder()
        .add_str("DISCUSSION_TITLE_PREFIX", cfg.title_prefix)
        .add_str("DISCUSSION_CATEGORY", cfg.category)
        .add_list("DISCUSSION_LABELS", cfg.labels)
        .add_list("DISCUSSION_ALLOWED_LABELS", cfg.allowed_labels)
        .add_bool("CLOSE_OLDER_DISCUSSIONS", cfg.close_older_discussions or None)
        .add_str("TARGET_REPO_SLUG", cfg.target_repo)
    )
    if not cfg.target_repo:
        env.add_int("DISCUSSION_EXPIRES", cfg.expires)

    return assemble_job(ctx, SafeOutputJobParts(
        kind="create_discussion",
        cfg=cfg,
        permissions=writes("discussions").with_at_least("contents", READ),
        env=env.build(),
        outputs=step_outputs("create_discussion", ("discussion_number", "discussion_url")),
    ))
