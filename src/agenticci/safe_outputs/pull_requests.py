# safe_outputs/pull_requests.py
from __future__ import annotations

from typing import List

from ..constants import AGENT_PATCH_ARTIFACT
from ..expressions import build_equals, build_not, render
from ..ir import CreatePullRequestConfig
from ..model import Job, Quoted, Step
from ..permissions import writes
from .base import (
    DOWNLOAD_ARTIFACT,
    GITHUB_SCRIPT,
    EnvBuilder,
    SafeOutputContext,
    SafeOutputJobParts,
    assemble_job,
    env_name,
    require_config,
    resolve_token,
    step_outputs,
)

KIND = "create_pull_request"
PATCH_DIR = "/tmp/gh-aw/"
DEFAULT_IF_NO_CHANGES = "warn"
IF_NO_CHANGES_VALUES = ("warn", "error", "ignore")
DEFAULT_MAX_PATCH_SIZE_KB = 1024

PR_OUTPUTS = (
    "pull_request_number",
    "pull_request_url",
    "issue_number",
    "issue_url",
    "branch_name",
    "fallback_used",
    "error_message",
)


def _pre_steps(token: str) -> List[Step]:
    """Materialize the agent's patch and a writable checkout before applying it."""
    return [
        Step(
            name="Download patch artifact",
            uses=DOWNLOAD_ARTIFACT,
            with_={"name": AGENT_PATCH_ARTIFACT, "path": PATCH_DIR},
        ),
        Step(
            name="Checkout repository",
            uses="actions/checkout@v5",
            with_={"token": token, "persist-credentials": False, "fetch-depth": 1},
        ),
        Step(
            name="Configure Git credentials",
            env={"REPO_NAME": Quoted("${{ github.repository }}"), "SERVER_URL": Quoted("${{ github.server_url }}")},
            run=(
                'git config --global user.email "github-actions[bot]@users.noreply.github.com"\n'
                'git config --global user.name "github-actions[bot]"\n'
                'SERVER_URL_STRIPPED="${SERVER_URL#https://}"\n'
                'git remote set-url origin "https://x-access-token:${{ github.token }}@${SERVER_URL_STRIPPED}/${REPO_NAME}.git"\n'
            ),
        ),
    ]


def _reviewers_step(cfg: CreatePullRequestConfig, token: str) -> Step:
    """Only runs once the pull request actually exists."""
    created = build_not(build_equals(f"steps.{KIND}.outputs.pull_request_url", ""))
    return Step(
        name="Add reviewers to pull request",
        id="add_reviewers",
        if_=render(created),
        uses=GITHUB_SCRIPT,
        env={
            env_name("PR_REVIEWERS"): Quoted(",".join(cfg.reviewers)),
            env_name("PR_NUMBER"): Quoted("${{ steps." + KIND + ".outputs.pull_request_number }}"),
        },
        with_={
            "github-token": token,
            "script": "const { main } = require('/tmp/gh-aw/actions/add_reviewer.cjs');\nawait main();",
        },
    )


def build_create_pull_request_job(ctx: SafeOutputContext) -> Job:
    cfg = require_config(KIND, ctx.safe_outputs.create_pull_request)
    token = resolve_token(cfg.github_token, ctx.safe_outputs.github_token, ctx.ir.github_token)

    if_no_changes = cfg.if_no_changes or DEFAULT_IF_NO_CHANGES

    max_patch_size = cfg.max_patch_size or ctx.safe_outputs.max_patch_size or DEFAULT_MAX_PATCH_SIZE_KB

    env = (
        EnvBuilder()
        .add_str("WORKFLOW_ID", ctx.ir.workflow_id)
        .add_str("BASE_BRANCH", cfg.base_branch or "${{ github.ref_name }}")
        .add_str("PR_TITLE_PREFIX", cfg.title_prefix)
        .add_list("PR_LABELS", cfg.labels)
        .add_list("PR_ALLOWED_LABELS", cfg.allowed_labels)
        .add_bool("PR_DRAFT", cfg.draft, default=True)
        .add_str("PR_IF_NO_CHANGES", if_no_changes)
        .add_bool("PR_ALLOW_EMPTY", cfg.allow_empty)
        .add_bool("PR_AUTO_MERGE", cfg.auto_merge)
        .add_int("MAX_PATCH_SIZE", max_patch_size)
        .add_str("TARGET_REPO_SLUG", cfg.target_repo)
    )
    # expiry only applies to pull requests opened in this repository
    if not cfg.target_repo:
        env.add_int("PR_EXPIRES", cfg.expires)

    post_steps = [_reviewers_step(cfg, token)] if cfg.reviewers else []

    return assemble_job(ctx, SafeOutputJobParts(
        kind=KIND,
        cfg=cfg,
        permissions=writes("contents", "issues", "pull-requests"),
        env=env.build(),
        pre_steps=_pre_steps(token),
        post_steps=post_steps,
        outputs=step_outputs(KIND, PR_OUTPUTS),
    ))
