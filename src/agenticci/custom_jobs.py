# custom_jobs.py
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence, Set

from .config import CompilerConfig
from .constants import (
    ACTIVATION_JOB,
    AGENT_JOB,
    DETECTION_JOB,
    PUSH_REPO_MEMORY_JOB,
    UPDATE_CACHE_MEMORY_JOB,
)
from .errors import CompileError
from .expressions import build_and, build_detection_success, build_function_call, render
from .ir import CacheMemoryEntry, CustomJobDecl, RepoMemoryEntry
from .model import Job, Quoted, Step
from .permissions import contents_read, writes

log = logging.getLogger(__name__)

SECRET_EXPRESSION = re.compile(r"^\$\{\{\s*.+\s*\}\}$", re.DOTALL)


# ---------------------------------------------------------------------
# User-declared jobs
# ---------------------------------------------------------------------

def validate_secrets(decl: CustomJobDecl) -> None:
    """Secrets passed to a reusable workflow must be expressions, never literals."""
    for key, value in decl.secrets:
        if not SECRET_EXPRESSION.match(value.strip()):
            raise CompileError(
                kind="invalid_config",
                message=f"secret '{key}' of job '{decl.name}' must be a GitHub Actions expression",
                field=f"jobs.{decl.name}.secrets.{key}",
                suggestion="Use an expression such as:\n  ${{ secrets.MY_SECRET }}",
            )


def build_custom_job(decl: CustomJobDecl, activation_exists: bool = True) -> Job:
    """
    Turn a declaration into a Job. Without explicit ``needs`` the job depends
    on the activation job so it never runs for a workflow that was not
    activated.
    """
    if decl.needs is None:
        needs = [ACTIVATION_JOB] if activation_exists else []
    else:
        needs = list(decl.needs)

    if decl.uses:
        if decl.steps:
            raise CompileError(
                kind="invalid_config",
                message=f"job '{decl.name}' calls reusable workflow '{decl.uses}' and cannot also define steps",
                field=f"jobs.{decl.name}.steps",
            )
        validate_secrets(decl)
        job = Job(
            name=decl.name,
            needs=needs,
            if_=decl.if_ or "",
            permissions=decl.permissions,
            outputs=dict(decl.outputs),
            uses=decl.uses,
            with_=dict(decl.with_),
            secrets=dict(decl.secrets),
        )
    else:
        job = Job(
            name=decl.name,
            needs=needs,
            if_=decl.if_ or "",
            runs_on=decl.runs_on or "ubuntu-latest",
            permissions=decl.permissions,
            steps=[Step.from_mapping(s) for s in decl.steps],
            outputs=dict(decl.outputs),
        )
    log.debug("Built custom job '%s' with %d needs dependencies", decl.name, len(job.needs))
    return job


def order_custom_jobs(decls: Sequence[CustomJobDecl], existing: Iterable[str]) -> List[CustomJobDecl]:
    """
    Declaration order, except that a job needing another custom job is moved
    after it. Jobs whose needs can never be satisfied keep their relative
    order at the end so that inserting them reports the missing name.
    """
    known: Set[str] = set(existing)
    pending = list(decls)
    ordered: List[CustomJobDecl] = []

    while pending:
        for i, decl in enumerate(pending):
            needs = decl.needs if decl.needs is not None else (ACTIVATION_JOB,)
            if all(n in known for n in needs):
                ordered.append(decl)
                known.add(decl.name)
                del pending[i]
                break
        else:
            ordered.extend(pending)
            break

    return ordered


# ---------------------------------------------------------------------
# Persistence jobs
# ---------------------------------------------------------------------

def build_push_repo_memory_job(
    entries: Sequence[RepoMemoryEntry],
    config: CompilerConfig,
    threat_detection: bool,
) -> Optional[Job]:
    """
    Commit repo-memory back to its branch. Runs even when the agent failed so
    partial memory is kept.
    """
    if not entries:
        return None

    needs = [AGENT_JOB]
    if threat_detection:
        needs.append(DETECTION_JOB)

    steps: List[Step] = [
        Step(name="Checkout repository", uses="actions/checkout@v5", with_={"persist-credentials": False, "sparse-checkout": "."}),
        Step(
            name="Configure Git credentials",
            run=(
                'git config --global user.email "github-actions[bot]@users.noreply.github.com"\n'
                'git config --global user.name "github-actions[bot]"\n'
            ),
        ),
    ]
    for entry in entries:
        artifact = f"repo-memory-{entry.id}"
        steps.append(Step(
            name=f"Download repo-memory artifact ({entry.id})",
            uses="actions/download-artifact@v6",
            with_={"name": artifact, "path": f"/tmp/gh-aw/repo-memory/{entry.id}"},
        ))
        env = {
            "GH_AW_MEMORY_ID": Quoted(entry.id),
            "GH_AW_MEMORY_BRANCH": Quoted(entry.branch_name or f"memory/{entry.id}"),
            "GH_AW_MEMORY_DIR": Quoted(f"/tmp/gh-aw/repo-memory/{entry.id}"),
            "GITHUB_TOKEN": Quoted("${{ github.token }}"),
        }
        if entry.max_file_size is not None:
            env["GH_AW_MEMORY_MAX_FILE_SIZE"] = Quoted("%d" % entry.max_file_size)
        if entry.file_glob:
            env["GH_AW_MEMORY_FILE_GLOB"] = Quoted(",".join(entry.file_glob))
        steps.append(Step(
            name=f"Push repo-memory changes ({entry.id})",
            id=f"push_repo_memory_{entry.id}",
            if_="always()",
            uses="actions/github-script@v8",
            env=env,
            with_={"script": "const { main } = require('/tmp/gh-aw/actions/push_repo_memory.cjs');\nawait main();"},
        ))

    return Job(
        name=PUSH_REPO_MEMORY_JOB,
        needs=needs,
        if_=render(build_function_call("always")),
        runs_on=config.gating_runner,
        permissions=writes("contents"),
        steps=steps,
    )


def build_update_cache_memory_job(
    entries: Sequence[CacheMemoryEntry],
    config: CompilerConfig,
    threat_detection: bool,
) -> Optional[Job]:
    """
    Save cache-memory only after threat detection passed. Without threat
    detection the agent job saves its caches itself and no job is built.
    """
    writable = [e for e in entries if not e.read_only]
    if not threat_detection or not writable:
        return None

    steps: List[Step] = []
    for entry in writable:
        path = f"/tmp/gh-aw/cache-memory-{entry.id}"
        steps.append(Step(
            name=f"Download cache-memory artifact ({entry.id})",
            uses="actions/download-artifact@v6",
            with_={"name": f"cache-memory-{entry.id}", "path": path},
        ))
        steps.append(Step(
            name=f"Save cache-memory to cache ({entry.id})",
            uses="actions/cache/save@v4",
            with_={"key": cache_memory_key(entry), "path": path},
        ))

    condition = build_and(build_function_call("always"), build_detection_success())
    return Job(
        name=UPDATE_CACHE_MEMORY_JOB,
        needs=[AGENT_JOB, DETECTION_JOB],
        if_=render(condition),
        runs_on=config.gating_runner,
        permissions=contents_read(),
        steps=steps,
    )


def cache_memory_key(entry: CacheMemoryEntry) -> str:
    if entry.key:
        return entry.key
    return f"memory-{entry.id}-${{{{ github.workflow }}}}-${{{{ github.run_id }}}}"

