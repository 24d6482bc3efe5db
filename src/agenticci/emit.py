# emit.py
"""
Turns a compiled JobGraphStore into the GitHub Actions lock file.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from .graph import JobGraphStore
from .ir import WorkflowIR
from .model import Job, Quoted

LOCK_HEADER = (
    "# This file was generated by agenticci. DO NOT EDIT.\n"
    "# To update it, edit the source workflow and run `agenticci compile`.\n"
)


class _LockDumper(yaml.SafeDumper):
    """SafeDumper that keeps Quoted values quoted and indents block sequences."""

    def increase_indent(self, flow: bool = False, indentless: bool = False):
        return super().increase_indent(flow, False)


def _represent_quoted(dumper: yaml.SafeDumper, data: Quoted) -> yaml.Node:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_LockDumper.add_representer(Quoted, _represent_quoted)
_LockDumper.add_representer(str, _represent_str)


def job_to_dict(job: Job) -> Dict[str, Any]:
    """
    Convert a Job into its `jobs.<name>` mapping.

    Keys come out in the order GitHub documents them; empty optional fields
    are left out.
    """
    job_dict: Dict[str, Any] = {}
    if job.needs:
        job_dict["needs"] = job.needs[0] if len(job.needs) == 1 else list(job.needs)
    if job.if_:
        job_dict["if"] = job.if_

    if job.uses:
        job_dict["uses"] = job.uses
        if job.permissions is not None:
            job_dict["permissions"] = job.permissions.render()
        if job.with_:
            job_dict["with"] = dict(job.with_)
        if job.secrets:
            job_dict["secrets"] = dict(job.secrets)
        return job_dict

    job_dict["runs-on"] = job.runs_on
    if job.permissions is not None:
        job_dict["permissions"] = job.permissions.render()
    if job.env:
        job_dict["env"] = dict(job.env)
    if job.timeout_minutes is not None:
        job_dict["timeout-minutes"] = job.timeout_minutes
    job_dict["steps"] = [step.to_dict() for step in job.steps]
    if job.outputs:
        job_dict["outputs"] = dict(job.outputs)
    return job_dict


def render_workflow(store: JobGraphStore, ir: WorkflowIR) -> Dict[str, Any]:
    """
    Build the lock-file document. Jobs are listed in topological order so a
    reader sees every dependency before the jobs that need it.

    The top-level permission block is always empty; each job declares what
    it needs.
    """
    return {
        "name": ir.name,
        "on": dict(ir.on),
        "permissions": {},
        "jobs": {name: job_to_dict(store.get_job(name)) for name in store.topo_order()},
    }


def dump_workflow(document: Dict[str, Any]) -> str:
    body = yaml.dump(
        document,
        Dumper=_LockDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )
    return LOCK_HEADER + "\n" + body


def lock_path_for(source: str | Path) -> Path:
    """`.github/workflows/x.md` -> `.github/workflows/x.lock.yml`"""
    source = Path(source)
    stem = source.name
    for suffix in (".md", ".yml", ".yaml"):
        if stem.endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    return source.with_name(f"{stem}.lock.yml")


def write_lock_file(store: JobGraphStore, ir: WorkflowIR, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_workflow(render_workflow(store, ir)), encoding="utf-8")
    return path
