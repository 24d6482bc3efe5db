# cli.py
from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path

import click

from agenticci.compiler import Compiler
from agenticci.config import ACTION_MODES, CompilerConfig
from agenticci.emit import lock_path_for, write_lock_file
from agenticci.errors import CompileError, ContractError, LoadError
from agenticci.loader import load_workflow
from agenticci.ui.console import Console, get_console, set_console

ERROR_TITLES = {
    "duplicate_job": "Duplicate job",
    "unknown_dependency": "Unknown job dependency",
    "dangerous_permissions": "Dangerous permissions",
    "campaign_project": "Campaign project missing",
    "strict_network": "Strict mode network violation",
    "strict_sandbox": "Strict mode sandbox violation",
    "invalid_config": "Invalid configuration",
}


def find_workflow_files(root: Path) -> list[Path]:
    """
    Find all source workflows under `.github/workflows`.

    Returns:
        Sorted list of `.md` workflow paths
    """
    workflows_dir = root / ".github" / "workflows"
    if not workflows_dir.is_dir():
        return []
    return sorted(workflows_dir.glob("*.md"))


def resolve_workflows(workflow_args: tuple[str, ...]) -> list[Path]:
    """
    Resolve CLI arguments to workflow files.

    Raises:
        SystemExit: If a named workflow does not exist or none can be found
    """
    console = get_console()

    if not workflow_args:
        found = find_workflow_files(Path("."))
        if not found:
            console.print_error(
                "No workflow file found",
                "Could not find any workflow files.",
                details=["Looked for:", "  .github/workflows/*.md"],
                suggestion="Specify a workflow explicitly:\n  agenticci compile my-workflow.md",
            )
            sys.exit(1)
        return found

    paths = []
    for arg in workflow_args:
        path = Path(arg)
        if not path.exists() and path.suffix != ".md":
            path = Path(str(path) + ".md")
        if not path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {arg}",
            )
            sys.exit(1)
        paths.append(path)
    return paths


def _report_compile_error(path: Path, err: CompileError) -> None:
    console = get_console()
    details = []
    if err.field:
        details.append(f"field: {err.field}")
    details.extend(err.details)
    console.print_error(
        ERROR_TITLES.get(err.kind, "Compilation failed"),
        f"{path}: {err.message}",
        details=details or None,
        suggestion=err.suggestion,
    )


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """agenticci: compile agentic workflows into GitHub Actions lock files."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command("compile")
@click.argument("workflows", nargs=-1)
@click.option("--strict", is_flag=True, default=False, help="Enforce strict mode for every workflow")
@click.option("--output", "output", default=None, help="Lock file path (only with a single workflow)")
@click.option(
    "--action-mode",
    type=click.Choice(ACTION_MODES),
    default=None,
    help="How the setup action is referenced (defaults to AGENTICCI_ACTION_MODE or dev)",
)
@click.pass_context
def compile_workflows(ctx, workflows, strict, output, action_mode):
    """Compile workflow files into `.lock.yml` files."""
    console = get_console()
    paths = resolve_workflows(workflows)
    if output and len(paths) > 1:
        console.print_error(
            "Invalid options",
            "--output can only be used when compiling a single workflow",
        )
        sys.exit(1)

    config = CompilerConfig.from_env()
    if strict:
        config = replace(config, strict=True)
    if action_mode:
        config = replace(config, action_mode=action_mode)
    compiler = Compiler(config)

    failed = 0
    for path in paths:
        try:
            ir = load_workflow(path)
            result = compiler.compile(ir)
        except LoadError as e:
            console.print_error("Failed to load workflow", str(e))
            failed += 1
            continue
        except CompileError as e:
            _report_compile_error(path, e)
            failed += 1
            continue
        except ContractError as e:
            console.print_exception(e)
            failed += 1
            continue

        console.print_warnings(result.warnings)
        target = write_lock_file(result.store, ir, output or lock_path_for(path))
        console.print_compiled(str(path), str(target), len(result.store))
        console.print_debug(f"Job order: {result.store.topo_order()}")

    if len(paths) > 1:
        console.print_info(f"\n{len(paths) - failed} of {len(paths)} workflow(s) compiled")
    if failed:
        sys.exit(1)


@cli.command()
@click.argument("workflow")
@click.pass_context
def graph(ctx, workflow):
    """Print the compiled job graph of a workflow, level by level."""
    console = get_console()
    path = resolve_workflows((workflow,))[0]
    try:
        ir = load_workflow(path)
        result = Compiler(CompilerConfig.from_env()).compile(ir)
    except LoadError as e:
        console.print_error("Failed to load workflow", str(e))
        sys.exit(1)
    except CompileError as e:
        _report_compile_error(path, e)
        sys.exit(1)
    except ContractError as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_header(ir.name)
    store = result.store
    console.print_levels(store.topo_levels(), {job.name: list(job.needs) for job in store})


if __name__ == "__main__":
    cli()
