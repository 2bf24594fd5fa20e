# cli.py
from __future__ import annotations

import subprocess
import sys
import threading
from pathlib import Path

import click

from matrixci.aggregate import aggregate
from matrixci.config import DEFAULT_WORKFLOW_FILES, find_workflow_files, load_workflow
from matrixci.dsl import event as make_event
from matrixci.errors import AggregationInconsistency, ConfigurationError
from matrixci.executor import SubprocessExecutor
from matrixci.git_facts.git import current_ref, repo_root as git_repo_root
from matrixci.matrix import expand
from matrixci.runner import run_jobs
from matrixci.trigger import matches
from matrixci.ui.console import Console, get_console, set_console


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run push main --workflow ci.yaml",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files(".")

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:"] + [f"  {name}" for name in DEFAULT_WORKFLOW_FILES],
            suggestion="Create matrixci.yaml or specify a workflow explicitly:\n  matrixci run push main --workflow ci.yaml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  matrixci run push main --workflow matrixci.yaml",
        )
        sys.exit(1)

    return workflow_files[0]


def _default_ref() -> str:
    console = get_console()
    try:
        ref = current_ref()
    except (subprocess.CalledProcessError, FileNotFoundError):
        console.print_error(
            "Could not determine git ref",
            "No REF given and the current directory is not a git checkout.",
            suggestion="Pass the ref explicitly:\n  matrixci run push main",
        )
        sys.exit(1)
    console.print_debug(f"Using git ref: {ref}")
    return ref


def _default_repo_root() -> Path:
    console = get_console()
    try:
        root = git_repo_root()
    except (subprocess.CalledProcessError, FileNotFoundError):
        console.print_debug("Not inside a git checkout; steps run in the current directory")
        return Path(".")
    console.print_debug(f"Using repository root: {root}")
    return root


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci — expand a trigger/matrix workflow and run every combination."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("event_kind", metavar="EVENT")
@click.argument("ref", required=False)
@click.option(
    "--workflow",
    default=None,
    envvar="MATRIXCI_WORKFLOW",
    help="Workflow file path (defaults to matrixci.yaml if present)",
)
@click.option("--dry-run", is_flag=True, default=False, help="Print the expanded jobs without running them")
@click.option("--workers", default=None, type=click.IntRange(min=1), envvar="MATRIXCI_WORKERS", help="Number of parallel jobs")
@click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True), envvar="MATRIXCI_TIMEOUT", help="Per-step timeout in seconds")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Cancel remaining jobs after the first failure")
@click.option("--repo-root", default=None, help="Directory steps run in (defaults to the git checkout root, else .)")
@click.pass_context
def run(ctx, event_kind, ref, workflow, dry_run, workers, timeout, fail_fast, repo_root):
    """
    Run the workflow for EVENT (push or pull_request) on REF.

    REF is the pushed branch/tag, or the pull request's target branch. It
    defaults to the current git branch.
    """
    console = get_console()
    workflow_path = discover_workflow(workflow)

    try:
        config = load_workflow(workflow_path)
        jobs = expand(config.axes, config.steps, workflow=config.name)
        evt = make_event(event_kind, ref or _default_ref())
    except ConfigurationError as e:
        console.print_error("Invalid workflow", str(e), details=[f"workflow={workflow_path}"])
        sys.exit(1)

    if not matches(evt, config.triggers):
        console.print_not_triggered(evt.kind.value, evt.ref)
        sys.exit(0)

    if dry_run:
        console.print_plan(jobs)
        sys.exit(0)

    try:
        console.print_run_started(
            workflow=config.name,
            event=evt.kind.value,
            ref=evt.ref,
            job_count=len(jobs),
        )

        results = run_jobs(
            jobs,
            SubprocessExecutor(),
            max_workers=workers or config.max_parallel,
            timeout=timeout or config.step_timeout,
            cancel=threading.Event(),
            fail_fast=config.fail_fast if fail_fast is None else fail_fast,
            repo_root=repo_root or _default_repo_root(),
            env=config.env,
            console=console,
        )
        outcome = aggregate(results, expected=jobs)
    except AggregationInconsistency as e:
        console.print_error("Internal error", str(e), suggestion="This is a matrixci bug; please report it.")
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_results(outcome)
    sys.exit(0 if outcome.ok else 1)


@cli.command()
@click.option(
    "--workflow",
    default=None,
    envvar="MATRIXCI_WORKFLOW",
    help="Workflow file path (defaults to matrixci.yaml if present)",
)
def validate(workflow):
    """Load a workflow and expand its matrix without running anything."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    try:
        config = load_workflow(workflow_path)
        jobs = expand(config.axes, config.steps, workflow=config.name)
    except ConfigurationError as e:
        console.print_error("Invalid workflow", str(e), details=[f"workflow={workflow_path}"])
        sys.exit(1)

    console.print_info(f"{workflow_path}: OK")
    console.print_info(f"  triggers: {', '.join(r.kind.value for r in config.triggers) or 'none'}")
    console.print_info(f"  jobs: {len(jobs)}")
    console.print_info(f"  steps per job: {len(config.steps)}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
