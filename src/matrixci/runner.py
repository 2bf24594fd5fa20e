# runner.py
from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .executor import NOT_RUNNABLE, Execution, StepExecutor
from .matrix import job_env
from .model import CANCELLED, JobResult, JobSpec, JobStatus, StepResult
from .ui.console import Console, get_console


def _step_env(job: JobSpec, extra: Optional[Dict[str, str]]) -> Dict[str, str]:
    env = os.environ.copy()
    env.update(extra or {})
    env.update(job_env(job))
    return env


def run_job(
    job: JobSpec,
    executor: StepExecutor,
    *,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    repo_root: str | Path = ".",
    env: Optional[Dict[str, str]] = None,
    console: Optional[Console] = None,
) -> JobResult:
    """
    Run one job's steps in order and return its terminal result.

    - first non-zero exit (or timeout) stops the job: FAILED
    - every step exits 0: SUCCESS
    - cancel set before a step, or the running step got cancelled: SKIPPED

    Step failures are returned, never raised.
    """
    console = console or get_console()
    root = Path(repo_root).resolve()
    step_env = _step_env(job, env)
    completed: List[StepResult] = []

    if cancel is not None and cancel.is_set():
        console.print_debug(f"[{job.name}] cancelled before start")
        return JobResult(job=job, status=JobStatus.SKIPPED)

    console.print_job_start(job.name)

    for step in job.steps:
        if cancel is not None and cancel.is_set():
            return JobResult(job=job, status=JobStatus.SKIPPED, completed_steps=tuple(completed))

        console.print_step(job.name, step.name)
        try:
            execution = executor.execute(
                step.run,
                cwd=(root / (step.cwd or ".")).resolve(),
                env=step_env,
                timeout=timeout,
                cancel=cancel,
            )
        except OSError as e:
            # the process could not be spawned (fd exhaustion, missing shell, ...)
            execution = Execution(NOT_RUNNABLE, 0, f"could not start step: {e}")

        if execution.exit_code == CANCELLED:
            console.print_debug(f"[{job.name}] step '{step.name}' terminated")
            return JobResult(job=job, status=JobStatus.SKIPPED, completed_steps=tuple(completed))

        result = StepResult(
            step_name=step.name,
            exit_code=execution.exit_code,
            duration_ms=execution.duration_ms,
            output=execution.output,
        )
        completed.append(result)

        if not result.ok:
            console.print_step_failure(job.name, result)
            return JobResult(
                job=job,
                status=JobStatus.FAILED,
                completed_steps=tuple(completed),
                failure_step=step.name,
            )

    return JobResult(job=job, status=JobStatus.SUCCESS, completed_steps=tuple(completed))


def default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


def run_jobs(
    jobs: Iterable[JobSpec],
    executor: StepExecutor,
    *,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    fail_fast: bool = False,
    repo_root: str | Path = ".",
    env: Optional[Dict[str, str]] = None,
    console: Optional[Console] = None,
) -> List[JobResult]:
    """
    Run independent jobs on a bounded worker pool.

    Results come back in completion order. Every job yields exactly one
    terminal result, including jobs that never started because the run was
    cancelled (Ctrl-C, or the first failure when fail_fast is on).
    """
    jobs = list(jobs)
    console = console or get_console()
    cancel = cancel if cancel is not None else threading.Event()
    if max_workers is None:
        max_workers = default_workers()

    def task(job: JobSpec) -> JobResult:
        result = run_job(
            job,
            executor,
            timeout=timeout,
            cancel=cancel,
            repo_root=repo_root,
            env=env,
            console=console,
        )
        # set from the worker so its next job already sees the cancellation
        if fail_fast and result.status is JobStatus.FAILED:
            cancel.set()
        return result

    results: List[JobResult] = []
    announced = False

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        pending = {pool.submit(task, job) for job in jobs}
        while pending:
            try:
                for fut in as_completed(pending):
                    pending.discard(fut)
                    result = fut.result()
                    results.append(result)
                    console.print_job_finished(result)

                    if fail_fast and result.status is JobStatus.FAILED and not announced:
                        console.print_cancelling()
                        announced = True
            except KeyboardInterrupt:
                if not cancel.is_set():
                    console.print_cancelling()
                    cancel.set()

    return results
