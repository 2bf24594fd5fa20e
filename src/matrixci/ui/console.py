"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional

from ..errors import StepExecutionError
from ..model import JobResult, JobSpec, JobStatus, RunResult, StepResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None, err_stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Where regular output goes (defaults to sys.stdout at call time)
            err_stream: Where errors go (defaults to sys.stderr at call time)
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream
        # jobs report from worker threads; keep each message block whole
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        if err:
            stream = self._err_stream or sys.stderr
        else:
            stream = self._stream or sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)
            stream.flush()

    def print_run_started(
        self,
        workflow: str,
        event: str,
        ref: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED",
            f"Workflow: {workflow}",
            f"Event: {event} ({ref})",
            f"Jobs: {job_count}",
            "",
        )

    def print_not_triggered(self, event: str, ref: str) -> None:
        self._out(f"No trigger matches {event} ({ref}); nothing to run.")

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        self._out(f"JOB STARTED: {name}")

    def print_step(self, job: str, step: str) -> None:
        """Print step start message."""
        self._out(f"[{job}] ▶ {step}")

    def print_step_failure(self, job: str, result: StepResult) -> None:
        """
        Print a failed step with its exit code and the tail of its output.

        In non-debug mode only the last few output lines are shown.
        """
        error = StepExecutionError(
            job=job,
            step=result.step_name,
            exit_code=result.exit_code,
            details={"duration": f"{result.duration_ms}ms"},
        )
        lines = str(error).splitlines()
        if result.timed_out:
            lines.append("Hint: the step exceeded its timeout (see --timeout / 'timeout:')")
        output = result.output.rstrip()
        if output:
            out_lines = output.splitlines()
            if not self.debug:
                out_lines = out_lines[-20:]
            lines.extend(f"  | {line}" for line in out_lines)
        self._out(*lines)

    def print_job_finished(self, result: JobResult) -> None:
        name = result.job.name
        if result.status is JobStatus.SUCCESS:
            self._out(f"✓ {name}")
        elif result.status is JobStatus.FAILED:
            failed = result.failed_step_result
            exit_code = failed.exit_code if failed else "?"
            self._out(f"✗ {name} (failed at '{result.failure_step}', exit={exit_code})")
        else:
            self._out(f"⏭ {name} (skipped)")

    def print_cancelling(self) -> None:
        self._out("\nCancelling run: stopping in-flight steps...", err=True)

    def print_plan(self, jobs: Iterable[JobSpec]) -> None:
        """Print the expanded job list (dry run)."""
        jobs = list(jobs)
        lines = [f"\nPLAN ({len(jobs)} job(s))"]
        for job in jobs:
            lines.append(f"  {job.name}")
            for key, value in job.matrix:
                lines.append(f"    {key}={value}")
            for idx, step in enumerate(job.steps, 1):
                lines.append(f"    {idx}. {step.name}: {step.run}")
        self._out(*lines)

    def print_results(self, run: RunResult) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for result in run.job_results:
            status = result.status.value.upper()
            if result.failure_step:
                status = f"{status} at '{result.failure_step}'"
            lines.append(f"  {result.job.name}: {status}")
        lines.append(f"\nRUN {run.overall_status.value.upper()}")
        if run.failures:
            lines.append("Failed combinations:")
            for job_name, step in run.failures:
                where = f"step '{step}'" if step else "not completed"
                lines.append(f"  {job_name}: {where}")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            self._out(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip(),
                err=True,
            )
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
