import os
import threading

import pytest

from matrixci import runner
from matrixci.dsl import axis, sh
from matrixci.executor import NOT_RUNNABLE, Execution, SubprocessExecutor
from matrixci.matrix import expand
from matrixci.model import CANCELLED, TIMEOUT, JobStatus
from matrixci.runner import run_job, run_jobs


STEPS = (sh("check-format", "fmt"), sh("run-tests", "test"))


def _job(steps=STEPS):
    return expand([axis("os", "ubuntu"), axis("toolchain", "stable")], steps, workflow="test")[0]


def test_all_steps_succeed(fake_executor, console):
    executor = fake_executor()
    result = run_job(_job(), executor, console=console)

    assert result.status is JobStatus.SUCCESS
    assert [s.step_name for s in result.completed_steps] == ["check-format", "run-tests"]
    assert result.failure_step is None
    assert executor.commands == ["fmt", "test"]


def test_first_failure_short_circuits(fake_executor, console):
    executor = fake_executor({"fmt": 1})
    result = run_job(_job(), executor, console=console)

    assert result.status is JobStatus.FAILED
    assert result.failure_step == "check-format"
    assert [s.step_name for s in result.completed_steps] == ["check-format"]
    assert result.completed_steps[0].exit_code == 1
    assert executor.commands == ["fmt"]

    printed = console._stream.getvalue()
    assert "[test (ubuntu, stable)] step 'check-format' failed (exit=1)" in printed
    assert "| output of fmt" in printed


def test_failure_in_the_middle_keeps_prefix(fake_executor, console):
    steps = tuple(sh(f"s{i}", f"cmd{i}") for i in range(5))
    executor = fake_executor({"cmd2": 3})
    result = run_job(_job(steps), executor, console=console)

    assert result.status is JobStatus.FAILED
    assert [s.step_name for s in result.completed_steps] == ["s0", "s1", "s2"]
    assert result.failure_step == "s2"
    assert executor.commands == ["cmd0", "cmd1", "cmd2"]


def test_timeout_is_a_failure_with_sentinel_exit_code(fake_executor, console):
    executor = fake_executor({"test": TIMEOUT})
    result = run_job(_job(), executor, console=console)

    assert result.status is JobStatus.FAILED
    assert result.failure_step == "run-tests"
    assert result.completed_steps[-1].timed_out
    assert result.completed_steps[-1].exit_code == "timeout"


def test_matrix_values_reach_step_environment(fake_executor, console):
    executor = fake_executor()
    run_job(_job(), executor, env={"CI": "true"}, console=console)

    _, env = executor.calls[0]
    assert env["MATRIX_OS"] == "ubuntu"
    assert env["MATRIX_TOOLCHAIN"] == "stable"
    assert env["CI"] == "true"


def test_cancelled_before_start_is_skipped(fake_executor, console):
    cancel = threading.Event()
    cancel.set()
    executor = fake_executor()
    result = run_job(_job(), executor, cancel=cancel, console=console)

    assert result.status is JobStatus.SKIPPED
    assert result.completed_steps == ()
    assert executor.calls == []


def test_cancelled_mid_step_is_skipped_and_stops(fake_executor, console):
    cancel = threading.Event()
    executor = fake_executor(block_on={"test"})

    def cancel_when_started():
        executor.started.wait(5)
        cancel.set()

    t = threading.Thread(target=cancel_when_started)
    t.start()
    result = run_job(_job(), executor, cancel=cancel, console=console)
    t.join()

    assert result.status is JobStatus.SKIPPED
    assert [s.step_name for s in result.completed_steps] == ["check-format"]


def test_one_failing_combination_does_not_stop_siblings(console):
    jobs = expand(
        [axis("os", "ubuntu", "windows", "macos"), axis("toolchain", "stable", "nightly")],
        STEPS,
        workflow="test",
    )

    class PerJob:
        def __init__(self):
            self.lock = threading.Lock()
            self.seen = []

        def execute(self, command, *, cwd, env, timeout=None, cancel=None):
            with self.lock:
                self.seen.append((env["MATRIX_OS"], env["MATRIX_TOOLCHAIN"], command))
            failing = env["MATRIX_OS"] == "windows" and env["MATRIX_TOOLCHAIN"] == "nightly"
            return Execution(1 if failing and command == "test" else 0, 1)

    executor = PerJob()
    results = run_jobs(jobs, executor, max_workers=3, console=console)

    assert len(results) == 6
    by_name = {r.job.name: r for r in results}
    assert by_name["test (windows, nightly)"].status is JobStatus.FAILED
    assert by_name["test (windows, nightly)"].failure_step == "run-tests"
    assert sum(r.status is JobStatus.SUCCESS for r in results) == 5
    assert len(executor.seen) == 12


def test_fail_fast_skips_jobs_not_yet_started(fake_executor, console):
    steps = (sh("only", "boom"),)
    jobs = expand([axis("n", *[str(i) for i in range(6)])], steps)
    executor = fake_executor({"boom": 1})

    results = run_jobs(jobs, executor, max_workers=1, fail_fast=True, console=console)

    statuses = [r.status for r in results]
    assert len(results) == 6
    assert statuses.count(JobStatus.FAILED) == 1
    assert statuses.count(JobStatus.SKIPPED) == 5
    assert len(executor.calls) == 1


def test_external_cancel_marks_everything_terminal(fake_executor, console):
    steps = (sh("wait", "hang"),)
    jobs = expand([axis("n", "1", "2", "3", "4")], steps)
    executor = fake_executor(block_on={"hang"})
    cancel = threading.Event()

    def cancel_when_started():
        executor.started.wait(5)
        cancel.set()

    t = threading.Thread(target=cancel_when_started)
    t.start()
    results = run_jobs(jobs, executor, max_workers=2, cancel=cancel, console=console)
    t.join()

    assert len(results) == 4
    assert all(r.status is JobStatus.SKIPPED for r in results)


def test_step_that_cannot_be_spawned_fails_the_job(console):
    class Exhausted:
        def execute(self, command, *, cwd, env, timeout=None, cancel=None):
            raise OSError(24, "Too many open files")

    result = run_job(_job(), Exhausted(), console=console)

    assert result.status is JobStatus.FAILED
    assert result.failure_step == "check-format"
    assert result.completed_steps[0].exit_code == NOT_RUNNABLE
    assert "Too many open files" in result.completed_steps[0].output


def test_finished_line_reports_exit_code_of_failed_step(fake_executor, console):
    jobs = expand([axis("n", "1")], (sh("only", "boom"),))
    run_jobs(jobs, fake_executor({"boom": 2}), max_workers=1, console=console)

    assert "failed at 'only', exit=2" in console._stream.getvalue()


@pytest.mark.skipif(os.name != "posix", reason="uses a POSIX shell")
def test_invalid_utf8_output_does_not_abort_the_run(console, tmp_path):
    jobs = expand([axis("n", "1", "2")], (sh("bytes", "printf '\\377ok\\n'"),))
    executor = SubprocessExecutor(poll_interval=0.02, kill_grace=1.0)

    results = run_jobs(jobs, executor, max_workers=2, repo_root=tmp_path, console=console)

    assert len(results) == 2
    assert all(r.status is JobStatus.SUCCESS for r in results)
    assert all("ok" in r.completed_steps[0].output for r in results)


def test_fail_fast_cancels_a_sibling_that_is_already_running(console):
    jobs = expand([axis("n", "fail", "hang")], (sh("only", "work"),))
    hang_started = threading.Event()

    class FailWhileSiblingRuns:
        def execute(self, command, *, cwd, env, timeout=None, cancel=None):
            if env["MATRIX_N"] == "hang":
                hang_started.set()
                cancel.wait(5)
                return Execution(CANCELLED if cancel.is_set() else 0, 1)
            hang_started.wait(5)
            return Execution(1, 1)

    cancel = threading.Event()
    results = run_jobs(
        jobs, FailWhileSiblingRuns(), max_workers=2, fail_fast=True, cancel=cancel, console=console
    )

    by_name = {r.job.matrix[0][1]: r for r in results}
    assert cancel.is_set()
    assert by_name["fail"].status is JobStatus.FAILED
    assert by_name["hang"].status is JobStatus.SKIPPED
    assert "Cancelling run" in console._err_stream.getvalue()


def test_ctrl_c_cancels_in_flight_and_queued_jobs(fake_executor, console, monkeypatch):
    jobs = expand([axis("n", "1", "2", "3")], (sh("wait", "hang"),))
    executor = fake_executor(block_on={"hang"})
    cancel = threading.Event()
    real_as_completed = runner.as_completed
    interrupted = []

    def interrupting(fs):
        if not interrupted:
            interrupted.append(True)
            executor.started.wait(5)
            raise KeyboardInterrupt
        return real_as_completed(fs)

    monkeypatch.setattr(runner, "as_completed", interrupting)
    results = run_jobs(jobs, executor, max_workers=2, cancel=cancel, console=console)

    assert cancel.is_set()
    assert len(results) == 3
    assert all(r.status is JobStatus.SKIPPED for r in results)
    assert "Cancelling run" in console._err_stream.getvalue()
