# executor.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

from .model import CANCELLED, TIMEOUT, ExitCode

# Keep the tail of step output for failure reports.
OUTPUT_TAIL = 4000

# Exit code recorded when the step cannot even be started.
NOT_RUNNABLE = 127


@dataclass(frozen=True)
class Execution:
    """What an executor reports for one command."""
    exit_code: ExitCode
    duration_ms: int
    output: str = ""


class StepExecutor(Protocol):
    """
    The only boundary between matrixci and the outside world.

    Implementations run `command` and report its exit code and duration.
    They must return CANCELLED promptly once `cancel` is set and TIMEOUT
    once `timeout` seconds have elapsed.
    """

    def execute(
        self,
        command: str,
        *,
        cwd: Path,
        env: Dict[str, str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Execution:
        ...


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class SubprocessExecutor:
    """Runs step commands through the shell, one process per call."""

    def __init__(self, *, poll_interval: float = 0.1, kill_grace: float = 5.0):
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    def execute(
        self,
        command: str,
        *,
        cwd: Path,
        env: Dict[str, str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Execution:
        start = time.monotonic()

        if not Path(cwd).is_dir():
            return Execution(NOT_RUNNABLE, _elapsed_ms(start), f"working directory not found: {cwd}")

        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=str(cwd),
            env=env,
            text=True,
            encoding="utf-8",
            # step output is not guaranteed to be UTF-8
            errors="replace",
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            # own process group so the whole shell pipeline can be signalled
            start_new_session=(os.name == "posix"),
        )

        deadline = None if timeout is None else start + timeout
        while True:
            wait = self.poll_interval
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - time.monotonic()))
            try:
                out, _ = proc.communicate(timeout=wait)
                return Execution(proc.returncode, _elapsed_ms(start), (out or "")[-OUTPUT_TAIL:])
            except subprocess.TimeoutExpired:
                pass

            if cancel is not None and cancel.is_set():
                out = self._stop(proc, graceful=True)
                return Execution(CANCELLED, _elapsed_ms(start), out)

            if deadline is not None and time.monotonic() >= deadline:
                out = self._stop(proc, graceful=False)
                return Execution(TIMEOUT, _elapsed_ms(start), out)

    def _signal(self, proc: subprocess.Popen, sig: int) -> None:
        try:
            if os.name == "posix":
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except ProcessLookupError:
            pass

    def _stop(self, proc: subprocess.Popen, *, graceful: bool) -> str:
        """Terminate (or kill) the process and collect whatever it printed."""
        kill_sig = getattr(signal, "SIGKILL", signal.SIGTERM)
        if graceful:
            self._signal(proc, signal.SIGTERM)
            try:
                out, _ = proc.communicate(timeout=self.kill_grace)
                return (out or "")[-OUTPUT_TAIL:]
            except subprocess.TimeoutExpired:
                pass

        self._signal(proc, kill_sig)
        try:
            out, _ = proc.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            # grandchildren outside the group still hold the pipe open
            proc.kill()
            return ""
        return (out or "")[-OUTPUT_TAIL:]
