"""
Shared fixtures for matrixci tests.

FakeExecutor stands in for real processes so the step runner and the
orchestrator can be tested without spawning anything.
"""

import io
import threading

import pytest

from matrixci.executor import Execution
from matrixci.model import CANCELLED
from matrixci.ui.console import Console


class FakeExecutor:
    """
    Scripted executor.

    `exit_codes` maps a command string to the exit code it "returns";
    unknown commands exit 0. Every call is recorded in `calls`.
    """

    def __init__(self, exit_codes=None, block_on=None):
        self.exit_codes = dict(exit_codes or {})
        # commands that wait for cancellation instead of finishing
        self.block_on = set(block_on or ())
        self.calls = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    def execute(self, command, *, cwd, env, timeout=None, cancel=None):
        with self._lock:
            self.calls.append((command, dict(env)))
        if command in self.block_on:
            self.started.set()
            cancel.wait(5)
            return Execution(CANCELLED, 1)
        return Execution(self.exit_codes.get(command, 0), 1, f"output of {command}")

    @property
    def commands(self):
        return [c for c, _ in self.calls]


@pytest.fixture
def fake_executor():
    return FakeExecutor


@pytest.fixture
def console():
    return Console(stream=io.StringIO(), err_stream=io.StringIO())
