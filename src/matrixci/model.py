# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .errors import UnsupportedEventKind

# Exit code sentinel for a step that ran past its timeout.
TIMEOUT = "timeout"
# Exit code sentinel reported by an executor whose process was cancelled.
CANCELLED = "cancelled"

ExitCode = Union[int, str]


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"

    @classmethod
    def parse(cls, value: Union[str, "EventKind"]) -> "EventKind":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for kind in cls:
                if kind.value == normalized:
                    return kind
        raise UnsupportedEventKind(value)


class JobStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class EventDescriptor:
    """The event that may start a run: a push to a ref, or a pull request into a branch."""
    kind: EventKind
    ref: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EventKind.parse(self.kind))


@dataclass(frozen=True)
class TriggerRule:
    kind: EventKind
    branches: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EventKind.parse(self.kind))
        object.__setattr__(self, "branches", tuple(self.branches))
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass(frozen=True)
class Axis:
    """A named matrix dimension, e.g. Axis("os", ("ubuntu-latest", "macos-latest"))."""
    name: str
    values: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(str(v) for v in self.values))


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a job."""
    name: str
    run: str
    cwd: str | None = None


@dataclass(frozen=True)
class JobSpec:
    """
    One matrix combination plus the shared step list.

    `matrix` keeps the assignment as ordered (axis, value) pairs so the job
    stays hashable and its axis order matches the declaration order.
    """
    matrix: Tuple[Tuple[str, str], ...]
    steps: Tuple[Step, ...]
    workflow: str = "job"

    @property
    def assignment(self) -> Dict[str, str]:
        return dict(self.matrix)

    @property
    def key(self) -> Tuple[Tuple[str, str], ...]:
        return self.matrix

    @property
    def name(self) -> str:
        if not self.matrix:
            return self.workflow
        return f"{self.workflow} ({', '.join(v for _, v in self.matrix)})"


@dataclass(frozen=True)
class StepResult:
    step_name: str
    exit_code: ExitCode
    duration_ms: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def timed_out(self) -> bool:
        return self.exit_code == TIMEOUT


@dataclass(frozen=True)
class JobResult:
    job: JobSpec
    status: JobStatus
    completed_steps: Tuple[StepResult, ...] = ()
    failure_step: Optional[str] = None

    @property
    def failed_step_result(self) -> Optional[StepResult]:
        if self.status is JobStatus.FAILED and self.completed_steps:
            return self.completed_steps[-1]
        return None


@dataclass(frozen=True)
class RunResult:
    job_results: Tuple[JobResult, ...]
    overall_status: RunStatus
    failures: Tuple[Tuple[str, Optional[str]], ...] = field(default=())

    @property
    def ok(self) -> bool:
        return self.overall_status is RunStatus.SUCCESS
