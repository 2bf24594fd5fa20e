from .aggregate import aggregate
from .config import WorkflowConfig, load_workflow
from .dsl import axis, event, on_pull_request, on_push, sh
from .matrix import expand
from .model import (
    TIMEOUT,
    Axis,
    EventDescriptor,
    EventKind,
    JobResult,
    JobSpec,
    JobStatus,
    RunResult,
    RunStatus,
    Step,
    StepResult,
    TriggerRule,
)
from .runner import run_job, run_jobs
from .trigger import matches

__all__ = [
    "aggregate", "WorkflowConfig", "load_workflow",
    "axis", "event", "on_pull_request", "on_push", "sh",
    "expand", "matches", "run_job", "run_jobs",
    "TIMEOUT", "Axis", "EventDescriptor", "EventKind", "JobResult", "JobSpec",
    "JobStatus", "RunResult", "RunStatus", "Step", "StepResult", "TriggerRule",
]
