# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class MatrixCIError(Exception):
    """Base class for every error matrixci raises on purpose."""


# ----------------------------------------------------------------------
# Configuration (fatal, raised before any job is scheduled)
# ----------------------------------------------------------------------

class ConfigurationError(MatrixCIError):
    """The workflow definition cannot be turned into a run."""


class EmptyAxisError(ConfigurationError):
    def __init__(self, axis: str):
        self.axis = axis
        super().__init__(f"Matrix axis '{axis}' has no values")


class UnsupportedEventKind(ConfigurationError):
    def __init__(self, kind: object):
        self.kind = kind
        super().__init__(
            f"Unsupported event kind {kind!r} (expected 'push' or 'pull_request')"
        )


class InvalidConfigError(ConfigurationError):
    """Structural problem in a workflow file (wrong type, missing key, ...)."""


class WorkflowNotFoundError(ConfigurationError):
    pass


class UnsupportedConfigFormatError(ConfigurationError):
    pass


# ----------------------------------------------------------------------
# Execution (recovered locally into a Failed JobResult)
# ----------------------------------------------------------------------

@dataclass
class StepExecutionError(MatrixCIError):
    """
    Describes a failed step: non-zero exit or timeout.

    The step runner never raises this; it is built from a Failed JobResult
    so the CLI can print the same structured message for every failure.
    """
    job: str
    step: str
    exit_code: int | str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"[{self.job}] step '{self.step}' failed (exit={self.exit_code})"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Orchestration bugs
# ----------------------------------------------------------------------

class AggregationInconsistency(MatrixCIError):
    """A job result is missing, duplicated, or belongs to no expected job."""
