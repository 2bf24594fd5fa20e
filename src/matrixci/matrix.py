# matrix.py
from __future__ import annotations

import re
from itertools import product
from typing import Dict, Iterable, List, Sequence

from .errors import ConfigurationError, EmptyAxisError
from .model import Axis, JobSpec, Step


def _validate(axes: Sequence[Axis]) -> None:
    seen: set[str] = set()
    for axis in axes:
        if axis.name in seen:
            raise ConfigurationError(f"Duplicate matrix axis: {axis.name!r}")
        seen.add(axis.name)

        if not axis.values:
            raise EmptyAxisError(axis.name)

        values = list(axis.values)
        if len(set(values)) != len(values):
            dupes = sorted({v for v in values if values.count(v) > 1})
            raise ConfigurationError(f"Matrix axis '{axis.name}' has duplicate values: {dupes}")


def expand(
    axes: Sequence[Axis],
    steps: Iterable[Step] = (),
    workflow: str = "job",
) -> List[JobSpec]:
    """
    Expand axes into one JobSpec per combination.

    Axis order and value order are preserved; the first axis varies slowest:
        os=[a, b], py=[1, 2] -> (a, 1), (a, 2), (b, 1), (b, 2)

    Every job gets the same step tuple. No axes yields a single job.
    """
    axes = list(axes)
    _validate(axes)
    steps_t = tuple(steps)

    names = [a.name for a in axes]
    return [
        JobSpec(matrix=tuple(zip(names, combo)), steps=steps_t, workflow=workflow)
        for combo in product(*(a.values for a in axes))
    ]


def job_count(axes: Sequence[Axis]) -> int:
    n = 1
    for axis in axes:
        n *= len(axis.values)
    return n


_ENV_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def job_env(job: JobSpec) -> Dict[str, str]:
    """
    Environment variables describing a job's combination.

    {"os": "ubuntu-latest"} -> {"MATRIX_OS": "ubuntu-latest"}

    Steps read these from their shell; the command string itself is never
    rewritten.
    """
    return {
        f"MATRIX_{_ENV_UNSAFE.sub('_', name).upper()}": value
        for name, value in job.matrix
    }
