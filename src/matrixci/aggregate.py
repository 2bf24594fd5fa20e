# aggregate.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from .errors import AggregationInconsistency
from .model import JobResult, JobSpec, JobStatus, RunResult, RunStatus


def aggregate(
    results: Iterable[JobResult],
    expected: Optional[Sequence[JobSpec]] = None,
) -> RunResult:
    """
    Reduce per-job results to one run status.

    SUCCESS iff every job succeeded; arrival order never matters. When
    `expected` is given, every expected job must have exactly one result.
    """
    by_key: Dict[tuple, JobResult] = {}
    for result in results:
        key = result.job.key
        if key in by_key:
            raise AggregationInconsistency(f"Duplicate result for job '{result.job.name}'")
        by_key[key] = result

    if expected is not None:
        expected_keys = [job.key for job in expected]
        unknown = sorted(by_key[k].job.name for k in by_key.keys() - set(expected_keys))
        if unknown:
            raise AggregationInconsistency(f"Results for unexpected jobs: {unknown}")
        missing = [job.name for job in expected if job.key not in by_key]
        if missing:
            raise AggregationInconsistency(f"No result for jobs: {missing}")
        ordered: List[JobResult] = [by_key[k] for k in expected_keys]
    else:
        ordered = sorted(by_key.values(), key=lambda r: r.job.name)

    ok = all(r.status is JobStatus.SUCCESS for r in ordered)
    failures = tuple(
        (r.job.name, r.failure_step) for r in ordered if r.status is not JobStatus.SUCCESS
    )

    return RunResult(
        job_results=tuple(ordered),
        overall_status=RunStatus.SUCCESS if ok else RunStatus.FAILED,
        failures=failures,
    )
