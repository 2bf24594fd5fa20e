# config.py
"""
Workflow file loading.

A workflow file is YAML or JSON with this shape:

    name: test
    on:
      push:
        branches: [main]
        tags: ["v*"]
      pull_request:
        branches:            # empty => every target branch
    matrix:
      os: [ubuntu-latest, windows-latest, macos-latest]
      toolchain: [stable, nightly]
    env:
      CARGO_TERM_COLOR: always
    steps:
      - name: check-format
        run: cargo fmt --check
      - name: run-tests
        run: cargo test
    timeout: 600
    max-parallel: 4
    fail-fast: false

The loaded WorkflowConfig is immutable and passed explicitly to whatever
needs it. Structural checks happen here; axis emptiness is left to
matrix.expand so both entry points report it the same way.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml  # PyYAML

from .dsl import axis, on_pull_request, on_push, sh
from .errors import (
    InvalidConfigError,
    UnsupportedConfigFormatError,
    WorkflowNotFoundError,
)
from .model import Axis, EventKind, Step, TriggerRule

DEFAULT_WORKFLOW_FILES = (
    "matrixci.yaml",
    "matrixci.yml",
    ".matrixci.yaml",
    ".matrixci.yml",
)


@dataclass(frozen=True)
class WorkflowConfig:
    name: str
    triggers: Tuple[TriggerRule, ...]
    axes: Tuple[Axis, ...]
    steps: Tuple[Step, ...]
    env: Dict[str, str] = field(default_factory=dict)
    step_timeout: Optional[float] = None
    max_parallel: Optional[int] = None
    fail_fast: bool = False


def find_workflow_files(directory: str | Path = ".") -> List[Path]:
    base = Path(directory)
    return [base / n for n in DEFAULT_WORKFLOW_FILES if (base / n).is_file()]


def _read(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise WorkflowNotFoundError(f"Workflow file not found: {path}")

    suffix = path.suffix.lower()
    try:
        with path.open("r", encoding="utf-8") as f:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise UnsupportedConfigFormatError(
                    f"Workflow must be .yaml, .yml or .json, got: {path.name}"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InvalidConfigError(f"Could not parse {path.name}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidConfigError(
            f"Workflow root must be a mapping, got: {type(data).__name__}"
        )
    return data


def _str_list(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
        return [str(v) for v in value]
    raise InvalidConfigError(f"'{where}' must be a string or a list of strings")


def _parse_triggers(data: Dict[str, Any]) -> Tuple[TriggerRule, ...]:
    # YAML 1.1 reads a bare `on:` key as the boolean True.
    raw = data.get("on", data.get(True))
    if raw is None:
        return ()

    # `on: pull_request` / `on: [pull_request]` shorthand (push needs filters)
    if isinstance(raw, (str, list)):
        raw = {kind: None for kind in _str_list(raw, "on")}
    if not isinstance(raw, dict):
        raise InvalidConfigError("'on' must be a mapping of event kinds")

    rules: List[TriggerRule] = []
    for kind_raw, filters in raw.items():
        kind = EventKind.parse(kind_raw)
        if filters is None:
            filters = {}
        if not isinstance(filters, dict):
            raise InvalidConfigError(f"'on.{kind_raw}' must be a mapping or empty")

        unknown = set(filters) - {"branches", "tags"}
        if unknown:
            raise InvalidConfigError(f"'on.{kind_raw}' has unknown keys: {sorted(unknown)}")

        branches = _str_list(filters.get("branches"), f"on.{kind_raw}.branches")
        if kind is EventKind.PUSH:
            tags = _str_list(filters.get("tags"), f"on.{kind_raw}.tags")
            # push rules only fire on a pattern match
            if not branches and not tags:
                raise InvalidConfigError(f"'on.{kind_raw}' needs branches or tags")
            rules.append(on_push(branches=branches, tags=tags))
        else:
            if "tags" in filters:
                raise InvalidConfigError(f"'on.{kind_raw}' does not support tags")
            rules.append(on_pull_request(branches=branches))
    return tuple(rules)


def _parse_axes(data: Dict[str, Any]) -> Tuple[Axis, ...]:
    raw = data.get("matrix") or {}
    if not isinstance(raw, dict):
        raise InvalidConfigError("'matrix' must be a mapping of axis name to values")
    axes = []
    for name, values in raw.items():
        if not isinstance(values, list):
            raise InvalidConfigError(f"'matrix.{name}' must be a list")
        axes.append(axis(str(name), *_str_list(values, f"matrix.{name}")))
    return tuple(axes)


def _parse_steps(data: Dict[str, Any]) -> Tuple[Step, ...]:
    raw = data.get("steps")
    if not isinstance(raw, list) or not raw:
        raise InvalidConfigError("'steps' must be a non-empty list")

    steps = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise InvalidConfigError(f"'steps[{idx}]' must be a mapping")
        run = item.get("run")
        if not isinstance(run, str) or not run.strip():
            raise InvalidConfigError(f"'steps[{idx}].run' must be a non-empty string")
        first_line = next(line.strip() for line in run.splitlines() if line.strip())
        name = str(item.get("name") or first_line)
        cwd = item.get("working-directory", item.get("cwd"))
        steps.append(sh(name, run, cwd=str(cwd) if cwd is not None else None))

    names = [s.name for s in steps]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise InvalidConfigError(f"Duplicate step names: {dupes}")
    return tuple(steps)


def _positive(data: Dict[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise InvalidConfigError(f"'{key}' must be a positive number")
    return kind(value)


def parse_workflow(data: Dict[str, Any], *, default_name: str = "job") -> WorkflowConfig:
    env = data.get("env") or {}
    if not isinstance(env, dict):
        raise InvalidConfigError("'env' must be a mapping")

    fail_fast = data.get("fail-fast", False)
    if not isinstance(fail_fast, bool):
        raise InvalidConfigError("'fail-fast' must be true or false")

    return WorkflowConfig(
        name=str(data.get("name") or default_name),
        triggers=_parse_triggers(data),
        axes=_parse_axes(data),
        steps=_parse_steps(data),
        env={str(k): str(v) for k, v in env.items()},
        step_timeout=_positive(data, "timeout", float),
        max_parallel=_positive(data, "max-parallel", int),
        fail_fast=fail_fast,
    )


def load_workflow(path: str | Path) -> WorkflowConfig:
    """Load and validate a workflow file (YAML or JSON)."""
    wf_path = Path(path).expanduser()
    data = _read(wf_path)
    return parse_workflow(data, default_name=wf_path.stem.lstrip("."))
