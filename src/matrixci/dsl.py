# dsl.py
from __future__ import annotations

from typing import Any, Iterable, Optional

from .model import Axis, EventDescriptor, EventKind, Step, TriggerRule


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

def axis(name: str, *values: Any) -> Axis:
    """
    Declare a matrix axis.

    Example:
        axis("os", "ubuntu-latest", "windows-latest", "macos-latest")
    """
    return Axis(name=name, values=tuple(str(v) for v in values))


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on_push(
    branches: Optional[Iterable[str]] = None,
    tags: Optional[Iterable[str]] = None,
) -> TriggerRule:
    """on_push(branches=["main"], tags=["v*"])"""
    return TriggerRule(kind=EventKind.PUSH, branches=tuple(branches or ()), tags=tuple(tags or ()))


def on_pull_request(branches: Optional[Iterable[str]] = None) -> TriggerRule:
    """No branches means every target branch."""
    return TriggerRule(kind=EventKind.PULL_REQUEST, branches=tuple(branches or ()))


def event(kind: str | EventKind, ref: str) -> EventDescriptor:
    return EventDescriptor(kind=EventKind.parse(kind), ref=ref)
