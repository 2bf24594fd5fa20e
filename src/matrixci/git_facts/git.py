# git.py
# Small, focused wrapper around the Git CLI.
# The CLI uses it to default the event ref and the repository root when the
# user does not pass them; nothing else in matrixci talks to git.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero.
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Path:
    """
    Return the absolute path to the root of the current Git repository.

    Steps run relative to this directory; it is the read-only source tree
    every job of a run shares.
    """
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def current_ref(cwd: Optional[str] = None) -> str:
    """
    Return the name of the checked-out branch.

    On a detached HEAD, fall back to an exact tag at HEAD, then to the
    commit SHA, so a tag checkout still matches tag patterns.
    """
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if branch != "HEAD":
        return branch

    try:
        return "refs/tags/" + _git(["describe", "--tags", "--exact-match", "HEAD"], cwd=cwd)
    except subprocess.CalledProcessError:
        return _git(["rev-parse", "HEAD"], cwd=cwd)
