# trigger.py
from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Sequence

from .model import EventDescriptor, EventKind, TriggerRule

BRANCH_PREFIX = "refs/heads/"
TAG_PREFIX = "refs/tags/"


def _split_ref(ref: str) -> tuple[str, bool, bool]:
    """
    Returns (name, is_branch_candidate, is_tag_candidate).

    Fully qualified refs say what they are; a bare name could be either.
    """
    if ref.startswith(BRANCH_PREFIX):
        return ref[len(BRANCH_PREFIX):], True, False
    if ref.startswith(TAG_PREFIX):
        return ref[len(TAG_PREFIX):], False, True
    return ref, True, True


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    """
    Translate a ref glob into a regex.

    `*` and `?` stay inside one path segment, `**` crosses "/":
        "feature/*"  matches feature/a, not feature/a/b
        "feature/**" matches both
    """
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out) + r"\Z")


def match_patterns(name: str, patterns: Iterable[str]) -> bool:
    """
    Glob-match `name` against ordered patterns.

    A leading "!" turns a pattern into an exclusion. The last pattern that
    matches decides, so ["release/**", "!release/old"] keeps every release
    branch except release/old.
    """
    matched = False
    for pattern in patterns:
        if pattern.startswith("!"):
            if _compile(pattern[1:]).match(name):
                matched = False
        elif _compile(pattern).match(name):
            matched = True
    return matched


def rule_matches(event: EventDescriptor, rule: TriggerRule) -> bool:
    if rule.kind is not event.kind:
        return False

    name, branch_ok, tag_ok = _split_ref(event.ref)

    if event.kind is EventKind.PULL_REQUEST:
        # No branch filter means every target branch. Tested policy, see DESIGN.md.
        if not rule.branches:
            return True
        return branch_ok and match_patterns(name, rule.branches)

    if branch_ok and match_patterns(name, rule.branches):
        return True
    if tag_ok and match_patterns(name, rule.tags):
        return True
    return False


def matches(event: EventDescriptor, rules: Sequence[TriggerRule]) -> bool:
    """True if any rule accepts the event. No rules means the run never fires."""
    return any(rule_matches(event, rule) for rule in rules)
