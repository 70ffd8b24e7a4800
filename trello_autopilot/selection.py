"""
Bug selection policy.

Pure transformations over a list of bug records. When several apply,
select_bugs() runs them in the fixed order retry -> label -> priority
sort -> limit, so a limit always means "top N eligible by priority".
"""

from __future__ import annotations

from typing import Iterable

from trello_autopilot.models import BugRecord

PRIORITY_LABELS: tuple[str, ...] = ("critical", "high", "medium", "low")
FAILURE_LABELS: tuple[str, ...] = ("fix-failed", "needs-human")

FIX_FAILED = "fix-failed"
NEEDS_HUMAN = "needs-human"

NO_PRIORITY = len(PRIORITY_LABELS)


def get_priority(bug: BugRecord) -> int:
    """Rank of the best priority label on the bug; NO_PRIORITY when none."""
    ranks = [PRIORITY_LABELS.index(name) for name in bug.label_set if name in PRIORITY_LABELS]
    return min(ranks, default=NO_PRIORITY)


def priority_name(bug: BugRecord) -> str:
    rank = get_priority(bug)
    return PRIORITY_LABELS[rank] if rank < NO_PRIORITY else "none"


def sort_by_priority(bugs: Iterable[BugRecord]) -> list[BugRecord]:
    # sorted() is stable: equal ranks keep their board order
    return sorted(bugs, key=get_priority)


def filter_by_label(bugs: Iterable[BugRecord], label: str) -> list[BugRecord]:
    return [bug for bug in bugs if bug.has_label(label)]


def filter_by_retry(bugs: Iterable[BugRecord]) -> list[BugRecord]:
    return [bug for bug in bugs if any(bug.has_label(name) for name in FAILURE_LABELS)]


def limit_bugs(
    bugs: list[BugRecord],
    limit: int | None,
    skip_labels: Iterable[str] = (),
) -> list[BugRecord]:
    """
    First `limit` eligible bugs. Bugs carrying a skip label ride along
    without using a slot, up to the point where the limit is reached.
    """
    if limit is None or limit <= 0:
        return list(bugs)

    skip = list(skip_labels)
    kept: list[BugRecord] = []
    eligible = 0
    for bug in bugs:
        if eligible >= limit:
            break
        kept.append(bug)
        if not any(bug.has_label(name) for name in skip):
            eligible += 1
    return kept


def dedupe(bugs: Iterable[BugRecord]) -> list[BugRecord]:
    seen: set[str] = set()
    unique = []
    for bug in bugs:
        if bug.id in seen:
            continue
        seen.add(bug.id)
        unique.append(bug)
    return unique


def select_bugs(
    bugs: Iterable[BugRecord],
    *,
    retry: bool = False,
    label: str | None = None,
    limit: int | None = None,
    skip_labels: Iterable[str] = (),
) -> list[BugRecord]:
    """Apply the full selection policy in its load-bearing order."""
    selected = dedupe(bugs)
    if retry:
        selected = filter_by_retry(selected)
    if label:
        selected = filter_by_label(selected, label)
    selected = sort_by_priority(selected)
    return limit_bugs(selected, limit, skip_labels)
