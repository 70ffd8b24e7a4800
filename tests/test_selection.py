from conftest import make_bug

from trello_autopilot.selection import (
    NO_PRIORITY,
    filter_by_label,
    filter_by_retry,
    get_priority,
    limit_bugs,
    priority_name,
    select_bugs,
    sort_by_priority,
)


def ids(bugs):
    return [b.id for b in bugs]


def test_sort_orders_critical_high_medium_low_none():
    bugs = [
        make_bug("low", labels=["low"]),
        make_bug("critical", labels=["critical"]),
        make_bug("none"),
        make_bug("high", labels=["high"]),
        make_bug("medium", labels=["medium"]),
    ]
    assert ids(sort_by_priority(bugs)) == ["critical", "high", "medium", "low", "none"]


def test_sort_is_stable_for_equal_ranks():
    bugs = [
        make_bug("a", labels=["high"]),
        make_bug("b"),
        make_bug("c", labels=["high"]),
        make_bug("d"),
        make_bug("e", labels=["HIGH"]),
    ]
    assert ids(sort_by_priority(bugs)) == ["a", "c", "e", "b", "d"]


def test_get_priority_ranks():
    assert get_priority(make_bug(labels=["critical"])) == 0
    assert get_priority(make_bug(labels=["low"])) == 3
    assert get_priority(make_bug(labels=["bug", "ui"])) == NO_PRIORITY
    assert get_priority(make_bug()) == 4


def test_best_priority_label_wins():
    bug = make_bug(labels=["low", "Critical"])
    assert get_priority(bug) == 0
    assert priority_name(bug) == "critical"
    assert priority_name(make_bug()) == "none"


def test_filter_by_label_is_case_insensitive_and_idempotent():
    bugs = [
        make_bug("c1", labels=["critical"]),
        make_bug("c2", labels=["low"]),
        make_bug("c3", labels=["Critical"]),
    ]
    once = filter_by_label(bugs, "critical")
    assert ids(once) == ["c1", "c3"]
    assert ids(filter_by_label(once, "CRITICAL")) == ids(once)


def test_filter_by_label_is_exact_match():
    bugs = [make_bug("c1", labels=["critical-path"])]
    assert filter_by_label(bugs, "critical") == []


def test_filter_by_retry_partitions_input():
    bugs = [
        make_bug("c1", labels=["fix-failed"]),
        make_bug("c2", labels=["bug"]),
        make_bug("c3", labels=["Needs-Human"]),
        make_bug("c4"),
    ]
    retry = filter_by_retry(bugs)
    rest = [b for b in bugs if b not in retry]
    assert ids(retry) == ["c1", "c3"]
    assert set(ids(retry)) | set(ids(rest)) == {"c1", "c2", "c3", "c4"}
    assert not set(ids(retry)) & set(ids(rest))


def test_limit_ignores_non_positive_values():
    bugs = [make_bug(str(i)) for i in range(3)]
    assert len(limit_bugs(bugs, None)) == 3
    assert len(limit_bugs(bugs, 0)) == 3
    assert len(limit_bugs(bugs, -1)) == 3
    assert ids(limit_bugs(bugs, 2)) == ["0", "1"]


def test_select_limits_after_sorting():
    bugs = [
        make_bug("low", labels=["low"]),
        make_bug("none"),
        make_bug("critical", labels=["critical"]),
    ]
    assert ids(select_bugs(bugs, limit=1)) == ["critical"]


def test_select_filters_before_limiting():
    bugs = [
        make_bug("a", labels=["critical"]),
        make_bug("b", labels=["low", "fix-failed"]),
        make_bug("c", labels=["needs-human"]),
    ]
    assert ids(select_bugs(bugs, retry=True, limit=1)) == ["b"]
    assert ids(select_bugs(bugs, retry=True, label="needs-human")) == ["c"]


def test_select_drops_duplicate_cards():
    bugs = [make_bug("a", title="first"), make_bug("b"), make_bug("a", title="again")]
    selected = select_bugs(bugs)
    assert ids(selected) == ["a", "b"]
    assert selected[0].title == "first"


def test_limit_counts_only_cards_without_skip_labels():
    bugs = [
        make_bug("a", labels=["critical", "blocked"]),
        make_bug("b", labels=["high"]),
        make_bug("c", labels=["low"]),
    ]
    assert ids(select_bugs(bugs, limit=1, skip_labels=["Blocked"])) == ["a", "b"]
    assert ids(select_bugs(bugs, limit=1)) == ["a"]
