from __future__ import annotations

from pathlib import Path

import pytest

from trello_autopilot.agent import AgentFailure
from trello_autopilot.board import match_name
from trello_autopilot.config_loader import AutopilotSettings, PipelineConfig
from trello_autopilot.models import Board, BoardList, BugRecord, Card, Comment, Label, TestResult


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------

MUTATIONS = {"move_card", "add_comment", "add_label", "remove_label"}


class FakeBoard:
    """In-memory board gateway that records every call."""

    def __init__(self, boards=(), lists=None, cards=None, comments=None):
        self.boards = list(boards)
        self.lists = lists or {}          # board_id -> [BoardList]
        self.cards = cards or {}          # list_id -> [Card]
        self.comments = comments or {}    # card_id -> [Comment]
        self.labels: dict[str, set[str]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.closed = True

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} exploded")

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    @property
    def mutations(self):
        return [c for c in self.calls if c[0] in MUTATIONS]

    def find_board(self, name):
        self._record("find_board", name)
        return match_name(self.boards, name)

    def find_list(self, board_id, name):
        self._record("find_list", board_id, name)
        return match_name(self.lists.get(board_id, []), name)

    def get_cards(self, list_id):
        self._record("get_cards", list_id)
        return list(self.cards.get(list_id, []))

    def get_card(self, card_id):
        self._record("get_card", card_id)
        for cards in self.cards.values():
            for card in cards:
                if card.id == card_id:
                    return card
        return None

    def get_comments(self, card_id):
        self._record("get_comments", card_id)
        return list(self.comments.get(card_id, []))

    def move_card(self, card_id, list_id):
        self._record("move_card", card_id, list_id)

    def add_comment(self, card_id, text):
        self._record("add_comment", card_id, text)

    def add_label(self, card_id, board_id, label_name):
        self._record("add_label", card_id, board_id, label_name)
        self.labels.setdefault(card_id, set()).add(label_name)

    def remove_label(self, card_id, board_id, label_name):
        self._record("remove_label", card_id, board_id, label_name)
        self.labels.get(card_id, set()).discard(label_name)


class FakeAgent:
    def __init__(self, output="Fixed the null check in login()", error=None):
        self.output = output
        self.error = error
        self.calls: list[tuple[str, Path]] = []

    def invoke(self, prompt, working_dir):
        self.calls.append((prompt, working_dir))
        if self.error:
            raise AgentFailure(self.error)
        return self.output


class FakeGit:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls: list[tuple] = []

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise RuntimeError(f"git {name} failed")

    def names(self):
        return [c[0] for c in self.calls]

    def create_branch(self, name):
        self._record("create_branch", name)

    def get_diff(self):
        self._record("get_diff")
        return "1 file changed, 2 insertions(+)"

    def commit_and_push(self, branch, message):
        self._record("commit_and_push", branch, message)

    def create_pr(self, branch, title, body):
        self._record("create_pr", branch, title, body)
        return "https://github.com/org/repo/pull/42"

    def blame(self, paths):
        self._record("blame", paths)
        return "abc123 (Alice 2026-01-01) line"


class FakeTests:
    def __init__(self, passed=True, output="All tests passed"):
        self.passed = passed
        self.output = output
        self.calls: list[tuple] = []

    def run(self, repo_path, command=None):
        self.calls.append((repo_path, command))
        return TestResult(passed=self.passed, output=self.output, command=command)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_bug(id="c1", title="Test bug", labels=(), description="", comments=(), url=None) -> BugRecord:
    return BugRecord(
        id=id,
        title=title,
        description=description,
        labels=tuple(labels),
        url=url if url is not None else f"https://trello.com/c/{id}",
        comments=tuple(comments),
    )


def make_card(id, name, labels=(), desc="", list_id="l1") -> Card:
    return Card(
        id=id,
        name=name,
        desc=desc,
        id_list=list_id,
        labels=[Label(id=f"lb-{n}", name=n, color="red") for n in labels],
        url=f"https://trello.com/c/{id}",
    )


@pytest.fixture
def cutie_board():
    """Board "Cutie" with a "Bugs" list holding one critical card."""
    return FakeBoard(
        boards=[Board(id="b1", name="Cutie")],
        lists={"b1": [BoardList(id="l1", name="Bugs"), BoardList(id="l2", name="Done")]},
        cards={"l1": [make_card("c1", "Login crash", labels=["critical"], desc="App crashes on login")]},
        comments={"c1": [Comment(author="Alice", text="Happens on iOS only", timestamp="2026-01-01")]},
    )


@pytest.fixture
def settings():
    return AutopilotSettings()


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        options = {"board": "Cutie", "repo": tmp_path}
        options.update(overrides)
        return PipelineConfig(**options)
    return _make
