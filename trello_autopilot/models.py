"""
Data model shared by the board gateway, the orchestrator and the report.

Gateway types (Board, BoardList, Card, Label, Comment) mirror the Trello
payloads. BugRecord is the immutable snapshot the pipeline works on;
FixOutcome and RunReport are what it hands back.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Board gateway types
# ---------------------------------------------------------------------------

class Board(_Frozen):
    id: str
    name: str


class BoardList(_Frozen):
    id: str
    name: str


class Label(_Frozen):
    id: str = ""
    name: str = ""
    color: str | None = None


class Card(_Frozen):
    id: str
    name: str
    desc: str = ""
    id_list: str = ""
    labels: list[Label] = Field(default_factory=list)
    url: str = ""


class Comment(_Frozen):
    author: str
    text: str
    timestamp: str = ""


# ---------------------------------------------------------------------------
# Pipeline types
# ---------------------------------------------------------------------------

class BugRecord(_Frozen):
    """Snapshot of one card plus its comments, fetched once per run."""

    id: str
    title: str
    description: str = ""
    labels: tuple[str, ...] = ()
    url: str = ""
    comments: tuple[Comment, ...] = ()

    @classmethod
    def from_card(cls, card: Card, comments: list[Comment]) -> "BugRecord":
        return cls(
            id=card.id,
            title=card.name,
            description=card.desc or "",
            labels=tuple(lbl.name for lbl in card.labels if lbl.name),
            url=card.url,
            comments=tuple(comments),
        )

    @property
    def label_set(self) -> frozenset[str]:
        return frozenset(name.lower() for name in self.labels)

    def has_label(self, name: str) -> bool:
        return name.lower() in self.label_set


class FixOutcome(_Frozen):
    """Result of attempting one bug. Partial progress fields survive failures."""

    bug_id: str
    bug_title: str
    succeeded: bool
    summary: str = ""
    error: str | None = None
    skipped: bool = False
    skip_reason: str | None = None
    branch_name: str | None = None
    diff_summary: str | None = None
    pull_request_url: str | None = None
    test_output: str | None = None
    blame_info: str | None = None
    duration_ms: int = 0


class RunReport(_Frozen):
    total: int
    fixed_count: int
    failed_count: int
    skipped_count: int
    duration_ms: int
    results: tuple[FixOutcome, ...] = ()

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class TestResult(_Frozen):
    __test__ = False

    passed: bool
    output: str = ""
    command: str | None = None
