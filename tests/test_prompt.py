from conftest import make_bug

from trello_autopilot.models import Comment
from trello_autopilot.prompt import build_prompt


def test_builds_prompt_from_bug():
    bug = make_bug(
        title="Crash on save",
        description="Segfault when saving",
        labels=["bug"],
        comments=[Comment(author="Bob", text="Reproducible 100%")],
    )
    prompt = build_prompt(bug)
    assert prompt == (
        "Fix this bug: Crash on save\n"
        "\nDescription:\nSegfault when saving\n"
        "\nLabels: bug\n"
        "\nComments:\n"
        "- Bob: Reproducible 100%"
    )


def test_omits_missing_sections():
    prompt = build_prompt(make_bug(title="Just a title"))
    assert prompt == "Fix this bug: Just a title"
    assert "Labels:" not in prompt
    assert "Description:" not in prompt
    assert "Comments:" not in prompt


def test_comments_keep_board_order():
    bug = make_bug(comments=[
        Comment(author="Alice", text="first"),
        Comment(author="Bob", text="second"),
    ])
    prompt = build_prompt(bug)
    assert prompt.index("- Alice: first") < prompt.index("- Bob: second")


def test_prompt_is_stable():
    bug = make_bug(labels=["high", "ui"], description="x", comments=[Comment(author="A", text="b")])
    assert build_prompt(bug) == build_prompt(bug)
