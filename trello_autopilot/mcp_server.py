"""
MCP tool server for trello-autopilot.

Tools: scan_bugs, fix_bug, move_card, retry_failed, get_report.
Each is a thin façade over the controller and returns JSON text.
Configuration problems come back as {"error": ...} instead of raising.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from dotenv import load_dotenv
from loguru import logger
from mcp.server.fastmcp import FastMCP

from trello_autopilot.board import BoardError, BoardGateway
from trello_autopilot.board.trello import TrelloClient
from trello_autopilot.config_loader import ConfigurationError, PipelineConfig, load_config
from trello_autopilot.controller import Controller, resolve_board, resolve_list, scan_bugs as scan_board
from trello_autopilot.identity import __version__
from trello_autopilot.selection import priority_name, select_bugs

mcp = FastMCP("trello-autopilot")


def trello_client() -> BoardGateway:
    return TrelloClient.from_settings(load_config())


# Builds the board gateway for each tool call
client_factory: Callable[[], BoardGateway] = trello_client


def _json(data: Any) -> str:
    return json.dumps(data, indent=2)


def _error(message: str) -> str:
    return json.dumps({"error": message})


@contextmanager
def _board() -> Iterator[BoardGateway]:
    client = client_factory()
    try:
        yield client
    finally:
        close = getattr(client, "close", None)
        if close:
            close()


def _run_pipeline(config: PipelineConfig) -> str:
    with _board() as client:
        controller = Controller(client, config, settings=load_config(config.repo))
        return controller.run().to_json()


@mcp.tool()
def scan_bugs(
    board: str,
    list: str = "Bugs",
    label: Optional[str] = None,
    limit: Optional[int] = None,
) -> str:
    """
    Scan a Trello board list for bug cards. Returns card details with
    comments, sorted by priority.
    """
    try:
        with _board() as client:
            bugs = scan_board(client, board, list)
    except (ConfigurationError, BoardError) as e:
        return _error(str(e))

    skip_labels = load_config().selection.skip_labels
    bugs = select_bugs(bugs, label=label, limit=limit, skip_labels=skip_labels)
    return _json([
        {
            "id": b.id,
            "name": b.title,
            "desc": b.description,
            "labels": [*b.labels],
            "url": b.url,
            "priority": priority_name(b),
            "comments": [{"author": c.author, "text": c.text, "date": c.timestamp} for c in b.comments],
        }
        for b in bugs
    ])


@mcp.tool()
def fix_bug(
    board: str,
    card_id: str,
    repo: str,
    list: str = "Bugs",
    done: str = "Done",
    dry_run: bool = False,
    agent: Optional[str] = None,
    pr: bool = False,
    test_command: Optional[str] = None,
) -> str:
    """
    Fix one bug card: invoke the coding agent, run tests, manage the git
    branch/PR, and move the card on success.
    """
    try:
        config = PipelineConfig(
            board=board, list_name=list, done_list=done, repo=repo,
            dry_run=dry_run, agent=agent, pr=pr, test_command=test_command,
            json_output=True,
        )
        with _board() as client:
            controller = Controller(client, config, settings=load_config(config.repo))
            outcome = controller.fix_card(card_id)
    except (ConfigurationError, BoardError, ValueError) as e:
        return _error(str(e))
    return outcome.model_dump_json(by_alias=True, exclude_none=True, indent=2)


@mcp.tool()
def move_card(
    card_id: str,
    board: str,
    target_list: str,
    comment: Optional[str] = None,
) -> str:
    """Move a Trello card to a different list and optionally add a comment."""
    try:
        with _board() as client:
            board_obj = resolve_board(client, board)
            target = resolve_list(client, board_obj, target_list)
            client.move_card(card_id, target.id)
            if comment:
                client.add_comment(card_id, comment)
    except (ConfigurationError, BoardError) as e:
        return _error(str(e))
    return _json({"success": True, "cardId": card_id, "movedTo": target.name})


@mcp.tool()
def retry_failed(
    board: str,
    repo: str,
    list: str = "Bugs",
    done: str = "Done",
    agent: Optional[str] = None,
    pr: bool = False,
    limit: Optional[int] = None,
) -> str:
    """Retry previously failed cards (labeled fix-failed or needs-human)."""
    try:
        config = PipelineConfig(
            board=board, list_name=list, done_list=done, repo=repo,
            agent=agent, pr=pr, limit=limit, retry=True, json_output=True,
        )
        return _run_pipeline(config)
    except (ConfigurationError, BoardError, ValueError) as e:
        return _error(str(e))


@mcp.tool()
def get_report(
    board: str,
    repo: str,
    list: str = "Bugs",
    done: str = "Done",
    agent: Optional[str] = None,
    dry_run: bool = True,
    label: Optional[str] = None,
    limit: Optional[int] = None,
) -> str:
    """
    Run autopilot on a board and return a structured report with counts
    and timing. Preview only unless dry_run is false.
    """
    try:
        config = PipelineConfig(
            board=board, list_name=list, done_list=done, repo=repo,
            agent=agent, dry_run=dry_run, label=label, limit=limit, json_output=True,
        )
        return _run_pipeline(config)
    except (ConfigurationError, BoardError, ValueError) as e:
        return _error(str(e))


def main() -> None:
    load_dotenv()
    load_dotenv(Path.home() / ".trello-autopilot" / ".env")
    logger.info(f"[MCP] trello-autopilot v{__version__} serving on stdio")
    mcp.run()


if __name__ == "__main__":
    main()
