"""
Board gateway contract.

The orchestrator only talks to a board through this capability set.
TrelloClient is the production implementation; tests substitute an
in-memory board with the same methods.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from trello_autopilot.config_loader import ConfigurationError
from trello_autopilot.models import Board, BoardList, Card, Comment


class BoardError(Exception):
    """A board API call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BoardNotFoundError(ConfigurationError):
    """The named board or list does not exist."""
    pass


@runtime_checkable
class BoardGateway(Protocol):
    def find_board(self, name: str) -> Board | None: ...

    def find_list(self, board_id: str, name: str) -> BoardList | None: ...

    def get_cards(self, list_id: str) -> list[Card]: ...

    def get_card(self, card_id: str) -> Card | None: ...

    def get_comments(self, card_id: str) -> list[Comment]: ...

    def move_card(self, card_id: str, list_id: str) -> None: ...

    def add_comment(self, card_id: str, text: str) -> None: ...

    def add_label(self, card_id: str, board_id: str, label_name: str) -> None: ...

    def remove_label(self, card_id: str, board_id: str, label_name: str) -> None: ...


def match_name(items, name: str):
    """Case-insensitive exact name match; first hit or None."""
    wanted = name.lower()
    return next((item for item in items if item.name.lower() == wanted), None)


__all__ = [
    "BoardError",
    "BoardGateway",
    "BoardNotFoundError",
    "match_name",
]
