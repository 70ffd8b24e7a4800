"""
Trello REST client: a thin wrapper over the Trello v1 API.

Authentication rides on the key/token query parameters. Transient
failures (network errors, 429, 5xx) are retried with exponential
backoff; anything else surfaces as BoardError.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from trello_autopilot.board import BoardError, match_name
from trello_autopilot.config_loader import AutopilotSettings, trello_credentials
from trello_autopilot.models import Board, BoardList, Card, Comment, Label

CARD_FIELDS = "name,desc,idList,labels,url"


class TransientBoardError(BoardError):
    """Retryable API failure (rate limit or server error)."""
    pass


class TrelloClient:
    """Board gateway backed by api.trello.com."""

    def __init__(
        self,
        api_key: str,
        token: str,
        base_url: str = "https://api.trello.com/1",
        timeout: float = 30.0,
        max_retries: int = 3,
        label_color: str = "red",
        backoff: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.label_color = label_color
        self._auth = {"key": api_key, "token": token}
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(max(1, max_retries)),
            wait=wait_exponential(multiplier=backoff, min=backoff, max=10 * max(backoff, 0.1)),
            retry=retry_if_exception_type((httpx.TransportError, TransientBoardError)),
            reraise=True,
        )

    @classmethod
    def from_settings(cls, settings: AutopilotSettings) -> "TrelloClient":
        api_key, token = trello_credentials()
        return cls(
            api_key=api_key,
            token=token,
            base_url=settings.trello.base_url,
            timeout=settings.trello.timeout,
            max_retries=settings.trello.max_retries,
            label_color=settings.trello.label_color,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "TrelloClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            return self._retrying(self._send, method, path, params or {})
        except httpx.HTTPError as e:
            raise BoardError(f"Trello API unreachable: {method} {path}: {e}") from e

    def _send(self, method: str, path: str, params: dict[str, Any]) -> Any:
        response = self._http.request(method, path, params={**params, **self._auth})
        if response.status_code == 429 or response.status_code >= 500:
            logger.debug(f"[TRELLO] {method} {path} -> {response.status_code}, retrying")
            raise TransientBoardError(f"Trello API {response.status_code}: {response.text}", response.status_code)
        if response.is_error:
            raise BoardError(f"Trello API {response.status_code}: {response.text}", response.status_code)
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_board(self, name: str) -> Board | None:
        """Find a board by name among the member's boards."""
        boards = self._request("GET", "/members/me/boards", {"fields": "name"})
        return match_name([Board(**b) for b in boards], name)

    def get_lists(self, board_id: str) -> list[BoardList]:
        lists = self._request("GET", f"/boards/{board_id}/lists", {"fields": "name"})
        return [BoardList(**item) for item in lists]

    def find_list(self, board_id: str, name: str) -> BoardList | None:
        return match_name(self.get_lists(board_id), name)

    def get_cards(self, list_id: str) -> list[Card]:
        cards = self._request("GET", f"/lists/{list_id}/cards", {"fields": CARD_FIELDS})
        return [Card.model_validate(c) for c in cards]

    def get_card(self, card_id: str) -> Card | None:
        """Fetch one card by id; None when Trello does not know the id."""
        try:
            data = self._request("GET", f"/cards/{card_id}", {"fields": CARD_FIELDS})
        except BoardError as e:
            # Trello answers 400 for malformed ids and 404 for unknown ones
            if e.status_code in (400, 404):
                return None
            raise
        return Card.model_validate(data)

    def get_comments(self, card_id: str) -> list[Comment]:
        actions = self._request(
            "GET",
            f"/cards/{card_id}/actions",
            {"filter": "commentCard", "fields": "data,memberCreator,date"},
        )
        return [
            Comment(
                author=(a.get("memberCreator") or {}).get("fullName", "unknown"),
                text=(a.get("data") or {}).get("text", ""),
                timestamp=a.get("date", ""),
            )
            for a in actions
        ]

    def get_board_labels(self, board_id: str) -> list[Label]:
        labels = self._request("GET", f"/boards/{board_id}/labels", {"fields": "name,color"})
        return [Label.model_validate(lbl) for lbl in labels]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def move_card(self, card_id: str, list_id: str) -> None:
        self._request("PUT", f"/cards/{card_id}", {"idList": list_id})

    def add_comment(self, card_id: str, text: str) -> None:
        self._request("POST", f"/cards/{card_id}/actions/comments", {"text": text})

    def add_label(self, card_id: str, board_id: str, label_name: str) -> None:
        """Attach a label by name, creating it on the board first if needed."""
        label = match_name(self.get_board_labels(board_id), label_name)
        if label is None:
            created = self._request(
                "POST",
                f"/boards/{board_id}/labels",
                {"name": label_name, "color": self.label_color},
            )
            label = Label.model_validate(created)
            logger.info(f"[TRELLO] Created label '{label_name}' on board {board_id}")
        try:
            self._request("POST", f"/cards/{card_id}/idLabels", {"value": label.id})
        except BoardError as e:
            # Trello rejects attaching a label the card already carries
            logger.debug(f"[TRELLO] Label '{label_name}' not attached to {card_id}: {e}")

    def remove_label(self, card_id: str, board_id: str, label_name: str) -> None:
        label = match_name(self.get_board_labels(board_id), label_name)
        if label is None:
            return
        try:
            self._request("DELETE", f"/cards/{card_id}/idLabels/{label.id}")
        except BoardError as e:
            logger.debug(f"[TRELLO] Label '{label_name}' not on {card_id}: {e}")
