import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field


class AutopilotEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    card_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class EventBus:
    """A lightweight, synchronous event bus for pipeline observability."""

    def __init__(self):
        self._subscribers: List[Callable[[AutopilotEvent], None]] = []

    def subscribe(self, callback: Callable[[AutopilotEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def emit(self, event_type: str, card_id: Optional[str] = None, payload: Optional[Dict[str, Any]] = None) -> AutopilotEvent:
        """Construct and broadcast an AutopilotEvent to all subscribers."""
        event = AutopilotEvent(
            event_type=event_type,
            card_id=card_id,
            payload=payload or {},
        )

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                # A broken subscriber must never stop the pipeline
                logger.debug(f"[EVENTS] Subscriber failed on {event_type}: {e}")
        return event
