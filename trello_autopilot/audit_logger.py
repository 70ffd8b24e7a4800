from pathlib import Path

from loguru import logger

from trello_autopilot.event_bus import AutopilotEvent, EventBus


class RunLog:
    """
    Subscribes to an EventBus and appends every event to a JSONL file.
    """

    def __init__(self, file_path: Path, event_bus: EventBus):
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        event_bus.subscribe(self.log_event)

    def log_event(self, event: AutopilotEvent) -> None:
        try:
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write(event.model_dump_json() + "\n")
        except OSError as e:
            logger.warning(f"[RUNLOG] Could not write {self.file_path}: {e}")
