from typing import Callable, List, TextIO
from pydantic import ValidationError
from models.captured_event import CapturedEvent
import logging

logger = logging.getLogger(__name__)

EventCallback = Callable[[CapturedEvent], object]


class EventSource:
    """Delivers captured messages to subscribers

    The platform receiver merges multi-part messages into one body and one
    timestamp before emitting.
    """

    def __init__(self):
        self._subscribers: List[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> None:
        self._subscribers.append(callback)

    def emit(self, event: CapturedEvent) -> None:
        for callback in self._subscribers:
            callback(event)


class JsonLinesEventSource(EventSource):
    """Reads one JSON event per line, e.g. piped from the phone's SMS bridge

    Line format:
        {"sender": "MTN MoMo", "body": "...", "occurred_at": "2025-01-05T08:30:00Z", "origin_slot": 0}
    """

    def __init__(self, stream: TextIO):
        super().__init__()
        self.stream = stream

    def run(self) -> int:
        """Emit every valid line until EOF, return the number emitted"""
        emitted = 0
        for line_number, line in enumerate(self.stream, 1):
            line = line.strip()
            if not line:
                continue
            try:
                event = CapturedEvent.model_validate_json(line)
            except ValidationError as e:
                logger.warning(f"Skipping malformed event on line {line_number}: {e.error_count()} error(s)")
                continue
            self.emit(event)
            emitted += 1
        return emitted
