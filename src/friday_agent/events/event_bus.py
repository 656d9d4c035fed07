import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ACTIVITY_THINKING = "thinking"
ACTIVITY_TOOL_START = "tool_start"
ACTIVITY_TOOL_END = "tool_end"
ACTIVITY_ADVISOR_START = "advisor_start"
ACTIVITY_ADVISOR_END = "advisor_end"
ACTIVITY_CONTEXT_GATHERING = "context_gathering"
ACTIVITY_PHASE_CHANGE = "phase_change"

PHASE_PLANNING = "planning"
PHASE_WRITING = "writing"
PHASE_COMPLETED = "completed"


@dataclass(frozen=True)
class ActivityEvent:
    event_type: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[ActivityEvent], None]


class ActivityBus:
    """Fan-out of agent activity to presentation sinks.

    A failing subscriber is logged and skipped; it never interrupts the run.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event_type: str, message: str = "", **details: Any) -> ActivityEvent:
        event = ActivityEvent(event_type=event_type, message=message, details=dict(details))
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("activity subscriber failed for %s", event_type)
        return event
