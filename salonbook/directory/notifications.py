"""
Outbound scheduling events.

The core only emits events; delivery (in-app, email) belongs to other
services. Sinks are called synchronously after commit and a failing sink
never fails the scheduling operation that emitted the event.

The outbox keeps only the most recent events (``max_events``); it is a
debugging and test aid, not a delivery queue.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 1000


class NotificationType(str, Enum):
    NEW_BOOKING = "new_booking"
    CANCELLATION = "cancellation"
    RESCHEDULE = "reschedule"
    NO_SHOW = "no_show"


@dataclass
class NotificationEvent:
    type: NotificationType
    organization_id: str
    appointment_id: str
    staff_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationDispatcher:
    """Fire-and-forget event emitter with a bounded in-memory outbox."""

    def __init__(self, max_events: int = DEFAULT_OUTBOX_SIZE) -> None:
        self.outbox: deque[NotificationEvent] = deque(maxlen=max_events)
        self._sinks: list[Callable[[NotificationEvent], None]] = []

    def subscribe(self, sink: Callable[[NotificationEvent], None]) -> None:
        self._sinks.append(sink)

    def emit(self, event: NotificationEvent) -> None:
        self.outbox.append(event)
        logger.info(
            "Event %s for appointment %s (org %s)",
            event.type.value, event.appointment_id, event.organization_id,
        )
        for sink in self._sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Notification sink failed for %s", event.type.value)

    def events_of(self, event_type: NotificationType) -> list[NotificationEvent]:
        return [e for e in self.outbox if e.type == event_type]
