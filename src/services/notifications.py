"""
Notification dispatch for workflow events

The engine only emits events; delivery (email, in-app) belongs to the
subscribers. Emission is fire-and-forget: a failing subscriber is logged
and never reaches the caller.
"""
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, dict[str, Any]], None]

TRANSITION_COMPLETED = "transition.completed"
DECISION_RECORDED = "decision.recorded"
ALERT_RAISED = "alert.raised"


class NotificationDispatcher:
    """In-process event fan-out to registered delivery adapters"""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(
            f"Workflow event {event_type}",
            extra={"event_type": event_type, "application_id": payload.get("application_id")},
        )
        for subscriber in list(self._subscribers):
            try:
                subscriber(event_type, payload)
            except Exception as e:
                logger.error(f"Notification subscriber failed for {event_type}: {e}")


# Singleton
notification_dispatcher = NotificationDispatcher()
