"""Lifecycle events for formgate.

Every entry operation of the form state machine emits a typed FormEvent.
Observers (audit logs, telemetry, the delivery hand-off) subscribe through
an EventEmitter. Events never carry field values or tokens.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import json
import logging

from dateutil.parser import isoparse

from .types import EventType, SessionStage


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormEvent:
    """A single event in a form session's lifecycle.

    Attributes:
        event_id: Unique event identifier (e.g., "evt_3f9c...")
        type: Event type from EventType enum
        form_name: Name of the form this event relates to
        ts: UTC timestamp when the event occurred
        stage: Session stage after this event
        payload: Optional event-specific data (e.g., failure code, failed fields)

    Examples:
        >>> from datetime import datetime, timezone
        >>> event = FormEvent(
        ...     event_id="evt_001",
        ...     type=EventType.FORM_INITIALIZED,
        ...     form_name="contact",
        ...     ts=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ...     stage=SessionStage.INITIALIZED,
        ... )
        >>> event.to_dict()["type"]
        'form.initialized'
    """
    event_id: str
    type: EventType
    form_name: str
    ts: datetime
    stage: SessionStage
    payload: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        """Normalize string enum values."""
        if isinstance(self.type, str) and not isinstance(self.type, EventType):
            object.__setattr__(self, "type", EventType(self.type))
        if isinstance(self.stage, str) and not isinstance(self.stage, SessionStage):
            object.__setattr__(self, "stage", SessionStage(self.stage))

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization.

        Timestamp is formatted as ISO 8601 string.
        """
        result: Dict[str, Any] = {
            "eventId": self.event_id,
            "type": self.type.value,
            "formName": self.form_name,
            "ts": self.ts.isoformat(),
            "stage": self.stage.value,
        }
        if self.payload is not None:
            result["payload"] = self.payload
        return result

    def to_jsonl(self) -> str:
        """Convert event to a single line of JSON."""
        return json.dumps(self.to_dict(), separators=(',', ':'))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormEvent":
        """Create FormEvent from dictionary (camelCase keys)."""
        return cls(
            event_id=data["eventId"],
            type=EventType(data["type"]),
            form_name=data["formName"],
            ts=isoparse(data["ts"]),
            stage=SessionStage(data["stage"]),
            payload=data.get("payload"),
        )


EventListener = Callable[[FormEvent], None]
"""Type alias for event listener callbacks.

Listeners are called synchronously when events are emitted and should not
perform long-running operations.
"""


class EventEmitter:
    """Dispatches form events to subscribed listeners.

    - Type-specific subscriptions (listen to specific event types)
    - Wildcard subscriptions (listen to all events)
    - Synchronous dispatch (listeners called in registration order)
    - Error isolation (a failing listener is logged and skipped)

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on(EventType.VALIDATION_FAILED, seen.append)
        >>> emitter.listener_count(EventType.VALIDATION_FAILED)
        1
    """

    def __init__(self):
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Subscribe to a specific event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        """Subscribe to all event types."""
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Unsubscribe from a specific event type; unknown listeners are ignored."""
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        """Unsubscribe from the wildcard subscription; unknown listeners are ignored."""
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: FormEvent) -> None:
        """Dispatch an event to all registered listeners.

        Type-specific listeners run first, then wildcard listeners. A listener
        that raises is logged with its traceback and the remaining listeners
        still run.
        """
        for listener in self._listeners.get(event.type, []) + self._any_listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Event listener failed",
                    extra={"event_type": event.type.value, "form": event.form_name},
                )

    def clear(self) -> None:
        """Remove all event listeners."""
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count listeners for one type, or all listeners (wildcard included) when None."""
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(ls) for ls in self._listeners.values())


__all__ = [
    "FormEvent",
    "EventListener",
    "EventEmitter",
]
