"""
Node event stream.

The controller never talks to a UI directly. It emits NodeEvents on an
EventBus; subscribers (the HTTP runner, tests, a terminal client) react to
them. The bus also keeps a bounded buffer of recent events so a browser can
poll with `since_id` the same way it polls the process log.
"""

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    LOG = "log"
    PROGRESS = "progress"
    EARNINGS_CHANGED = "earnings_changed"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    CELEBRATE = "celebrate"
    CUE = "cue"
    STATE_CHANGED = "state_changed"


@dataclass
class NodeEvent:
    """One event on the stream. Ids are strictly increasing per bus."""
    id: int
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[NodeEvent], None]


class EventBus:
    """
    Fan-out of node events plus a polling buffer.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(lambda event: print(event.type))
        bus.emit(EventType.LOG, text="hello")
        recent = bus.since(since_id=0)
    """

    def __init__(self, buffer_size: int = 1000):
        self._buffer: deque = deque(maxlen=buffer_size)
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event_type: EventType, **payload) -> NodeEvent:
        with self._lock:
            event = NodeEvent(id=next(self._ids), type=event_type, payload=payload)
            self._buffer.append(event)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # A broken subscriber must not take the job loop down with it
                logger.exception(f"Event subscriber failed on {event_type.value}")
        return event

    def since(self, since_id: Optional[int] = None, limit: int = 100) -> List[NodeEvent]:
        """Buffered events with id > since_id, most recent `limit` of them."""
        with self._lock:
            events = list(self._buffer)

        if since_id is not None and since_id > 0:
            events = [e for e in events if e.id > since_id]

        if len(events) > limit:
            events = events[-limit:]
        return events

    @property
    def latest_id(self) -> int:
        with self._lock:
            return self._buffer[-1].id if self._buffer else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)
