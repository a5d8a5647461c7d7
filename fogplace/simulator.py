from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fogplace.errors import RoutingError

logger = logging.getLogger(__name__)


class EventTag(Enum):
    MESSAGE_ARRIVAL = "message_arrival"
    PROCESS_PLACEMENT = "process_placement"
    PLACEMENT_DECISION = "placement_decision"
    INSTALL_NOTIFICATION = "install_notification"
    EXECUTION_TIMEOUT = "execution_timeout"
    MODULE_UNINSTALL = "module_uninstall"


@dataclass(order=True)
class Event:
    time: float
    seq: int
    destination: int = field(compare=False)
    tag: EventTag = field(compare=False)
    payload: Any = field(compare=False, default=None)
    source: Optional[int] = field(compare=False, default=None)


Handler = Callable[[Event], None]


class EventScheduler:
    """Single virtual-time event queue shared by every simulated entity.

    Events at the same time run in the order they were scheduled. A
    handler runs to completion before the next event is popped.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.clock = 0.0
        self._seq = 0
        self.events: List[Event] = []
        self.handlers: Dict[int, Handler] = {}
        self.processed = 0
        self._message_ids = itertools.count(1)

    def register(self, entity_id: int, handler: Handler) -> None:
        self.handlers[entity_id] = handler

    def now(self) -> float:
        return self.clock

    def schedule(
        self,
        destination: int,
        delay: float,
        tag: EventTag,
        payload: Any = None,
        source: Optional[int] = None,
    ) -> Event:
        if delay < 0:
            raise ValueError(f"Cannot schedule into the past (delay={delay})")
        event = Event(
            time=self.clock + delay,
            seq=self._seq,
            destination=destination,
            tag=tag,
            payload=payload,
            source=source,
        )
        self._seq += 1
        heapq.heappush(self.events, event)
        return event

    def next_message_id(self) -> int:
        return next(self._message_ids)

    def run(self, until: Optional[float] = None) -> int:
        """Process events in time order; stop before any event later than ``until``."""
        count = 0
        while self.events:
            if until is not None and self.events[0].time > until:
                break
            event = heapq.heappop(self.events)
            self.clock = event.time
            handler = self.handlers.get(event.destination)
            if handler is None:
                raise RoutingError(f"No entity registered with id {event.destination}")
            handler(event)
            count += 1
        self.processed += count
        if until is not None and until > self.clock:
            self.clock = until
        return count
