from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidationEvent:
    """A derived view that must be refreshed because ``entity`` changed."""

    entity: str
    operation: str
    params: dict[str, Any] = field(default_factory=dict, hash=False)


InvalidationSink = Callable[[InvalidationEvent], None]


def log_sink(event: InvalidationEvent) -> None:
    logger.debug("invalidate %s/%s %s", event.entity, event.operation, event.params)


class InvalidationQueue:
    """Collect events during a unit of work; deliver them only after commit."""

    def __init__(self, sink: InvalidationSink | None = None) -> None:
        self.sink = sink or log_sink
        self._pending: list[InvalidationEvent] = []

    @property
    def pending(self) -> list[InvalidationEvent]:
        return list(self._pending)

    def publish(self, entity: str, operation: str, **params: Any) -> InvalidationEvent:
        event = InvalidationEvent(entity=entity, operation=operation, params=params)
        self._pending.append(event)
        return event

    def flush(self) -> int:
        events, self._pending = self._pending, []
        for event in events:
            try:
                self.sink(event)
            except Exception:
                logger.exception("Invalidation sink failed for %s/%s", event.entity, event.operation)
        return len(events)

    def discard(self) -> None:
        self._pending.clear()
