from __future__ import annotations

import json
import logging
from typing import Iterable, Optional, Protocol

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession

from domain.events import DomainEvent

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def publish(self, event: DomainEvent) -> None: ...


class LoggingEventSink:
    """Emit events as JSON lines to the `onboarding.events` logger."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self._logger = logger or logging.getLogger("onboarding.events")
        self._level = level

    def publish(self, event: DomainEvent) -> None:
        self._logger.log(self._level, json.dumps(event.to_message(), sort_keys=True))


class TransactionalEventSink:
    """Hold events until the session commits, then hand them to `target`; a rollback drops them."""

    def __init__(self, session: AsyncSession, target: EventSink):
        self._target = target
        self.pending: list[DomainEvent] = []
        sa_event.listen(session.sync_session, "after_commit", self._flush)
        sa_event.listen(session.sync_session, "after_rollback", self._discard)

    def publish(self, event: DomainEvent) -> None:
        self.pending.append(event)

    def _flush(self, _session) -> None:
        events, self.pending = self.pending, []
        publish_all(self._target, events)

    def _discard(self, _session) -> None:
        if self.pending:
            logger.info("Dropped %d unpublished events after rollback", len(self.pending))
        self.pending = []


class InMemoryEventSink:
    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def clear(self) -> None:
        self.events.clear()


def publish_all(sink: EventSink, events: Iterable[DomainEvent]) -> int:
    count = 0
    for event in events:
        sink.publish(event)
        count += 1
    return count
