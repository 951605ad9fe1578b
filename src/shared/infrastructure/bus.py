"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Dict, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus.

    Handlers run synchronously in subscription order.  A failing handler
    does not stop the others; the failure is logged and re-raised once all
    handlers had their turn so callers (e.g. the outbox relay) can record it.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        errors: List[Exception] = []
        for handler in self._handlers.get(type(event), []):
            try:
                handler.handle(event)
            except Exception as exc:
                logger.error(
                    "event_bus.handler_failed",
                    event_name=event.event_name,
                    handler=type(handler).__name__,
                    exc_info=True,
                )
                errors.append(exc)
        if errors:
            raise errors[0]


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
