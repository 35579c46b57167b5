"""
Activity sinks -- where kernel events go.

The kernel never formats or stores audit text.  It publishes structured
``InventoryEvent`` records to an ``ActivitySink``; the platform's audit-log
writer implements the protocol.  Two sinks ship here:

- ``LoggingActivitySink`` (default): one structured JSON log line per event.
- ``InMemoryActivitySink``: collects events in a list, for tests and for
  callers that forward events in batches.
"""

from typing import Protocol, runtime_checkable

from stock_kernel.domain.events import InventoryEvent, InventoryEventType
from stock_kernel.logging_config import get_logger

logger = get_logger("activity")


@runtime_checkable
class ActivitySink(Protocol):
    def publish(self, event: InventoryEvent) -> None:
        ...


class LoggingActivitySink:
    """Publish each event as an ``inventory_activity`` log record."""

    def publish(self, event: InventoryEvent) -> None:
        logger.info("inventory_activity", extra=event.as_log_fields())


class InMemoryActivitySink:
    """Keeps published events in order."""

    def __init__(self):
        self.events: list[InventoryEvent] = []

    def publish(self, event: InventoryEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: InventoryEventType) -> list[InventoryEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()
