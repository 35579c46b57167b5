"""
Semantic activity events emitted by the stock kernel.

The kernel does not write audit text.  It hands these structured records to
an ``ActivitySink`` (see ``stock_kernel.services.activity``) and an external
audit-log writer decides how to persist and phrase them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class InventoryEventType(str, Enum):
    """Kinds of activity the kernel reports."""

    MOVEMENT_RECORDED = "movement_recorded"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_CANCELLED = "order_cancelled"
    SHORTAGE_BLOCKED = "shortage_blocked"
    PURCHASE_ORDER_DRAFTED = "purchase_order_drafted"
    ALLOCATION_CREATED = "allocation_created"
    ALLOCATION_REMOVED = "allocation_removed"
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_RELEASED = "reservation_released"
    DELIVERY_RECORDED = "delivery_recorded"
    GOODS_RECEIVED = "goods_received"


@dataclass(frozen=True)
class InventoryEvent:
    """
    One activity record.

    ``entity_type`` / ``entity_id`` point at the primary record touched;
    ``data`` holds the structured details (quantities as strings).
    """

    event_type: InventoryEventType
    company_id: UUID
    entity_type: str
    entity_id: UUID
    occurred_at: datetime
    actor_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def as_log_fields(self) -> dict[str, Any]:
        """Flatten for a structured log line."""
        return {
            "event_type": self.event_type.value,
            "company_id": str(self.company_id),
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "occurred_at": self.occurred_at.isoformat(),
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "data": self.data,
        }
