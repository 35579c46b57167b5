"""
Value objects exchanged between the stock kernel and its callers.

All are frozen dataclasses holding plain data (UUIDs, Decimals, strings) so
they can cross the service boundary without dragging ORM state along.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

ZERO = Decimal("0")


@dataclass(frozen=True)
class MovementReference:
    """What caused a movement (e.g. a purchase order receipt)."""

    reference_type: str
    reference_id: str
    notes: str | None = None


@dataclass(frozen=True)
class DemandLine:
    """
    One line of demand fed to the availability calculator.

    ``id`` is the sales order line id when the demand comes from an order;
    reservations are keyed by it.
    """

    id: UUID
    sku_id: UUID
    quantity: Decimal
    already_delivered_qty: Decimal = ZERO

    @property
    def remaining_qty(self) -> Decimal:
        remaining = self.quantity - self.already_delivered_qty
        return remaining if remaining > 0 else ZERO


@dataclass(frozen=True)
class LineRequirement:
    """Raw material one demand line needs."""

    line_id: UUID
    sku_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class RawRequirement:
    """
    Requirement and availability of one raw SKU across the whole batch.

    ``available_qty = max(on_hand_qty - reserved_qty, 0)`` and
    ``shortage_qty = max(required_qty - available_qty, 0)``.
    """

    sku_id: UUID
    required_qty: Decimal
    on_hand_qty: Decimal
    reserved_qty: Decimal
    available_qty: Decimal
    shortage_qty: Decimal


@dataclass(frozen=True)
class AvailabilityReport:
    """
    Result of ``compute_availability``.

    ``requirements`` is ordered by SKU id so two reports over the same
    state compare equal.
    """

    company_id: UUID
    requirements: tuple[RawRequirement, ...] = ()
    line_requirements: tuple[LineRequirement, ...] = ()
    excluded_line_ids: frozenset[UUID] = field(default_factory=frozenset)

    @property
    def has_shortage(self) -> bool:
        return any(r.shortage_qty > 0 for r in self.requirements)

    @property
    def shortages(self) -> dict[UUID, Decimal]:
        return {r.sku_id: r.shortage_qty for r in self.requirements if r.shortage_qty > 0}

    @property
    def total_shortage(self) -> Decimal:
        return sum((r.shortage_qty for r in self.requirements), ZERO)

    def requirement_for(self, sku_id: UUID) -> RawRequirement | None:
        for requirement in self.requirements:
            if requirement.sku_id == sku_id:
                return requirement
        return None

    def needs_by_line(self) -> dict[UUID, dict[UUID, Decimal]]:
        result: dict[UUID, dict[UUID, Decimal]] = {}
        for need in self.line_requirements:
            per_sku = result.setdefault(need.line_id, {})
            per_sku[need.sku_id] = per_sku.get(need.sku_id, ZERO) + need.quantity
        return result


@dataclass(frozen=True)
class PlannedPurchaseLine:
    """One raw SKU the planner intends to buy."""

    sku_id: UUID
    sku_code: str
    vendor_id: UUID | None
    quantity: Decimal
    unit_price: Decimal
    shortage_qty: Decimal
    open_supply_qty: Decimal = ZERO

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class VendorGroup:
    """Planned lines that will land on one purchase order."""

    vendor_id: UUID | None
    vendor_code: str | None
    lines: tuple[PlannedPurchaseLine, ...]

    @property
    def total_amount(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


@dataclass(frozen=True)
class ProcurementPlan:
    """Read-only preview of what ``auto_draft_purchase_orders`` would create."""

    company_id: UUID
    sales_order_id: UUID
    groups: tuple[VendorGroup, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.groups

    @property
    def lines(self) -> tuple[PlannedPurchaseLine, ...]:
        return tuple(line for group in self.groups for line in group.lines)
