"""
Pure domain layer: value objects, BOM explosion, costing rules, policy,
events and the clock.  Nothing here touches the database.
"""

from stock_kernel.domain.bom import BomComponent, BomExploder
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.costing import BalanceState, apply_movement, resolve_inbound_cost
from stock_kernel.domain.dtos import (
    AvailabilityReport,
    DemandLine,
    LineRequirement,
    MovementReference,
    PlannedPurchaseLine,
    ProcurementPlan,
    RawRequirement,
    VendorGroup,
)
from stock_kernel.domain.events import InventoryEvent, InventoryEventType
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "AvailabilityReport",
    "BalanceState",
    "BomComponent",
    "BomExploder",
    "Clock",
    "DemandLine",
    "DeterministicClock",
    "Guard",
    "InventoryEvent",
    "InventoryEventType",
    "InventoryPolicy",
    "LineRequirement",
    "MovementReference",
    "PlannedPurchaseLine",
    "ProcurementPlan",
    "RawRequirement",
    "SystemClock",
    "Transition",
    "VendorGroup",
    "Workflow",
    "apply_movement",
    "resolve_inbound_cost",
]
