"""Kernel services: the write paths of the stock kernel."""

from stock_kernel.services.activity import (
    ActivitySink,
    InMemoryActivitySink,
    LoggingActivitySink,
)
from stock_kernel.services.allocation_service import AllocationService
from stock_kernel.services.availability_service import AvailabilityService
from stock_kernel.services.procurement_planner import ProcurementPlanner
from stock_kernel.services.reservation_service import ReservationService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_movement_service import StockMovementService
from stock_kernel.services.unit_of_work import UnitOfWork

__all__ = [
    "ActivitySink",
    "AllocationService",
    "AvailabilityService",
    "InMemoryActivitySink",
    "LoggingActivitySink",
    "ProcurementPlanner",
    "ReservationService",
    "SequenceService",
    "StockMovementService",
    "UnitOfWork",
]
