"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Calling layers (HTTP handlers, batch jobs, order screens) need to tell a
shortage apart from a missing zone without parsing message strings.  Every
error therefore:

  1. Has its own class (catch by type, not message)
  2. Carries a class-level CODE attribute (machine-readable, API-safe)
  3. Stores its context as attributes (sku_id, requested, available, ...)

Example:
    try:
        sales_orders.confirm_order(company_id, order_id)
    except ShortageError as e:
        return {"error": e.code, "shortages": e.shortages}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- BomCycleError
    |
    +-- NotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ShortageError
    |
    +-- OverAllocationError
    |
    +-- SameZoneError
    |
    +-- ConfigurationError
    |
    +-- InvalidStatusTransitionError
    |
    +-- ImmutabilityViolationError
    |
    +-- UnitOfWorkAbortedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
VALIDATION_ERROR            | Bad input shape or value (quantity <= 0, ...)
BOM_CYCLE                   | A bill of materials references itself
NOT_FOUND                   | Entity absent or outside the company scope
INSUFFICIENT_STOCK          | OUT movement would drive on-hand negative
SHORTAGE                    | Reserve attempted on a report with shortage
OVER_ALLOCATION             | Allocation would exceed a line quantity
SAME_ZONE                   | Transfer source equals destination
CONFIGURATION_ERROR         | Required typed zone missing for the company
INVALID_STATUS_TRANSITION   | Order lifecycle move not allowed
IMMUTABILITY_VIOLATION      | Update/delete of a ledger entry
UNIT_OF_WORK_ABORTED        | Inner failure was swallowed inside a unit of work

Propagation: every error is raised synchronously from the offending
operation and aborts the enclosing unit of work.  Nothing is retried here.
"""

from decimal import Decimal


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


class ValidationError(StockKernelError):
    """Input has the wrong shape or an out-of-range value."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class BomCycleError(ValidationError):
    """A bill of materials reaches back to one of its own ancestors."""

    code: str = "BOM_CYCLE"

    def __init__(self, path: list[str]):
        self.path = path
        super().__init__(
            f"Cyclic bill of materials: {' -> '.join(path)}",
            field="bom",
        )


class NotFoundError(StockKernelError):
    """Referenced entity does not exist within the company scope."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InsufficientStockError(StockKernelError):
    """An outbound movement would leave a negative on-hand balance."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        sku_id: str,
        zone_id: str,
        requested: Decimal,
        on_hand: Decimal,
    ):
        self.sku_id = sku_id
        self.zone_id = zone_id
        self.requested = str(requested)
        self.on_hand = str(on_hand)
        super().__init__(
            f"Insufficient stock in zone {zone_id} for SKU {sku_id}: "
            f"requested {requested}, on hand {on_hand}"
        )


class ShortageError(StockKernelError):
    """Raw material requirement exceeds available-to-promise."""

    code: str = "SHORTAGE"

    def __init__(self, shortages: dict[str, Decimal]):
        self.shortages = {sku_id: str(qty) for sku_id, qty in shortages.items()}
        total = sum(shortages.values(), Decimal("0"))
        super().__init__(
            f"Insufficient raw material: {len(shortages)} SKU(s) short, "
            f"total shortage {total}"
        )


class OverAllocationError(StockKernelError):
    """An allocation would push a line past its quantity."""

    code: str = "OVER_ALLOCATION"

    def __init__(
        self,
        line_type: str,
        line_id: str,
        line_quantity: Decimal,
        already_allocated: Decimal,
        requested: Decimal,
    ):
        self.line_type = line_type
        self.line_id = line_id
        self.line_quantity = str(line_quantity)
        self.already_allocated = str(already_allocated)
        self.requested = str(requested)
        super().__init__(
            f"Allocated quantity exceeds {line_type} line quantity: "
            f"{already_allocated} + {requested} > {line_quantity}"
        )


class SameZoneError(StockKernelError):
    """Transfer source and destination zones are the same."""

    code: str = "SAME_ZONE"

    def __init__(self, zone_id: str):
        self.zone_id = zone_id
        super().__init__("Source and destination zones must be different")


class ConfigurationError(StockKernelError):
    """A zone of a required operational type is missing for the company."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, company_id: str, zone_type: str):
        self.company_id = company_id
        self.zone_type = zone_type
        super().__init__(
            f"No {zone_type} zone configured for company {company_id}"
        )


class InvalidStatusTransitionError(StockKernelError):
    """Order is not in a status that permits the requested operation."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current: str, target: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(
            f"{entity_type} {entity_id} cannot move from {current} to {target}"
        )


class ImmutabilityViolationError(StockKernelError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


class UnitOfWorkAbortedError(StockKernelError):
    """
    A nested operation failed but its exception was caught by the caller.

    The unit of work is marked rollback-only when an inner block raises;
    leaving the outermost block normally afterwards raises this instead of
    committing partial work.
    """

    code: str = "UNIT_OF_WORK_ABORTED"

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"Unit of work rolled back after inner failure: {cause}")
