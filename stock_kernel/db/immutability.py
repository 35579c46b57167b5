"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock ledger is the source of truth for every balance.  A movement that
is edited or deleted after the fact silently breaks

    balance.quantity_on_hand == sum(signed movements)

so corrections must always be new ADJUSTMENT movements.  This module makes
that rule hold for every write issued through SQLAlchemy.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The exception aborts the flush and the enclosing unit of work rolls back.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable            | Why
----------------|---------------------------|-----------------------------------
StockMovement   | ALWAYS (from creation)    | Ledger entries are append-only
Sku.sku_type    | ALWAYS (from creation)    | Type decides BOM and costing rules

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

Tests that need to bypass the rules:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_stock_movement_immutability(mapper, connection, target):
    """Prevent any update to a ledger entry."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockMovement",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=str(target.id),
        reason="Stock movements are append-only; post an ADJUSTMENT instead",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Prevent deletion of a ledger entry."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockMovement",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=str(target.id),
        reason="Stock movements cannot be deleted",
    )


def _check_sku_type_immutability(mapper, connection, target):
    """
    Prevent changing a SKU between RAW and FINISHED.

    Other SKU fields (name, prices, preferred vendor) remain editable.
    """
    history = get_history(target, "sku_type")
    if not history.has_changes() or not history.deleted:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Sku",
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": ["sku_type"],
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Sku",
        entity_id=str(target.id),
        reason="SKU type is fixed at creation",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after the models are importable and before any write.
    Registering twice is harmless.
    """
    from stock_kernel.models.catalog import Sku
    from stock_kernel.models.stock import StockMovement

    _safe_add_listener(StockMovement, "before_update", _check_stock_movement_immutability)
    _safe_add_listener(StockMovement, "before_delete", _check_stock_movement_delete)
    _safe_add_listener(Sku, "before_update", _check_sku_type_immutability)


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.

    This prevents errors when unregistering listeners that may not have been
    registered (e.g., in test scenarios with custom setup/teardown).
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from stock_kernel.models.catalog import Sku
    from stock_kernel.models.stock import StockMovement

    _safe_remove_listener(StockMovement, "before_update", _check_stock_movement_immutability)
    _safe_remove_listener(StockMovement, "before_delete", _check_stock_movement_delete)
    _safe_remove_listener(Sku, "before_update", _check_sku_type_immutability)
