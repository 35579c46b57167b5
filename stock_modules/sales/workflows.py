"""
Sales Order Workflows.

Lifecycle of a sales order from quote to delivery.
"""

from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.logging_config import get_logger
from stock_kernel.models.sales import SalesOrderStatus

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Every raw SKU of the order has zero shortage",
)

ALL_LINES_DELIVERED = Guard(
    name="all_lines_delivered",
    description="Every line is fully delivered and has a delivery record",
)


# -----------------------------------------------------------------------------
# Sales Order Workflow
# -----------------------------------------------------------------------------

_QUOTE = SalesOrderStatus.QUOTE.value
_CONFIRMED = SalesOrderStatus.CONFIRMED.value
_PRODUCTION = SalesOrderStatus.PRODUCTION.value
_DISPATCH = SalesOrderStatus.DISPATCH.value
_DELIVERED = SalesOrderStatus.DELIVERED.value
_CANCELLED = SalesOrderStatus.CANCELLED.value

SALES_ORDER_WORKFLOW = Workflow(
    name="sales_order",
    description="Sales order fulfilment",
    initial_state=_QUOTE,
    states=(_QUOTE, _CONFIRMED, _PRODUCTION, _DISPATCH, _DELIVERED, _CANCELLED),
    transitions=(
        Transition(_QUOTE, _CONFIRMED, action="confirm", guard=STOCK_AVAILABLE),
        Transition(_CONFIRMED, _PRODUCTION, action="start_production", moves_stock=True),
        Transition(_CONFIRMED, _DISPATCH, action="dispatch"),
        Transition(_PRODUCTION, _DISPATCH, action="dispatch"),
        Transition(
            _DISPATCH, _DELIVERED, action="deliver",
            guard=ALL_LINES_DELIVERED, moves_stock=True,
        ),
        Transition(_QUOTE, _CANCELLED, action="cancel"),
        Transition(_CONFIRMED, _CANCELLED, action="cancel"),
        Transition(_PRODUCTION, _CANCELLED, action="cancel"),
        Transition(_DISPATCH, _CANCELLED, action="cancel"),
    ),
    terminal_states=(_DELIVERED, _CANCELLED),
)
