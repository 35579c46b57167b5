"""
Purchase Order Workflows.

State machine for purchase orders drafted by the planner or by a buyer.
"""

from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.logging_config import get_logger
from stock_kernel.models.purchasing import PurchaseOrderStatus

logger = get_logger("modules.purchasing.workflows")


VENDOR_ASSIGNED = Guard(
    name="vendor_assigned",
    description="The order has a vendor",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every line has been received in full",
)

_DRAFT = PurchaseOrderStatus.DRAFT.value
_APPROVED = PurchaseOrderStatus.APPROVED.value
_RECEIVED = PurchaseOrderStatus.RECEIVED.value
_CLOSED = PurchaseOrderStatus.CLOSED.value
_CANCELLED = PurchaseOrderStatus.CANCELLED.value

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order approval and receiving",
    initial_state=_DRAFT,
    states=(_DRAFT, _APPROVED, _RECEIVED, _CLOSED, _CANCELLED),
    transitions=(
        Transition(_DRAFT, _APPROVED, action="approve", guard=VENDOR_ASSIGNED),
        Transition(
            _APPROVED, _RECEIVED, action="receive",
            guard=ALL_LINES_RECEIVED, moves_stock=True,
        ),
        Transition(_APPROVED, _CLOSED, action="short_close"),
        Transition(_DRAFT, _CANCELLED, action="cancel"),
        Transition(_APPROVED, _CANCELLED, action="cancel"),
        Transition(_CLOSED, _CANCELLED, action="cancel"),
    ),
    terminal_states=(_RECEIVED, _CANCELLED),
)
