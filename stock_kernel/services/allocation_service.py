"""
AllocationService -- links purchase-order supply to sales-order demand.

Responsibility:
    Creates and removes ``PurchaseOrderAllocation`` rows and keeps the
    sales order line's ``allocated_qty`` counter in step with them.

Architecture position:
    Kernel > Services.  Planning only: no stock movement is recorded.

Invariants enforced:
    - so_line.allocated_qty + quantity <= so_line.quantity.
    - sum(allocations of a PO line) + quantity <= po_line.quantity.
    - Both lines are locked (SO line first, then PO line) before either
      bound is checked, so of two racing allocations that together exceed
      a bound exactly one succeeds.
    - ``deallocate`` is the exact inverse; the counter is floored at 0.

Failure modes:
    - ValidationError: quantity <= 0, or the purchase order is cancelled.
    - NotFoundError: line or allocation outside the company.
    - OverAllocationError: either bound would be exceeded.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.costing import ZERO, to_decimal
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.exceptions import NotFoundError, OverAllocationError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.purchasing import (
    PurchaseOrder,
    PurchaseOrderAllocation,
    PurchaseOrderLine,
    PurchaseOrderStatus,
)
from stock_kernel.models.sales import SalesOrderLine
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.allocation")


class AllocationService(BaseService):
    def __init__(self, uow: UnitOfWork):
        super().__init__(uow)
        self._orders = OrderSelector(uow.session)

    def allocate(
        self,
        company_id: UUID,
        po_line_id: UUID,
        so_line_id: UUID,
        quantity: Decimal,
    ) -> PurchaseOrderAllocation:
        quantity = to_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")

        with self.uow.atomic():
            so_line = self._lock_so_line(company_id, so_line_id)
            po_line = self._lock_po_line(company_id, po_line_id)

            po_status = self.session.execute(
                select(PurchaseOrder.status).where(PurchaseOrder.id == po_line.purchase_order_id)
            ).scalar_one()
            if po_status == PurchaseOrderStatus.CANCELLED.value:
                raise ValidationError(
                    "Cannot allocate from a cancelled purchase order",
                    field="po_line_id",
                )

            if so_line.allocated_qty + quantity > so_line.quantity:
                self._log_rejection("SalesOrderLine", so_line_id, quantity)
                raise OverAllocationError(
                    "SalesOrderLine",
                    str(so_line_id),
                    so_line.quantity,
                    so_line.allocated_qty,
                    quantity,
                )

            po_allocated = self._orders.allocated_on_po_line(company_id, po_line_id)
            if po_allocated + quantity > po_line.quantity:
                self._log_rejection("PurchaseOrderLine", po_line_id, quantity)
                raise OverAllocationError(
                    "PurchaseOrderLine",
                    str(po_line_id),
                    po_line.quantity,
                    po_allocated,
                    quantity,
                )

            allocation = PurchaseOrderAllocation(
                company_id=company_id,
                po_line_id=po_line_id,
                so_line_id=so_line_id,
                quantity=quantity,
                created_by_id=self.uow.actor_id,
            )
            self.session.add(allocation)
            so_line.allocated_qty = so_line.allocated_qty + quantity
            so_line.updated_by_id = self.uow.actor_id
            self.session.flush()

            self.uow.emit(
                self._event(
                    InventoryEventType.ALLOCATION_CREATED,
                    company_id,
                    "PurchaseOrderAllocation",
                    allocation.id,
                    po_line_id=po_line_id,
                    so_line_id=so_line_id,
                    quantity=quantity,
                )
            )

        logger.info(
            "allocation_created",
            extra={
                "allocation_id": str(allocation.id),
                "po_line_id": str(po_line_id),
                "so_line_id": str(so_line_id),
                "quantity": str(quantity),
            },
        )
        return allocation

    def deallocate(self, company_id: UUID, allocation_id: UUID) -> None:
        with self.uow.atomic():
            allocation = self.session.execute(
                select(PurchaseOrderAllocation).where(
                    PurchaseOrderAllocation.id == allocation_id,
                    PurchaseOrderAllocation.company_id == company_id,
                )
            ).scalar_one_or_none()
            if allocation is None:
                raise NotFoundError("PurchaseOrderAllocation", str(allocation_id))

            so_line = self._lock_so_line(company_id, allocation.so_line_id)
            remaining = so_line.allocated_qty - allocation.quantity
            if remaining < 0:
                logger.warning(
                    "allocated_qty_drift_floored",
                    extra={
                        "so_line_id": str(so_line.id),
                        "allocated_qty": str(so_line.allocated_qty),
                        "allocation_qty": str(allocation.quantity),
                    },
                )
            so_line.allocated_qty = remaining if remaining > 0 else ZERO
            so_line.updated_by_id = self.uow.actor_id

            event = self._event(
                InventoryEventType.ALLOCATION_REMOVED,
                company_id,
                "PurchaseOrderAllocation",
                allocation.id,
                po_line_id=allocation.po_line_id,
                so_line_id=allocation.so_line_id,
                quantity=allocation.quantity,
            )
            self.session.delete(allocation)
            self.session.flush()
            self.uow.emit(event)

        logger.info("allocation_removed", extra={"allocation_id": str(allocation_id)})

    def _lock_so_line(self, company_id: UUID, so_line_id: UUID) -> SalesOrderLine:
        line = self.session.execute(
            select(SalesOrderLine)
            .where(SalesOrderLine.id == so_line_id, SalesOrderLine.company_id == company_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise NotFoundError("SalesOrderLine", str(so_line_id))
        return line

    def _lock_po_line(self, company_id: UUID, po_line_id: UUID) -> PurchaseOrderLine:
        line = self.session.execute(
            select(PurchaseOrderLine)
            .where(
                PurchaseOrderLine.id == po_line_id,
                PurchaseOrderLine.company_id == company_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise NotFoundError("PurchaseOrderLine", str(po_line_id))
        return line

    @staticmethod
    def _log_rejection(line_type: str, line_id: UUID, quantity: Decimal) -> None:
        logger.warning(
            "over_allocation_rejected",
            extra={
                "line_type": line_type,
                "line_id": str(line_id),
                "requested": str(quantity),
            },
        )
