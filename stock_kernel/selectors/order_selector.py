"""
Module: stock_kernel.selectors.order_selector
Responsibility: Read-only queries over sales and purchase order data used
    by the planner, the allocation service and the orchestration modules.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.costing import quantize_cost
from stock_kernel.domain.dtos import DemandLine
from stock_kernel.models.purchasing import (
    OPEN_SUPPLY_STATUSES,
    PurchaseOrder,
    PurchaseOrderAllocation,
    PurchaseOrderLine,
)
from stock_kernel.models.sales import SalesOrderLine
from stock_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationView:
    id: UUID
    po_line_id: UUID
    so_line_id: UUID
    quantity: Decimal


class OrderSelector(BaseSelector):
    def demand_lines(self, company_id: UUID, sales_order_id: UUID) -> list[DemandLine]:
        """Demand lines of a sales order, in line order."""
        lines = self.session.execute(
            select(SalesOrderLine)
            .where(
                SalesOrderLine.company_id == company_id,
                SalesOrderLine.sales_order_id == sales_order_id,
            )
            .order_by(SalesOrderLine.line_no)
        ).scalars()
        return [
            DemandLine(
                id=line.id,
                sku_id=line.sku_id,
                quantity=line.quantity,
                already_delivered_qty=line.delivered_qty,
            )
            for line in lines
        ]

    def open_purchase_supply(
        self, company_id: UUID, sales_order_id: UUID,
    ) -> dict[UUID, Decimal]:
        """
        Still-expected quantity per SKU on draft/approved PO lines drafted
        for a sales order: quantity - received - short-closed.
        """
        open_qty = (
            PurchaseOrderLine.quantity
            - PurchaseOrderLine.received_qty
            - PurchaseOrderLine.short_closed_qty
        )
        rows = self.session.execute(
            select(PurchaseOrderLine.sku_id, func.sum(open_qty))
            .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.purchase_order_id)
            .where(
                PurchaseOrder.company_id == company_id,
                PurchaseOrderLine.source_sales_order_id == sales_order_id,
                PurchaseOrder.status.in_([s.value for s in OPEN_SUPPLY_STATUSES]),
            )
            .group_by(PurchaseOrderLine.sku_id)
        ).all()
        result = {}
        for sku_id, total in rows:
            qty = quantize_cost(Decimal(str(total or 0)))
            if qty > 0:
                result[sku_id] = qty
        return result

    def allocated_on_po_line(self, company_id: UUID, po_line_id: UUID) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(PurchaseOrderAllocation.quantity), 0)).where(
                PurchaseOrderAllocation.company_id == company_id,
                PurchaseOrderAllocation.po_line_id == po_line_id,
            )
        ).scalar_one()
        return quantize_cost(Decimal(str(total)))

    def allocations_for_so_lines(
        self, company_id: UUID, so_line_ids: list[UUID],
    ) -> list[AllocationView]:
        if not so_line_ids:
            return []
        return self._allocations(
            PurchaseOrderAllocation.company_id == company_id,
            PurchaseOrderAllocation.so_line_id.in_(so_line_ids),
        )

    def allocations_for_purchase_order(
        self, company_id: UUID, purchase_order_id: UUID,
    ) -> list[AllocationView]:
        line_ids = select(PurchaseOrderLine.id).where(
            PurchaseOrderLine.purchase_order_id == purchase_order_id,
        )
        return self._allocations(
            PurchaseOrderAllocation.company_id == company_id,
            PurchaseOrderAllocation.po_line_id.in_(line_ids),
        )

    def _allocations(self, *criteria) -> list[AllocationView]:
        rows = self.session.execute(
            select(PurchaseOrderAllocation)
            .where(*criteria)
            .order_by(PurchaseOrderAllocation.created_at, PurchaseOrderAllocation.id)
        ).scalars()
        return [
            AllocationView(
                id=a.id,
                po_line_id=a.po_line_id,
                so_line_id=a.so_line_id,
                quantity=a.quantity,
            )
            for a in rows
        ]
