"""
ProcurementPlanner -- drafts purchase orders to cover raw-material shortages.

Responsibility:
    Runs the availability calculator for a sales order's demand, groups the
    raw SKUs that are short by preferred vendor, and persists one DRAFT
    purchase order per vendor group with one line per SKU.

Architecture position:
    Kernel > Services.  Creates purchase orders and lines; never reserves,
    allocates or moves stock.

Invariants enforced:
    - PO numbers come from locked counters: the vendor's ``po_sequence``
      (``PO-<VENDOR>-0001``) or the company's no-vendor sequence
      (``PO-NOVENDOR-0001``).
    - With ``offset_open_purchase_supply`` on, open quantity already drafted
      for the same sales order is subtracted from each shortage, so calling
      the planner again for an unchanged order drafts nothing.
    - Every drafted line carries ``source_sales_order_id``.

Failure modes:
    - NotFoundError: the sales order is not in the company.
    - Any availability error (ConfigurationError, BomCycleError, ...).
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.costing import ZERO
from stock_kernel.domain.directories import SkuDirectory, SkuInfo, VendorInfo, ZoneDirectory
from stock_kernel.domain.dtos import (
    DemandLine,
    PlannedPurchaseLine,
    ProcurementPlan,
    VendorGroup,
)
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.exceptions import NotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Vendor
from stock_kernel.models.purchasing import PurchaseOrder, PurchaseOrderLine, PurchaseOrderStatus
from stock_kernel.models.sales import SalesOrder
from stock_kernel.selectors.directory_selector import SqlSkuDirectory
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.availability_service import AvailabilityService
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.procurement")

NO_VENDOR_CODE = "NOVENDOR"


class ProcurementPlanner(BaseService):
    """
    Turns shortages into draft purchase orders.

    Non-goals:
        - Does NOT approve orders or pick a vendor for SKUs without one; the
          no-vendor draft must be resolved by a buyer before approval.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        sku_directory: SkuDirectory | None = None,
        zone_directory: ZoneDirectory | None = None,
    ):
        super().__init__(uow)
        self._skus = sku_directory or SqlSkuDirectory(uow.session)
        self._availability = AvailabilityService(uow, self._skus, zone_directory)
        self._orders = OrderSelector(uow.session)
        self._sequences = SequenceService(uow.session)

    def build_plan(
        self,
        company_id: UUID,
        sales_order_id: UUID,
        demand_lines: Sequence[DemandLine],
    ) -> ProcurementPlan:
        """Read-only preview of the purchase orders the planner would draft."""
        report = self._availability.compute_availability(
            company_id, demand_lines, exclude_ids=[line.id for line in demand_lines],
        )
        open_supply = (
            self._orders.open_purchase_supply(company_id, sales_order_id)
            if self.uow.policy.offset_open_purchase_supply
            else {}
        )

        grouped: dict[UUID | None, list[PlannedPurchaseLine]] = {}
        vendors: dict[UUID, VendorInfo] = {}
        for requirement in report.requirements:
            if requirement.shortage_qty <= 0:
                continue
            offset = open_supply.get(requirement.sku_id, ZERO)
            quantity = requirement.shortage_qty - offset
            if quantity <= 0:
                continue

            sku = self._skus.get_sku(company_id, requirement.sku_id)
            vendor = self._skus.get_preferred_vendor(company_id, requirement.sku_id)
            vendor_id = vendor.id if vendor else None
            if vendor is not None:
                vendors[vendor.id] = vendor

            grouped.setdefault(vendor_id, []).append(
                PlannedPurchaseLine(
                    sku_id=requirement.sku_id,
                    sku_code=sku.code,
                    vendor_id=vendor_id,
                    quantity=quantity,
                    unit_price=self._unit_price(company_id, vendor, sku),
                    shortage_qty=requirement.shortage_qty,
                    open_supply_qty=offset,
                )
            )

        def group_order(vendor_id: UUID | None) -> tuple[int, str]:
            if vendor_id is None:
                return (1, "")
            return (0, vendors[vendor_id].code)

        groups = tuple(
            VendorGroup(
                vendor_id=vendor_id,
                vendor_code=vendors[vendor_id].code if vendor_id else None,
                lines=tuple(grouped[vendor_id]),
            )
            for vendor_id in sorted(grouped, key=group_order)
        )
        return ProcurementPlan(
            company_id=company_id,
            sales_order_id=sales_order_id,
            groups=groups,
        )

    def auto_draft_purchase_orders(
        self,
        company_id: UUID,
        sales_order_id: UUID,
        so_number: str,
        demand_lines: Sequence[DemandLine],
    ) -> list[PurchaseOrder]:
        """
        Persist the plan as DRAFT purchase orders.

        Returns the purchase orders created or extended, in vendor order
        (the no-vendor order last).  Returns an empty list when nothing is
        short.
        """
        with self.uow.atomic():
            self._require_sales_order(company_id, sales_order_id)
            plan = self.build_plan(company_id, sales_order_id, demand_lines)

            drafted: list[PurchaseOrder] = []
            for group in plan.groups:
                order = None
                if self.uow.policy.merge_into_open_drafts and group.vendor_id is not None:
                    order = self._open_draft_for(company_id, group.vendor_id)
                if order is None:
                    order = self._new_draft(company_id, group.vendor_id, sales_order_id, so_number)

                next_line_no = self._next_line_no(order)
                for offset, planned in enumerate(group.lines):
                    self.session.add(
                        PurchaseOrderLine(
                            company_id=company_id,
                            purchase_order_id=order.id,
                            line_no=next_line_no + offset,
                            sku_id=planned.sku_id,
                            quantity=planned.quantity,
                            unit_price=planned.unit_price,
                            source_sales_order_id=sales_order_id,
                            created_by_id=self.uow.actor_id,
                        )
                    )
                self.session.flush()
                self.session.refresh(order, attribute_names=["lines"])
                drafted.append(order)

                self.uow.emit(
                    self._event(
                        InventoryEventType.PURCHASE_ORDER_DRAFTED,
                        company_id,
                        "PurchaseOrder",
                        order.id,
                        po_number=order.po_number,
                        vendor_id=group.vendor_id,
                        sales_order_id=sales_order_id,
                        line_count=len(group.lines),
                        total_amount=group.total_amount,
                    )
                )

        logger.info(
            "purchase_orders_drafted",
            extra={
                "sales_order_id": str(sales_order_id),
                "so_number": so_number,
                "purchase_order_count": len(drafted),
                "po_numbers": [po.po_number for po in drafted],
            },
        )
        return drafted

    def _unit_price(self, company_id: UUID, vendor: VendorInfo | None, sku: SkuInfo) -> Decimal:
        """Vendor price list, then last purchase price, then standard cost."""
        if vendor is not None:
            vendor_price = self._skus.get_vendor_price(company_id, vendor.id, sku.id)
            if vendor_price:
                return vendor_price
        return sku.last_purchase_price or sku.standard_cost or ZERO

    def _require_sales_order(self, company_id: UUID, sales_order_id: UUID) -> None:
        found = self.session.execute(
            select(SalesOrder.id).where(
                SalesOrder.id == sales_order_id,
                SalesOrder.company_id == company_id,
            )
        ).scalar_one_or_none()
        if found is None:
            raise NotFoundError("SalesOrder", str(sales_order_id))

    def _new_draft(
        self,
        company_id: UUID,
        vendor_id: UUID | None,
        sales_order_id: UUID,
        so_number: str,
    ) -> PurchaseOrder:
        order = PurchaseOrder(
            company_id=company_id,
            po_number=self._next_po_number(company_id, vendor_id),
            vendor_id=vendor_id,
            status=PurchaseOrderStatus.DRAFT.value,
            currency=self.uow.policy.purchase_currency,
            source_sales_order_id=sales_order_id,
            notes=f"Auto-drafted for Sales Order {so_number}",
            created_by_id=self.uow.actor_id,
        )
        self.session.add(order)
        self.session.flush()
        return order

    def _next_po_number(self, company_id: UUID, vendor_id: UUID | None) -> str:
        if vendor_id is None:
            seq = self._sequences.next_value(
                company_id, SequenceService.NO_VENDOR_PURCHASE_ORDER,
            )
            return f"PO-{NO_VENDOR_CODE}-{seq:04d}"

        vendor = self.session.execute(
            select(Vendor)
            .where(Vendor.id == vendor_id, Vendor.company_id == company_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        vendor.po_sequence = (vendor.po_sequence or 0) + 1
        self.session.flush()
        return f"PO-{vendor.code}-{vendor.po_sequence:04d}"

    def _open_draft_for(self, company_id: UUID, vendor_id: UUID) -> PurchaseOrder | None:
        return self.session.execute(
            select(PurchaseOrder)
            .where(
                PurchaseOrder.company_id == company_id,
                PurchaseOrder.vendor_id == vendor_id,
                PurchaseOrder.status == PurchaseOrderStatus.DRAFT.value,
            )
            .order_by(PurchaseOrder.created_at, PurchaseOrder.po_number)
            .limit(1)
            .with_for_update()
        ).scalar_one_or_none()

    def _next_line_no(self, order: PurchaseOrder) -> int:
        current = self.session.execute(
            select(func.max(PurchaseOrderLine.line_no)).where(
                PurchaseOrderLine.purchase_order_id == order.id,
            )
        ).scalar_one()
        return (current or 0) + 1
