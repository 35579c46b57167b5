"""
Purchasing Module Service (``stock_modules.purchasing.service``).

Responsibility
--------------
Approval, goods receipt, short close and cancellation of purchase orders.
Goods receipt is the only place supply becomes stock: each received line
posts a RECEIPT movement through ``StockMovementService``.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper.

Invariants
----------
- Each public method owns its transaction boundary through ``UnitOfWork``.
- Status moves only along ``PURCHASE_ORDER_WORKFLOW``.
- received_qty + short_closed_qty <= quantity on every line.
- An order without a vendor cannot be approved.

Failure Modes
-------------
- ``InvalidStatusTransitionError`` for an operation the status forbids.
- ``ValidationError`` for over-receipt, non-positive quantities, a line
  from another order, or approval without a vendor.
- ``ConfigurationError`` when no zone is given and the company has no
  raw-material zone.
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.costing import to_decimal
from stock_kernel.domain.dtos import MovementReference
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import (
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.catalog import Sku, Vendor, VendorSku
from stock_kernel.models.purchasing import (
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
)
from stock_kernel.models.stock import MovementDirection, MovementType
from stock_kernel.models.zone import ZoneType
from stock_kernel.selectors.directory_selector import SqlSkuDirectory, SqlZoneDirectory
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.activity import ActivitySink
from stock_kernel.services.allocation_service import AllocationService
from stock_kernel.services.stock_movement_service import StockMovementService
from stock_kernel.services.unit_of_work import UnitOfWork
from stock_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW

logger = get_logger("modules.purchasing.service")

REFERENCE_TYPE = "PurchaseOrder"


class PurchaseOrderService:
    """
    Orchestrates purchase order operations through the stock kernel.

    Non-goals
    ---------
    - Does NOT draft orders from shortages (``ProcurementPlanner`` does).
    - Does NOT match invoices or compute payables.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: InventoryPolicy | None = None,
        activity_sink: ActivitySink | None = None,
        actor_id: UUID | None = None,
    ):
        self.uow = UnitOfWork(
            session,
            clock=clock,
            policy=policy,
            activity_sink=activity_sink,
            actor_id=actor_id,
        )
        self._session = session
        self._zones = SqlZoneDirectory(session)
        self._orders = OrderSelector(session)
        self._movements = StockMovementService(self.uow, SqlSkuDirectory(session), self._zones)
        self._allocations = AllocationService(self.uow)

    def assign_vendor(
        self, company_id: UUID, purchase_order_id: UUID, vendor_id: UUID,
    ) -> PurchaseOrder:
        """Resolve the vendor of a DRAFT order, e.g. a no-vendor planner draft."""
        with LogContext.bind(company_id=company_id, order_id=purchase_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, purchase_order_id)
                if order.status != PurchaseOrderStatus.DRAFT.value:
                    raise ValidationError(
                        f"Vendor of {order.po_number} can only change while DRAFT",
                        field="vendor_id",
                    )
                vendor = self._session.execute(
                    select(Vendor).where(Vendor.id == vendor_id, Vendor.company_id == company_id)
                ).scalar_one_or_none()
                if vendor is None:
                    raise NotFoundError("Vendor", str(vendor_id))
                order.vendor_id = vendor.id
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

        logger.info(
            "purchase_order_vendor_assigned",
            extra={"po_number": order.po_number, "vendor_id": str(vendor_id)},
        )
        return order

    def approve(self, company_id: UUID, purchase_order_id: UUID) -> PurchaseOrder:
        with LogContext.bind(company_id=company_id, order_id=purchase_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, purchase_order_id)
                self._require_transition(order, PurchaseOrderStatus.APPROVED)
                if order.vendor_id is None:
                    raise ValidationError(
                        f"Purchase order {order.po_number} has no vendor",
                        field="vendor_id",
                    )
                if not self._lines_of(order):
                    raise ValidationError(
                        f"Purchase order {order.po_number} has no lines",
                        field="lines",
                    )
                order.status = PurchaseOrderStatus.APPROVED.value
                order.approved_at = self.uow.now()
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

        logger.info("purchase_order_approved", extra={"po_number": order.po_number})
        return order

    def receive(
        self,
        company_id: UUID,
        purchase_order_id: UUID,
        receipts: Sequence[tuple[UUID, Decimal]],
        zone_id: UUID | None = None,
    ) -> PurchaseOrder:
        """
        Receive goods against an APPROVED order.

        ``receipts`` pairs line ids with received quantities.  Each posts a
        RECEIPT into ``zone_id`` (default: the designated raw-material
        zone) at the line's unit price and records that price as the SKU's
        last purchase price.  The order becomes RECEIVED once every line is
        received in full.
        """
        if not receipts:
            raise ValidationError("No receipt lines given", field="receipts")

        with LogContext.bind(company_id=company_id, order_id=purchase_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, purchase_order_id)
                if order.status != PurchaseOrderStatus.APPROVED.value:
                    raise InvalidStatusTransitionError(
                        "PurchaseOrder", str(order.id), order.status,
                        PurchaseOrderStatus.RECEIVED.value,
                    )

                if zone_id is None:
                    zone_id = self._zones.get_designated_zone(
                        company_id, ZoneType.RAW_MATERIAL.value,
                    ).id
                lines = {line.id: line for line in self._lines_of(order, lock=True)}
                reference = MovementReference(
                    reference_type=REFERENCE_TYPE,
                    reference_id=str(order.id),
                    notes=f"Goods receipt for {order.po_number}",
                )

                received_total = Decimal("0")
                for line_id, quantity in receipts:
                    quantity = to_decimal(quantity, "quantity")
                    line = lines.get(line_id)
                    if line is None:
                        raise NotFoundError("PurchaseOrderLine", str(line_id))
                    if quantity <= 0:
                        raise ValidationError(
                            "Quantity must be greater than zero", field="quantity",
                        )
                    if quantity > line.open_qty:
                        raise ValidationError(
                            f"Cannot receive {quantity}: line {line.line_no} of "
                            f"{order.po_number} has {line.open_qty} open",
                            field="quantity",
                        )

                    self._movements.record_movement(
                        company_id, line.sku_id, zone_id, quantity,
                        MovementDirection.IN, MovementType.RECEIPT,
                        cost_per_unit=line.unit_price,
                        reference=reference,
                    )
                    line.received_qty = line.received_qty + quantity
                    line.updated_by_id = self.uow.actor_id
                    self._record_price(order, line)
                    received_total += quantity

                if all(line.open_qty == 0 for line in lines.values()):
                    self._require_transition(order, PurchaseOrderStatus.RECEIVED)
                    order.status = PurchaseOrderStatus.RECEIVED.value
                    order.received_at = self.uow.now()
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

                self.uow.emit(
                    self.uow.make_event(
                        InventoryEventType.GOODS_RECEIVED,
                        company_id,
                        "PurchaseOrder",
                        order.id,
                        po_number=order.po_number,
                        line_count=len(receipts),
                        quantity=received_total,
                        status=order.status,
                    )
                )

        logger.info(
            "goods_received",
            extra={
                "po_number": order.po_number,
                "receipt_lines": len(receipts),
                "quantity": str(received_total),
                "status": order.status,
            },
        )
        return order

    def short_close(self, company_id: UUID, purchase_order_id: UUID) -> PurchaseOrder:
        """Close an APPROVED order, writing off every line's unreceived remainder."""
        with LogContext.bind(company_id=company_id, order_id=purchase_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, purchase_order_id)
                self._require_transition(order, PurchaseOrderStatus.CLOSED)
                written_off = Decimal("0")
                for line in self._lines_of(order, lock=True):
                    remainder = line.quantity - line.received_qty
                    written_off += remainder - line.short_closed_qty
                    line.short_closed_qty = remainder
                    line.updated_by_id = self.uow.actor_id
                order.status = PurchaseOrderStatus.CLOSED.value
                order.closed_at = self.uow.now()
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

        logger.info(
            "purchase_order_short_closed",
            extra={"po_number": order.po_number, "written_off": str(written_off)},
        )
        return order

    def cancel(self, company_id: UUID, purchase_order_id: UUID) -> PurchaseOrder:
        """Cancel an order that has not been received and drop its allocations."""
        with LogContext.bind(company_id=company_id, order_id=purchase_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, purchase_order_id)
                self._require_transition(order, PurchaseOrderStatus.CANCELLED)
                allocations = self._orders.allocations_for_purchase_order(company_id, order.id)
                for allocation in allocations:
                    self._allocations.deallocate(company_id, allocation.id)
                order.status = PurchaseOrderStatus.CANCELLED.value
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

        logger.info(
            "purchase_order_cancelled",
            extra={"po_number": order.po_number, "allocations_removed": len(allocations)},
        )
        return order

    def _record_price(self, order: PurchaseOrder, line: PurchaseOrderLine) -> None:
        if line.unit_price <= 0:
            return
        sku = self._session.get(Sku, line.sku_id)
        sku.last_purchase_price = line.unit_price
        sku.updated_by_id = self.uow.actor_id
        if order.vendor_id is None:
            return
        vendor_sku = self._session.execute(
            select(VendorSku).where(
                VendorSku.vendor_id == order.vendor_id,
                VendorSku.sku_id == line.sku_id,
            )
        ).scalar_one_or_none()
        if vendor_sku is not None:
            vendor_sku.last_price = line.unit_price

    def _lock_order(self, company_id: UUID, purchase_order_id: UUID) -> PurchaseOrder:
        order = self._session.execute(
            select(PurchaseOrder)
            .where(
                PurchaseOrder.id == purchase_order_id,
                PurchaseOrder.company_id == company_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("PurchaseOrder", str(purchase_order_id))
        return order

    def _lines_of(self, order: PurchaseOrder, lock: bool = False) -> list[PurchaseOrderLine]:
        stmt = (
            select(PurchaseOrderLine)
            .where(PurchaseOrderLine.purchase_order_id == order.id)
            .order_by(PurchaseOrderLine.line_no)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self._session.execute(stmt).scalars())

    @staticmethod
    def _require_transition(order: PurchaseOrder, target: PurchaseOrderStatus) -> None:
        if not PURCHASE_ORDER_WORKFLOW.allows(order.status, target.value):
            raise InvalidStatusTransitionError(
                "PurchaseOrder", str(order.id), order.status, target.value,
            )
