"""
Sales Order Module Service (``stock_modules.sales.service``).

Responsibility
--------------
Drives a sales order through its lifecycle by composing kernel services
(availability, reservation, movement, allocation, procurement) inside one
unit of work per operation.  This is a **thin glue layer**: quantities and
costs are computed by the kernel.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper.

1. ``confirm_order`` runs the locked availability check and the reservation
   in the same unit of work, so two orders cannot both pass the check
   against the same unreserved stock.
2. ``start_production`` issues exploded raw material from the raw zone and
   produces the finished SKU into the finished zone at the rolled-up cost.
3. ``record_delivery`` transfers finished stock to the in-transit zone.
4. ``cancel_order`` releases reservations and removes allocations.

Invariants
----------
- Each public method owns its transaction boundary through ``UnitOfWork``.
- Status moves only along ``SALES_ORDER_WORKFLOW``.
- CONFIRMED is unreachable while any raw SKU of the order is short.

Failure Modes
-------------
- ``InvalidStatusTransitionError`` for an operation the status forbids.
- ``ShortageError`` from ``confirm_order`` (after a ``shortage_blocked``
  event is published).
- ``ConfigurationError`` when a required typed zone is missing.
- Any kernel error; the whole unit of work rolls back.

Usage::

    service = SalesOrderService(session, clock=clock)
    report = service.confirm_order(company_id, order_id)
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.bom import BomExploder
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.costing import ZERO, quantize_cost, to_decimal
from stock_kernel.domain.dtos import AvailabilityReport, MovementReference
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import (
    InvalidStatusTransitionError,
    NotFoundError,
    ShortageError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.purchasing import PurchaseOrder
from stock_kernel.models.sales import (
    SalesOrder,
    SalesOrderDelivery,
    SalesOrderLine,
    SalesOrderStatus,
)
from stock_kernel.models.stock import MovementDirection, MovementType
from stock_kernel.models.zone import ZoneType
from stock_kernel.selectors.directory_selector import SqlSkuDirectory, SqlZoneDirectory
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.activity import ActivitySink
from stock_kernel.services.allocation_service import AllocationService
from stock_kernel.services.availability_service import AvailabilityService
from stock_kernel.services.procurement_planner import ProcurementPlanner
from stock_kernel.services.reservation_service import ReservationService
from stock_kernel.services.stock_movement_service import StockMovementService
from stock_kernel.services.unit_of_work import UnitOfWork
from stock_modules.sales.workflows import SALES_ORDER_WORKFLOW

logger = get_logger("modules.sales.service")

REFERENCE_TYPE = "SalesOrder"


class SalesOrderService:
    """
    Orchestrates sales order operations through the stock kernel.

    Contract
    --------
    Every public method runs inside ``self.uow.atomic()``.  Standalone it
    commits on success and rolls back on failure; called inside a caller's
    open unit it joins that unit instead.

    Non-goals
    ---------
    - Does NOT price orders or compute invoices.
    - Does NOT approve or receive purchase orders (see
      ``stock_modules.purchasing``).
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
        self._skus = SqlSkuDirectory(session)
        self._zones = SqlZoneDirectory(session)
        self._orders = OrderSelector(session)

        self._movements = StockMovementService(self.uow, self._skus, self._zones)
        self._availability = AvailabilityService(self.uow, self._skus, self._zones)
        self._reservations = ReservationService(self.uow)
        self._allocations = AllocationService(self.uow)
        self._planner = ProcurementPlanner(self.uow, self._skus, self._zones)

    # =========================================================================
    # Availability and procurement
    # =========================================================================

    def check_availability(self, company_id: UUID, sales_order_id: UUID) -> AvailabilityReport:
        """Display-only availability of an order; takes no locks."""
        self._get_order(company_id, sales_order_id)
        demand = self._orders.demand_lines(company_id, sales_order_id)
        return self._availability.compute_availability(
            company_id, demand, exclude_ids=[line.id for line in demand],
        )

    def draft_purchase_orders(
        self, company_id: UUID, sales_order_id: UUID,
    ) -> list[PurchaseOrder]:
        """Draft purchase orders for whatever the order is short of."""
        with LogContext.bind(company_id=company_id, order_id=sales_order_id):
            with self.uow.atomic():
                order = self._get_order(company_id, sales_order_id)
                demand = self._orders.demand_lines(company_id, sales_order_id)
                return self._planner.auto_draft_purchase_orders(
                    company_id, sales_order_id, order.so_number, demand,
                )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def confirm_order(self, company_id: UUID, sales_order_id: UUID) -> AvailabilityReport:
        """
        QUOTE -> CONFIRMED, reserving the order's raw material.

        Returns the availability report that authorized the reservations.
        """
        with LogContext.bind(company_id=company_id, order_id=sales_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, sales_order_id)
                self._require_transition(order, SalesOrderStatus.CONFIRMED)

                demand = self._orders.demand_lines(company_id, sales_order_id)
                if not demand:
                    raise ValidationError(
                        f"Sales order {order.so_number} has no lines",
                        field="lines",
                    )
                report = self._availability.compute_availability(
                    company_id, demand, exclude_ids=[line.id for line in demand], lock=True,
                )

                if report.has_shortage:
                    logger.warning(
                        "order_confirmation_blocked",
                        extra={
                            "so_number": order.so_number,
                            "shortage_sku_count": len(report.shortages),
                            "total_shortage": str(report.total_shortage),
                        },
                    )
                    self.uow.emit_immediately(
                        self._event(
                            InventoryEventType.SHORTAGE_BLOCKED,
                            order,
                            so_number=order.so_number,
                            shortage_sku_count=len(report.shortages),
                            total_shortage=report.total_shortage,
                        )
                    )
                    raise ShortageError({str(k): v for k, v in report.shortages.items()})

                self._reservations.reserve(company_id, report)

                order.status = SalesOrderStatus.CONFIRMED.value
                order.confirmed_at = self.uow.now()
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

                self.uow.emit(
                    self._event(
                        InventoryEventType.ORDER_CONFIRMED,
                        order,
                        so_number=order.so_number,
                        raw_sku_count=len(report.requirements),
                    )
                )

        logger.info(
            "sales_order_confirmed",
            extra={"sales_order_id": str(sales_order_id), "so_number": order.so_number},
        )
        return report

    def cancel_order(self, company_id: UUID, sales_order_id: UUID) -> SalesOrder:
        """
        Cancel an order that has not been delivered.

        Releases every reservation and removes every allocation of its
        lines.  Purchase orders drafted for it are left for a buyer to
        cancel.
        """
        with LogContext.bind(company_id=company_id, order_id=sales_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, sales_order_id)
                self._require_transition(order, SalesOrderStatus.CANCELLED)

                line_ids = [line.id for line in self._lines_of(order)]
                released = self._reservations.release_for_lines(company_id, line_ids)
                allocations = self._orders.allocations_for_so_lines(company_id, line_ids)
                for allocation in allocations:
                    self._allocations.deallocate(company_id, allocation.id)

                order.status = SalesOrderStatus.CANCELLED.value
                order.cancelled_at = self.uow.now()
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

                self.uow.emit(
                    self._event(
                        InventoryEventType.ORDER_CANCELLED,
                        order,
                        so_number=order.so_number,
                        reservations_released=released,
                        allocations_removed=len(allocations),
                    )
                )

        logger.info(
            "sales_order_cancelled",
            extra={
                "sales_order_id": str(sales_order_id),
                "reservations_released": released,
                "allocations_removed": len(allocations),
            },
        )
        return order

    def start_production(
        self,
        company_id: UUID,
        sales_order_id: UUID,
        so_line_id: UUID,
        quantity: Decimal,
    ) -> SalesOrderLine:
        """
        Build ``quantity`` finished units for a line.

        Issues the exploded raw material from the designated raw zone,
        consuming the line's reservations, then produces the finished SKU
        into the designated finished zone at the summed issue cost.  A
        CONFIRMED order moves to PRODUCTION.

        Finished stock already on hand is not netted here, even with
        ``consume_finished_stock_first``; callers pass only the quantity
        still to be built.
        """
        quantity = to_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")

        with LogContext.bind(company_id=company_id, order_id=sales_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, sales_order_id)
                if order.status == SalesOrderStatus.CONFIRMED.value:
                    self._require_transition(order, SalesOrderStatus.PRODUCTION)
                elif order.status != SalesOrderStatus.PRODUCTION.value:
                    raise InvalidStatusTransitionError(
                        "SalesOrder", str(order.id), order.status,
                        SalesOrderStatus.PRODUCTION.value,
                    )

                line = self._lock_line(company_id, sales_order_id, so_line_id)
                if line.produced_qty + quantity > line.quantity:
                    raise ValidationError(
                        f"Cannot produce {quantity}: line {line.line_no} has "
                        f"{line.quantity - line.produced_qty} left to produce",
                        field="quantity",
                    )

                sku = self._skus.get_sku(company_id, line.sku_id)
                if sku is None:
                    raise NotFoundError("Sku", str(line.sku_id))
                if sku.is_raw:
                    raise ValidationError(
                        f"SKU {sku.code} is a raw material and is not produced",
                        field="so_line_id",
                    )

                exploder = BomExploder(
                    lambda sku_id: self._skus.get_bom_lines(company_id, sku_id),
                    apply_scrap=self.uow.policy.apply_scrap_allowance,
                    max_depth=self.uow.policy.max_bom_depth,
                )
                if not exploder.has_bom(sku.id):
                    raise ValidationError(
                        f"SKU {sku.code} has no bill of materials",
                        field="bom",
                    )

                raw_zone = self._zones.get_designated_zone(
                    company_id, ZoneType.RAW_MATERIAL.value,
                )
                finished_zone = self._zones.get_designated_zone(
                    company_id, ZoneType.FINISHED.value,
                )
                reference = MovementReference(
                    reference_type=REFERENCE_TYPE,
                    reference_id=str(order.id),
                    notes=f"Production for {order.so_number} line {line.line_no}",
                )

                raw_cost = ZERO
                needs = exploder.explode(sku.id, quantity)
                for raw_sku_id in sorted(needs, key=str):
                    raw_qty = quantize_cost(needs[raw_sku_id])
                    issue = self._movements.record_movement(
                        company_id, raw_sku_id, raw_zone.id, raw_qty,
                        MovementDirection.OUT, MovementType.ISSUE,
                        reference=reference,
                    )
                    raw_cost += issue.total_cost
                    self._reservations.consume(company_id, line.id, raw_sku_id, raw_qty)

                self._movements.record_movement(
                    company_id, sku.id, finished_zone.id, quantity,
                    MovementDirection.IN, MovementType.PRODUCE,
                    cost_per_unit=quantize_cost(raw_cost / quantity),
                    reference=reference,
                )

                line.produced_qty = line.produced_qty + quantity
                line.updated_by_id = self.uow.actor_id
                if order.status == SalesOrderStatus.CONFIRMED.value:
                    order.status = SalesOrderStatus.PRODUCTION.value
                    order.updated_by_id = self.uow.actor_id
                self._session.flush()

        logger.info(
            "production_recorded",
            extra={
                "sales_order_id": str(sales_order_id),
                "so_line_id": str(so_line_id),
                "quantity": str(quantity),
                "raw_sku_count": len(needs),
                "raw_cost": str(raw_cost),
            },
        )
        return line

    def advance_status(
        self,
        company_id: UUID,
        sales_order_id: UUID,
        target: SalesOrderStatus | str,
    ) -> SalesOrder:
        """
        Move an order along a transition that has no stock effect, such as
        PRODUCTION -> DISPATCH.

        Transitions that reserve, move stock or release holds go through
        their own operation (``confirm_order``, ``start_production``,
        ``record_delivery``, ``cancel_order``).
        """
        target = SalesOrderStatus(target)
        with LogContext.bind(company_id=company_id, order_id=sales_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, sales_order_id)
                transition = self._require_transition(order, target)
                if transition.guard is not None or transition.moves_stock or (
                    transition.action == "cancel"
                ):
                    raise InvalidStatusTransitionError(
                        "SalesOrder", str(order.id), order.status, target.value,
                    )
                previous = order.status
                order.status = target.value
                order.updated_by_id = self.uow.actor_id
                self._session.flush()

        logger.info(
            "sales_order_status_advanced",
            extra={
                "sales_order_id": str(sales_order_id),
                "from_status": previous,
                "to_status": target.value,
            },
        )
        return order

    def record_delivery(
        self,
        company_id: UUID,
        sales_order_id: UUID,
        so_line_id: UUID,
        quantity: Decimal,
        notes: str | None = None,
    ) -> SalesOrderDelivery:
        """
        Ship finished goods for a line of a DISPATCH order.

        Transfers the quantity from the finished zone to the in-transit zone
        and records a delivery row.  The order becomes DELIVERED once every
        line is fully delivered and has at least one delivery row.
        """
        quantity = to_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")

        with LogContext.bind(company_id=company_id, order_id=sales_order_id):
            with self.uow.atomic():
                order = self._lock_order(company_id, sales_order_id)
                if order.status != SalesOrderStatus.DISPATCH.value:
                    raise InvalidStatusTransitionError(
                        "SalesOrder", str(order.id), order.status,
                        SalesOrderStatus.DELIVERED.value,
                    )

                line = self._lock_line(company_id, sales_order_id, so_line_id)
                if line.delivered_qty + quantity > line.quantity:
                    raise ValidationError(
                        f"Cannot deliver {quantity}: line {line.line_no} has "
                        f"{line.open_qty} left to deliver",
                        field="quantity",
                    )

                finished_zone = self._zones.get_designated_zone(
                    company_id, ZoneType.FINISHED.value,
                )
                transit_zone = self._zones.get_designated_zone(
                    company_id, ZoneType.IN_TRANSIT.value,
                )
                self._movements.transfer(
                    company_id, line.sku_id, finished_zone.id, transit_zone.id, quantity,
                    reference=MovementReference(
                        reference_type=REFERENCE_TYPE,
                        reference_id=str(order.id),
                        notes=f"Delivery for {order.so_number} line {line.line_no}",
                    ),
                )

                now = self.uow.now()
                delivery = SalesOrderDelivery(
                    company_id=company_id,
                    sales_order_id=order.id,
                    so_line_id=line.id,
                    quantity=quantity,
                    delivered_at=now,
                    notes=notes,
                    created_by_id=self.uow.actor_id,
                )
                self._session.add(delivery)
                line.delivered_qty = line.delivered_qty + quantity
                line.updated_by_id = self.uow.actor_id
                self._session.flush()

                self.uow.emit(
                    self._event(
                        InventoryEventType.DELIVERY_RECORDED,
                        order,
                        so_line_id=line.id,
                        quantity=quantity,
                    )
                )

                completed = self._all_lines_delivered(order)
                if completed:
                    self._require_transition(order, SalesOrderStatus.DELIVERED)
                    self._reservations.release_for_lines(
                        company_id, [li.id for li in self._lines_of(order)],
                    )
                    order.status = SalesOrderStatus.DELIVERED.value
                    order.delivered_at = now
                    order.updated_by_id = self.uow.actor_id
                    self._session.flush()

        logger.info(
            "delivery_recorded",
            extra={
                "sales_order_id": str(sales_order_id),
                "so_line_id": str(so_line_id),
                "quantity": str(quantity),
                "order_delivered": completed,
            },
        )
        return delivery

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_order(self, company_id: UUID, sales_order_id: UUID) -> SalesOrder:
        order = self._session.execute(
            select(SalesOrder).where(
                SalesOrder.id == sales_order_id,
                SalesOrder.company_id == company_id,
            )
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("SalesOrder", str(sales_order_id))
        return order

    def _lock_order(self, company_id: UUID, sales_order_id: UUID) -> SalesOrder:
        order = self._session.execute(
            select(SalesOrder)
            .where(SalesOrder.id == sales_order_id, SalesOrder.company_id == company_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("SalesOrder", str(sales_order_id))
        return order

    def _lock_line(
        self, company_id: UUID, sales_order_id: UUID, so_line_id: UUID,
    ) -> SalesOrderLine:
        line = self._session.execute(
            select(SalesOrderLine)
            .where(
                SalesOrderLine.id == so_line_id,
                SalesOrderLine.sales_order_id == sales_order_id,
                SalesOrderLine.company_id == company_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise NotFoundError("SalesOrderLine", str(so_line_id))
        return line

    def _lines_of(self, order: SalesOrder) -> list[SalesOrderLine]:
        return list(
            self._session.execute(
                select(SalesOrderLine)
                .where(SalesOrderLine.sales_order_id == order.id)
                .order_by(SalesOrderLine.line_no)
            ).scalars()
        )

    def _all_lines_delivered(self, order: SalesOrder) -> bool:
        lines = self._lines_of(order)
        with_delivery = set(
            self._session.execute(
                select(SalesOrderDelivery.so_line_id).where(
                    SalesOrderDelivery.sales_order_id == order.id,
                )
            ).scalars()
        )
        return bool(lines) and all(
            line.delivered_qty >= line.quantity and line.id in with_delivery
            for line in lines
        )

    @staticmethod
    def _require_transition(order: SalesOrder, target: SalesOrderStatus):
        transition = SALES_ORDER_WORKFLOW.find(order.status, target.value)
        if transition is None:
            raise InvalidStatusTransitionError(
                "SalesOrder", str(order.id), order.status, target.value,
            )
        return transition

    def _event(self, event_type: InventoryEventType, order: SalesOrder, **data):
        return self.uow.make_event(
            event_type, order.company_id, "SalesOrder", order.id, **data,
        )
