"""
ReservationService -- soft holds of raw material for sales order lines.

Responsibility:
    Converts a shortage-free availability report into reservations, one per
    (sales order line, raw SKU), and releases or consumes them later.

Architecture position:
    Kernel > Services.  Sole writer of ``stock_reservations``.

Invariants enforced:
    - Reserving is only possible from a report with zero shortage.  Run in
      the same unit of work as a locked ``compute_availability`` so no
      other confirmation can take the same stock in between.
    - A reservation's quantity is topped up to the line's requirement and
      never lowered by ``reserve``; only ``consume`` and
      ``release_for_lines`` reduce what is held.
    - Released rows are kept (``released_at`` set) and re-activated by a
      later ``reserve`` on the same key.

Failure modes:
    - ShortageError: the report has a shortage.  Nothing is written.
    - NotFoundError: a report line is not a sales order line of the company.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.costing import ZERO, to_decimal
from stock_kernel.domain.dtos import AvailabilityReport
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.exceptions import NotFoundError, ShortageError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.sales import SalesOrderLine
from stock_kernel.models.stock import StockReservation
from stock_kernel.services.base import BaseService

logger = get_logger("services.reservation")


class ReservationService(BaseService):
    def reserve(self, company_id: UUID, report: AvailabilityReport) -> list[StockReservation]:
        """
        Create or top up the reservations the report's lines need.

        Returns the reservation rows that were created or changed.
        """
        if report.company_id != company_id:
            raise ValidationError(
                "Availability report belongs to another company",
                field="company_id",
            )
        if report.has_shortage:
            logger.warning(
                "reservation_blocked_by_shortage",
                extra={
                    "shortage_sku_count": len(report.shortages),
                    "total_shortage": str(report.total_shortage),
                },
            )
            raise ShortageError({str(k): v for k, v in report.shortages.items()})

        needs = report.needs_by_line()
        touched: list[StockReservation] = []
        if not needs:
            return touched

        with self.uow.atomic():
            lines = self._load_lines(company_id, needs.keys())
            existing = {
                (r.so_line_id, r.sku_id): r
                for r in self._lock_reservations(company_id, needs.keys())
            }

            for line_id in sorted(needs, key=str):
                line = lines[line_id]
                for sku_id, qty in sorted(needs[line_id].items(), key=lambda kv: str(kv[0])):
                    reservation = existing.get((line_id, sku_id))
                    if reservation is None:
                        reservation = StockReservation(
                            company_id=company_id,
                            sales_order_id=line.sales_order_id,
                            so_line_id=line_id,
                            sku_id=sku_id,
                            quantity=qty,
                            created_by_id=self.uow.actor_id,
                        )
                        self.session.add(reservation)
                    elif not reservation.is_active:
                        reservation.released_at = None
                        reservation.quantity = qty
                    elif reservation.quantity < qty:
                        reservation.quantity = qty
                    else:
                        continue

                    touched.append(reservation)
                    self.session.flush()
                    self.uow.emit(
                        self._event(
                            InventoryEventType.RESERVATION_CREATED,
                            company_id,
                            "StockReservation",
                            reservation.id,
                            so_line_id=line_id,
                            sku_id=sku_id,
                            quantity=reservation.quantity,
                        )
                    )

        logger.info(
            "reservations_recorded",
            extra={"line_count": len(needs), "reservations_touched": len(touched)},
        )
        return touched

    def release_for_lines(self, company_id: UUID, line_ids: Iterable[UUID]) -> int:
        """
        Release every active reservation of the given lines.

        Returns the number of reservations released.
        """
        line_ids = list(line_ids)
        if not line_ids:
            return 0

        released = 0
        with self.uow.atomic():
            now = self._now()
            for reservation in self._lock_reservations(company_id, line_ids):
                if not reservation.is_active:
                    continue
                reservation.released_at = now
                released += 1
                self.uow.emit(
                    self._event(
                        InventoryEventType.RESERVATION_RELEASED,
                        company_id,
                        "StockReservation",
                        reservation.id,
                        so_line_id=reservation.so_line_id,
                        sku_id=reservation.sku_id,
                        quantity=reservation.quantity,
                    )
                )
            self.session.flush()

        logger.info(
            "reservations_released",
            extra={"line_count": len(line_ids), "released": released},
        )
        return released

    def consume(
        self,
        company_id: UUID,
        so_line_id: UUID,
        sku_id: UUID,
        quantity: Decimal,
    ) -> StockReservation | None:
        """
        Reduce a reservation after raw material physically left the raw zone.

        Consuming more than is reserved empties the reservation.  Returns
        None when the line holds no active reservation for the SKU.
        """
        quantity = to_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")

        with self.uow.atomic():
            reservation = self.session.execute(
                select(StockReservation)
                .where(
                    StockReservation.company_id == company_id,
                    StockReservation.so_line_id == so_line_id,
                    StockReservation.sku_id == sku_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if reservation is None or not reservation.is_active:
                return None

            remaining = reservation.quantity - quantity
            reservation.quantity = remaining if remaining > 0 else ZERO
            if reservation.quantity == 0:
                reservation.released_at = self._now()
                self.uow.emit(
                    self._event(
                        InventoryEventType.RESERVATION_RELEASED,
                        company_id,
                        "StockReservation",
                        reservation.id,
                        so_line_id=so_line_id,
                        sku_id=sku_id,
                        quantity=quantity,
                        reason="consumed",
                    )
                )
            self.session.flush()

        logger.debug(
            "reservation_consumed",
            extra={
                "so_line_id": str(so_line_id),
                "sku_id": str(sku_id),
                "consumed": str(quantity),
                "remaining": str(reservation.quantity),
            },
        )
        return reservation

    def _load_lines(
        self, company_id: UUID, line_ids: Iterable[UUID],
    ) -> dict[UUID, SalesOrderLine]:
        line_ids = list(line_ids)
        lines = {
            line.id: line
            for line in self.session.execute(
                select(SalesOrderLine).where(
                    SalesOrderLine.company_id == company_id,
                    SalesOrderLine.id.in_(line_ids),
                )
            ).scalars()
        }
        for line_id in line_ids:
            if line_id not in lines:
                raise NotFoundError("SalesOrderLine", str(line_id))
        return lines

    def _lock_reservations(
        self, company_id: UUID, line_ids: Iterable[UUID],
    ) -> list[StockReservation]:
        return list(
            self.session.execute(
                select(StockReservation)
                .where(
                    StockReservation.company_id == company_id,
                    StockReservation.so_line_id.in_(list(line_ids)),
                )
                .order_by(StockReservation.so_line_id, StockReservation.sku_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
