"""
Module: stock_kernel.selectors.balance_selector
Responsibility: Read-only queries over stock balances, the movement ledger
    and reservations.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - ``ledger_quantity()`` recomputes on-hand from movements, independent
      of the stored balance, so callers and tests can check
      balance == sum(signed movements).
    - ``on_hand_by_sku(lock=True)`` locks balance rows in (sku_id, zone_id)
      order so concurrent confirmations acquire them in the same order.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from stock_kernel.domain.costing import quantize_cost
from stock_kernel.models.stock import (
    MovementDirection,
    StockBalance,
    StockMovement,
    StockReservation,
)
from stock_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceView:
    """Snapshot of one (company, SKU, zone) balance."""

    sku_id: UUID
    zone_id: UUID
    quantity_on_hand: Decimal
    cost_per_unit: Decimal
    total_cost: Decimal
    last_movement_at: datetime | None


@dataclass(frozen=True)
class MovementView:
    id: UUID
    sku_id: UUID
    zone_id: UUID
    quantity: Decimal
    direction: str
    movement_type: str
    cost_per_unit: Decimal
    total_cost: Decimal
    reference_type: str | None
    reference_id: str | None
    occurred_at: datetime


class BalanceSelector(BaseSelector):
    """Balances, ledger sums and reservation totals."""

    def get_balance(self, company_id: UUID, sku_id: UUID, zone_id: UUID) -> BalanceView | None:
        row = self.session.execute(
            select(StockBalance).where(
                StockBalance.company_id == company_id,
                StockBalance.sku_id == sku_id,
                StockBalance.zone_id == zone_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return None
        return BalanceView(
            sku_id=row.sku_id,
            zone_id=row.zone_id,
            quantity_on_hand=row.quantity_on_hand,
            cost_per_unit=row.cost_per_unit,
            total_cost=row.total_cost,
            last_movement_at=row.last_movement_at,
        )

    def quantity_on_hand(self, company_id: UUID, sku_id: UUID, zone_id: UUID) -> Decimal:
        balance = self.get_balance(company_id, sku_id, zone_id)
        return balance.quantity_on_hand if balance else ZERO

    def on_hand_by_sku(
        self,
        company_id: UUID,
        sku_ids: Iterable[UUID],
        zone_ids: Iterable[UUID],
        lock: bool = False,
    ) -> dict[UUID, Decimal]:
        """On-hand per SKU summed over ``zone_ids``; SKUs with no stock map to 0."""
        sku_ids = sorted(set(sku_ids), key=str)
        zone_ids = list(zone_ids)
        totals = {sku_id: ZERO for sku_id in sku_ids}
        if not sku_ids or not zone_ids:
            return totals

        stmt = select(StockBalance).where(
            StockBalance.company_id == company_id,
            StockBalance.sku_id.in_(sku_ids),
            StockBalance.zone_id.in_(zone_ids),
        )
        if lock:
            stmt = (
                stmt.order_by(StockBalance.sku_id, StockBalance.zone_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        for balance in self.session.execute(stmt).scalars():
            totals[balance.sku_id] += balance.quantity_on_hand
        return totals

    def reserved_by_sku(
        self,
        company_id: UUID,
        sku_ids: Iterable[UUID],
        exclude_line_ids: Iterable[UUID] = (),
    ) -> dict[UUID, Decimal]:
        """Active reservation totals per SKU, ignoring the excluded SO lines."""
        sku_ids = list(set(sku_ids))
        totals = {sku_id: ZERO for sku_id in sku_ids}
        if not sku_ids:
            return totals

        stmt = (
            select(StockReservation.sku_id, func.sum(StockReservation.quantity))
            .where(
                StockReservation.company_id == company_id,
                StockReservation.sku_id.in_(sku_ids),
                StockReservation.released_at.is_(None),
            )
            .group_by(StockReservation.sku_id)
        )
        exclude = list(exclude_line_ids)
        if exclude:
            stmt = stmt.where(StockReservation.so_line_id.not_in(exclude))
        for sku_id, total in self.session.execute(stmt).all():
            totals[sku_id] = quantize_cost(Decimal(str(total or 0)))
        return totals

    def active_reservations(
        self, company_id: UUID, line_ids: Iterable[UUID],
    ) -> dict[tuple[UUID, UUID], Decimal]:
        """(so_line_id, sku_id) -> reserved quantity for active reservations."""
        line_ids = list(line_ids)
        if not line_ids:
            return {}
        rows = self.session.execute(
            select(StockReservation).where(
                StockReservation.company_id == company_id,
                StockReservation.so_line_id.in_(line_ids),
                StockReservation.released_at.is_(None),
            )
        ).scalars()
        return {(r.so_line_id, r.sku_id): r.quantity for r in rows}

    def ledger_quantity(self, company_id: UUID, sku_id: UUID, zone_id: UUID) -> Decimal:
        """Signed sum of all movements for the key."""
        signed = case(
            (StockMovement.direction == MovementDirection.OUT.value, -StockMovement.quantity),
            else_=StockMovement.quantity,
        )
        total = self.session.execute(
            select(func.coalesce(func.sum(signed), 0)).where(
                StockMovement.company_id == company_id,
                StockMovement.sku_id == sku_id,
                StockMovement.zone_id == zone_id,
            )
        ).scalar_one()
        return quantize_cost(Decimal(str(total)))

    def movements(
        self, company_id: UUID, sku_id: UUID, zone_id: UUID | None = None,
    ) -> list[MovementView]:
        stmt = select(StockMovement).where(
            StockMovement.company_id == company_id,
            StockMovement.sku_id == sku_id,
        )
        if zone_id is not None:
            stmt = stmt.where(StockMovement.zone_id == zone_id)
        stmt = stmt.order_by(StockMovement.occurred_at, StockMovement.created_at)
        return [
            MovementView(
                id=m.id,
                sku_id=m.sku_id,
                zone_id=m.zone_id,
                quantity=m.quantity,
                direction=str(getattr(m.direction, "value", m.direction)),
                movement_type=str(getattr(m.movement_type, "value", m.movement_type)),
                cost_per_unit=m.cost_per_unit,
                total_cost=m.total_cost,
                reference_type=m.reference_type,
                reference_id=m.reference_id,
                occurred_at=m.occurred_at,
            )
            for m in self.session.execute(stmt).scalars()
        ]
